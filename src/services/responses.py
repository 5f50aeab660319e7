"""User-facing chat messages."""

INVALID_SURVEY_ID = "Некорректный номер теста"
INVALID_NUMBER_OF_ARGUMENTS = "Некорректное количество аргументов"
SURVEY_ALREADY_FINISHED = "Вы уже прошли этот тест"
CHOOSE_SURVEY = "Пожалуйста выберите тест"

ANSWER_NOT_FOUND = "Ответ не найден"
ANSWER_OUT_OF_RANGE = "Ответ вне диапазона"
ANSWER_NOT_A_NUMBER = "Ответ не число"
INVALID_DATE_FORMAT = "Некорректный формат даты - 2006-01-20"
NO_RESULTS = "Нет результатов"

BACK_TO_LIST = "Назад к списку тестов"
QUESTION_PREFIX = "Вопрос"
SEGMENT_PROMPT = "Напишите число из диапазона"
SELECT_PROMPT = "Выберите один из вариантов:"
MULTISELECT_PROMPT = "Напишите один или несколько вариантов через запятую:"

SUFFIX_CURRENT = "(текущий)"
SUFFIX_FINISHED = "(завершен)"
SUFFIX_ACTIVE = "(в процессе)"
