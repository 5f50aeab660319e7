"""Scoring formulas for the built-in questionnaires.

Every function takes a survey and one answer per question and returns the
result text shown to the user plus the raw sub-scores. Item numbers are
1-based, as printed in the questionnaires.
"""

from typing import Iterable

from src.domain.survey import Answer, Results, Survey

LOW = "низкий уровень"
MEDIUM = "средний уровень"
HIGH = "высокий уровень"

# Weights per question (rows) and chosen option (columns); the last question is not scored.
QUALITY_OF_LIFE_COEFFICIENTS = [
    [0, 0.034, 0.041, 0.071, 0.458],
    [0, 0.062, 0.075, 0.117, 0.246],
    [0, 0.059, 0.073, 0.129, 0.242],
    [0, 0.053, 0.066, 0.19, 0.377],
    [0, 0.033, 0.041, 0.109, 0.179],
    [0, 0, 0, 0, 0],
]

PERSONALITY_DESCRIPTION = """Интроверт это человек, психический склад которого характеризуется сосредоточенностью на своем внутреннем мире, замкнутостью, созерцательностью; тот, кто не склонен к общению и с трудом устанавливает контакты с окружающим миром
Экстраверт это общительный, экспрессивный человек с активной социальной позицией. Его переживания и интересы направлены на внешний мир. Экстраверты удовлетворяют большинство своих потребностей через взаимодействие с людьми.
Нейротизм – это личностная черта человека, которая проявляется в беспокойстве, тревожности и эмоциональной неустойчивости. Нейротизм в психологии это индивидуальная переменная, которая выражает особенности нервной системы (лабильность и реактивность). Те люди, у которых высокий уровень нейротизма, под внешним выражением полного благополучия скрывают внутреннюю неудовлетворенность и личные конфликты. Они реагируют на всё происходящие чересчур эмоционально и не всегда адекватно к ситуации."""

VOCATIONAL_DESCRIPTION = """Реалистический тип – этому типу личности свойственна эмоциональная стабильность, ориентация на настоящее. Представители данного типа занимаются конкретными объектами и их практическим использованием: вещами, инструментами, машинами. Отдают предпочтение занятиям требующим моторных навыков, ловкости, конкретности.
Интеллектуальный тип – ориентирован на умственный труд. Он аналитичен, рационален, независим, оригинален. Преобладают теоретические и в некоторой степени эстетические ценности. Размышления о проблеме он предпочитает занятиям по реализации связанных с ней решений. Ему нравится решать задачи, требующие абстрактного мышления.
Социальный тип - ставит перед собой такие цели и задачи, которые позволяют им установить тесный контакт с окружающей социальной средой. Обладает социальными умениями и нуждается в социальных контактах. Стремятся поучать, воспитывать. Гуманны. Способны приспособиться практически к любым условиям. Стараются держаться в стороне от интеллектуальных проблем. Они активны и решают проблемы, опираясь главным образом на эмоции, чувства и умение общаться.
Конвенциальный тип – отдает предпочтение четко структурированной деятельности. Из окружающей его среды он выбирает цели, задачи и ценности, проистекающие из обычаев и обусловленные состоянием общества. Ему характерны серьезность настойчивость, консерватизм, исполнительность. В соответствии с этим его подход к проблемам носит стереотипичный, практический и конкретный характер.
Предприимчивый тип – избирает цели, ценности и задачи, позволяющие ему проявить энергию, энтузиазм, импульсивность, доминантность, реализовать любовь к приключенчеству. Ему не по душе занятия, связанные с ручным трудом, а также требующие усидчивости, большой концентрации внимания и интеллектуальных усилий. Предпочитает руководящие роли в которых может удовлетворять свои потребности в доминантности и признании. Активен, предприимчив.
Артистический тип – отстраняется от отчетливо структурированных проблем и видов деятельности, предполагающих большую физическую силу. В общении с окружающими опираются на свои непосредственные ощущения, эмоции, интуицию и воображение. Ему присущ сложный взгляд на жизнь, гибкость, независимость суждений. Свойственна несоциальность, оригинальность."""

# (item, expected option) pairs counted towards each scale
EXTRAVERSION_KEYS = [(n, 1) for n in (1, 3, 8, 10, 13, 17, 22, 25, 27, 39, 44, 46, 49, 53, 56)] + [
    (n, 2) for n in (5, 15, 20, 29, 32, 34, 37, 41, 51)
]
NEUROTICISM_KEYS = [
    (n, 1)
    for n in (2, 4, 7, 9, 11, 14, 16, 19, 21, 23, 26, 28, 31, 33, 35, 38, 40, 43, 45, 47, 50, 52, 55, 57)
]
LIE_KEYS = [(n, 1) for n in (6, 24, 36)] + [(n, 2) for n in (12, 18, 30, 42, 48, 54)]

VOCATIONAL_KEYS = {
    "realistic": [
        (1, 1), (2, 1), (3, 1), (4, 1), (5, 1), (16, 1), (17, 1),
        (18, 1), (19, 1), (21, 1), (31, 1), (32, 1), (33, 1), (34, 1),
    ],
    "intillectual": [
        (1, 2), (6, 1), (7, 1), (8, 1), (9, 1), (16, 2), (20, 1),
        (22, 1), (23, 1), (24, 1), (31, 2), (35, 1), (36, 1), (37, 1),
    ],
    "social": [
        (2, 2), (6, 2), (10, 1), (11, 1), (12, 1), (17, 2), (29, 2),
        (25, 1), (26, 1), (27, 1), (36, 2), (38, 1), (39, 1), (41, 2),
    ],
    "conventional": [
        (3, 2), (7, 2), (10, 2), (13, 1), (14, 1), (18, 2), (22, 2),
        (25, 2), (28, 1), (29, 1), (32, 2), (38, 2), (40, 1), (42, 1),
    ],
    "enterprising": [
        (4, 2), (8, 2), (11, 2), (13, 2), (15, 1), (23, 2), (28, 2),
        (30, 1), (33, 2), (35, 2), (37, 2), (39, 2), (40, 2),
    ],
    "artistic": [
        (5, 2), (9, 2), (12, 2), (14, 2), (15, 2), (19, 2), (21, 2),
        (24, 1), (27, 2), (29, 2), (30, 2), (34, 2), (41, 1), (42, 2),
    ],
}


def _value(answers: list[Answer], item: int) -> int:
    return answers[item - 1].data[0]


def _shifted_sum(answers: list[Answer], items: Iterable[int]) -> int:
    """Sum of item values counted from zero (option 1 scores 0)."""
    return sum(_value(answers, item) - 1 for item in items)


def _matches(answers: list[Answer], keys: Iterable[tuple[int, int]]) -> int:
    return sum(1 for item, expected in keys if _value(answers, item) == expected)


def burnout_inventory(survey: Survey, answers: list[Answer]) -> Results:
    """Professional burnout: exhaustion, depersonalization, reduced accomplishment."""
    s1 = _shifted_sum(answers, (1, 2, 3, 8, 13, 14, 16, 20)) - _shifted_sum(answers, (6,))
    s2 = _shifted_sum(answers, (5, 10, 11, 15, 22))
    s3 = _shifted_sum(answers, (4, 7, 9, 12, 17, 18, 19, 21))

    s1_level = LOW if s1 <= 15 else MEDIUM if s1 <= 24 else HIGH
    s2_level = LOW if s2 <= 5 else MEDIUM if s2 <= 10 else HIGH
    # Accomplishment is inverted: a high score means little reduction.
    s3_level = LOW if s3 >= 37 else MEDIUM if s3 >= 31 else HIGH

    text = (
        f"Эмоциональное истощение - {s1_level}, Деперсонализация - {s2_level}, "
        f"Редукция профессионализма - {s3_level}"
    )
    return Results(text=text, metadata={"s1": s1, "s2": s2, "s3": s3})


def quality_of_life_index(survey: Survey, answers: list[Answer]) -> Results:
    total = 0.0
    for index, answer in enumerate(answers[:-1]):
        option = answer.data[0]
        total += QUALITY_OF_LIFE_COEFFICIENTS[index][option - 1] * option

    score = 1 - total
    return Results(text=f"Сумма баллов: {score:.2f}", metadata={"s": round(score, 3)})


def anxiety_scale(survey: Survey, answers: list[Answer]) -> Results:
    """Reactive (items 1-20) and personal (items 21-40) anxiety."""
    s1 = (
        _shifted_sum(answers, (3, 4, 6, 7, 9, 12, 13, 14, 17, 18))
        - _shifted_sum(answers, (1, 2, 5, 8, 10, 11, 15, 16, 19, 20))
        + 50
    )
    s2 = (
        _shifted_sum(answers, (22, 23, 24, 25, 28, 29, 31, 32, 34, 35, 37, 38, 40))
        - _shifted_sum(answers, (21, 26, 27, 30, 33, 36, 39))
        + 35
    )

    def level(score: int) -> str:
        if score <= 30:
            return LOW
        if score <= 45:
            return MEDIUM
        return HIGH

    text = f"РЕАКТИВНАЯ ТРЕВОЖНОСТЬ - {level(s1)}, ЛИЧНОСТНАЯ ТРЕВОЖНОСТЬ - {level(s2)}"
    return Results(text=text, metadata={"s1": s1, "s2": s2})


def depression_scale(survey: Survey, answers: list[Answer]) -> Results:
    score = sum(answers[i].data[0] for i in range(18))
    # Item 19 only counts when item 20 was answered with option 1.
    if answers[19].data[0] == 1:
        score += answers[18].data[0]
    score += answers[20].data[0] + answers[21].data[0]

    if score <= 9:
        text = "отсутствие депрессивных симптомов"
    elif score <= 15:
        text = "легкая депрессия (субдепрессия)"
    elif score <= 19:
        text = "умеренная депрессия"
    elif score <= 29:
        text = "выраженная депрессия (средней тяжести)"
    else:
        text = "тяжелая депрессия"

    return Results(text=text, metadata={"s": score})


def personality_inventory(survey: Survey, answers: list[Answer]) -> Results:
    """Extraversion, neuroticism and lie scales."""
    s1 = _matches(answers, EXTRAVERSION_KEYS)
    s2 = _matches(answers, NEUROTICISM_KEYS)
    s3 = _matches(answers, LIE_KEYS)

    if s1 > 19:
        s1_level = "яркий экстраверт"
    elif s1 > 15:
        s1_level = "экстраверт"
    elif s1 > 9:
        s1_level = "норма"
    elif s1 > 5:
        s1_level = "интроверт"
    else:
        s1_level = "глубокий интроверт"

    if s2 > 19:
        s2_level = "очень высокий уровень нейротизма"
    elif s2 > 14:
        s2_level = "высокий уровень нейротизма"
    elif s2 > 9:
        s2_level = "среднее значение"
    else:
        s2_level = "низкий уровень нейротизма"

    s3_level = "неискренность в ответах" if s3 > 4 else "норма"

    text = (
        f'"Экстраверсия - интроверсия" - {s1_level}, "Нейротизм" - {s2_level}, '
        f'"Шкала лжи" - {s3_level}\n\n{PERSONALITY_DESCRIPTION}'
    )
    return Results(
        text=text,
        metadata={"estraversia-introversia": s1, "neurotism": s2, "lie": s3},
    )


def vocational_types(survey: Survey, answers: list[Answer]) -> Results:
    scores = {name: _matches(answers, keys) for name, keys in VOCATIONAL_KEYS.items()}

    text = (
        f"Реалистический тип - {scores['realistic']}, "
        f"Интеллектуальный тип - {scores['intillectual']}, "
        f"Социальный тип - {scores['social']}, "
        f"Конвенциальный тип - {scores['conventional']}, "
        f"Предприимчивый тип - {scores['enterprising']}, "
        f"Артистический тип - {scores['artistic']}\n\n{VOCATIONAL_DESCRIPTION}"
    )
    return Results(text=text, metadata=scores)
