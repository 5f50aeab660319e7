"""Admin endpoints: users, results export and survey management.

All routes require a caller on the admin allow-list.
"""

import itertools
import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from src.api.dependencies import get_survey_service
from src.api.schemas.admin import SurveyRequest, SurveyResponse, UserItem, UsersListResponse
from src.api.utils.auth import require_admin
from src.domain.errors import (
    AlreadyExistsError,
    NotFoundError,
    SurveyStateConflictError,
    SurveyStructureChangedError,
    SurveyValidationError,
)
from src.domain.survey import ResultsFilter
from src.services.survey_service import SurveyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _to_http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (AlreadyExistsError, SurveyStateConflictError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (SurveyValidationError, SurveyStructureChangedError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.error(f"Failed to {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}",
    )


@router.get("/users", response_model=UsersListResponse)
def list_users(
    limit: int = Query(default=10, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    search: str = Query(default=""),
    service: SurveyService = Depends(get_survey_service),
):
    try:
        result = service.get_users_list(limit, offset, search)
    except Exception as e:
        raise _to_http_error(e, "list users") from e

    return UsersListResponse(
        users=[
            UserItem(
                guid=str(u.guid),
                nick_name=u.nickname,
                completed_tests=u.completed_tests,
                answered_questions=u.answered_questions,
                registered_at=u.registered_at,
                last_activity=u.last_activity,
            )
            for u in result.users
        ],
        total=result.total,
    )


@router.get("/results")
def export_results(
    from_: Optional[datetime] = Query(default=None, alias="from"),
    to: Optional[datetime] = Query(default=None),
    newest_first: bool = Query(default=False),
    service: SurveyService = Depends(get_survey_service),
):
    """Stream finished surveys in the ``[from, to)`` window as CSV."""
    try:
        chunks = service.iter_finished_surveys_csv(
            ResultsFilter(from_=from_, to=to, newest_first=newest_first)
        )
        header = next(chunks)
    except Exception as e:
        raise _to_http_error(e, "export results") from e

    logger.info("Streaming results export via API")
    return StreamingResponse(
        itertools.chain([header], chunks),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="results.csv"'},
    )


@router.post("/surveys", response_model=SurveyResponse, status_code=status.HTTP_201_CREATED)
def create_survey(request: SurveyRequest, service: SurveyService = Depends(get_survey_service)):
    try:
        survey = service.create_survey(request.to_domain())
    except Exception as e:
        raise _to_http_error(e, "create survey") from e
    return SurveyResponse.from_domain(survey)


@router.put("/surveys/{guid}", response_model=SurveyResponse)
def update_survey(
    guid: uuid.UUID,
    request: SurveyRequest,
    service: SurveyService = Depends(get_survey_service),
):
    survey = request.to_domain()
    survey.guid = guid
    try:
        updated = service.update_survey(survey)
    except Exception as e:
        raise _to_http_error(e, "update survey") from e
    return SurveyResponse.from_domain(updated)


@router.delete("/surveys/{guid}", status_code=status.HTTP_204_NO_CONTENT)
def delete_survey(guid: uuid.UUID, service: SurveyService = Depends(get_survey_service)):
    try:
        service.soft_delete_survey(guid)
    except Exception as e:
        raise _to_http_error(e, "delete survey") from e


@router.delete(
    "/users/{user_guid}/surveys/{survey_guid}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_user_survey_state(
    user_guid: uuid.UUID,
    survey_guid: uuid.UUID,
    service: SurveyService = Depends(get_survey_service),
):
    """Remove a user's progress on a survey so they can retake it."""
    try:
        service.delete_user_survey_state(user_guid, survey_guid)
    except Exception as e:
        raise _to_http_error(e, "delete survey state") from e
