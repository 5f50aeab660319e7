"""Endpoints for the Mini App user: completed surveys and admin flag."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_app_settings, get_survey_service
from src.api.schemas.surveys import CompletedSurvey, CompletedSurveysResponse, IsAdminResponse
from src.api.utils.auth import get_current_user_id
from src.config.settings import AppSettings
from src.domain.errors import NotFoundError
from src.services.survey_service import SurveyService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["surveys"])


@router.get("/surveys", response_model=CompletedSurveysResponse)
def get_completed_surveys(
    user_id: int = Depends(get_current_user_id),
    service: SurveyService = Depends(get_survey_service),
):
    """Return the caller's completed surveys, newest first."""
    try:
        reports = service.get_completed_surveys(user_id)
    except NotFoundError:
        return CompletedSurveysResponse(surveys=[])
    except Exception as e:
        logger.error(f"Completed surveys error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get completed surveys",
        )

    return CompletedSurveysResponse(
        surveys=[
            CompletedSurvey(
                id=str(report.survey_guid),
                name=report.survey_name,
                description=report.description,
                results=report.results.text if report.results else "",
                metadata=report.results.metadata if report.results else {},
            )
            for report in reports
        ]
    )


@router.get("/is-admin", response_model=IsAdminResponse)
def is_admin(
    user_id: int = Depends(get_current_user_id),
    settings: AppSettings = Depends(get_app_settings),
):
    return IsAdminResponse(is_admin=settings.is_admin(user_id))
