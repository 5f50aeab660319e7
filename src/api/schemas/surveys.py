"""Pydantic schemas for user-facing survey endpoints."""

from typing import Any, Dict, List

from pydantic import BaseModel


class CompletedSurvey(BaseModel):
    id: str
    name: str
    description: str
    results: str
    metadata: Dict[str, Any] = {}


class CompletedSurveysResponse(BaseModel):
    surveys: List[CompletedSurvey]


class IsAdminResponse(BaseModel):
    is_admin: bool
