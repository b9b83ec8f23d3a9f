"""
API request / response models for FastAPI.
"""

from pydantic import BaseModel
from typing import Optional

from backend.models import ExtractionResult


class ProcessResponse(ExtractionResult):
    success: bool = True
    filename: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    workflow_configured: bool = False
