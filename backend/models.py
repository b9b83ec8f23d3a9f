"""
Pydantic models shared across the backend.
"""

import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.config import FALLBACK_FILENAME


class FileStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class FileHandle(BaseModel):
    """A selected file: name, declared MIME type and raw bytes."""

    name: str
    content_type: str = ""
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)


def coerce_amount(value: Any) -> float:
    """Numeric cast with 0 fallback: ``"120.50"`` → 120.5, ``"abc"`` / None → 0."""
    if value is None:
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    return amount


def _text_or(value: Any, default: str) -> str:
    if not value:
        return default
    return value if isinstance(value, str) else str(value)


class ExtractionResult(BaseModel):
    """Normalized output of one successful workflow run."""

    renamed_filename: str = FALLBACK_FILENAME
    company: str = ""
    date: str = ""
    amount: float = 0.0
    description: str = ""
    # run metadata is passed through from the workflow as-is
    workflow_run_id: Optional[Any] = None
    elapsed_time: Optional[Any] = None
    total_tokens: Optional[Any] = None

    @field_validator("renamed_filename", mode="before")
    @classmethod
    def _default_filename(cls, v):
        return _text_or(v, FALLBACK_FILENAME)

    @field_validator("company", "date", "description", mode="before")
    @classmethod
    def _default_text(cls, v):
        return _text_or(v, "")

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v):
        return coerce_amount(v)


class TrackedFile(BaseModel):
    """Per-file status record driving the UI."""

    id: str
    name: str
    status: FileStatus = FileStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    result: Optional[ExtractionResult] = None
    error: Optional[str] = None
    file: FileHandle = Field(exclude=True, repr=False)

    @model_validator(mode="after")
    def _terminal_fields_match_status(self):
        if (self.result is not None) != (self.status == FileStatus.COMPLETED):
            raise ValueError("result must be set exactly when status is 'completed'")
        if (self.error is not None) != (self.status == FileStatus.ERROR):
            raise ValueError("error must be set exactly when status is 'error'")
        return self


class BatchStats(BaseModel):
    total: int = 0
    processed: int = 0
    completed: int = 0
    errors: int = 0
