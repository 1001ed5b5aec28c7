"""Pydantic models for schemaledger entities.

These models bridge between the database (SQLAlchemy Core) and application code,
providing validation and serialization.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class ExecutorState(str, Enum):
    """Lifecycle states of the migration executor."""

    IDLE = "idle"
    APPLYING = "applying"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


# =============================================================================
# Helper Functions
# =============================================================================


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Ledger
# =============================================================================


class LedgerEntry(BaseModel):
    """One applied migration, as recorded in the ledger table."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    version: int = Field(ge=0)
    name: str
    checksum: str = Field(min_length=64, max_length=64)
    applied_at: datetime = Field(default_factory=utcnow)
    execution_time_ms: int = Field(0, ge=0)

    @field_validator("applied_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """SQLite hands back naive datetimes; they are always stored as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


T = TypeVar("T", bound=BaseModel)


def row_to_model(row, model_class: type[T]) -> T:
    """Convert SQLAlchemy row to Pydantic model.

    Args:
        row: SQLAlchemy row result.
        model_class: Target Pydantic model class.

    Returns:
        Instance of the model class.
    """
    return model_class.model_validate(row._mapping)


def model_to_dict(model: BaseModel, exclude_none: bool = False) -> dict[str, Any]:
    """Convert Pydantic model to dict for database insert."""
    return model.model_dump(exclude_none=exclude_none)
