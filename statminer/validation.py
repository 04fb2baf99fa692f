"""
statminer/validation.py
=======================
Aggregation validator shared by every source adapter.

Two passes:
  structural  pydantic schema over the NormalizedResult shape; any error
              short-circuits and no warnings are computed
  semantic    stale data, empty result, missing-value rate, row-count drift

The validator only classifies; it never mutates its input.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, StrictInt, StrictStr, ValidationError

from statminer.config import settings
from statminer.errors import ValidationFailed


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str


@dataclass(frozen=True)
class ValidationOutcome:
    valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[str, ...] = ()


class _MetadataSchema(BaseModel):
    fetched_at: datetime = Field(strict=True)
    row_count: StrictInt = Field(ge=0)
    columns: list[StrictStr]
    freshness: Optional[Literal["realtime", "daily", "weekly", "monthly", "annual", "unknown"]] = None
    source_url: Optional[StrictStr] = None


class _ResultSchema(BaseModel):
    source: StrictStr = Field(min_length=1)
    dataset: StrictStr = Field(min_length=1)
    rows: list[dict[StrictStr, Any]]
    metadata: _MetadataSchema


def _as_mapping(obj: Any) -> Any:
    # shallow: rows are handed to pydantic as-is and only read
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _as_mapping(getattr(obj, f.name)) for f in fields(obj)}
    return obj


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate(
    candidate: Any,
    *,
    now: Optional[datetime] = None,
    max_age_days: Optional[int] = None,
    missing_threshold: Optional[float] = None,
) -> ValidationOutcome:
    try:
        parsed = _ResultSchema.model_validate(_as_mapping(candidate))
    except ValidationError as exc:
        errors = tuple(
            ValidationIssue(
                path=".".join(str(part) for part in err["loc"]) or "<root>",
                message=err["msg"],
            )
            for err in exc.errors()
        )
        return ValidationOutcome(valid=False, errors=errors)

    max_age_days = settings.freshness_max_age_days if max_age_days is None else max_age_days
    missing_threshold = settings.missing_value_threshold if missing_threshold is None else missing_threshold
    now = now or datetime.now(timezone.utc)
    warnings: list[str] = []

    fetched_at = parsed.metadata.fetched_at
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    age = now - fetched_at
    if age > timedelta(days=max_age_days):
        warnings.append(f"Data is {age.days} days old")

    rows = parsed.rows
    if not rows:
        warnings.append("Query returned no results")

    columns = parsed.metadata.columns
    cells = len(rows) * len(columns)
    if cells:
        missing = sum(1 for row in rows for col in columns if _is_missing(row.get(col)))
        rate = missing / cells
        if rate > missing_threshold:
            warnings.append(f"{rate:.1%} of cells are missing ({missing}/{cells})")

    if parsed.metadata.row_count != len(rows):
        warnings.append(
            f"metadata.row_count is {parsed.metadata.row_count} but {len(rows)} rows are present"
        )

    return ValidationOutcome(valid=True, warnings=tuple(warnings))


def ensure_valid(candidate: Any, **kwargs) -> ValidationOutcome:
    """Like ``validate`` but raises ``ValidationFailed`` on structural errors."""
    outcome = validate(candidate, **kwargs)
    if not outcome.valid:
        raise ValidationFailed(outcome)
    return outcome
