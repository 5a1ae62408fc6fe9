"""Backup schedule and destination models.

Schedule fields follow the crontab(5) ranges:
minute 0-59, hour 0-23, day of month 1-31, month 1-12, day of week 0-6.
"""

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, SecretStr, StrictInt
from pydantic import ValidationError as PydanticValidationError

from spinup.errors import ValidationError


class Schedule(BaseModel):
    """Cron-like recurrence for a backup job."""

    minute: StrictInt = Field(ge=0, le=59)
    hour: StrictInt = Field(ge=0, le=23)
    day_of_month: StrictInt = Field(ge=1, le=31)
    month: StrictInt = Field(ge=1, le=12)
    day_of_week: StrictInt = Field(ge=0, le=6)

    model_config = {"frozen": True}

    def to_cron(self) -> str:
        """Render as a five-field crontab expression."""
        return (
            f"{self.minute} {self.hour} {self.day_of_month} {self.month} {self.day_of_week}"
        )


class Destination(BaseModel):
    """Where backups are shipped."""

    name: str
    bucket_name: str = ""
    api_key_id: str = ""
    api_key_secret: SecretStr = SecretStr("")

    model_config = {"frozen": True}

    def to_record(self) -> str:
        """JSON persisted with the schedule. The secret is left out."""
        return json.dumps(
            {"name": self.name, "bucket_name": self.bucket_name, "api_key_id": self.api_key_id}
        )


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"]) or "value"
        parts.append(f"{field}: {error['msg']}")
    return "; ".join(parts)


def parse_schedule(value: Schedule | Mapping[str, Any]) -> Schedule:
    """Validate a schedule, including instances built without validation."""
    data = value.model_dump() if isinstance(value, Schedule) else dict(value)
    try:
        return Schedule.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid backup schedule: {_describe(exc)}") from exc


def parse_destination(value: Destination | Mapping[str, Any]) -> Destination:
    if isinstance(value, Destination):
        return value
    try:
        return Destination.model_validate(dict(value))
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid backup destination: {_describe(exc)}") from exc
