"""Schedule administration schemas."""

from datetime import time
from typing import Optional

from pydantic import Field, model_validator

from ._strict_base import StrictRequestModel


class ScheduleInput(StrictRequestModel):
    """One recurring weekly window. ``day_of_week`` is 0 for Sunday."""

    day_of_week: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(30, ge=5, le=480)
    service_type_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_time_order(self) -> "ScheduleInput":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self
