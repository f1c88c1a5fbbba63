"""
Queue Message Schemas.
"""

from typing import Literal

from pydantic import BaseModel, Field


class MapSearchMessage(BaseModel):
    """Job enqueue message for the map search worker."""
    job_id: str = Field(..., min_length=1)
    subject_username: str = Field(..., min_length=1)
    time_window: Literal["1d", "1w", "1m"]


class SchedulerMessage(BaseModel):
    """Daily check trigger."""
    subject: str
    contact: str = ""
    kind: Literal["mapper_check", "driver_check"]
