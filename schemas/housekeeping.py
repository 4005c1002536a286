from typing import Optional, Literal
from datetime import datetime
from pydantic import BaseModel, Field, PositiveInt, ConfigDict


class HousekeepingTaskCreate(BaseModel):
    room_id: PositiveInt
    priority: Literal["low", "normal", "high"] = "normal"
    assigned_to: Optional[PositiveInt] = None
    notes: Optional[str] = Field(None, max_length=1000)


class HousekeepingStatusUpdate(BaseModel):
    status: Literal["pending", "in_progress", "done"]
    notes: Optional[str] = Field(None, max_length=1000)


class HousekeepingTaskRead(BaseModel):
    id: int
    room_id: int
    status: str
    priority: str
    assigned_to: Optional[int] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
