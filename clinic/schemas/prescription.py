from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PrescriptionCreate(BaseModel):
    appointment_id: int
    medication: str = Field(min_length=3, max_length=100)
    dosage: str = Field(min_length=1, max_length=50)
    doctor_notes: Optional[str] = Field(default=None, max_length=200)


class PrescriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    appointment_id: int
    medication: str
    dosage: str
    doctor_notes: Optional[str] = None
    created_at: Optional[datetime] = None
