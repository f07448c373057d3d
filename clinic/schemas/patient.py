from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .doctor import _normalize_email, _normalize_phone


class PatientRegister(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    phone: str
    address: Optional[str] = Field(default=None, max_length=255)

    normalize_email = field_validator("email", mode="before")(_normalize_email)
    normalize_phone = field_validator("phone")(_normalize_phone)


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str
    address: Optional[str] = None
