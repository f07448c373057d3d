from pydantic import BaseModel, field_validator
from typing import Optional

from ..core.security import UserRole

class DoctorLogin(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

class PatientLogin(DoctorLogin):
    pass

class AdminLogin(BaseModel):
    username: str
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: UserRole
    user_id: int

class PrincipalResponse(BaseModel):
    id: int
    email: Optional[str] = None
    role: UserRole
