from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.security import Principal, UserRole, security, token_authority
from ...api.deps import get_current_principal, rate_limit_check
from ...services.auth_service import AuthService
from ...schemas.auth import (
    AdminLogin, DoctorLogin, PatientLogin, TokenResponse, PrincipalResponse
)

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/admin/login", response_model=TokenResponse)
async def admin_login(
    login_data: AdminLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Authenticate an administrator."""
    return AuthService(db).admin_login(login_data)

@router.post("/doctor/login", response_model=TokenResponse)
async def doctor_login(
    login_data: DoctorLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Authenticate a doctor."""
    return AuthService(db).doctor_login(login_data)

@router.post("/patient/login", response_model=TokenResponse)
async def patient_login(
    login_data: PatientLogin,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Authenticate a patient."""
    return AuthService(db).patient_login(login_data)

@router.get("/me", response_model=PrincipalResponse)
async def get_current_principal_info(
    principal: Principal = Depends(get_current_principal)
):
    """Identity carried by the presented token."""
    return PrincipalResponse(id=principal.id, email=principal.email, role=principal.role)

@router.post("/verify-token")
async def verify_token_endpoint(
    role: Optional[UserRole] = Query(default=None, description="Role the token must grant"),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    principal: Principal = Depends(get_current_principal)
):
    """Verify if token is valid, optionally for a given role."""
    valid = True
    if role is not None:
        valid = token_authority.validate_token(credentials.credentials, role)

    return {
        "valid": valid,
        "user_id": principal.id,
        "email": principal.email,
        "role": principal.role.value,
    }
