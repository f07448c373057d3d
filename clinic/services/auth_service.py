from sqlalchemy.orm import Session
import logging

from ..models.admin import Admin
from ..core.errors import NotFoundError
from ..core.security import (
    verify_password, token_authority, Principal, UserRole, AuthenticationError
)
from ..scheduling.store import DoctorDirectory, PatientDirectory
from ..schemas.auth import AdminLogin, DoctorLogin, PatientLogin, TokenResponse

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def admin_login(self, login_data: AdminLogin) -> TokenResponse:
        """Authenticate an administrator by username."""
        admin = self.db.query(Admin).filter(
            Admin.username == login_data.username.strip()
        ).first()

        if not admin or not verify_password(login_data.password, admin.password_hash):
            logger.warning(f"Failed admin login for {login_data.username!r}")
            raise AuthenticationError("Invalid username or password")

        return self._issue(Principal(id=admin.id, email=None, role=UserRole.ADMIN))

    def doctor_login(self, login_data: DoctorLogin) -> TokenResponse:
        """Authenticate a doctor: found -> check password, not found -> NotFound."""
        doctor = DoctorDirectory(self.db).find_by_email(login_data.email)

        if doctor is None:
            raise NotFoundError("Doctor not found", email=login_data.email)

        if not verify_password(login_data.password, doctor.password_hash):
            logger.warning(f"Failed doctor login for doctor {doctor.id}")
            raise AuthenticationError("Invalid password")

        return self._issue(Principal(id=doctor.id, email=doctor.email, role=UserRole.DOCTOR))

    def patient_login(self, login_data: PatientLogin) -> TokenResponse:
        """Authenticate a patient by email."""
        patient = PatientDirectory(self.db).find_by_email(login_data.email)

        if not patient or not verify_password(login_data.password, patient.password_hash):
            raise AuthenticationError("Invalid email or password")

        return self._issue(Principal(id=patient.id, email=patient.email, role=UserRole.PATIENT))

    def _issue(self, principal: Principal) -> TokenResponse:
        token = token_authority.issue_token(principal)

        return TokenResponse(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            role=principal.role,
            user_id=principal.id,
        )
