from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User, UserRole
from app.services import user_service
from app.services.paystack import PaystackClient, PaymentGateway
from app.services.verification_service import IdentityVerifier, SimulatedVerifier
from app.utils.auth import decode_token
from typing import Optional

bearer_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[User]:
    if not credentials:
        return None

    payload = decode_token(credentials.credentials)
    if not payload:
        return None

    external_id = payload.get("sub")
    email = payload.get("email")
    if not external_id or not email:
        return None

    return user_service.sync_user(db, external_id, email, payload.get("name"))

async def get_current_active_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )
    return current_user

def require_role(*roles: UserRole):
    async def role_checker(
        current_user: User = Depends(get_current_active_user)
    ):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(r.value for r in roles)}"
            )
        return current_user
    return role_checker

require_admin = require_role(UserRole.ADMIN)
require_owner = require_role(UserRole.OWNER, UserRole.ADMIN)

def get_payment_gateway() -> PaymentGateway:
    return PaystackClient()

def get_identity_verifier() -> IdentityVerifier:
    return SimulatedVerifier()
