"""
Local user records mirrored from the identity provider.

The provider owns credentials; this service only keeps the row that
bookings, apartments and verifications point at.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from app.models.apartment import Apartment
from app.models.base import utcnow
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


def sync_user(db: Session, external_id: str, email: str, full_name: Optional[str] = None) -> User:
    """Find or create the user for an authenticated identity and stamp the login."""
    user = db.query(User).filter(User.external_id == external_id).first()
    if user is None:
        user = User(external_id=external_id, email=email, full_name=full_name, role=UserRole.GUEST)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Concurrent first request for the same identity created it
            db.rollback()
            user = db.query(User).filter(User.external_id == external_id).one()
        else:
            logger.info(f"Created user {user.id} for identity {external_id}")

    if email and user.email != email:
        user.email = email
    if full_name and not user.full_name:
        user.full_name = full_name
    user.last_login_at = utcnow()
    db.commit()
    db.refresh(user)
    return user


def update_profile(db: Session, user: User, data) -> User:
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user


def switch_role(db: Session, user: User, role: UserRole) -> User:
    if role == UserRole.ADMIN:
        raise ForbiddenError("The admin role cannot be self-assigned")
    if user.is_admin:
        raise ForbiddenError("Admins cannot change their own role")
    if role == UserRole.GUEST and user.role == UserRole.OWNER:
        active = (
            db.query(Apartment.id)
            .filter(Apartment.owner_id == user.id, Apartment.is_active.is_(True))
            .first()
        )
        if active:
            raise ConflictError("Deactivate your apartments before switching to a guest account")

    user.role = role
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} switched role to {role.value}")
    return user


def promote_to_admin(db: Session, email: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise NotFoundError("User", email)
    user.role = UserRole.ADMIN
    user.is_active = True
    db.commit()
    db.refresh(user)
    logger.info(f"User {user.id} promoted to admin")
    return user
