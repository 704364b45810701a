import logging
from typing import Iterable, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase

from coursehub.core.config import ADMIN_EMAILS, JWT_ALGORITHM, JWT_SECRET_KEY
from coursehub.core.database import get_db
from coursehub.users.models import InstructorStatus, Role

logger = logging.getLogger(__name__)


class AccessPolicy:
    """
    Admin allowlist and registration-time role policy.
    Injected through get_access_policy so it can be swapped per app or test.
    """

    def __init__(self, admin_emails: Iterable[str] = ()):
        self.admin_emails = frozenset(e.strip().lower() for e in admin_emails)

    def is_allowlisted(self, email: Optional[str]) -> bool:
        return bool(email) and email.strip().lower() in self.admin_emails

    def is_admin(self, user: dict) -> bool:
        return user.get("role") == Role.ADMIN or self.is_allowlisted(user.get("email"))

    def assign_role(self, email: str, requested_role: Optional[Role] = None) -> tuple[Role, Optional[InstructorStatus]]:
        """
        Decide role once, at registration.
        Returns (role, instructor_status); instructor_status is None for students.
        """
        if self.is_allowlisted(email):
            return Role.ADMIN, InstructorStatus.APPROVED
        if requested_role == Role.INSTRUCTOR:
            return Role.INSTRUCTOR, InstructorStatus.PENDING
        # Admin can never be self-requested
        return Role.STUDENT, None


_policy = AccessPolicy(ADMIN_EMAILS)


def get_access_policy() -> AccessPolicy:
    return _policy


# ==================== TOKEN ====================

def verify_token(authorization: str = Header(None)) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = authorization.split(" ", 1)[1]
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or Expired Token")


async def get_current_user(
    payload: dict = Depends(verify_token),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> dict:
    """
    Dependency: loads the user document named by the token's `sub` claim

    Raises:
        401: Token without subject
        404: User not registered
        403: Deactivated account
    """
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing user_id")

    user = await db.users.find_one({"user_id": user_id}, {"_id": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found. Please register first.")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")
    return user


async def get_optional_user(
    authorization: str = Header(None),
    db: AsyncIOMotorDatabase = Depends(get_db),
) -> Optional[dict]:
    """Anonymous requests get None; a token that is sent must still be valid"""
    if not authorization:
        return None
    return await get_current_user(verify_token(authorization), db)


async def require_admin(
    user: dict = Depends(get_current_user),
    policy: AccessPolicy = Depends(get_access_policy),
) -> dict:
    if not policy.is_admin(user):
        logger.warning("Admin access denied for %s", user.get("user_id"))
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_instructor(
    user: dict = Depends(get_current_user),
    policy: AccessPolicy = Depends(get_access_policy),
) -> dict:
    """Instructors may author content only after admin approval."""
    if policy.is_admin(user):
        return user
    if user.get("role") != Role.INSTRUCTOR:
        raise HTTPException(status_code=403, detail="Access denied. Instructor privileges required.")
    if user.get("instructor_status") != InstructorStatus.APPROVED:
        raise HTTPException(status_code=403, detail="Instructor account is awaiting admin approval")
    return user


def can_manage(user: dict, owner_id: str, policy: AccessPolicy) -> bool:
    """Owner-or-admin check used by course and program mutations"""
    return user.get("user_id") == owner_id or policy.is_admin(user)
