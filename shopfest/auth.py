"""
Dashboard login.

ADMIN_AUTH_MODE picks the backend: 'simple' checks one credential pair from
the environment, 'db' checks the admin_users table. Both store the same
identity dict in the signed session cookie, so page and API guards only ever
look at the session.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import ADMIN_AUTH_MODE, ADMIN_EMAIL, ADMIN_PASSWORD
from .helpers import ct_equal
from .model import accounts
from .model.accounts import Permissions, has_permission

logger = logging.getLogger(__name__)

SESSION_KEY = "admin_user"


def _simple_identity(email: str) -> Dict[str, Any]:
    return {
        "id": "env-admin",
        "email": email,
        "name": "Administrator",
        "role": "super_admin",
        "permissions": Permissions.all(),
    }


def _db_identity(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": f"{user.first_name} {user.last_name}".strip(),
        "role": user.role.name,
        "permissions": user.role.permission_list,
    }


async def authenticate(db: AsyncSession, email: str,
                       password: str) -> Optional[Dict[str, Any]]:
    email = (email or "").strip()
    if ADMIN_AUTH_MODE == "db":
        user = await accounts.verify_credentials(db, email, password)
        if user is None:
            logger.warning("failed admin login for %r", email)
            return None
        return _db_identity(user)

    if not ADMIN_EMAIL or not ADMIN_PASSWORD:
        logger.error("ADMIN_EMAIL / ADMIN_PASSWORD not set, login disabled")
        return None
    ok_user = ct_equal(email.lower(), ADMIN_EMAIL.lower())
    ok_pass = ct_equal(password or "", ADMIN_PASSWORD)
    if ok_user and ok_pass:
        return _simple_identity(ADMIN_EMAIL)
    logger.warning("failed admin login for %r", email)
    return None


def login(request: Request, identity: Dict[str, Any]) -> None:
    request.session[SESSION_KEY] = identity
    logger.info("admin logged in %s", identity["email"])


def logout(request: Request) -> None:
    request.session.pop(SESSION_KEY, None)


def current_admin(request: Request) -> Optional[Dict[str, Any]]:
    return request.session.get(SESSION_KEY)


def can(request: Request, permission: str) -> bool:
    admin = current_admin(request)
    return bool(admin) and has_permission(admin["permissions"], permission)


def safe_next(target: Optional[str]) -> str:
    # only local paths, never //host or absolute urls
    if not target or not target.startswith("/") or target.startswith("//"):
        return "/admin"
    return target


# ----------------------------
# Dependencies
# ----------------------------
def require_admin(request: Request) -> Dict[str, Any]:
    admin = current_admin(request)
    if not admin:
        # preserve where we wanted to go
        dest = quote(request.url.path)
        raise HTTPException(status_code=307, detail="redirect to login",
                            headers={"Location": f"/admin/login?next={dest}"})
    return admin


def require_page_permission(permission: str):
    def _dep(request: Request) -> Dict[str, Any]:
        admin = require_admin(request)
        if not has_permission(admin["permissions"], permission):
            raise HTTPException(403, detail=f"missing permission {permission}")
        return admin
    return _dep


def require_permission(permission: Optional[str] = None):
    """JSON endpoints: 401 when anonymous, 403 without the permission."""
    def _dep(request: Request) -> Dict[str, Any]:
        admin = current_admin(request)
        if not admin:
            raise HTTPException(401, detail="authentication required")
        if permission and not has_permission(admin["permissions"],
                                             permission):
            raise HTTPException(403, detail=f"missing permission {permission}")
        return admin
    return _dep
