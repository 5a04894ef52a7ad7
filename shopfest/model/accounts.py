# model/accounts.py
"""
Dashboard accounts: roles carrying permission strings, and admin users.

Two login backends exist (see shopfest.auth): a single credential pair from
the environment, or the admin_users table below. Either way the session ends
up holding the admin's identity and permission list.
"""

from __future__ import annotations
import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import bcrypt
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from .db import AdminRole, AdminUser
from ..errors import ValidationError, NotFoundError, ConflictError
from ..helpers import new_id, utcnow, is_valid_email

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
# bcrypt input limit
MAX_PASSWORD_BYTES = 72


class Permissions:
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"

    ROLE_CREATE = "role:create"
    ROLE_READ = "role:read"
    ROLE_UPDATE = "role:update"
    ROLE_DELETE = "role:delete"

    EVENT_CREATE = "event:create"
    EVENT_READ = "event:read"
    EVENT_UPDATE = "event:update"
    EVENT_DELETE = "event:delete"

    PRODUCT_CREATE = "product:create"
    PRODUCT_READ = "product:read"
    PRODUCT_UPDATE = "product:update"
    PRODUCT_DELETE = "product:delete"

    ORDER_READ = "order:read"
    ORDER_UPDATE = "order:update"
    ORDER_DELETE = "order:delete"

    CUSTOMER_READ = "customer:read"
    CUSTOMER_UPDATE = "customer:update"
    CUSTOMER_DELETE = "customer:delete"

    REPORTS_READ = "reports:read"
    ANALYTICS_READ = "analytics:read"

    SYSTEM_SETTINGS = "system:settings"
    DATA_MANAGEMENT = "data:management"

    @classmethod
    def all(cls) -> List[str]:
        return [v for k, v in vars(cls).items()
                if k.isupper() and isinstance(v, str)]


P = Permissions

DEFAULT_ROLES = {
    "super_admin": {
        "display_name": "Super Administrator",
        "description": "Full system access with all permissions",
        "permissions": P.all(),
    },
    "admin": {
        "display_name": "Administrator",
        "description": "General admin with most permissions",
        "permissions": [
            P.EVENT_CREATE, P.EVENT_READ, P.EVENT_UPDATE, P.EVENT_DELETE,
            P.PRODUCT_CREATE, P.PRODUCT_READ, P.PRODUCT_UPDATE,
            P.PRODUCT_DELETE,
            P.ORDER_READ, P.ORDER_UPDATE,
            P.CUSTOMER_READ, P.CUSTOMER_UPDATE,
            P.REPORTS_READ, P.ANALYTICS_READ,
        ],
    },
}

DEFAULT_SUPERADMIN = {
    "email": "admin@aquavn.com",
    "username": "superadmin",
    "password": "admin123",
    "first_name": "Super",
    "last_name": "Admin",
}


# ----------------------------
# Permission checks
# ----------------------------
def has_permission(perms: Iterable[str], required: str) -> bool:
    return required in set(perms or ())


def has_all_permissions(perms: Iterable[str],
                        required: Iterable[str]) -> bool:
    have = set(perms or ())
    return all(r in have for r in required)


def has_any_permission(perms: Iterable[str],
                       required: Iterable[str]) -> bool:
    have = set(perms or ())
    return any(r in have for r in required)


# ----------------------------
# Passwords
# ----------------------------
def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def validate_password(password: str) -> None:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes",
            field="password",
        )


def check_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"),
                              hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in the table
        return False


# ----------------------------
# Roles & users
# ----------------------------
def role_to_dict(r: AdminRole) -> Dict[str, Any]:
    return {
        "id": r.id,
        "name": r.name,
        "displayName": r.display_name,
        "description": r.description,
        "permissions": r.permission_list,
        "isActive": bool(r.is_active),
    }


def user_to_dict(u: AdminUser) -> Dict[str, Any]:
    # never the password hash
    return {
        "id": u.id,
        "email": u.email,
        "username": u.username,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "roleId": u.role_id,
        "role": role_to_dict(u.role) if u.role is not None else None,
        "isActive": bool(u.is_active),
        "lastLoginAt": u.last_login_at.isoformat() if u.last_login_at
        else None,
        "createdBy": u.created_by,
    }


async def list_roles(db: AsyncSession) -> List[AdminRole]:
    rows = await db.execute(
        select(AdminRole).order_by(AdminRole.created_at.desc())
    )
    return list(rows.scalars().all())


async def get_role(db: AsyncSession, role_id: str) -> AdminRole:
    r = await db.get(AdminRole, role_id)
    if r is None:
        raise NotFoundError("Role", role_id)
    return r


async def ensure_default_roles(db: AsyncSession) -> Dict[str, AdminRole]:
    roles = {}
    for name, info in DEFAULT_ROLES.items():
        role = (await db.execute(
            select(AdminRole).where(AdminRole.name == name)
        )).scalars().first()
        if role is None:
            role = AdminRole(
                id=new_id("ROLE"),
                name=name,
                display_name=info["display_name"],
                description=info["description"],
                permissions=json.dumps(info["permissions"]),
                is_active=True,
            )
            db.add(role)
        roles[name] = role
    await db.commit()
    return roles


async def initialize_admin_system(
        db: AsyncSession, email: Optional[str] = None,
        password: Optional[str] = None) -> Optional[AdminUser]:
    """Create default roles and the super admin. Returns the new super
    admin, or None when one already exists."""
    roles = await ensure_default_roles(db)
    email = email or DEFAULT_SUPERADMIN["email"]
    existing = (await db.execute(
        select(AdminUser).where(AdminUser.email == email)
    )).scalars().first()
    if existing is not None:
        logger.info("admin system already initialized")
        return None
    user = await create_user(db, {
        **DEFAULT_SUPERADMIN,
        "email": email,
        "password": password or DEFAULT_SUPERADMIN["password"],
        "role_id": roles["super_admin"].id,
    })
    logger.info("admin system initialized, super admin %s", email)
    return user


async def list_users(db: AsyncSession) -> List[AdminUser]:
    rows = await db.execute(
        select(AdminUser).order_by(AdminUser.created_at.desc())
    )
    return list(rows.scalars().unique().all())


async def get_user(db: AsyncSession, user_id: str) -> AdminUser:
    u = await db.get(AdminUser, user_id)
    if u is None:
        raise NotFoundError("User", user_id)
    return u


async def create_user(db: AsyncSession, data: Dict[str, Any],
                      created_by: Optional[str] = None) -> AdminUser:
    required = ("email", "username", "password", "first_name",
                "last_name", "role_id")
    missing = [k for k in required if not (data.get(k) or "").strip()]
    if missing:
        raise ValidationError("Missing required fields", field=missing[0])
    email = data["email"].strip().lower()
    username = data["username"].strip()
    if not is_valid_email(email):
        raise ValidationError("Invalid email format", field="email")
    validate_password(data["password"])

    existing = (await db.execute(
        select(AdminUser).where(
            or_(AdminUser.email == email, AdminUser.username == username)
        )
    )).scalars().first()
    if existing is not None:
        raise ConflictError("Email already exists"
                            if existing.email == email
                            else "Username already exists")
    role = await get_role(db, data["role_id"])

    u = AdminUser(
        id=new_id("USR"),
        email=email,
        username=username,
        password_hash=hash_password(data["password"]),
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        role_id=role.id,
        is_active=bool(data.get("is_active", True)),
        created_by=created_by,
    )
    u.role = role
    db.add(u)
    await db.commit()
    logger.info("admin user created %s role=%s", email, role.name)
    return u


async def update_user(db: AsyncSession, user_id: str,
                      data: Dict[str, Any]) -> AdminUser:
    u = await get_user(db, user_id)
    if data.get("password"):
        validate_password(data["password"])
    email = (data.get("email") or "").strip().lower()
    username = (data.get("username") or "").strip()
    if email and email != u.email:
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", field="email")
        clash = (await db.execute(
            select(AdminUser.id).where(AdminUser.email == email)
        )).first()
        if clash is not None:
            raise ConflictError("Email already exists")
        u.email = email
    if username and username != u.username:
        clash = (await db.execute(
            select(AdminUser.id).where(AdminUser.username == username)
        )).first()
        if clash is not None:
            raise ConflictError("Username already exists")
        u.username = username
    for key in ("first_name", "last_name"):
        if (data.get(key) or "").strip():
            setattr(u, key, data[key].strip())
    if data.get("role_id"):
        u.role = await get_role(db, data["role_id"])
        u.role_id = u.role.id
    if data.get("is_active") is not None:
        u.is_active = bool(data["is_active"])
    if data.get("password"):
        u.password_hash = hash_password(data["password"])
    await db.commit()
    logger.info("admin user updated %s", u.email)
    return u


async def delete_user(db: AsyncSession, user_id: str,
                      acting_user_id: Optional[str] = None) -> None:
    u = await get_user(db, user_id)
    if acting_user_id and acting_user_id == u.id:
        raise ConflictError("You cannot delete your own account")
    await db.delete(u)
    await db.commit()
    logger.info("admin user deleted %s", u.email)


async def verify_credentials(db: AsyncSession, email: str,
                             password: str) -> Optional[AdminUser]:
    email = (email or "").strip().lower()
    u = (await db.execute(
        select(AdminUser).where(AdminUser.email == email)
    )).scalars().first()
    if u is None or not u.is_active:
        return None
    if u.role is None or not u.role.is_active:
        return None
    if not check_password(password or "", u.password_hash):
        return None
    u.last_login_at = utcnow()
    await db.commit()
    return u
