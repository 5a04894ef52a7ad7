import re
import uuid
from datetime import date, datetime, timezone
import hmac
from typing import Optional

from .config import DEFAULT_LOCALE, LOCALES


# ----------------------------
# Helpers
# ----------------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    # same clock as the stored timestamps
    return utcnow().date()


def new_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12].upper()}"


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    email = email.strip()
    # simple but effective email check
    return re.match(r"^[^@\s]+@[^@\s]+\.[^@\s]+$", email) is not None


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return re.match(r"^[0-9+\-\s()]{10,15}$", phone.strip()) is not None


def is_checkin_phone(phone: Optional[str]) -> bool:
    # the public check-in form only takes 10 digit local numbers
    return bool(phone) and re.match(r"^[0-9]{10}$", phone) is not None


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def parse_date(value: str | date | None) -> Optional[date]:
    """Accepts YYYY-MM-DD and DD-MM-YYYY."""
    if value is None or isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {value!r}")


def fmt_date(d: date | datetime | None) -> str:
    if d is None:
        return ""
    return d.strftime("%d-%m-%Y")


def fmt_datetime(d: datetime | None) -> str:
    if d is None:
        return ""
    return d.strftime("%d-%m-%Y %H:%M:%S")


def fmt_number(n: int | float) -> str:
    # vi-VN grouping: 1.234.567
    return f"{int(n):,}".replace(",", ".")


def pick_locale(locale: Optional[str]) -> str:
    return locale if locale in LOCALES else DEFAULT_LOCALE


def localized(value, locale: str = DEFAULT_LOCALE) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return value.get(locale) or value.get("vi") or value.get("en") or ""
