import re
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{7,15}$")


def is_valid_phone(phone: str) -> bool:
    return bool(phone) and bool(PHONE_PATTERN.match(phone))


def normalize_phone(phone: str) -> str:
    """Strip formatting so the auth service receives digits with an optional leading +"""
    phone = phone.strip()
    prefix = "+" if phone.startswith("+") else ""
    return prefix + re.sub(r"[^0-9]", "", phone)


class AuthHelpers:
    """Helpers for reading the loosely typed objects returned by the auth service"""

    @staticmethod
    def user_of(session: Any) -> Optional[Any]:
        if session is None:
            return None
        return getattr(session, "user", None)

    @staticmethod
    def user_id_of(user: Any) -> Optional[str]:
        if user is None:
            return None
        user_id = getattr(user, "id", None)
        if user_id is None and isinstance(user, dict):
            user_id = user.get("id")
        return str(user_id) if user_id is not None else None

    @staticmethod
    def metadata_of(user: Any) -> dict:
        if user is None:
            return {}
        metadata = getattr(user, "user_metadata", None)
        if metadata is None and isinstance(user, dict):
            metadata = user.get("user_metadata")
        return metadata or {}

    def role_of(self, user: Any) -> Optional[str]:
        """Role chosen at sign-up, as stored in the auth user metadata"""
        role = self.metadata_of(user).get("role")
        if role not in ("seller", "buyer"):
            return None
        return role

    @staticmethod
    def phone_confirmed(user: Any) -> bool:
        return getattr(user, "phone_confirmed_at", None) is not None


auth_helpers = AuthHelpers()
