"""Request-level checks shared by the core services."""

from __future__ import annotations

from uuid import UUID

from src.core.exceptions import InvalidRequestError


def require_id(value: str | None, label: str = "id") -> str:
    """Ensure ``value`` is a UUID string; returns it normalised to lowercase."""
    if not value or not isinstance(value, str):
        raise InvalidRequestError(f"{label} is required")
    try:
        return str(UUID(value))
    except ValueError as e:
        raise InvalidRequestError(f"Invalid {label}") from e


def require_user(user_id: str | None) -> str:
    if not user_id or not user_id.strip():
        raise InvalidRequestError("user id is required")
    return user_id
