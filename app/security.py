"""Security helpers used across the application."""

from __future__ import annotations

from common.errors import AuthorizationDenied


def require_owner(owner_id: object) -> int:
    """Return ``owner_id`` as a positive int or raise :class:`AuthorizationDenied`.

    Every owner-scoped service call goes through this check before any lookup.
    """

    if owner_id is None or isinstance(owner_id, bool):
        raise AuthorizationDenied("An authenticated owner is required")
    try:
        value = int(owner_id)
    except (TypeError, ValueError):
        raise AuthorizationDenied("Owner id is not valid") from None
    if value <= 0 or (isinstance(owner_id, float) and not owner_id.is_integer()):
        raise AuthorizationDenied("Owner id is not valid")
    return value


__all__ = ["require_owner"]
