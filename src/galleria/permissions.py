"""Role capabilities and image/album visibility rules.

Every predicate here is pure: an absent principal or entity is a denial,
never an exception. Telling "not found" apart from "forbidden" is left to
the routers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from galleria.exceptions import ValidationError
from galleria.metadata import PRIVACY_LEVELS, PRIVACY_PRIVATE, PRIVACY_PUBLIC, PRIVACY_UNLISTED

ROLE_ADMIN = "admin"
ROLE_EDITOR = "editor"
ROLE_USER = "user"
ROLE_VISITOR = "visitor"

_VISITOR_CAPABILITIES = frozenset({
    "view_public_images",
    "comment_on_images",
    "like_images",
})

_EDITOR_CAPABILITIES = _VISITOR_CAPABILITIES | frozenset({
    "upload_images",
    "edit_own_images",
    "delete_own_images",
    "create_albums",
    "edit_own_albums",
    "view_unlisted_images",
    "moderate_own_comments",
    "create_tags",
})

# Flat role -> capability table. Each role's set is spelled out in full.
ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    ROLE_ADMIN: _EDITOR_CAPABILITIES | frozenset({
        "manage_users",
        "manage_all_images",
        "manage_all_albums",
        "delete_any_image",
        "view_private_images",
        "moderate_comments",
        "manage_tags",
        "manage_categories",
        "view_analytics",
    }),
    ROLE_EDITOR: _EDITOR_CAPABILITIES,
    ROLE_USER: _VISITOR_CAPABILITIES,
    ROLE_VISITOR: _VISITOR_CAPABILITIES,
}


@dataclass(frozen=True)
class Principal:
    """The requesting identity used for permission checks."""

    id: str
    role: str

    @classmethod
    def from_profile(cls, profile) -> "Principal":
        return cls(id=str(profile.supabase_uid), role=normalize_role(profile.role))


def normalize_role(raw_value: Optional[str]) -> str:
    value = str(raw_value or "").strip().lower()
    return value if value in ROLE_CAPABILITIES else ROLE_USER


def normalize_privacy(raw_value: Optional[str]) -> Optional[str]:
    value = str(raw_value or "").strip().lower()
    if not value:
        return None
    if value not in PRIVACY_LEVELS:
        raise ValidationError(
            "Invalid privacy setting.",
            context={"allowed": list(PRIVACY_LEVELS)},
        )
    return value


def _field(entity: Any, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def _role(principal_or_role: Any) -> Optional[str]:
    if principal_or_role is None:
        return None
    if isinstance(principal_or_role, str):
        return principal_or_role.strip().lower()
    return str(_field(principal_or_role, "role") or "").strip().lower()


def has_capability(principal_or_role: Any, capability: str) -> bool:
    role = _role(principal_or_role)
    if not role:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def is_owner(principal: Optional[Principal], entity: Any) -> bool:
    if principal is None or entity is None:
        return False
    owner_id = _field(entity, "user_id")
    if owner_id is None:
        return False
    return str(owner_id) == str(principal.id)


def _can_view_by_privacy(principal: Optional[Principal], entity: Any) -> bool:
    if entity is None:
        return False
    privacy = _field(entity, "privacy")
    if privacy == PRIVACY_PUBLIC:
        return True
    if principal is None:
        return False
    if _role(principal) == ROLE_ADMIN:
        return True
    if is_owner(principal, entity):
        return True
    if privacy == PRIVACY_UNLISTED:
        return has_capability(principal, "view_unlisted_images")
    if privacy == PRIVACY_PRIVATE:
        return has_capability(principal, "view_private_images")
    return False


def can_view(principal: Optional[Principal], image: Any) -> bool:
    return _can_view_by_privacy(principal, image)


def can_view_album(principal: Optional[Principal], album: Any) -> bool:
    return _can_view_by_privacy(principal, album)


def can_modify(principal: Optional[Principal], image: Any) -> bool:
    if principal is None or image is None:
        return False
    if has_capability(principal, "manage_all_images"):
        return True
    return is_owner(principal, image) and has_capability(principal, "edit_own_images")


def can_delete(principal: Optional[Principal], image: Any) -> bool:
    if principal is None or image is None:
        return False
    if has_capability(principal, "delete_any_image"):
        return True
    return is_owner(principal, image) and has_capability(principal, "delete_own_images")


def visible_privacy_levels(principal: Optional[Principal]) -> Optional[frozenset[str]]:
    """Privacy levels visible regardless of ownership; None means unrestricted."""
    if principal is None:
        return frozenset({PRIVACY_PUBLIC})
    if _role(principal) == ROLE_ADMIN:
        return None
    levels = {PRIVACY_PUBLIC}
    if has_capability(principal, "view_unlisted_images"):
        levels.add(PRIVACY_UNLISTED)
    if has_capability(principal, "view_private_images"):
        levels.add(PRIVACY_PRIVATE)
    return frozenset(levels)
