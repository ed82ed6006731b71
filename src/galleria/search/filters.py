"""Search request parsing and filter clause construction.

A SearchQuery is turned into an immutable tuple of clauses by
`build_clauses`; lookups (tag names, categories, albums) are resolved there
so that a filter matching nothing short-circuits to `EMPTY_RESULT` instead
of being dropped. `compile_clauses` then turns the tuple into SQLAlchemy
expressions in a single pass. The privacy clause is always first.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session

from galleria.exceptions import ValidationError
from galleria.metadata import Album, Image, Tag, album_images, image_tags
from galleria.permissions import (
    Principal,
    can_view_album,
    normalize_privacy,
    visible_privacy_levels,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
SEARCH_MAX_LIMIT = 100
LIST_MAX_LIMIT = 50

DEFAULT_SORT_FIELD = "created_at"
SORT_FIELDS = {
    "created_at": Image.created_at,
    "updated_at": Image.updated_at,
    "title": Image.title,
    "views": Image.views,
}


def _parse_int(raw_value) -> Optional[int]:
    if raw_value is None:
        return None
    try:
        return int(str(raw_value).strip())
    except (TypeError, ValueError):
        return None


def clamp_page(raw_value) -> int:
    parsed = _parse_int(raw_value)
    return max(1, parsed) if parsed is not None else 1


def clamp_limit(raw_value, *, maximum: int, default: int = DEFAULT_PAGE_SIZE) -> int:
    parsed = _parse_int(raw_value)
    if parsed is None:
        parsed = default
    return min(maximum, max(1, parsed))


def normalize_sort_field(raw_value: Optional[str]) -> str:
    value = str(raw_value or "").strip().lower()
    # Unknown fields fall back to created_at rather than erroring.
    return value if value in SORT_FIELDS else DEFAULT_SORT_FIELD


def normalize_sort_order(raw_value: Optional[str]) -> str:
    return "asc" if str(raw_value or "").strip().lower() == "asc" else "desc"


def normalize_tag_name(raw_value: Optional[str]) -> str:
    return str(raw_value or "").strip().lower()


def split_tag_names(raw_value: Optional[str]) -> tuple[str, ...]:
    seen = set()
    names: list[str] = []
    for part in str(raw_value or "").split(","):
        name = normalize_tag_name(part)
        if not name or name in seen:
            continue
        seen.add(name)
        names.append(name)
    return tuple(names)


def _clean_text(raw_value: Optional[str]) -> Optional[str]:
    value = str(raw_value or "").strip()
    return value or None


def parse_id(raw_value, *, field_name: str) -> Optional[int]:
    if raw_value is None or str(raw_value).strip() == "":
        return None
    parsed = _parse_int(raw_value)
    if parsed is None:
        raise ValidationError(f"{field_name} must be an integer")
    return parsed


def parse_user_id(raw_value) -> Optional[uuid.UUID]:
    value = str(raw_value or "").strip()
    if not value:
        return None
    try:
        return uuid.UUID(value)
    except ValueError:
        raise ValidationError("user_id must be a valid UUID")


def parse_date_bound(raw_value, *, field_name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into an inclusive bound."""
    value = str(raw_value or "").strip()
    if not value:
        return None
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min)
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field_name} must be a date in YYYY-MM-DD format")
    # Timestamps are stored as naive UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


@dataclass(frozen=True)
class SearchQuery:
    """Sparse, request-scoped filter set plus sort and page window."""

    text: Optional[str] = None
    tags: tuple[str, ...] = ()
    category_id: Optional[int] = None
    user_id: Optional[uuid.UUID] = None
    album_id: Optional[int] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    license: Optional[str] = None
    privacy: Optional[str] = None
    sort_by: str = DEFAULT_SORT_FIELD
    sort_order: str = "desc"
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_params(
        cls,
        *,
        q: Optional[str] = None,
        tags: Optional[str] = None,
        category_id=None,
        user_id=None,
        album_id=None,
        camera_make: Optional[str] = None,
        camera_model: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        license: Optional[str] = None,
        privacy: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        page=None,
        limit=None,
        max_limit: int = SEARCH_MAX_LIMIT,
    ) -> "SearchQuery":
        return cls(
            text=_clean_text(q),
            tags=split_tag_names(tags),
            category_id=parse_id(category_id, field_name="category_id"),
            user_id=parse_user_id(user_id),
            album_id=parse_id(album_id, field_name="album_id"),
            camera_make=_clean_text(camera_make),
            camera_model=_clean_text(camera_model),
            date_from=parse_date_bound(date_from, field_name="date_from"),
            date_to=parse_date_bound(date_to, field_name="date_to", end_of_day=True),
            license=_clean_text(license),
            privacy=normalize_privacy(privacy),
            sort_by=normalize_sort_field(sort_by),
            sort_order=normalize_sort_order(sort_order),
            page=clamp_page(page),
            limit=clamp_limit(limit, maximum=max_limit),
        )

    def filters_echo(self) -> dict:
        return {
            "query": self.text,
            "tags": ",".join(self.tags) if self.tags else None,
            "category_id": self.category_id,
            "privacy": self.privacy,
            "user_id": str(self.user_id) if self.user_id else None,
            "album_id": self.album_id,
            "camera_make": self.camera_make,
            "camera_model": self.camera_model,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "license": self.license,
        }


# ---------------------------------------------------------------------------
# Clauses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PrivacyScope:
    """Row visibility for the principal: allowed levels OR own rows."""

    levels: Optional[frozenset[str]]
    owner_id: Optional[str] = None

    @classmethod
    def for_principal(cls, principal: Optional[Principal]) -> "PrivacyScope":
        return cls(
            levels=visible_privacy_levels(principal),
            owner_id=principal.id if principal is not None else None,
        )

    def compile(self):
        if self.levels is None:
            return None
        level_clause = Image.privacy.in_(sorted(self.levels))
        if self.owner_id is None:
            return level_clause
        return or_(level_clause, Image.user_id == uuid.UUID(str(self.owner_id)))


@dataclass(frozen=True)
class PrivacyEquals:
    value: str

    def compile(self):
        return Image.privacy == self.value


@dataclass(frozen=True)
class TextMatch:
    term: str

    def compile(self):
        pattern = _contains_pattern(self.term)
        return or_(
            Image.title.ilike(pattern, escape="\\"),
            Image.caption.ilike(pattern, escape="\\"),
            Image.alt_text.ilike(pattern, escape="\\"),
            Image.tags.any(or_(
                Tag.name.ilike(pattern, escape="\\"),
                Tag.display_name.ilike(pattern, escape="\\"),
            )),
        )


@dataclass(frozen=True)
class ImageIdsIn:
    image_ids: frozenset[int]
    source: str

    def compile(self):
        return Image.id.in_(sorted(self.image_ids))


@dataclass(frozen=True)
class OwnerEquals:
    user_id: uuid.UUID

    def compile(self):
        return Image.user_id == self.user_id


@dataclass(frozen=True)
class Contains:
    column: str
    term: str

    def compile(self):
        return getattr(Image, self.column).ilike(_contains_pattern(self.term), escape="\\")


@dataclass(frozen=True)
class CreatedBetween:
    start: Optional[datetime]
    end: Optional[datetime]

    def compile(self):
        if self.start is not None and self.end is not None:
            return Image.created_at.between(self.start, self.end)
        if self.start is not None:
            return Image.created_at >= self.start
        return Image.created_at <= self.end


@dataclass(frozen=True)
class LicenseEquals:
    value: str

    def compile(self):
        return Image.license == self.value


Clause = Union[
    PrivacyScope,
    PrivacyEquals,
    TextMatch,
    ImageIdsIn,
    OwnerEquals,
    Contains,
    CreatedBetween,
    LicenseEquals,
]


@dataclass(frozen=True)
class EmptyResult:
    """Marker: a filter resolved to zero candidates."""

    reason: str = field(default="")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def resolve_tag_image_ids(db: Session, tag_names: tuple[str, ...]) -> set[int]:
    """Images carrying every listed tag (intersection of per-tag image sets)."""
    tag_rows = db.query(Tag.id, Tag.name).filter(Tag.name.in_(tag_names)).all()
    if len(tag_rows) < len(tag_names):
        return set()

    tag_ids = [row.id for row in tag_rows]
    images_by_tag: dict[int, set[int]] = {tag_id: set() for tag_id in tag_ids}
    rows = db.query(image_tags.c.tag_id, image_tags.c.image_id).filter(
        image_tags.c.tag_id.in_(tag_ids)
    ).all()
    for tag_id, image_id in rows:
        images_by_tag[tag_id].add(int(image_id))

    result: Optional[set[int]] = None
    for image_ids in images_by_tag.values():
        result = set(image_ids) if result is None else result & image_ids
        if not result:
            return set()
    return result or set()


def resolve_category_image_ids(db: Session, category_id: int) -> set[int]:
    tag_ids = [row.id for row in db.query(Tag.id).filter(Tag.category_id == category_id).all()]
    if not tag_ids:
        return set()
    rows = db.query(image_tags.c.image_id).filter(image_tags.c.tag_id.in_(tag_ids)).distinct().all()
    return {int(row.image_id) for row in rows}


def resolve_album_image_ids(db: Session, album_id: int, principal: Optional[Principal]) -> set[int]:
    album = db.query(Album).filter(Album.id == album_id).first()
    if not can_view_album(principal, album):
        return set()
    rows = db.query(album_images.c.image_id).filter(album_images.c.album_id == album_id).all()
    return {int(row.image_id) for row in rows}


def build_clauses(
    db: Session,
    query: SearchQuery,
    principal: Optional[Principal],
) -> Union[tuple[Clause, ...], EmptyResult]:
    """Resolve a SearchQuery into clauses, privacy first."""
    clauses: list[Clause] = [PrivacyScope.for_principal(principal)]

    if query.privacy:
        clauses.append(PrivacyEquals(query.privacy))

    if query.text:
        clauses.append(TextMatch(query.text))

    if query.tags:
        tag_image_ids = resolve_tag_image_ids(db, query.tags)
        if not tag_image_ids:
            logger.debug("Tag filter %s matched no images", query.tags)
            return EmptyResult("tags")
        clauses.append(ImageIdsIn(frozenset(tag_image_ids), source="tags"))

    if query.category_id is not None:
        category_image_ids = resolve_category_image_ids(db, query.category_id)
        if not category_image_ids:
            logger.debug("Category %s matched no images", query.category_id)
            return EmptyResult("category_id")
        clauses.append(ImageIdsIn(frozenset(category_image_ids), source="category_id"))

    if query.user_id is not None:
        clauses.append(OwnerEquals(query.user_id))

    if query.album_id is not None:
        album_image_ids = resolve_album_image_ids(db, query.album_id, principal)
        if not album_image_ids:
            logger.debug("Album %s matched no visible images", query.album_id)
            return EmptyResult("album_id")
        clauses.append(ImageIdsIn(frozenset(album_image_ids), source="album_id"))

    if query.camera_make:
        clauses.append(Contains("camera_make", query.camera_make))
    if query.camera_model:
        clauses.append(Contains("camera_model", query.camera_model))

    if query.date_from is not None or query.date_to is not None:
        clauses.append(CreatedBetween(query.date_from, query.date_to))

    if query.license:
        clauses.append(LicenseEquals(query.license))

    return tuple(clauses)


def compile_clauses(clauses: tuple[Clause, ...]) -> list:
    compiled = []
    for clause in clauses:
        expression = clause.compile()
        if expression is not None:
            compiled.append(expression)
    return compiled
