"""Typeahead suggestions for the search box."""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from galleria.auth.models import UserProfile
from galleria.exceptions import UpstreamError, ValidationError
from galleria.metadata import Image, Tag
from galleria.permissions import Principal
from galleria.search.filters import PrivacyScope, escape_like

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
TAG_LIMIT = 10
USER_LIMIT = 5
CAMERA_LIMIT = 5
TOTAL_LIMIT = 15

SUGGESTION_TYPES = ("tags", "users", "cameras")


class SearchSuggestionEngine:
    """Merges tag, user and camera matches: tags first, then users, then cameras."""

    def __init__(self, db: Session, principal: Optional[Principal] = None):
        self.db = db
        self.principal = principal

    def suggest(self, q: Optional[str], suggestion_type: Optional[str] = None) -> dict:
        term = str(q or "").strip()
        if len(term) < MIN_QUERY_LENGTH:
            raise ValidationError(
                f"Query must be at least {MIN_QUERY_LENGTH} characters long.",
                context={"min_length": MIN_QUERY_LENGTH},
            )

        kind = str(suggestion_type or "").strip().lower() or None
        if kind is not None and kind not in SUGGESTION_TYPES:
            raise ValidationError(
                "Invalid suggestion type.",
                context={"allowed": list(SUGGESTION_TYPES)},
            )

        pattern = f"%{escape_like(term)}%"
        suggestions: list[dict] = []
        try:
            if kind in (None, "tags"):
                suggestions.extend(self.tag_suggestions(pattern))
            if kind in (None, "users"):
                suggestions.extend(self.user_suggestions(pattern))
            if kind in (None, "cameras"):
                suggestions.extend(self.camera_suggestions(pattern))
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to load suggestions.") from exc

        return {"query": q, "suggestions": suggestions[:TOTAL_LIMIT]}

    def tag_suggestions(self, pattern: str) -> list[dict]:
        rows = (
            self.db.query(Tag)
            .filter(or_(
                Tag.display_name.ilike(pattern, escape="\\"),
                Tag.name.ilike(pattern, escape="\\"),
            ))
            .order_by(Tag.usage_count.desc(), Tag.name.asc())
            .limit(TAG_LIMIT)
            .all()
        )
        return [
            {
                "type": "tag",
                "value": tag.name,
                "display": tag.display_name,
                "count": int(tag.usage_count or 0),
            }
            for tag in rows
        ]

    def user_suggestions(self, pattern: str) -> list[dict]:
        rows = (
            self.db.query(UserProfile)
            .filter(
                UserProfile.is_active.is_(True),
                UserProfile.username.ilike(pattern, escape="\\"),
            )
            .order_by(UserProfile.username.asc())
            .limit(USER_LIMIT)
            .all()
        )
        return [
            {
                "type": "user",
                "value": str(profile.supabase_uid),
                "display": profile.username,
                "avatar": profile.avatar_url,
            }
            for profile in rows
        ]

    def camera_suggestions(self, pattern: str) -> list[dict]:
        query = self.db.query(Image.camera_make, Image.camera_model).filter(
            Image.camera_make.isnot(None),
            Image.camera_model.isnot(None),
            or_(
                Image.camera_make.ilike(pattern, escape="\\"),
                Image.camera_model.ilike(pattern, escape="\\"),
            ),
        )
        privacy_clause = PrivacyScope.for_principal(self.principal).compile()
        if privacy_clause is not None:
            query = query.filter(privacy_clause)
        rows = (
            query.distinct()
            .order_by(Image.camera_make.asc(), Image.camera_model.asc())
            .limit(CAMERA_LIMIT * 4)
            .all()
        )

        seen = set()
        suggestions = []
        for make, model in rows:
            label = f"{make} {model}"
            if label in seen:
                continue
            seen.add(label)
            suggestions.append({
                "type": "camera",
                "value": label,
                "display": label,
            })
            if len(suggestions) >= CAMERA_LIMIT:
                break
        return suggestions
