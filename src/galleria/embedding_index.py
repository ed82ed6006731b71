"""Per-image embedding index helpers.

Each image is embedded from a text document built from its title, caption,
alt text and tag names. Images without any text are skipped and keep a null
embedding, which keeps them out of vector search.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session, selectinload

from galleria.embeddings import EmbeddingProvider
from galleria.metadata import Image

logger = logging.getLogger(__name__)


def _now_utc_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _dedupe_non_empty(values: Iterable[Optional[str]]) -> list[str]:
    seen = set()
    out: list[str] = []
    for value in values:
        text = str(value or "").strip()
        if not text:
            continue
        key = text.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(text)
    return out


def build_image_text_document(image: Image) -> str:
    parts = _dedupe_non_empty([
        image.title,
        image.caption,
        image.alt_text,
        *[tag.display_name or tag.name for tag in image.tags],
    ])
    return ". ".join(parts)


def refresh_image_embedding(db: Session, image: Image, provider: EmbeddingProvider) -> bool:
    """Recompute one image's embedding in place. Returns False when there is no text."""
    document = build_image_text_document(image)
    if not document:
        return False
    image.embedding = provider.embed_text(document)
    image.embedding_model = provider.model_name
    image.embedding_updated_at = _now_utc_naive()
    db.add(image)
    return True


def rebuild_image_embeddings(
    db: Session,
    provider: EmbeddingProvider,
    *,
    image_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    refresh: bool = False,
) -> dict:
    safe_offset = max(0, int(offset or 0))
    safe_limit = None if limit is None else max(1, int(limit))
    refresh_mode = bool(refresh)

    query = db.query(Image.id)
    if image_id is not None:
        query = query.filter(Image.id == int(image_id))
    elif not refresh_mode:
        query = query.filter(Image.embedding.is_(None))
    query = query.order_by(Image.id.asc()).offset(safe_offset)
    if safe_limit is not None:
        query = query.limit(safe_limit)
    image_ids = [row.id for row in query.all()]

    processed = 0
    skipped = 0
    failed = 0
    errors: list[str] = []
    for row_image_id in image_ids:
        try:
            image = (
                db.query(Image)
                .options(selectinload(Image.tags))
                .filter(Image.id == row_image_id)
                .one()
            )
            if refresh_image_embedding(db, image, provider):
                db.commit()
                processed += 1
            else:
                skipped += 1
        except Exception as exc:  # noqa: BLE001
            db.rollback()
            failed += 1
            errors.append(f"{row_image_id}: {exc}")
            logger.warning("Embedding failed for image %s: %s", row_image_id, exc)

    return {
        "processed": processed,
        "skipped": skipped,
        "failed": failed,
        "offset": safe_offset,
        "limit": safe_limit,
        "refresh": refresh_mode,
        "model": provider.model_name,
        "errors": errors,
    }
