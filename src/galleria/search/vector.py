"""Similarity search over image embeddings.

Pipeline: embed the query (text or image bytes), ask a matcher for up to
`limit` candidate ids above the similarity threshold, hydrate the candidates
in one batch and drop anything the principal cannot view. Dropped candidates
are not backfilled, so a page can come back shorter than `limit`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from contextlib import contextmanager
from typing import Callable, Optional, Protocol

import numpy as np
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from galleria.embeddings import EmbeddingProvider
from galleria.exceptions import (
    GalleryError,
    UnsupportedOperationError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from galleria.metadata import Image
from galleria.permissions import Principal, can_view
from galleria.search.hydration import load_images_by_id, serialize_image
from galleria.search.results import ScoredImage, VectorSearchResult
from galleria.settings import settings

logger = logging.getLogger(__name__)

SEARCH_TYPE_TEXT = "text"
SEARCH_TYPE_IMAGE = "image"
SEARCH_TYPES = (SEARCH_TYPE_TEXT, SEARCH_TYPE_IMAGE)

VECTOR_DEFAULT_LIMIT = 12
VECTOR_MAX_LIMIT = 50
IMAGE_QUERY_ECHO = "image_upload"

_pgvector_capability_cache: dict[str, bool] = {}


def clamp_vector_limit(raw_value) -> int:
    try:
        parsed = int(raw_value) if raw_value is not None else VECTOR_DEFAULT_LIMIT
    except (TypeError, ValueError):
        parsed = VECTOR_DEFAULT_LIMIT
    return min(VECTOR_MAX_LIMIT, max(1, parsed))


def normalize_search_type(raw_value: Optional[str]) -> str:
    value = str(raw_value or "").strip().lower()
    if value not in SEARCH_TYPES:
        raise ValidationError(
            "Invalid search type specified.",
            context={"allowed": list(SEARCH_TYPES)},
        )
    return value


async def run_blocking(func: Callable, *args, timeout: float, operation: str):
    """Run a blocking call in the default executor under a deadline."""
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, functools.partial(func, *args)),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out after %.1fs", operation, timeout)
        raise UpstreamTimeoutError(f"{operation} timed out.") from exc
    except GalleryError:
        raise
    except Exception as exc:
        raise UpstreamError(f"{operation} failed.") from exc


def _to_pgvector_literal(values) -> str:
    return "[" + ",".join(f"{float(value):.10g}" for value in values) + "]"


def _pgvector_cache_key(db: Session) -> str:
    return str(db.get_bind().engine.url)


def is_pgvector_ready(db: Session) -> bool:
    """True when the vector extension and images.embedding_vec both exist."""
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return False

    cache_key = _pgvector_cache_key(db)
    cached = _pgvector_capability_cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        row = db.execute(
            text(
                """
                SELECT
                    EXISTS (SELECT 1 FROM pg_extension WHERE extname = 'vector') AS has_extension,
                    EXISTS (
                        SELECT 1
                        FROM information_schema.columns
                        WHERE table_schema = 'public'
                          AND table_name = 'images'
                          AND column_name = 'embedding_vec'
                    ) AS has_embedding_vec
                """
            )
        ).mappings().first()
        can_use = bool(row and row["has_extension"] and row["has_embedding_vec"])
    except SQLAlchemyError:
        db.rollback()
        can_use = False
    _pgvector_capability_cache[cache_key] = can_use
    return can_use


@contextmanager
def matcher_session(bind):
    """Session owned by the worker thread running one matcher call.

    Never shared with the request session, which may be closed while a
    timed-out matcher is still running.
    """
    session = Session(bind=bind)
    try:
        yield session
    finally:
        session.close()


class VectorMatcher(Protocol):
    def match(self, query_vector: list[float], threshold: float, count: int) -> list[tuple[int, float]]:
        """Return up to `count` (image_id, similarity) pairs, best first."""


class PgVectorMatcher:
    """Index-backed cosine KNN on images.embedding_vec."""

    def __init__(self, bind):
        self.bind = bind

    def match(self, query_vector, threshold, count):
        with matcher_session(self.bind) as session:
            rows = session.execute(
                text(
                    """
                    SELECT id, similarity
                    FROM (
                        SELECT
                            i.id,
                            1 - (i.embedding_vec <=> CAST(:query_vec AS vector)) AS similarity
                        FROM images i
                        WHERE i.embedding_vec IS NOT NULL
                        ORDER BY i.embedding_vec <=> CAST(:query_vec AS vector), i.id
                        LIMIT :candidate_limit
                    ) candidates
                    WHERE similarity >= :threshold
                    ORDER BY similarity DESC, id ASC
                    LIMIT :match_count
                    """
                ),
                {
                    "query_vec": _to_pgvector_literal(query_vector),
                    "threshold": float(threshold),
                    # HNSW returns approximate neighbours; over-fetch before thresholding.
                    "candidate_limit": max(int(count) * 4, 100),
                    "match_count": int(count),
                },
            ).all()
        return [(int(row.id), float(row.similarity)) for row in rows]


class ExactCosineMatcher:
    """Brute-force cosine scan over the stored float arrays."""

    def __init__(self, bind):
        self.bind = bind

    def match(self, query_vector, threshold, count):
        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        query_norm = float(np.linalg.norm(query))
        if query.size == 0 or query_norm <= 1e-12:
            return []
        query = query / query_norm

        with matcher_session(self.bind) as session:
            rows = session.query(Image.id, Image.embedding).filter(Image.embedding.isnot(None)).all()
        ids: list[int] = []
        vectors: list[np.ndarray] = []
        skipped = 0
        for image_id, embedding in rows:
            vector = np.asarray(embedding or [], dtype=np.float32).reshape(-1)
            if vector.shape != query.shape:
                skipped += 1
                continue
            ids.append(int(image_id))
            vectors.append(vector)
        if skipped:
            logger.debug("Skipped %s embeddings with mismatched dimensions", skipped)
        if not vectors:
            return []

        matrix = np.vstack(vectors)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms <= 1e-12] = 1.0
        scores = (matrix @ query) / norms

        matches = [
            (image_id, float(score))
            for image_id, score in zip(ids, scores.tolist())
            if score >= threshold
        ]
        matches.sort(key=lambda item: (-item[1], item[0]))
        return matches[:count]


def get_vector_matcher(db: Session) -> VectorMatcher:
    if is_pgvector_ready(db):
        return PgVectorMatcher(db.get_bind())
    return ExactCosineMatcher(db.get_bind())


class VectorSearchEngine:
    """Embedding-based image search restricted to what the principal may view."""

    def __init__(
        self,
        db: Session,
        provider: EmbeddingProvider,
        matcher: Optional[VectorMatcher] = None,
        *,
        threshold: Optional[float] = None,
        embedding_timeout: Optional[float] = None,
        match_timeout: Optional[float] = None,
    ):
        self.db = db
        self.provider = provider
        self.matcher = matcher if matcher is not None else get_vector_matcher(db)
        self.threshold = settings.vector_match_threshold if threshold is None else float(threshold)
        self.embedding_timeout = (
            settings.embedding_timeout_seconds if embedding_timeout is None else float(embedding_timeout)
        )
        self.match_timeout = (
            settings.vector_match_timeout_seconds if match_timeout is None else float(match_timeout)
        )

    async def search(
        self,
        search_type: Optional[str],
        *,
        query_text: Optional[str] = None,
        image_data: Optional[bytes] = None,
        limit=None,
        principal: Optional[Principal] = None,
    ) -> VectorSearchResult:
        search_type = normalize_search_type(search_type)
        limit = clamp_vector_limit(limit)

        if search_type == SEARCH_TYPE_TEXT:
            query_text = str(query_text or "").strip()
            if not query_text:
                raise ValidationError("Text query is missing.")
            query_echo = query_text
            query_vector = await run_blocking(
                self.provider.embed_text, query_text,
                timeout=self.embedding_timeout, operation="Text embedding",
            )
        else:
            if not image_data:
                raise ValidationError("Image file is missing.")
            if not getattr(self.provider, "supports_image", False):
                raise UnsupportedOperationError(
                    "Image search is not supported by the configured embedding provider.",
                    context={"provider": getattr(self.provider, "model_name", None)},
                )
            query_echo = IMAGE_QUERY_ECHO
            query_vector = await run_blocking(
                self.provider.embed_image, image_data,
                timeout=self.embedding_timeout, operation="Image embedding",
            )

        matches = await run_blocking(
            self.matcher.match, query_vector, self.threshold, limit,
            timeout=self.match_timeout, operation="Similarity match",
        )
        items = self._hydrate(matches, principal)
        logger.info(
            "Vector %s search: %s candidates, %s visible (limit=%s)",
            search_type, len(matches), len(items), limit,
        )
        return VectorSearchResult(items=items, search_type=search_type, query=query_echo)

    def _hydrate(self, matches: list[tuple[int, float]], principal: Optional[Principal]) -> list[ScoredImage]:
        if not matches:
            return []
        try:
            images_by_id = load_images_by_id(self.db, [image_id for image_id, _ in matches])
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError("Failed to load matched images.") from exc

        items: list[ScoredImage] = []
        for image_id, similarity in matches:
            image = images_by_id.get(image_id)
            # Deleted since the match, or not visible to this principal.
            if image is None or not can_view(principal, image):
                continue
            items.append(ScoredImage(image=serialize_image(image), similarity=round(similarity, 4)))
        if len(items) < len(matches):
            logger.debug("Pruned %s of %s vector candidates", len(matches) - len(items), len(matches))
        return items
