"""Structured, vector and typeahead search endpoints."""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from galleria.auth.dependencies import get_optional_principal
from galleria.database import get_db
from galleria.embeddings import EmbeddingProvider, get_embedding_provider
from galleria.exceptions import UpstreamError, ValidationError
from galleria.permissions import Principal
from galleria.ratelimit import limiter
from galleria.search.filters import SEARCH_MAX_LIMIT, SearchQuery
from galleria.search.query_builder import FilterQueryBuilder
from galleria.search.suggestions import SearchSuggestionEngine
from galleria.search.vector import VectorSearchEngine
from galleria.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/search", tags=["search"])


def get_embedding_provider_dependency() -> EmbeddingProvider:
    """Resolve the configured provider (sync so model loading runs off the event loop)."""
    try:
        return get_embedding_provider()
    except ValueError as exc:
        raise UpstreamError("Embedding provider is misconfigured.") from exc
    except Exception as exc:
        logger.exception("Failed to load embedding provider")
        raise UpstreamError("Embedding provider is unavailable.") from exc


async def _read_vector_request(request: Request) -> dict:
    """Accept either a JSON body or a (multipart) form with an `image` file."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError("Request body must be valid JSON.")
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        return {
            "type": body.get("type"),
            "query": body.get("query"),
            "limit": body.get("limit"),
            "image": None,
        }

    form = await request.form()
    image_data = None
    upload = form.get("image")
    if isinstance(upload, UploadFile):
        image_data = await upload.read()
    return {
        "type": form.get("type"),
        "query": form.get("query"),
        "limit": form.get("limit"),
        "image": image_data or None,
    }


@router.get("", response_model=dict, operation_id="search_images")
async def search_images(
    q: Optional[str] = None,
    tags: Optional[str] = None,
    category_id: Optional[str] = None,
    user_id: Optional[str] = None,
    album_id: Optional[str] = None,
    camera_make: Optional[str] = None,
    camera_model: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    license: Optional[str] = None,
    privacy: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Filtered search across image metadata, tags, albums and cameras."""
    query = SearchQuery.from_params(
        q=q,
        tags=tags,
        category_id=category_id,
        user_id=user_id,
        album_id=album_id,
        camera_make=camera_make,
        camera_model=camera_model,
        date_from=date_from,
        date_to=date_to,
        license=license,
        privacy=privacy,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
        max_limit=SEARCH_MAX_LIMIT,
    )
    result = FilterQueryBuilder(db, principal).search(query)
    return {
        "results": result.items,
        "pagination": result.pagination.to_dict(),
        "filters": result.filters,
    }


@router.post("/vector", response_model=dict, operation_id="vector_search")
@limiter.limit(settings.vector_search_rate_limit)
async def vector_search(
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    provider: EmbeddingProvider = Depends(get_embedding_provider_dependency),
    db: Session = Depends(get_db),
):
    """Similarity search by text query or uploaded image."""
    params = await _read_vector_request(request)
    engine = VectorSearchEngine(db, provider)
    result = await engine.search(
        params["type"],
        query_text=params["query"],
        image_data=params["image"],
        limit=params["limit"],
        principal=principal,
    )
    return result.to_dict()


@router.get("/suggestions", response_model=dict, operation_id="search_suggestions")
async def search_suggestions(
    q: Optional[str] = None,
    type: Optional[str] = None,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Typeahead suggestions for tags, users and camera models."""
    return SearchSuggestionEngine(db, principal).suggest(q, type)
