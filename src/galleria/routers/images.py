"""Image listing and single-image endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from galleria.auth.dependencies import get_optional_principal
from galleria.database import get_db
from galleria.exceptions import AuthorizationError, NotFoundError, UpstreamError
from galleria.metadata import PRIVACY_UNLISTED, Image
from galleria.permissions import Principal, can_delete, can_modify, can_view, is_owner
from galleria.search.filters import LIST_MAX_LIMIT, SearchQuery
from galleria.search.hydration import image_load_options, serialize_image
from galleria.search.query_builder import FilterQueryBuilder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["images"])


def record_view(db: Session, image: Image, principal: Optional[Principal]) -> bool:
    """Increment the view counter unless the viewer owns the image."""
    if is_owner(principal, image):
        return False
    try:
        db.query(Image).filter(Image.id == image.id).update(
            {Image.views: Image.views + 1, Image.updated_at: Image.updated_at},
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to record view for image %s: %s", image.id, exc)
        return False
    db.refresh(image)
    return True


@router.get("/images", response_model=dict, operation_id="list_images")
async def list_images(
    privacy: Optional[str] = None,
    user_id: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """List images visible to the caller, newest first by default."""
    query = SearchQuery.from_params(
        privacy=privacy,
        user_id=user_id,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        max_limit=LIST_MAX_LIMIT,
    )
    result = FilterQueryBuilder(db, principal).search(query)
    return {
        "images": result.items,
        "pagination": result.pagination.to_dict(),
    }


@router.get("/images/{image_id}", response_model=dict, operation_id="get_image")
async def get_image(
    image_id: int,
    principal: Optional[Principal] = Depends(get_optional_principal),
    db: Session = Depends(get_db),
):
    """Fetch one image. 404 when it does not exist, 403 when it is not visible."""
    try:
        image = db.query(Image).options(*image_load_options()).filter(Image.id == image_id).first()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamError("Failed to load image.") from exc

    if image is None:
        raise NotFoundError("Image not found")

    if not can_view(principal, image):
        required = "view_unlisted_images" if image.privacy == PRIVACY_UNLISTED else "view_private_images"
        raise AuthorizationError(
            "You do not have permission to view this image",
            context={"required": required},
        )

    record_view(db, image, principal)

    payload = serialize_image(image, include_exif=True)
    payload["permissions"] = {
        "can_modify": can_modify(principal, image),
        "can_delete": can_delete(principal, image),
    }
    return payload
