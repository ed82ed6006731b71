"""Loading and serializing image rows with owner and tag details."""

from typing import Iterable, Optional

from sqlalchemy.orm import Session, selectinload

from galleria.metadata import Image, Tag


def image_load_options():
    return (
        selectinload(Image.owner),
        selectinload(Image.tags).selectinload(Tag.category),
    )


def load_images_by_id(db: Session, image_ids: Iterable[int]) -> dict[int, Image]:
    """Fetch images in one query, keyed by id. Missing ids are simply absent."""
    ids = sorted({int(image_id) for image_id in image_ids})
    if not ids:
        return {}
    rows = db.query(Image).options(*image_load_options()).filter(Image.id.in_(ids)).all()
    return {row.id: row for row in rows}


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_owner(profile) -> Optional[dict]:
    if profile is None:
        return None
    return {
        "id": str(profile.supabase_uid),
        "username": profile.username,
        "avatar_url": profile.avatar_url,
    }


def serialize_tag(tag: Tag) -> dict:
    category = tag.category
    return {
        "id": tag.id,
        "name": tag.name,
        "display_name": tag.display_name,
        "color": tag.color,
        "category": {
            "id": category.id,
            "name": category.name,
            "color": category.color,
            "icon": category.icon,
        } if category is not None else None,
    }


def serialize_image(image: Image, *, include_exif: bool = False) -> dict:
    payload = {
        "id": image.id,
        "user_id": str(image.user_id) if image.user_id is not None else None,
        "privacy": image.privacy,
        "title": image.title,
        "caption": image.caption,
        "alt_text": image.alt_text,
        "license": image.license,
        "attribution": image.attribution,
        "camera_make": image.camera_make,
        "camera_model": image.camera_model,
        "date_taken": _isoformat(image.date_taken),
        "image_url": image.image_url,
        "thumbnail_url": image.thumbnail_url,
        "width": image.width,
        "height": image.height,
        "views": int(image.views or 0),
        "has_embedding": image.embedding is not None,
        "created_at": _isoformat(image.created_at),
        "updated_at": _isoformat(image.updated_at),
        "owner": serialize_owner(image.owner),
        "tags": [serialize_tag(tag) for tag in image.tags],
    }
    if include_exif:
        payload["exif_data"] = image.exif_data
    return payload
