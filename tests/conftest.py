"""Test configuration and fixtures."""

import os

# The module-level engine in galleria.database is built at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import time
import uuid
from types import SimpleNamespace
from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from galleria.auth.models import UserProfile
from galleria.metadata import Album, Base, Image, Tag, TagCategory
from galleria.permissions import Principal


@pytest.fixture
def test_db():
    """Create test database.

    Embedding and matcher calls run in worker threads, so the in-memory
    database is shared through a single connection.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


def make_user(
    db: Session,
    username: str,
    *,
    role: str = "user",
    is_active: bool = True,
) -> UserProfile:
    user = UserProfile(
        supabase_uid=uuid.uuid4(),
        username=username,
        role=role,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def principal_for(user: UserProfile) -> Principal:
    return Principal.from_profile(user)


def make_image(
    db: Session,
    owner: UserProfile,
    *,
    privacy: str = "public",
    title: Optional[str] = None,
    tags: tuple = (),
    created_at: Optional[datetime] = None,
    embedding: Optional[list] = None,
    **fields,
) -> Image:
    image = Image(
        user_id=owner.supabase_uid,
        privacy=privacy,
        title=title,
        embedding=embedding,
        **fields,
    )
    if created_at is not None:
        image.created_at = created_at
        image.updated_at = created_at
    image.tags = list(tags)
    db.add(image)
    db.commit()
    db.refresh(image)
    return image


def make_tag(
    db: Session,
    display_name: str,
    *,
    category: Optional[TagCategory] = None,
    usage_count: int = 0,
) -> Tag:
    tag = Tag(
        name=display_name.strip().lower(),
        display_name=display_name,
        category_id=category.id if category is not None else None,
        usage_count=usage_count,
    )
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


def make_category(db: Session, name: str) -> TagCategory:
    category = TagCategory(name=name)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def make_album(db: Session, owner: UserProfile, *, privacy: str = "public", images: tuple = ()) -> Album:
    album = Album(user_id=owner.supabase_uid, title="Album", privacy=privacy)
    album.images = list(images)
    db.add(album)
    db.commit()
    db.refresh(album)
    return album


class FakeEmbeddingProvider:
    """Deterministic provider: exact text lookups, fixed image vector."""

    model_name = "fake-embedding"

    def __init__(self, vectors=None, *, supports_image: bool = True, image_vector=None, default=None):
        self.vectors = dict(vectors or {})
        self.supports_image = supports_image
        self.image_vector = image_vector or [1.0, 0.0, 0.0]
        self.default = default or [0.0, 0.0, 1.0]
        self.text_calls = []
        self.image_calls = 0

    def embed_text(self, text: str) -> list:
        self.text_calls.append(text)
        return list(self.vectors.get(text, self.default))

    def embed_image(self, image_data: bytes) -> list:
        self.image_calls += 1
        return list(self.image_vector)


class SlowEmbeddingProvider(FakeEmbeddingProvider):
    def __init__(self, delay: float = 0.5, **kwargs):
        super().__init__(**kwargs)
        self.delay = delay

    def embed_text(self, text: str) -> list:
        time.sleep(self.delay)
        return super().embed_text(text)


class BrokenEmbeddingProvider(FakeEmbeddingProvider):
    def embed_text(self, text: str) -> list:
        raise RuntimeError("model crashed")


@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider(
        vectors={
            "sunset": [1.0, 0.0, 0.0],
            "forest": [0.0, 1.0, 0.0],
        }
    )


@pytest.fixture
def api(test_db, fake_provider):
    """TestClient bound to the test session, the fake provider and an adjustable principal."""
    from fastapi.testclient import TestClient

    from galleria.api import app
    from galleria.auth.dependencies import get_optional_principal
    from galleria.database import get_db
    from galleria.ratelimit import limiter
    from galleria.routers.search import get_embedding_provider_dependency

    state = SimpleNamespace(principal=None, provider=fake_provider, client=None)

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_optional_principal] = lambda: state.principal
    app.dependency_overrides[get_embedding_provider_dependency] = lambda: state.provider
    limiter.enabled = False

    state.client = TestClient(app)
    try:
        yield state
    finally:
        app.dependency_overrides.clear()
        limiter.enabled = True
