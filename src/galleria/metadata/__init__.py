"""Gallery storage models."""

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import JSON, TypeDecorator

PRIVACY_PUBLIC = "public"
PRIVACY_UNLISTED = "unlisted"
PRIVACY_PRIVATE = "private"
PRIVACY_LEVELS = (PRIVACY_PUBLIC, PRIVACY_UNLISTED, PRIVACY_PRIVATE)

_PRIVACY_CHECK_SQL = "privacy IN ('public', 'unlisted', 'private')"


class EmbeddingVector(TypeDecorator):
    """Float vector stored as float8[] on Postgres and JSON elsewhere.

    The pgvector `embedding_vec` column is derived from this one by a trigger
    (see alembic migrations); the ORM only ever writes the array.
    """

    impl = JSON(none_as_null=True)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(ARRAY(Float))
        return dialect.type_descriptor(JSON(none_as_null=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return [float(v) for v in value]

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return [float(v) for v in value]


Base = declarative_base()


image_tags = Table(
    "image_tags",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("image_id", Integer, ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", DateTime, default=datetime.utcnow),
    UniqueConstraint("image_id", "tag_id", name="uq_image_tags_image_tag"),
    Index("idx_image_tags_tag_image", "tag_id", "image_id"),
)

album_images = Table(
    "album_images",
    Base.metadata,
    Column("id", Integer, primary_key=True),
    Column("album_id", Integer, ForeignKey("albums.id", ondelete="CASCADE"), nullable=False),
    Column("image_id", Integer, ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
    Column("added_at", DateTime, default=datetime.utcnow),
    UniqueConstraint("album_id", "image_id", name="uq_album_images_album_image"),
    Index("idx_album_images_album", "album_id"),
)


class TagCategory(Base):
    """Groups tags (e.g. 'Subject', 'Style')."""

    __tablename__ = "tag_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)
    color = Column(String(32))
    icon = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)

    tags = relationship("Tag", back_populates="category")


class Tag(Base):
    """Tag with a case-normalized unique name and its original display casing."""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False, unique=True)  # lower-cased, trimmed
    display_name = Column(String(255), nullable=False)
    color = Column(String(32))
    category_id = Column(Integer, ForeignKey("tag_categories.id", ondelete="SET NULL"), nullable=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_by = Column(UUID(as_uuid=True), ForeignKey("user_profiles.supabase_uid", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("TagCategory", back_populates="tags")
    images = relationship("Image", secondary=image_tags, back_populates="tags")


class Image(Base):
    """Stored gallery image and its searchable metadata."""

    __tablename__ = "images"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.supabase_uid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    privacy = Column(String(16), nullable=False, default=PRIVACY_PRIVATE)

    title = Column(String(512))
    caption = Column(Text)
    alt_text = Column(Text)
    license = Column(String(128))
    attribution = Column(String(512))

    # EXIF summary (extracted on upload)
    camera_make = Column(String(255))
    camera_model = Column(String(255))
    exif_data = Column(JSON)
    date_taken = Column(DateTime)

    # Storage
    image_url = Column(String(1024))
    thumbnail_url = Column(String(1024))
    width = Column(Integer)
    height = Column(Integer)

    views = Column(Integer, nullable=False, default=0)

    # Similarity search (nullable until computed)
    embedding = Column(EmbeddingVector, nullable=True)
    embedding_model = Column(String(255))
    embedding_updated_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("UserProfile", foreign_keys=[user_id])
    tags = relationship("Tag", secondary=image_tags, back_populates="images", order_by="Tag.name")

    __table_args__ = (
        CheckConstraint(_PRIVACY_CHECK_SQL, name="ck_images_privacy"),
        Index("idx_images_privacy_created", "privacy", "created_at"),
        Index("idx_images_user_created", "user_id", "created_at"),
        Index("idx_images_camera", "camera_make", "camera_model"),
    )


class Album(Base):
    """User album; only consumed here as a search filter dimension."""

    __tablename__ = "albums"

    id = Column(Integer, primary_key=True)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_profiles.supabase_uid", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    description = Column(Text)
    privacy = Column(String(16), nullable=False, default=PRIVACY_PRIVATE)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    images = relationship("Image", secondary=album_images)

    __table_args__ = (
        CheckConstraint(_PRIVACY_CHECK_SQL, name="ck_albums_privacy"),
    )


# Register UserProfile on the shared Base so string relationships resolve.
import galleria.auth.models  # noqa: E402,F401
