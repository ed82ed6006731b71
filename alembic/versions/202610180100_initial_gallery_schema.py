"""Initial gallery schema: profiles, images, tags, categories, albums.

Revision ID: 202610180100
Revises:
Create Date: 2026-10-18 01:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "202610180100"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PRIVACY_CHECK = "privacy IN ('public', 'unlisted', 'private')"


def upgrade() -> None:
    op.create_table(
        "user_profiles",
        sa.Column("supabase_uid", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("username", sa.String(length=255), nullable=False, unique=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "tag_categories",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column("icon", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("color", sa.String(length=32), nullable=True),
        sa.Column(
            "category_id",
            sa.Integer,
            sa.ForeignKey("tag_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("usage_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("user_profiles.supabase_uid", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_tags_category_id", "tags", ["category_id"])

    op.create_table(
        "images",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("user_profiles.supabase_uid", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("privacy", sa.String(length=16), nullable=False, server_default="private"),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("caption", sa.Text, nullable=True),
        sa.Column("alt_text", sa.Text, nullable=True),
        sa.Column("license", sa.String(length=128), nullable=True),
        sa.Column("attribution", sa.String(length=512), nullable=True),
        sa.Column("camera_make", sa.String(length=255), nullable=True),
        sa.Column("camera_model", sa.String(length=255), nullable=True),
        sa.Column("exif_data", sa.JSON, nullable=True),
        sa.Column("date_taken", sa.DateTime, nullable=True),
        sa.Column("image_url", sa.String(length=1024), nullable=True),
        sa.Column("thumbnail_url", sa.String(length=1024), nullable=True),
        sa.Column("width", sa.Integer, nullable=True),
        sa.Column("height", sa.Integer, nullable=True),
        sa.Column("views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("embedding", postgresql.ARRAY(sa.Float), nullable=True),
        sa.Column("embedding_model", sa.String(length=255), nullable=True),
        sa.Column("embedding_updated_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(PRIVACY_CHECK, name="ck_images_privacy"),
    )
    op.create_index("ix_images_user_id", "images", ["user_id"])
    op.create_index("idx_images_privacy_created", "images", ["privacy", "created_at"])
    op.create_index("idx_images_user_created", "images", ["user_id", "created_at"])
    op.create_index("idx_images_camera", "images", ["camera_make", "camera_model"])

    op.create_table(
        "image_tags",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("image_id", sa.Integer, sa.ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_id", sa.Integer, sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("image_id", "tag_id", name="uq_image_tags_image_tag"),
    )
    op.create_index("idx_image_tags_tag_image", "image_tags", ["tag_id", "image_id"])

    op.create_table(
        "albums",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("user_profiles.supabase_uid", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("privacy", sa.String(length=16), nullable=False, server_default="private"),
        sa.Column("created_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint(PRIVACY_CHECK, name="ck_albums_privacy"),
    )
    op.create_index("ix_albums_user_id", "albums", ["user_id"])

    op.create_table(
        "album_images",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("album_id", sa.Integer, sa.ForeignKey("albums.id", ondelete="CASCADE"), nullable=False),
        sa.Column("image_id", sa.Integer, sa.ForeignKey("images.id", ondelete="CASCADE"), nullable=False),
        sa.Column("added_at", sa.DateTime, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("album_id", "image_id", name="uq_album_images_album_image"),
    )
    op.create_index("idx_album_images_album", "album_images", ["album_id"])


def downgrade() -> None:
    op.drop_index("idx_album_images_album", table_name="album_images")
    op.drop_table("album_images")
    op.drop_index("ix_albums_user_id", table_name="albums")
    op.drop_table("albums")
    op.drop_index("idx_image_tags_tag_image", table_name="image_tags")
    op.drop_table("image_tags")
    op.drop_index("idx_images_camera", table_name="images")
    op.drop_index("idx_images_user_created", table_name="images")
    op.drop_index("idx_images_privacy_created", table_name="images")
    op.drop_index("ix_images_user_id", table_name="images")
    op.drop_table("images")
    op.drop_index("ix_tags_category_id", table_name="tags")
    op.drop_table("tags")
    op.drop_table("tag_categories")
    op.drop_table("user_profiles")
