"""SQLAlchemy models for Supabase authentication."""

from datetime import datetime
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.dialects.postgresql import UUID

from galleria.metadata import Base


class UserProfile(Base):
    """User profile synced from Supabase auth.users.

    Each user in Supabase Auth has a corresponding UserProfile record
    carrying the gallery role used for permission checks.

    Attributes:
        supabase_uid: UUID primary key from auth.users.id
        username: Public handle (unique)
        avatar_url: Profile photo URL (optional)
        role: Gallery role ('admin', 'editor', 'user'; 'visitor' is an alias of 'user')
        is_active: Whether the account is enabled
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "user_profiles"

    supabase_uid = Column(UUID(as_uuid=True), primary_key=True)
    username = Column(String(255), nullable=False, unique=True)
    avatar_url = Column(String)
    role = Column(String(50), nullable=False, default="user")
    is_active = Column(Boolean, default=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<UserProfile(uid={self.supabase_uid}, username={self.username}, role={self.role})>"
