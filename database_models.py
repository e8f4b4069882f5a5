import uuid
from datetime import datetime

from sqlalchemy import Column, String, Text, DateTime, ForeignKey

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    Account record. Subscription fields are read by the gating filters and
    written by the Stripe webhook handlers and the lazy expiry downgrade.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    username = Column(String(100), unique=True, nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    subscription_tier = Column(String(20), nullable=False, default="free")
    subscription_status = Column(String(20), nullable=False, default="active")
    subscription_expires_at = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)
    last_login_at = Column(DateTime, nullable=True)


class Project(Base):
    """Coloring-book project owned by a user."""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="draft")  # draft, published, archived
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)


class Story(Base):
    __tablename__ = "stories"

    id = Column(String(36), primary_key=True, default=_uuid)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)


class Image(Base):
    __tablename__ = "images"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=True)
    filename = Column(String(255), nullable=False)
    prompt = Column(Text, nullable=True)
    image_type = Column(String(50), nullable=True)  # story, cover, drawing, template
    created_at = Column(DateTime, default=datetime.now, nullable=False)


class Export(Base):
    __tablename__ = "exports"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    export_type = Column(String(50), nullable=False)  # pdf, epub, png
    status = Column(String(20), nullable=False, default="pending")  # pending, completed, failed
    created_at = Column(DateTime, default=datetime.now, nullable=False)
