"""AI provider (vendor) definition."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from zhanwen_admin.db.database import Base


def provider_slug(name: str) -> str:
    """Normalize a display name into a provider slug ("My Vendor" -> "my-vendor")."""
    return "-".join(name.strip().lower().split())


class Provider(Base):
    """A third-party AI vendor exposing a completions-style API."""

    __tablename__ = "providers"

    provider_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)  # deepseek, openai, ...
    display_name = Column(String(100), nullable=False)
    base_url = Column(String(500), nullable=False)
    supported_models = Column(JSON, nullable=False, default=list)
    rate_limit_rpm = Column(Integer)
    rate_limit_tpm = Column(Integer)
    # Shared ciphertext inherited by models created without their own key
    encrypted_credential = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    models = relationship("ModelConfig", back_populates="provider")
