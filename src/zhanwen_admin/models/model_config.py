"""Configured, callable model definition."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from zhanwen_admin.db.database import Base

ROLE_PRIMARY = "primary"
ROLE_SECONDARY = "secondary"
ROLE_DISABLED = "disabled"
MODEL_ROLES = (ROLE_PRIMARY, ROLE_SECONDARY, ROLE_DISABLED)

MODEL_TYPES = ("chat", "completion", "embedding")

DEFAULT_PARAMETERS = {
    "temperature": 0.7,
    "max_tokens": 3000,
    "top_p": 1.0,
    "frequency_penalty": 0.0,
    "presence_penalty": 0.0,
}


class ModelConfig(Base):
    """A vendor model bound to one provider, with its role in the failover order."""

    __tablename__ = "model_configs"

    model_id = Column(Integer, primary_key=True, autoincrement=True)
    provider_id = Column(
        Integer, ForeignKey("providers.provider_id"), nullable=False
    )
    name = Column(String(100), nullable=False)  # vendor-side model id
    display_name = Column(String(200), nullable=False)
    model_type = Column(String(20), nullable=False, default="chat")
    role = Column(
        String(20), nullable=False, default=ROLE_SECONDARY
    )  # primary, secondary, disabled
    priority = Column(Integer, nullable=False, default=100)  # lower is tried first
    parameters = Column(JSON, nullable=False, default=dict)
    context_window = Column(Integer, nullable=False, default=4000)
    cost_per_1k_tokens = Column(Float, nullable=False, default=0.0)
    custom_api_url = Column(String(500))
    encrypted_credential = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
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
    provider = relationship("Provider", back_populates="models", lazy="selectin")

    # Constraints
    __table_args__ = (
        UniqueConstraint("provider_id", "name", name="uq_provider_model_name"),
        # At most one primary across the whole catalog
        Index(
            "uq_model_configs_single_primary",
            "role",
            unique=True,
            postgresql_where=text("role = 'primary'"),
            sqlite_where=text("role = 'primary'"),
        ),
        Index("idx_model_configs_role_priority", "role", "priority"),
    )
