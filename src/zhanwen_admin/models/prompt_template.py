"""Prompt template texts used to compose reading prompts."""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from zhanwen_admin.db.database import Base

DEFAULT_FAMILY = "divination"

# Keys stored in ``PromptTemplate.texts``
TEXT_FRAGMENTS = ("system_prompt", "user_intro", "user_guidelines")


class PromptTemplate(Base):
    """Three named text fragments; one active template per family."""

    __tablename__ = "prompt_templates"

    template_id = Column(Integer, primary_key=True, autoincrement=True)
    family = Column(String(50), nullable=False, default=DEFAULT_FAMILY)
    name = Column(String(100), nullable=False)
    version = Column(String(50), nullable=False, default="1")
    texts = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("name", "version", name="uq_prompt_template_name_version"),
    )
