"""Administrator accounts."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from zhanwen_admin.db.database import Base


class AdminUser(Base):
    """Administrator login; ``password_hash`` is a bcrypt hash."""

    __tablename__ = "admin_users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=False, unique=True)
    email = Column(String(200))
    password_hash = Column(String(200), nullable=False)
    full_name = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True))
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
