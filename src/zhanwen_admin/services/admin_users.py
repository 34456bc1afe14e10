"""Administrator accounts: login check and password change."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.models.admin_user import AdminUser
from zhanwen_admin.services.vault import CredentialVault, get_vault

logger = structlog.get_logger(__name__)


class AdminUserService:
    def __init__(self, db: AsyncSession, vault: Optional[CredentialVault] = None):
        self.db = db
        self.vault = vault or get_vault()

    async def create(self, username: str, password: str, **fields) -> AdminUser:
        user = AdminUser(
            username=username,
            password_hash=self.vault.hash_password(password),
            **fields,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def authenticate(self, username: str, password: str) -> Optional[AdminUser]:
        """Return the active user whose password matches, else None."""
        result = await self.db.execute(
            select(AdminUser).where(AdminUser.username == username)
        )
        user = result.scalar_one_or_none()
        if user is None or not user.is_active:
            return None
        if not self.vault.verify_password(password, user.password_hash):
            logger.info("admin_login_rejected", username=username)
            return None

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.commit()
        return user

    async def change_password(
        self, user: AdminUser, current_password: str, new_password: str
    ) -> bool:
        """Replace the password if ``current_password`` verifies."""
        if not self.vault.verify_password(current_password, user.password_hash):
            return False
        user.password_hash = self.vault.hash_password(new_password)
        await self.db.commit()
        logger.info("admin_password_changed", user_id=user.user_id)
        return True
