"""Prompt template service."""

from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.errors import PromptTemplateNotFound
from zhanwen_admin.models.prompt_template import (
    DEFAULT_FAMILY,
    TEXT_FRAGMENTS,
    PromptTemplate,
)
from zhanwen_admin.services.prompt_composer import PromptTexts

logger = structlog.get_logger(__name__)


class PromptTemplateService:
    """Stores template texts and keeps one active template per family."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active(self, family: str = DEFAULT_FAMILY) -> Optional[PromptTemplate]:
        """Most recently updated active template of a family."""
        result = await self.db.execute(
            select(PromptTemplate)
            .where(PromptTemplate.family == family, PromptTemplate.is_active.is_(True))
            .order_by(PromptTemplate.updated_at.desc(), PromptTemplate.template_id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_active_texts(self, family: str = DEFAULT_FAMILY) -> PromptTexts:
        """Texts of the active template, or the built-in defaults if there is none."""
        template = await self.get_active(family)
        if template is None:
            return PromptTexts()
        return PromptTexts.from_mapping(template.texts)

    async def create(
        self,
        name: str,
        texts: Dict[str, Any],
        version: str = "1",
        family: str = DEFAULT_FAMILY,
        activate: bool = False,
    ) -> PromptTemplate:
        template = PromptTemplate(
            family=family,
            name=name,
            version=version,
            texts={key: texts.get(key, "") for key in TEXT_FRAGMENTS},
            is_active=False,
        )
        self.db.add(template)
        await self.db.flush()
        if activate:
            await self._activate(template)
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def activate(self, template_id: int) -> PromptTemplate:
        """Make a template the only active one in its family."""
        template = await self.db.get(PromptTemplate, template_id)
        if template is None:
            raise PromptTemplateNotFound(f"Prompt template {template_id} not found")
        await self._activate(template)
        await self.db.commit()
        await self.db.refresh(template)
        return template

    async def _activate(self, template: PromptTemplate) -> None:
        await self.db.execute(
            update(PromptTemplate)
            .where(
                PromptTemplate.family == template.family,
                PromptTemplate.template_id != template.template_id,
                PromptTemplate.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        template.is_active = True
        await self.db.flush()
        logger.info(
            "prompt_template_activated",
            template_id=template.template_id,
            family=template.family,
        )
