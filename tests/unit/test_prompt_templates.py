"""Test prompt template storage and activation."""

import pytest
from sqlalchemy import select

from zhanwen_admin.errors import PromptTemplateNotFound
from zhanwen_admin.models import PromptTemplate
from zhanwen_admin.services.prompt_composer import DEFAULT_SYSTEM_PROMPT
from zhanwen_admin.services.prompt_templates import PromptTemplateService


class TestPromptTemplateService:
    @pytest.mark.asyncio
    async def test_defaults_when_no_template_is_active(self, db_session):
        texts = await PromptTemplateService(db_session).get_active_texts()

        assert texts.system_prompt == DEFAULT_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_activation_keeps_one_active_template(self, db_session):
        # Arrange
        service = PromptTemplateService(db_session)
        first = await service.create("first", {"system_prompt": "一"}, activate=True)
        second = await service.create("second", {"system_prompt": "二"})

        # Act
        await service.activate(second.template_id)

        # Assert
        result = await db_session.execute(
            select(PromptTemplate.name).where(PromptTemplate.is_active.is_(True))
        )
        assert result.scalars().all() == ["second"]
        texts = await service.get_active_texts()
        assert texts.system_prompt == "二"
        await db_session.refresh(first)
        assert first.is_active is False

    @pytest.mark.asyncio
    async def test_unknown_fragments_are_not_stored(self, db_session):
        template = await PromptTemplateService(db_session).create(
            "extra", {"system_prompt": "s", "footer": "ignored"}
        )

        assert set(template.texts) == {"system_prompt", "user_intro", "user_guidelines"}

    @pytest.mark.asyncio
    async def test_activate_unknown_template_raises(self, db_session):
        with pytest.raises(PromptTemplateNotFound):
            await PromptTemplateService(db_session).activate(404)
