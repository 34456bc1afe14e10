"""Script to seed providers, the default prompt template and an administrator."""

import asyncio
import os

from sqlalchemy import select

from zhanwen_admin.db.database import AsyncSessionLocal, init_db
from zhanwen_admin.models import AdminUser, Provider
from zhanwen_admin.services.admin_users import AdminUserService
from zhanwen_admin.services.prompt_composer import PromptTexts
from zhanwen_admin.services.prompt_templates import PromptTemplateService


async def seed_catalog():
    """Seed the provider catalog and defaults."""

    providers = [
        {
            "name": "deepseek",
            "display_name": "DeepSeek",
            "base_url": "https://api.deepseek.com",
            "supported_models": ["deepseek-chat", "deepseek-reasoner"],
        },
        {
            "name": "openai",
            "display_name": "OpenAI",
            "base_url": "https://api.openai.com/v1",
            "supported_models": ["gpt-4o", "gpt-4o-mini", "gpt-5"],
        },
        {
            "name": "anthropic",
            "display_name": "Anthropic",
            "base_url": "https://api.anthropic.com/v1",
            "supported_models": ["claude-3-5-sonnet-20241022", "claude-3-5-haiku-20241022"],
        },
        {
            "name": "gemini",
            "display_name": "Google Gemini",
            "base_url": "https://generativelanguage.googleapis.com",
            "supported_models": ["gemini-1.5-pro", "gemini-1.5-flash"],
        },
    ]

    await init_db()

    async with AsyncSessionLocal() as db:
        for provider_data in providers:
            result = await db.execute(
                select(Provider).where(Provider.name == provider_data["name"])
            )
            if result.scalar_one_or_none() is None:
                db.add(Provider(is_active=True, **provider_data))
                print(f"Added provider: {provider_data['name']}")
            else:
                print(f"Provider already exists: {provider_data['name']}")
        await db.commit()

        templates = PromptTemplateService(db)
        if await templates.get_active() is None:
            defaults = PromptTexts()
            await templates.create(
                name="default",
                texts={
                    "system_prompt": defaults.system_prompt,
                    "user_intro": defaults.user_intro,
                    "user_guidelines": defaults.user_guidelines,
                },
                activate=True,
            )
            print("Added default prompt template")

        username = os.environ.get("ADMIN_USERNAME", "admin")
        password = os.environ.get("ADMIN_PASSWORD")
        result = await db.execute(select(AdminUser).where(AdminUser.username == username))
        if password and result.scalar_one_or_none() is None:
            await AdminUserService(db).create(username, password, full_name="Administrator")
            print(f"Added administrator: {username}")
        elif not password:
            print("ADMIN_PASSWORD not set; skipping administrator")

        print("Catalog seeding completed.")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
