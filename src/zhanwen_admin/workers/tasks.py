"""Celery tasks for catalog maintenance."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..db.database import SyncSessionLocal
from ..errors import DiscoveryError, ZhanwenError
from ..models import Provider
from ..services.discovery import ModelInfo, fetch_models
from ..services.vault import CredentialVault, get_vault
from .celery_app import celery_app

logger = structlog.get_logger(__name__)


def refresh_models_for_provider(
    db: Session,
    provider_id: int,
    vault: Optional[CredentialVault] = None,
    fetcher: Callable[..., Awaitable[List[ModelInfo]]] = fetch_models,
) -> Dict[str, Any]:
    """List a provider's models and store their ids in ``supported_models``."""
    provider = db.get(Provider, provider_id)
    if provider is None:
        raise ValueError(f"Provider {provider_id} not found")
    if not provider.encrypted_credential:
        raise DiscoveryError(f"Provider '{provider.name}' has no stored API key")

    credential = (vault or get_vault()).decrypt(provider.encrypted_credential)

    # Discovery is async; run it on a private loop inside the worker
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        models = loop.run_until_complete(
            fetcher(provider.name, credential, provider.base_url)
        )
    finally:
        loop.close()

    provider.supported_models = [model.id for model in models]
    db.commit()

    logger.info(
        "provider_models_refreshed", provider=provider.name, model_count=len(models)
    )
    return {
        "status": "succeeded",
        "provider_id": provider_id,
        "model_count": len(models),
    }


@celery_app.task
def refresh_provider_models(provider_id: int) -> Dict[str, Any]:
    """Refresh a provider's supported model list from its listing API."""
    with SyncSessionLocal() as db:
        try:
            return refresh_models_for_provider(db, provider_id)
        except (ZhanwenError, ValueError) as exc:
            db.rollback()
            logger.error(
                "provider_models_refresh_failed", provider_id=provider_id, error=str(exc)
            )
            return {"status": "failed", "provider_id": provider_id, "error": str(exc)}
