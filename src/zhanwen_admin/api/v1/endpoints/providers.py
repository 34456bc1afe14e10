"""Provider discovery endpoints."""

from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.api.deps import get_http_client
from zhanwen_admin.db.database import get_db
from zhanwen_admin.errors import ProviderNotFound
from zhanwen_admin.models.provider import Provider
from zhanwen_admin.services import discovery

router = APIRouter()


def _discovery_args(provider_data: Dict[str, Any]) -> Dict[str, Any]:
    provider = provider_data.get("provider")
    if not provider:
        raise HTTPException(status_code=400, detail="'provider' is required")
    return {
        "provider": provider,
        "credential": provider_data.get("api_key") or "",
        "base_url": provider_data.get("base_url"),
    }


@router.post("/fetch-models", response_model=Dict[str, Any])
async def fetch_provider_models(
    provider_data: Dict[str, Any],
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Dict[str, Any]:
    """List the models a vendor offers for a plaintext API key."""
    models = await discovery.fetch_models(
        **_discovery_args(provider_data), http_client=http_client
    )
    return {"models": [model.to_dict() for model in models], "count": len(models)}


@router.post("/test-connection", response_model=Dict[str, Any])
async def test_provider_connection(
    provider_data: Dict[str, Any],
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Dict[str, Any]:
    connected = await discovery.test_connection(
        **_discovery_args(provider_data), http_client=http_client
    )
    return {"connected": connected}


@router.post("/{provider_id}/refresh-models", response_model=Dict[str, Any], status_code=202)
async def refresh_provider_models(
    provider_id: int,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Queue a background refresh of a provider's supported model list."""
    provider = await db.get(Provider, provider_id)
    if provider is None:
        raise ProviderNotFound(f"Provider {provider_id} not found")

    # Import here to avoid loading Celery in request-only code paths
    from zhanwen_admin.workers.tasks import refresh_provider_models as refresh_task

    task = refresh_task.delay(provider_id)
    return {"provider_id": provider_id, "task_id": task.id, "status": "queued"}
