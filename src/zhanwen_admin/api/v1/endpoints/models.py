"""Model catalog administration endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.db.database import get_db
from zhanwen_admin.services.registry import ModelRegistry

router = APIRouter()


@router.get("", response_model=List[Dict[str, Any]])
async def list_models(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    provider: Optional[str] = Query(default=None),
    role: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> List[Dict[str, Any]]:
    """List configured models with masked credentials."""
    registry = ModelRegistry(db)
    models = await registry.list_models(
        limit=limit, offset=offset, provider=provider, role=role
    )
    return [registry.describe(model) for model in models]


@router.get("/candidates", response_model=List[Dict[str, Any]])
async def list_candidates(db: AsyncSession = Depends(get_db)) -> List[Dict[str, Any]]:
    """Models a reading would try right now, in attempt order."""
    candidates = await ModelRegistry(db).list_candidates()
    return [
        {
            "model_id": c.model_id,
            "name": c.name,
            "display_name": c.display_name,
            "provider_name": c.provider_name,
            "role": c.role,
            "priority": c.priority,
        }
        for c in candidates
    ]


@router.post("/batch-delete", response_model=Dict[str, Any])
async def batch_delete_models(
    delete_data: Dict[str, Any],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Delete several non-primary models at once."""
    ids = delete_data.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        raise HTTPException(status_code=400, detail="'ids' must be a list of model ids")

    deleted = await ModelRegistry(db).batch_delete(ids)
    return {"deleted_count": deleted}


@router.get("/{model_id}", response_model=Dict[str, Any])
async def get_model(model_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    registry = ModelRegistry(db)
    return registry.describe(await registry.get(model_id))


@router.post("", response_model=Dict[str, Any], status_code=201)
async def create_model(
    model_data: Dict[str, Any],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Register a model.

    ``provider_id`` is a provider id or name, or ``"custom"`` together with
    ``custom_provider_name``. ``role="primary"`` demotes the current primary.
    """
    registry = ModelRegistry(db)
    model = await registry.create(model_data)
    return registry.describe(model)


@router.put("/{model_id}", response_model=Dict[str, Any])
async def update_model(
    model_id: int,
    model_data: Dict[str, Any],
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    registry = ModelRegistry(db)
    model = await registry.update(model_id, model_data)
    return registry.describe(model)


@router.delete("/{model_id}", response_model=Dict[str, Any])
async def delete_model(model_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    await ModelRegistry(db).delete(model_id)
    return {"model_id": model_id, "deleted": True}


@router.post("/{model_id}/promote", response_model=Dict[str, Any])
async def promote_model(model_id: int, db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Make a model the primary; the previous primary becomes secondary."""
    registry = ModelRegistry(db)
    model = await registry.promote(model_id)
    return registry.describe(model)
