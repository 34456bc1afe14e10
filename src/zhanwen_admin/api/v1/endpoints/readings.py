"""Reading endpoints."""

from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.api.deps import get_http_client
from zhanwen_admin.db.database import get_db
from zhanwen_admin.errors import AllModelsFailed
from zhanwen_admin.services.dispatch import DispatchOrchestrator
from zhanwen_admin.services.usage import record_usage

router = APIRouter()


@router.post("", response_model=Dict[str, Any])
async def create_reading(
    reading_data: Dict[str, Any],
    db: AsyncSession = Depends(get_db),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> Dict[str, Any]:
    """Interpret a divination result with the first model that answers.

    Body: ``{"result": {...}, "language": "en"}``; ``language`` is optional.
    """
    result = reading_data.get("result")
    if not isinstance(result, dict):
        raise HTTPException(status_code=400, detail="'result' must be an object")
    language = reading_data.get("language")
    if not isinstance(language, str):
        language = None

    orchestrator = DispatchOrchestrator(db, http_client)
    try:
        outcome = await orchestrator.dispatch(result, output_language=language)
    except AllModelsFailed as failure:
        await record_usage(db, failure=failure, output_language=language)
        raise

    await record_usage(db, outcome=outcome, output_language=language)
    return outcome.to_dict()
