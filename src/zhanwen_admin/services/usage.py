"""Usage recording for reading dispatches."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.errors import AllModelsFailed
from zhanwen_admin.models.usage_log import UsageLog
from zhanwen_admin.services.dispatch import DispatchOutcome


async def record_usage(
    db: AsyncSession,
    outcome: Optional[DispatchOutcome] = None,
    failure: Optional[AllModelsFailed] = None,
    output_language: Optional[str] = None,
) -> UsageLog:
    """Write one usage row for a successful or exhausted dispatch."""
    if outcome is not None:
        entry = UsageLog(
            model_id=outcome.model_id,
            model_name=outcome.model_name,
            provider_name=outcome.provider_name,
            status="success",
            tokens_used=outcome.tokens_used,
            response_time_ms=outcome.elapsed_ms,
            upstream_request_id=outcome.upstream_request_id,
            output_language=output_language,
        )
    else:
        errors = failure.errors if failure is not None else []
        entry = UsageLog(
            status="failed",
            response_time_ms=failure.elapsed_ms if failure is not None else None,
            output_language=output_language,
            error_message="; ".join(
                f"{e.get('provider')}/{e.get('model')}: {e.get('error')}" for e in errors
            ),
        )

    db.add(entry)
    await db.commit()
    return entry
