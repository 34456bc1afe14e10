"""Reading dispatch with failover across configured models.

One dispatch composes the prompt once, then tries each candidate from the
registry in order with a single HTTP call. The first success is returned
immediately and later candidates are never called. A failing candidate is
recorded and the next one is tried; when none remain, ``AllModelsFailed``
carries every recorded error.
"""

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from zhanwen_admin.errors import AllModelsFailed, NoActiveModel
from zhanwen_admin.services.endpoints import resolve
from zhanwen_admin.services.prompt_composer import compose
from zhanwen_admin.services.prompt_templates import PromptTemplateService
from zhanwen_admin.services.registry import DispatchCandidate, ModelRegistry
from zhanwen_admin.services.request_shapes import shape_request

logger = structlog.get_logger(__name__)

# Upstream error bodies are cut to this length in candidate errors
ERROR_BODY_LIMIT = 500


@dataclass
class DispatchOutcome:
    """A successful reading and the data a usage record needs."""

    text: str
    model_id: Optional[int]
    model_name: str
    provider_name: str
    tokens_used: Optional[int]
    elapsed_ms: int
    upstream_request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CandidateFailed(Exception):
    """One attempt failed; dispatch moves on to the next candidate."""


def extract_completion_text(data: Any) -> Optional[str]:
    """Completion text from a chat (``message.content``) or legacy (``text``) body."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    choice = choices[0]
    message = choice.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if content is None:
        content = choice.get("text")
    return content if isinstance(content, str) and content else None


def extract_tokens_used(data: Dict[str, Any]) -> Optional[int]:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    if usage.get("total_tokens"):
        return usage["total_tokens"]
    prompt_tokens = usage.get("prompt_tokens")
    completion_tokens = usage.get("completion_tokens")
    if prompt_tokens and completion_tokens:
        return prompt_tokens + completion_tokens
    return None


class DispatchOrchestrator:
    """Runs one reading request through the candidate list."""

    def __init__(
        self,
        db: AsyncSession,
        http_client: httpx.AsyncClient,
        registry: Optional[ModelRegistry] = None,
        templates: Optional[PromptTemplateService] = None,
    ):
        self.db = db
        self.http_client = http_client
        self.registry = registry or ModelRegistry(db)
        self.templates = templates or PromptTemplateService(db)

    async def dispatch(
        self, result: Any, output_language: Optional[str] = None
    ) -> DispatchOutcome:
        """Produce a reading for a divination result.

        Raises:
            NoActiveModel: No usable candidate exists; no HTTP call is made.
            AllModelsFailed: Every candidate failed; ``errors`` lists
                ``{model, provider, error}`` in attempt order.
        """
        started = time.time()
        candidates = await self.registry.list_candidates()
        if not candidates:
            raise NoActiveModel("No active AI model is configured")

        texts = await self.templates.get_active_texts()
        messages = compose(result, texts, output_language).messages()

        errors: List[Dict[str, Any]] = []
        for candidate in candidates:
            try:
                return await self._attempt(candidate, messages)
            except CandidateFailed as e:
                logger.warning(
                    "dispatch_candidate_failed",
                    model=candidate.name,
                    provider=candidate.provider_name,
                    error=str(e),
                )
                errors.append(
                    {
                        "model": candidate.name,
                        "provider": candidate.provider_name,
                        "error": str(e),
                    }
                )

        elapsed_ms = int((time.time() - started) * 1000)
        logger.error("dispatch_all_failed", elapsed_ms=elapsed_ms, errors=errors)
        raise AllModelsFailed(errors, elapsed_ms=elapsed_ms)

    async def _attempt(
        self, candidate: DispatchCandidate, messages: List[Dict[str, str]]
    ) -> DispatchOutcome:
        if not candidate.credential or not candidate.credential.strip():
            raise CandidateFailed("Model has no API key configured")
        if not candidate.base_url:
            raise CandidateFailed("Model has no API base URL configured")

        shape = shape_request(candidate)
        url = resolve(candidate.provider_name, candidate.base_url)

        logger.info(
            "dispatch_attempt",
            model=candidate.name,
            provider=candidate.provider_name,
            role=candidate.role,
        )
        start_time = time.time()
        try:
            response = await self.http_client.post(
                url,
                json=shape.body(messages),
                headers={"Authorization": f"Bearer {candidate.credential}"},
            )
        # InvalidURL (malformed base URL) and UnicodeEncodeError (non-ASCII
        # key in the header) are raised before any bytes are sent
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise CandidateFailed(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            body = response.text[:ERROR_BODY_LIMIT]
            raise CandidateFailed(
                f"HTTP {response.status_code}: {response.reason_phrase} {body}".strip()
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CandidateFailed("Response body is not valid JSON") from e

        text = extract_completion_text(data)
        if text is None:
            raise CandidateFailed("Response contains no completion text")

        outcome = DispatchOutcome(
            text=text,
            model_id=candidate.model_id,
            model_name=candidate.name,
            provider_name=candidate.provider_name,
            tokens_used=extract_tokens_used(data),
            elapsed_ms=int((time.time() - start_time) * 1000),
            upstream_request_id=data.get("id"),
        )
        logger.info(
            "dispatch_succeeded",
            model=candidate.name,
            provider=candidate.provider_name,
            upstream_request_id=outcome.upstream_request_id,
            elapsed_ms=outcome.elapsed_ms,
        )
        return outcome
