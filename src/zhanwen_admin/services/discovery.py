"""Provider model discovery.

Lists the models a vendor offers so administrators can pre-populate or
validate catalog entries. OpenAI-compatible vendors are queried with the
OpenAI SDK, Gemini through its REST listing, and Anthropic (which has no
listing API) from a static table. Not used on the reading path.
"""

from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import httpx
import openai
import structlog
from openai import AsyncOpenAI

from ..errors import DiscoveryError
from ..settings import settings
from .endpoints import gemini_models_url, normalize_provider_name

logger = structlog.get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"

# Speech models are listed by OpenAI but cannot serve chat completions
NON_CHAT_MARKERS = ("whisper", "tts")


@dataclass
class ModelInfo:
    id: str
    name: str
    description: Optional[str] = None
    context_window: Optional[int] = None
    type: str = "chat"

    def to_dict(self) -> dict:
        return asdict(self)


ANTHROPIC_MODELS = [
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        name="claude-3-5-sonnet-20241022",
        description="Claude 3.5 Sonnet (Latest)",
        context_window=200000,
    ),
    ModelInfo(
        id="claude-3-5-haiku-20241022",
        name="claude-3-5-haiku-20241022",
        description="Claude 3.5 Haiku (Latest)",
        context_window=200000,
    ),
    ModelInfo(
        id="claude-3-opus-20240229",
        name="claude-3-opus-20240229",
        description="Claude 3 Opus",
        context_window=200000,
    ),
    ModelInfo(
        id="claude-3-sonnet-20240229",
        name="claude-3-sonnet-20240229",
        description="Claude 3 Sonnet",
        context_window=200000,
    ),
    ModelInfo(
        id="claude-3-haiku-20240307",
        name="claude-3-haiku-20240307",
        description="Claude 3 Haiku",
        context_window=200000,
    ),
]


async def _list_openai_compatible(
    credential: str, base_url: str, http_client: httpx.AsyncClient
) -> List[str]:
    client = AsyncOpenAI(
        api_key=credential, base_url=base_url, http_client=http_client, max_retries=0
    )
    page = await client.models.list()
    return [model.id for model in page.data if getattr(model, "id", None)]


async def fetch_openai_models(
    credential: str, base_url: Optional[str], http_client: httpx.AsyncClient
) -> List[ModelInfo]:
    """OpenAI and OpenAI-compatible vendors (``/v1/models``)."""
    url = base_url or OPENAI_BASE_URL
    if base_url and "/v1" not in base_url:
        url = base_url.rstrip("/") + "/v1"

    ids = await _list_openai_compatible(credential, url, http_client)
    return [
        ModelInfo(id=model_id, name=model_id)
        for model_id in sorted(ids)
        if not any(marker in model_id for marker in NON_CHAT_MARKERS)
    ]


async def fetch_deepseek_models(
    credential: str, base_url: Optional[str], http_client: httpx.AsyncClient
) -> List[ModelInfo]:
    ids = await _list_openai_compatible(
        credential, base_url or DEEPSEEK_BASE_URL, http_client
    )
    return [
        ModelInfo(id=model_id, name=model_id, description=f"DeepSeek {model_id}")
        for model_id in sorted(ids)
    ]


async def fetch_anthropic_models(
    credential: str, base_url: Optional[str], http_client: httpx.AsyncClient
) -> List[ModelInfo]:
    return list(ANTHROPIC_MODELS)


async def fetch_gemini_models(
    credential: str, base_url: Optional[str], http_client: httpx.AsyncClient
) -> List[ModelInfo]:
    """Gemini models that support ``generateContent``."""
    url = gemini_models_url(base_url or GEMINI_BASE_URL)
    response = await http_client.get(
        url, headers={"x-goog-api-key": credential, "Accept": "application/json"}
    )
    response.raise_for_status()
    data = response.json()

    models = []
    for raw in data.get("models") or []:
        if not isinstance(raw, dict):
            continue
        raw_name = raw.get("name") or raw.get("id")
        if not raw_name:
            continue
        methods = raw.get("supportedGenerationMethods")
        if isinstance(methods, list) and "generateContent" not in methods:
            continue
        model_id = str(raw_name)
        if model_id.lower().startswith("models/"):
            model_id = model_id[len("models/"):]
        models.append(
            ModelInfo(
                id=model_id,
                name=model_id,
                description=raw.get("displayName") or raw.get("description"),
                context_window=raw.get("inputTokenLimit"),
            )
        )
    return sorted(models, key=lambda m: m.name)


Fetcher = Callable[[str, Optional[str], httpx.AsyncClient], Awaitable[List[ModelInfo]]]

# Vendors not listed here are treated as OpenAI-compatible
MODEL_FETCHERS: Dict[str, Fetcher] = {
    "openai": fetch_openai_models,
    "deepseek": fetch_deepseek_models,
    "anthropic": fetch_anthropic_models,
    "gemini": fetch_gemini_models,
}


async def fetch_models(
    provider: str,
    credential: str,
    base_url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> List[ModelInfo]:
    """List a provider's models using a plaintext credential.

    Raises:
        DiscoveryError: Missing provider/credential, or the vendor call failed.
    """
    if not provider or not isinstance(credential, str) or not credential.strip():
        raise DiscoveryError("Provider and API key are required")

    name = normalize_provider_name(provider)
    fetcher = MODEL_FETCHERS.get(name, fetch_openai_models)

    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
                return await fetcher(credential, base_url, client)
        return await fetcher(credential, base_url, http_client)
    except (openai.OpenAIError, httpx.HTTPError, ValueError) as e:
        logger.error("model_discovery_failed", provider=name, error=str(e))
        raise DiscoveryError(
            f"Failed to list models for '{name}'; check the API key and network"
        ) from e


async def test_connection(
    provider: str,
    credential: str,
    base_url: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """True if the provider lists at least one model with this credential."""
    if not isinstance(credential, str) or not credential.strip():
        logger.warning("connection_test_skipped", provider=provider, reason="empty_api_key")
        return False

    try:
        models = await fetch_models(provider, credential, base_url, http_client)
    except DiscoveryError:
        return False

    connected = len(models) > 0
    logger.info(
        "connection_test_completed",
        provider=provider,
        connected=connected,
        model_count=len(models),
    )
    return connected
