"""Provider endpoint URL resolution.

Configured base URLs are not uniform: some already carry ``/v1`` or the full
completions path, some vendors serve without a version segment. These helpers
turn whatever an administrator entered into the URL to call, and applying
them to their own output returns it unchanged.
"""

import re

COMPLETIONS_SUFFIX = re.compile(r"/(?:v1/)?chat/completions/?$", re.IGNORECASE)

# Vendors whose chat completions endpoint has no /v1 segment
UNVERSIONED_PROVIDERS = frozenset({"deepseek"})


def normalize_provider_name(name) -> str:
    return name.strip().lower() if isinstance(name, str) else ""


def resolve(provider_name: str, base_url: str) -> str:
    """Return the chat completions URL for a provider's configured base URL."""
    if not base_url:
        return base_url
    full = base_url.strip()
    if not full or COMPLETIONS_SUFFIX.search(full):
        return full

    provider = normalize_provider_name(provider_name)
    trimmed = full.rstrip("/")

    if provider in UNVERSIONED_PROVIDERS or trimmed.lower().endswith("/v1"):
        return trimmed + "/chat/completions"
    return trimmed + "/v1/chat/completions"


def gemini_models_url(base_url: str) -> str:
    """Return the Gemini model listing URL for a configured base URL."""
    if not base_url:
        return base_url
    normalized = base_url.strip().rstrip("/")
    lower = normalized.lower()

    if lower.endswith(("/v1beta/models", "/v1/models", "/models")):
        return normalized
    if lower.endswith(("/v1beta", "/v1")):
        return f"{normalized}/models"
    return f"{normalized}/v1beta/models"
