"""Per-provider request shaping.

Each entry in :data:`REQUEST_SHAPERS` is a pure function from a dispatch
candidate to the :class:`RequestShape` sent to that vendor. Providers without
an entry use :func:`default_shape`.
"""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .endpoints import normalize_provider_name

if TYPE_CHECKING:
    from .registry import DispatchCandidate

DEFAULT_TEMPERATURE = 0.7

# "gpt-5-high" -> model "gpt-5" with reasoning effort "high"
REASONING_EFFORT_MODEL = re.compile(
    r"^(gpt-5)(?:-(minimal|low|medium|high))?$", re.IGNORECASE
)

OPTIONAL_SAMPLING_PARAMS = ("top_p", "frequency_penalty", "presence_penalty")


@dataclass
class RequestShape:
    """Effective model id and body fields for one completion request."""

    model: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    reasoning_effort: Optional[str] = None

    def body(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Build the JSON request body around the composed messages."""
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "stream": False,
        }
        body.update(self.parameters)
        if self.reasoning_effort:
            body["reasoning"] = {"effort": self.reasoning_effort}
        return body


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def split_reasoning_effort(model_name: str) -> tuple[str, Optional[str]]:
    """Rewrite a versioned reasoning-effort model name to (base name, effort)."""
    match = REASONING_EFFORT_MODEL.match(model_name or "")
    if not match:
        return model_name, None
    effort = match.group(2)
    return "gpt-5", effort.lower() if effort else None


def default_shape(candidate: "DispatchCandidate") -> RequestShape:
    """OpenAI-compatible request shape."""
    params = candidate.parameters or {}
    model, effort = split_reasoning_effort(str(candidate.name or ""))

    temperature = params.get("temperature")
    sampling: Dict[str, Any] = {
        "temperature": temperature if temperature is not None else DEFAULT_TEMPERATURE
    }
    for key in OPTIONAL_SAMPLING_PARAMS:
        if params.get(key) is not None:
            sampling[key] = params[key]

    max_tokens = _number(params.get("max_tokens"))
    if max_tokens is not None:
        sampling["max_tokens"] = int(max_tokens)

    return RequestShape(model=model, parameters=sampling, reasoning_effort=effort)


def deepseek_shape(candidate: "DispatchCandidate") -> RequestShape:
    """DeepSeek accepts max_tokens in [1, 8192]; default 2048."""
    shape = default_shape(candidate)
    max_tokens = shape.parameters.get("max_tokens", 2048)
    shape.parameters["max_tokens"] = min(max(max_tokens, 1), 8192)
    return shape


REQUEST_SHAPERS: Dict[str, Callable[["DispatchCandidate"], RequestShape]] = {
    "deepseek": deepseek_shape,
}


def shape_request(candidate: "DispatchCandidate") -> RequestShape:
    """Apply the provider's shaper, or the default one."""
    shaper = REQUEST_SHAPERS.get(
        normalize_provider_name(candidate.provider_name), default_shape
    )
    return shaper(candidate)


def register_shaper(
    provider_name: str, shaper: Callable[["DispatchCandidate"], RequestShape]
) -> None:
    """Register a request shaper for a provider."""
    REQUEST_SHAPERS[normalize_provider_name(provider_name)] = shaper
