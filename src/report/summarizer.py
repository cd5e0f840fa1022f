"""Azure OpenAI chat-completions client used to summarize metric prompts.

One POST per call, no retries.  Failures are raised as ``UpstreamFailure``
subclasses; degrading to placeholder text is the caller's decision.
"""

import logging

import httpx

from src.config import get_settings
from src.observability.metrics import LLM_CALLS_TOTAL, LLM_TOKEN_USAGE
from src.report.prompt import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class UpstreamFailure(Exception):
    """The summarization endpoint did not produce a usable completion."""


class UpstreamUnavailable(UpstreamFailure):
    """Network failure, timeout, rate limiting or a 5xx response."""


class UpstreamRejected(UpstreamFailure):
    """The endpoint refused the request (4xx other than 429)."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        super().__init__(f"Summarization request rejected with HTTP {status_code}: {detail}".rstrip(": "))


class UpstreamMalformedResponse(UpstreamFailure):
    """A 2xx response whose body has no completion text."""


def build_payload(prompt: str) -> dict[str, object]:
    """Chat-completions request body for one prompt."""
    settings = get_settings()
    return {
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "temperature": settings.llm_temperature,
        "max_tokens": settings.llm_max_tokens,
    }


def extract_completion(body: object) -> str:
    """Return ``choices[0].message.content`` or raise ``UpstreamMalformedResponse``."""
    if not isinstance(body, dict):
        raise UpstreamMalformedResponse("Response body is not a JSON object")
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices:
        raise UpstreamMalformedResponse("Response has no choices")
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise UpstreamMalformedResponse("First choice has no message content")
    return content


def _record_usage(body: dict[str, object]) -> None:
    usage = body.get("usage")
    if not isinstance(usage, dict):
        return
    for key, label in (("prompt_tokens", "prompt"), ("completion_tokens", "completion")):
        value = usage.get(key)
        if isinstance(value, int) and value > 0:
            LLM_TOKEN_USAGE.labels(type=label).inc(value)


async def _post(client: httpx.AsyncClient, prompt: str) -> httpx.Response:
    settings = get_settings()
    try:
        return await client.post(
            settings.azure_openai_endpoint,
            json=build_payload(prompt),
            headers={"Content-Type": "application/json", "api-key": settings.azure_openai_key},
            timeout=settings.llm_timeout_seconds,
        )
    except httpx.TransportError as exc:
        raise UpstreamUnavailable(f"Summarization endpoint unreachable: {exc}") from exc


async def summarize(prompt: str, *, client: httpx.AsyncClient | None = None) -> str:
    """Send ``prompt`` to the completion endpoint and return the first completion's text.

    Args:
        prompt: The user prompt (see ``src.report.prompt.build_prompt``).
        client: Optional shared client; a short-lived one is created otherwise.

    Raises:
        UpstreamUnavailable: Transport error, HTTP 429 or 5xx.
        UpstreamRejected: Any other non-2xx status.
        UpstreamMalformedResponse: 2xx without usable completion text.
    """
    try:
        if client is None:
            async with httpx.AsyncClient() as owned:
                resp = await _post(owned, prompt)
        else:
            resp = await _post(client, prompt)

        if resp.status_code == 429 or resp.status_code >= 500:
            raise UpstreamUnavailable(f"Summarization endpoint returned HTTP {resp.status_code}")
        if not resp.is_success:
            raise UpstreamRejected(resp.status_code, resp.text[:200])

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamMalformedResponse("Response body is not valid JSON") from exc

        text = extract_completion(body)
    except UpstreamFailure as exc:
        LLM_CALLS_TOTAL.labels(status="error").inc()
        logger.error("Summarization API error: %s", exc)
        raise

    LLM_CALLS_TOTAL.labels(status="success").inc()
    _record_usage(body)
    return text
