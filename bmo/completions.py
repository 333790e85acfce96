"""
Chat-completions client — request body, HTTP POST, reply extraction.

Everything here is synchronous and Qt-free; ``bmo.workers`` runs
``fetch_completion`` on a background thread.
"""
import json
import urllib.error
import urllib.request
from typing import Any, Dict

from bmo.config import ChatSettings
from bmo.constants import APP_NAME, APP_VERSION, COMPLETIONS_URL, logger, ssl_context
from bmo.errors import MalformedResponseError, RemoteError


def build_request_body(settings: ChatSettings, context: str) -> Dict[str, Any]:
    """JSON body for one completion: system instruction plus the flattened transcript."""
    return {
        "model": settings.model,
        "messages": [
            {"role": "system", "content": settings.system_role},
            {"role": "user", "content": context},
        ],
        "max_tokens": int(settings.max_tokens),
        "temperature": float(settings.temperature),
    }


def build_request(settings: ChatSettings, context: str,
                  url: str = COMPLETIONS_URL) -> urllib.request.Request:
    body = json.dumps(build_request_body(settings, context)).encode("utf-8")
    return urllib.request.Request(
        url,
        data=body,
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.require_api_key()}",
            "User-Agent": f"{APP_NAME}/{APP_VERSION}",
        },
    )


def extract_reply(payload: Any) -> str:
    """Return ``choices[0].message.content`` or raise MalformedResponseError."""
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError(
            f"Unexpected response shape: missing {e}") from e
    if not isinstance(content, str):
        raise MalformedResponseError("Unexpected response shape: content is not text")
    return content


def _http_error_message(err: urllib.error.HTTPError) -> str:
    """Best-effort error text from an OpenAI-style error body."""
    detail = ""
    try:
        data = json.loads(err.read().decode("utf-8"))
        detail = data.get("error", {}).get("message", "") if isinstance(data, dict) else ""
    except (ValueError, OSError, AttributeError):
        pass
    reason = detail or err.reason or "request failed"
    return f"HTTP {err.code}: {reason}"


def fetch_completion(settings: ChatSettings, context: str,
                     url: str = COMPLETIONS_URL) -> str:
    """POST one completion request and return the reply text.

    Raises ConfigurationError when no API key is set, RemoteError for
    transport failures and non-2xx statuses, MalformedResponseError when the
    body is not the expected JSON shape.
    """
    request = build_request(settings, context, url)
    logger.debug(f"Chat: POST {url} model={settings.model} "
                 f"context_len={len(context)}")
    try:
        with urllib.request.urlopen(request, timeout=settings.request_timeout,
                                    context=ssl_context()) as response:
            raw = response.read()
    except urllib.error.HTTPError as e:
        raise RemoteError(_http_error_message(e), status=e.code) from e
    except urllib.error.URLError as e:
        raise RemoteError(f"Network error: {e.reason}") from e
    except (TimeoutError, OSError) as e:
        raise RemoteError(f"Network error: {e}") from e

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedResponseError(f"Response is not valid JSON: {e}") from e
    return extract_reply(payload)
