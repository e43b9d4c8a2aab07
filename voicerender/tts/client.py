"""Speech-synthesis provider HTTP client.

Responsibilities:
- Send text-to-speech requests to the provider REST API.
- Classify HTTP and transport failures into stable failure kinds.
- Keep API keys out of every surfaced error message.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any

import requests

DEFAULT_BASE_URL = "https://api.elevenlabs.io"
_RETRYABLE_FAILURE_KINDS = frozenset({"rate_limited", "server_error", "timeout", "transport"})


class ProviderError(RuntimeError):
    """Raised when a provider request fails or returns unusable audio."""

    def __init__(
        self,
        message: str,
        *,
        failure_kind: str = "unknown",
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        """Initialize provider error metadata for retry decisions and diagnostics."""

        super().__init__(message)
        self.failure_kind = failure_kind
        self.status_code = status_code
        self.provider_code = provider_code

    @property
    def retryable(self) -> bool:
        """Return whether the failure is transient and may be retried."""

        return self.failure_kind in _RETRYABLE_FAILURE_KINDS


class SpeechClient:
    """Minimal requests-based text-to-speech HTTP client."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180
    _MAX_CONTEXT_CHARS = 300

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize HTTP client settings."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def synthesize(
        self,
        *,
        text: str,
        voice_id: str,
        model_id: str,
        voice_settings: dict[str, Any],
        sample_rate: int,
        enable_ssml_parsing: bool,
        seed: int | None = None,
        previous_text: str | None = None,
        next_text: str | None = None,
    ) -> bytes:
        """Request speech audio and return raw 16-bit PCM bytes.

        Raises:
            ProviderError: On missing key, HTTP failure, transport failure or empty audio.
        """

        self._require_api_key()
        payload: dict[str, Any] = {
            "text": text,
            "model_id": model_id,
            "voice_settings": voice_settings,
            "enable_ssml_parsing": enable_ssml_parsing,
        }
        if seed is not None:
            payload["seed"] = seed
        if previous_text:
            payload["previous_text"] = previous_text[-self._MAX_CONTEXT_CHARS :]
        if next_text:
            payload["next_text"] = next_text[: self._MAX_CONTEXT_CHARS]

        audio = self._post_json_bytes(
            endpoint_path=f"/v1/text-to-speech/{voice_id}",
            params={"output_format": f"pcm_{sample_rate}"},
            payload=payload,
        )
        if not audio:
            raise ProviderError(
                "Provider returned an empty audio payload.",
                failure_kind="invalid_response",
            )
        return audio

    def _require_api_key(self) -> None:
        if not self.api_key:
            raise ProviderError(
                "Missing provider API key. Set `ELEVENLABS_API_KEY` or `api_key` in the config file.",
                failure_kind="auth",
            )

    def _post_json_bytes(
        self,
        *,
        endpoint_path: str,
        params: dict[str, str],
        payload: dict[str, Any],
    ) -> bytes:
        """POST a JSON payload and map failures consistently."""

        endpoint = f"{self.base_url}{endpoint_path}"
        headers = {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/octet-stream",
        }
        try:
            response = requests.post(
                endpoint,
                headers=headers,
                params=params,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            return bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except requests.RequestException as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = "Provider request timed out."
            else:
                detail = f"Provider request transport error: {self._short_message(str(exc))}"
            raise ProviderError(detail, failure_kind=failure_kind) from exc
        except TimeoutError as exc:
            raise ProviderError("Provider request timed out.", failure_kind="timeout") from exc

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        response = exc.response
        if response is None:
            return ""
        return bytes(response.content).decode("utf-8", errors="replace").strip()

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk[-_][A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)(xi-api-key[\"']?\s*[:=]\s*[\"']?)[A-Za-z0-9._-]{8,}",
            r"\1[redacted-key]",
            redacted,
        )
        return re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise message and optional provider status code from an error body."""

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("detail", payload.get("error"))
            if isinstance(error_payload, dict):
                for code_key in ("status", "code"):
                    code_value = error_payload.get(code_key)
                    if isinstance(code_value, str) and code_value.strip():
                        provider_code = code_value.strip()
                        break
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()
            elif isinstance(error_payload, str) and error_payload.strip():
                message = error_payload.strip()

        if message is None:
            message = body
        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @staticmethod
    def _classify_http_failure(status_code: int) -> str:
        """Classify provider HTTP status codes into failure kinds."""

        if status_code in {401, 403}:
            return "auth"
        if status_code in {408, 504}:
            return "timeout"
        if status_code == 429:
            return "rate_limited"
        if status_code in {400, 404, 422}:
            return "validation"
        if 500 <= status_code <= 599:
            return "server_error"
        return "unknown"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    @classmethod
    def _http_error_to_provider_error(cls, exc: requests.HTTPError) -> ProviderError:
        """Convert HTTP errors into classified provider exceptions."""

        status_code = exc.response.status_code if exc.response is not None else 0
        provider_message, provider_code = cls._extract_provider_message(cls._decode_error_body(exc))
        failure_kind = cls._classify_http_failure(status_code)

        headline = {
            "auth": "Provider authentication failed",
            "validation": "Provider rejected the request",
            "rate_limited": "Provider rate limit exceeded",
            "server_error": "Provider server error",
            "timeout": "Provider request timed out",
        }.get(failure_kind, "Provider request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."
        return ProviderError(
            detail,
            failure_kind=failure_kind,
            status_code=status_code,
            provider_code=provider_code,
        )
