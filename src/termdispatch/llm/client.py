"""Thin chat-completion client for an Ollama-style ``/api/chat`` endpoint."""

from __future__ import annotations

import http.client
import json
import logging
from collections.abc import Iterator
from urllib import request
from urllib.error import HTTPError, URLError

from termdispatch.agent.models import ChatMessage, CompletionChunk

DEFAULT_API_URL = "http://localhost:11434/api/chat"
LOGGER = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """The completion backend failed (transport, timeout, HTTP or malformed reply)."""


class CompletionUnavailableError(CompletionError):
    """No completion backend is configured."""


class CompletionClient:
    """Small HTTP client that streams chat completions."""

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        api_key: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout = timeout

    def generate_completion(
        self,
        model: str,
        messages: list[ChatMessage],
        *,
        temperature: float = 0.7,
        stream: bool = True,
    ) -> Iterator[CompletionChunk]:
        """Yield response chunks; errors surface as ``CompletionError`` while iterating."""
        payload = self.build_payload(model, messages, temperature=temperature, stream=stream)
        body = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        LOGGER.debug(
            "completion_request_prepared",
            extra={
                "api_url": self.api_url,
                "model": model,
                "payload_bytes": len(body),
                "messages": len(messages),
                "temperature": temperature,
                "stream": stream,
            },
        )

        req = request.Request(self.api_url, data=body, headers=headers, method="POST")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:  # noqa: S310
                if stream:
                    for raw_line in resp:
                        chunk = self._parse_line(raw_line)
                        if chunk is None:
                            continue
                        yield chunk
                        if chunk.done:
                            break
                else:
                    reply = self._coerce_object_dict(json.loads(resp.read().decode("utf-8")))
                    if reply is None:
                        raise CompletionError(
                            "Completion response parsing error: expected top-level object"
                        )
                    yield CompletionChunk(content=self._reply_content(reply), done=True)
        except HTTPError as exc:
            body_excerpt = self._read_error_body_excerpt(exc)
            LOGGER.error(
                "completion_request_http_error",
                extra={
                    "api_url": self.api_url,
                    "model": model,
                    "http_status": exc.code,
                    "reason": exc.reason,
                    "response_excerpt": body_excerpt,
                },
            )
            details = f"Completion request failed with HTTP {exc.code}: {exc.reason}"
            if body_excerpt:
                details = f"{details}. Response body: {body_excerpt}"
            raise CompletionError(details) from exc
        except URLError as exc:
            LOGGER.error(
                "completion_request_transport_error",
                extra={"api_url": self.api_url, "model": model, "reason": str(exc.reason)},
            )
            raise CompletionError(f"Completion request transport error: {exc.reason}") from exc
        except TimeoutError as exc:
            LOGGER.error(
                "completion_request_timeout",
                extra={"api_url": self.api_url, "model": model, "timeout_seconds": self.timeout},
            )
            raise CompletionError(
                f"Completion request timed out after {self.timeout:.1f}s"
            ) from exc
        except (OSError, http.client.HTTPException) as exc:
            LOGGER.error(
                "completion_stream_interrupted",
                extra={"api_url": self.api_url, "model": model, "error": repr(exc)},
            )
            raise CompletionError(f"Completion stream interrupted: {exc!r}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            LOGGER.error(
                "completion_response_parse_error",
                extra={"api_url": self.api_url, "model": model, "error": str(exc)},
            )
            raise CompletionError(f"Completion response parsing error: {exc}") from exc

    @staticmethod
    def build_payload(
        model: str,
        messages: list[ChatMessage],
        *,
        temperature: float,
        stream: bool,
    ) -> dict[str, object]:
        return {
            "model": model,
            "messages": [message.to_payload() for message in messages],
            "stream": stream,
            "options": {"temperature": temperature},
        }

    @classmethod
    def _parse_line(cls, raw_line: bytes) -> CompletionChunk | None:
        line = raw_line.decode("utf-8").strip()
        if not line:
            return None
        reply = cls._coerce_object_dict(json.loads(line))
        if reply is None:
            return None
        return CompletionChunk(content=cls._reply_content(reply), done=bool(reply.get("done")))

    @staticmethod
    def _reply_content(reply: dict[str, object]) -> str:
        error = reply.get("error")
        if isinstance(error, str) and error:
            raise CompletionError(f"Completion backend error: {error}")
        message = reply.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        response = reply.get("response")
        if isinstance(response, str):
            return response
        return ""

    @staticmethod
    def _coerce_object_dict(value: object) -> dict[str, object] | None:
        if not isinstance(value, dict):
            return None
        return {str(key): raw_value for key, raw_value in value.items()}

    @staticmethod
    def _read_error_body_excerpt(exc: HTTPError, *, max_chars: int = 500) -> str | None:
        if exc.fp is None:
            return None
        try:
            raw = exc.read()
        except OSError:
            return None

        if not raw:
            return None

        excerpt = raw.decode("utf-8", errors="replace").replace("\n", " ").strip()
        if len(excerpt) > max_chars:
            return f"{excerpt[:max_chars]}..."
        return excerpt
