"""
Payload serializers used by the cache interceptor.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi.encoders import jsonable_encoder

from shared.errors import SerializationError

CACHEABLE_MEDIA_PREFIXES = ("application/json", "text/")

# Headers that describe one particular transfer and must not be replayed.
UNCACHED_HEADERS = frozenset({
    "connection",
    "content-length",
    "date",
    "server",
    "set-cookie",
    "transfer-encoding",
    "x-request-id",
})


class JsonSerializer:
    """Stores handler bodies as compact UTF-8 JSON."""

    def cacheable(self, body: Any) -> bool:
        return True

    def dumps(self, body: Any) -> bytes:
        try:
            return json.dumps(jsonable_encoder(body), separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError("Response body is not JSON serializable", {"error": str(e)}) from e

    def loads(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (TypeError, ValueError) as e:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            raise SerializationError("Stored payload is not valid JSON", {"error": str(e)}) from e


@dataclass
class CapturedResponse:
    """An HTTP response body captured from a downstream app.

    ``raw_headers`` holds the original header list of a live response and
    is never stored.
    """

    status_code: int
    body: bytes
    media_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    raw_headers: List[Tuple[bytes, bytes]] = field(default_factory=list)


class ResponseSerializer:
    """Stores whole HTTP responses (status, media type, headers, body).

    Only successful JSON or text responses are cached.
    """

    def __init__(self, cacheable_status: int = 200):
        self.cacheable_status = cacheable_status

    def cacheable(self, response: CapturedResponse) -> bool:
        if response.status_code != self.cacheable_status:
            return False
        media_type = (response.media_type or "").lower()
        return media_type.startswith(CACHEABLE_MEDIA_PREFIXES)

    def dumps(self, response: CapturedResponse) -> bytes:
        try:
            body = response.body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SerializationError("Response body is not UTF-8 text", {"error": str(e)}) from e

        headers = {
            name: value
            for name, value in response.headers.items()
            if name.lower() not in UNCACHED_HEADERS
        }
        payload = {
            "status_code": response.status_code,
            "media_type": response.media_type,
            "headers": headers,
            "body": body,
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    def loads(self, data: bytes) -> CapturedResponse:
        try:
            payload = json.loads(data)
            return CapturedResponse(
                status_code=int(payload["status_code"]),
                body=payload["body"].encode("utf-8"),
                media_type=payload.get("media_type"),
                headers=dict(payload.get("headers") or {}),
            )
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            raise SerializationError("Stored response is malformed", {"error": str(e)}) from e
