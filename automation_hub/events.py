"""WebhookEvent: carries one inbound delivery through verification and routing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class WebhookEvent:
    """An inbound webhook delivery, built per call and never stored.

    Attributes:
        service: Driver name the delivery is addressed to (e.g. 'slack').
        payload: Parsed request body, opaque to the dispatch layer.
        headers: Request headers as received. Use ``header()`` for lookups.
        event: Optional event tag supplied by the transport (URL path segment).
        timestamp: Receipt time (UTC).
        raw_body: Exact request bytes, when the transport has them. Signatures
            are checked against these in preference to the parsed payload.
    """

    service: str
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)
    event: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    raw_body: bytes | None = None

    def __post_init__(self) -> None:
        if self.headers is None:
            self.headers = {}

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    def signed_content(self) -> Any:
        """What the sender's signature covers: raw bytes if known, else the payload."""
        if self.raw_body is not None:
            return self.raw_body
        return self.payload

    def routed_payload(self) -> Any:
        """Payload handed to the driver, tagged with ``_event`` when an event is set."""
        if self.event and isinstance(self.payload, dict):
            return {**self.payload, "_event": self.event}
        return self.payload


def normalized_result(
    service: str,
    payload: Any,
    event: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build the uniform ``{service, event?, payload, processed}`` webhook result."""
    result: dict[str, Any] = {"service": service}
    if event is not None:
        result["event"] = event
    result["payload"] = payload
    result["processed"] = True
    result.update(extra)
    return result
