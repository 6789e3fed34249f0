from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence


@dataclass(frozen=True, slots=True)
class MarketDeskError(Exception):
    """
    MarketDeskError — platform-level error contract for the HTTP read surface.

    Related:
      - apps/api/common/errors.py
      - apps/api/routes/candles.py
    """

    code: str
    message: str
    details: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        """
        Validate error fields and freeze details into deterministic plain payloads.

        Args:
            None.
        Returns:
            None.
        Assumptions:
            `code` is a stable machine-readable token used for HTTP status mapping.
        Raises:
            ValueError: If `code` or `message` are blank.
            TypeError: If `details` is not mapping-compatible when provided.
        Side Effects:
            Replaces frozen slot `details` with a normalized payload copy.
        """
        normalized_code = self.code.strip()
        normalized_message = self.message.strip()
        if not normalized_code:
            raise ValueError("MarketDeskError.code must be non-empty")
        if not normalized_message:
            raise ValueError("MarketDeskError.message must be non-empty")

        object.__setattr__(self, "code", normalized_code)
        object.__setattr__(self, "message", normalized_message)

        if self.details is None:
            return
        if not isinstance(self.details, Mapping):
            raise TypeError("MarketDeskError.details must be a mapping when provided")
        object.__setattr__(self, "details", _normalize_payload_value(value=dict(self.details)))

    def to_payload(self) -> dict[str, Any]:
        """`{"error": {"code", "message", "details"}}` payload."""
        details_payload: Mapping[str, Any] = self.details if self.details is not None else {}
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": dict(details_payload),
            }
        }


def _normalize_payload_value(*, value: Any) -> Any:
    """
    Normalize nested payload values into deterministic plain-Python structures.

    Non-JSON scalars are stringified; mapping keys are sorted.
    """
    if isinstance(value, Mapping):
        return {
            str(raw_key): _normalize_payload_value(value=raw_value)
            for raw_key, raw_value in sorted(value.items(), key=lambda item: str(item[0]))
        }

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_normalize_payload_value(value=item) for item in value]

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value

    return str(value)
