import base64
import binascii
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

DELIMITER = "."
DEFAULT_LABEL = "Unknown Contact"

_PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$", re.ASCII)
_URLSAFE_FIELD = re.compile(r"^[A-Za-z0-9_-]*$")
_MASKED_DIGIT = re.compile(r"\d(?=\d{4})", re.ASCII)


class InputValidationError(ValueError):
    """Raised when a phone number is missing or malformed."""


class TokenDecodeError(ValueError):
    """Raised when a call token cannot be turned back into a CallIntent."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CallIntent:
    target_number: str
    label: str
    created_at: datetime = field(default_factory=_utcnow, compare=False)


PLACEHOLDER_INTENT = CallIntent(target_number="+1234567890", label="Demo Contact")


def is_valid_phone(value: Optional[str]) -> bool:
    return bool(value) and bool(_PHONE_PATTERN.match(value))


def require_phone(value: Optional[str]) -> str:
    """Return the stripped number or raise InputValidationError."""
    value = (value or "").strip()
    if not value:
        raise InputValidationError("Phone number is required")
    if not is_valid_phone(value):
        raise InputValidationError("Invalid phone number format")
    return value


def mask_number(value: str) -> str:
    return _MASKED_DIGIT.sub("*", value)


def _encode_field(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _decode_field(part: str) -> str:
    if not _URLSAFE_FIELD.match(part) or len(part) % 4 == 1:
        raise TokenDecodeError(f"not a base64 field: {part!r}")
    padded = part + "=" * (-len(part) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise TokenDecodeError(f"could not decode field {part!r}") from exc


def encode(target_number: str, label: str, *, unique: bool = True) -> str:
    """
    Build an opaque, URL-safe token for a (target_number, label) pair.

    Each field is URL-safe base64 without padding, so the "." delimiter can
    never appear inside a field. With ``unique`` set, the creation time in
    milliseconds is appended as a third field.
    """
    parts = [_encode_field(target_number), _encode_field(label)]
    if unique:
        parts.append(str(int(time.time() * 1000)))
    return DELIMITER.join(parts)


def _created_at(parts) -> datetime:
    if len(parts) > 2 and parts[2].isdigit():
        try:
            return datetime.fromtimestamp(int(parts[2]) / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            pass
    return _utcnow()


def decode(token: Optional[str]) -> CallIntent:
    if not token:
        raise TokenDecodeError("token is empty")
    parts = token.split(DELIMITER)
    if len(parts) < 2:
        raise TokenDecodeError("token has fewer than two fields")
    if not parts[0]:
        raise TokenDecodeError("token has no target number")
    target_number = _decode_field(parts[0])
    label = _decode_field(parts[1])
    return CallIntent(target_number=target_number, label=label, created_at=_created_at(parts))


def decode_or_placeholder(token: Optional[str]) -> CallIntent:
    """Decode a token, substituting the demo contact for anything malformed."""
    try:
        return decode(token)
    except TokenDecodeError:
        return CallIntent(
            target_number=PLACEHOLDER_INTENT.target_number,
            label=PLACEHOLDER_INTENT.label,
        )
