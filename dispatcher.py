import enum
import logging
import os
from dataclasses import dataclass
from typing import Optional

import requests

from call_tokens import CallIntent, InputValidationError, is_valid_phone, mask_number

logger = logging.getLogger(__name__)

SID_PLACEHOLDER = "your_exotel_sid_here"
TOKEN_PLACEHOLDER = "your_exotel_token_here"
CALLER_ID_PLACEHOLDER = "your_exotel_virtual_number"

DEFAULT_SUBDOMAIN = "api.exotel.com"
DEFAULT_TIMEOUT = 10.0


class CallState(enum.Enum):
    AWAITING_CALLER_NUMBER = "awaiting_caller_number"
    DISPATCHED = "dispatched"


def redemption_state(caller_number: Optional[str]) -> CallState:
    if caller_number and caller_number.strip():
        return CallState.DISPATCHED
    return CallState.AWAITING_CALLER_NUMBER


@dataclass(frozen=True)
class ExotelConfig:
    sid: str = ""
    token: str = ""
    caller_id: str = ""
    subdomain: str = DEFAULT_SUBDOMAIN
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "ExotelConfig":
        raw_timeout = os.getenv("EXOTEL_TIMEOUT", "")
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError:
            logger.warning("Ignoring non-numeric EXOTEL_TIMEOUT=%r", raw_timeout)
            timeout = DEFAULT_TIMEOUT
        return cls(
            sid=os.getenv("EXOTEL_SID", "").strip(),
            token=os.getenv("EXOTEL_TOKEN", "").strip(),
            caller_id=os.getenv("FROM_NUMBER", "").strip(),
            subdomain=os.getenv("EXOTEL_SUBDOMAIN", "").strip() or DEFAULT_SUBDOMAIN,
            timeout=timeout,
        )

    @property
    def is_configured(self) -> bool:
        """False when any credential is missing or still its example value."""
        pairs = (
            (self.sid, SID_PLACEHOLDER),
            (self.token, TOKEN_PLACEHOLDER),
            (self.caller_id, CALLER_ID_PLACEHOLDER),
        )
        return all(value and value != placeholder for value, placeholder in pairs)

    @property
    def connect_url(self) -> str:
        return f"https://{self.subdomain}/v1/Accounts/{self.sid}/Calls/connect.json"


@dataclass(frozen=True)
class DispatchOutcome:
    success: bool
    caller_number: str
    target_number: str
    label: str
    simulated: bool = False
    call_sid: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @property
    def state(self) -> CallState:
        return CallState.DISPATCHED


def _vendor_message(response: Optional[requests.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    if body.get("message"):
        return str(body["message"])
    rest_exception = body.get("RestException")
    if isinstance(rest_exception, dict) and rest_exception.get("Message"):
        return str(rest_exception["Message"])
    return None


def dispatch_call(
    caller_number: str,
    intent: CallIntent,
    config: ExotelConfig,
    session: Optional[requests.Session] = None,
) -> DispatchOutcome:
    """
    Bridge ``caller_number`` to the intent's target number.

    Without usable credentials the outcome is simulated and nothing is sent.
    Otherwise a single connect request is issued; vendor and transport
    failures come back as an unsuccessful outcome rather than an exception.
    """
    caller_number = (caller_number or "").strip()
    if not is_valid_phone(caller_number):
        raise InputValidationError("Invalid caller number format")
    if not is_valid_phone(intent.target_number):
        raise InputValidationError("Invalid target number format")

    base = {
        "caller_number": caller_number,
        "target_number": intent.target_number,
        "label": intent.label,
    }

    if not config.is_configured:
        logger.info(
            "Telephony not configured; simulating call %s -> %s",
            mask_number(caller_number),
            mask_number(intent.target_number),
        )
        return DispatchOutcome(success=True, simulated=True, status="simulated", **base)

    http = session or requests
    form = {
        "From": caller_number,
        "To": intent.target_number,
        "CallerId": config.caller_id,
        "CallType": "trans",
    }
    response = None
    try:
        response = http.post(
            config.connect_url,
            data=form,
            auth=(config.sid, config.token),
            timeout=config.timeout,
        )
        response.raise_for_status()
        call = response.json()["Call"]
        call_sid, status = call["Sid"], call["Status"]
    except requests.JSONDecodeError as exc:
        logger.error("Non-JSON telephony API response: %r", exc)
        return DispatchOutcome(success=False, error="Malformed response from telephony API: body is not JSON", **base)
    except requests.RequestException as exc:
        if exc.response is not None:
            response = exc.response
        message = _vendor_message(response) or str(exc)
        logger.error("Telephony API error: %s", message)
        return DispatchOutcome(success=False, error=message, **base)
    except (ValueError, KeyError, TypeError) as exc:
        logger.error("Malformed telephony API response: %r", exc)
        return DispatchOutcome(success=False, error=f"Malformed response from telephony API: {exc}", **base)

    logger.info("Call %s queued with status %s", call_sid, status)
    return DispatchOutcome(success=True, call_sid=str(call_sid), status=str(status), **base)
