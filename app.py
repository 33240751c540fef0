import hashlib
import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import (
    Flask,
    jsonify,
    render_template_string,
    request,
    send_file,
)
from werkzeug.exceptions import HTTPException

from call_tokens import (
    DEFAULT_LABEL,
    CallIntent,
    InputValidationError,
    TokenDecodeError,
    decode,
    decode_or_placeholder,
    encode,
    is_valid_phone,
    mask_number,
    require_phone,
)
from dispatcher import CallState, ExotelConfig, dispatch_call, redemption_state
from intent_cache import DEFAULT_MAX_ENTRIES, DEFAULT_TTL_SECONDS, IntentCache
from qr_images import generate_qr_png, generate_qr_svg, qr_data_url

load_dotenv(os.getenv("DOTENV_PATH", ".env"))

logger = logging.getLogger(__name__)

app = Flask(__name__)


def _env_number(name: str, default, cast):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


# Recently generated links, for the admin listing only.
intent_cache = IntentCache(
    max_entries=_env_number("INTENT_CACHE_SIZE", DEFAULT_MAX_ENTRIES, int),
    ttl_seconds=_env_number("INTENT_CACHE_TTL", DEFAULT_TTL_SECONDS, float),
)

_TRUTHY = {"1", "true", "yes", "on"}

PAGE_STYLE = """
    body { font-family: Arial, sans-serif; margin: 2rem auto; max-width: 26rem; padding: 0 1rem; }
    label { display: block; margin-bottom: 0.5rem; }
    input { padding: 0.5rem; width: 100%; box-sizing: border-box; margin-bottom: 1rem; }
    button { padding: 0.5rem 1rem; cursor: pointer; }
    .result { border: 1px solid #ccc; padding: 1.5rem; }
    .success { color: #1b7f3b; }
    .error { color: #b00020; }
"""

INDEX_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>QR Call Bridge</title>
    <style>{{ style }}</style>
</head>
<body>
    <h1>Generate a call QR code</h1>
    <form method="post">
        <label>
            Phone number:
            <input type="tel" name="phoneNumber" value="{{ phone_number|default('') }}" placeholder="+1234567890" required />
        </label>
        <label>
            Label:
            <input type="text" name="label" value="{{ label|default('') }}" placeholder="{{ default_label }}" />
        </label>
        <button type="submit">Generate</button>
    </form>

    {% if error %}
        <p class="error">{{ error }}</p>
    {% endif %}

    {% if result %}
    <div class="result">
        <p>Label: <strong>{{ result.label }}</strong></p>
        <p>Call URL: <a href="{{ result.callUrl }}">{{ result.callUrl }}</a></p>
        <img src="{{ result.qrCode }}" alt="QR Code" />
        <p>
            <a href="{{ url_for('serve_qr_png', token=result.callId) }}">PNG</a> |
            <a href="{{ url_for('serve_qr_svg', token=result.callId) }}">SVG</a>
        </p>
    </div>
    {% endif %}
</body>
</html>
"""

PROMPT_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Make Call</title>
    <style>{{ style }}</style>
</head>
<body>
    <div class="result">
        <h3>Calling: {{ intent.label }}</h3>
        <p><small>Generated: {{ intent.created_at.strftime('%Y-%m-%d %H:%M UTC') }}</small></p>
    </div>
    {% if error %}
        <p class="error">{{ error }}</p>
    {% endif %}
    <form action="{{ form_action }}" method="get">
        {% if call_id %}
        <input type="hidden" name="callId" value="{{ call_id }}" />
        {% endif %}
        <label>
            Your phone number:
            <input type="tel" name="from" value="{{ caller_number|default('') }}" placeholder="+1234567890" required />
        </label>
        <button type="submit">Make Call</button>
    </form>
</body>
</html>
"""

OUTCOME_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{{ title }}</title>
    <style>{{ style }}</style>
</head>
<body>
    <div class="result">
    {% if outcome.simulated %}
        <h2 class="success">Demo Mode - Call Would Work!</h2>
        <p>Would call <strong>{{ outcome.label }}</strong></p>
        <p>From: <strong>{{ outcome.caller_number }}</strong></p>
        <p>To: <strong>{{ outcome.target_number }}</strong></p>
        <p><small>Configure telephony credentials to enable actual calling</small></p>
    {% elif outcome.success %}
        <h2 class="success">Call Initiated Successfully!</h2>
        <p>Calling <strong>{{ outcome.label }}</strong></p>
        <p>You should receive a call shortly on <strong>{{ outcome.caller_number }}</strong></p>
        <p><small>Call ID: {{ outcome.call_sid }}</small></p>
        <p><small>Status: {{ outcome.status }}</small></p>
    {% else %}
        <h2 class="error">Call Failed</h2>
        <p>Unable to initiate call to <strong>{{ outcome.label }}</strong></p>
        <p><small>Error: {{ outcome.error }}</small></p>
    {% endif %}
    </div>
    <p><a href="{{ url_for('index') }}">Generate another QR code</a></p>
</body>
</html>
"""

MESSAGE_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{{ title }}</title>
    <style>{{ style }}</style>
</head>
<body>
    <h2 class="error">{{ title }}</h2>
    <p>{{ message }}</p>
    <p><a href="{{ url_for('index') }}">Go back</a></p>
</body>
</html>
"""


def _render(template: str, **context):
    return render_template_string(template, style=PAGE_STYLE, **context)


def _demo_fallback_enabled() -> bool:
    return os.getenv("DEMO_FALLBACK", "").strip().lower() in _TRUTHY


def _build_call_url(token: str) -> str:
    """
    Build a fully qualified redemption URL.
    Priority:
      1. BASE_URL environment variable (expected behind a proxy or on a PaaS)
      2. Request host URL (useful for local development)
    """
    env_base = os.getenv("BASE_URL")
    if env_base:
        base = env_base.rstrip("/")
    else:
        base = request.url_root.rstrip("/")
    return f"{base}/call/{token}"


def _create_call_link(phone_number: Optional[str], label: Optional[str]) -> Dict[str, Any]:
    phone_number = require_phone(phone_number)
    label = (label or "").strip() or DEFAULT_LABEL

    token = encode(phone_number, label)
    intent_cache.put(token, decode(token))
    call_url = _build_call_url(token)
    logger.info("Generated call link for %s (%s)", mask_number(phone_number), label)
    return {
        "success": True,
        "callId": token,
        "qrCode": qr_data_url(call_url),
        "callUrl": call_url,
        "label": label,
    }


def _resolve_intent(token: Optional[str]) -> Optional[CallIntent]:
    if _demo_fallback_enabled():
        intent = decode_or_placeholder(token)
    else:
        try:
            intent = decode(token)
        except TokenDecodeError as exc:
            logger.info("Rejected call token: %s", exc)
            return None
    if not is_valid_phone(intent.target_number):
        logger.info("Rejected call token with unusable target number")
        return None
    return intent


def _invalid_code_page():
    return (
        _render(
            MESSAGE_TEMPLATE,
            title="Invalid QR Code",
            message="This QR code is not valid. Ask for a new one.",
        ),
        404,
    )


def _redeem(token: Optional[str]):
    intent = _resolve_intent(token)
    if intent is None:
        return _invalid_code_page()

    prompt = {
        "intent": intent,
        "form_action": request.path,
        "call_id": request.values.get("callId"),
    }
    caller_number = (request.values.get("from") or "").strip()
    if redemption_state(caller_number) is CallState.AWAITING_CALLER_NUMBER:
        return _render(PROMPT_TEMPLATE, **prompt)

    if not is_valid_phone(caller_number):
        return (
            _render(
                PROMPT_TEMPLATE,
                caller_number=caller_number,
                error="Invalid phone number format",
                **prompt,
            ),
            400,
        )

    outcome = dispatch_call(caller_number, intent, ExotelConfig.from_env())
    if outcome.simulated:
        title = "Call Demo"
    elif outcome.success:
        title = "Call Initiated"
    else:
        title = "Call Failed"
    return _render(OUTCOME_TEMPLATE, title=title, outcome=outcome), 200 if outcome.success else 502


@app.route("/health", methods=["GET"])
def health_check():
    return jsonify({"status": "ok"}), 200


@app.route("/", methods=["GET", "POST"])
def index():
    context = {"phone_number": "", "label": "", "result": None, "error": None}

    if request.method == "POST":
        context["phone_number"] = request.form.get("phoneNumber", "").strip()
        context["label"] = request.form.get("label", "").strip()
        try:
            context["result"] = _create_call_link(context["phone_number"], context["label"])
        except InputValidationError as exc:
            context["error"] = str(exc)

    return _render(INDEX_TEMPLATE, default_label=DEFAULT_LABEL, **context)


@app.route("/generate-qr", methods=["POST"])
@app.route("/api/generate-qr", methods=["POST"])
def generate_qr():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form

    phone_number = payload.get("phoneNumber")
    label = payload.get("label")
    if phone_number is not None and not isinstance(phone_number, str):
        return jsonify({"error": "Invalid phone number format"}), 400
    if label is not None and not isinstance(label, str):
        return jsonify({"error": "label must be a string"}), 400

    try:
        result = _create_call_link(phone_number, label)
    except InputValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify(result), 200


@app.route("/call/<token>", methods=["GET", "POST"])
def redeem_call(token: str):
    return _redeem(token)


@app.route("/api/call", methods=["GET", "POST"])
def redeem_call_query():
    return _redeem(request.values.get("callId"))


def _qr_target_url(token: str) -> Optional[str]:
    try:
        intent = decode(token)
    except TokenDecodeError:
        return None
    if not is_valid_phone(intent.target_number):
        return None
    return _build_call_url(token)


@app.route("/qr/<token>.png", methods=["GET"])
def serve_qr_png(token: str):
    call_url = _qr_target_url(token)
    if call_url is None:
        return jsonify({"error": "invalid call token"}), 404
    buffer = generate_qr_png(call_url)
    return send_file(buffer, mimetype="image/png", as_attachment=False, download_name="call.png")


@app.route("/qr/<token>.svg", methods=["GET"])
def serve_qr_svg(token: str):
    call_url = _qr_target_url(token)
    if call_url is None:
        return jsonify({"error": "invalid call token"}), 404
    scale = request.args.get("scale", 10, type=int)
    buffer = generate_qr_svg(call_url, scale=scale)
    return send_file(buffer, mimetype="image/svg+xml", as_attachment=False, download_name="call.svg")


def _token_handle(token: str) -> str:
    return hashlib.sha256(token.encode("ascii")).hexdigest()[:12]


@app.route("/admin/mappings", methods=["GET"])
def admin_mappings():
    # Tokens embed the full number, so only a one-way handle is listed.
    rows = [
        {
            "id": _token_handle(token),
            "phoneNumber": mask_number(intent.target_number),
            "label": intent.label,
            "createdAt": intent.created_at.isoformat(),
        }
        for token, intent in intent_cache.items()
    ]
    return jsonify(rows)


@app.errorhandler(Exception)
def handle_unexpected_error(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception("Unhandled error on %s", request.path)
    if request.path.endswith("/generate-qr"):
        return jsonify({"error": "Failed to generate QR code"}), 500
    return (
        _render(MESSAGE_TEMPLATE, title="Error", message="Something went wrong. Please try again."),
        500,
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
