import argparse
import base64
import json
from pathlib import Path
from typing import Any, Dict

import requests

DATA_URL_PREFIX = "data:image/png;base64,"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate a call QR code through a running server."
    )
    parser.add_argument("phone_number", help="Number the QR code should call.")
    parser.add_argument("--label", default=None, help="Display name shown to the caller.")
    parser.add_argument(
        "--host",
        default="http://127.0.0.1:5000",
        help="Server host (default: http://127.0.0.1:5000).",
    )
    parser.add_argument(
        "--qr-output",
        type=Path,
        default=Path("qr_code.png"),
        help="Path to save the QR code image (default: qr_code.png).",
    )
    parser.add_argument(
        "--call-from",
        default=None,
        help="Also redeem the code as this caller number and print the outcome page.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload instead of sending the request.",
    )
    return parser.parse_args()


def save_qr_code(data_url: str, output_path: Path) -> None:
    encoded = data_url[len(DATA_URL_PREFIX):] if data_url.startswith(DATA_URL_PREFIX) else data_url
    output_path.write_bytes(base64.b64decode(encoded))


def main() -> None:
    args = parse_args()
    payload: Dict[str, Any] = {"phoneNumber": args.phone_number}
    if args.label:
        payload["label"] = args.label

    if args.dry_run:
        print(json.dumps(payload, indent=2))
        return

    host = args.host.rstrip("/")
    response = requests.post(f"{host}/generate-qr", json=payload, timeout=10)

    print(f"Status: {response.status_code}")
    response.raise_for_status()
    data = response.json()
    qr_code = data.pop("qrCode", None)
    print(json.dumps(data, indent=2))

    if qr_code:
        save_qr_code(qr_code, args.qr_output)
        print(f"Saved QR code to {args.qr_output.resolve()}")
    else:
        print("No QR code returned in response.")

    if args.call_from:
        redeem = requests.get(data["callUrl"], params={"from": args.call_from}, timeout=30)
        print(f"Redeem status: {redeem.status_code}")
        print(redeem.text)


if __name__ == "__main__":
    main()
