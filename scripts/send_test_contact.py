#!/usr/bin/env python3
"""
Dev helper: submit a test contact form to the local portfolio backend.

Fetches a CSRF token from /api/csrf-token, then POSTs a contact form to
/api/contact with that token in the X-CSRF-Token header.

Usage
-----
# Basic - valid submission against localhost:8000
python scripts/send_test_contact.py

# Custom sender / message
python scripts/send_test_contact.py --email jane@acme.io --message "..."

# Send the same CSRF token twice (second attempt should get 403)
python scripts/send_test_contact.py --reuse-token

# Fire N submissions to watch the rate limiter kick in (429)
python scripts/send_test_contact.py --repeat 7

# Target a different backend URL
python scripts/send_test_contact.py --url http://staging.example.com

Bot verification
----------------
Pass a real widget token with --bot-token, or run the backend with
BOT_SCORE_THRESHOLD=0 so verification is skipped.
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv

_DEFAULT_MESSAGE = (
    "Hello! This is a test message sent from the contact form dev helper "
    "script to check the whole submission pipeline end to end."
)


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    for header in ("X-RateLimit-Remaining", "Retry-After"):
        if header in response.headers:
            print(f"{header}: {response.headers[header]}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


def _fetch_csrf_token(client: httpx.Client, base_url: str) -> str | None:
    response = client.get(f"{base_url}/api/csrf-token")
    if response.status_code != 200:
        _print_response(response)
        return None
    return response.json()["token"]


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # Locate project root (scripts/ lives one level below the root)
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_contact.py",
        description=textwrap.dedent("""\
            Submit a test contact form to the portfolio backend.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_contact.py
              python scripts/send_test_contact.py --repeat 7
              python scripts/send_test_contact.py --reuse-token
        """),
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Backend base URL")
    parser.add_argument("--first-name", default="Test")
    parser.add_argument("--last-name", default="User")
    parser.add_argument("--email", default="jane.doe@example.com")
    parser.add_argument("--message", default=_DEFAULT_MESSAGE)
    parser.add_argument(
        "--bot-token",
        default=os.getenv("TEST_BOT_TOKEN", "dev-bot-token"),
        help="Turnstile/reCAPTCHA token to send (default: TEST_BOT_TOKEN or a dummy)",
    )
    parser.add_argument("--repeat", type=int, default=1, help="Number of submissions to send")
    parser.add_argument(
        "--reuse-token",
        action="store_true",
        help="Reuse the first CSRF token for every submission",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the payload without sending it.")

    args = parser.parse_args()
    base_url = args.url.rstrip("/")

    payload = {
        "firstName": args.first_name,
        "lastName": args.last_name,
        "email": args.email,
        "message": args.message,
        "turnstileToken": args.bot_token,
    }

    print(f"Endpoint : {base_url}/api/contact")
    print(f"From     : {args.first_name} {args.last_name} <{args.email}>")
    print(f"Attempts : {args.repeat}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    exit_code = 0
    with httpx.Client(timeout=30) as client:
        token = None
        for attempt in range(1, args.repeat + 1):
            if token is None or not args.reuse_token:
                token = _fetch_csrf_token(client, base_url)
                if token is None:
                    return 1

            print(f"\n--- Attempt {attempt} ---")
            response = client.post(
                f"{base_url}/api/contact",
                json=payload,
                headers={"X-CSRF-Token": token},
            )
            _print_response(response)
            if response.status_code != 200:
                exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
