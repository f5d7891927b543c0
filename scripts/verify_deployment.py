#!/usr/bin/env python3
"""Deployment smoke test for the Buddy AI backend.

Usage:
    python scripts/verify_deployment.py --backend-url https://api.example.com

Checks that /health/ready reports ready, that procedures reject anonymous
callers with the RPC error envelope, and that dashboard pages redirect to
/sign-in. Exit code 0 if all checks pass, 1 if any fail.
"""

import argparse
import json
import sys
from typing import Tuple

import httpx

TIMEOUT = 15.0


def check_health(url: str) -> Tuple[bool, str]:
    """Verify /health/ready returns HTTP 200 with every dependency ok."""
    health_url = url.rstrip("/") + "/health/ready"
    try:
        response = httpx.get(health_url, timeout=TIMEOUT, follow_redirects=True)
        try:
            data = response.json()
        except ValueError:
            return False, f"HTTP {response.status_code}, response is not valid JSON"

        if response.status_code == 200 and data.get("status") == "ready":
            return True, "All checks healthy"

        checks = data.get("checks", {})
        failed = [
            name for name, value in checks.items()
            if not name.endswith("_error") and value != "ok"
        ]
        if failed:
            return False, f"Degraded: {', '.join(failed)}"
        return False, f"HTTP {response.status_code}, status: {data.get('status', 'unknown')}"

    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.ConnectError as exc:
        return False, f"Connection failed: {exc}"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def check_rpc_requires_session(url: str) -> Tuple[bool, str]:
    """Verify an anonymous agents.getMany call is rejected as UNAUTHORIZED."""
    rpc_url = url.rstrip("/") + "/api/trpc/agents.getMany"
    try:
        response = httpx.get(rpc_url, params={"input": json.dumps({})}, timeout=TIMEOUT)
        if response.status_code != 401:
            return False, f"Expected HTTP 401, got {response.status_code}"
        try:
            code = response.json()["error"]["code"]
        except (ValueError, KeyError, TypeError):
            return False, "Response is not an RPC error envelope"
        if code != "UNAUTHORIZED":
            return False, f"Unexpected error code {code}"
        return True, "HTTP 401 UNAUTHORIZED"

    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.ConnectError as exc:
        return False, f"Connection failed: {exc}"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def check_page_redirect(url: str) -> Tuple[bool, str]:
    """Verify an anonymous visit to /meetings redirects to /sign-in."""
    page_url = url.rstrip("/") + "/meetings"
    try:
        response = httpx.get(page_url, timeout=TIMEOUT, follow_redirects=False)
        location = response.headers.get("location", "")
        if response.status_code == 303 and location.endswith("/sign-in"):
            return True, "HTTP 303 -> /sign-in"
        return False, f"HTTP {response.status_code}, location={location or '-'}"

    except httpx.TimeoutException:
        return False, "Request timed out"
    except httpx.ConnectError as exc:
        return False, f"Connection failed: {exc}"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"


def print_results(results: list) -> None:
    """Print a formatted table of check results."""
    header = f"{'CHECK':<25} {'STATUS':<10} {'DETAIL'}"
    separator = "-" * 70
    print()
    print(separator)
    print(header)
    print(separator)
    for name, passed, detail in results:
        status = "PASS" if passed else "FAIL"
        print(f"{name:<25} {status:<10} {detail}")
    print(separator)
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify a Buddy AI backend deployment")
    parser.add_argument(
        "--backend-url",
        required=True,
        help="Base URL of the backend API",
    )
    args = parser.parse_args()

    results = []

    passed, detail = check_health(args.backend_url)
    results.append(("Readiness", passed, detail))

    passed, detail = check_rpc_requires_session(args.backend_url)
    results.append(("RPC session gate", passed, detail))

    passed, detail = check_page_redirect(args.backend_url)
    results.append(("Page redirect", passed, detail))

    print_results(results)

    all_passed = all(passed for _, passed, _ in results)
    if all_passed:
        print("All checks passed.")
    else:
        print("Some checks FAILED.")

    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
