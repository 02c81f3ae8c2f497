#!/usr/bin/env python3
"""Quick health check for BakerIQ lifecycle messaging endpoints.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$OPERATOR_API_KEY"

The script validates:
  * Lifecycle scheduler: running, and no job with consecutive failures.
  * Onboarding sends: failed sends stay within threshold.
  * Retention sends: failed sends stay within threshold.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BakerIQ lifecycle observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the BakerIQ API service.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Operator API key sent as X-API-Key.",
    )
    parser.add_argument(
        "--max-onboarding-failed",
        type=int,
        default=0,
        help="Maximum allowed failed onboarding sends before failing (default: 0).",
    )
    parser.add_argument(
        "--max-retention-failed",
        type=int,
        default=0,
        help="Maximum allowed failed retention sends before failing (default: 0).",
    )
    parser.add_argument(
        "--allow-scheduler-disabled",
        action="store_true",
        help="Do not fail when the in-process scheduler is disabled (cron-driven deployments).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


async def _get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


def _fail(message: str) -> None:
    print(f"[check-observability] ❌ {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] ✅ {message}")


async def validate_scheduler(
    client: httpx.AsyncClient,
    headers: Dict[str, str],
    allow_disabled: bool,
) -> None:
    payload = await _get_json(client, "/api/v1/lifecycle/scheduler/health", headers=headers)
    if not payload.get("running"):
        if allow_disabled and not payload.get("enabled"):
            _log_ok("Lifecycle scheduler disabled; skipping job checks")
            return
        _fail("Lifecycle scheduler is not running")

    failing = [
        job.get("id")
        for job in payload.get("jobs", [])
        if ((job.get("metrics") or {}).get("totals") or {}).get("consecutive_failures", 0) > 0
    ]
    if failing:
        _fail(f"Lifecycle jobs failing: {', '.join(str(job_id) for job_id in failing)}")

    totals = payload.get("totals", {})
    _log_ok(
        f"Lifecycle scheduler OK (runs={totals.get('runs', 0)}, "
        f"failures={totals.get('failures', 0)})"
    )


async def validate_onboarding(client: httpx.AsyncClient, headers: Dict[str, str], max_failed: int) -> None:
    payload = await _get_json(client, "/api/v1/lifecycle/onboarding/stats", headers=headers)
    failed = sum(int(value) for value in (payload.get("failedByKey") or {}).values())
    if failed > max_failed:
        _fail(f"Onboarding failed sends {failed} exceed threshold {max_failed}")
    _log_ok(f"Onboarding sends OK (sent_last_7_days={payload.get('sentLast7Days', 0)}, failed={failed})")


async def validate_retention(client: httpx.AsyncClient, headers: Dict[str, str], max_failed: int) -> None:
    payload = await _get_json(client, "/api/v1/lifecycle/retention/stats", headers=headers)
    failed = int(payload.get("totalFailed", 0))
    if failed > max_failed:
        _fail(f"Retention failed sends {failed} exceed threshold {max_failed}")
    _log_ok(
        f"Retention sends OK (sent={payload.get('totalSent', 0)}, failed={failed}, "
        f"open_rate={payload.get('openRate', 0.0)}%)"
    )


async def main() -> None:
    args = parse_args()
    headers = {"X-API-Key": args.api_key} if args.api_key else {}

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        await validate_scheduler(client, headers, allow_disabled=args.allow_scheduler_disabled)
        await validate_onboarding(client, headers, max_failed=args.max_onboarding_failed)
        await validate_retention(client, headers, max_failed=args.max_retention_failed)

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except Exception as exc:  # pragma: no cover - best-effort logging
        _fail(f"Unexpected error: {exc}")
