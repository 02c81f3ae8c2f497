#!/usr/bin/env python3
"""Run one lifecycle email pass outside the in-process scheduler.

Intended usage: cron or a workflow runner when the API scheduler is disabled.

Example:
    python tooling/scripts/run_lifecycle_emails.py onboarding
    python tooling/scripts/run_lifecycle_emails.py retention --dry-run

Use `--dry-run` to exercise eligibility and rendering without sending real
emails. Messages are captured by the in-memory backend and every ledger write
is rolled back, so onboarding days and retention cool-downs are untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dispatch lifecycle emails")
    parser.add_argument("job", choices=("onboarding", "retention"), help="Which lifecycle pass to run.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Capture emails in memory and roll back all ledger writes.",
    )
    return parser.parse_args()


async def _run(job: str, dry_run: bool) -> Dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from bakeriq_api.db.session import async_session, discarding_session_factory  # type: ignore import-position
    from bakeriq_api.jobs.onboarding import dispatch_onboarding_emails  # type: ignore import-position
    from bakeriq_api.jobs.retention import dispatch_retention_emails  # type: ignore import-position
    from bakeriq_api.services.notifications import InMemoryEmailBackend  # type: ignore import-position

    dispatch = dispatch_onboarding_emails if job == "onboarding" else dispatch_retention_emails
    if not dry_run:
        return await dispatch(session_factory=async_session)
    async with discarding_session_factory() as session_factory:
        return await dispatch(session_factory=session_factory, backend=InMemoryEmailBackend())


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.job, args.dry_run))
    logger.success("Lifecycle email run completed", job=args.job, dry_run=args.dry_run, **summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
