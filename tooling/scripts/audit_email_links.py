#!/usr/bin/env python3
"""Audit every link embedded in lifecycle and product emails.

Renders each onboarding variant, each default retention template and the
static link usages against the canonical base URL, then checks that every
absolute URL points at the canonical host and a known route. Exits non-zero
when any link fails so CI can block the deploy.

Example:
    python tooling/scripts/audit_email_links.py --base-url https://bakeriq.app
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit links in lifecycle email templates")
    parser.add_argument(
        "--base-url",
        default=None,
        help="Canonical base URL to audit against (defaults to APP_CANONICAL_URL).",
    )
    return parser.parse_args()


def _run(base_url: str | None) -> bool:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from bakeriq_api.core.urls import canonical_base_url  # type: ignore import-position
    from bakeriq_api.services.lifecycle.link_audit import (  # type: ignore import-position
        format_report,
        run_link_audit,
    )

    report = run_link_audit(base_url or canonical_base_url())
    print(format_report(report))
    for check in report.bad_urls:
        logger.error("Bad email link", url=check.url, host_ok=check.host_ok, path_ok=check.path_ok)
    return report.passed


def main() -> int:
    args = parse_args()
    if not _run(args.base_url):
        logger.error("Email link audit failed")
        return 1
    logger.success("Email link audit passed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
