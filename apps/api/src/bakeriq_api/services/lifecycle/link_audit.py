"""Offline audit of every link embedded in lifecycle and product emails.

Renders each onboarding variant, each default retention template and the
static link usages elsewhere in the product against the canonical base URL,
then checks that every absolute URL stays on the canonical host and lands on
a known application route.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Iterable, List, Sequence
from urllib.parse import urlparse

from bakeriq_api.core.urls import build_app_url, canonical_host

from .onboarding_templates import iter_onboarding_variants, render_onboarding_email
from .rendering import build_tokens
from .templates import DEFAULT_RETENTION_TEMPLATES, RetentionTemplateDraft, render_retention_email

KNOWN_ROUTE_PREFIXES: tuple[str, ...] = (
    "/",
    "/login",
    "/signup",
    "/dashboard",
    "/leads",
    "/quotes",
    "/customers",
    "/calendar",
    "/pricing",
    "/pricing-calculator",
    "/payments",
    "/referrals",
    "/refer",
    "/share",
    "/settings",
    "/admin",
    "/c/",
    "/q/",
    "/verify-email",
    "/terms",
    "/privacy",
    "/feedback",
    "/partners",
    "/email-preferences/",
    "/help",
    "/faq",
    "/onboarding",
    "/forgot-password",
    "/reset-password",
    "/join/",
    "/unsubscribe",
)

BLOCKED_HOSTS: tuple[str, ...] = ("replit.dev", "localhost", "127.0.0.1", "0.0.0.0")

# Links built outside the lifecycle templates: shared footers, milestone
# celebrations, announcements, admin-composed and partner-program emails.
STATIC_LINK_USAGES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("footer/baker_email", ("/email-preferences/test-token", "/")),
    ("footer/customer_email", ("/",)),
    ("milestone/pricing_live", ("/share",)),
    ("milestone/first_lead", ("/leads",)),
    ("milestone/first_quote", ("/quotes",)),
    ("milestone/first_payment", ("/dashboard",)),
    ("announcement/feature_update", ("/login",)),
    ("admin/dynamic_email", ("/login", "/c/test-baker", "/join/r/abc123")),
    ("partner/application_confirmation", ("/", "/admin")),
    ("partner/admin_notification", ("/", "/admin")),
)

URL_PATTERN = re.compile(r"https?://[^\s\"'<>]+")

SAMPLE_RECIPIENT = SimpleNamespace(
    email="baker@example.com",
    business_name="Test Bakery",
    first_name="Test",
    slug="test-baker",
)


@dataclass(frozen=True)
class UrlCheck:
    url: str
    host: str
    path: str
    host_ok: bool
    path_ok: bool

    @property
    def ok(self) -> bool:
        return self.host_ok and self.path_ok


@dataclass
class TemplateAudit:
    name: str
    urls: List[UrlCheck] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(check.ok for check in self.urls)


@dataclass
class AuditReport:
    base_url: str
    templates: List[TemplateAudit] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(template.passed for template in self.templates)

    @property
    def bad_urls(self) -> List[UrlCheck]:
        return [check for template in self.templates for check in template.urls if not check.ok]

    @property
    def total_urls(self) -> int:
        return sum(len(template.urls) for template in self.templates)


def extract_urls(text: str) -> List[str]:
    """Absolute URLs in first-seen order, entity-decoded, trailing punctuation trimmed."""

    seen: dict[str, None] = {}
    for match in URL_PATTERN.findall(text or ""):
        seen.setdefault(html.unescape(match).rstrip(".,;:!?)"), None)
    return list(seen)


def is_known_path(path: str) -> bool:
    """Root matches only exactly; other prefixes match whole path segments."""

    clean = path.rstrip("/") or "/"
    if clean == "/":
        return True
    for prefix in KNOWN_ROUTE_PREFIXES:
        if prefix == "/":
            continue
        if prefix.endswith("/"):
            if clean.startswith(prefix):
                return True
        elif clean == prefix or clean.startswith(prefix + "/"):
            return True
    return False


def is_blocked_host(host: str) -> bool:
    return any(blocked in host for blocked in BLOCKED_HOSTS)


def check_url(url: str, expected_host: str) -> UrlCheck:
    try:
        parsed = urlparse(url)
    except ValueError:
        return UrlCheck(url=url, host="INVALID", path="INVALID", host_ok=False, path_ok=False)
    host = parsed.netloc.lower()
    path = parsed.path or "/"
    return UrlCheck(
        url=url,
        host=host,
        path=path,
        host_ok=host == expected_host and not is_blocked_host(host),
        path_ok=is_known_path(path),
    )


def audit_rendered(name: str, *bodies: str, base_url: str) -> TemplateAudit:
    expected_host = canonical_host(base_url)
    urls = extract_urls("\n".join(bodies))
    return TemplateAudit(name=name, urls=[check_url(url, expected_host) for url in urls])


def _static_usage_html(paths: Sequence[str], base_url: str) -> str:
    return "\n".join(f'<a href="{build_app_url(path, base_url)}">{path}</a>' for path in paths)


def _retention_audit_name(draft: RetentionTemplateDraft, index: int) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", draft.name.lower()).strip("_")
    return f"retention/{draft.segment.value}/{slug or index}"


def run_link_audit(
    base_url: str,
    *,
    retention_templates: Iterable[RetentionTemplateDraft] = DEFAULT_RETENTION_TEMPLATES,
) -> AuditReport:
    base = base_url.rstrip("/")
    report = AuditReport(base_url=base)

    for _day, connected, template in iter_onboarding_variants():
        email = render_onboarding_email(template, SAMPLE_RECIPIENT.business_name, base)
        variant = "connected" if connected else "not_connected"
        report.templates.append(
            audit_rendered(f"onboarding/{template.key}/{variant}", email.html_body, email.text_body, base_url=base)
        )

    tokens = build_tokens(SAMPLE_RECIPIENT, base)
    for index, draft in enumerate(retention_templates):
        email = render_retention_email(draft, tokens, base_url=base)
        report.templates.append(
            audit_rendered(_retention_audit_name(draft, index), email.html_body, email.text_body, base_url=base)
        )

    for name, paths in STATIC_LINK_USAGES:
        report.templates.append(audit_rendered(name, _static_usage_html(paths, base), base_url=base))

    return report


def format_report(report: AuditReport) -> str:
    lines = [
        "========================================",
        "  BakerIQ Email Link Audit Report",
        f"  Canonical URL: {report.base_url}",
        "========================================",
        "",
    ]
    for template in report.templates:
        lines.append(f"[{'PASS' if template.passed else 'FAIL'}] {template.name}")
        if not template.urls:
            lines.append("  (no URLs found)")
        for check in template.urls:
            lines.append(f"  {check.url}")
            lines.append(
                f"    Host: {'OK' if check.host_ok else 'BAD'} ({check.host})"
                f"  Path: {'OK' if check.path_ok else 'BAD'} ({check.path})"
            )
        lines.append("")

    passed_templates = sum(1 for template in report.templates if template.passed)
    total_urls = report.total_urls
    lines.extend(
        [
            "========================================",
            f"  Templates: {passed_templates}/{len(report.templates)} passed",
            f"  URLs: {total_urls - len(report.bad_urls)}/{total_urls} valid",
            "========================================",
        ]
    )
    return "\n".join(lines)


__all__ = [
    "AuditReport",
    "BLOCKED_HOSTS",
    "KNOWN_ROUTE_PREFIXES",
    "STATIC_LINK_USAGES",
    "TemplateAudit",
    "UrlCheck",
    "audit_rendered",
    "check_url",
    "extract_urls",
    "format_report",
    "is_known_path",
    "run_link_audit",
]
