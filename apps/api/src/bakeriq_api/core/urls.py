"""Canonical URL helpers for links embedded in outbound email."""

from __future__ import annotations

from urllib.parse import urlparse

from .settings import Settings, get_settings


def canonical_base_url(settings: Settings | None = None) -> str:
    return (settings or get_settings()).app_canonical_url.rstrip("/")


def canonical_host(base_url: str | None = None) -> str:
    parsed = urlparse(base_url or canonical_base_url())
    return (parsed.netloc or "bakeriq.app").lower()


def build_app_url(pathname: str, base_url: str | None = None) -> str:
    """Join a route onto the canonical base, tolerating a missing leading slash."""

    normalized = pathname if pathname.startswith("/") else f"/{pathname}"
    return f"{(base_url or canonical_base_url()).rstrip('/')}{normalized}"


__all__ = ["build_app_url", "canonical_base_url", "canonical_host"]
