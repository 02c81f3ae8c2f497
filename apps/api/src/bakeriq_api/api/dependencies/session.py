"""Request-scoped dependencies for lifecycle operator APIs."""

from __future__ import annotations

from fastapi import Depends, Request

from bakeriq_api.core.settings import Settings, get_settings
from bakeriq_api.services.notifications.backend import EmailBackend, build_email_backend


def get_email_backend(request: Request, settings: Settings = Depends(get_settings)) -> EmailBackend:
    """Reuse the application's delivery backend, building one from settings if absent."""

    backend = getattr(request.app.state, "email_backend", None)
    if backend is None:
        backend = build_email_backend(settings)
        request.app.state.email_backend = backend
    return backend


__all__ = ["get_email_backend"]
