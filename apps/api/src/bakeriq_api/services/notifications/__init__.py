"""Notification delivery package."""

from .backend import (
    DisabledEmailBackend,
    EmailBackend,
    InMemoryEmailBackend,
    SESEmailBackend,
    SMTPEmailBackend,
    build_email_backend,
)

__all__ = [
    "DisabledEmailBackend",
    "EmailBackend",
    "InMemoryEmailBackend",
    "SESEmailBackend",
    "SMTPEmailBackend",
    "build_email_backend",
]
