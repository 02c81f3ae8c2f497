"""Recurring job entrypoints for lifecycle messaging."""

__all__ = [
    "onboarding",
    "retention",
]
