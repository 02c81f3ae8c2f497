"""Versioned API endpoints."""
