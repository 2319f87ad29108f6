"""
Package initializer for the academy messaging backend.

The Celery application is imported here so that shared tasks use
`academy_backend.celery_app` by default, avoiding duplicate worker setups.
"""
from .celery import celery_app  # noqa: F401

__all__ = ["celery_app"]
