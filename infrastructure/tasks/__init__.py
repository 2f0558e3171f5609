"""Celery task infrastructure package.

Exposes the configured Celery app and the dispatcher facade used by the
order notifier.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
