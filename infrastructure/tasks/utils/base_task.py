"""Common base task for Celery jobs"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

# Task kwargs that identify a buyer; logged only in masked form
_PII_KWARGS = {"email", "phone"}


def _mask(value: object) -> str:
    text = str(value)
    if "@" in text:
        local, _, domain = text.partition("@")
        return f"{local[:1]}***@{domain}"
    return f"***{text[-2:]}" if len(text) > 2 else "***"


def _loggable_kwargs(kwargs: dict | None) -> dict:
    # line item lists can be long; the order id is what operators search by
    safe = {}
    for key, value in (kwargs or {}).items():
        if key in _PII_KWARGS:
            safe[key] = _mask(value)
        elif isinstance(value, list):
            safe[key] = f"<{len(value)} items>"
        else:
            safe[key] = value
    return safe


class BaseTask(Task):
    """Structured success/failure logging for every task."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            kwargs=_loggable_kwargs(kwargs),
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            order_id=(kwargs or {}).get("order_id"),
            retries=self.request.retries,
            exc=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
            order_id=(kwargs or {}).get("order_id"),
        )
        super().on_success(retval, task_id, args, kwargs)
