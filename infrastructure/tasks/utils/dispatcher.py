"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Sequence

from ..tasks.email import send_order_confirmation_email


class TaskDispatcher:
    """Internal facade used by infrastructure adapters to schedule tasks."""

    def send_order_confirmation(
        self,
        email: str,
        line_items: Sequence[dict],
        gift_items: Sequence[dict],
        order_id: str,
    ) -> None:
        # apply_async honours task_always_eager in development and tests
        send_order_confirmation_email.apply_async(
            kwargs={
                "email": email,
                "line_items": list(line_items),
                "gift_items": list(gift_items),
                "order_id": order_id,
            },
        )
