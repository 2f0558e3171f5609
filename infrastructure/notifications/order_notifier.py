"""
OrderNotifier adapter backed by the Celery email task.
"""
from __future__ import annotations

import asyncio
from typing import Optional, Sequence

from core.logging_config import get_logger
from domain.common.exceptions import DependencyFailureException
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryOrderNotifier:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self.dispatcher = dispatcher or TaskDispatcher()

    async def send_order_confirmation(
        self,
        email: str,
        line_items: Sequence[dict],
        gift_items: Sequence[dict],
        order_id: str,
    ) -> None:
        # Publishing talks to the broker synchronously; keep it off the event loop.
        try:
            await asyncio.to_thread(
                self.dispatcher.send_order_confirmation,
                email,
                line_items,
                gift_items,
                order_id,
            )
        except Exception as exc:
            raise DependencyFailureException("task_broker", f"Could not enqueue order confirmation: {exc}") from exc
        logger.info("order_confirmation_enqueued", order_id=order_id)
