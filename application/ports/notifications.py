"""
Notification port used to tell the buyer their order went through.
"""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class OrderNotifier(Protocol):
    """Fire-and-forget from the caller's perspective.

    ``line_items``/``gift_items`` are dicts with ``name``, ``quantity`` and
    ``price`` already resolved for display.
    """

    async def send_order_confirmation(
        self,
        email: str,
        line_items: Sequence[dict],
        gift_items: Sequence[dict],
        order_id: str,
    ) -> None: ...
