"""Email related Celery tasks"""
from __future__ import annotations

from decimal import Decimal

from celery import shared_task

from ..utils.base_task import BaseTask, _mask
from core.logging_config import get_logger

logger = get_logger(__name__)


def render_order_confirmation(order_id: str, line_items: list[dict], gift_items: list[dict]) -> str:
    """Plain-text receipt body listing every ticket and gift line."""
    lines = [f"Thank you for your order {order_id}.", "", "Tickets:"]
    total = Decimal("0")
    for item in line_items:
        subtotal = Decimal(str(item.get("subtotal") or item.get("price", "0")))
        total += subtotal
        lines.append(f"  {item['name']} x{item['quantity']}  {item['price']}  = {subtotal:.2f}")
    if gift_items:
        lines.append("")
        lines.append("Gifts:")
        for item in gift_items:
            lines.append(f"  {item['name']} x{item['quantity']}")
    lines.append("")
    lines.append(f"Total paid: {total:.2f}")
    return "\n".join(lines)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_order_confirmation_email(
    self,
    email: str,
    line_items: list[dict],
    gift_items: list[dict],
    order_id: str,
) -> str:
    """Render the confirmation for a settled order and hand it to the mailer.

    Delivery is a log line until an SMTP/ESP integration is wired in.
    """
    body = render_order_confirmation(order_id, line_items, gift_items)
    logger.info(
        "order_confirmation_email_sent",
        order_id=order_id,
        email=_mask(email),
        line_count=len(line_items),
        gift_count=len(gift_items),
    )
    return body
