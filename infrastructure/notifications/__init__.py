from .order_notifier import CeleryOrderNotifier

__all__ = ["CeleryOrderNotifier"]
