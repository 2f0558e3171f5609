"""
Payment gateway adapters.
"""
from .payu_client import PayUClient

__all__ = ["PayUClient"]
