"""
Services layer for the REST API.
"""

from .domain import QrSessionService, SharedCartService

__all__ = ["QrSessionService", "SharedCartService"]
