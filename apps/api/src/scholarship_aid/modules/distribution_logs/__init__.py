"""
Distribution Logs Module

Batch logging of completed payments, one log per payment.
"""

from .router import router

__all__ = ["router"]
