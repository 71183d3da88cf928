"""
Payments Module

The payable queue, payment creation from approved applications, processing,
cancellation and failure.
"""

from .router import router

__all__ = ["router"]
