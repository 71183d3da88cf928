"""
Enrollment Verification Module

Proof-of-enrollment review between approval and final approval of an aid
application.
"""

from .router import router

__all__ = ["router"]
