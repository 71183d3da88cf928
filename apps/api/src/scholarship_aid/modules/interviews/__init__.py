"""
Interviews Module

Interview slot booking on a fixed daily grid, rescheduling, completion,
cancellation and no-shows, plus scored evaluations whose recommendation is
forwarded to the application's complete_interview transition.
"""

from .router import router

__all__ = ["router"]
