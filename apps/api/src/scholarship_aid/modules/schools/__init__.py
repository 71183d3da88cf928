"""
Schools module - School reference data and representative assignments.
"""

from scholarship_aid.modules.schools.models import School, SchoolRepresentative
from scholarship_aid.modules.schools.repository import SchoolRepository

__all__ = ["School", "SchoolRepresentative", "SchoolRepository"]
