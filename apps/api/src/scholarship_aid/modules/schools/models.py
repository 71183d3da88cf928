"""
School Models

Reference data for the schools aid recipients attend, and the assignment of
school representatives (identified by citizen id) to a school. The assignment
is consumed only as an authorization filter.
"""

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from scholarship_aid.modules.shared import BaseModel


class School(BaseModel):
    """A school whose students may receive aid."""

    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    representatives: Mapped[list["SchoolRepresentative"]] = relationship(
        "SchoolRepresentative", back_populates="school"
    )

    def __repr__(self) -> str:
        return f"<School(id={self.id}, name={self.name})>"


class SchoolRepresentative(BaseModel):
    """
    Citizen to school assignment for school representatives (ps_rep role).

    A citizen represents at most one school at a time.
    """

    __tablename__ = "school_representatives"

    citizen_id: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    school_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    school: Mapped["School"] = relationship("School", back_populates="representatives")

    __table_args__ = (Index("ix_school_representatives_school_id", "school_id"),)
