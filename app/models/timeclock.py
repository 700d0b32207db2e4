"""SQLAlchemy model for clock-in sessions, one row per interval of a subject.

A partial unique index allows at most one row per subject whose
``clock_out`` is still NULL, so the database rejects a second open session
even if two processes race past the in-process lock.
"""

from __future__ import annotations

from sqlalchemy import Column, Index, Integer, Text, text

from ..db.session import Base


class TimeClock(Base):
    __tablename__ = "time_clocks"
    __table_args__ = (
        Index(
            "ix_time_clocks_one_open_per_subject",
            "subject_id",
            unique=True,
            sqlite_where=text("clock_out IS NULL"),
            postgresql_where=text("clock_out IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Text, nullable=False, unique=True, index=True)
    subject_id = Column(Text, nullable=False, index=True)
    subject_name = Column(Text, nullable=True)
    clock_in = Column(Text, nullable=False)
    clock_out = Column(Text, nullable=True)
    device_info = Column(Text, nullable=False, default="")

    @property
    def is_open(self) -> bool:
        return self.clock_out is None


__all__ = ["TimeClock"]
