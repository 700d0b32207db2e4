from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class StatsSnapshot(Base):
    """Checkpoint of the statistics aggregator.

    ``last_event_id`` is the id of the newest activity event already folded
    into ``payload``; anything after it is replayed on restore.
    """

    __tablename__ = "stats_snapshots"

    id = Column(Integer, primary_key=True)
    last_event_id = Column(Integer, nullable=False, default=0)
    payload = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)


__all__ = ["StatsSnapshot"]
