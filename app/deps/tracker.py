from __future__ import annotations

from fastapi import Request

from ..services.tracker import ActivityTracker


def get_tracker(request: Request) -> ActivityTracker:
    return request.app.state.tracker
