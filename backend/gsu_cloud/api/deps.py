from fastapi import Request

from ..state import CloudState
from .ws import LiveFeed


def get_cloud_state(request: Request) -> CloudState:
    return request.app.state.cloud


def get_live_feed(request: Request) -> LiveFeed:
    return request.app.state.live_feed
