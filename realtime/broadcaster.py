"""
Realtime fan-out.

`Broadcaster.publish` is the only way server code pushes events to room
channels. It never raises: a disabled or failing fabric turns into `False`
and the caller's mutation stays the source of truth (clients reconcile by
polling).
"""
import json
import logging
from functools import lru_cache
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder

from database import get_settings
from realtime.hub import ChannelHub
from services.naming_service import room_channel

logger = logging.getLogger(__name__)


class Broadcaster:

    def __init__(self, hub: Optional[ChannelHub] = None):
        self._hub = hub

    @property
    def hub(self) -> Optional[ChannelHub]:
        return self._hub

    @property
    def enabled(self) -> bool:
        return self._hub is not None

    def publish(self, room_id: str, event: str, payload: Any) -> bool:
        if self._hub is None:
            logger.warning("Realtime not configured, skipping broadcast")
            return False

        channel = room_channel(room_id)
        try:
            data = jsonable_encoder(payload, by_alias=True)
            json.dumps(data)
            delivered = self._hub.publish(channel, event, data)
        except Exception as e:
            logger.error(f"Failed to broadcast {event} to {channel}: {e}", exc_info=True)
            return False

        logger.info(f"Broadcasted {event} to {channel} ({delivered} subscribers)")
        return True


@lru_cache()
def get_broadcaster() -> Broadcaster:
    """
    Process-wide broadcaster, created on first use.

    REALTIME_ENABLED=false yields a broadcaster without a hub, so every
    publish reports False.
    """
    if not get_settings().realtime_enabled:
        logger.warning("Realtime updates disabled, clients will rely on polling")
        return Broadcaster(hub=None)
    return Broadcaster(hub=ChannelHub())


def reset_broadcaster() -> None:
    """Drop the process-wide broadcaster (app shutdown, tests)."""
    get_broadcaster.cache_clear()
