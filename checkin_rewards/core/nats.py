from __future__ import annotations
import json
from typing import Sequence
from nats.aio.client import Client as NATS
from .config import get_settings

_settings = get_settings()
_nats = NATS()

async def nats_connect():
    if not _nats.is_connected:
        servers: Sequence[str] = [u.strip() for u in _settings.nats_urls.split(",") if u.strip()]
        await _nats.connect(servers=servers, allow_reconnect=False, connect_timeout=2)

async def nats_close():
    if _nats.is_connected:
        await _nats.drain()

async def publish_checkin(evt: dict) -> bool:
    """
    evt = {
      "checkin_id": str,
      "user_id": str,
      "business_id": str,
      "method": "GPS" | "QR_SCAN",
      "user_points": int,
      "business_points": int,
      "checked_at": iso8601,
      "idempotency_key": "user_id:business_id:YYYY-MM-DD"
    }
    Returns False when publishing is disabled.
    """
    if not _settings.nats_enabled:
        return False
    await nats_connect()
    await _nats.publish(_settings.nats_subject_checkin, json.dumps(evt).encode("utf-8"))
    return True
