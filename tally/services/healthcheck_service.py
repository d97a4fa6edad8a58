"""
tally.services.healthcheck_service — Uptime Heartbeat
======================================================

Pings ``https://hc-ping.com/<uuid>`` once a minute from production so an
external monitor notices when the bot stops running.  Development and
staging runs skip the ping.
"""

from __future__ import annotations

import logging

import httpx

from tally.config import TallyConfig

logger = logging.getLogger(__name__)

HEALTHCHECK_BASE_URL = "https://hc-ping.com"


async def ping_healthcheck(
    cfg: TallyConfig,
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Send one heartbeat.  Returns True if a ping was delivered."""
    if not cfg.is_production:
        logger.debug("Skipping healthcheck in non-production environment.")
        return False

    if not cfg.healthcheck_uuid:
        logger.error("Healthcheck UUID is not set in config.yaml!")
        return False

    url = f"{HEALTHCHECK_BASE_URL}/{cfg.healthcheck_uuid}"
    if client is None:
        transport = httpx.AsyncHTTPTransport(retries=1)
        async with httpx.AsyncClient(timeout=10, transport=transport) as owned:
            resp = await owned.get(url)
    else:
        resp = await client.get(url)

    resp.raise_for_status()
    return True
