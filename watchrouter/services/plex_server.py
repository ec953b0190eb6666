"""
Plex Server Service - is a watchlist item already available on a Plex server?
"""
import logging
from typing import Callable, Dict, List

import aiohttp

logger = logging.getLogger(__name__)


class PlexServerService:
    """
    Checks the configured Plex servers for a watchlist key.

    Servers are dicts {name, url, token, shared}. The primary user can see
    every server; other users only those flagged shared.
    """

    def __init__(self, servers: List[Dict] = None, timeout: float = 10,
                 session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession):
        self.servers = [s for s in servers or [] if s.get("url") and s.get("token")]
        self.timeout = timeout
        self.session_factory = session_factory

    def visible_servers(self, is_primary_user: bool) -> List[Dict]:
        if is_primary_user:
            return list(self.servers)
        return [s for s in self.servers if s.get("shared")]

    async def _server_has_item(self, session: aiohttp.ClientSession, server: Dict, guid: str) -> bool:
        url = f"{server['url'].rstrip('/')}/library/all"
        headers = {"X-Plex-Token": server["token"], "Accept": "application/json"}
        async with session.get(url, params={"guid": guid}, headers=headers, timeout=self.timeout) as resp:
            if resp.status != 200:
                logger.warning(f"Plex server {server.get('name', url)} answered HTTP {resp.status}")
                return False
            data = await resp.json(content_type=None)
        container = (data or {}).get("MediaContainer") or {}
        return (container.get("size") or len(container.get("Metadata") or [])) > 0

    async def check_existence_across_servers(self, item_key: str, content_type: str, is_primary_user: bool) -> bool:
        servers = self.visible_servers(is_primary_user)
        if not item_key or not servers:
            return False

        guid = f"plex://{content_type}/{item_key}"
        async with self.session_factory() as session:
            for server in servers:
                try:
                    if await self._server_has_item(session, server, guid):
                        logger.info(f"{guid} found on Plex server {server.get('name', server['url'])}")
                        return True
                except Exception as e:
                    logger.warning(f"Plex server {server.get('name', server['url'])} check failed: {e}")
        return False
