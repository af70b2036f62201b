"""Lazily refreshed "latest release" version with a TTL."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)


@dataclass
class VersionCache:
    """Latest version of an operator as published on GitHub releases.

    Refreshes are lock-free; concurrent refreshes race to the same value and
    the last writer wins.
    """

    releases_url: str
    default_version: str
    ttl_seconds: float = 3600.0
    override: str | None = None
    timeout: float = 10.0
    value: str | None = None
    fetched_at: float | None = None

    def is_stale(self, now: float | None = None) -> bool:
        if self.value is None or self.fetched_at is None:
            return True
        now = time.time() if now is None else now
        return now - self.fetched_at >= self.ttl_seconds

    def current(self) -> str:
        """Best known version without touching the network."""
        return self.value or self.override or self.default_version

    def refresh(self, now: float | None = None, client: httpx.Client | None = None) -> str:
        """Return the latest version, fetching it if the cached value is stale.

        Falls back to the cached value, then the override, then the pinned
        default when GitHub cannot be reached.
        """
        if not self.is_stale(now):
            return self.current()

        try:
            tag = self._fetch_tag(client)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Error fetching version from {self.releases_url}, using fallback: {e}")
            return self.current()

        if not tag:
            return self.current()

        self.value = tag[1:] if tag.startswith("v") else tag
        self.fetched_at = time.time() if now is None else now
        logger.info(f"Fetched latest version from GitHub: {self.value}")
        return self.value

    def _fetch_tag(self, client: httpx.Client | None) -> str | None:
        headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": "KubeFoundry"}
        if client is not None:
            response = client.get(self.releases_url, headers=headers)
        else:
            with httpx.Client(timeout=self.timeout) as owned:
                response = owned.get(self.releases_url, headers=headers)
        response.raise_for_status()
        data = response.json()
        tag = data.get("tag_name") if isinstance(data, dict) else None
        return tag if isinstance(tag, str) else None
