"""Installation credentials.

A :class:`Credential` is an immutable token with an expiry. The
:class:`CredentialStore` hands one out per installation id and, when the
cached value is about to expire, asks its refresher for a new value and
replaces the cache entry. Callers receive the value and pass it along to
whatever needs it; nothing holds a shared, re-authorised client.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from github import Auth, GithubIntegration

logger = logging.getLogger(__name__)

Refresher = Callable[[int], "Credential"]


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: datetime | None = None  # None never expires

    def expired(self, now: datetime | None = None, margin: timedelta = timedelta(0)) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now + margin >= self.expires_at


class CredentialStore:
    """Per-installation credential cache with expiry checked on every lookup."""

    def __init__(self, refresher: Refresher, margin: timedelta = timedelta(minutes=5), clock=None):
        self._refresher = refresher
        self._margin = margin
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._guard = threading.Lock()
        self._refresh_locks: dict[int, threading.Lock] = {}
        self._cache: dict[int, Credential] = {}

    def _usable(self, installation_id: int) -> Credential | None:
        with self._guard:
            cached = self._cache.get(installation_id)
        if cached is not None and not cached.expired(self._clock(), self._margin):
            return cached
        return None

    def get(self, installation_id: int) -> Credential:
        cached = self._usable(installation_id)
        if cached is not None:
            return cached

        with self._guard:
            refresh_lock = self._refresh_locks.setdefault(installation_id, threading.Lock())
        # Only callers of the same installation wait on a refresh in flight.
        with refresh_lock:
            cached = self._usable(installation_id)
            if cached is not None:
                return cached

            logger.info("Refreshing credential for installation %s", installation_id)
            fresh = self._refresher(installation_id)
            with self._guard:
                self._cache[installation_id] = fresh
            return fresh

    def invalidate(self, installation_id: int) -> None:
        with self._guard:
            self._cache.pop(installation_id, None)


def static_credential(token: str) -> Refresher:
    """A refresher that always yields the same non-expiring personal access token."""
    credential = Credential(token=token)
    return lambda installation_id: credential


def app_installation_refresher(app_id: int | str, private_key: str) -> Refresher:
    """A refresher minting GitHub App installation tokens."""
    integration = GithubIntegration(auth=Auth.AppAuth(app_id, private_key))

    def _refresh(installation_id: int) -> Credential:
        access = integration.get_access_token(installation_id)
        expires_at = access.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return Credential(token=access.token, expires_at=expires_at)

    return _refresh
