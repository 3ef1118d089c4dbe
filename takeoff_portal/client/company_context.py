from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path

from takeoff_portal.auth import Role, parse_roles
from takeoff_portal.client.session import UserRecord
from takeoff_portal.config import settings


logger = logging.getLogger(__name__)

STORAGE_KEY = 'user_company_data'


class TenantCache:
    """Cached company fields of the signed-in user.

    Stored under ``user_company_data`` in a JSON file when ``path`` is set,
    otherwise in memory. Entries older than ``max_age_hours`` are dropped.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        max_age_hours: float | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path) if path else None
        hours = settings.tenant_cache_max_age_hours if max_age_hours is None else max_age_hours
        self.max_age_seconds = hours * 3600
        self.clock = clock
        self._memory: dict | None = None

    def _read(self) -> dict | None:
        if self.path is None:
            return self._memory
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text(encoding='utf-8')).get(STORAGE_KEY)
        except (OSError, ValueError, AttributeError):
            logger.warning('Discarding unreadable tenant cache at %s', self.path)
            self.clear()
            return None

    def _write(self, entry: dict) -> None:
        if self.path is None:
            self._memory = entry
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps({STORAGE_KEY: entry}), encoding='utf-8')

    def load(self, user_id: int) -> dict | None:
        entry = self._read()
        if not isinstance(entry, dict):
            return None
        timestamp = entry.get('timestamp')
        if entry.get('userId') != user_id or not isinstance(timestamp, (int, float)):
            return None
        if self.clock() - timestamp > self.max_age_seconds:
            logger.debug('Tenant cache for user %s is stale', user_id)
            self.clear()
            return None
        return entry

    def store(self, user: UserRecord) -> dict:
        entry = {
            'userId': user.id,
            'company': user.company_id,
            'activeCompany': user.active_company_id,
            'companies': list(user.company_ids),
            'roles': sorted(role.value for role in user.roles),
            'timestamp': self.clock(),
        }
        self._write(entry)
        return entry

    def clear(self) -> None:
        self._memory = None
        if self.path is not None:
            self.path.unlink(missing_ok=True)


def company_for(entry: dict) -> int | None:
    if Role.SUPER_ADMIN in parse_roles(entry.get('roles')):
        return None
    if len(entry.get('companies') or ()) > 1 and entry.get('activeCompany') is None:
        return None
    if entry.get('activeCompany') is not None:
        return entry['activeCompany']
    return entry.get('company')


class CompanyContextResolver:
    def __init__(self, cache: TenantCache | None = None):
        self.cache = cache or TenantCache(settings.tenant_cache_path)

    def resolve(self, user: UserRecord | None) -> int | None:
        """Company id to send with tenant requests, or None when none applies."""
        if user is None:
            return None
        entry = self.cache.load(user.id)
        if entry is None:
            entry = self.cache.store(user)
        return company_for(entry)

    def requires_selection(self, user: UserRecord | None) -> bool:
        return user is not None and user.requires_company_selection

    def invalidate(self) -> None:
        self.cache.clear()
