from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from takeoff_portal.auth import Role
from takeoff_portal.client.company_context import STORAGE_KEY, CompanyContextResolver, TenantCache
from takeoff_portal.client.session import UserRecord


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _user(roles=(Role.MANAGER,), company_id=None, active_company_id=None, company_ids=(), user_id=1) -> UserRecord:
    return UserRecord(
        id=user_id,
        email='user@example.com',
        fullname='User',
        roles=frozenset(roles),
        company_id=company_id,
        active_company_id=active_company_id,
        company_ids=tuple(company_ids),
    )


class ResolverPrecedenceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = CompanyContextResolver(TenantCache(clock=FakeClock()))

    def test_no_user(self) -> None:
        self.assertIsNone(self.resolver.resolve(None))

    def test_super_admin_never_gets_a_company(self) -> None:
        user = _user(roles=(Role.SUPER_ADMIN,), company_id=3, active_company_id=4, company_ids=(3, 4))
        self.assertIsNone(self.resolver.resolve(user))

    def test_active_company_wins_over_legacy(self) -> None:
        user = _user(company_id=3, active_company_id=4, company_ids=(3, 4))
        self.assertEqual(self.resolver.resolve(user), 4)

    def test_legacy_company_fallback(self) -> None:
        self.assertEqual(self.resolver.resolve(_user(company_id=3, company_ids=(3,))), 3)

    def test_ambiguous_user_resolves_to_none(self) -> None:
        user = _user(company_id=3, company_ids=(3, 4))
        self.assertIsNone(self.resolver.resolve(user))
        self.assertTrue(self.resolver.requires_selection(user))

    def test_user_without_companies(self) -> None:
        self.assertIsNone(self.resolver.resolve(_user()))


class TenantCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.path = Path(tmp.name) / 'tenant.json'
        self.clock = FakeClock()
        self.cache = TenantCache(self.path, max_age_hours=24, clock=self.clock)

    def test_store_writes_under_storage_key(self) -> None:
        self.cache.store(_user(company_id=3, active_company_id=3, company_ids=(3,)))
        entry = json.loads(self.path.read_text())[STORAGE_KEY]
        self.assertEqual(entry['userId'], 1)
        self.assertEqual(entry['activeCompany'], 3)
        self.assertEqual(entry['roles'], ['manager'])
        self.assertEqual(entry['timestamp'], self.clock.now)

    def test_cached_value_is_used_until_stale(self) -> None:
        resolver = CompanyContextResolver(self.cache)
        self.assertEqual(resolver.resolve(_user(company_id=3, company_ids=(3,))), 3)

        # Same user, changed record: the fresh entry still answers.
        self.clock.now += 23 * 3600
        self.assertEqual(resolver.resolve(_user(company_id=5, company_ids=(5,))), 3)

        # Past 24 hours the entry is dropped and rebuilt from the session.
        self.clock.now += 2 * 3600
        self.assertEqual(resolver.resolve(_user(company_id=5, company_ids=(5,))), 5)

    def test_entry_for_another_user_is_ignored(self) -> None:
        resolver = CompanyContextResolver(self.cache)
        resolver.resolve(_user(company_id=3, company_ids=(3,)))
        self.assertEqual(resolver.resolve(_user(company_id=9, company_ids=(9,), user_id=2)), 9)

    def test_unreadable_file_is_discarded(self) -> None:
        self.path.write_text('{not json')
        self.assertIsNone(self.cache.load(1))
        self.assertFalse(self.path.exists())

    def test_invalidate_clears_file(self) -> None:
        resolver = CompanyContextResolver(self.cache)
        resolver.resolve(_user(company_id=3, company_ids=(3,)))
        resolver.invalidate()
        self.assertFalse(self.path.exists())
        self.assertEqual(resolver.resolve(_user(company_id=5, company_ids=(5,))), 5)

    def test_memory_cache(self) -> None:
        cache = TenantCache(clock=self.clock)
        cache.store(_user(company_id=3, company_ids=(3,)))
        self.assertEqual(cache.load(1)['company'], 3)
        cache.clear()
        self.assertIsNone(cache.load(1))


if __name__ == '__main__':
    unittest.main()
