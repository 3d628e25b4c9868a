import unittest
from datetime import date, datetime
from unittest.mock import patch

from freezegun import freeze_time

from app.cache import CacheManager, MemoryCacheBackend, RedisCacheBackend, cache, cache_key, normalize_bool
from app.metrics import LogMetricsExporter, MetricsExporter, flush_metrics, record_lab_event, set_metrics_exporter
from app.services.lab_availability_service import LAB_AVAILABILITY_CACHE_PREFIX, invalidate_availability_cache


class _CollectingExporter(MetricsExporter):
    def __init__(self) -> None:
        self.minutes: list[dict[str, int]] = []

    def export_minute(self, *, minute_start: datetime, counts: dict[str, int]) -> None:
        self.minutes.append(counts)


class CacheTests(unittest.TestCase):
    def setUp(self):
        cache.invalidate_prefix(LAB_AVAILABILITY_CACHE_PREFIX)

    def test_cache_hit_miss(self):
        key = cache_key(LAB_AVAILABILITY_CACHE_PREFIX, date(2026, 3, 2).isoformat())
        self.assertEqual(key, 'lab_availability:2026-03-02')
        self.assertIsNone(cache.get_cached(key))
        cache.set_cached(key, {'ok': True}, ttl=5)
        self.assertEqual(cache.get_cached(key), {'ok': True})

    def test_invalidate_availability_clears_every_date(self):
        cache.set_cached(cache_key(LAB_AVAILABILITY_CACHE_PREFIX, '2026-03-02'), {'a': 1}, ttl=5)
        cache.set_cached(cache_key(LAB_AVAILABILITY_CACHE_PREFIX, '2026-03-03'), {'b': 2}, ttl=5)
        invalidate_availability_cache()
        self.assertIsNone(cache.get_cached(cache_key(LAB_AVAILABILITY_CACHE_PREFIX, '2026-03-02')))
        self.assertIsNone(cache.get_cached(cache_key(LAB_AVAILABILITY_CACHE_PREFIX, '2026-03-03')))

    def test_entries_expire_after_ttl(self):
        key = cache_key(LAB_AVAILABILITY_CACHE_PREFIX, '2026-03-04')
        with freeze_time('2026-03-02 10:00:00') as frozen:
            cache.set_cached(key, {'cached': True}, ttl=15)
            frozen.tick(10)
            self.assertIsNotNone(cache.get_cached(key))
            frozen.tick(6)
            self.assertIsNone(cache.get_cached(key))

    def test_normalize_bool(self):
        for value in (True, '1', 'true', 'Yes', ' on '):
            self.assertTrue(normalize_bool(value))
        for value in (None, False, '', '0', 'no'):
            self.assertFalse(normalize_bool(value))


class MetricsTests(unittest.TestCase):
    def tearDown(self):
        set_metrics_exporter(LogMetricsExporter())

    @freeze_time('2026-03-02 10:00:30')
    def test_flush_exports_accumulated_lab_events(self):
        flush_metrics()
        exporter = _CollectingExporter()
        set_metrics_exporter(exporter)
        record_lab_event('booking_created')
        record_lab_event('booking_created')
        record_lab_event('sync_released', 0)
        flush_metrics()
        self.assertEqual(exporter.minutes[-1].get('booking_created'), 2)
        self.assertNotIn('sync_released', exporter.minutes[-1])

class _FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def scan(self, cursor=0, match='*', count=200):
        prefix = match.rstrip('*')
        return 0, [key for key in self.store if key.startswith(prefix)]


class RedisCacheBackendTests(unittest.TestCase):
    def setUp(self):
        self.client = _FakeRedis()
        with patch('redis.Redis.from_url', return_value=self.client):
            self.backend = RedisCacheBackend('redis://localhost:6379/0')

    def test_backend_is_shared_across_workers(self):
        self.assertTrue(CacheManager(backend=self.backend).shared)
        self.assertFalse(CacheManager(backend=MemoryCacheBackend()).shared)

    def test_values_round_trip_as_json(self):
        self.backend.set('lab_availability:2026-03-02', {'booked_slots': 1, 'time_slots': ['09:00-10:30']}, 15)
        self.assertEqual(self.client.store['lab_availability:2026-03-02'], '{"booked_slots": 1, "time_slots": ["09:00-10:30"]}')
        self.assertEqual(self.backend.get('lab_availability:2026-03-02')['booked_slots'], 1)

    def test_delete_prefix_leaves_other_keys(self):
        self.backend.set('lab_availability:2026-03-02', {'a': 1}, 15)
        self.backend.set('lab_availability:2026-03-03', {'b': 2}, 15)
        self.backend.set('other:1', {'c': 3}, 15)
        self.backend.delete_prefix(LAB_AVAILABILITY_CACHE_PREFIX)
        self.assertEqual(list(self.client.store), ['other:1'])



if __name__ == '__main__':
    unittest.main()
