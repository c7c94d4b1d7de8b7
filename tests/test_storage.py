import unittest

from pipesim.Memory import Status
from pipesim.Storage import MemoryHierarchy


def poll_until_done(op, limit=50):
    """Poll `op` until DONE; returns (response, number of calls)."""
    for calls in range(1, limit + 1):
        r = op()
        if r.status is not Status.WAIT:
            return r, calls
    raise AssertionError("operation never completed")


class TestMemoryHierarchyRead(unittest.TestCase):

    def setUp(self):
        self.h = MemoryHierarchy()
        self.h.memory.poke(300, 77)

    def test_miss_then_hit(self):
        r, calls = poll_until_done(lambda: self.h.read(300, "memory"))
        self.assertEqual((r.data, r.source), (77, "memory"))
        # one probe, then delay + 1 polls of main memory
        self.assertEqual(calls, 6)
        self.assertEqual(self.h.viewCache(self.h.cache.getIndex(300))['tag'], 1)

        r, calls = poll_until_done(lambda: self.h.read(300, "memory"))
        self.assertEqual((r.data, r.source), (77, "cache"))
        self.assertEqual(calls, 2)

        stats = self.h.get_stats()
        self.assertEqual(stats['cacheHits'], 1)
        self.assertEqual(stats['cacheMisses'], 1)
        self.assertEqual(stats['reads'], 2)
        self.assertEqual(stats['hitRate'], 0.5)
        self.assertFalse(self.h.has_pending())

    def test_whole_line_is_resident_after_refill(self):
        self.h.memory.poke(301, 78)
        poll_until_done(lambda: self.h.read(300, "memory"))
        r, _ = poll_until_done(lambda: self.h.read(301, "memory"))
        self.assertEqual((r.data, r.source), (78, "cache"))

    def test_repeated_loads_come_from_cache(self):
        sources = []
        for _ in range(4):
            r, _ = poll_until_done(lambda: self.h.read(300, "memory"))
            sources.append(r.source)
        self.assertEqual(sources, ["memory", "cache", "cache", "cache"])
        self.assertEqual(self.h.cache.total_hits, 3)

    def test_busy_cache_port_rejects_other_requesters(self):
        poll_until_done(lambda: self.h.read(300, "memory"))
        self.h.reset_stats()

        self.assertIs(self.h.read(300, "memory").status, Status.WAIT)   # hit, port armed
        before = (self.h.get_stats(), self.h.pending_requests())
        for _ in range(5):
            r = self.h.read(300, "fetch")
            self.assertIs(r.status, Status.WAIT)
            self.assertIn("busy", r.message)
            self.assertIs(self.h.write(300, 1, "fetch").status, Status.WAIT)
        self.assertEqual((self.h.get_stats(), self.h.pending_requests()), before)
        self.assertNotIn("fetch", self.h.pending)

        r, _ = poll_until_done(lambda: self.h.read(300, "memory"))
        self.assertEqual(r.source, "cache")

    def test_pending_entry_removed_exactly_on_completion(self):
        self.h.read(300, "memory")
        self.assertIn("memory", self.h.pending)
        for _ in range(4):
            self.h.read(300, "memory")
            self.assertIn("memory", self.h.pending)
        self.assertTrue(self.h.read(300, "memory").done)
        self.assertEqual(self.h.pending, {})

    def test_cache_disabled_goes_straight_to_memory(self):
        self.h.set_cache_enabled(False)
        r, calls = poll_until_done(lambda: self.h.read(300, "memory"))
        self.assertEqual((r.data, calls), (77, 5))
        stats = self.h.get_stats()
        self.assertEqual((stats['reads'], stats['cacheHits'], stats['cacheMisses']), (0, 0, 0))
        self.assertFalse(self.h.viewCache(self.h.cache.getIndex(300))['valid'])

    def test_toggle_drops_uncached_memory_operation(self):
        poll_until_done(lambda: self.h.read(300, "memory"))
        self.h.set_cache_enabled(False)
        self.h.read(300, "memory")
        self.assertTrue(self.h.memory.busy)

        self.h.set_cache_enabled(True)
        self.assertFalse(self.h.has_pending())
        r, _ = poll_until_done(lambda: self.h.read(300, "memory"))
        self.assertEqual((r.data, r.source), (77, "cache"))
        self.assertFalse(self.h.has_pending())

        self.h.memory.poke(5000, 99)
        r, _ = poll_until_done(lambda: self.h.read(5000, "memory"))
        self.assertEqual((r.data, r.source), (99, "memory"))
        self.assertEqual(self.h.cache.peek(5000), 99)
        self.assertEqual(self.h.cache.peek(300), 77)

    def test_invalid_address_is_an_error(self):
        r = self.h.read(40000, "memory")
        self.assertIs(r.status, Status.ERROR)
        self.assertFalse(self.h.has_pending())
        self.assertEqual(self.h.get_stats()['reads'], 0)
        self.assertIs(self.h.write(-3, 1, "memory").status, Status.ERROR)


class TestMemoryHierarchyWrite(unittest.TestCase):

    def setUp(self):
        self.h = MemoryHierarchy()

    def test_write_through_on_resident_line(self):
        poll_until_done(lambda: self.h.read(300, "memory"))

        self.assertIs(self.h.write(300, 5, "memory").status, Status.WAIT)
        # cache updated synchronously, memory not yet
        self.assertEqual(self.h.cache.peek(300), 5)
        self.assertEqual(self.h.memory.peek(300), 0)

        r, calls = poll_until_done(lambda: self.h.write(300, 5, "memory"))
        self.assertTrue(r.done)
        self.assertEqual(calls, 5)
        self.assertEqual(self.h.cache.peek(300), 5)
        self.assertEqual(self.h.memory.peek(300), 5)
        self.assertEqual(self.h.cache.total_hits, 1)

    def test_write_miss_does_not_allocate(self):
        poll_until_done(lambda: self.h.write(1000, 8, "memory"))
        self.assertEqual(self.h.memory.peek(1000), 8)
        self.assertIsNone(self.h.cache.peek(1000))
        self.assertEqual(self.h.get_stats()['cacheMisses'], 1)
        self.assertEqual(self.h.get_stats()['writes'], 1)

    def test_read_after_write_sees_value(self):
        poll_until_done(lambda: self.h.write(1000, 8, "memory"))
        r, _ = poll_until_done(lambda: self.h.read(1000, "memory"))
        self.assertEqual((r.data, r.source), (8, "memory"))
        r, _ = poll_until_done(lambda: self.h.read(1000, "memory"))
        self.assertEqual((r.data, r.source), (8, "cache"))

    def test_uncached_write_keeps_resident_line_coherent(self):
        poll_until_done(lambda: self.h.read(64, "memory"))
        self.h.set_cache_enabled(False)
        poll_until_done(lambda: self.h.write(64, 3, "memory"))
        self.h.set_cache_enabled(True)
        r, _ = poll_until_done(lambda: self.h.read(64, "memory"))
        self.assertEqual((r.data, r.source), (3, "cache"))


class TestMemoryHierarchyControl(unittest.TestCase):

    def setUp(self):
        self.h = MemoryHierarchy()
        self.h.memory.poke(700, 12)

    def test_hit_rate_bounds(self):
        self.assertEqual(self.h.get_stats()['hitRate'], 0)
        for address in (700, 700, 701, 5000, 700):
            poll_until_done(lambda: self.h.read(address, "memory"))
            self.assertTrue(0 <= self.h.get_stats()['hitRate'] <= 1)

    def test_drain_read_refills_and_releases(self):
        self.h.read(700, "memory")
        self.h.read(700, "memory")
        self.assertTrue(self.h.memory.busy)

        r = self.h.drain_read("memory", 700)
        self.assertEqual((r.data, r.source), (12, "memory"))
        self.assertFalse(self.h.has_pending())
        self.assertEqual(self.h.cache.peek(700), 12)

    def test_drain_write(self):
        poll_until_done(lambda: self.h.read(700, "memory"))
        self.h.write(700, 1, "memory")
        self.h.write(700, 1, "memory")
        r = self.h.drain_write("memory", 700, 1)
        self.assertTrue(r.done)
        self.assertEqual(self.h.memory.peek(700), 1)
        self.assertEqual(self.h.cache.peek(700), 1)
        self.assertFalse(self.h.has_pending())

    def test_drain_invalid_address(self):
        self.assertIs(self.h.drain_read("memory", 99999).status, Status.ERROR)
        self.assertIs(self.h.drain_write("memory", -1, 0).status, Status.ERROR)

    def test_pending_requests_lists_uncached_memory_owner(self):
        self.h.set_cache_enabled(False)
        self.h.read(700, "memory")
        self.assertEqual(self.h.pending_requests(), {"memory": {"kind": "read", "address": 700}})
        self.assertTrue(self.h.has_pending())

    def test_toggle_drops_cache_path_requests(self):
        self.h.read(700, "memory")
        self.h.set_cache_enabled(False)
        self.assertEqual(self.h.pending, {})
        r, _ = poll_until_done(lambda: self.h.read(700, "memory"))
        self.assertEqual(r.data, 12)
        self.assertFalse(self.h.has_pending())

    def test_reset_and_reset_stats_are_orthogonal(self):
        poll_until_done(lambda: self.h.read(700, "memory"))
        self.h.read(700, "memory")
        stats = self.h.get_stats()

        self.h.reset()
        self.assertEqual(self.h.get_stats(), stats)
        self.assertFalse(self.h.has_pending())
        self.assertEqual(self.h.memory.peek(700), 0)
        self.assertFalse(self.h.viewCache(self.h.cache.getIndex(700))['valid'])

        self.h.memory.poke(700, 12)
        poll_until_done(lambda: self.h.read(700, "memory"))
        self.h.reset_stats()
        self.assertEqual(self.h.get_stats()['reads'], 0)
        self.assertEqual(self.h.cache.peek(700), 12)

    def test_memory_snapshot(self):
        snap = self.h.memory_snapshot([[698, 702], [32760, 40000]])
        self.assertEqual(snap[700], 12)
        self.assertEqual(len(snap), 4 + 8)


if __name__ == '__main__':
    unittest.main()
