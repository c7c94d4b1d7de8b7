import logging

from pipesim.Cache import DirectMappedCache
from pipesim.Errors import InvalidAddress
from pipesim.Memory import MainMemory, Response, ServicePort, Status

logger = logging.getLogger(__name__)


class MemoryHierarchy:
    """
    Direct-mapped cache in front of a delayed main memory.
    Write-through, no write-allocate, one port each for cache and memory.
    """

    def __init__(self, config: dict = None):
        config = config or {}
        cache_cfg  = config.get('cache', {})
        memory_cfg = config.get('memory', {})

        words_per_line = cache_cfg.get('words_per_line', 16)
        self.cache = DirectMappedCache(num_lines=cache_cfg.get('lines', 16),
                                       words_per_line=words_per_line)
        self.memory = MainMemory(words=memory_cfg.get('words', 32768),
                                 words_per_line=words_per_line,
                                 delay=memory_cfg.get('delay', 4))
        self.cache_port = ServicePort(cache_cfg.get('delay', 1))
        self.cache_enabled = cache_cfg.get('enabled', True)

        # requester -> in-flight request
        self.pending = {}

        self.read_count  = 0
        self.write_count = 0

    @property
    def cache_delay(self):
        return self.cache_port.delay

    def set_cache_enabled(self, enabled):
        """
        Switch the cache path on or off. Everything in flight is dropped,
        in the cache and in main memory; owners re-issue on the next poll.
        """
        enabled = bool(enabled)
        if enabled == self.cache_enabled:
            return
        if self.has_pending():
            logger.info("Cache toggled, dropping requests in flight: %s", self.pending_requests())
        self.pending.clear()
        self.cache_port.clear()
        self.memory.port.clear()
        self.cache_enabled = enabled

    def _error(self, e):
        logger.warning("%s", e)
        return Response(Status.ERROR, message=str(e))

    def read(self, address, requester) -> Response:
        """
        Poll a read of `address` on behalf of `requester`.

        The first call probes the cache; later calls by the same requester
        resume the recorded request until it reports DONE, exactly once.
        """
        if not self.cache_enabled:
            try:
                return self.memory.read(address, requester)
            except InvalidAddress as e:
                return self._error(e)

        if self.cache_port.busy and self.cache_port.owner != requester:
            return Response(Status.WAIT, message=f"Cache busy serving {self.cache_port.owner}")

        if requester in self.pending:
            return self._resume(requester)

        try:
            self.memory.check(address)
        except InvalidAddress as e:
            return self._error(e)

        self.read_count += 1
        probe = self.cache.read(address)

        if probe['hit']:
            status, remaining, _ = self.cache_port.poll(requester, {"address": address})
            if status is Status.DONE:
                return Response(Status.DONE, data=probe['data'], source="cache")
            self.pending[requester] = {"kind": "read", "address": address, "cache_hit": True}
            return Response(Status.WAIT, remaining=remaining, message="Cache hit, waiting for delay")

        self.pending[requester] = {"kind": "read", "address": address, "cache_hit": False}
        return Response(Status.WAIT, message="Cache miss, waiting for memory")

    def write(self, address, value, requester) -> Response:
        """
        Poll a write-through of `value` to `address`.

        The cache side (in-place update, hit/miss count) happens on the first
        call; the value is durable once main memory reports DONE.
        """
        if not self.cache_enabled:
            try:
                response = self.memory.write(address, value, requester)
            except InvalidAddress as e:
                return self._error(e)
            if response.done:
                self.cache.write(address, value, count=False)
            return response

        if self.cache_port.busy and self.cache_port.owner != requester:
            return Response(Status.WAIT, message=f"Cache busy serving {self.cache_port.owner}")

        if requester in self.pending:
            return self._resume(requester)

        try:
            self.memory.check(address)
        except InvalidAddress as e:
            return self._error(e)

        self.write_count += 1
        self.cache.write(address, value)
        self.pending[requester] = {"kind": "write", "address": address, "value": value}
        return Response(Status.WAIT, message="Memory write queued")

    def _resume(self, requester) -> Response:
        request = self.pending[requester]
        if request['kind'] == "write":
            result = self._process_write(request, requester)
        else:
            result = self._process_read(request, requester)

        if result.done:
            del self.pending[requester]
        return result

    def _process_read(self, request, requester) -> Response:
        address = request['address']

        if request['cache_hit']:
            status, remaining, _ = self.cache_port.poll(requester)
            if status is not Status.DONE:
                return Response(Status.WAIT, remaining=remaining)
            data = self.cache.peek(address)
            if data is None:
                # line replaced while the hit was being served
                data = self.memory.peek(address)
            return Response(Status.DONE, data=data, source="cache")

        result = self.memory.read(address, requester)
        if not result.done:
            return result

        self.cache.fill(address, result.line)
        result.message = f"Data loaded from memory: {result.data}"
        return result

    def _process_write(self, request, requester) -> Response:
        result = self.memory.write(request['address'], request['value'], requester)
        if result.done:
            result.message = f"Write complete: {request['value']} -> [{request['address']}]"
        return result

    def abandon(self, requester):
        """
        Drop everything `requester` has in flight: its pending entry and any
        port it currently owns. Returns the dropped request, if any.
        """
        request = self.pending.pop(requester, None)
        self.cache_port.release(requester)
        self.memory.release(requester)
        return request

    def drain_read(self, requester, address) -> Response:
        """Finish a stuck read at once by reading main memory directly."""
        request = self.abandon(requester)
        try:
            line_index, offset = self.memory.getLineAndOffset(address)
        except InvalidAddress as e:
            return self._error(e)

        line = self.memory.line(line_index)
        if self.cache_enabled and not (request or {}).get('cache_hit', False):
            self.cache.fill(address, line)
        return Response(Status.DONE, data=line[offset], line=line, source="memory",
                        message="Forced completion")

    def drain_write(self, requester, address, value) -> Response:
        """Finish a stuck write at once by storing straight to main memory."""
        self.abandon(requester)
        try:
            self.memory.poke(address, value)
        except InvalidAddress as e:
            return self._error(e)
        self.cache.write(address, value, count=False)
        return Response(Status.DONE, source="memory", message="Forced completion")

    def has_pending(self):
        return bool(self.pending) or self.memory.busy or self.cache_port.busy

    def pending_requests(self):
        pending = {stage: dict(request) for stage, request in self.pending.items()}
        in_flight = self.memory.in_flight()
        if in_flight is not None and in_flight['owner'] not in pending:
            pending[in_flight['owner']] = {"kind": in_flight['kind'], "address": in_flight['address']}
        return pending

    def get_stats(self):
        hits   = self.cache.total_hits
        misses = self.cache.total_misses
        total  = hits + misses
        return {
            "reads":       self.read_count,
            "writes":      self.write_count,
            "cacheHits":   hits,
            "cacheMisses": misses,
            "hitRate":     hits / total if total > 0 else 0,
        }

    def reset_stats(self):
        self.read_count  = 0
        self.write_count = 0
        self.cache.reset_stats()

    def reset(self):
        self.cache.reset()
        self.memory.reset()
        self.cache_port.clear()
        self.pending.clear()

    def viewCache(self, index):
        return self.cache.viewLine(index)

    def viewMemory(self, index):
        return self.memory.viewLine(index)

    def memory_snapshot(self, ranges):
        snapshot = {}
        for start, end in ranges:
            for address in range(max(0, start), min(end, self.memory.words)):
                snapshot[address] = self.memory.peek(address)
        return snapshot
