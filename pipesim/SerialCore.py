import logging

from pipesim.Core import PerformanceCounters, alu, commit, read_operands, writeback_value
from pipesim.Decoder import decode
from pipesim.Errors import InvalidAddress

logger = logging.getLogger(__name__)

BASE_CYCLES = 5  # IF, ID, EX, MEM, WB


class SerialCore:
    """
    Runs one instruction from fetch to writeback per call.

    Goes to the cache and main memory directly, without the per-requester
    arbitration of the hierarchy, and charges the latency it would have
    paid: the cache delay on a hit, the memory delay on a miss or when the
    cache is off.
    """

    def __init__(self, storage, registers, counters=None):
        self.storage = storage
        self.registers = registers
        self.counters = counters or PerformanceCounters()

    def run_instruction(self):
        if not self.registers.queue:
            return False

        word = self.registers.fetch()
        instr = alu(read_operands(decode(word), self.registers))
        cycles = BASE_CYCLES

        if instr['type'] == "LOAD":
            value, delay = self._load(instr['mem_addr'])
            instr = {**instr, "mem_result": value}
            cycles += max(delay - 1, 0)
        elif instr['type'] == "STR":
            delay = self._store(instr['mem_addr'], instr['rd_value'])
            cycles += max(delay - 1, 0)

        commit(self.registers, writeback_value(instr))
        self.counters.clock += cycles
        self.counters.inst_executed += 1
        return True

    def _load(self, address):
        storage = self.storage
        try:
            storage.memory.check(address)
        except InvalidAddress as e:
            logger.warning("LOAD dropped: %s", e)
            return None, storage.memory.delay

        if not storage.cache_enabled:
            return storage.memory.peek(address), storage.memory.delay

        storage.read_count += 1
        probe = storage.cache.read(address)
        if probe['hit']:
            return probe['data'], storage.cache_delay

        line_index, offset = storage.memory.getLineAndOffset(address)
        line = storage.memory.line(line_index)
        storage.cache.updateCacheLine(probe['index'], probe['tag'], line)
        logger.debug("Serial LOAD [%d] refilled line %d", address, probe['index'])
        return line[offset], storage.memory.delay

    def _store(self, address, value):
        storage = self.storage
        try:
            storage.memory.poke(address, value)
        except InvalidAddress as e:
            logger.warning("STR dropped: %s", e)
            return storage.memory.delay

        if not storage.cache_enabled:
            storage.cache.write(address, value, count=False)
            return storage.memory.delay

        storage.write_count += 1
        if storage.cache.write(address, value):
            return storage.cache_delay
        return storage.memory.delay
