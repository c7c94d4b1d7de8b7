import logging

from pipesim.Config import load_config
from pipesim.Core import STAGES, Core, PerformanceCounters
from pipesim.Decoder import format_instruction, parse_words
from pipesim.Registers import RegisterFile
from pipesim.SerialCore import SerialCore
from pipesim.Storage import MemoryHierarchy

logger = logging.getLogger(__name__)


class Simulator:
    """
    One simulation session: registers, the memory hierarchy and both
    execution engines, plus the counters they share.
    """

    def __init__(self, config=None, config_path=None):
        self.config = config if config is not None else load_config(config_path)
        pipeline_cfg = self.config['pipeline']

        self.storage = MemoryHierarchy(self.config)
        self.registers = RegisterFile()
        self.counters = PerformanceCounters()

        self.core = Core(self.storage, self.registers, self.counters,
                         memory_timeout=pipeline_cfg['memory_timeout'],
                         hazard_interlock=pipeline_cfg['hazard_interlock'])
        self.serial_core = SerialCore(self.storage, self.registers, self.counters)

        self.pipelined = pipeline_cfg['enabled']
        self.max_cycles = pipeline_cfg['max_cycles']
        self.snapshot_ranges = self.config.get('snapshot', {}).get('ranges', [])

    def load_program(self, program):
        """Append instruction words to the fetch queue. Returns how many."""
        words = parse_words(program)
        self.registers.load_program(words)
        logger.info("Loaded %d instructions", len(words))
        return len(words)

    def is_complete(self):
        return self.core.is_complete()

    def step(self):
        """
        Advance one cycle (pipelined) or one whole instruction (serial).
        Returns True when there is nothing left to do.
        """
        if self.pipelined:
            return self.core.pipeline_cycle()

        self._drain_pipeline()
        self.serial_core.run_instruction()
        return self.is_complete()

    def _drain_pipeline(self):
        # Instructions left in flight by a switch to serial mode finish first.
        while self.core.in_flight() or self.storage.has_pending():
            if self.counters.clock >= self.max_cycles:
                logger.warning("Maximum cycle count reached while draining the pipeline")
                break
            self.core.pipeline_cycle(fetch=False)
        self.core.pipeline_reg["fetch"] = None

    def run(self, reset_counters=True):
        """Run to completion and return the performance stats."""
        if reset_counters:
            self.reset_performance_counters()

        logger.info("Starting %s run with %d instructions queued",
                    "pipelined" if self.pipelined else "serial", len(self.registers.queue))
        while not self.is_complete():
            if self.counters.clock >= self.max_cycles:
                logger.warning("Maximum cycle count %d reached. Stopping simulation.", self.max_cycles)
                break
            self.step()

        stats = self.get_performance_stats()
        logger.info("Run finished: %d cycles, %d instructions, IPC %.3f",
                    stats['cycles'], stats['instructions'], stats['ipc'])
        return stats

    def reset_performance_counters(self):
        self.counters.reset()
        self.storage.reset_stats()

    def reset(self):
        self.registers.reset()
        self.core.reset()
        self.counters.reset()
        self.storage.reset()
        self.storage.reset_stats()

    def set_cache_enabled(self, enabled):
        self.storage.set_cache_enabled(enabled)

    def set_pipelined(self, enabled):
        self.pipelined = bool(enabled)

    # --- Introspection ---
    @property
    def pc(self):
        return self.registers.pc

    @property
    def ir(self):
        return self.registers.ir

    @property
    def queue(self):
        return list(self.registers.queue)

    def get_registers(self):
        return self.registers.get_all()

    def view_cache_line(self, index):
        return self.storage.viewCache(index)

    def view_memory_line(self, index):
        return self.storage.viewMemory(index)

    def get_performance_stats(self):
        mem_stats = self.storage.get_stats()
        return {
            "cycles":            self.counters.clock,
            "instructions":      self.counters.inst_executed,
            "stalls":            self.counters.stall_count,
            "ipc":               self.core.get_ipc(),
            "hitRate":           mem_stats['hitRate'] if self.storage.cache_enabled else 0,
            "reads":             mem_stats['reads'],
            "writes":            mem_stats['writes'],
            "cacheHits":         mem_stats['cacheHits'],
            "cacheMisses":       mem_stats['cacheMisses'],
            "forcedCompletions": self.counters.forced_completions,
            "interlockStalls":   self.counters.interlock_stalls,
        }

    def get_state(self):
        pipeline = {stage: format_instruction(self.core.pipeline_reg[stage]) for stage in STAGES}
        pipeline['clockCycle'] = self.counters.clock
        return {
            "pipeline":            pipeline,
            "registers":           self.get_registers(),
            "instructionRegister": self.ir,
            "programCounter":      self.pc,
            "instructionQueue":    self.queue,
            "memory":              self.storage.memory_snapshot(self.snapshot_ranges),
            "pendingRequests":     self.storage.pending_requests(),
            "cacheEnabled":        self.storage.cache_enabled,
            "pipelined":           self.pipelined,
            "complete":            self.is_complete(),
            "performance":         self.get_performance_stats(),
        }
