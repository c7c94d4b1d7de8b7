import logging

from pipesim.Decoder import (MEMORY_OPS, WRITES_REG, decode, destination_register,
                             source_registers)
from pipesim.Errors import InvalidRegisterIndex, MissingMemoryResult
from pipesim.Memory import Status

logger = logging.getLogger(__name__)

STAGES = ("fetch", "decode", "execute", "memory", "writeBack")

# Requester id used by the memory stage towards the hierarchy.
MEMORY_STAGE = "memory"


def empty_pipeline():
    return {stage: None for stage in STAGES}


class PerformanceCounters:
    def __init__(self):
        self.reset()

    def reset(self):
        self.clock = 0
        self.inst_executed = 0
        self.stall_count = 0
        self.interlock_stalls = 0
        self.forced_completions = 0

    @property
    def ipc(self):
        return self.inst_executed / self.clock if self.clock > 0 else 0


def read_operands(instr, registers):
    """Capture the values of the source registers into the record."""
    values = {}
    for key, value_key in (("rn", "rn_value"), ("rm", "rm_value")):
        if key in instr:
            values[value_key] = _read_register(registers, instr[key])
    if instr['type'] == "STR":
        values['rd_value'] = _read_register(registers, instr['rd'])
    return {**instr, **values}


def _read_register(registers, index):
    try:
        return registers.read(index)
    except InvalidRegisterIndex as e:
        logger.warning("%s, reading 0", e)
        return 0


def alu(instr):
    """Execute stage: compute the result or the effective address."""
    kind = instr['type']
    if kind == "ADD":
        return {**instr, "result": instr['rn_value'] + instr['rm_value']}
    if kind == "SUB":
        return {**instr, "result": instr['rn_value'] - instr['rm_value']}
    if kind == "MUL":
        return {**instr, "result": instr['rn_value'] * instr['rm_value']}
    if kind == "ADDI":
        return {**instr, "result": instr['rn_value'] + instr['imm']}
    if kind == "SUBI":
        return {**instr, "result": instr['rn_value'] - instr['imm']}
    if kind == "MOV":
        return {**instr, "result": instr['rn_value']}
    if kind == "MOVI":
        return {**instr, "result": instr['imm']}
    if kind in MEMORY_OPS:
        return {**instr, "mem_addr": instr['rn_value'] + instr['imm']}
    return dict(instr)


def writeback_value(instr):
    """
    (register, value) an instruction commits, or None.
    A LOAD without a memory result commits nothing.
    """
    kind = instr['type']
    if kind == "LOAD":
        if instr.get('mem_result') is None:
            logger.warning("%s", MissingMemoryResult(
                f"Skipping writeback for LOAD to R{instr['rd']}: missing memory result"))
            return None
        return instr['rd'], instr['mem_result']
    if kind in WRITES_REG:
        return instr['rd'], instr['result']
    return None


def commit(registers, pending):
    if pending is None:
        return
    rd, value = pending
    try:
        registers.write(rd, value)
    except InvalidRegisterIndex as e:
        logger.warning("%s, writeback skipped", e)


class Core:
    """
    Five-stage in-order pipeline.

    Each cycle works on a copy of the previous cycle's stage registers and
    replaces them all at the end, so no stage sees another stage's output
    from the same cycle. Register writeback is committed at the end of the
    cycle too.
    """

    def __init__(self, storage, registers, counters=None, memory_timeout=5, hazard_interlock=True):
        self.storage = storage
        self.registers = registers
        self.counters = counters or PerformanceCounters()
        self.memory_timeout = memory_timeout
        self.hazard_interlock = hazard_interlock

        self.pipeline_reg = empty_pipeline()
        # (address, source) of every completed load
        self.load_trace = []

    def get_ipc(self):
        return self.counters.ipc

    # --- Pipeline Stages ---
    def WB(self, old):
        inst = old["writeBack"]
        if inst is None:
            return None
        self.counters.inst_executed += 1
        return writeback_value(inst)

    def MEM(self, old):
        """Returns (next memory, next writeBack)."""
        inst = old["memory"]
        if inst is None:
            return None, None
        kind = inst['type']
        if kind not in MEMORY_OPS:
            return None, inst

        address = inst['mem_addr']
        if kind == "LOAD":
            response = self.storage.read(address, MEMORY_STAGE)
        else:
            response = self.storage.write(address, inst['rd_value'], MEMORY_STAGE)

        if response.status is Status.ERROR:
            logger.warning("%s at address %s dropped: %s", kind, address, response.message)
            return None, inst
        if response.done:
            return None, self._memory_done(inst, response)

        stall_cycles = inst.get('stall_cycles', 0) + 1
        inst = {**inst, "stall_cycles": stall_cycles}
        if self.memory_timeout and stall_cycles >= self.memory_timeout:
            logger.warning("Forcing %s completion at address %s after %d stalled cycles",
                           kind, address, stall_cycles)
            self.counters.forced_completions += 1
            if kind == "LOAD":
                response = self.storage.drain_read(MEMORY_STAGE, address)
                if response.status is Status.ERROR:
                    response.data = 0
            else:
                response = self.storage.drain_write(MEMORY_STAGE, address, inst['rd_value'])
            return None, self._memory_done(inst, response)

        return inst, None

    def _memory_done(self, inst, response):
        if inst['type'] == "LOAD":
            self.load_trace.append((inst['mem_addr'], response.source))
            logger.debug("LOAD [%d] = %s from %s", inst['mem_addr'], response.data, response.source)
            return {**inst, "mem_result": response.data, "source": response.source}
        return {**inst, "source": response.source}

    def EX(self, old, memory_claimed):
        """Returns (instruction held in execute, next memory)."""
        inst = old["execute"]
        if inst is None:
            return None, None
        if memory_claimed:
            return inst, None
        return None, alu(inst)

    def ID(self, old, execute_held):
        """Returns (word held in decode, next execute)."""
        word = old["decode"]
        if word is None:
            return None, None
        if execute_held:
            return word, None

        instr = decode(word)
        if self.hazard_interlock and self._depends_on_in_flight(instr, old):
            self.counters.interlock_stalls += 1
            return word, None
        return None, read_operands(instr, self.registers)

    def _depends_on_in_flight(self, instr, old):
        producers = {destination_register(old[stage]) for stage in ("execute", "memory", "writeBack")}
        producers.discard(None)
        return any(src in producers for src in source_registers(instr))

    def IF(self, old, fetch=True):
        """Returns (word shown in fetch, next decode)."""
        head = self.registers.peek()
        if head is None or not fetch:
            return None, None
        if old["decode"] is not None:
            return head, None
        word = self.registers.fetch()
        return word, word

    def pipeline_empty(self):
        return all(self.pipeline_reg[stage] is None for stage in STAGES)

    def in_flight(self):
        return any(self.pipeline_reg[stage] is not None for stage in STAGES[1:])

    def is_complete(self):
        return (not self.registers.queue and
                self.pipeline_empty() and
                not self.storage.has_pending())

    def pipeline_cycle(self, fetch=True):
        """
        Execute one clock cycle. Returns True once everything has drained.
        """
        old = dict(self.pipeline_reg)

        pending_commit = self.WB(old)
        next_mem, next_wb = self.MEM(old)

        held_exec, to_mem = self.EX(old, next_mem is not None)
        if to_mem is not None:
            next_mem = to_mem

        held_decode, next_exec = self.ID(old, held_exec is not None)
        if held_exec is not None:
            next_exec = held_exec

        fetch_view, next_decode = self.IF(old, fetch)
        if held_decode is not None:
            next_decode = held_decode

        commit(self.registers, pending_commit)
        self.pipeline_reg = {
            "fetch":     fetch_view,
            "decode":    next_decode,
            "execute":   next_exec,
            "memory":    next_mem,
            "writeBack": next_wb,
        }

        self.counters.clock += 1
        if self.storage.has_pending():
            self.counters.stall_count += 1

        return self.is_complete()

    def reset(self):
        self.pipeline_reg = empty_pipeline()
        self.load_trace = []
