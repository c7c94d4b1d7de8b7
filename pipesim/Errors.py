class SimulatorError(Exception):
    """Base class for every error raised by the simulator."""


class InvalidRegisterIndex(SimulatorError, IndexError):
    def __init__(self, index):
        super().__init__(f"Invalid register R{index}")
        self.index = index


class InvalidAddress(SimulatorError, IndexError):
    def __init__(self, address, size):
        super().__init__(f"Memory address {address} out of bounds (0..{size - 1})")
        self.address = address


class InvalidLineIndex(SimulatorError, IndexError):
    def __init__(self, what, index, count):
        super().__init__(f"Invalid {what} line index {index} (0..{count - 1})")
        self.index = index


class MissingMemoryResult(SimulatorError):
    """A LOAD reached writeback without a loaded value."""


class UnknownOpcode(SimulatorError, ValueError):
    def __init__(self, opcode):
        super().__init__(f"Unknown opcode 0x{opcode:02x}")
        self.opcode = opcode


class ConfigError(SimulatorError, ValueError):
    pass
