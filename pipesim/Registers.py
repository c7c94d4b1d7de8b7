from collections import deque

from pipesim.Errors import InvalidRegisterIndex


class RegisterFile:
    def __init__(self, count=32):
        self.count = count
        self.registers = [0] * count
        self.pc = -1    # nothing fetched yet
        self.ir = 0
        self.queue = deque()

    def _index(self, i):
        try:
            i = int(i)
        except (TypeError, ValueError):
            raise InvalidRegisterIndex(i) from None
        if i < 0 or i >= self.count:
            raise InvalidRegisterIndex(i)
        return i

    def read(self, i):
        return self.registers[self._index(i)]

    def write(self, i, value):
        self.registers[self._index(i)] = value

    def get_all(self):
        return list(self.registers)

    def load_program(self, words):
        self.queue.extend(words)

    def fetch(self):
        """Pop the next word, advance PC and latch it into IR."""
        word = self.queue.popleft()
        self.pc += 1
        self.ir = word
        return word

    def peek(self):
        return self.queue[0] if self.queue else None

    def reset(self):
        self.registers = [0] * self.count
        self.pc = -1
        self.ir = 0
        self.queue.clear()
