import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Hashable, List, Optional

from pipesim.Errors import InvalidAddress, InvalidLineIndex

logger = logging.getLogger(__name__)


class Status(Enum):
    DONE = "done"
    WAIT = "wait"
    ERROR = "error"


@dataclass
class Response:
    """Outcome of one poll of a multi-cycle memory operation."""
    status: Status
    data: Optional[int] = None
    line: Optional[List[int]] = None
    source: Optional[str] = None
    remaining: Optional[int] = None
    message: str = ""

    @property
    def done(self) -> bool:
        return self.status is Status.DONE


@dataclass
class InFlight:
    owner: Hashable
    remaining: int
    payload: dict = field(default_factory=dict)


class ServicePort:
    """
    A single server with a fixed service time.

    Only one operation is in flight at a time, whoever issued it. The first
    poll arms the countdown, every later poll by the owner decrements it, so
    a `delay` cycle operation needs `delay + 1` polls. Polls by anyone else
    are told to wait and change nothing.
    """

    def __init__(self, delay: int):
        self.delay = delay
        self.in_flight: Optional[InFlight] = None

    @property
    def busy(self) -> bool:
        return self.in_flight is not None

    @property
    def owner(self):
        return self.in_flight.owner if self.in_flight else None

    def poll(self, owner, payload: dict = None):
        """
        Returns (Status, remaining, payload). The payload is the one stored
        when the operation was armed and is only returned with DONE.
        """
        if self.in_flight is None:
            if self.delay == 0:
                return Status.DONE, 0, payload or {}
            self.in_flight = InFlight(owner, self.delay, payload or {})
            return Status.WAIT, self.delay, None

        if self.in_flight.owner != owner:
            return Status.WAIT, self.in_flight.remaining, None

        self.in_flight.remaining -= 1
        if self.in_flight.remaining == 0:
            finished = self.in_flight.payload
            self.in_flight = None
            return Status.DONE, 0, finished
        return Status.WAIT, self.in_flight.remaining, None

    def release(self, owner) -> bool:
        if self.in_flight is not None and self.in_flight.owner == owner:
            self.in_flight = None
            return True
        return False

    def clear(self):
        self.in_flight = None


class MainMemory:
    def __init__(self, words: int = 32768, words_per_line: int = 16, delay: int = 4):
        self.words = words
        self.words_per_line = words_per_line
        self.lines = words // words_per_line
        self.data = [[0] * words_per_line for _ in range(self.lines)]
        self.port = ServicePort(delay)

    @property
    def delay(self) -> int:
        return self.port.delay

    @property
    def busy(self) -> bool:
        return self.port.busy

    def check(self, address) -> int:
        if isinstance(address, bool) or not isinstance(address, int):
            raise InvalidAddress(address, self.words)
        if address < 0 or address >= self.words:
            raise InvalidAddress(address, self.words)
        return address

    def getLineAndOffset(self, address):
        address = self.check(address)
        return address // self.words_per_line, address % self.words_per_line

    # Direct access, no latency
    def peek(self, address) -> int:
        line_index, offset = self.getLineAndOffset(address)
        return self.data[line_index][offset]

    def poke(self, address, value):
        line_index, offset = self.getLineAndOffset(address)
        self.data[line_index][offset] = value

    def line(self, line_index) -> List[int]:
        return list(self.data[line_index])

    # Delayed access
    def _complete(self, payload) -> Response:
        line_index, offset = self.getLineAndOffset(payload['address'])
        if payload['kind'] == "write":
            self.data[line_index][offset] = payload['value']
            logger.debug("Memory write %s -> [%d]", payload['value'], payload['address'])
            return Response(Status.DONE, source="memory")
        return Response(Status.DONE,
                        data=self.data[line_index][offset],
                        line=self.line(line_index),
                        source="memory")

    def _poll(self, requester, payload):
        # An owner asking for something else has given up on the armed op.
        op = self.port.in_flight
        if op is not None and op.owner == requester and \
                (op.payload['kind'], op.payload['address']) != (payload['kind'], payload['address']):
            logger.debug("Dropping stale %s of [%s] for %s",
                         op.payload['kind'], op.payload['address'], requester)
            self.port.release(requester)

        status, remaining, armed = self.port.poll(requester, payload)
        if status is not Status.DONE:
            return Response(Status.WAIT, remaining=remaining)
        return self._complete(armed)

    def read(self, address, requester) -> Response:
        self.check(address)
        return self._poll(requester, {"kind": "read", "address": address})

    def write(self, address, value, requester) -> Response:
        self.check(address)
        return self._poll(requester, {"kind": "write", "address": address, "value": value})

    def release(self, requester) -> bool:
        return self.port.release(requester)

    def viewLine(self, line_index) -> List[int]:
        if not isinstance(line_index, int) or line_index < 0 or line_index >= self.lines:
            raise InvalidLineIndex("memory", line_index, self.lines)
        return self.line(line_index)

    def reset(self):
        for line in self.data:
            for i in range(len(line)):
                line[i] = 0
        self.port.clear()

    def in_flight(self) -> Optional[dict]:
        """Owner and payload of the current operation, for introspection."""
        if not self.port.busy:
            return None
        op = self.port.in_flight
        return {"owner": op.owner, "remaining": op.remaining, **op.payload}
