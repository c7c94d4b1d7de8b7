import logging

from pipesim.Errors import InvalidLineIndex

logger = logging.getLogger(__name__)


class CacheLine:
    def __init__(self, words_per_line=16):
        self.tag   = None
        self.valid = False
        self.data  = [0] * words_per_line

    def isCacheHit(self, tag):
        return self.valid and self.tag == tag

    def updateCacheLine(self, tag, new_data):
        if len(new_data) != len(self.data):
            raise ValueError(f"Cache line needs {len(self.data)} words, got {len(new_data)}")
        self.tag   = tag
        self.valid = True
        self.data  = list(new_data)

    def invalidate(self):
        self.tag   = None
        self.valid = False
        self.data  = [0] * len(self.data)


class DirectMappedCache:
    """
    Direct-mapped, write-through, no-allocate-on-write cache of whole words.

    address = tag * (words_per_line * num_lines) + index * words_per_line + offset
    """

    def __init__(self, num_lines=16, words_per_line=16):
        self.num_lines      = num_lines
        self.words_per_line = words_per_line
        self.cache = [CacheLine(words_per_line) for _ in range(num_lines)]

        self.total_hits   = 0
        self.total_misses = 0

    def getIndex(self, address):
        return (address // self.words_per_line) % self.num_lines

    def getTag(self, address):
        return address // (self.words_per_line * self.num_lines)

    def getOffset(self, address):
        return address % self.words_per_line

    def split(self, address):
        return self.getTag(address), self.getIndex(address), self.getOffset(address)

    def address_of(self, tag, index, offset=0):
        return (tag * self.num_lines + index) * self.words_per_line + offset

    def read(self, address):
        tag, index, offset = self.split(address)
        line = self.cache[index]

        if line.isCacheHit(tag):
            self.total_hits += 1
            logger.debug("Cache hit at line %d, tag %d", index, tag)
            return {"hit": True, "data": line.data[offset]}

        self.total_misses += 1
        logger.debug("Cache miss at line %d, tag %d", index, tag)
        return {"hit": False, "index": index, "tag": tag, "offset": offset}

    def peek(self, address):
        """Resident word at `address`, or None. Not counted."""
        tag, index, offset = self.split(address)
        line = self.cache[index]
        return line.data[offset] if line.isCacheHit(tag) else None

    def write(self, address, value, count=True):
        """
        Update the resident word in place. Misses do not allocate; the
        caller still sends the value on to memory.
        """
        tag, index, offset = self.split(address)
        line = self.cache[index]
        hit = line.isCacheHit(tag)

        if hit:
            line.data[offset] = value
            logger.debug("Cache write at line %d, tag %d, offset %d", index, tag, offset)
        if count:
            if hit:
                self.total_hits += 1
            else:
                self.total_misses += 1
        return hit

    def updateCacheLine(self, index, tag, line_data):
        self.cache[index].updateCacheLine(tag, line_data)
        logger.debug("Cache refill at line %d, new tag %d", index, tag)

    def fill(self, address, line_data):
        self.updateCacheLine(self.getIndex(address), self.getTag(address), line_data)

    def viewLine(self, index):
        if not isinstance(index, int) or index < 0 or index >= self.num_lines:
            raise InvalidLineIndex("cache", index, self.num_lines)
        line = self.cache[index]
        return {
            "tag":   line.tag if line.valid else None,
            "valid": line.valid,
            "data":  list(line.data),
        }

    def reset(self):
        for line in self.cache:
            line.invalidate()

    def reset_stats(self):
        self.total_hits   = 0
        self.total_misses = 0
