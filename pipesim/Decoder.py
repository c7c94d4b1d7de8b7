"""
Instruction words are 32 bits: [opcode:8][rd:8][rn:8][imm/rm/offset:8].
"""
import logging

from pipesim.Errors import UnknownOpcode

logger = logging.getLogger(__name__)

OPCODES = {
    "NOP":  0x00,
    "MOVI": 0x01,
    "MOV":  0x02,
    "ADD":  0x03,
    "SUB":  0x04,
    "ADDI": 0x05,
    "SUBI": 0x06,
    "MUL":  0x07,
    "LOAD": 0x08,
    "STR":  0x09,
}
OPCODE_NAMES = {code: name for name, code in OPCODES.items()}

THREE_REG   = ("ADD", "SUB", "MUL")
WITH_IMM    = ("ADDI", "SUBI")
MEMORY_OPS  = ("LOAD", "STR")
WRITES_REG  = ("MOVI", "MOV", "ADD", "SUB", "ADDI", "SUBI", "MUL", "LOAD")


def encode(op, rd=0, rn=0, imm=0):
    """Build one instruction word, e.g. encode("ADD", 3, 1, 2)."""
    code = OPCODES[op.upper()] if isinstance(op, str) else op
    for name, field in (("opcode", code), ("rd", rd), ("rn", rn), ("imm", imm)):
        if not 0 <= field <= 0xff:
            raise ValueError(f"{name} {field} does not fit in 8 bits")
    return (code << 24) | (rd << 16) | (rn << 8) | imm


def split_word(word):
    return (word >> 24) & 0xff, (word >> 16) & 0xff, (word >> 8) & 0xff, word & 0xff


def opcode_name(code):
    try:
        return OPCODE_NAMES[code]
    except KeyError:
        raise UnknownOpcode(code) from None


def decode(word):
    """
    Turn a raw word into an instruction record holding register numbers and
    the immediate. Operand values are resolved later by the caller.
    """
    op, rd, rn, imm8 = split_word(word)
    try:
        kind = opcode_name(op)
    except UnknownOpcode as e:
        logger.warning("%s in word 0x%08x, treating as NOP", e, word)
        kind = "NOP"

    instr = {"raw": word, "type": kind}
    if kind == "MOVI":
        instr.update(rd=rd, imm=imm8)
    elif kind == "MOV":
        instr.update(rd=rd, rn=rn)
    elif kind in THREE_REG:
        instr.update(rd=rd, rn=rn, rm=imm8)
    elif kind in WITH_IMM or kind in MEMORY_OPS:
        instr.update(rd=rd, rn=rn, imm=imm8)
    return instr


def source_registers(instr):
    """Registers read by the instruction. STR reads rd as the value to store."""
    sources = [instr[key] for key in ("rn", "rm") if key in instr]
    if instr['type'] == "STR":
        sources.append(instr['rd'])
    return sources


def destination_register(instr):
    if instr is None or isinstance(instr, int):
        return None
    return instr['rd'] if instr['type'] in WRITES_REG else None


def parse_words(program):
    """
    Accept a program as bytes (big-endian words) or a sequence of ints or
    numeric strings ("0x01010005", "16842757").
    """
    if isinstance(program, (bytes, bytearray)):
        if len(program) % 4:
            raise ValueError("Binary program length must be a multiple of 4")
        return [int.from_bytes(program[i:i + 4], "big") for i in range(0, len(program), 4)]

    words = []
    for item in program:
        if isinstance(item, bool):
            raise ValueError(f"Bad instruction word {item!r}")
        if isinstance(item, str):
            item = int(item.strip(), 0)
        if not isinstance(item, int) or not 0 <= item <= 0xffffffff:
            raise ValueError(f"Bad instruction word {item!r}")
        words.append(item)
    return words


def format_instruction(instr):
    if instr is None:
        return "-"
    if isinstance(instr, int):
        return f"0x{instr:08x}"

    kind = instr.get('type', "NOP")
    if kind == "NOP":
        return "NOP"

    text = kind
    if kind in THREE_REG:
        text += f" R{instr['rd']}, R{instr['rn']}, R{instr['rm']}"
    elif kind in WITH_IMM:
        text += f" R{instr['rd']}, R{instr['rn']}, {instr['imm']}"
    elif kind in MEMORY_OPS:
        text += f" R{instr['rd']}, R{instr['rn']}, {instr['imm']}"
    elif kind == "MOV":
        text += f" R{instr['rd']}, R{instr['rn']}"
    elif kind == "MOVI":
        text += f" R{instr['rd']}, {instr['imm']}"

    if kind in MEMORY_OPS:
        if instr.get('mem_addr') is not None:
            text += f" [Addr:{instr['mem_addr']}]"
        if instr.get('mem_result') is not None:
            text += f" [Val:{instr['mem_result']}]"
    elif instr.get('result') is not None:
        text += f" [Res:{instr['result']}]"
    return text
