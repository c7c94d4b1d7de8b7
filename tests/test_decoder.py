import unittest

from pipesim.Decoder import (decode, destination_register, encode, format_instruction,
                             opcode_name, parse_words, source_registers)
from pipesim.Errors import UnknownOpcode


class TestEncodeDecode(unittest.TestCase):

    def test_field_layout(self):
        self.assertEqual(encode("ADD", 3, 1, 2), 0x03030102)
        self.assertEqual(encode("movi", 1, 0, 5), 0x01010005)
        self.assertEqual(encode(0x09, 4, 5, 6), 0x09040506)
        with self.assertRaises(ValueError):
            encode("ADDI", 1, 2, 256)

    def test_decode_by_format(self):
        self.assertEqual(decode(0x03030102),
                         {"raw": 0x03030102, "type": "ADD", "rd": 3, "rn": 1, "rm": 2})
        self.assertEqual(decode(encode("MOVI", 7, 0, 200)),
                         {"raw": 0x010700c8, "type": "MOVI", "rd": 7, "imm": 200})
        self.assertEqual(decode(encode("MOV", 2, 9)),
                         {"raw": 0x02020900, "type": "MOV", "rd": 2, "rn": 9})
        self.assertEqual(decode(encode("LOAD", 4, 1, 3))['imm'], 3)
        self.assertEqual(decode(encode("SUBI", 4, 1, 3))['type'], "SUBI")

    def test_unknown_opcode(self):
        with self.assertRaises(UnknownOpcode):
            opcode_name(0x42)
        with self.assertLogs("pipesim.Decoder", level="WARNING"):
            self.assertEqual(decode(0x42000000), {"raw": 0x42000000, "type": "NOP"})

    def test_register_usage(self):
        self.assertEqual(source_registers(decode(encode("ADD", 3, 1, 2))), [1, 2])
        self.assertEqual(source_registers(decode(encode("STR", 5, 6, 0))), [6, 5])
        self.assertEqual(source_registers(decode(encode("MOVI", 5, 0, 1))), [])
        self.assertEqual(destination_register(decode(encode("LOAD", 5, 6, 0))), 5)
        self.assertIsNone(destination_register(decode(encode("STR", 5, 6, 0))))
        self.assertIsNone(destination_register(0x03030102))
        self.assertIsNone(destination_register(None))


class TestParseWords(unittest.TestCase):

    def test_accepted_forms(self):
        self.assertEqual(parse_words(["0x01010005", "16908291", 0x03030102]),
                         [0x01010005, 16908291, 0x03030102])
        self.assertEqual(parse_words(b"\x01\x01\x00\x05\x03\x03\x01\x02"),
                         [0x01010005, 0x03030102])

    def test_rejected_forms(self):
        for bad in (["zz"], [-1], [1 << 32], [True], [1.5], b"\x00\x01\x02"):
            with self.assertRaises(ValueError, msg=repr(bad)):
                parse_words(bad)


class TestFormatInstruction(unittest.TestCase):

    def test_stage_views(self):
        self.assertEqual(format_instruction(None), "-")
        self.assertEqual(format_instruction(0x03030102), "0x03030102")
        self.assertEqual(format_instruction({**decode(0x03030102), "result": 8}),
                         "ADD R3, R1, R2 [Res:8]")
        load = {**decode(encode("LOAD", 2, 1, 4)), "mem_addr": 104, "mem_result": 7}
        self.assertEqual(format_instruction(load), "LOAD R2, R1, 4 [Addr:104] [Val:7]")
        self.assertEqual(format_instruction(decode(0)), "NOP")


if __name__ == '__main__':
    unittest.main()
