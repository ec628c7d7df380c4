"""
Tests for the room code / session id generator.
"""

import os
import string

import pytest

from codegen import CodeGenerator
from constants import CODE_ALPHABET


def pack(values, bits=6) -> bytes:
    """Pack draw values MSB-first into bytes, zero padded to a whole byte."""
    bitstring = "".join(format(v, f"0{bits}b") for v in values)
    bitstring += "0" * (-len(bitstring) % 8)
    return int(bitstring, 2).to_bytes(len(bitstring) // 8, "big")


def scripted_entropy(*chunks):
    it = iter(chunks)
    return lambda n: next(it)


class TestBitWidth:

    def test_alphanumeric_uses_six_bits(self):
        assert CodeGenerator().bits_per_draw == 6

    def test_power_of_two_alphabet(self):
        assert CodeGenerator(alphabet=string.ascii_uppercase[:32]).bits_per_draw == 5

    def test_two_letter_alphabet(self):
        assert CodeGenerator(alphabet="AB").bits_per_draw == 1

    def test_empty_alphabet_rejected(self):
        with pytest.raises(ValueError):
            CodeGenerator(alphabet="")


class TestGenerate:

    def test_maps_draws_to_alphabet(self):
        gen = CodeGenerator(entropy=scripted_entropy(pack([0, 1, 27, 28, 2, 3])))
        assert gen.generate(6) == "AB12CD"

    def test_out_of_range_draws_are_rejected(self):
        """63 and 36 do not index a 36 char alphabet and must be redrawn."""
        gen = CodeGenerator(entropy=scripted_entropy(pack([63, 36, 0])))
        assert gen.generate(1) == "A"

    def test_refills_when_pool_runs_dry(self):
        # draws [1, 2] span two one-byte chunks: 000001|00 0010|0000
        gen = CodeGenerator(entropy=scripted_entropy(b"\x04", b"\x20"))
        assert gen.generate(2) == "BC"

    def test_empty_entropy_chunk_is_retried(self):
        gen = CodeGenerator(entropy=scripted_entropy(b"", pack([25])))
        assert gen.generate(1) == "Z"

    def test_length_and_charset(self):
        code = CodeGenerator().generate(12)
        assert len(code) == 12
        assert all(c in CODE_ALPHABET for c in code)

    def test_zero_length(self):
        assert CodeGenerator().generate(0) == ""

    def test_every_character_reachable(self):
        gen = CodeGenerator(entropy=os.urandom)
        seen = set(gen.generate(36 * 200))
        assert seen == set(CODE_ALPHABET)


class TestInvariant:

    def test_index_outside_alphabet_is_internal_error(self):
        gen = CodeGenerator()
        with pytest.raises(RuntimeError):
            gen._char_at(len(CODE_ALPHABET))
