"""
Tests for authentication code derivation and normalization.
"""

from __future__ import annotations

import hashlib

import pytest

from verification.code_generator import (
    CODE_LENGTH,
    CodeGenerator,
    is_well_formed,
    normalize_code,
    serial_number,
)


class TestGenerate:
    def test_deterministic(self, generator) -> None:
        a = generator.generate("M1", "B1", "B1-000001")
        b = generator.generate("M1", "B1", "B1-000001")
        assert a == b

    def test_shape(self, generator) -> None:
        code = generator.generate("M1", "B1", "B1-000001")
        assert len(code) == CODE_LENGTH
        assert is_well_formed(code)

    @pytest.mark.parametrize(
        "args",
        [("M2", "B1", "B1-000001"), ("M1", "B2", "B1-000001"), ("M1", "B1", "B1-000002")],
    )
    def test_every_input_changes_the_code(self, generator, args) -> None:
        assert generator.generate(*args) != generator.generate("M1", "B1", "B1-000001")

    def test_secret_changes_the_code(self) -> None:
        a = CodeGenerator("one").generate("M1", "B1", "B1-000001")
        b = CodeGenerator("two").generate("M1", "B1", "B1-000001")
        assert a != b

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            CodeGenerator("")

    def test_known_vector(self) -> None:
        expected = hashlib.sha256(b"M1:B1:B1-000001:test-secret").hexdigest()[:32].upper()
        assert CodeGenerator("test-secret").generate("M1", "B1", "B1-000001") == expected


class TestGenerateBatch:
    def test_serials_and_count(self, generator) -> None:
        pairs = list(generator.generate_batch("M1", "LOT7", 3))
        assert [serial for serial, _ in pairs] == ["LOT7-000001", "LOT7-000002", "LOT7-000003"]
        assert len({code for _, code in pairs}) == 3

    def test_regeneration_is_identical(self, generator) -> None:
        assert list(generator.generate_batch("M1", "B1", 5)) == list(
            generator.generate_batch("M1", "B1", 5),
        )

    def test_zero_count(self, generator) -> None:
        assert list(generator.generate_batch("M1", "B1", 0)) == []

    def test_negative_count_rejected(self, generator) -> None:
        with pytest.raises(ValueError):
            list(generator.generate_batch("M1", "B1", -1))


class TestNormalize:
    @pytest.mark.parametrize(
        "raw",
        [
            "abcd-ef01-2345-6789-abcd-ef01-2345-6789",
            "ABCD EF01 2345 6789 ABCD EF01 2345 6789",
            "abcd_ef01.2345-6789 abcdef0123456789",
        ],
    )
    def test_strips_separators_and_uppercases(self, raw) -> None:
        assert normalize_code(raw) == "ABCDEF0123456789ABCDEF0123456789"

    def test_rejects_non_hex(self) -> None:
        assert is_well_formed("Z" * 32) is False

    def test_rejects_wrong_length(self) -> None:
        assert is_well_formed("A" * 31) is False

    def test_serial_format(self) -> None:
        assert serial_number("B1", 42) == "B1-000042"
