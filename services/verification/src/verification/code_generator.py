"""
Authentication code derivation for PharmAuth.

A code is the SHA-256 digest of ``manufacturer:batch:serial:secret``,
truncated to 32 hex characters and uppercased.  Derivation is stateless, so
regenerating a batch reproduces exactly the same codes.  Without the secret
the codes cannot be predicted or mapped back to their serial.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterator

CODE_LENGTH = 32

_SEPARATORS = re.compile(r"[\s\-_.]+")
_CODE_PATTERN = re.compile(rf"^[0-9A-F]{{{CODE_LENGTH}}}$")


def normalize_code(raw: str) -> str:
    """Strip separator characters and uppercase a scanned code."""
    return _SEPARATORS.sub("", raw).upper()


def is_well_formed(code: str) -> bool:
    """Return ``True`` if *code* is a normalized 32-character hex code."""
    return bool(_CODE_PATTERN.match(code))


def serial_number(batch_id: str, index: int) -> str:
    """Return the serial for the *index*-th unit (1-based) of a batch."""
    return f"{batch_id}-{index:06d}"


class CodeGenerator:
    """Derives authentication codes from unit identity and a shared secret.

    Args:
        secret: Process-wide code secret (``Settings.code_secret``).
        length: Number of hex characters kept from the digest.
    """

    def __init__(self, secret: str, *, length: int = CODE_LENGTH) -> None:
        if not secret:
            raise ValueError("Code secret must not be empty")
        self._secret = secret
        self._length = length

    def generate(self, manufacturer_id: str, batch_id: str, serial: str) -> str:
        """Derive the code for one unit."""
        material = f"{manufacturer_id}:{batch_id}:{serial}:{self._secret}"
        digest = hashlib.sha256(material.encode()).hexdigest()
        return digest[: self._length].upper()

    def generate_batch(
        self,
        manufacturer_id: str,
        batch_id: str,
        count: int,
    ) -> Iterator[tuple[str, str]]:
        """Yield ``(serial, code)`` pairs for units 1..*count* of a batch."""
        if count < 0:
            raise ValueError("count must be non-negative")
        for index in range(1, count + 1):
            serial = serial_number(batch_id, index)
            yield serial, self.generate(manufacturer_id, batch_id, serial)
