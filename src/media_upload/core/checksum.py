"""Content checksums used by the upload engine.

CRC-32 (IEEE) goes into the ``Content-CRC32`` header of gateway requests.
CRC-64 (ECMA-182, reflected, as reported by the storage backend in
``x-tos-hash-crc64ecma``) verifies VPC transfers end to end.
"""

import zlib
from typing import BinaryIO, Iterable, Optional

import crcmod

# Sent instead of a CRC-32 when the body cannot be hashed up front.
CRC32_IGNORE = "Ignore"

# ECMA-182 polynomial including the x^64 term. crcmod applies xorOut on entry
# as well, so initCrc=0 gives the all-ones initial register.
_CRC64_ECMA_POLY = 0x142F0E1EBA9EA3693
_CRC64_XOR_OUT = 0xFFFFFFFFFFFFFFFF
_READ_BLOCK = 1024 * 1024

_CRC64_ECMA = crcmod.Crc(_CRC64_ECMA_POLY, initCrc=0, rev=True, xorOut=_CRC64_XOR_OUT)


def crc32_hex(data: bytes) -> str:
    """CRC-32 of ``data`` as 8 lowercase hex characters."""
    return f"{zlib.crc32(data) & 0xFFFFFFFF:08x}"


class Crc64:
    """Incremental CRC-64/ECMA hasher."""

    def __init__(self) -> None:
        self._crc = _CRC64_ECMA.new()

    def update(self, data: bytes) -> "Crc64":
        self._crc.update(data)
        return self

    @property
    def value(self) -> int:
        return self._crc.crcValue

    def hexdigest(self) -> str:
        return f"{self.value:016x}"

    def __str__(self) -> str:
        # The storage backend reports the checksum as an unsigned decimal.
        return str(self.value)


def crc64_ecma(data: bytes) -> str:
    """CRC-64/ECMA of ``data`` formatted the way storage reports it."""
    return str(Crc64().update(data))


def crc64_ecma_chunks(chunks: Iterable[bytes]) -> str:
    """CRC-64/ECMA over a sequence of byte chunks."""
    hasher = Crc64()
    for chunk in chunks:
        hasher.update(chunk)
    return str(hasher)


def iter_file_range(
    f: BinaryIO, offset: int = 0, length: Optional[int] = None, block_size: int = _READ_BLOCK
) -> Iterable[bytes]:
    """Yield the bytes of ``f`` in ``[offset, offset + length)``.

    Reads to end of file when ``length`` is None. The file position is
    left wherever reading stopped.
    """
    f.seek(offset)
    remaining = length
    while remaining is None or remaining > 0:
        size = block_size if remaining is None else min(block_size, remaining)
        block = f.read(size)
        if not block:
            break
        if remaining is not None:
            remaining -= len(block)
        yield block


def crc64_ecma_file(path: str, offset: int = 0, length: Optional[int] = None) -> str:
    """CRC-64/ECMA of a file, or of one byte range of it."""
    with open(path, "rb") as f:
        return crc64_ecma_chunks(iter_file_range(f, offset, length))
