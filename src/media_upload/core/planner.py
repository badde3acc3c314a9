"""Part planning and merge-body construction for multipart uploads."""

from typing import Iterable, List

from .exceptions import TooManyPartsError, ValidationError
from .models import MAX_PARTS, PartResult, PartSpec


def plan_parts(total_size: int, chunk_size: int, max_parts: int = MAX_PARTS) -> List[PartSpec]:
    """Split ``total_size`` bytes into parts of ``chunk_size`` bytes.

    The last part absorbs the remainder instead of becoming a short extra
    part, so every part but the last is exactly ``chunk_size`` long.

    Args:
        total_size: Size of the payload in bytes
        chunk_size: Nominal part size in bytes
        max_parts: Upper bound imposed by the upload protocol

    Returns:
        Contiguous parts covering ``[0, total_size)``, numbered from 1

    Raises:
        TooManyPartsError: if more than ``max_parts`` parts would be needed
    """
    if total_size <= 0:
        raise ValidationError("total_size", total_size, "file size is zero")
    if chunk_size <= 0:
        raise ValidationError("chunk_size", chunk_size, "chunk size must be positive")

    whole_parts = total_size // chunk_size
    if whole_parts > max_parts:
        raise TooManyPartsError(total_size, chunk_size, max_parts)
    if whole_parts == 0:
        # Smaller than one chunk: a single short part.
        return [PartSpec(number=1, offset=0, length=total_size)]

    remainder = total_size % chunk_size
    parts = []
    for i in range(whole_parts):
        length = chunk_size
        if i == whole_parts - 1:
            length += remainder
        parts.append(PartSpec(number=i + 1, offset=i * chunk_size, length=length))
    return parts


def count_presigned_parts(total_size: int, part_size: int) -> int:
    """Number of parts of a server-fixed partition (trailing short part kept)."""
    if part_size <= 0:
        raise ValidationError("part_size", part_size, "part size must be positive")
    whole_parts, remainder = divmod(total_size, part_size)
    return whole_parts + 1 if remainder else whole_parts


def build_merge_body(results: Iterable[PartResult]) -> str:
    """Merge body ``"1:c1,2:c2,..."`` ordered by part number."""
    ordered = sorted(results, key=lambda r: r.number)
    if not ordered:
        raise ValidationError("parts", [], "body crc32 empty")
    return ",".join(f"{r.number}:{r.checksum}" for r in ordered)
