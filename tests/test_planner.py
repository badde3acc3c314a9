import pytest

from media_upload.core.exceptions import TooManyPartsError, ValidationError
from media_upload.core.models import MAX_PARTS, PartResult
from media_upload.core.planner import build_merge_body, count_presigned_parts, plan_parts


def test_exact_multiple_gives_equal_parts():
    parts = plan_parts(30, 10)
    assert [(p.number, p.offset, p.length) for p in parts] == [
        (1, 0, 10),
        (2, 10, 10),
        (3, 20, 10),
    ]


def test_last_part_absorbs_remainder():
    parts = plan_parts(25, 10)
    assert [(p.number, p.offset, p.length) for p in parts] == [(1, 0, 10), (2, 10, 15)]


def test_smaller_than_chunk_is_single_part():
    parts = plan_parts(7, 10)
    assert [(p.number, p.offset, p.length) for p in parts] == [(1, 0, 7)]


@pytest.mark.parametrize("total_size,chunk_size", [(1, 1), (99, 10), (12345, 1000), (10**6, 333)])
def test_parts_cover_payload_contiguously(total_size, chunk_size):
    parts = plan_parts(total_size, chunk_size)
    assert sum(p.length for p in parts) == total_size
    assert [p.number for p in parts] == list(range(1, len(parts) + 1))
    offset = 0
    for part in parts:
        assert part.offset == offset
        offset += part.length
    assert all(p.length == chunk_size for p in parts[:-1])


def test_part_limit():
    assert len(plan_parts(MAX_PARTS * 10, 10)) == MAX_PARTS
    with pytest.raises(TooManyPartsError) as exc_info:
        plan_parts(MAX_PARTS * 10 + 10, 10)
    assert "parts over 10000" in str(exc_info.value)


def test_invalid_sizes():
    with pytest.raises(ValidationError):
        plan_parts(0, 10)
    with pytest.raises(ValidationError):
        plan_parts(10, 0)


def test_presigned_part_count_keeps_short_tail():
    assert count_presigned_parts(30, 10) == 3
    assert count_presigned_parts(31, 10) == 4
    assert count_presigned_parts(5, 10) == 1


def test_merge_body_is_ordered_by_part_number():
    results = [
        PartResult(number=3, checksum="c3"),
        PartResult(number=1, checksum="c1"),
        PartResult(number=2, checksum="c2"),
    ]
    assert build_merge_body(results) == "1:c1,2:c2,3:c3"


def test_merge_body_requires_results():
    with pytest.raises(ValidationError):
        build_merge_body([])
