import pytest

from conduit.protocol import split_buffer, iter_chunks, DEFAULT_HIGH_WATER_MARK


def test_split_scenario_lengths():
    chunks = split_buffer(b"a" * 2500, 1024)
    assert [len(c) for c in chunks] == [1024, 1024, 452]


@pytest.mark.parametrize("size,mark", [
    (1, 1),
    (7, 3),
    (9, 3),
    (1023, 1024),
    (1024, 1024),
    (1025, 1024),
    (4096, 1000),
])
def test_split_reconstructs_input(size, mark):
    data = bytes(i % 251 for i in range(size))
    chunks = split_buffer(data, mark)

    assert b"".join(chunks) == data
    assert all(len(c) == mark for c in chunks[:-1])
    assert 1 <= len(chunks[-1]) <= mark


def test_exact_multiple_has_no_empty_tail():
    chunks = split_buffer(b"x" * 2048, 1024)
    assert [len(c) for c in chunks] == [1024, 1024]


def test_empty_input_yields_single_empty_chunk():
    assert split_buffer(b"", 1024) == [b""]


def test_default_high_water_mark():
    assert DEFAULT_HIGH_WATER_MARK == 1024
    assert [len(c) for c in split_buffer(b"z" * 1500)] == [1024, 476]


def test_iter_chunks_is_restartable():
    data = bytearray(b"abcdefg")
    assert list(iter_chunks(data, 3)) == list(iter_chunks(data, 3)) == [b"abc", b"def", b"g"]


def test_non_positive_high_water_mark_rejected():
    with pytest.raises(ValueError):
        split_buffer(b"abc", 0)
