"""Payload chunking for acknowledged bulk transfer."""

from typing import Iterator, List, Union

DEFAULT_HIGH_WATER_MARK = 1024

Buffer = Union[bytes, bytearray, memoryview]


def iter_chunks(buffer: Buffer, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> Iterator[bytes]:
    """
    Yield consecutive slices of ``buffer``.

    Every slice but the last is exactly ``high_water_mark`` bytes long. An
    empty buffer yields a single empty slice, which callers skip.

    Args:
        buffer: Data to split
        high_water_mark: Maximum chunk size in bytes

    Raises:
        ValueError: If ``high_water_mark`` is not positive
    """
    if high_water_mark < 1:
        raise ValueError(f"high_water_mark must be positive, got {high_water_mark}")

    data = bytes(buffer)
    if not data:
        yield b''
        return

    for start in range(0, len(data), high_water_mark):
        yield data[start:start + high_water_mark]


def split_buffer(buffer: Buffer, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> List[bytes]:
    """
    Split ``buffer`` into chunks of at most ``high_water_mark`` bytes.

    Args:
        buffer: Data to split
        high_water_mark: Maximum chunk size in bytes

    Returns:
        Ordered list of chunks whose concatenation equals ``buffer``
    """
    return list(iter_chunks(buffer, high_water_mark))
