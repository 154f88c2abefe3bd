"""Binary dump formatter used by the kuhex builtin.

Each row covers 16 bytes: the offset, the bytes in hex grouped by the
requested group size, and the printable-ASCII rendering.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Iterator, TextIO, Union

ROW_WIDTH = 16
GROUP_SIZES = (1, 2, 4, 8, 16)


def format_row(offset: int, chunk: bytes, group_size: int = 1) -> str:
    """Format one row of the dump.

    Args:
        offset: Offset of the first byte in the row
        chunk: Up to 16 bytes
        group_size: Bytes per hex group (one of 1, 2, 4, 8, 16)

    Returns:
        Formatted row without a trailing newline
    """
    parts = [f"{offset:08x}: "]

    for i, byte in enumerate(chunk):
        if i > 0 and i % group_size == 0:
            parts.append(" ")
        parts.append(f"{byte:02x}")

    # Pad short rows so the ASCII column lines up
    for i in range(len(chunk), ROW_WIDTH):
        if i % group_size == 0:
            parts.append(" ")
        parts.append("  ")

    parts.append("  ")
    parts.append("".join(chr(b) if 32 <= b <= 126 else "." for b in chunk))
    return "".join(parts)


def iter_rows(stream: BinaryIO, group_size: int = 1) -> Iterator[str]:
    """Yield formatted rows for a binary stream.

    Raises:
        ValueError: If group_size is not supported
    """
    if group_size not in GROUP_SIZES:
        raise ValueError(
            f"Invalid group size. Supported values: {', '.join(map(str, GROUP_SIZES))}."
        )

    offset = 0
    while True:
        chunk = stream.read(ROW_WIDTH)
        if not chunk:
            break
        yield format_row(offset, chunk, group_size)
        offset += len(chunk)


def hexdump(path: Union[str, Path], out: TextIO, group_size: int = 1) -> int:
    """Dump a file to a text stream.

    Args:
        path: File to dump
        out: Destination stream
        group_size: Bytes per hex group

    Returns:
        Number of rows written

    Raises:
        OSError: If the file cannot be read
        ValueError: If group_size is not supported
    """
    rows = 0
    with open(path, 'rb') as f:
        for row in iter_rows(f, group_size):
            out.write(row + "\n")
            rows += 1
    out.flush()
    return rows
