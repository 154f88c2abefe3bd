"""Tests for the hex dump formatter."""

import io

import pytest

from kudash.lib.hexdump import format_row, hexdump, iter_rows

FULL_ROW = bytes(range(0x41, 0x51))  # "ABCDEFGHIJKLMNOP"


class TestFormatRow:
    """Test formatting of a single row."""

    def test_full_row_single_bytes(self):
        """Test the default layout."""
        expected = (
            "00000000: 41 42 43 44 45 46 47 48 49 4a 4b 4c 4d 4e 4f 50"
            "  ABCDEFGHIJKLMNOP"
        )
        assert format_row(0, FULL_ROW) == expected

    @pytest.mark.parametrize("group_size,hex_column", [
        (2, "4142 4344 4546 4748 494a 4b4c 4d4e 4f50"),
        (4, "41424344 45464748 494a4b4c 4d4e4f50"),
        (8, "4142434445464748 494a4b4c4d4e4f50"),
        (16, "4142434445464748494a4b4c4d4e4f50"),
    ])
    def test_grouping(self, group_size, hex_column):
        """Test bytes are grouped without spaces inside a group."""
        row = format_row(0, FULL_ROW, group_size)
        assert row == f"00000000: {hex_column}  ABCDEFGHIJKLMNOP"

    def test_offset_is_eight_hex_digits(self):
        """Test the offset column."""
        assert format_row(0x1a0, b"A").startswith("000001a0: 41")

    def test_non_printable_bytes(self):
        """Test bytes outside 32..126 show as dots."""
        row = format_row(0, bytes([0x00, 0x7f, 0x20, 0x7e, 0xff]))
        assert row.endswith("  .. ~.")

    @pytest.mark.parametrize("group_size", [1, 2, 4, 8, 16])
    def test_short_row_aligns_ascii_column(self, group_size):
        """Test a final short row keeps the ASCII column in place."""
        full = format_row(0, FULL_ROW, group_size)
        short = format_row(0x10, b"AB", group_size)
        assert len(short) == len(full) - (len(FULL_ROW) - 2)
        assert short.endswith("  AB")
        assert short.index("  AB") == full.index("  ABCD")

    def test_short_row_padding(self):
        """Test the exact padding of a short row."""
        assert format_row(0, b"AB") == "00000000: 41 42" + " " * 42 + "  AB"


class TestDump:
    """Test dumping streams and files."""

    def test_rows_and_offsets(self):
        """Test rows advance the offset by sixteen."""
        rows = list(iter_rows(io.BytesIO(bytes(40))))
        assert [row[:9] for row in rows] == ["00000000:", "00000010:", "00000020:"]

    def test_empty_input(self):
        """Test an empty stream produces no rows."""
        assert list(iter_rows(io.BytesIO(b""))) == []

    def test_invalid_group_size(self):
        """Test unsupported group sizes."""
        with pytest.raises(ValueError, match="Invalid group size"):
            list(iter_rows(io.BytesIO(b"x"), group_size=3))

    def test_hexdump_file(self, tmp_path):
        """Test dumping a file to a text stream."""
        path = tmp_path / "data.bin"
        path.write_bytes(FULL_ROW + b"Q")
        out = io.StringIO()
        assert hexdump(path, out) == 2
        lines = out.getvalue().splitlines()
        assert lines[0] == format_row(0, FULL_ROW)
        assert lines[1] == format_row(16, b"Q")

    def test_missing_file(self, tmp_path):
        """Test a missing file raises OSError."""
        with pytest.raises(OSError):
            hexdump(tmp_path / "missing", io.StringIO())
