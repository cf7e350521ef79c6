#!/usr/bin/env python3

"""Run-length decoders for Da Fit "type N" watch face images

The RLE details here are entirely inferred from watch face files
downloaded by the DA FIT app and may be wrong in many respects.

Three variants have been seen:

rle-rows  The current one. The image starts with a table holding one
          4-byte entry per scanline: a u16 offset of the row's
          compressed data (counted from the start of the image) and
          a u16 encoded size of that data, shifted left by five bits.
          Row data is a sequence of commands. A command byte with the
          high bit set is a repeat: the low seven bits count how many
          times the following 3-byte ARGB8565 sample is emitted. A
          command byte with the high bit clear is a literal: that many
          3-byte samples follow and are copied as they are. Each row
          ends exactly where its table entry says it ends.

rle-basic The same commands, but without a row table. Runs do not
          respect scanline boundaries, so whatever is left of a repeat
          or literal run at the end of one row carries over into the
          next.

rle-line16
          An older 16-bit variant, recognised by a 0x2108 marker. A
          table of u16 line-end offsets follows the marker, then
          3-byte units of (colour high byte, colour low byte, count)
          each emitting count RGB565 pixels.

Decoded rows are never allowed to grow past the image width. Rows
that come up short are left zero (transparent black).

"""

from typing import List, NamedTuple, Optional, Tuple

from dafit_errors import BufferOverrun, NotImplementedFeature, SourceExhausted
from dafit_log import Logger, null_log

RLE_LINE16_MARKER = 0x2108
RLE_MARKER_SIZE = 2
RLE_ROW_ENTRY_SIZE = 4
RLE_SIZE_SHIFT = 5
RLE_SIZE_PADDING_MASK = (1 << RLE_SIZE_SHIFT) - 1
RLE_SAMPLE_SIZE = 3
RLE_REPEAT_FLAG = 0x80
RLE_COUNT_MASK = 0x7F
RLE_LINE16_UNIT_SIZE = 3


class RowEntry(NamedTuple):
    offset: int  # start of the row's data, from the start of the image
    size: int  # bytes of compressed data, already shifted down


def make_row_entry(**kw) -> RowEntry:
    return RowEntry(**kw)


def take(payload: bytes, pos: int, count: int, *, limit: int, base_offset: int):
    if pos + count > limit:
        raise SourceExhausted(
            f"compressed data needs {count} more bytes but only {max(limit - pos, 0)} remain",
            offset=base_offset + pos,
        )
    return payload[pos : pos + count]


def decode_rle_rows(
    payload: bytes,
    *,
    width: int,
    height: int,
    row_table: List[RowEntry],
    base_offset: int = 0,
    logger: Optional[Logger] = None,
) -> bytes:
    """Given the bytes of an rle-rows image (row table included) and
    its already validated row table, returns the decoded ARGB8565
    samples, width * height * 3 bytes.

    """
    logger = logger or null_log()
    assert len(row_table) == height, "need exactly one row table entry per scanline"
    row_bytes = width * RLE_SAMPLE_SIZE
    decoded = bytearray()
    for y, entry in enumerate(row_table):
        pos, end = entry.offset, entry.offset + entry.size
        if end > len(payload):
            raise SourceExhausted(
                f"row {y} ends past the end of the image data",
                offset=base_offset + len(payload),
            )
        row = bytearray(row_bytes)
        emitted = 0
        while pos < end:
            cmd = payload[pos]
            cmd_pos, pos = pos, pos + 1
            if cmd & RLE_REPEAT_FLAG:
                count = cmd & RLE_COUNT_MASK
                sample = take(
                    payload, pos, RLE_SAMPLE_SIZE, limit=end, base_offset=base_offset
                )
                pos += RLE_SAMPLE_SIZE
                for _ in range(count):
                    if emitted >= width:
                        raise BufferOverrun(
                            f"repeat run overflows row {y} ({width} pixels wide)",
                            offset=base_offset + cmd_pos,
                        )
                    row[emitted * 3 : emitted * 3 + 3] = sample
                    emitted += 1
            else:
                literal = take(
                    payload,
                    pos,
                    cmd * RLE_SAMPLE_SIZE,
                    limit=end,
                    base_offset=base_offset,
                )
                pos += cmd * RLE_SAMPLE_SIZE
                for i in range(cmd):
                    if emitted >= width:
                        raise BufferOverrun(
                            f"literal run overflows row {y} ({width} pixels wide)",
                            offset=base_offset + cmd_pos,
                        )
                    row[emitted * 3 : emitted * 3 + 3] = literal[i * 3 : i * 3 + 3]
                    emitted += 1
        if emitted < width:
            logger.debug(f"  row {y}: only {emitted} of {width} pixels, rest left blank")
        decoded += row
    return bytes(decoded)


def decode_rle_basic(
    payload: bytes,
    *,
    width: int,
    height: int,
    start: int = 0,
    base_offset: int = 0,
    logger: Optional[Logger] = None,
) -> Tuple[bytes, int]:
    """Given the bytes of an rle-basic image and the position of its
    first command, returns the decoded ARGB8565 samples and the number
    of payload bytes consumed.

    """
    logger = logger or null_log()
    decoded = bytearray()
    pos = start
    repeat_left, sample = 0, b""
    literal_left = 0
    for y in range(height):
        row = bytearray(width * RLE_SAMPLE_SIZE)
        emitted = 0
        while emitted < width:
            if repeat_left:
                n = min(repeat_left, width - emitted)
                row[emitted * 3 : (emitted + n) * 3] = sample * n
                emitted += n
                repeat_left -= n
                continue
            if literal_left:
                n = min(literal_left, width - emitted)
                literal = take(
                    payload,
                    pos,
                    n * RLE_SAMPLE_SIZE,
                    limit=len(payload),
                    base_offset=base_offset,
                )
                row[emitted * 3 : (emitted + n) * 3] = literal
                pos += n * RLE_SAMPLE_SIZE
                emitted += n
                literal_left -= n
                continue
            cmd = take(payload, pos, 1, limit=len(payload), base_offset=base_offset)[0]
            pos += 1
            if cmd & RLE_REPEAT_FLAG:
                repeat_left = cmd & RLE_COUNT_MASK
                sample = take(
                    payload,
                    pos,
                    RLE_SAMPLE_SIZE,
                    limit=len(payload),
                    base_offset=base_offset,
                )
                pos += RLE_SAMPLE_SIZE
            else:
                literal_left = cmd
        decoded += row
    if repeat_left or literal_left:
        logger.debug(
            f"  {repeat_left or literal_left} pixels of the last run fell past the image"
        )
    return bytes(decoded), pos - start


def decode_rle_line16(
    payload: bytes,
    *,
    width: int,
    height: int,
    base_offset: int = 0,
    logger: Optional[Logger] = None,
) -> bytes:
    """Given the bytes of an rle-line16 image (marker included),
    returns the decoded RGB565 pixels as little-endian u16s.

    """
    logger = logger or null_log()
    table_end = RLE_MARKER_SIZE + 2 * height
    take(payload, 0, table_end, limit=len(payload), base_offset=base_offset)
    pos = table_end
    decoded = bytearray()
    for y in range(height):
        line_end = int.from_bytes(
            payload[RLE_MARKER_SIZE + 2 * y : RLE_MARKER_SIZE + 2 * y + 2], "little"
        )
        if line_end > len(payload):
            raise SourceExhausted(
                f"line {y} ends past the end of the image data",
                offset=base_offset + len(payload),
            )
        row = bytearray(width * 2)
        emitted = 0
        while pos < line_end:
            hi, lo, count = take(
                payload,
                pos,
                RLE_LINE16_UNIT_SIZE,
                limit=line_end,
                base_offset=base_offset,
            )
            for _ in range(count):
                if emitted >= width:
                    raise BufferOverrun(
                        f"run overflows line {y} ({width} pixels wide)",
                        offset=base_offset + pos,
                    )
                row[emitted * 2] = lo
                row[emitted * 2 + 1] = hi
                emitted += 1
            pos += RLE_LINE16_UNIT_SIZE
        if emitted < width:
            logger.debug(f"  line {y}: only {emitted} of {width} pixels, rest left blank")
        decoded += row
    return bytes(decoded)


def encode_rle_rows(*, samples: bytes, width: int, height: int) -> bytes:
    raise NotImplementedFeature("RLE compression is not implemented", offset=0)


def smoke_test_rle_rows():
    payload = bytes.fromhex(
        "0800 6001 1300 0001"
        "02 ff1234 ff5678 82 809abc"
        "83 fff800 01 7f07e0"
    )
    row_table = [make_row_entry(offset=8, size=11), make_row_entry(offset=19, size=8)]
    assert decode_rle_rows(
        payload, width=4, height=2, row_table=row_table
    ) == bytes.fromhex(
        "ff1234 ff5678 809abc 809abc" "fff800 fff800 fff800 7f07e0"
    )


def smoke_test_rle_basic():
    # a single repeat run covering both rows
    decoded, consumed = decode_rle_basic(bytes.fromhex("86 aabbcc"), width=3, height=2)
    assert decoded == bytes.fromhex("aabbcc") * 6
    assert consumed == 4


smoke_test_rle_rows()
smoke_test_rle_basic()  # do this at import time so a broken module
# gets noticed as soon as possible
