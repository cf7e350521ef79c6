#!/usr/bin/env python3

"""Locating and decoding the images a watch face refers to

An image reference only gives an offset and the image's dimensions.
How the pixels are stored has to be worked out from the bytes found
there:

- a u16 0x2108 marker introduces the old 16-bit line-indexed RLE
  (or, for faces known to use it, the row-unbounded basic RLE)
- a row table whose first entry points just past the table itself
  introduces row-indexed RLE
- anything else is taken to be a raw big-endian RGB565 matrix

Every decoded image comes out as ARGB8565 (depth 24), whatever its
storage, and can be converted from there.

"""

from typing import List, NamedTuple, Optional, Tuple

from dafit_errors import FaceFormatError, FormatTooShort, MalformedSizeField, OutOfMemory
from dafit_face import FaceElement, ImageReference, read_u16
from dafit_log import Logger, null_log
from dafit_pixels import DEPTH_16, DEPTH_24, DecodedImage, convert_image, make_decoded_image
from dafit_rle import (
    RLE_LINE16_MARKER,
    RLE_MARKER_SIZE,
    RLE_ROW_ENTRY_SIZE,
    RLE_SIZE_PADDING_MASK,
    RLE_SIZE_SHIFT,
    RowEntry,
    decode_rle_basic,
    decode_rle_line16,
    decode_rle_rows,
    make_row_entry,
)

ENCODING_RLE_ROWS = "rle-rows"
ENCODING_RLE_BASIC = "rle-basic"
ENCODING_RLE_LINE16 = "rle-line16"
ENCODING_RAW16 = "raw16"

MAX_DECODED_BYTES = 64 * 1024 * 1024


class ImageSpan(NamedTuple):
    offset: int
    length: int
    encoding: str
    row_table: List[RowEntry]


def make_image_span(*, row_table=None, **kw) -> ImageSpan:
    return ImageSpan(row_table=row_table or [], **kw)


class ImageResult(NamedTuple):
    ref: ImageReference
    span: Optional[ImageSpan]
    image: Optional[DecodedImage]
    error: Optional[FaceFormatError]


def read_row_table(data: bytes, ref: ImageReference) -> List[RowEntry]:
    table_size = RLE_ROW_ENTRY_SIZE * ref.height
    row_table = []
    previous = 0
    for row in range(ref.height):
        entry_offset = ref.offset + RLE_ROW_ENTRY_SIZE * row
        row_offset = read_u16(data, entry_offset)
        encoded_size = read_u16(data, entry_offset + 2)
        if encoded_size & RLE_SIZE_PADDING_MASK:
            raise MalformedSizeField(
                f"row {row} size field 0x{encoded_size:04X} has low bits set",
                offset=entry_offset,
                row=row,
            )
        if row_offset < previous or row_offset < table_size:
            raise MalformedSizeField(
                f"row {row} data offset 0x{row_offset:04X} is out of order",
                offset=entry_offset,
                row=row,
            )
        row_table.append(make_row_entry(offset=row_offset, size=encoded_size >> RLE_SIZE_SHIFT))
        previous = row_offset
    return row_table


def classify_image(data: bytes, ref: ImageReference, *, basic_rle: bool = False) -> ImageSpan:
    """Works out how the image at ref is stored and how many bytes of
    the file it occupies. For basic RLE the length cannot be known
    before decoding, so the span runs to the end of the file until
    the image has been decoded.

    """
    marker = read_u16(data, ref.offset)
    if marker == RLE_LINE16_MARKER and basic_rle:
        span = make_image_span(
            offset=ref.offset, length=len(data) - ref.offset, encoding=ENCODING_RLE_BASIC
        )
    elif marker == RLE_LINE16_MARKER:
        length = RLE_MARKER_SIZE
        if ref.height:
            length = read_u16(data, ref.offset + RLE_MARKER_SIZE + 2 * (ref.height - 1))
        span = make_image_span(offset=ref.offset, length=length, encoding=ENCODING_RLE_LINE16)
    elif ref.height and marker == RLE_ROW_ENTRY_SIZE * ref.height:
        row_table = read_row_table(data, ref)
        last = row_table[-1]
        span = make_image_span(
            offset=ref.offset,
            length=last.offset + last.size,
            encoding=ENCODING_RLE_ROWS,
            row_table=row_table,
        )
    else:
        span = make_image_span(
            offset=ref.offset, length=2 * ref.width * ref.height, encoding=ENCODING_RAW16
        )
    if span.offset + span.length > len(data):
        raise FormatTooShort(
            f"{span.encoding} image of {span.length} bytes runs past the end of the file",
            offset=span.offset,
        )
    return span


def swap_rgb565_bytes(payload: bytes) -> bytes:
    swapped = bytearray(len(payload))
    swapped[0::2] = payload[1::2]
    swapped[1::2] = payload[0::2]
    return bytes(swapped)


def decode_image_span(
    data: bytes,
    ref: ImageReference,
    span: ImageSpan,
    *,
    logger: Optional[Logger] = None,
) -> Tuple[DecodedImage, ImageSpan]:
    """Decodes a classified image at whatever depth it is stored at
    (24 for the command RLEs, 16 otherwise). Returns the image and the
    span, whose length is exact once a basic RLE image is decoded.

    """
    logger = logger or null_log()
    needed = ref.width * ref.height * DEPTH_24 // 8
    if needed > MAX_DECODED_BYTES:
        raise OutOfMemory(
            f"a {ref.width}x{ref.height} image needs {needed} bytes, more than {MAX_DECODED_BYTES}",
            offset=ref.offset,
        )
    logger.debug(
        f"  image @ 0x{ref.offset:08X} {ref.width}x{ref.height} {span.encoding}, {span.length} bytes"
    )
    payload = data[span.offset : span.offset + span.length]
    geometry = dict(width=ref.width, height=ref.height)
    if span.encoding == ENCODING_RLE_ROWS:
        samples = decode_rle_rows(
            payload, row_table=span.row_table, base_offset=span.offset, logger=logger, **geometry
        )
        return make_decoded_image(depth=DEPTH_24, data=samples, **geometry), span
    if span.encoding == ENCODING_RLE_BASIC:
        samples, consumed = decode_rle_basic(
            payload, start=RLE_MARKER_SIZE, base_offset=span.offset, logger=logger, **geometry
        )
        span = span._replace(length=RLE_MARKER_SIZE + consumed)
        return make_decoded_image(depth=DEPTH_24, data=samples, **geometry), span
    if span.encoding == ENCODING_RLE_LINE16:
        pixels = decode_rle_line16(payload, base_offset=span.offset, logger=logger, **geometry)
        return make_decoded_image(depth=DEPTH_16, data=pixels, **geometry), span
    assert span.encoding == ENCODING_RAW16, f"unknown image encoding {span.encoding}"
    return make_decoded_image(depth=DEPTH_16, data=swap_rgb565_bytes(payload), **geometry), span


def image_to_depth(
    data: bytes,
    ref: ImageReference,
    depth: int,
    *,
    logger: Optional[Logger] = None,
    basic_rle: bool = False,
) -> DecodedImage:
    span = classify_image(data, ref, basic_rle=basic_rle)
    image, _ = decode_image_span(data, ref, span, logger=logger)
    return convert_image(image, depth)


def resolve_image(
    data: bytes,
    ref: ImageReference,
    *,
    logger: Optional[Logger] = None,
    basic_rle: bool = False,
) -> DecodedImage:
    return image_to_depth(data, ref, DEPTH_24, logger=logger, basic_rle=basic_rle)


def decode_element_images(
    data: bytes,
    element: FaceElement,
    *,
    logger: Optional[Logger] = None,
    basic_rle: bool = False,
) -> List[ImageResult]:
    """Given a decoded face element, returns one ImageResult for each
    image it refers to. An image that fails to decode is logged and
    reported in its ImageResult; the others are still decoded.

    """
    logger = logger or null_log()
    results = []
    for i, ref in enumerate(element.image_refs):
        span = None
        try:
            span = classify_image(data, ref, basic_rle=basic_rle)
            image, span = decode_image_span(data, ref, span, logger=logger)
        except FaceFormatError as e:
            logger.append(f"ERROR: {element.kind} image {i}: {e}")
            results.append(ImageResult(ref=ref, span=span, image=None, error=e))
            continue
        results.append(
            ImageResult(ref=ref, span=span, image=convert_image(image, DEPTH_24), error=None)
        )
    return results
