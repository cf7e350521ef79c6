#!/usr/bin/env python3

"""Da Fit "type N" watch face file structure

The details here are entirely inferred from watch face files served
to the DA FIT app (api.moyoung.com, the /new/ faces) and may be wrong
in many respects. Designed against faces for the GTS3
(MOY-VSW4-2.0.1, 240x296).

A face file starts with a 16-byte header of eight little-endian u16s:
the API version, four values whose meaning is unknown (treated as
format revision markers), the preview width and height, the offset of
the digit glyph section (zero for analog-only faces) and the offset
of the element section, which begins with the background image.

The digit section is a run of fixed-size DigitGlyphSet records ending
where the element section begins. The element section is a chain of
tagged records with no length prefixes: the tag alone says how big
the record is, except for bar and weather displays whose size also
depends on an entry count stored inside the record. The chain ends
with an end tag. An unknown tag means the rest of the chain cannot be
found, so walking stops there.

Two tag conventions have been seen. In one the tag is a plain 16-bit
value (0x0201 is the time display). In the other the first byte only
says that another record follows and the second byte is the kind
(0x02 is the time display). No header field has been found that says
which convention a file uses, so the caller has to choose; the 16-bit
convention is the default.

Images are referenced by an "OWH" entry: a u32 absolute offset, a u16
width and a u16 height.

"""

from typing import Callable, Dict, List, NamedTuple, Optional

from dafit_errors import DigitSentinelMismatch, FaceFormatError, FormatTooShort, UnknownTag
from dafit_log import Logger, null_log, warn

HEADER_SIZE = 16
TAG_WIDTH = 2
XY_SIZE = 4
OWH_SIZE = 8
DIGIT_GLYPH_COUNT = 10
DAY_NAME_COUNT = 7

API_VER_INFO = {
    2: "HHMM only",
    4: "HHMM, weekday name",
    10: "Analog HMS hands",
    13: "HHMM, weekday name, DD",
    15: "HHMM, weekday name, DD, MM, steps",
    18: "HHMM or Analog HMS hands, DD, weekday name, bpm, kcal, battery, steps.",
    20: "Same as 18 plus ??",
    29: "HHMM, bpm, ?, weather",
    35: "Analog HMS hands, weekday name, DD, bpm, ?, ?",
}

KIND_IMAGE = "Image"
KIND_DIGIT_GLYPH_SET = "DigitGlyphSet"
KIND_ALT_DIGIT_GLYPH_SET = "AltDigitGlyphSet"
KIND_TIME_DISPLAY = "TimeDisplay"
KIND_DAY_NAME_DISPLAY = "DayNameDisplay"
KIND_BATTERY_FILL = "BatteryFill"
KIND_HEART_RATE_NUMBER = "HeartRateNumber"
KIND_STEPS_NUMBER = "StepsNumber"
KIND_KCAL_NUMBER = "KCalNumber"
KIND_HAND_POINTER = "HandPointer"
KIND_DAY_NUMBER = "DayNumber"
KIND_MONTH_NUMBER = "MonthNumber"
KIND_BAR_DISPLAY = "BarDisplay"
KIND_WEATHER_DISPLAY = "WeatherDisplay"
KIND_RESERVED = "Reserved"


class Point(NamedTuple):
    x: int
    y: int


class ImageReference(NamedTuple):
    offset: int
    width: int
    height: int


class FaceHeader(NamedTuple):
    api_ver: int
    marker0: int
    marker1: int
    marker2: int
    preview_width: int
    preview_height: int
    digits_offset: int
    elements_offset: int


def make_face_header(**kw) -> FaceHeader:
    return FaceHeader(**kw)


class FaceElement(NamedTuple):
    kind: str
    tag: int
    offset: int
    size: int
    subtype: Optional[int]
    position: Optional[Point]
    positions: List[Point]
    image_refs: List[ImageReference]
    attrs: Dict[str, int]


def make_face_element(
    *,
    subtype=None,
    position=None,
    positions=None,
    image_refs=None,
    attrs=None,
    **kw,
) -> FaceElement:
    return FaceElement(
        subtype=subtype,
        position=position,
        positions=positions or [],
        image_refs=image_refs or [],
        attrs=attrs or {},
        **kw,
    )


# Bounds-checked little-endian readers


def read_uint(data: bytes, offset: int, size: int) -> int:
    if offset < 0 or offset + size > len(data):
        raise FormatTooShort(
            f"need {size} bytes but the file is only {len(data)} bytes long",
            offset=offset,
        )
    return int.from_bytes(data[offset : offset + size], "little")


def read_u8(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 1)


def read_u16(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 2)


def read_u32(data: bytes, offset: int) -> int:
    return read_uint(data, offset, 4)


def read_point(data: bytes, offset: int) -> Point:
    return Point(x=read_u16(data, offset), y=read_u16(data, offset + 2))


def read_owh(data: bytes, offset: int) -> ImageReference:
    return ImageReference(
        offset=read_u32(data, offset),
        width=read_u16(data, offset + 4),
        height=read_u16(data, offset + 6),
    )


def read_owh_list(data: bytes, offset: int, count: int) -> List[ImageReference]:
    return [read_owh(data, offset + i * OWH_SIZE) for i in range(count)]


# Record shapes


def decode_image_record(data, offset, **kw) -> FaceElement:
    return make_face_element(
        offset=offset,
        position=read_point(data, offset + 2),
        image_refs=[read_owh(data, offset + 6)],
        **kw,
    )


def decode_digit_glyph_set(data, offset, **kw) -> FaceElement:
    # subtype 0 is time digits, 1 day number digits
    return make_face_element(
        offset=offset,
        subtype=read_u8(data, offset + 2),
        image_refs=read_owh_list(data, offset + 3, DIGIT_GLYPH_COUNT),
        attrs=dict(unknown=read_u16(data, offset + 3 + DIGIT_GLYPH_COUNT * OWH_SIZE)),
        **kw,
    )


def reassemble_alt_digit_offset(hi_bytes: bytes, lo_byte: int) -> int:
    """The first glyph offset of an AltDigitGlyphSet is stored split:
    its three high bytes follow the tag, and its low byte sits near
    the end of the record. Whether this is deliberate obfuscation or
    a mistake in the watch firmware's record layout is unknown.

    """
    assert len(hi_bytes) == 3
    return lo_byte | (hi_bytes[0] << 8) | (hi_bytes[1] << 16) | (hi_bytes[2] << 24)


def decode_alt_digit_glyph_set(data, offset, **kw) -> FaceElement:
    hi_bytes = read_uint(data, offset + 2, 3).to_bytes(3, "little")
    rest_offset = offset + 9
    lo_offset = rest_offset + (DIGIT_GLYPH_COUNT - 1) * OWH_SIZE
    first = ImageReference(
        offset=reassemble_alt_digit_offset(hi_bytes, read_u8(data, lo_offset)),
        width=read_u16(data, offset + 5),
        height=read_u16(data, offset + 7),
    )
    return make_face_element(
        offset=offset,
        image_refs=[first] + read_owh_list(data, rest_offset, DIGIT_GLYPH_COUNT - 1),
        attrs=dict(unknown=read_u8(data, lo_offset + 1)),
        **kw,
    )


def decode_time_display(data, offset, **kw) -> FaceElement:
    positions = [read_point(data, offset + 6 + i * XY_SIZE) for i in range(4)]
    return make_face_element(
        offset=offset,
        position=positions[0],
        positions=positions,
        attrs={f"digit_set_{i}": read_u8(data, offset + 2 + i) for i in range(4)},
        **kw,
    )


def decode_day_name_display(data, offset, **kw) -> FaceElement:
    return make_face_element(
        offset=offset,
        subtype=read_u8(data, offset + 2),
        position=read_point(data, offset + 3),
        image_refs=read_owh_list(data, offset + 7, DAY_NAME_COUNT),
        **kw,
    )


def decode_battery_fill(data, offset, **kw) -> FaceElement:
    return make_face_element(
        offset=offset,
        position=read_point(data, offset + 2),
        image_refs=[
            read_owh(data, offset + 6),
            read_owh(data, offset + 26),
            read_owh(data, offset + 34),
        ],
        attrs=dict(
            fill_x1=read_u8(data, offset + 14),
            fill_y1=read_u8(data, offset + 15),
            fill_x2=read_u8(data, offset + 16),
            fill_y2=read_u8(data, offset + 17),
            unknown=read_u32(data, offset + 18),
            unknown2=read_u32(data, offset + 22),
        ),
        **kw,
    )


def decode_number_display(data, offset, **kw) -> FaceElement:
    return make_face_element(
        offset=offset,
        position=read_point(data, offset + 4),
        attrs=dict(
            digit_set=read_u8(data, offset + 2),
            justification=read_u8(data, offset + 3),
        ),
        **kw,
    )


def decode_hand_pointer(data, offset, **kw) -> FaceElement:
    # subtype 0 is the hour hand, 1 minutes, 2 seconds
    unknown_xy = read_point(data, offset + 3)
    return make_face_element(
        offset=offset,
        subtype=read_u8(data, offset + 2),
        position=read_point(data, offset + 15),
        image_refs=[read_owh(data, offset + 7)],
        attrs=dict(unknown_x=unknown_xy.x, unknown_y=unknown_xy.y),
        **kw,
    )


def decode_date_number(data, offset, **kw) -> FaceElement:
    positions = [read_point(data, offset + 4), read_point(data, offset + 8)]
    return make_face_element(
        offset=offset,
        position=positions[0],
        positions=positions,
        attrs=dict(
            digit_set=read_u8(data, offset + 2),
            justification=read_u8(data, offset + 3),
        ),
        **kw,
    )


def decode_bar_display(data, offset, **kw) -> FaceElement:
    # subtype is the data source: 0 steps, 2 kcal, 5 heart rate, 6 battery
    count = read_u8(data, offset + 3)
    return make_face_element(
        offset=offset,
        subtype=read_u8(data, offset + 2),
        position=read_point(data, offset + 4),
        image_refs=read_owh_list(data, offset + 8, count),
        attrs=dict(count=count),
        **kw,
    )


def decode_weather_display(data, offset, **kw) -> FaceElement:
    count = read_u8(data, offset + 2)
    return make_face_element(
        offset=offset,
        position=read_point(data, offset + 3),
        image_refs=read_owh_list(data, offset + 7, count),
        attrs=dict(count=count),
        **kw,
    )


def decode_reserved_value(data, offset, **kw) -> FaceElement:
    return make_face_element(
        offset=offset, attrs=dict(value=read_u8(data, offset + 2)), **kw
    )


def decode_reserved_image(data, offset, **kw) -> FaceElement:
    return make_face_element(offset=offset, image_refs=[read_owh(data, offset + 2)], **kw)


class RecordShape(NamedTuple):
    kind: str
    fixed_size: int  # including the tag, and one entry for counted shapes
    entry_size: int  # 0 unless the size depends on a count field
    count_field: int  # position of the u8 count within the record
    decode: Callable[..., FaceElement]


def make_record_shape(*, entry_size=0, count_field=0, **kw) -> RecordShape:
    return RecordShape(entry_size=entry_size, count_field=count_field, **kw)


SHAPE_IMAGE = make_record_shape(kind=KIND_IMAGE, fixed_size=14, decode=decode_image_record)
SHAPE_DIGIT_GLYPH_SET = make_record_shape(
    kind=KIND_DIGIT_GLYPH_SET, fixed_size=85, decode=decode_digit_glyph_set
)
SHAPE_ALT_DIGIT_GLYPH_SET = make_record_shape(
    kind=KIND_ALT_DIGIT_GLYPH_SET, fixed_size=83, decode=decode_alt_digit_glyph_set
)
SHAPE_TIME_DISPLAY = make_record_shape(
    kind=KIND_TIME_DISPLAY, fixed_size=34, decode=decode_time_display
)
SHAPE_DAY_NAME_DISPLAY = make_record_shape(
    kind=KIND_DAY_NAME_DISPLAY, fixed_size=63, decode=decode_day_name_display
)
SHAPE_BATTERY_FILL = make_record_shape(
    kind=KIND_BATTERY_FILL, fixed_size=42, decode=decode_battery_fill
)
SHAPE_HEART_RATE_NUMBER = make_record_shape(
    kind=KIND_HEART_RATE_NUMBER, fixed_size=26, decode=decode_number_display
)
SHAPE_STEPS_NUMBER = make_record_shape(
    kind=KIND_STEPS_NUMBER, fixed_size=26, decode=decode_number_display
)
SHAPE_KCAL_NUMBER = make_record_shape(
    kind=KIND_KCAL_NUMBER, fixed_size=19, decode=decode_number_display
)
SHAPE_HAND_POINTER = make_record_shape(
    kind=KIND_HAND_POINTER, fixed_size=19, decode=decode_hand_pointer
)
SHAPE_DAY_NUMBER = make_record_shape(
    kind=KIND_DAY_NUMBER, fixed_size=12, decode=decode_date_number
)
SHAPE_MONTH_NUMBER = make_record_shape(
    kind=KIND_MONTH_NUMBER, fixed_size=12, decode=decode_date_number
)
SHAPE_BAR_DISPLAY = make_record_shape(
    kind=KIND_BAR_DISPLAY,
    fixed_size=16,
    entry_size=OWH_SIZE,
    count_field=3,
    decode=decode_bar_display,
)
SHAPE_WEATHER_DISPLAY = make_record_shape(
    kind=KIND_WEATHER_DISPLAY,
    fixed_size=15,
    entry_size=OWH_SIZE,
    count_field=2,
    decode=decode_weather_display,
)
SHAPE_RESERVED_VALUE = make_record_shape(
    kind=KIND_RESERVED, fixed_size=3, decode=decode_reserved_value
)
SHAPE_RESERVED_IMAGE = make_record_shape(
    kind=KIND_RESERVED, fixed_size=10, decode=decode_reserved_image
)


def record_size(shape: RecordShape, data: bytes, offset: int) -> int:
    if not shape.entry_size:
        return shape.fixed_size
    count = read_u8(data, offset + shape.count_field)
    return shape.fixed_size + (count - 1) * shape.entry_size


# Tag conventions


class TagSchema(NamedTuple):
    name: str
    tag_width: int
    decode_tag: Callable[[int], Optional[int]]  # None marks the end of the chain
    shapes: Dict[int, RecordShape]
    digit_key: int


def decode_full16_tag(raw: int) -> Optional[int]:
    return None if raw == 0x0000 else raw


def decode_split_tag(raw: int) -> Optional[int]:
    continuation, kind = raw & 0xFF, raw >> 8
    return None if continuation == 0x00 else kind


FULL16_SHAPES = {
    0x0001: SHAPE_IMAGE,
    0x0101: SHAPE_DIGIT_GLYPH_SET,
    0x0201: SHAPE_TIME_DISPLAY,
    0x0401: SHAPE_DAY_NAME_DISPLAY,
    0x0501: SHAPE_BATTERY_FILL,
    0x0601: SHAPE_HEART_RATE_NUMBER,
    0x0701: SHAPE_STEPS_NUMBER,
    0x0901: SHAPE_KCAL_NUMBER,
    0x0A01: SHAPE_HAND_POINTER,
    0x0D01: SHAPE_DAY_NUMBER,
    0x0F01: SHAPE_MONTH_NUMBER,
    0x1201: SHAPE_BAR_DISPLAY,
    0x1B01: SHAPE_WEATHER_DISPLAY,
    0x1D01: SHAPE_RESERVED_VALUE,
    0x2301: SHAPE_RESERVED_IMAGE,
    # 0x1401 is typically the minute digits; the others are of unknown use
    0x1401: SHAPE_ALT_DIGIT_GLYPH_SET,
    0xEC02: SHAPE_ALT_DIGIT_GLYPH_SET,
    0x4C01: SHAPE_ALT_DIGIT_GLYPH_SET,
    0x8801: SHAPE_ALT_DIGIT_GLYPH_SET,
    0x2C01: SHAPE_ALT_DIGIT_GLYPH_SET,
    0x6001: SHAPE_ALT_DIGIT_GLYPH_SET,
    0xD001: SHAPE_ALT_DIGIT_GLYPH_SET,
}

SPLIT_SHAPES = {
    0x00: SHAPE_IMAGE,
    0x01: SHAPE_DIGIT_GLYPH_SET,
    0x02: SHAPE_TIME_DISPLAY,
    0x04: SHAPE_DAY_NAME_DISPLAY,
    0x05: SHAPE_BATTERY_FILL,
    0x06: SHAPE_HEART_RATE_NUMBER,
    0x07: SHAPE_STEPS_NUMBER,
    0x09: SHAPE_KCAL_NUMBER,
    0x0A: SHAPE_HAND_POINTER,
    0x0D: SHAPE_DAY_NUMBER,
    0x0F: SHAPE_MONTH_NUMBER,
    0x12: SHAPE_BAR_DISPLAY,
    0x14: SHAPE_ALT_DIGIT_GLYPH_SET,
    0x1B: SHAPE_WEATHER_DISPLAY,
    0x1D: SHAPE_RESERVED_VALUE,
    0x23: SHAPE_RESERVED_IMAGE,
}

TAG_SCHEMAS = {
    "full16": TagSchema(
        name="full16",
        tag_width=TAG_WIDTH,
        decode_tag=decode_full16_tag,
        shapes=FULL16_SHAPES,
        digit_key=0x0101,
    ),
    "split": TagSchema(
        name="split",
        tag_width=TAG_WIDTH,
        decode_tag=decode_split_tag,
        shapes=SPLIT_SHAPES,
        digit_key=0x01,
    ),
}
DEFAULT_TAG_SCHEMA = "full16"


def select_tag_schema(name: Optional[str] = None) -> TagSchema:
    name = name or DEFAULT_TAG_SCHEMA
    if name not in TAG_SCHEMAS:
        raise ValueError(
            f"unknown tag schema {name!r}, expecting one of {', '.join(sorted(TAG_SCHEMAS))}"
        )
    return TAG_SCHEMAS[name]


# Documents


class FaceDocument(NamedTuple):
    data: bytes
    header: FaceHeader
    schema: TagSchema


def parse_face_header(data: bytes) -> FaceHeader:
    if len(data) < HEADER_SIZE:
        raise FormatTooShort(
            f"file is less than the header size ({HEADER_SIZE} bytes)",
            offset=len(data),
        )
    fields = [read_u16(data, 2 * i) for i in range(HEADER_SIZE // 2)]
    header = make_face_header(
        api_ver=fields[0],
        marker0=fields[1],
        marker1=fields[2],
        marker2=fields[3],
        preview_width=fields[4],
        preview_height=fields[5],
        digits_offset=fields[6],
        elements_offset=fields[7],
    )
    if header.elements_offset >= len(data):
        raise FormatTooShort(
            f"element section starts past the end of the {len(data)} byte file",
            offset=header.elements_offset,
        )
    return header


def open_face_document(data: bytes, *, schema: Optional[str] = None) -> FaceDocument:
    return FaceDocument(
        data=bytes(data), header=parse_face_header(data), schema=select_tag_schema(schema)
    )


def decode_record(
    document: FaceDocument, shape: RecordShape, offset: int, tag: int
) -> FaceElement:
    data = document.data
    size = record_size(shape, data, offset)
    if offset + size > len(data):
        raise FormatTooShort(
            f"{shape.kind} record of {size} bytes runs past the end of the file",
            offset=offset,
        )
    element = shape.decode(data, offset, kind=shape.kind, tag=tag, size=size)
    if element.kind == KIND_IMAGE and offset == document.header.elements_offset:
        element = element._replace(attrs=dict(element.attrs, background=1))
    return element


def iter_digit_glyph_sets(
    document: FaceDocument, *, logger: Logger, strict_digit_sentinel: bool = False
):
    header, schema = document.header, document.schema
    if header.digits_offset == 0:
        logger.debug("no digit section")
        return
    if header.digits_offset >= header.elements_offset:
        logger.debug("digit section lies inside the element chain")
        return
    offset = header.digits_offset
    sentinel = read_uint(document.data, offset, schema.tag_width)
    if schema.decode_tag(sentinel) != schema.digit_key:
        message = f"digit section starts with 0x{sentinel:04X}, not a digit glyph set"
        if strict_digit_sentinel:
            raise DigitSentinelMismatch(message, offset=offset)
        warn(logger, f"{message} (at offset 0x{offset:08X})")
    while offset < header.elements_offset:
        if offset + SHAPE_DIGIT_GLYPH_SET.fixed_size > header.elements_offset:
            warn(
                logger,
                f"{header.elements_offset - offset} stray bytes before the element section (at offset 0x{offset:08X})",
            )
            return
        tag = read_uint(document.data, offset, schema.tag_width)
        element = decode_record(document, SHAPE_DIGIT_GLYPH_SET, offset, tag)
        yield element
        offset += element.size


def iter_chain_elements(document: FaceDocument, *, logger: Logger):
    data, schema = document.data, document.schema
    offset = document.header.elements_offset
    while True:
        tag = read_uint(data, offset, schema.tag_width)
        key = schema.decode_tag(tag)
        if key is None:
            logger.debug(f"@ 0x{offset:08X}  end of element chain")
            return
        shape = schema.shapes.get(key)
        if shape is None:
            raise UnknownTag(f"unknown element tag 0x{tag:04X}", offset=offset, tag=tag)
        element = decode_record(document, shape, offset, tag)
        logger.debug(f"@ 0x{offset:08X}  {element.kind} ({element.size} bytes)")
        yield element
        offset += element.size


def iter_face_elements(
    document: FaceDocument,
    *,
    logger: Optional[Logger] = None,
    strict_digit_sentinel: bool = False,
):
    """Yields every element of the face in file order, digit glyph
    sets from the digit section first. Structural errors are raised
    after everything before them has been yielded.

    """
    logger = logger or null_log()
    yield from iter_digit_glyph_sets(
        document, logger=logger, strict_digit_sentinel=strict_digit_sentinel
    )
    yield from iter_chain_elements(document, logger=logger)


class WalkResult(NamedTuple):
    document: FaceDocument
    elements: List[FaceElement]
    error: Optional[FaceFormatError]


def walk_face(
    data: bytes,
    *,
    logger: Optional[Logger] = None,
    schema: Optional[str] = None,
    strict_digit_sentinel: bool = False,
) -> WalkResult:
    """Given the bytes of a face file, returns every element that
    could be decoded, plus the error that stopped the walk early, if
    any. A file too short for its header raises FormatTooShort.

    """
    logger = logger or null_log()
    document = open_face_document(data, schema=schema)
    elements: List[FaceElement] = []
    try:
        for element in iter_face_elements(
            document, logger=logger, strict_digit_sentinel=strict_digit_sentinel
        ):
            elements.append(element)
    except FaceFormatError as e:
        logger.debug(f"walk stopped after {len(elements)} elements")
        return WalkResult(document=document, elements=elements, error=e)
    return WalkResult(document=document, elements=elements, error=None)
