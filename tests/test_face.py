import pytest

from dafit_errors import DigitSentinelMismatch, FormatTooShort, UnknownTag
from dafit_face import (
    KIND_ALT_DIGIT_GLYPH_SET,
    KIND_BAR_DISPLAY,
    KIND_BATTERY_FILL,
    KIND_DAY_NAME_DISPLAY,
    KIND_DAY_NUMBER,
    KIND_DIGIT_GLYPH_SET,
    KIND_HAND_POINTER,
    KIND_HEART_RATE_NUMBER,
    KIND_IMAGE,
    KIND_KCAL_NUMBER,
    KIND_MONTH_NUMBER,
    KIND_RESERVED,
    KIND_STEPS_NUMBER,
    KIND_TIME_DISPLAY,
    KIND_WEATHER_DISPLAY,
    ImageReference,
    Point,
    iter_face_elements,
    open_face_document,
    parse_face_header,
    reassemble_alt_digit_offset,
    select_tag_schema,
    walk_face,
)
from dafit_log import start_log
from face_fixtures import (
    IMAGE_BASE,
    alt_digit_record,
    bar_record,
    battery_record,
    build_face,
    date_number_record,
    day_name_record,
    digit_record,
    hand_record,
    image_record,
    number_record,
    reserved_image_record,
    reserved_value_record,
    time_record,
    u16,
    weather_record,
)

GLYPHS = [(IMAGE_BASE + 16 * i, 4, 2) for i in range(10)]


def test_header_shorter_than_16_bytes():
    with pytest.raises(FormatTooShort) as excinfo:
        walk_face(bytes(10))
    assert excinfo.value.offset == 10


def test_elements_offset_outside_the_file():
    data = bytearray(build_face(elements=image_record((IMAGE_BASE, 1, 1))))
    data[14:16] = u16(0x1000)
    with pytest.raises(FormatTooShort) as excinfo:
        parse_face_header(bytes(data))
    assert excinfo.value.offset == 0x1000


def test_header_fields():
    header = parse_face_header(build_face(elements=image_record((IMAGE_BASE, 1, 1)), api_ver=35))
    assert header.api_ver == 35
    assert header.marker0 == 0xFFFF
    assert (header.preview_width, header.preview_height) == (240, 296)
    assert header.digits_offset == 0
    assert header.elements_offset == 16


def test_full_walk():
    data = build_face(
        digits=digit_record(GLYPHS, subtype=1),
        elements=image_record((IMAGE_BASE, 240, 296))
        + time_record()
        + number_record()
        + hand_record((IMAGE_BASE, 8, 100), subtype=2)
        + bar_record([(IMAGE_BASE, 10, 10)] * 3),
    )
    result = walk_face(data)
    assert result.error is None
    assert [element.kind for element in result.elements] == [
        KIND_DIGIT_GLYPH_SET,
        KIND_IMAGE,
        KIND_TIME_DISPLAY,
        KIND_HEART_RATE_NUMBER,
        KIND_HAND_POINTER,
        KIND_BAR_DISPLAY,
    ]
    digits, background, time, heart_rate, hand, bar = result.elements
    assert digits.subtype == 1
    assert digits.image_refs[9] == ImageReference(offset=IMAGE_BASE + 16 * 9, width=4, height=2)
    assert background.offset == 16 + 85
    assert background.attrs["background"] == 1
    assert time.size == 34
    assert time.positions == [Point(10, 20), Point(40, 20), Point(80, 20), Point(110, 20)]
    assert heart_rate.attrs == dict(digit_set=1, justification=2)
    assert heart_rate.position == Point(120, 200)
    assert hand.subtype == 2
    assert hand.position == Point(120, 148)
    assert bar.size == 16 + 2 * 8
    assert len(bar.image_refs) == 3


def test_offsets_stay_within_the_file():
    data = build_face(
        digits=digit_record(GLYPHS),
        elements=image_record((IMAGE_BASE, 240, 296)) + bar_record([(IMAGE_BASE, 1, 1)] * 5),
    )
    result = walk_face(data)
    for element in result.elements:
        assert element.offset + element.size <= len(data)
    # elements follow each other with no gaps
    for previous, element in zip(result.elements, result.elements[1:]):
        assert element.offset == previous.offset + previous.size


@pytest.mark.parametrize("count", [1, 2, 7])
def test_bar_display_size_follows_its_count(count):
    data = build_face(elements=bar_record([(IMAGE_BASE, 1, 1)] * count))
    (bar,) = walk_face(data).elements
    assert bar.size == 16 + (count - 1) * 8
    assert bar.attrs["count"] == count
    assert len(bar.image_refs) == count


def test_weather_display_with_nine_images():
    data = build_face(elements=weather_record([(IMAGE_BASE, 24, 24)] * 9))
    (weather,) = walk_face(data).elements
    assert weather.kind == KIND_WEATHER_DISPLAY
    assert weather.size == 79
    assert len(weather.image_refs) == 9


def test_unknown_tag_stops_the_walk_and_keeps_earlier_elements():
    data = build_face(elements=image_record((IMAGE_BASE, 1, 1)) + u16(0x7777))
    result = walk_face(data)
    assert isinstance(result.error, UnknownTag)
    assert result.error.offset == 16 + 14
    assert result.error.tag == 0x7777
    assert [element.kind for element in result.elements] == [KIND_IMAGE]


def test_truncated_record():
    data = build_face(elements=image_record((IMAGE_BASE, 1, 1)) + time_record()[:10], end=b"")
    result = walk_face(data)
    assert isinstance(result.error, FormatTooShort)
    assert result.error.offset == 16 + 14
    assert len(result.elements) == 1


def test_elements_are_yielded_as_they_are_decoded():
    data = build_face(elements=image_record((IMAGE_BASE, 1, 1)) + u16(0x7777))
    elements = iter_face_elements(open_face_document(data))
    assert next(elements).kind == KIND_IMAGE
    with pytest.raises(UnknownTag):
        next(elements)


def test_split_tag_schema():
    # a zero continuation byte ends the chain in the split convention only
    data = build_face(elements=image_record((IMAGE_BASE, 1, 1)), end=u16(0x0500))
    split = walk_face(data, schema="split")
    assert split.error is None
    assert [element.kind for element in split.elements] == [KIND_IMAGE]
    full16 = walk_face(data)
    assert isinstance(full16.error, UnknownTag)
    assert full16.error.tag == 0x0500


def test_split_tag_schema_alt_digits():
    data = build_face(elements=alt_digit_record(GLYPHS, tag=0x1401))
    (alt,) = walk_face(data, schema="split").elements
    assert alt.kind == KIND_ALT_DIGIT_GLYPH_SET
    assert alt.size == 83


def test_unknown_schema_name():
    with pytest.raises(ValueError):
        select_tag_schema("bogus")
    assert select_tag_schema().name == "full16"


def test_digit_sentinel_mismatch_warns_by_default():
    digits = digit_record(GLYPHS, tag=0x0201)
    data = build_face(digits=digits, elements=image_record((IMAGE_BASE, 1, 1)))
    logger = start_log(echo=False)
    result = walk_face(data, logger=logger)
    assert result.error is None
    assert [element.kind for element in result.elements] == [KIND_DIGIT_GLYPH_SET, KIND_IMAGE]
    assert any(line.startswith("WARNING:") for line in logger.contents())


def test_digit_sentinel_mismatch_is_fatal_when_strict():
    digits = digit_record(GLYPHS, tag=0x0201)
    data = build_face(digits=digits, elements=image_record((IMAGE_BASE, 1, 1)))
    result = walk_face(data, strict_digit_sentinel=True)
    assert isinstance(result.error, DigitSentinelMismatch)
    assert result.error.offset == 16
    assert result.elements == []


def test_stray_bytes_before_the_element_section():
    digits = digit_record(GLYPHS) + bytes(10)
    data = build_face(digits=digits, elements=image_record((IMAGE_BASE, 1, 1)))
    logger = start_log(echo=False)
    result = walk_face(data, logger=logger)
    assert [element.kind for element in result.elements] == [KIND_DIGIT_GLYPH_SET, KIND_IMAGE]
    assert any("stray bytes" in line for line in logger.contents())


def test_alt_digit_offset_reassembly():
    assert reassemble_alt_digit_offset(bytes([0x34, 0x12, 0x00]), 0x78) == 0x123478
    glyphs = [(0x00123456, 7, 9)] + GLYPHS[1:]
    data = build_face(elements=alt_digit_record(glyphs, tag=0xEC02))
    (alt,) = walk_face(data).elements
    assert alt.tag == 0xEC02
    assert alt.image_refs[0] == ImageReference(offset=0x123456, width=7, height=9)
    assert alt.image_refs[1:] == [ImageReference(*glyph) for glyph in GLYPHS[1:]]


def walk_one_record(record):
    """Walks a face holding record followed by a small image record
    and returns the decoded record. The image must start right where
    the record ends."""
    data = build_face(elements=record + image_record((IMAGE_BASE, 2, 2), x=9, y=9))
    result = walk_face(data)
    assert result.error is None
    element, follower = result.elements
    assert follower.kind == KIND_IMAGE
    assert follower.offset == 16 + element.size
    return element


@pytest.mark.parametrize("count", [1, 2, 5])
def test_weather_display_size_follows_its_count(count):
    refs = [(IMAGE_BASE + i, 24, 24) for i in range(count)]
    weather = walk_one_record(weather_record(refs, x=3, y=4))
    assert weather.kind == KIND_WEATHER_DISPLAY
    assert weather.size == 15 + (count - 1) * 8
    assert weather.attrs["count"] == count
    assert weather.position == Point(3, 4)
    assert weather.image_refs == [ImageReference(*ref) for ref in refs]


def test_day_name_display():
    refs = [(IMAGE_BASE + 0x100 * i, 30, 12) for i in range(7)]
    day_name = walk_one_record(day_name_record(refs, subtype=3, x=50, y=60))
    assert day_name.kind == KIND_DAY_NAME_DISPLAY
    assert day_name.size == 63
    assert day_name.subtype == 3
    assert day_name.position == Point(50, 60)
    assert day_name.image_refs == [ImageReference(*ref) for ref in refs]


def test_battery_fill():
    refs = [(0x1000, 40, 20), (0x2000, 41, 21), (0x3000, 42, 22)]
    battery = walk_one_record(battery_record(refs, x=100, y=10, fill=(2, 3, 30, 12)))
    assert battery.kind == KIND_BATTERY_FILL
    assert battery.size == 42
    assert battery.position == Point(100, 10)
    assert battery.image_refs == [ImageReference(*ref) for ref in refs]
    assert battery.attrs == dict(
        fill_x1=2, fill_y1=3, fill_x2=30, fill_y2=12, unknown=7, unknown2=8
    )


@pytest.mark.parametrize(
    "tag, kind, padding, size",
    [
        (0x0601, KIND_HEART_RATE_NUMBER, 18, 26),
        (0x0701, KIND_STEPS_NUMBER, 18, 26),
        (0x0901, KIND_KCAL_NUMBER, 11, 19),
    ],
)
def test_number_displays(tag, kind, padding, size):
    number = walk_one_record(
        number_record(tag=tag, digit_set=3, justification=1, x=70, y=80, padding=padding)
    )
    assert number.kind == kind
    assert number.size == size
    assert number.position == Point(70, 80)
    assert number.attrs == dict(digit_set=3, justification=1)
    assert number.image_refs == []


@pytest.mark.parametrize("tag, kind", [(0x0D01, KIND_DAY_NUMBER), (0x0F01, KIND_MONTH_NUMBER)])
def test_date_numbers(tag, kind):
    date = walk_one_record(
        date_number_record(tag=tag, digit_set=2, justification=1, positions=((100, 50), (112, 51)))
    )
    assert date.kind == kind
    assert date.size == 12
    assert date.positions == [Point(100, 50), Point(112, 51)]
    assert date.position == Point(100, 50)
    assert date.attrs == dict(digit_set=2, justification=1)


def test_reserved_value_record():
    reserved = walk_one_record(reserved_value_record(value=2))
    assert reserved.kind == KIND_RESERVED
    assert reserved.tag == 0x1D01
    assert reserved.size == 3
    assert reserved.attrs == dict(value=2)
    assert reserved.image_refs == []


def test_reserved_image_record():
    reserved = walk_one_record(reserved_image_record((0x1234, 16, 8)))
    assert reserved.kind == KIND_RESERVED
    assert reserved.tag == 0x2301
    assert reserved.size == 10
    assert reserved.image_refs == [ImageReference(offset=0x1234, width=16, height=8)]
