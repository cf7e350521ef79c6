import pytest

from dafit_pixels import (
    conversion_path,
    convert_image,
    convert_pixels,
    make_decoded_image,
    rgb565_to_888,
)


def test_channel_expansion_replicates_high_bits():
    assert rgb565_to_888(0xFFFF) == (0xFF, 0xFF, 0xFF)
    assert rgb565_to_888(0x0000) == (0x00, 0x00, 0x00)
    # r5 = 0b10000, g6 = 0b100000, b5 = 0b00001
    assert rgb565_to_888(0x8401) == (0x84, 0x82, 0x08)


def test_16_to_24_synthesizes_opaque_alpha():
    assert convert_pixels(bytes.fromhex("1f00"), 16, 24) == bytes.fromhex("ff001f")


def test_24_to_32_keeps_alpha():
    assert convert_pixels(bytes.fromhex("80f800"), 24, 32) == bytes.fromhex("0000ff80")


def test_16_to_32_goes_through_24():
    assert conversion_path(16, 32) == [16, 24, 32]
    assert conversion_path(32, 16) == [32, 24, 16]
    assert convert_pixels(bytes.fromhex("e007"), 16, 32) == bytes.fromhex("00ff00ff")


def test_widen_then_narrow_is_lossless():
    samples = bytes.fromhex("00 0000 7f 1234 ff ffff 01 8001")
    assert convert_pixels(convert_pixels(samples, 24, 32), 32, 24) == samples


def test_narrow_then_widen_loses_low_bits():
    bgra = bytes.fromhex("07 03 07 ff")
    assert convert_pixels(convert_pixels(bgra, 32, 24), 24, 32) != bgra


def test_unknown_depth_is_rejected():
    with pytest.raises(ValueError):
        convert_pixels(b"", 24, 8)


def test_convert_image_keeps_geometry():
    image = make_decoded_image(width=2, height=1, depth=24, data=bytes.fromhex("ff0000 ffffff"))
    converted = convert_image(image, 32)
    assert (converted.width, converted.height, converted.depth) == (2, 1, 32)
    assert converted.size == 8
    assert convert_image(image, 24) is image
