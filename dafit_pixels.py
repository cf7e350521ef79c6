#!/usr/bin/env python3

"""Pixel formats used by Da Fit "type N" watch face images

Three working depths are used:

16  RGB565, two bytes per pixel, stored as a little-endian u16 (the
    way a BMP wants it). There is no alpha; pixels are opaque.

24  ARGB8565, three bytes per pixel: one alpha byte followed by the
    RGB565 colour, high byte first. This is how the watch stores
    decompressed pixel samples.

32  ARGB8888, four bytes per pixel stored as B, G, R, A (a
    little-endian 0xAARRGGBB), which is what a 32bpp BMP wants.

Only 16<->24 and 24<->32 are converted directly. Anything else goes
through 24. Widening a 5 or 6 bit channel replicates its high bits
into the new low bits, so 0x1F becomes 0xFF and 0x00 stays 0x00.
Narrowing simply drops the low bits, so narrowing after widening
gives back exactly what was there before, but the opposite order
generally does not.

"""

from typing import Callable, Dict, List, NamedTuple, Tuple

DEPTH_16 = 16
DEPTH_24 = 24
DEPTH_32 = 32
DEPTHS = (DEPTH_16, DEPTH_24, DEPTH_32)

OPAQUE_ALPHA = 0xFF

EXPAND5 = bytes((v << 3) | (v >> 2) for v in range(32))
EXPAND6 = bytes((v << 2) | (v >> 4) for v in range(64))


def rgb565_to_888(pixel: int) -> Tuple[int, int, int]:
    return (
        EXPAND5[(pixel >> 11) & 0x1F],
        EXPAND6[(pixel >> 5) & 0x3F],
        EXPAND5[pixel & 0x1F],
    )


def rgb888_to_565(r: int, g: int, b: int) -> int:
    return ((r & 0xF8) << 8) | ((g & 0xFC) << 3) | (b >> 3)


class DecodedImage(NamedTuple):
    width: int
    height: int
    depth: int
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def to_bmp(self, bpp: int = DEPTH_32, *, source_offset: int = 0) -> bytes:
        from dafit_bmp import encode_bmp

        return encode_bmp(self, bpp, source_offset=source_offset)


def make_decoded_image(**kw) -> DecodedImage:
    image = DecodedImage(**kw)
    assert image.depth in DEPTHS, f"unsupported depth {image.depth}"
    assert (
        len(image.data) == image.width * image.height * image.depth // 8
    ), f"{image.width}x{image.height}@{image.depth} needs {image.width * image.height * image.depth // 8} bytes, got {len(image.data)}"
    return image


def convert_16_to_24(data: bytes) -> bytes:
    out = bytearray()
    for i in range(0, len(data), 2):
        out += bytes([OPAQUE_ALPHA, data[i + 1], data[i]])
    return bytes(out)


def convert_24_to_16(data: bytes) -> bytes:
    out = bytearray()
    for i in range(0, len(data), 3):
        # alpha has nowhere to go
        out += bytes([data[i + 2], data[i + 1]])
    return bytes(out)


def convert_24_to_32(data: bytes) -> bytes:
    out = bytearray()
    for i in range(0, len(data), 3):
        r, g, b = rgb565_to_888((data[i + 1] << 8) | data[i + 2])
        out += bytes([b, g, r, data[i]])
    return bytes(out)


def convert_32_to_24(data: bytes) -> bytes:
    out = bytearray()
    for i in range(0, len(data), 4):
        pixel = rgb888_to_565(data[i + 2], data[i + 1], data[i])
        out += bytes([data[i + 3], pixel >> 8, pixel & 0xFF])
    return bytes(out)


DIRECT_CONVERSIONS: Dict[Tuple[int, int], Callable[[bytes], bytes]] = {
    (DEPTH_16, DEPTH_24): convert_16_to_24,
    (DEPTH_24, DEPTH_16): convert_24_to_16,
    (DEPTH_24, DEPTH_32): convert_24_to_32,
    (DEPTH_32, DEPTH_24): convert_32_to_24,
}


def conversion_path(src_depth: int, dst_depth: int) -> List[int]:
    """Returns the list of depths visited going from src_depth to
    dst_depth using only the direct conversions, both ends included.

    """
    if src_depth not in DEPTHS or dst_depth not in DEPTHS:
        raise ValueError(f"no pixel conversion from {src_depth} to {dst_depth} bits")
    paths = {src_depth: [src_depth]}
    pending = [src_depth]
    while pending:
        depth = pending.pop(0)
        if depth == dst_depth:
            return paths[depth]
        for (a, b) in DIRECT_CONVERSIONS:
            if a == depth and b not in paths:
                paths[b] = paths[depth] + [b]
                pending.append(b)
    raise ValueError(f"no pixel conversion from {src_depth} to {dst_depth} bits")


def convert_pixels(data: bytes, src_depth: int, dst_depth: int) -> bytes:
    path = conversion_path(src_depth, dst_depth)
    for a, b in zip(path, path[1:]):
        data = DIRECT_CONVERSIONS[(a, b)](data)
    return data


def convert_image(image: DecodedImage, depth: int) -> DecodedImage:
    if image.depth == depth:
        return image
    return make_decoded_image(
        width=image.width,
        height=image.height,
        depth=depth,
        data=convert_pixels(image.data, image.depth, depth),
    )


def smoke_test_channel_expansion():
    assert EXPAND5[0x00] == 0x00 and EXPAND5[0x1F] == 0xFF
    assert EXPAND6[0x00] == 0x00 and EXPAND6[0x3F] == 0xFF
    assert EXPAND5[0x10] == 0x84
    assert EXPAND6[0x20] == 0x82
    assert rgb565_to_888(0xF800) == (0xFF, 0x00, 0x00)
    assert rgb565_to_888(0x07E0) == (0x00, 0xFF, 0x00)
    assert rgb565_to_888(0x001F) == (0x00, 0x00, 0xFF)
    assert rgb888_to_565(0x07, 0x03, 0x07) == 0x0000


def smoke_test_round_trips():
    every_565 = b"".join(p.to_bytes(2, "little") for p in range(0x10000))
    assert convert_24_to_16(convert_16_to_24(every_565)) == every_565
    every_8565 = b"".join(
        bytes([a, p >> 8, p & 0xFF]) for a in (0x00, 0x80, 0xFF) for p in range(0x10000)
    )
    assert convert_32_to_24(convert_24_to_32(every_8565)) == every_8565
    # the other direction loses the low bits of each channel
    assert convert_24_to_32(convert_32_to_24(b"\x01\x01\x01\xff")) == b"\x00\x00\x00\xff"


smoke_test_channel_expansion()
smoke_test_round_trips()  # do this at import time so a broken module
# gets noticed as soon as possible
