#!/usr/bin/env python3

"""BMP (and PNG preview) output for decoded watch face images

BMPs are written top-down (negative height) so rows come out in the
same order they are decoded. 16bpp and 32bpp files use a
BITMAPV4HEADER with BI_BITFIELDS channel masks, 24bpp files use a
plain BITMAPINFOHEADER. Rows are padded with zero bytes to a multiple
of four bytes.

"""

from PIL import Image
from PIL.PngImagePlugin import PngInfo

import io
import struct

from dafit_errors import EmptyImage, RowTooWide
from dafit_pixels import DEPTH_16, DEPTH_24, DEPTH_32, DecodedImage, convert_image

BMP_SIGNATURE = b"BM"
BMP_FILE_HEADER_SIZE = 14
BITMAPINFOHEADER_SIZE = 40
BITMAPV4HEADER_SIZE = 108
BI_RGB = 0
BI_BITFIELDS = 3
BMP_PIXELS_PER_METRE = 2835  # 72 dpi
MAX_ROW_BYTES = 16384

BMP_CHANNEL_MASKS = {
    DEPTH_16: (0xF800, 0x07E0, 0x001F, 0x00000000),
    DEPTH_32: (0x00FF0000, 0x0000FF00, 0x000000FF, 0xFF000000),
}


def bmp_row_stride(width: int, bpp: int) -> int:
    return ((bpp // 8) * width + 3) & ~3


def bmp_header(width: int, height: int, bpp: int) -> bytes:
    stride = bmp_row_stride(width, bpp)
    image_size = stride * height
    dib_size = BITMAPINFOHEADER_SIZE if bpp == DEPTH_24 else BITMAPV4HEADER_SIZE
    pixel_offset = BMP_FILE_HEADER_SIZE + dib_size
    header = struct.pack(
        "<2sIHHI", BMP_SIGNATURE, pixel_offset + image_size, 0, 0, pixel_offset
    )
    header += struct.pack(
        "<IiiHHIIiiII",
        dib_size,
        width,
        -height,  # top-down
        1,
        bpp,
        BI_RGB if bpp == DEPTH_24 else BI_BITFIELDS,
        image_size,
        BMP_PIXELS_PER_METRE,
        BMP_PIXELS_PER_METRE,
        0,
        0,
    )
    if bpp != DEPTH_24:
        header += struct.pack("<4I", *BMP_CHANNEL_MASKS[bpp])
        header += struct.pack("<I", 0)  # CSType
        header += bytes(9 * 4)  # endpoints
        header += bytes(3 * 4)  # gammas
    assert len(header) == pixel_offset
    return header


def encode_bmp(image: DecodedImage, bpp: int = DEPTH_32, *, source_offset: int = 0) -> bytes:
    """Given a DecodedImage, returns a complete BMP file at bpp bits
    per pixel (16, 24 or 32). source_offset only serves to locate the
    image in error messages.

    """
    if bpp not in (DEPTH_16, DEPTH_24, DEPTH_32):
        raise ValueError(f"BMP output must be 16, 24 or 32 bits per pixel, not {bpp}")
    stride = bmp_row_stride(image.width, bpp)
    if stride > MAX_ROW_BYTES:
        raise RowTooWide(
            f"a {image.width} pixel row at {bpp}bpp needs {stride} bytes, more than {MAX_ROW_BYTES}",
            offset=source_offset,
        )
    if bpp == DEPTH_24:
        bgra = convert_image(image, DEPTH_32).data
        pixels = bytes(b for i, b in enumerate(bgra) if i % 4 != 3)
    else:
        pixels = convert_image(image, bpp).data
    row_bytes = image.width * bpp // 8
    padding = bytes(stride - row_bytes)
    body = b"".join(
        pixels[y * row_bytes : (y + 1) * row_bytes] + padding
        for y in range(image.height)
    )
    return bmp_header(image.width, image.height, bpp) + body


def image_to_pil(image: DecodedImage) -> Image.Image:
    bgra = convert_image(image, DEPTH_32).data
    return Image.frombytes("RGBA", (image.width, image.height), bgra, "raw", "BGRA")


def encode_png(image: DecodedImage, *, source_offset: int = 0) -> bytes:
    if not image.width or not image.height:
        raise EmptyImage(
            f"a {image.width}x{image.height} image cannot be written as a PNG",
            offset=source_offset,
        )
    pnginfo = PngInfo()
    pnginfo.add(b"gAMA", int(0.45455e5).to_bytes(4, "big"))
    f = io.BytesIO()
    image_to_pil(image).save(f, format="PNG", pnginfo=pnginfo)
    return f.getvalue()
