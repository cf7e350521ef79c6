#!/usr/bin/env python3

"""Da Fit watch face tool: describe a "type N" face file and dump its images

Usage: dafit-face-tool [--dump[=FOLDER]] [--format bmp|raw|semiraw|png] FILENAME

The description of the face goes to stdout. With --dump, every image
the face refers to is written into FOLDER (default "dump") together
with a copy of the description.

"""

from typing import Any, Dict, List, Optional

import argparse
import json
import os
import os.path
import sys

from dafit_bmp import encode_bmp, encode_png
from dafit_errors import FaceFormatError
from dafit_face import (
    API_VER_INFO,
    KIND_ALT_DIGIT_GLYPH_SET,
    KIND_BAR_DISPLAY,
    KIND_BATTERY_FILL,
    KIND_DAY_NAME_DISPLAY,
    KIND_DIGIT_GLYPH_SET,
    KIND_HAND_POINTER,
    KIND_IMAGE,
    KIND_RESERVED,
    KIND_WEATHER_DISPLAY,
    TAG_SCHEMAS,
    FaceElement,
    WalkResult,
    walk_face,
)
from dafit_image import ImageResult, decode_element_images
from dafit_log import Logger, start_log
from dafit_pixels import DEPTHS, DEPTH_32

DUMP_FORMATS = ("bmp", "raw", "semiraw", "png")
DEFAULT_DUMP_FOLDER = "dump"
DIGIT_SET_NAMES = {0: "Time", 1: "DayNum"}
HAND_NAMES = {0: "Hour", 1: "Minute", 2: "Second"}


def load_face_file(path) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def write_blob(path, data: bytes):
    print(f"writing {path}")
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError:
        if os.path.exists(path):
            os.remove(path)
        raise


# Reports


def describe_element(element: FaceElement) -> str:
    if element.kind == KIND_IMAGE and element.attrs.get("background"):
        return f"{element.kind} (Background)"
    if element.kind == KIND_DIGIT_GLYPH_SET:
        return f"{element.kind} ({element.subtype}: {DIGIT_SET_NAMES.get(element.subtype, 'Unknown')})"
    if element.kind == KIND_HAND_POINTER:
        return f"{element.kind} ({element.subtype}: {HAND_NAMES.get(element.subtype, 'Unknown')})"
    if element.kind in (KIND_ALT_DIGIT_GLYPH_SET, KIND_RESERVED):
        return f"{element.kind} (0x{element.tag:04X})"
    if element.kind == KIND_BAR_DISPLAY:
        return f"{element.kind}. subtype: {element.subtype}. count: {element.attrs['count']}."
    return element.kind


def render_face_report(result: WalkResult) -> List[str]:
    header = result.document.header
    lines = [
        f"api_ver         {header.api_ver} ({API_VER_INFO.get(header.api_ver, 'unknown')})",
        f"marker0         0x{header.marker0:04X}",
        f"marker1         0x{header.marker1:04X}",
        f"marker2         {header.marker2}",
        f"preview         {header.preview_width} x {header.preview_height}",
        f"digits_offset   0x{header.digits_offset:04X}",
        f"elements_offset 0x{header.elements_offset:04X}",
        f"tag schema      {result.document.schema.name}",
        "",
    ]
    for element in result.elements:
        lines.append(f"@ 0x{element.offset:08X}  {describe_element(element)}")
        if element.position is not None:
            lines.append(f"  xy      {element.position.x:3}, {element.position.y:3}")
        for i, point in enumerate(element.positions[1:], 1):
            lines.append(f"  xy[{i}]   {point.x:3}, {point.y:3}")
        for name, value in sorted(element.attrs.items()):
            if name != "background":
                lines.append(f"  {name}: {value}")
        for i, ref in enumerate(element.image_refs):
            lines.append(f"  owh[{i}]  0x{ref.offset:08X}, {ref.width:3}, {ref.height:3}")
    if result.error is not None:
        lines.append(f"ERROR: {result.error}. Stopping early.")
    else:
        lines.append("End of elements")
    return lines


def face_report_dict(result: WalkResult) -> Dict[str, Any]:
    return dict(
        header=result.document.header._asdict(),
        tag_schema=result.document.schema.name,
        elements=[
            dict(
                kind=element.kind,
                tag=element.tag,
                offset=element.offset,
                size=element.size,
                subtype=element.subtype,
                position=None if element.position is None else element.position._asdict(),
                positions=[point._asdict() for point in element.positions],
                image_refs=[ref._asdict() for ref in element.image_refs],
                attrs=dict(element.attrs),
            )
            for element in result.elements
        ],
        error=None if result.error is None else str(result.error),
        error_offset=None if result.error is None else result.error.offset,
    )


# Dumping


def image_basenames(element: FaceElement, *, counters: Dict[str, int]) -> List[str]:
    if element.kind == KIND_IMAGE and element.attrs.get("background"):
        return ["background"]
    n = counters.get(element.kind, 0)
    counters[element.kind] = n + 1
    refs = range(len(element.image_refs))
    if element.kind == KIND_IMAGE:
        return [f"static_{n:02}"]
    if element.kind == KIND_DIGIT_GLYPH_SET:
        return [f"digit_{element.subtype}_{n}_{i}" for i in refs]
    if element.kind == KIND_ALT_DIGIT_GLYPH_SET:
        return [f"altdigit_{n}_{i}" for i in refs]
    if element.kind == KIND_DAY_NAME_DISPLAY:
        return [f"dayname_{n}_{i}" for i in refs]
    if element.kind == KIND_BATTERY_FILL:
        return [f"battery_{n}_{i}" for i in refs]
    if element.kind == KIND_HAND_POINTER:
        return [f"hand_{element.subtype}_{n}"]
    if element.kind == KIND_BAR_DISPLAY:
        return [f"bar_{n}_{i}" for i in refs]
    if element.kind == KIND_WEATHER_DISPLAY:
        return [f"weather_{n}_{i}" for i in refs]
    if element.kind == KIND_RESERVED:
        return [f"reserved_{n}_{i}" for i in refs]
    return [f"{element.kind.lower()}_{n}_{i}" for i in refs]


def encode_dump(data: bytes, image_result: ImageResult, *, fmt: str, bpp: int) -> bytes:
    if fmt == "raw":
        span = image_result.span
        return data[span.offset : span.offset + span.length]
    if fmt == "semiraw":
        return image_result.image.data
    if fmt == "png":
        return encode_png(image_result.image, source_offset=image_result.ref.offset)
    return encode_bmp(image_result.image, bpp, source_offset=image_result.ref.offset)


def dump_face_images(
    *,
    outdir,
    data: bytes,
    result: WalkResult,
    fmt: str = "bmp",
    bpp: int = DEPTH_32,
    basic_rle: bool = False,
    logger: Logger,
):
    counters: Dict[str, int] = {}
    for element in result.elements:
        basenames = image_basenames(element, counters=counters)
        image_results = decode_element_images(
            data, element, logger=logger, basic_rle=basic_rle
        )
        for basename, image_result in zip(basenames, image_results):
            if image_result.error is not None:
                continue
            try:
                blob = encode_dump(data, image_result, fmt=fmt, bpp=bpp)
            except FaceFormatError as e:
                logger.append(f"ERROR: {basename}: {e}")
                continue
            write_blob(os.path.join(outdir, f"{basename}.{fmt}"), blob)


def save_log(*, outdir, logger: Logger):
    log_filename = os.path.join(outdir, "_face_output.txt")
    with open(log_filename, "w", encoding="utf-8") as f:
        print(f"writing {log_filename}")
        f.write("\n".join(logger.contents()))


def dafit_face_tool(
    *,
    face_data: bytes,
    dump: Optional[str] = None,
    fmt: str = "bmp",
    bpp: int = DEPTH_32,
    json_path: Optional[str] = None,
    schema: Optional[str] = None,
    basic_rle: bool = False,
    strict_digit_sentinel: bool = False,
    verbose: bool = False,
) -> int:
    logger = start_log(verbose=verbose)
    try:
        result = walk_face(
            face_data,
            logger=logger,
            schema=schema,
            strict_digit_sentinel=strict_digit_sentinel,
        )
    except FaceFormatError as e:
        logger.append(f"ERROR: {e}")
        return 1
    for line in render_face_report(result):
        logger.append(line)
    if json_path is not None:
        write_blob(
            json_path, json.dumps(face_report_dict(result), indent=2).encode("utf-8")
        )
    if dump is not None:
        print("\n== Dumping ==")
        if not os.path.isdir(dump):
            print(f"mkdir {dump}")
            os.makedirs(dump)
        dump_face_images(
            outdir=dump,
            data=face_data,
            result=result,
            fmt=fmt,
            bpp=bpp,
            basic_rle=basic_rle,
            logger=logger,
        )
        save_log(outdir=dump, logger=logger)
    print("\nDone.")
    return 0


def make_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dafit-face-tool",
        description="Describe a MO YOUNG / DA FIT binary watch face file and dump its images.",
    )
    parser.add_argument("filename", help="binary watch face file for input")
    parser.add_argument(
        "--dump",
        nargs="?",
        const=DEFAULT_DUMP_FOLDER,
        metavar="FOLDER",
        help=f"dump images to FOLDER (default '{DEFAULT_DUMP_FOLDER}'); use --dump=FOLDER",
    )
    parser.add_argument("--format", choices=DUMP_FORMATS, default="bmp", dest="fmt")
    parser.add_argument(
        "--raw",
        action="store_const",
        const="raw",
        dest="fmt",
        help="when dumping, write images exactly as stored",
    )
    parser.add_argument(
        "--semiraw",
        action="store_const",
        const="semiraw",
        dest="fmt",
        help="when dumping, write decompressed ARGB8565 samples",
    )
    parser.add_argument("--bpp", type=int, choices=DEPTHS, default=DEPTH_32)
    parser.add_argument("--json", metavar="FILE", dest="json_path")
    parser.add_argument(
        "--schema",
        choices=sorted(TAG_SCHEMAS),
        help="element tag convention (default full16)",
    )
    parser.add_argument(
        "--basic-rle",
        action="store_true",
        help="0x2108 images use the old row-unbounded RLE",
    )
    parser.add_argument(
        "--strict-digits",
        action="store_true",
        dest="strict_digit_sentinel",
        help="stop if the digit section does not start with a digit glyph set",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv=None) -> int:
    args = make_argument_parser().parse_args(argv)
    try:
        face_data = load_face_file(args.filename)
    except OSError as e:
        print(f"ERROR: Failed to read {args.filename}: {e}")
        return 1
    return dafit_face_tool(
        face_data=face_data,
        dump=args.dump,
        fmt=args.fmt,
        bpp=args.bpp,
        json_path=args.json_path,
        schema=args.schema,
        basic_rle=args.basic_rle,
        strict_digit_sentinel=args.strict_digit_sentinel,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    sys.exit(main())
