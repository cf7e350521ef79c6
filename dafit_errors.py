#!/usr/bin/env python3

"""Errors raised while decoding Da Fit "type N" watch face files

Every error carries the byte offset at which it was detected. For
image errors the offset is an absolute offset into the face file
where that is known, and a position inside the image payload
otherwise (the message says which).

"""

from typing import Optional


class FaceFormatError(Exception):
    def __init__(self, message: str, *, offset: int):
        super().__init__(f"{message} (at offset 0x{offset:08X})")
        self.offset = offset


class FormatTooShort(FaceFormatError):
    pass


class UnknownTag(FaceFormatError):
    def __init__(self, message: str, *, offset: int, tag: int):
        super().__init__(message, offset=offset)
        self.tag = tag


class MalformedSizeField(FaceFormatError):
    def __init__(self, message: str, *, offset: int, row: Optional[int] = None):
        super().__init__(message, offset=offset)
        self.row = row


class BufferOverrun(FaceFormatError):
    pass


class SourceExhausted(BufferOverrun):
    # ran off the end of the compressed data rather than the output row
    pass


class RowTooWide(FaceFormatError):
    pass


class OutOfMemory(FaceFormatError):
    pass


class DigitSentinelMismatch(FaceFormatError):
    pass


class NotImplementedFeature(FaceFormatError, NotImplementedError):
    pass


class EmptyImage(FaceFormatError):
    pass
