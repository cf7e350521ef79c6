#!/usr/bin/env python3

from typing import Callable, List, NamedTuple


class Logger(NamedTuple):
    append: Callable[[str], None]
    debug: Callable[[str], None]
    contents: Callable[[], List[str]]


def start_log(*, echo: bool = True, verbose: bool = False) -> Logger:
    output = []

    def append(s: str):
        output.append(s)
        if echo:
            print(s)

    def debug(s: str):
        if verbose:
            append(s)

    def contents() -> List[str]:
        return output

    return Logger(append=append, debug=debug, contents=contents)


def null_log() -> Logger:
    return Logger(append=lambda s: None, debug=lambda s: None, contents=lambda: [])


def warn(logger: Logger, s: str):
    logger.append(f"WARNING: {s}")
