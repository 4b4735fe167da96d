from __future__ import annotations

import inspect
import os
from collections.abc import Iterable
from dataclasses import dataclass

_LIBRARY_DIR = os.path.dirname(os.path.abspath(__file__)) + os.sep


@dataclass(frozen=True, slots=True)
class CallSite:
    filename: str
    lineno: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.lineno}"

    @classmethod
    def parse(cls, value: CallSite | str) -> CallSite:
        if isinstance(value, CallSite):
            return value
        filename, sep, lineno = value.rpartition(":")
        if not sep or not filename or not lineno.isdigit():
            raise ValueError(f"Call site must look like 'file:line', got {value!r}")
        return cls(filename, int(lineno))


UNKNOWN_CALL_SITE = CallSite("<unknown>", 0)


def first_non_library_frame(extra_prefixes: Iterable[str] = ()) -> CallSite:
    prefixes = (_LIBRARY_DIR, *extra_prefixes)
    frame = inspect.currentframe()
    try:
        while frame is not None:
            filename = os.path.abspath(frame.f_code.co_filename)
            if not filename.startswith(prefixes):
                return CallSite(filename, frame.f_lineno)
            frame = frame.f_back
    finally:
        del frame
    return UNKNOWN_CALL_SITE
