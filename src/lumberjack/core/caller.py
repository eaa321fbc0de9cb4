# src/lumberjack/core/caller.py
"""Resolve the file, line and function that originated a log call.

Frames belonging to the lumberjack package itself are skipped, so the
reported location is the first frame in application code, the way the
stdlib logging module skips its own frames.
"""

from __future__ import annotations

import contextlib
import os
import sys
from dataclasses import dataclass
from types import FrameType

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.normcase(os.path.abspath(__file__)))) + os.sep
# contextmanager-based helpers call back through contextlib
_DEFAULT_IGNORED = (_PACKAGE_DIR, os.path.normcase(contextlib.__file__))


@dataclass(frozen=True, slots=True)
class CallerInfo:
    file: str | None = None
    line: int | None = None
    function: str | None = None


_UNKNOWN = CallerInfo()


def _is_internal(frame: FrameType, ignore_dirs: tuple[str, ...]) -> bool:
    filename = os.path.normcase(frame.f_code.co_filename)
    return any(filename.startswith(directory) for directory in ignore_dirs)


def get_caller_info(skip: int = 0, *, ignore_dirs: tuple[str, ...] = _DEFAULT_IGNORED) -> CallerInfo:
    """Return caller info above this helper.

    Args:
        skip: Additional application frames to skip once lumberjack frames
            have been passed (0 = the first application frame).
        ignore_dirs: Path prefixes whose frames are never reported.

    Returns:
        CallerInfo, with all fields None when the stack is exhausted.
    """
    frame: FrameType | None = sys._getframe(1)
    while frame is not None and _is_internal(frame, ignore_dirs):
        frame = frame.f_back
    for _ in range(skip):
        if frame is None:
            break
        frame = frame.f_back
    if frame is None:
        return _UNKNOWN
    return CallerInfo(
        file=frame.f_code.co_filename,
        line=frame.f_lineno,
        function=frame.f_code.co_name,
    )
