# tests/unit/core/test_caller.py
"""Tests for caller resolution."""

import os

from lumberjack.core.caller import get_caller_info


def helper_that_resolves(skip: int = 0) -> tuple[str | None, str | None]:
    info = get_caller_info(skip)
    return info.file, info.function


def test_reports_first_application_frame() -> None:
    info = get_caller_info()

    assert info.file == __file__
    assert info.function == "test_reports_first_application_frame"
    assert info.line is not None


def test_skip_walks_further_out() -> None:
    assert helper_that_resolves() == (__file__, "helper_that_resolves")
    assert helper_that_resolves(skip=1) == (__file__, "test_skip_walks_further_out")


def test_ignored_directories_are_skipped() -> None:
    this_dir = os.path.normcase(os.path.dirname(os.path.abspath(__file__))) + os.sep

    info = get_caller_info(ignore_dirs=(this_dir,))

    assert info.file != __file__
