"""Build metadata and wall-clock helpers."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import Optional, TextIO


@dataclass(frozen=True)
class BuildInfo:
    """Version details stamped at build time."""

    version: str = ""
    git_commit: str = ""
    build_time: str = ""
    runtime: str = ""


BUILD_INFO = BuildInfo()


def now_with_millisecond() -> int:
    """Return the current Unix time in milliseconds."""
    return time.time_ns() // 1_000_000


def print_version(info: Optional[BuildInfo] = None, out: Optional[TextIO] = None) -> None:
    """Write version information, one field per line."""
    info = BUILD_INFO if info is None else info
    out = sys.stdout if out is None else out
    print("Version  : ", info.version, file=out)
    print("GitCommit: ", info.git_commit, file=out)
    print("BuildTime: ", info.build_time, file=out)
    print("Runtime  : ", info.runtime, file=out)