"""Line endings, path separator and operating system name."""

import os
import platform
from typing import Mapping


class Environment:
    """Read-only lookups, with optional overrides for a known remote system."""

    def __init__(self, overrides: Mapping[str, str] | None = None) -> None:
        self._overrides = dict(overrides or {})

    def get_line_endings(self) -> str:
        return self._overrides.get("line_endings", os.linesep)

    def get_separator(self) -> str:
        return self._overrides.get("separator", os.sep)

    def get_operating_system(self) -> str:
        return self._overrides.get("operating_system", platform.system())
