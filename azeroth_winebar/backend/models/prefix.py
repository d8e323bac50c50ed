"""
Prefix Data Models
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

PREFIX_MARKER_NAME = ".azeroth-winebar-prefix"


@dataclass
class Prefix:
    """A 64-bit wine prefix managed by Azeroth Winebar."""
    path: Path
    initialised: bool = False
    runtime_used_for_init: Optional[str] = None
    arch: str = "win64"

    def __post_init__(self):
        if isinstance(self.path, str):
            self.path = Path(self.path)

    @property
    def drive_c(self) -> Path:
        return self.path / "drive_c"

    @property
    def marker_path(self) -> Path:
        return self.path / PREFIX_MARKER_NAME
