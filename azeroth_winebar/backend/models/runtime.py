"""
Runtime Data Models

Kinds of compatibility runtimes, download plans and installed-runtime
records, plus the `.runner-info` manifest text format.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

VENDOR_EXPERIMENTAL_ID = "vendor-experimental"
VENDOR_LATEST_TAG = "vendor-latest"
VENDOR_SOURCE_MARKER = "steam:proton-experimental"
MANIFEST_NAME = ".runner-info"


class RuntimeKind(Enum):
    VENDOR_EXPERIMENTAL = "vendor-experimental"
    COMMUNITY_PROTON = "community-proton"
    COMMUNITY_WINE = "community-wine"
    COMMUNITY_WINE_TKG = "community-wine-tkg"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: str) -> 'RuntimeKind':
        """Map a manifest/CLI string onto a kind; unknown strings become CUSTOM."""
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.CUSTOM


class ArchiveFormat(Enum):
    XZ_TAR = "xz-tar"
    GZ_TAR = "gz-tar"

    @property
    def suffix(self) -> str:
        return ".tar.xz" if self is ArchiveFormat.XZ_TAR else ".tar.gz"

    @property
    def tar_flag(self) -> str:
        return "-xJf" if self is ArchiveFormat.XZ_TAR else "-xzf"

    @property
    def decompressor(self) -> str:
        return "xz" if self is ArchiveFormat.XZ_TAR else "gzip"


@dataclass(frozen=True)
class KindDescriptor:
    """A release source known at build time."""
    kind: RuntimeKind
    label: str
    feed_url: Optional[str] = None
    archive_format: Optional[ArchiveFormat] = None
    tag_prefix: Optional[str] = None
    asset_keywords: tuple = ()


@dataclass
class DownloadPlan:
    """Where a runtime comes from. A delegated plan links a local vendor runtime instead of downloading."""
    kind: RuntimeKind
    tag: str
    url: Optional[str] = None
    archive_format: Optional[ArchiveFormat] = None
    delegated: bool = False


@dataclass
class Runtime:
    """An installed compatibility runtime."""
    id: str
    kind: RuntimeKind
    install_root: Path
    executable_path: Optional[Path] = None
    source_url: Optional[str] = None
    installed_at: Optional[str] = None
    proton_binary: Optional[Path] = None
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def is_vendor_experimental(self) -> bool:
        return self.kind is RuntimeKind.VENDOR_EXPERIMENTAL

    def to_manifest(self) -> str:
        """Render the KEY=VALUE `.runner-info` text."""
        lines = [
            f"RUNNER_NAME={self.id}",
            f"RUNNER_TYPE={self.kind.value}",
            f"INSTALL_DATE={self.installed_at or utc_stamp()}",
            f"WINE_BINARY={self.executable_path or ''}",
        ]
        if self.source_url:
            lines.append(f"SOURCE_URL={self.source_url}")
        if self.proton_binary:
            lines.append(f"PROTON_BINARY={self.proton_binary}")
        for key, value in self.extra.items():
            lines.append(f"{key}={value}")
        return "\n".join(lines) + "\n"

    @classmethod
    def from_manifest(cls, text: str, install_root: Path) -> 'Runtime':
        values = parse_manifest(text)
        known = {"RUNNER_NAME", "RUNNER_TYPE", "INSTALL_DATE", "WINE_BINARY", "SOURCE_URL", "PROTON_BINARY"}
        return cls(
            id=values.get("RUNNER_NAME") or install_root.name,
            kind=RuntimeKind.parse(values.get("RUNNER_TYPE", "")),
            install_root=install_root,
            executable_path=Path(values["WINE_BINARY"]) if values.get("WINE_BINARY") else None,
            source_url=values.get("SOURCE_URL"),
            installed_at=values.get("INSTALL_DATE"),
            proton_binary=Path(values["PROTON_BINARY"]) if values.get("PROTON_BINARY") else None,
            extra={k: v for k, v in values.items() if k not in known},
        )


def parse_manifest(text: str) -> Dict[str, str]:
    values = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


def utc_stamp(when: Optional[datetime] = None) -> str:
    """RFC 3339 UTC timestamp with second precision."""
    when = when or datetime.now(timezone.utc)
    return when.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def sort_runtimes(runtimes: List[Runtime]) -> List[Runtime]:
    """Vendor runtime first, then the rest by id."""
    return sorted(runtimes, key=lambda r: (not r.is_vendor_experimental, r.id.lower()))
