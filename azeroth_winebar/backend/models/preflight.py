"""
Preflight Data Models

Host snapshot and the per-check report produced by the host preflight.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union

UNLIMITED = "unlimited"

MAP_COUNT_CHECK = "map-count"
FD_LIMIT_CHECK = "file-descriptor-hard-limit"
MEMORY_CHECK = "memory"

REQUIRED_MAP_COUNT = 16777216
REQUIRED_NOFILE = 524288
REQUIRED_RAM_GB = 16
REQUIRED_TOTAL_GB = 40


@dataclass(frozen=True)
class HostProfile:
    """Host properties sampled once per preflight run."""
    map_count: int
    nofile_hard: Union[int, str]
    memory_gb: Optional[int]
    memory_swap_gb: Optional[int]

    @property
    def nofile_unlimited(self) -> bool:
        return self.nofile_hard == UNLIMITED


@dataclass(frozen=True)
class CheckResult:
    check_id: str
    ok: bool
    observed: str
    required: str

    @property
    def remediable(self) -> bool:
        return self.check_id in (MAP_COUNT_CHECK, FD_LIMIT_CHECK)


@dataclass
class PreflightReport:
    results: List[CheckResult] = field(default_factory=list)
    profile: Optional[HostProfile] = None

    @property
    def passed(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> List[CheckResult]:
        return [r for r in self.results if not r.ok]

    def get(self, check_id: str) -> Optional[CheckResult]:
        for result in self.results:
            if result.check_id == check_id:
                return result
        return None

    def summary_lines(self) -> List[str]:
        lines = []
        for r in self.results:
            status = "OK" if r.ok else "FAIL"
            lines.append(f"[{status}] {r.check_id}: {r.observed} (required {r.required})")
        return lines
