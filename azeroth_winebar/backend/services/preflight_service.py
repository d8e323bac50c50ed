#!/usr/bin/env python3
"""
Host Preflight Service

Samples the kernel tunables and resource limits World of Warcraft needs,
reports deficits, and writes persistent drop-in fixes through the
privilege broker.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import psutil

from azeroth_winebar.backend.errors import EnvUnsupported, PrivilegeDenied
from azeroth_winebar.backend.handlers.privilege_handler import PrivilegeBroker
from azeroth_winebar.backend.handlers.subprocess_utils import get_hard_nofile_limit
from azeroth_winebar.backend.models.preflight import (
    HostProfile, CheckResult, PreflightReport, UNLIMITED,
    MAP_COUNT_CHECK, FD_LIMIT_CHECK, MEMORY_CHECK,
    REQUIRED_MAP_COUNT, REQUIRED_NOFILE, REQUIRED_RAM_GB, REQUIRED_TOTAL_GB,
)

logger = logging.getLogger(__name__)

GIB = 1024 ** 3
DROPIN_NAME = "99-azeroth-winebar.conf"
SYSCTL_CONTENT = f"vm.max_map_count={REQUIRED_MAP_COUNT}\n"
LIMITS_CONTENT = (
    "# Azeroth Winebar - File descriptor limits for WoW\n"
    f"* soft nofile {REQUIRED_NOFILE}\n"
    f"* hard nofile {REQUIRED_NOFILE}\n"
    f"root soft nofile {REQUIRED_NOFILE}\n"
    f"root hard nofile {REQUIRED_NOFILE}\n"
)


class HostProbe:
    """Reads the three host properties checked by the preflight."""

    def __init__(self, proc_root: Path = Path("/proc")):
        self.proc_root = Path(proc_root)

    def read_map_count(self) -> int:
        path = self.proc_root / "sys" / "vm" / "max_map_count"
        try:
            return int(path.read_text().strip())
        except (OSError, ValueError) as e:
            logger.error(f"Unable to read {path}: {e}")
            raise EnvUnsupported(f"Cannot read vm.max_map_count from {path}",
                                 hint="Run Azeroth Winebar on a Linux host with /proc mounted.")

    def read_nofile_hard(self):
        return get_hard_nofile_limit()

    def read_memory(self) -> Tuple[int, int]:
        """Return (RAM GB, RAM + swap GB), each rounded down to whole GiB."""
        try:
            mem_total = psutil.virtual_memory().total
            swap_total = psutil.swap_memory().total
        except (OSError, psutil.Error, RuntimeError) as e:
            logger.error(f"Unable to read memory information: {e}")
            raise EnvUnsupported("Cannot read /proc/meminfo",
                                 hint="Run Azeroth Winebar on a Linux host with a readable /proc/meminfo.")
        mem_gb = mem_total // GIB
        swap_gb = swap_total // GIB
        return mem_gb, mem_gb + swap_gb

    def sample(self) -> HostProfile:
        mem_gb, total_gb = self.read_memory()
        return HostProfile(
            map_count=self.read_map_count(),
            nofile_hard=self.read_nofile_hard(),
            memory_gb=mem_gb,
            memory_swap_gb=total_gb,
        )


class PreflightService:
    """
    Runs the fixed list of host checks and applies remediation.

    Args:
        broker: privilege broker used for the drop-in files
        probe: host probe (replaceable in tests)
        etc_root: root under which the drop-in directories live
    """

    def __init__(self, broker: PrivilegeBroker, probe: Optional[HostProbe] = None,
                 etc_root: Path = Path("/etc")):
        self.broker = broker
        self.probe = probe or HostProbe()
        self.etc_root = Path(etc_root)

    @property
    def sysctl_dropin(self) -> Path:
        return self.etc_root / "sysctl.d" / DROPIN_NAME

    @property
    def limits_dropin(self) -> Path:
        return self.etc_root / "security" / "limits.d" / DROPIN_NAME

    def _limits_dropin_installed(self) -> bool:
        try:
            return self.limits_dropin.read_text() == LIMITS_CONTENT
        except OSError:
            return False

    def evaluate(self, profile: HostProfile) -> PreflightReport:
        results = []

        results.append(CheckResult(
            check_id=MAP_COUNT_CHECK,
            ok=profile.map_count >= REQUIRED_MAP_COUNT,
            observed=str(profile.map_count),
            required=f">= {REQUIRED_MAP_COUNT}",
        ))

        if profile.nofile_unlimited:
            fd_ok, fd_observed = True, UNLIMITED
        elif profile.nofile_hard >= REQUIRED_NOFILE:
            fd_ok, fd_observed = True, str(profile.nofile_hard)
        elif self._limits_dropin_installed():
            # the limits drop-in only takes effect for new login sessions
            fd_ok, fd_observed = True, f"{profile.nofile_hard} ({REQUIRED_NOFILE} after re-login)"
        else:
            fd_ok, fd_observed = False, str(profile.nofile_hard)
        results.append(CheckResult(
            check_id=FD_LIMIT_CHECK,
            ok=fd_ok,
            observed=fd_observed,
            required=f">= {REQUIRED_NOFILE}",
        ))

        results.append(CheckResult(
            check_id=MEMORY_CHECK,
            ok=(profile.memory_gb >= REQUIRED_RAM_GB and profile.memory_swap_gb >= REQUIRED_TOTAL_GB),
            observed=f"{profile.memory_gb} GB RAM, {profile.memory_swap_gb} GB RAM + swap",
            required=f">= {REQUIRED_RAM_GB} GB RAM and >= {REQUIRED_TOTAL_GB} GB RAM + swap",
        ))
        return PreflightReport(results=results, profile=profile)

    def run_preflight(self) -> PreflightReport:
        """Sample the host once and evaluate every check."""
        logger.info("Running host preflight checks")
        report = self.evaluate(self.probe.sample())
        for line in report.summary_lines():
            logger.info(line)
        return report

    def remediate(self, report: PreflightReport) -> List[str]:
        """
        Apply the remediation of every failed, remediable check.

        Returns:
            List[str]: ids of the checks that were remediated
        """
        fixed = []
        for failure in report.failures:
            if failure.check_id == MAP_COUNT_CHECK:
                self._fix_map_count()
                fixed.append(failure.check_id)
            elif failure.check_id == FD_LIMIT_CHECK:
                self._fix_nofile()
                fixed.append(failure.check_id)
            else:
                logger.info(f"No automatic remediation for {failure.check_id}")
        return fixed

    def _fix_map_count(self) -> None:
        logger.info(f"Writing {self.sysctl_dropin}")
        code, stderr = self.broker.write_root_file(
            self.sysctl_dropin, SYSCTL_CONTENT,
            f"Azeroth Winebar needs to write {self.sysctl_dropin} to set vm.max_map_count={REQUIRED_MAP_COUNT}.",
        )
        _check_elevated(code, stderr, f"writing {self.sysctl_dropin}")
        live = self.probe.read_map_count()
        if live >= REQUIRED_MAP_COUNT:
            logger.debug("vm.max_map_count already satisfied at runtime")
            return
        code, stderr = self.broker.run_elevated(
            ["sysctl", "-w", f"vm.max_map_count={REQUIRED_MAP_COUNT}"],
            "Azeroth Winebar needs to apply vm.max_map_count to the running kernel.",
        )
        _check_elevated(code, stderr, "applying vm.max_map_count")

    def _fix_nofile(self) -> None:
        logger.info(f"Writing {self.limits_dropin}")
        code, stderr = self.broker.write_root_file(
            self.limits_dropin, LIMITS_CONTENT,
            f"Azeroth Winebar needs to write {self.limits_dropin} to raise the open file limit to {REQUIRED_NOFILE}.",
        )
        _check_elevated(code, stderr, f"writing {self.limits_dropin}")

    def run_with_remediation(self, confirm: Callable[[PreflightReport], bool]) -> PreflightReport:
        """
        Run the preflight; if a remediable check failed and `confirm`
        approves, apply the fixes and run the preflight again.
        """
        report = self.run_preflight()
        if report.passed:
            return report
        if not any(r.remediable for r in report.failures):
            return report
        if not confirm(report):
            logger.info("Operator declined preflight remediation")
            return report
        self.remediate(report)
        return self.run_preflight()


def _check_elevated(code: int, stderr: str, what: str) -> None:
    if code != 0:
        logger.error(f"Elevated command failed while {what}: exit {code}: {stderr.strip()}")
        raise PrivilegeDenied(f"Elevated command failed while {what} (exit {code})",
                              hint="Apply the change manually as root, then run the preflight again.")
