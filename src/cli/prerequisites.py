#!/usr/bin/env python3
"""Host prerequisite checks: root privileges and the external tool chain."""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from acpied.config import PipelineConfig
from acpied.exceptions import PrerequisiteError
from acpied.shell import Shell
from acpied.string_utils import log_error_safe, log_info_safe, safe_format

logger = logging.getLogger(__name__)

TOOL_PURPOSES = {
    "acpidump": "dump live ACPI tables",
    "acpixtract": "split the dump into tables",
    "iasl": "disassemble and compile tables",
    "cpio": "archive tables for the initrd",
    "grubby": "update the default boot entry",
}


@dataclass
class PrerequisiteStatus:
    """Outcome of one prerequisite check."""

    name: str
    ok: bool
    detail: str


def check_root() -> PrerequisiteStatus:
    """Override images land in /boot and grubby edits the loader config."""
    if not hasattr(os, "geteuid"):
        return PrerequisiteStatus("root", False, "non-POSIX OS; cannot verify user")
    if os.geteuid() != 0:
        return PrerequisiteStatus("root", False, "acpied must be run as root")
    return PrerequisiteStatus("root", True, "running as root")


def check_tools(
    config: PipelineConfig, which: Callable[[str], Optional[str]] = Shell.which
) -> List[PrerequisiteStatus]:
    statuses = []
    for role, executable in config.tools.items():
        resolved = which(executable)
        if resolved:
            statuses.append(PrerequisiteStatus(role, True, resolved))
        else:
            statuses.append(
                PrerequisiteStatus(
                    role,
                    False,
                    safe_format(
                        "{exe} not found (needed to {purpose})",
                        exe=executable,
                        purpose=TOOL_PURPOSES.get(role, role),
                    ),
                )
            )
    return statuses


def run_checks(
    config: PipelineConfig,
    require_root: bool = True,
    which: Callable[[str], Optional[str]] = Shell.which,
) -> List[PrerequisiteStatus]:
    statuses = check_tools(config, which=which)
    if require_root:
        statuses.insert(0, check_root())
    return statuses


def check_prerequisites(
    config: PipelineConfig,
    require_root: bool = True,
    which: Callable[[str], Optional[str]] = Shell.which,
) -> Dict[str, PrerequisiteStatus]:
    """Verify everything the pipeline needs; raise on the first gap.

    Raises:
        PrerequisiteError: listing every failed check
    """
    statuses = run_checks(config, require_root=require_root, which=which)
    failed = [s for s in statuses if not s.ok]
    for status in failed:
        log_error_safe(logger, "{name}: {detail}", prefix="PREREQ",
                       name=status.name, detail=status.detail)
    if failed:
        raise PrerequisiteError(
            "; ".join(f"{s.name}: {s.detail}" for s in failed)
        )

    log_info_safe(logger, "All prerequisites satisfied", prefix="PREREQ")
    return {s.name: s for s in statuses}
