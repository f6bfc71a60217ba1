#!/usr/bin/env python3
"""
Centralized Pipeline Logging

Provides consistent stage prefixes for the table override pipeline.
"""

import logging
from typing import List, Optional

from acpied.string_utils import (
    log_debug_safe,
    log_error_safe,
    log_info_safe,
    log_warning_safe,
    safe_format,
)


class PipelineLogger:
    """Pipeline logger with consistent stage prefixes."""

    PREFIXES = {
        "workspace": "WORKSPACE",   # Workspace reset and source I/O
        "extract": "EXTRACT",       # Dump, split and disassembly
        "asm": "ASM",               # Reassembly of modified sources
        "initrd": "INITRD",         # Override image composition
        "boot": "BOOT",             # Boot entry queries and updates
        "apply": "APPLY",           # Apply orchestration
        "prereq": "PREREQ",         # Host prerequisite checks
        "shell": "SHELL",           # External process execution
    }

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._stage_stack: List[str] = []

    def _prefix(self, prefix: str) -> str:
        return self.PREFIXES.get(prefix.lower(), prefix)

    def info(self, message: str, prefix: str = "APPLY", **kwargs) -> None:
        log_info_safe(self.logger, message, prefix=self._prefix(prefix), **kwargs)

    def warning(self, message: str, prefix: str = "APPLY", **kwargs) -> None:
        log_warning_safe(self.logger, message, prefix=self._prefix(prefix), **kwargs)

    def error(self, message: str, prefix: str = "APPLY", **kwargs) -> None:
        log_error_safe(self.logger, message, prefix=self._prefix(prefix), **kwargs)

    def debug(self, message: str, prefix: str = "APPLY", **kwargs) -> None:
        log_debug_safe(self.logger, message, prefix=self._prefix(prefix), **kwargs)

    def enter_stage(self, stage: str) -> None:
        """Push a pipeline stage and announce it."""
        self._stage_stack.append(stage)
        self.info(safe_format("➤ Starting {stage}", stage=stage), prefix=stage)

    def leave_stage(self, stage: str) -> None:
        """Pop a pipeline stage; warns if stages were left out of order."""
        if self._stage_stack and self._stage_stack[-1] == stage:
            self._stage_stack.pop()
            self.debug(safe_format("Completed {stage}", stage=stage), prefix=stage)
        else:
            self.warning(safe_format("Stage stack mismatch: expected {stage}", stage=stage))

    def current_stage(self) -> Optional[str]:
        return self._stage_stack[-1] if self._stage_stack else None


def get_pipeline_logger(logger: Optional[logging.Logger] = None) -> PipelineLogger:
    """Get a pipeline logger instance."""
    return PipelineLogger(logger)
