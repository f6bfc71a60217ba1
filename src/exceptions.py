#!/usr/bin/env python3
"""
Exception hierarchy for the ACPI table override pipeline.

Every error carries the pipeline stage it was raised from and, for errors that
only affect one table, the table identifier. Stage-fatal errors abort the
current apply attempt; per-table errors are collected and reported next to the
tables that succeeded.
"""

from typing import Optional


class AcpiedError(Exception):
    """Base class for all pipeline errors."""

    default_stage: Optional[str] = None

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        identifier: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.identifier = identifier

    def __str__(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        if self.identifier:
            parts.append(f"{self.identifier}:")
        parts.append(self.message)
        return " ".join(parts)


class ConfigurationError(AcpiedError):
    """Raised when pipeline configuration is invalid."""

    default_stage = "config"


class PrerequisiteError(AcpiedError):
    """Raised when the host lacks a required tool or privilege."""

    default_stage = "prerequisites"


class ValidationError(AcpiedError):
    """Raised when operator input is rejected before touching the pipeline."""

    default_stage = "validation"


class WorkspaceIOError(AcpiedError):
    """Filesystem failure. Fatal for the current operation."""

    default_stage = "workspace"


class DiskSpaceError(WorkspaceIOError):
    """The target filesystem ran out of space while writing an image."""

    default_stage = "composing"

    def __init__(self, message: str, stale_images=None, **kwargs):
        super().__init__(message, **kwargs)
        self.stale_images = list(stale_images or [])


class ExtractionError(AcpiedError):
    """The firmware dump produced nothing usable to edit."""

    default_stage = "extracting"


class TableNotFoundError(AcpiedError):
    """A selected table has no source in the workspace."""

    default_stage = "reassembling"


class CompileError(AcpiedError):
    """The ASL compiler or disassembler rejected a table."""

    default_stage = "reassembling"

    def __init__(self, identifier: str, diagnostic: str, stage: Optional[str] = None):
        super().__init__(
            f"compilation failed: {diagnostic.strip() or 'no diagnostic'}",
            stage=stage,
            identifier=identifier,
        )
        self.diagnostic = diagnostic


class ComposeError(AcpiedError):
    """The override image could not be built or extended."""

    default_stage = "composing"


class BootUpdateError(AcpiedError):
    """The boot loader rejected or failed the initrd update."""

    default_stage = "updating"


class ToolError(AcpiedError):
    """An external helper process failed or timed out."""

    default_stage = "tool"

    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        returncode: Optional[int] = None,
        output: str = "",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.command = command
        self.returncode = returncode
        self.output = output


class PipelineCancelled(AcpiedError):
    """The operator aborted the running operation."""

    default_stage = "cancelled"


__all__ = [
    "AcpiedError",
    "BootUpdateError",
    "CompileError",
    "ComposeError",
    "ConfigurationError",
    "DiskSpaceError",
    "ExtractionError",
    "PipelineCancelled",
    "PrerequisiteError",
    "TableNotFoundError",
    "ToolError",
    "ValidationError",
    "WorkspaceIOError",
]
