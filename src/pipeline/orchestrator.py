#!/usr/bin/env python3
"""
Override Pipeline

Facade the presentation layer (CLI, editor) talks to. It owns one workspace
and drives an apply attempt through its stages::

    IDLE -> EXTRACTING -> EDITABLE -> REASSEMBLING -> COMPOSING -> UPDATING -> APPLIED
                                           \\              \\            \\
                                            +------------- FAILED{stage, cause}

FAILED is terminal for that attempt; the operator fixes the offending source
and applies again from EDITABLE. EXTRACTING is only re-entered through an
explicit :meth:`OverridePipeline.initialize`.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from acpied.config import KERNEL_ACPI_PREFIX, PipelineConfig
from acpied.exceptions import AcpiedError, ValidationError, WorkspaceIOError
from acpied.pipeline.boot_entry import BootEntryUpdater
from acpied.pipeline.composer import InitrdComposer
from acpied.pipeline.extractor import TableExtractor
from acpied.pipeline.reassembler import Reassembler
from acpied.pipeline.workspace import Workspace
from acpied.shell import CancelToken, Shell
from acpied.string_utils import format_failure_lines, format_identifier_list
from acpied.tools import (
    AcpidumpSource,
    AcpixtractSplitter,
    Archiver,
    BootConfigStore,
    CpioArchiver,
    Disassembler,
    FirmwareDumpSource,
    GrubbyBootConfig,
    IaslDisassembler,
    TableSplitter,
)
from acpied.utils.pipeline_logger import PipelineLogger, get_pipeline_logger

logger = logging.getLogger(__name__)


class PipelineStage(Enum):
    """States of one apply attempt."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    EDITABLE = "editable"
    REASSEMBLING = "reassembling"
    COMPOSING = "composing"
    UPDATING = "updating"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class ApplyResult:
    """A completed apply: the boot entry now uses ``applied_path``."""

    applied_path: Path
    applied_tables: List[str]
    failures: Dict[str, AcpiedError] = field(default_factory=dict)
    previous_initrd: Optional[Path] = None

    ok = True

    @property
    def partial(self) -> bool:
        """Some selected tables were left out."""
        return bool(self.failures)


@dataclass
class ApplyFailure:
    """An aborted apply; the boot entry was not changed."""

    stage: PipelineStage
    cause: AcpiedError
    failures: Dict[str, AcpiedError] = field(default_factory=dict)
    # Set when composing succeeded but the boot update did not
    image_path: Optional[Path] = None

    ok = False


ApplyOutcome = Union[ApplyResult, ApplyFailure]


class OverridePipeline:
    """Drive extraction and apply attempts against one workspace."""

    def __init__(
        self,
        workspace: Workspace,
        dump_source: FirmwareDumpSource,
        splitter: TableSplitter,
        disassembler: Disassembler,
        archiver: Archiver,
        boot_store: BootConfigStore,
        output_dir: Path,
        image_prefix: str = "acpi-override",
        acpi_prefix: str = KERNEL_ACPI_PREFIX,
        cancel_token: Optional[CancelToken] = None,
        pipeline_logger: Optional[PipelineLogger] = None,
    ):
        self.workspace = workspace
        self.cancel_token = cancel_token or CancelToken()
        self.log = pipeline_logger or get_pipeline_logger(logger)

        self.extractor = TableExtractor(
            workspace, dump_source, splitter, disassembler, self.cancel_token
        )
        self.reassembler = Reassembler(workspace, disassembler, self.cancel_token)
        self.composer = InitrdComposer(
            output_dir,
            archiver,
            boot_store,
            image_prefix=image_prefix,
            acpi_prefix=acpi_prefix,
            cancel_token=self.cancel_token,
        )
        self.boot_updater = BootEntryUpdater(boot_store)

        self.last_failure: Optional[ApplyFailure] = None
        self._state = (
            PipelineStage.EDITABLE
            if workspace.exists() and workspace.list_tables()
            else PipelineStage.IDLE
        )

    @classmethod
    def from_config(
        cls, config: PipelineConfig, cancel_token: Optional[CancelToken] = None
    ) -> "OverridePipeline":
        """Wire the real ACPICA, cpio and grubby tools."""
        cancel_token = cancel_token or CancelToken()
        shell = Shell(timeout=config.tool_timeout, cancel_token=cancel_token)
        return cls(
            workspace=Workspace(config.workspace_root),
            dump_source=AcpidumpSource(shell, config.acpidump),
            splitter=AcpixtractSplitter(shell, config.acpixtract),
            disassembler=IaslDisassembler(shell, config.iasl),
            archiver=CpioArchiver(shell, config.cpio),
            boot_store=GrubbyBootConfig(shell, config.grubby),
            output_dir=config.boot_dir,
            image_prefix=config.image_prefix,
            acpi_prefix=config.acpi_prefix,
            cancel_token=cancel_token,
        )

    @property
    def state(self) -> PipelineStage:
        return self._state

    def cancel(self) -> None:
        """Abort the running stage; the current external process is killed."""
        self.cancel_token.cancel()

    def initialize(self) -> List[str]:
        """Destructively reset the workspace and extract the live tables."""
        self.cancel_token.reset()
        self._state = PipelineStage.EXTRACTING
        self.log.enter_stage("extract")
        try:
            self.workspace.reset()
            identifiers = self.extractor.extract()
        except BaseException:
            self._state = PipelineStage.IDLE
            raise
        finally:
            self.log.leave_stage("extract")

        self._state = PipelineStage.EDITABLE
        self.last_failure = None
        return identifiers

    def list_editable_tables(self) -> List[str]:
        return self.workspace.list_tables()

    def read_modified_source(self, identifier: str) -> str:
        return self.workspace.read_modified_source(identifier)

    def write_modified_source(self, identifier: str, text: str) -> None:
        self.workspace.write_modified_source(identifier, text)

    def list_changed_tables(self) -> List[str]:
        return self.workspace.changed_tables()

    def revert_table(self, identifier: str) -> None:
        self.workspace.revert_table(identifier)

    def apply_selected(self, identifiers: Iterable[str]) -> ApplyOutcome:
        """
        Reassemble, compose and install the selected tables.

        Tables that fail to reassemble are reported in ``failures`` and left
        out; the rest are still applied. Stage-wide failures return an
        :class:`ApplyFailure` and leave the boot entry untouched.

        Raises:
            ValidationError: nothing was selected
            WorkspaceIOError: the workspace was never initialized
        """
        selected = set(identifiers)
        if not selected:
            raise ValidationError("No tables selected")
        if not self.workspace.exists():
            raise WorkspaceIOError(
                "Workspace is not initialized; extract the tables first",
                stage=PipelineStage.REASSEMBLING.value,
            )

        # A cancel only ends the attempt it interrupted
        self.cancel_token.reset()
        self.last_failure = None
        self.log.info(
            "Applying {tables}", prefix="apply", tables=format_identifier_list(selected)
        )

        self._state = PipelineStage.REASSEMBLING
        try:
            self.log.enter_stage("asm")
            try:
                reassembly = self.reassembler.reassemble(selected)
            finally:
                self.log.leave_stage("asm")
        except AcpiedError as e:
            return self._fail(PipelineStage.REASSEMBLING, e)

        failures = dict(reassembly.failures)
        if not reassembly.artifacts:
            cause = AcpiedError(
                "None of the selected tables could be reassembled",
                stage=PipelineStage.REASSEMBLING.value,
            )
            return self._fail(PipelineStage.REASSEMBLING, cause, failures)

        self._state = PipelineStage.COMPOSING
        try:
            self.log.enter_stage("initrd")
            try:
                image = self.composer.compose(reassembly.artifacts)
            finally:
                self.log.leave_stage("initrd")
        except AcpiedError as e:
            return self._fail(PipelineStage.COMPOSING, e, failures)

        self._state = PipelineStage.UPDATING
        try:
            self.log.enter_stage("boot")
            try:
                previous = self.boot_updater.apply(image)
            finally:
                self.log.leave_stage("boot")
        except AcpiedError as e:
            return self._fail(PipelineStage.UPDATING, e, failures, image_path=image)

        self._state = PipelineStage.APPLIED
        self.log.info("Applied {image}", prefix="apply", image=image)
        for line in format_failure_lines(failures):
            self.log.warning("Not applied: {line}", prefix="apply", line=line)

        return ApplyResult(
            applied_path=image,
            applied_tables=reassembly.succeeded,
            failures=failures,
            previous_initrd=previous.initrd,
        )

    def _fail(
        self,
        stage: PipelineStage,
        cause: AcpiedError,
        failures: Optional[Dict[str, AcpiedError]] = None,
        image_path: Optional[Path] = None,
    ) -> ApplyFailure:
        self._state = PipelineStage.FAILED
        self.last_failure = ApplyFailure(
            stage=stage,
            cause=cause,
            failures=dict(failures or {}),
            image_path=image_path,
        )
        self.log.error(
            "Apply failed while {stage}: {cause}",
            prefix="apply",
            stage=stage.value,
            cause=cause,
        )
        for line in format_failure_lines(self.last_failure.failures):
            self.log.error("  {line}", prefix="apply", line=line)
        return self.last_failure
