#!/usr/bin/env python3
"""
Table Extractor

Dumps the live ACPI tables, splits the dump into per-table binaries,
disassembles each binary into ``origin/`` and seeds ``modified/`` with copies.
The caller resets the workspace first; extraction never resets implicitly.
"""

import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from acpied.exceptions import (
    AcpiedError,
    CompileError,
    ExtractionError,
    ToolError,
    WorkspaceIOError,
)
from acpied.pipeline.workspace import Workspace, validate_identifier
from acpied.shell import CancelToken
from acpied.string_utils import (
    format_identifier_list,
    format_size_short,
    log_debug_safe,
    log_info_safe,
    safe_format,
)
from acpied.tools.base import Disassembler, FirmwareDumpSource, TableSplitter

logger = logging.getLogger(__name__)

STAGE = "extracting"


class TableExtractor:
    """Populate a freshly reset workspace from the firmware."""

    def __init__(
        self,
        workspace: Workspace,
        dump_source: FirmwareDumpSource,
        splitter: TableSplitter,
        disassembler: Disassembler,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.workspace = workspace
        self.dump_source = dump_source
        self.splitter = splitter
        self.disassembler = disassembler
        self.cancel_token = cancel_token or CancelToken()

    def extract(self) -> List[str]:
        """
        Run dump, split and disassembly.

        Returns:
            Sorted table identifiers now present in ``origin`` and ``modified``

        Raises:
            ExtractionError: the dump is empty or no table could be split out
            CompileError: a split table could not be disassembled
            WorkspaceIOError: workspace regions are missing or unwritable
        """
        ws = self.workspace
        if not ws.exists():
            raise WorkspaceIOError(
                safe_format("Workspace {path} has not been reset", path=ws.root),
                stage=STAGE,
            )

        blob = self._dump()
        binaries = self._split(blob)

        identifiers = []
        for identifier, binary in sorted(binaries.items()):
            self.cancel_token.raise_if_cancelled(STAGE)
            try:
                source = self.disassembler.disassemble(binary, ws.origin_dir)
            except ToolError as e:
                raise CompileError(identifier, e.output or e.message, stage=STAGE) from e

            expected = ws.origin_source(identifier)
            try:
                if source != expected:
                    shutil.move(str(source), str(expected))
                shutil.copyfile(expected, ws.modified_source(identifier))
            except OSError as e:
                raise WorkspaceIOError(
                    safe_format("Cannot stage source: {err}", err=e),
                    stage=STAGE,
                    identifier=identifier,
                ) from e

            log_debug_safe(
                logger,
                "Disassembled {id} ({size})",
                prefix="EXTRACT",
                id=identifier,
                size=format_size_short(expected.stat().st_size),
            )
            identifiers.append(identifier)

        log_info_safe(
            logger,
            "Extracted {count} tables: {tables}",
            prefix="EXTRACT",
            count=len(identifiers),
            tables=format_identifier_list(identifiers),
        )
        return identifiers

    def _dump(self) -> Path:
        blob = self.workspace.raw_dump_path
        try:
            self.dump_source.dump(blob)
        except ToolError as e:
            raise ExtractionError(
                safe_format("Firmware dump failed: {err}", err=e.output or e.message)
            ) from e

        if not blob.is_file() or blob.stat().st_size == 0:
            raise ExtractionError("Firmware dump produced no data")

        log_info_safe(
            logger,
            "Dumped firmware tables ({size})",
            prefix="EXTRACT",
            size=format_size_short(blob.stat().st_size),
        )
        return blob

    def _split(self, blob: Path) -> Dict[str, Path]:
        try:
            binaries = self.splitter.split(blob, self.workspace.tables_dir)
        except ToolError as e:
            raise ExtractionError(
                safe_format("Splitting the dump failed: {err}", err=e.output or e.message)
            ) from e

        if not binaries:
            raise ExtractionError("No tables found in firmware dump")

        for identifier in binaries:
            try:
                validate_identifier(identifier)
            except AcpiedError as e:
                raise ExtractionError(
                    safe_format("Splitter produced unusable table name {id!r}", id=identifier)
                ) from e
        return binaries
