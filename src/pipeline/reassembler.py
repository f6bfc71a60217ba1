#!/usr/bin/env python3
"""
Reassembler

Compiles selected modified sources back into binary tables. Failures are
isolated per table: a missing source or a compiler error for one identifier
is recorded and the rest of the batch carries on.
"""

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from acpied.exceptions import (
    AcpiedError,
    CompileError,
    TableNotFoundError,
    ToolError,
    WorkspaceIOError,
)
from acpied.pipeline.workspace import Workspace
from acpied.shell import CancelToken
from acpied.string_utils import (
    format_identifier_list,
    format_size_short,
    log_info_safe,
    log_warning_safe,
    safe_format,
)
from acpied.tools.base import Disassembler

logger = logging.getLogger(__name__)

STAGE = "reassembling"


@dataclass(frozen=True)
class CompiledTable:
    """Binary table produced from one modified source."""

    identifier: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ReassemblyResult:
    """Successes and per-identifier failures of one reassembly batch."""

    artifacts: Dict[str, CompiledTable] = field(default_factory=dict)
    failures: Dict[str, AcpiedError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def succeeded(self) -> List[str]:
        return sorted(self.artifacts)

    @property
    def failed(self) -> List[str]:
        return sorted(self.failures)


class Reassembler:
    """Compile modified sources with the injected assembler."""

    def __init__(
        self,
        workspace: Workspace,
        assembler: Disassembler,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.workspace = workspace
        self.assembler = assembler
        self.cancel_token = cancel_token or CancelToken()

    def reassemble(self, identifiers: Iterable[str]) -> ReassemblyResult:
        """
        Compile every identifier; never raises for a single bad table.

        Raises:
            PipelineCancelled: the operator aborted the batch
        """
        result = ReassemblyResult()

        try:
            sources = self.workspace.modified_index()
            with tempfile.TemporaryDirectory(prefix="acpied-asm-") as build_dir:
                for identifier in sorted(set(identifiers)):
                    self.cancel_token.raise_if_cancelled(STAGE)
                    try:
                        result.artifacts[identifier] = self._compile(
                            identifier, sources.get(identifier), Path(build_dir)
                        )
                    except (TableNotFoundError, CompileError) as e:
                        result.failures[identifier] = e
                        log_warning_safe(
                            logger, "{id}: {err}", prefix="ASM", id=identifier, err=e.message
                        )
        except OSError as e:
            raise WorkspaceIOError(
                safe_format("Cannot use a scratch build directory: {err}", err=e),
                stage=STAGE,
            ) from e

        log_info_safe(
            logger,
            "Reassembled {ok}; failed {failed}",
            prefix="ASM",
            ok=format_identifier_list(result.artifacts),
            failed=format_identifier_list(result.failures),
        )
        return result

    def _compile(
        self, identifier: str, source: Optional[Path], build_dir: Path
    ) -> CompiledTable:
        if source is None or not source.is_file():
            raise TableNotFoundError(
                "no modified source in workspace", stage=STAGE, identifier=identifier
            )

        try:
            output = self.assembler.assemble(source, build_dir)
            data = output.read_bytes()
        except ToolError as e:
            raise CompileError(identifier, e.output or e.message, stage=STAGE) from e
        except OSError as e:
            raise CompileError(identifier, str(e), stage=STAGE) from e

        if not data:
            raise CompileError(identifier, "assembler produced an empty table", stage=STAGE)

        log_info_safe(
            logger,
            "Compiled {id} ({size})",
            prefix="ASM",
            id=identifier,
            size=format_size_short(len(data)),
        )
        return CompiledTable(identifier=identifier, data=data)
