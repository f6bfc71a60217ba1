#!/usr/bin/env python3
"""
ACPICA tool adapters.

Wraps the three ACPICA userspace utilities:

- ``acpidump``   dumps every loaded table as an annotated hex blob
- ``acpixtract`` splits that blob into ``<signature><n>.dat`` binaries
- ``iasl``       disassembles binaries to ASL and compiles ASL back to AML
"""

import logging
from pathlib import Path
from typing import Dict

from acpied.exceptions import ToolError
from acpied.shell import Shell
from acpied.string_utils import format_size_short, log_debug_safe, safe_format
from acpied.tools.base import Disassembler, FirmwareDumpSource, TableSplitter

logger = logging.getLogger(__name__)

SPLIT_SUFFIX = ".dat"
SOURCE_SUFFIX = ".dsl"
BINARY_SUFFIX = ".aml"


class AcpidumpSource(FirmwareDumpSource):
    """Dump live tables with ``acpidump -o``."""

    def __init__(self, shell: Shell, executable: str = "acpidump"):
        self.shell = shell
        self.executable = executable

    def dump(self, output: Path) -> Path:
        output = Path(output)
        self.shell.run([self.executable, "-o", output])
        if output.exists():
            log_debug_safe(
                logger,
                "Dumped firmware tables to {path} ({size})",
                prefix="EXTRACT",
                path=output,
                size=format_size_short(output.stat().st_size),
            )
        return output


class AcpixtractSplitter(TableSplitter):
    """Split a dump with ``acpixtract -a``; run inside the target directory."""

    def __init__(self, shell: Shell, executable: str = "acpixtract"):
        self.shell = shell
        self.executable = executable

    def split(self, blob: Path, target_dir: Path) -> Dict[str, Path]:
        target_dir = Path(target_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        self.shell.run([self.executable, "-a", Path(blob).resolve()], cwd=target_dir)

        tables: Dict[str, Path] = {}
        for path in sorted(target_dir.iterdir()):
            if path.is_file() and path.suffix.lower() == SPLIT_SUFFIX:
                tables[path.stem] = path
        return tables


class IaslDisassembler(Disassembler):
    """Round-trip tables through ``iasl``."""

    def __init__(self, shell: Shell, executable: str = "iasl"):
        self.shell = shell
        self.executable = executable

    def disassemble(self, binary: Path, output_dir: Path) -> Path:
        binary = Path(binary)
        prefix = Path(output_dir) / binary.stem
        self.shell.run([self.executable, "-p", prefix, "-d", binary])
        return self._expect(prefix.with_suffix(SOURCE_SUFFIX), binary)

    def assemble(self, source: Path, output_dir: Path) -> Path:
        source = Path(source)
        prefix = Path(output_dir) / source.stem
        self.shell.run([self.executable, "-p", prefix, source])
        return self._expect(prefix.with_suffix(BINARY_SUFFIX), source)

    def _expect(self, output: Path, input_path: Path) -> Path:
        # iasl exits 0 on some rejected inputs without writing anything
        if not output.is_file():
            raise ToolError(
                safe_format(
                    "{exe} produced no output for {input}",
                    exe=self.executable,
                    input=input_path.name,
                ),
                command=self.executable,
            )
        return output
