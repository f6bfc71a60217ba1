#!/usr/bin/env python3
"""Interfaces of the external collaborators used by the pipeline stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict


@dataclass(frozen=True)
class BootEntry:
    """Default boot entry as reported by the boot configuration store."""

    kernel: str
    initrd: Path

    def __post_init__(self):
        object.__setattr__(self, "initrd", Path(self.initrd))


class FirmwareDumpSource(ABC):
    """Produces one blob with every ACPI table currently loaded."""

    @abstractmethod
    def dump(self, output: Path) -> Path:
        """Write the dump to ``output`` and return it."""


class TableSplitter(ABC):
    """Splits a dump blob into one binary file per table."""

    @abstractmethod
    def split(self, blob: Path, target_dir: Path) -> Dict[str, Path]:
        """Return ``{identifier: binary_path}``; identifiers must be unique."""


class Disassembler(ABC):
    """Converts between binary tables and editable source."""

    @abstractmethod
    def disassemble(self, binary: Path, output_dir: Path) -> Path:
        """Write ``<stem>.dsl`` for ``binary`` into ``output_dir``."""

    @abstractmethod
    def assemble(self, source: Path, output_dir: Path) -> Path:
        """Write ``<stem>.aml`` for ``source`` into ``output_dir``."""


class Archiver(ABC):
    """Packs a directory tree into the kernel's override archive format."""

    @abstractmethod
    def archive(self, tree: Path) -> bytes:
        """Return archive bytes with paths relative to ``tree``."""


class BootConfigStore(ABC):
    """Reads and updates the boot loader's default entry."""

    @abstractmethod
    def default_entry(self) -> BootEntry:
        """Return the current default entry."""

    @abstractmethod
    def set_initrd(self, kernel: str, initrd: Path) -> None:
        """Persist ``initrd`` for the entry booting ``kernel``."""
