#!/usr/bin/env python3
"""
External tool adapters.

Modules:
- base: abstract collaborator interfaces and the BootEntry record
- acpica: acpidump / acpixtract / iasl adapters
- cpio: newc archiver for the override fragment
- grubby: boot configuration store
"""

from .acpica import AcpidumpSource, AcpixtractSplitter, IaslDisassembler
from .base import (
    Archiver,
    BootConfigStore,
    BootEntry,
    Disassembler,
    FirmwareDumpSource,
    TableSplitter,
)
from .cpio import CpioArchiver
from .grubby import GrubbyBootConfig

__all__ = [
    "AcpidumpSource",
    "AcpixtractSplitter",
    "Archiver",
    "BootConfigStore",
    "BootEntry",
    "CpioArchiver",
    "Disassembler",
    "FirmwareDumpSource",
    "GrubbyBootConfig",
    "IaslDisassembler",
    "TableSplitter",
]
