#!/usr/bin/env python3
"""
Table override pipeline.

Modules:
- workspace: scratch tree with raw / origin / modified regions
- extractor: dump, split and disassemble the live tables
- reassembler: compile edited sources, isolating per-table failures
- composer: build the override initrd image
- boot_entry: repoint the default boot entry
- orchestrator: OverridePipeline facade and apply state machine
"""

from .boot_entry import BootEntryUpdater
from .composer import InitrdComposer
from .extractor import TableExtractor
from .orchestrator import ApplyFailure, ApplyResult, OverridePipeline, PipelineStage
from .reassembler import CompiledTable, Reassembler, ReassemblyResult
from .workspace import Workspace

__all__ = [
    "ApplyFailure",
    "ApplyResult",
    "BootEntryUpdater",
    "CompiledTable",
    "InitrdComposer",
    "OverridePipeline",
    "PipelineStage",
    "Reassembler",
    "ReassemblyResult",
    "TableExtractor",
    "Workspace",
]
