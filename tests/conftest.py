#!/usr/bin/env python3
"""Shared fixtures: isolated workspace, fake boot partition and pipeline."""

import logging
from pathlib import Path

import pytest

from fakes import (
    SAMPLE_TABLES,
    FakeArchiver,
    FakeBootStore,
    FakeDisassembler,
    FakeDumpSource,
    FakeSplitter,
)

from acpied.pipeline.orchestrator import OverridePipeline
from acpied.pipeline.workspace import Workspace

KERNEL = "/boot/vmlinuz-6.8.0-test"
ORIGINAL_INITRD_BYTES = b"\x1f\x8b" + b"original-initramfs-content" * 64


@pytest.fixture(autouse=True)
def reset_root_logging():
    """Drop handlers installed by setup_logging so tests do not leak them."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    return Workspace(tmp_path / "acpidump")


@pytest.fixture
def boot_dir(tmp_path: Path) -> Path:
    path = tmp_path / "boot"
    path.mkdir()
    return path


@pytest.fixture
def original_initrd(boot_dir: Path) -> Path:
    path = boot_dir / "initramfs-6.8.0-test.img"
    path.write_bytes(ORIGINAL_INITRD_BYTES)
    return path


@pytest.fixture
def boot_store(original_initrd: Path) -> FakeBootStore:
    return FakeBootStore(kernel=KERNEL, initrd=original_initrd)


@pytest.fixture
def dump_source() -> FakeDumpSource:
    return FakeDumpSource(SAMPLE_TABLES)


@pytest.fixture
def disassembler() -> FakeDisassembler:
    return FakeDisassembler()


@pytest.fixture
def archiver() -> FakeArchiver:
    return FakeArchiver()


@pytest.fixture
def pipeline(workspace, dump_source, disassembler, archiver, boot_store, boot_dir):
    return OverridePipeline(
        workspace=workspace,
        dump_source=dump_source,
        splitter=FakeSplitter(),
        disassembler=disassembler,
        archiver=archiver,
        boot_store=boot_store,
        output_dir=boot_dir,
    )


@pytest.fixture
def initialized(pipeline):
    """Pipeline whose workspace already holds the sample tables."""
    pipeline.initialize()
    return pipeline
