#!/usr/bin/env python3
"""Unit tests for the workspace manager."""

import os
from pathlib import Path

import pytest

from acpied.exceptions import TableNotFoundError, ValidationError, WorkspaceIOError
from acpied.pipeline.workspace import (
    Workspace,
    validate_identifier,
    validate_source_text,
)


def _seed(ws: Workspace, identifier: str, text: str = "DefinitionBlock {\n}\n") -> None:
    ws.origin_source(identifier).write_text(text)
    ws.modified_source(identifier).write_text(text)


class TestReset:
    def test_creates_three_empty_regions(self, workspace):
        workspace.reset()

        assert sorted(p.name for p in workspace.root.iterdir()) == [
            "modified",
            "origin",
            "raw",
        ]
        assert workspace.exists()
        assert workspace.list_tables() == []

    def test_discards_previous_run(self, workspace):
        workspace.reset()
        _seed(workspace, "DSDT")
        (workspace.raw_dir / "acpidump.out").write_bytes(b"old")

        workspace.reset()

        assert workspace.list_tables() == []
        assert not (workspace.raw_dir / "acpidump.out").exists()
        assert list(workspace.origin_dir.iterdir()) == []

    def test_non_directory_at_root_is_rejected(self, tmp_path):
        blocker = tmp_path / "acpidump"
        blocker.write_text("not a directory")

        with pytest.raises(WorkspaceIOError) as ei:
            Workspace(blocker).reset()
        assert "non-directory" in str(ei.value)
        assert blocker.read_text() == "not a directory"

    def test_symlinked_root_is_rejected(self, tmp_path):
        target = tmp_path / "elsewhere"
        target.mkdir()
        link = tmp_path / "acpidump"
        link.symlink_to(target)

        with pytest.raises(WorkspaceIOError):
            Workspace(link).reset()
        assert target.is_dir()

    def test_failed_recreate_is_fatal(self, workspace, monkeypatch):
        workspace.reset()
        original_mkdir = Path.mkdir

        def failing_mkdir(self, *args, **kwargs):
            if self.name == "origin":
                raise PermissionError(13, "Permission denied")
            return original_mkdir(self, *args, **kwargs)

        monkeypatch.setattr(Path, "mkdir", failing_mkdir)
        with pytest.raises(WorkspaceIOError) as ei:
            workspace.reset()
        assert "could not be recreated" in str(ei.value)

    @pytest.mark.skipif(os.geteuid() == 0, reason="root ignores directory permissions")
    def test_unremovable_root_raises(self, tmp_path):
        parent = tmp_path / "locked"
        ws = Workspace(parent / "acpidump")
        ws.reset()
        parent.chmod(0o500)
        try:
            with pytest.raises(WorkspaceIOError):
                ws.reset()
        finally:
            parent.chmod(0o700)


class TestSources:
    def test_list_tables_is_sorted(self, workspace):
        workspace.reset()
        for name in ("SSDT2", "DSDT", "FACP", "SSDT1"):
            _seed(workspace, name)
        assert workspace.list_tables() == ["DSDT", "FACP", "SSDT1", "SSDT2"]

    def test_list_tables_ignores_other_files(self, workspace):
        workspace.reset()
        _seed(workspace, "DSDT")
        (workspace.modified_dir / "DSDT.dsl.swp").write_text("x")
        (workspace.modified_dir / "notes").mkdir()
        assert workspace.list_tables() == ["DSDT"]

    def test_read_missing_table(self, workspace):
        workspace.reset()
        with pytest.raises(TableNotFoundError) as ei:
            workspace.read_modified_source("DSDT")
        assert ei.value.identifier == "DSDT"

    def test_write_then_read(self, workspace):
        workspace.reset()
        _seed(workspace, "DSDT")

        workspace.write_modified_source("DSDT", "DefinitionBlock {\n  Name (FOO, 1)\n}")

        assert workspace.read_modified_source("DSDT").endswith("}\n")
        assert "FOO" in workspace.read_modified_source("DSDT")

    def test_write_accepts_source_that_will_not_compile(self, workspace):
        workspace.reset()
        _seed(workspace, "DSDT")
        workspace.write_modified_source("DSDT", "this is not ASL\n")
        assert workspace.read_modified_source("DSDT") == "this is not ASL\n"

    def test_write_unknown_table_rejected(self, workspace):
        workspace.reset()
        with pytest.raises(ValidationError):
            workspace.write_modified_source("SSDT9", "DefinitionBlock {}\n")
        assert not workspace.modified_source("SSDT9").exists()

    @pytest.mark.parametrize("text", ["", "   \n\t\n", "ok\x00nul", "bell\x07"])
    def test_write_rejects_empty_or_control_characters(self, workspace, text):
        workspace.reset()
        _seed(workspace, "DSDT", "original\n")

        with pytest.raises(ValidationError):
            workspace.write_modified_source("DSDT", text)
        assert workspace.read_modified_source("DSDT") == "original\n"

    def test_changed_and_revert(self, workspace):
        workspace.reset()
        _seed(workspace, "DSDT")
        _seed(workspace, "SSDT1")
        assert workspace.changed_tables() == []

        workspace.write_modified_source("SSDT1", "DefinitionBlock {\n  // edited\n}\n")
        assert workspace.changed_tables() == ["SSDT1"]

        workspace.revert_table("SSDT1")
        assert workspace.changed_tables() == []


class TestValidation:
    @pytest.mark.parametrize("identifier", ["DSDT", "ssdt1", "APIC", "SSDT-x_1.2"])
    def test_valid_identifiers(self, identifier):
        assert validate_identifier(identifier) == identifier

    @pytest.mark.parametrize("identifier", ["", "../etc", "a/b", ".hidden", None, "x y"])
    def test_invalid_identifiers(self, identifier):
        with pytest.raises(ValidationError):
            validate_identifier(identifier)

    def test_source_gets_trailing_newline(self):
        assert validate_source_text("DSDT", "abc") == "abc\n"

    def test_control_character_reports_line(self):
        with pytest.raises(ValidationError) as ei:
            validate_source_text("DSDT", "one\ntwo\nthr\x01ee\n")
        assert "line 3" in str(ei.value)
