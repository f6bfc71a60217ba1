#!/usr/bin/env python3
"""
Workspace Manager

Owns the scratch tree the pipeline works in::

    <root>/
      raw/           firmware dump blob, split binaries under raw/tables/
      origin/        <id>.dsl as disassembled; never edited
      modified/      <id>.dsl copies the operator edits

The tree is destroyed and recreated by :meth:`Workspace.reset` before every
extraction run; there is no merge with a previous run.
"""

import filecmp
import logging
import re
import shutil
from pathlib import Path
from typing import Dict, List, Union

from acpied.exceptions import TableNotFoundError, ValidationError, WorkspaceIOError
from acpied.string_utils import log_debug_safe, log_info_safe, safe_format

logger = logging.getLogger(__name__)

RAW_DIR = "raw"
ORIGIN_DIR = "origin"
MODIFIED_DIR = "modified"

RAW_DUMP_NAME = "acpidump.out"
SOURCE_SUFFIX = ".dsl"

_IDENTIFIER = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
# Tab, LF, CR and form feed are the only control characters ASL sources use
_DISALLOWED_CHARS = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")


def validate_identifier(identifier: str) -> str:
    """Reject identifiers that are empty or could escape the workspace."""
    if not isinstance(identifier, str) or not _IDENTIFIER.match(identifier):
        raise ValidationError(
            safe_format("Invalid table identifier: {id!r}", id=identifier),
        )
    return identifier


def validate_source_text(identifier: str, text: str) -> str:
    """Check edited source before it is stored; syntax is checked at reassembly."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("source text is empty", identifier=identifier)

    bad = _DISALLOWED_CHARS.search(text)
    if bad:
        line = text.count("\n", 0, bad.start()) + 1
        raise ValidationError(
            safe_format(
                "disallowed character {char!r} on line {line}",
                char=bad.group(0),
                line=line,
            ),
            identifier=identifier,
        )

    if not text.endswith("\n"):
        text += "\n"
    return text


class Workspace:
    """Handle on one workspace tree; pass it to every pipeline stage."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"Workspace({str(self.root)!r})"

    @property
    def raw_dir(self) -> Path:
        return self.root / RAW_DIR

    @property
    def origin_dir(self) -> Path:
        return self.root / ORIGIN_DIR

    @property
    def modified_dir(self) -> Path:
        return self.root / MODIFIED_DIR

    @property
    def raw_dump_path(self) -> Path:
        return self.raw_dir / RAW_DUMP_NAME

    @property
    def tables_dir(self) -> Path:
        """Per-table binaries split from the dump."""
        return self.raw_dir / "tables"

    def reset(self) -> None:
        """Delete any existing tree at ``root`` and recreate the empty regions.

        Raises:
            WorkspaceIOError: the root is not removable/creatable, or is
                occupied by something other than a directory
        """
        root = self.root
        if root.is_symlink() or (root.exists() and not root.is_dir()):
            raise WorkspaceIOError(
                safe_format("Workspace path is occupied by a non-directory: {path}", path=root)
            )

        if root.exists():
            try:
                shutil.rmtree(root)
            except OSError as e:
                raise WorkspaceIOError(
                    safe_format("Cannot remove workspace {path}: {err}", path=root, err=e)
                ) from e

        try:
            for region in (self.raw_dir, self.origin_dir, self.modified_dir):
                region.mkdir(parents=True)
        except OSError as e:
            raise WorkspaceIOError(
                safe_format(
                    "Workspace {path} was removed but could not be recreated: {err}",
                    path=root,
                    err=e,
                )
            ) from e

        log_info_safe(logger, "Reset workspace at {path}", prefix="WORKSPACE", path=root)

    def exists(self) -> bool:
        return all(p.is_dir() for p in (self.raw_dir, self.origin_dir, self.modified_dir))

    def origin_source(self, identifier: str) -> Path:
        return self.origin_dir / (validate_identifier(identifier) + SOURCE_SUFFIX)

    def modified_source(self, identifier: str) -> Path:
        return self.modified_dir / (validate_identifier(identifier) + SOURCE_SUFFIX)

    def _index(self, region: Path) -> Dict[str, Path]:
        if not region.is_dir():
            return {}
        return {
            path.stem: path
            for path in sorted(region.iterdir())
            if path.is_file() and path.suffix == SOURCE_SUFFIX
        }

    def origin_index(self) -> Dict[str, Path]:
        """``{identifier: path}`` for every origin source."""
        return self._index(self.origin_dir)

    def modified_index(self) -> Dict[str, Path]:
        """``{identifier: path}`` for every editable source."""
        return self._index(self.modified_dir)

    def list_tables(self) -> List[str]:
        """Editable table identifiers in sorted order."""
        return sorted(self.modified_index())

    def read_modified_source(self, identifier: str) -> str:
        path = self.modified_source(identifier)
        if not path.is_file():
            raise TableNotFoundError("no modified source in workspace", identifier=identifier)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise WorkspaceIOError(
                safe_format("Cannot read {path}: {err}", path=path, err=e),
                identifier=identifier,
            ) from e

    def write_modified_source(self, identifier: str, text: str) -> None:
        """Store edited source; accepted even if it will not compile yet."""
        path = self.modified_source(identifier)
        if not self.origin_source(identifier).is_file():
            raise ValidationError("unknown table", identifier=identifier)
        text = validate_source_text(identifier, text)

        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise WorkspaceIOError(
                safe_format("Cannot write {path}: {err}", path=path, err=e),
                identifier=identifier,
            ) from e
        log_debug_safe(logger, "Saved {id}", prefix="WORKSPACE", id=identifier)

    def changed_tables(self) -> List[str]:
        """Identifiers whose modified source differs from origin."""
        origin = self.origin_index()
        changed = []
        for identifier, path in self.modified_index().items():
            original = origin.get(identifier)
            if original is None or not filecmp.cmp(path, original, shallow=False):
                changed.append(identifier)
        return changed

    def revert_table(self, identifier: str) -> None:
        """Discard edits by copying the origin source back."""
        source = self.origin_source(identifier)
        if not source.is_file():
            raise TableNotFoundError("no origin source in workspace", identifier=identifier)
        try:
            shutil.copyfile(source, self.modified_source(identifier))
        except OSError as e:
            raise WorkspaceIOError(
                safe_format("Cannot revert {id}: {err}", id=identifier, err=e),
                identifier=identifier,
            ) from e
        log_info_safe(logger, "Reverted {id}", prefix="WORKSPACE", id=identifier)
