#!/usr/bin/env python3
"""cpio archiver for the uncompressed table override fragment."""

from pathlib import Path
from typing import List

from acpied.shell import Shell
from acpied.tools.base import Archiver


class CpioArchiver(Archiver):
    """Equivalent of ``find kernel | cpio -H newc --create``.

    The kernel only scans an uncompressed ``newc`` archive placed ahead of the
    real initrd, so no compression is ever applied here.
    """

    def __init__(self, shell: Shell, executable: str = "cpio"):
        self.shell = shell
        self.executable = executable

    @staticmethod
    def list_entries(tree: Path) -> List[str]:
        """Relative paths in parent-before-child order, as ``find`` emits."""
        tree = Path(tree)
        entries = []
        for path in sorted(tree.rglob("*")):
            entries.append(path.relative_to(tree).as_posix())
        return entries

    def archive(self, tree: Path) -> bytes:
        listing = "\n".join(self.list_entries(tree)) + "\n"
        result = self.shell.run(
            [self.executable, "--create", "--format=newc", "--owner=0:0", "--quiet"],
            cwd=tree,
            input_data=listing.encode("utf-8"),
        )
        return result.stdout
