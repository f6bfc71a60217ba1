#!/usr/bin/env python3
"""Boot configuration store backed by ``grubby``."""

import logging
import re
import shlex
from pathlib import Path
from typing import Dict

from acpied.exceptions import BootUpdateError
from acpied.shell import Shell
from acpied.string_utils import log_debug_safe, safe_format
from acpied.tools.base import BootConfigStore, BootEntry

logger = logging.getLogger(__name__)

_INFO_LINE = re.compile(r"^(?P<key>[A-Za-z_]+)=(?P<value>.*)$")


def parse_grubby_info(output: str) -> Dict[str, str]:
    """Parse ``grubby --info`` output into a dict of its first entry.

    Example output::

        index=0
        kernel="/boot/vmlinuz-6.5.6-300.fc39.x86_64"
        initrd="/boot/initramfs-6.5.6-300.fc39.x86_64.img $tuned_initrd"
    """
    info: Dict[str, str] = {}
    for line in output.splitlines():
        match = _INFO_LINE.match(line.strip())
        if not match:
            continue
        key = match.group("key")
        if key == "index" and "index" in info:
            break
        value = match.group("value")
        try:
            parts = shlex.split(value)
            value = " ".join(parts)
        except ValueError:
            value = value.strip('"')
        info[key] = value
    return info


class GrubbyBootConfig(BootConfigStore):
    """Query and update the default entry with grubby."""

    def __init__(self, shell: Shell, executable: str = "grubby"):
        self.shell = shell
        self.executable = executable

    def default_entry(self) -> BootEntry:
        kernel = self.shell.run([self.executable, "--default-kernel"]).stdout_text.strip()
        if not kernel:
            raise BootUpdateError("grubby reported no default kernel")

        info = parse_grubby_info(
            self.shell.run([self.executable, f"--info={kernel}"]).stdout_text
        )
        # tuned and friends append "$var" entries after the real initrd
        initrds = [p for p in info.get("initrd", "").split() if not p.startswith("$")]
        if not initrds:
            raise BootUpdateError(
                safe_format("No initrd configured for default kernel {kernel}", kernel=kernel)
            )

        log_debug_safe(
            logger,
            "Default entry: kernel={kernel} initrd={initrd}",
            prefix="BOOT",
            kernel=kernel,
            initrd=initrds[0],
        )
        return BootEntry(kernel=kernel, initrd=Path(initrds[0]))

    def set_initrd(self, kernel: str, initrd: Path) -> None:
        self.shell.run(
            [self.executable, f"--update-kernel={kernel}", f"--initrd={initrd}"]
        )
