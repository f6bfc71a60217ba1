#!/usr/bin/env python3
"""
Boot Entry Updater

Repoints the default boot entry at a composed override image. A successful
update is terminal; rolling back means applying an older image (or the
original initrd) again.
"""

import logging
from pathlib import Path

from acpied.exceptions import AcpiedError, BootUpdateError
from acpied.string_utils import log_info_safe, safe_format
from acpied.tools.base import BootConfigStore, BootEntry

logger = logging.getLogger(__name__)

STAGE = "updating"


class BootEntryUpdater:
    """Query and update the default entry through a BootConfigStore."""

    def __init__(self, boot_store: BootConfigStore):
        self.boot_store = boot_store

    def current_entry(self) -> BootEntry:
        try:
            return self.boot_store.default_entry()
        except BootUpdateError:
            raise
        except (AcpiedError, OSError) as e:
            raise BootUpdateError(
                safe_format("Cannot read the default boot entry: {err}", err=e)
            ) from e

    def current_initrd(self) -> Path:
        return self.current_entry().initrd

    def apply(self, image_path: Path) -> BootEntry:
        """
        Point the default entry's initrd at ``image_path``.

        The image is never deleted here, whatever happens.

        Returns:
            The entry as it was before the update

        Raises:
            BootUpdateError: the image is missing or the boot loader refused
        """
        image_path = Path(image_path)
        if not image_path.is_file():
            raise BootUpdateError(
                safe_format("Override image does not exist: {path}", path=image_path)
            )

        previous = self.current_entry()
        try:
            self.boot_store.set_initrd(previous.kernel, image_path)
        except (AcpiedError, OSError) as e:
            detail = getattr(e, "output", "") or str(e)
            raise BootUpdateError(
                safe_format(
                    "Boot loader rejected the update for {kernel}: {err}",
                    kernel=previous.kernel,
                    err=detail,
                )
            ) from e

        log_info_safe(
            logger,
            "Default entry {kernel}: initrd {old} -> {new}",
            prefix="BOOT",
            kernel=previous.kernel,
            old=previous.initrd,
            new=image_path,
        )
        return previous
