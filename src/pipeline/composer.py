#!/usr/bin/env python3
"""
Initrd Composer

Builds the override image the kernel reads at boot::

    +-------------------------------------------+
    | newc cpio: kernel/firmware/acpi/<id>.aml  |  uncompressed fragment
    +-------------------------------------------+
    | original initrd, byte for byte            |
    +-------------------------------------------+

The fragment must come first: the kernel scans the leading uncompressed
archive for tables before unpacking the real initramfs.
"""

import errno
import logging
import os
import tempfile
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Mapping, Optional

from acpied.config import KERNEL_ACPI_PREFIX
from acpied.exceptions import (
    AcpiedError,
    ComposeError,
    DiskSpaceError,
    ToolError,
    WorkspaceIOError,
)
from acpied.pipeline.reassembler import CompiledTable
from acpied.shell import CancelToken
from acpied.string_utils import (
    format_identifier_list,
    format_size_short,
    image_timestamp,
    log_debug_safe,
    log_info_safe,
    log_warning_safe,
    safe_format,
)
from acpied.tools.base import Archiver, BootConfigStore
from acpied.utils.image_manifest import (
    ImageManifest,
    fragment_digest,
    manifest_path,
    read_manifest,
    write_manifest,
)

logger = logging.getLogger(__name__)

STAGE = "composing"
COPY_CHUNK = 1024 * 1024
TABLE_SUFFIX = ".aml"

_name_lock = threading.Lock()
_last_issued: Optional[datetime] = None


def _next_timestamp() -> datetime:
    """Strictly increasing wall-clock time for image names in this process."""
    global _last_issued
    with _name_lock:
        now = datetime.now()
        if _last_issued is not None and now <= _last_issued:
            now = _last_issued + timedelta(microseconds=1)
        _last_issued = now
        return now


class InitrdComposer:
    """Package compiled tables and layer them ahead of the active initrd."""

    def __init__(
        self,
        output_dir: Path,
        archiver: Archiver,
        boot_store: BootConfigStore,
        image_prefix: str = "acpi-override",
        acpi_prefix: str = KERNEL_ACPI_PREFIX,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.output_dir = Path(output_dir)
        self.archiver = archiver
        self.boot_store = boot_store
        self.image_prefix = image_prefix
        self.acpi_prefix = acpi_prefix.strip("/")
        self.cancel_token = cancel_token or CancelToken()

    def compose(
        self,
        artifacts: Mapping[str, CompiledTable],
        base_initrd: Optional[Path] = None,
    ) -> Path:
        """
        Build a new override image.

        Args:
            artifacts: Compiled tables keyed by identifier
            base_initrd: Initrd to extend; defaults to the one the boot
                entry currently uses

        Returns:
            Path of the completed image

        Raises:
            ComposeError: nothing to package, base initrd missing/unreadable,
                or the archiver failed
            DiskSpaceError: the output filesystem filled up
            PipelineCancelled: the operator aborted; no image is left behind
        """
        if not artifacts:
            raise ComposeError("No compiled tables to package")

        base = self.resolve_base_initrd(base_initrd)
        fragment = self.build_fragment(artifacts)

        target = self._next_image_path()
        partial = target.with_name("." + target.name + ".partial")

        log_info_safe(
            logger,
            "Writing {image}: {tables} ahead of {base}",
            prefix="INITRD",
            image=target.name,
            tables=format_identifier_list(artifacts),
            base=base,
        )

        try:
            base_size = self._write_image(partial, fragment, base)
            try:
                os.replace(partial, target)
            except OSError as e:
                raise WorkspaceIOError(
                    safe_format("Cannot move {path} into place: {err}", path=target, err=e),
                    stage=STAGE,
                ) from e
        except BaseException:
            self._discard(partial)
            raise

        manifest = ImageManifest(
            image=str(target),
            base_initrd=str(base),
            fragment_size=len(fragment),
            base_size=base_size,
            tables=sorted(artifacts),
            fragment_sha256=fragment_digest(fragment),
        )
        try:
            write_manifest(manifest)
        except OSError as e:
            # The image itself is complete; only later base resolution suffers
            log_warning_safe(
                logger,
                "Could not write manifest for {image}: {err}",
                prefix="INITRD",
                image=target.name,
                err=e,
            )

        log_info_safe(
            logger,
            "Composed {image} ({size})",
            prefix="INITRD",
            image=target,
            size=format_size_short(manifest.image_size),
        )
        return target

    def resolve_base_initrd(self, base_initrd: Optional[Path] = None) -> Path:
        """
        Find the initrd to extend.

        When the active initrd is an override image built earlier, its
        recorded base is used so fragments never stack.
        """
        if base_initrd is None:
            try:
                base_initrd = self.boot_store.default_entry().initrd
            except (AcpiedError, OSError) as e:
                raise ComposeError(
                    safe_format("Cannot locate the active initrd: {err}", err=e)
                ) from e

        base = Path(base_initrd)
        manifest = read_manifest(base)
        if manifest is not None and Path(manifest.base_initrd).is_file():
            log_debug_safe(
                logger,
                "{image} is an override image; extending its base {base}",
                prefix="INITRD",
                image=base.name,
                base=manifest.base_initrd,
            )
            base = Path(manifest.base_initrd)

        if not base.is_file():
            raise ComposeError(
                safe_format("Active initrd not found: {path}", path=base)
            )
        if not os.access(base, os.R_OK):
            raise ComposeError(
                safe_format("Active initrd is not readable: {path}", path=base)
            )
        return base

    def build_fragment(self, artifacts: Mapping[str, CompiledTable]) -> bytes:
        """Archive the tables under the kernel's ACPI prefix."""
        try:
            with tempfile.TemporaryDirectory(prefix="acpied-initrd-") as staging:
                table_dir = Path(staging).joinpath(*self.acpi_prefix.split("/"))
                table_dir.mkdir(parents=True)
                for identifier, table in sorted(artifacts.items()):
                    (table_dir / (identifier + TABLE_SUFFIX)).write_bytes(table.data)

                self.cancel_token.raise_if_cancelled(STAGE)
                try:
                    fragment = self.archiver.archive(Path(staging))
                except ToolError as e:
                    raise ComposeError(
                        safe_format("Archiving tables failed: {err}", err=e.output or e.message)
                    ) from e
        except OSError as e:
            raise WorkspaceIOError(
                safe_format("Cannot stage tables for archiving: {err}", err=e),
                stage=STAGE,
            ) from e

        if not fragment:
            raise ComposeError("Archiver produced an empty fragment")
        log_debug_safe(
            logger,
            "Built table fragment ({size})",
            prefix="INITRD",
            size=format_size_short(len(fragment)),
        )
        return fragment

    def list_images(self) -> List[Path]:
        """Existing override images, oldest first."""
        if not self.output_dir.is_dir():
            return []
        return sorted(
            p
            for p in self.output_dir.glob(self.image_prefix + "-*.img")
            if p.is_file()
        )

    def _next_image_path(self) -> Path:
        while True:
            stamp = image_timestamp(_next_timestamp())
            path = self.output_dir / f"{self.image_prefix}-{stamp}.img"
            if not path.exists():
                return path

    def _write_image(self, partial: Path, fragment: bytes, base: Path) -> int:
        try:
            src = open(base, "rb")
        except OSError as e:
            raise ComposeError(
                safe_format("Cannot read active initrd {path}: {err}", path=base, err=e)
            ) from e

        copied = 0
        try:
            with src, open(partial, "wb") as dst:
                dst.write(fragment)
                while True:
                    self.cancel_token.raise_if_cancelled(STAGE)
                    try:
                        chunk = src.read(COPY_CHUNK)
                    except OSError as e:
                        raise ComposeError(
                            safe_format("Reading {path} failed: {err}", path=base, err=e)
                        ) from e
                    if not chunk:
                        break
                    dst.write(chunk)
                    copied += len(chunk)
                dst.flush()
                os.fsync(dst.fileno())
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise DiskSpaceError(
                    safe_format(
                        "No space left in {dir} (image needs {size})",
                        dir=self.output_dir,
                        size=format_size_short(len(fragment) + base.stat().st_size),
                    ),
                    stale_images=[p for p in self.list_images() if p != base],
                ) from e
            raise WorkspaceIOError(
                safe_format("Cannot write {path}: {err}", path=partial, err=e),
                stage=STAGE,
            ) from e

        if partial.stat().st_size != len(fragment) + copied:
            raise ComposeError(
                safe_format("Short write to {path}", path=partial)
            )
        return copied

    @staticmethod
    def _discard(partial: Path) -> None:
        try:
            partial.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log_warning_safe(
                logger,
                "Could not remove partial image {path}: {err}",
                prefix="INITRD",
                path=partial,
                err=e,
            )


def remove_image(image: Path) -> None:
    """Delete an override image and its manifest (operator cleanup)."""
    image = Path(image)
    for path in (image, manifest_path(image)):
        if path.exists():
            path.unlink()
