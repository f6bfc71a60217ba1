#!/usr/bin/env python3
"""Configuration dataclass for the ACPI table override pipeline."""

import os
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Dict, Mapping, Optional

from acpied.exceptions import ConfigurationError
from acpied.log_config import DEFAULT_LOG_FILE
from acpied.string_utils import safe_format

ENV_PREFIX = "ACPIED_"

# Directory inside the override cpio archive that the kernel scans for tables
# (Documentation/admin-guide/acpi/initrd_table_override.rst).
KERNEL_ACPI_PREFIX = "kernel/firmware/acpi"


@dataclass
class PipelineConfig:
    """Strongly-typed configuration for the table override pipeline."""

    # Filesystem layout
    workspace_root: Path = Path("/tmp/acpidump")
    boot_dir: Path = Path("/boot")
    acpi_prefix: str = KERNEL_ACPI_PREFIX
    image_prefix: str = "acpi-override"

    # External tools
    acpidump: str = "acpidump"
    acpixtract: str = "acpixtract"
    iasl: str = "iasl"
    cpio: str = "cpio"
    grubby: str = "grubby"

    # Per-process timeout in seconds
    tool_timeout: float = 120.0

    log_file: Optional[str] = DEFAULT_LOG_FILE

    def __post_init__(self):
        """Normalize and validate configuration after initialization."""
        self.workspace_root = Path(self.workspace_root)
        self.boot_dir = Path(self.boot_dir)
        self.tool_timeout = float(self.tool_timeout)

        if self.tool_timeout <= 0:
            raise ConfigurationError(
                safe_format(
                    "tool_timeout must be positive, got {value}",
                    value=self.tool_timeout,
                )
            )

        if not self.workspace_root.is_absolute():
            raise ConfigurationError(
                safe_format(
                    "workspace_root must be an absolute path: {path}",
                    path=self.workspace_root,
                )
            )

        # Reset() deletes this tree wholesale
        if self.workspace_root == Path(self.workspace_root.anchor):
            raise ConfigurationError("workspace_root must not be a filesystem root")

        prefix = self.acpi_prefix.strip("/")
        if not prefix or ".." in prefix.split("/"):
            raise ConfigurationError(
                safe_format("Invalid ACPI archive prefix: {prefix}", prefix=self.acpi_prefix)
            )
        self.acpi_prefix = prefix

        if not re.match(r"^[A-Za-z0-9][A-Za-z0-9._-]*$", self.image_prefix):
            raise ConfigurationError(
                safe_format(
                    "Invalid image prefix: {prefix}. Use letters, digits, '.', '_' or '-'.",
                    prefix=self.image_prefix,
                )
            )

    @property
    def tools(self) -> Dict[str, str]:
        """External executables the pipeline depends on."""
        return {
            "acpidump": self.acpidump,
            "acpixtract": self.acpixtract,
            "iasl": self.iasl,
            "cpio": self.cpio,
            "grubby": self.grubby,
        }

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides
    ) -> "PipelineConfig":
        """Build a config from ``ACPIED_*`` variables, then apply overrides.

        ``ACPIED_WORKSPACE_ROOT=/var/tmp/acpi`` sets ``workspace_root`` and so
        on. An empty ``ACPIED_LOG_FILE`` disables the log file. Overrides that
        are ``None`` are ignored so CLI defaults do not mask the environment.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field in fields(cls):
            key = ENV_PREFIX + field.name.upper()
            if key in environ:
                values[field.name] = environ[key]

        if values.get("log_file") == "":
            values["log_file"] = None

        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                safe_format("Invalid configuration: {err}", err=str(e))
            ) from e
