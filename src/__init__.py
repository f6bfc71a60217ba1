#!/usr/bin/env python3
"""acpied: override firmware ACPI tables through the initrd."""

from .__version__ import __title__, __version__

__all__ = ["__title__", "__version__"]
