"""Version information for acpied."""

__version__ = "0.2.0"
__title__ = "ACPI Table Override Editor"
