"""Shared helpers for the override pipeline."""
