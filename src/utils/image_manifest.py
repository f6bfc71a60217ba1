#!/usr/bin/env python3
"""
Override Image Manifest

Every override image gets a JSON sidecar describing how it was built, so a
later apply can layer on the real initrd instead of stacking fragments on a
previous override image, and so the operator can audit what went into /boot.
"""

import hashlib
import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

MANIFEST_SUFFIX = ".json"


@dataclass
class ImageManifest:
    """Build record of one override image."""

    image: str
    base_initrd: str
    fragment_size: int
    base_size: int
    tables: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    fragment_sha256: Optional[str] = None

    @property
    def image_size(self) -> int:
        return self.fragment_size + self.base_size


def manifest_path(image: Path) -> Path:
    """Sidecar path for an image: ``<image>.json``."""
    image = Path(image)
    return image.with_name(image.name + MANIFEST_SUFFIX)


def fragment_digest(fragment: bytes) -> str:
    return hashlib.sha256(fragment).hexdigest()


def write_manifest(manifest: ImageManifest) -> Path:
    path = manifest_path(Path(manifest.image))
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(manifest), f, indent=2, sort_keys=True)
        f.write("\n")
    return path


def read_manifest(image: Path) -> Optional[ImageManifest]:
    """Load the sidecar of ``image``; None when missing or unreadable."""
    path = manifest_path(image)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return ImageManifest(**data)
    except (OSError, ValueError, TypeError):
        return None
