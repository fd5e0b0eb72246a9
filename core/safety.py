"""
Jungian Mirror — Output Guards
Checks run before a deliverable is written to disk.
Prevents path traversal in filenames, oversized payloads, and writing
into a nearly full disk.
"""

import os
import re
from pathlib import Path

# --- Configurable Limits ---
MAX_DELIVERABLE_MB = 500   # Largest snapshot/clip we will write
MIN_DISK_GB = 0.5          # Minimum free disk space
MAX_FILENAME_LEN = 150
ALLOWED_EXTENSIONS = {".png", ".mp4", ".webm"}


class SafetyError(Exception):
    """Raised when an output check fails."""
    pass


def sanitize_filename(name: str) -> str:
    """Reduce a suggested filename to a safe basename.

    Raises:
        SafetyError: If nothing usable remains or the extension is not allowed.
    """
    base = os.path.basename(str(name).replace("\\", "/"))
    stem, ext = os.path.splitext(base)
    stem = re.sub(r"[^\w\-.]", "_", stem).strip("._")[:MAX_FILENAME_LEN]
    ext = ext.lower()
    if not stem:
        raise SafetyError(f"Invalid filename: {name!r}")
    if ext not in ALLOWED_EXTENSIONS:
        raise SafetyError(
            f"File type '{ext}' not allowed. "
            f"Supported: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    return stem + ext


def check_payload_size(data: bytes) -> float:
    """Return payload size in MB.

    Raises:
        SafetyError: If the payload is empty or over MAX_DELIVERABLE_MB.
    """
    size_mb = len(data) / (1024 * 1024)
    if not data:
        raise SafetyError("Refusing to write an empty deliverable")
    if size_mb > MAX_DELIVERABLE_MB:
        raise SafetyError(
            f"Deliverable is {size_mb:.0f}MB, exceeds {MAX_DELIVERABLE_MB}MB limit."
        )
    return size_mb


def check_output_dir(output_dir) -> Path:
    """Create output_dir if needed and verify free space.

    Raises:
        SafetyError: If free space is under MIN_DISK_GB.
    """
    output_dir = Path(output_dir).expanduser()
    output_dir.mkdir(parents=True, exist_ok=True)
    try:
        stat = os.statvfs(str(output_dir))
    except (OSError, AttributeError):
        return output_dir  # statvfs unavailable (Windows) -- skip the check
    free_gb = (stat.f_bavail * stat.f_frsize) / (1024 ** 3)
    if free_gb < MIN_DISK_GB:
        raise SafetyError(
            f"Only {free_gb:.1f}GB free disk space, need {MIN_DISK_GB}GB minimum."
        )
    return output_dir
