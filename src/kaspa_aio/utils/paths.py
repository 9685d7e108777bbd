"""Path utilities, compatible with frozen (PyInstaller) builds."""

import os
import sys
import tempfile
from pathlib import Path


def get_resources_dir() -> Path:
    """Get the directory holding bundled data files (service_catalog.json).

    Returns:
        ``src/kaspa_aio/resources`` in development, ``<MEIPASS>/kaspa_aio/resources`` when frozen
    """
    if getattr(sys, "frozen", False):
        base_path = Path(sys._MEIPASS)  # type: ignore[attr-defined]
        return base_path / "kaspa_aio" / "resources"
    # This file is at src/kaspa_aio/utils/paths.py
    return Path(__file__).parent.parent / "resources"


def atomic_write_text(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` so readers never observe a partial file.

    Args:
        path: Destination file
        content: Text to write (UTF-8)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
