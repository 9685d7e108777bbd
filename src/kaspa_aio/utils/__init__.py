"""Utilities for the installer engine."""

from kaspa_aio.utils.paths import atomic_write_text, get_resources_dir
from kaspa_aio.utils.subprocess_executor import SubprocessExecutor, tail_lines

__all__ = ["SubprocessExecutor", "atomic_write_text", "get_resources_dir", "tail_lines"]
