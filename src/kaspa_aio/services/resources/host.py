"""Host capacity detection."""

from pathlib import Path

import psutil

from kaspa_aio.logger import get_logger
from kaspa_aio.models.resources import HostResources

logger = get_logger(__name__)

GB = 1024**3

# cgroup v2 and v1 memory limit files (set when running inside a container)
CGROUP_LIMIT_FILES = (
    Path("/sys/fs/cgroup/memory.max"),
    Path("/sys/fs/cgroup/memory/memory.limit_in_bytes"),
)


class HostResourceDetector:
    """Reads available RAM, CPU cores and free disk from the host."""

    def __init__(self, cgroup_files: tuple[Path, ...] = CGROUP_LIMIT_FILES) -> None:
        self.cgroup_files = cgroup_files

    def detect(self, path: Path) -> HostResources:
        """
        Detect host capacity.

        Args:
            path: Directory the installation will write to; free space is measured on its filesystem

        Returns:
            HostResources in GB / cores
        """
        memory = psutil.virtual_memory()
        ram_bytes = memory.available
        limit = self._cgroup_limit()
        if limit is not None and limit < ram_bytes:
            logger.info(f"Memory limited by cgroup to {limit / GB:.2f}GB")
            ram_bytes = limit

        disk = psutil.disk_usage(str(self._existing_parent(path)))
        cpu = psutil.cpu_count(logical=True) or 1

        resources = HostResources(
            ram_gb=round(ram_bytes / GB, 2),
            cpu_cores=float(cpu),
            disk_gb=round(disk.free / GB, 2),
        )
        logger.debug(f"Detected host resources: {resources.model_dump()}")
        return resources

    def _cgroup_limit(self) -> int | None:
        for limit_file in self.cgroup_files:
            if not limit_file.exists():
                continue
            try:
                raw = limit_file.read_text(encoding="utf-8").strip()
            except OSError as e:
                logger.debug(f"Cannot read {limit_file}: {e}")
                continue
            if raw.isdigit():
                return int(raw)
        return None

    @staticmethod
    def _existing_parent(path: Path) -> Path:
        candidate = path.expanduser().absolute()
        while not candidate.exists() and candidate != candidate.parent:
            candidate = candidate.parent
        return candidate
