"""Append-only configuration version history.

``versions/history.json`` holds every ConfigVersion ever recorded plus one
``current`` pointer. Entries are never modified or removed; restoring moves
the pointer. Other components go through this class only.
"""

import json
import threading
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from kaspa_aio.exceptions import ResourceNotFoundError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.configuration import Configuration
from kaspa_aio.models.version import ConfigVersion, ValueChange, VersionDiff, VersionHistory
from kaspa_aio.utils import atomic_write_text

logger = get_logger(__name__)

MASK = "********"
NETWORK_KEY = "KASPA_NETWORK"


class VersionStore:
    """Single-writer store of ConfigVersions with a current pointer.

    Readers get copies; stored versions are only ever appended.
    """

    def __init__(self, versions_dir: Path, secret_keys: Iterable[str] = ()) -> None:
        """
        Args:
            versions_dir: Directory holding history.json
            secret_keys: Keys whose values are masked in diffs
        """
        self.versions_dir = versions_dir
        self.history_file = versions_dir / "history.json"
        self.secret_keys = frozenset(secret_keys)
        self._lock = threading.Lock()
        self._data: VersionHistory | None = None

    def _load(self) -> VersionHistory:
        if not self.history_file.exists():
            return VersionHistory()
        try:
            with open(self.history_file, encoding="utf-8") as f:
                return VersionHistory(**json.load(f))
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(f"Failed to load {self.history_file}: {e}")
            raise

    def _save(self, data: VersionHistory) -> None:
        atomic_write_text(self.history_file, json.dumps(data.model_dump(mode="json"), indent=2, ensure_ascii=False))

    def _ensure_loaded(self) -> VersionHistory:
        if self._data is None:
            self._data = self._load()
        return self._data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        configuration: Configuration,
        profiles: list[str],
        label: str | None = None,
        *,
        checkpoint: bool = False,
        restored_from: str | None = None,
        run_id: str | None = None,
        make_current: bool = True,
    ) -> ConfigVersion:
        """Append a new version.

        Args:
            configuration: Configuration to store
            profiles: Active profiles
            label: Optional human-readable label
            checkpoint: Mark the version as an explicit restore point
            restored_from: Version this one was restored from
            run_id: Installation run that produced it
            make_current: Move the current pointer to the new version

        Returns:
            The stored version
        """
        with self._lock:
            data = self._ensure_loaded()
            version = ConfigVersion(
                id=f"v{len(data.versions) + 1}",
                label=label,
                checkpoint=checkpoint,
                configuration=configuration.model_copy(deep=True),
                profiles=list(profiles),
                restored_from=restored_from,
                run_id=run_id,
            )
            data.versions.append(version)
            if make_current:
                data.current = version.id
            self._save(data)
            version = version.model_copy(deep=True)

        kind = "checkpoint" if checkpoint else "version"
        logger.info(f"Recorded {kind} {version.id}" + (f" ({label})" if label else ""))
        return version

    def checkpoint(self, label: str | None = None, run_id: str | None = None) -> ConfigVersion:
        """Mark the current state as a restore point.

        Works on an empty history too; the checkpoint then has no topology.
        """
        current = self.current()
        configuration = current.configuration if current else Configuration()
        profiles = current.profiles if current else []
        return self.record(configuration, profiles, label, checkpoint=True, run_id=run_id, make_current=False)

    def snapshot(self, label: str | None = None, checkpoint: bool = False) -> ConfigVersion:
        """Copy the current configuration into a new history entry.

        Raises:
            ResourceNotFoundError: nothing has been recorded yet
        """
        current = self.current()
        if current is None:
            raise ResourceNotFoundError("version.empty")
        return self.record(current.configuration, current.profiles, label, checkpoint=checkpoint, make_current=False)

    def set_current(self, version_id: str) -> ConfigVersion:
        with self._lock:
            data = self._ensure_loaded()
            version = self._find(data, version_id)
            data.current = version.id
            self._save(data)
        logger.info(f"Current configuration pointer moved to {version_id}")
        return version.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, version_id: str) -> ConfigVersion:
        with self._lock:
            return self._find(self._ensure_loaded(), version_id).model_copy(deep=True)

    def current(self) -> ConfigVersion | None:
        with self._lock:
            data = self._ensure_loaded()
            return self._find(data, data.current).model_copy(deep=True) if data.current else None

    def history(self) -> list[ConfigVersion]:
        """All versions, oldest first."""
        with self._lock:
            return [version.model_copy(deep=True) for version in self._ensure_loaded().versions]

    def checkpoints(self) -> list[ConfigVersion]:
        return [version for version in self.history() if version.checkpoint]

    def previous_network(self) -> str | None:
        current = self.current()
        if current is None:
            return None
        network = current.configuration.get(NETWORK_KEY)
        return str(network) if network is not None else None

    def diff(self, a: str, b: str) -> VersionDiff:
        """Structured change list from version ``a`` to version ``b``."""
        old = self.get(a)
        new = self.get(b)
        old_values = old.configuration.plain()
        new_values = new.configuration.plain()

        changes: list[ValueChange] = []
        for key in sorted(old_values.keys() | new_values.keys()):
            if key not in new_values:
                changes.append(ValueChange(key=key, change="removed", old=self._mask(key, old_values[key])))
            elif key not in old_values:
                changes.append(ValueChange(key=key, change="added", new=self._mask(key, new_values[key])))
            elif old_values[key] != new_values[key]:
                changes.append(
                    ValueChange(
                        key=key,
                        change="changed",
                        old=self._mask(key, old_values[key]),
                        new=self._mask(key, new_values[key]),
                    )
                )

        return VersionDiff(
            from_version=old.id,
            to_version=new.id,
            changes=changes,
            profiles_added=[p for p in new.profiles if p not in old.profiles],
            profiles_removed=[p for p in old.profiles if p not in new.profiles],
        )

    def _mask(self, key: str, value: object) -> object:
        return MASK if key in self.secret_keys else value

    @staticmethod
    def _find(data: VersionHistory, version_id: str) -> ConfigVersion:
        for version in data.versions:
            if version.id == version_id:
                return version
        raise ResourceNotFoundError("version.not_found", version_id=version_id)
