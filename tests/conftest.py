# ruff: noqa: ANN201, ANN001, ANN204, E402
import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

# Keep the test run away from the user's real config and data directory.
# Must happen before kaspa_aio.config creates its module-level manager.
_TEST_HOME = Path(tempfile.mkdtemp(prefix="kaspa-aio-tests-"))
os.environ["KASPA_AIO_CONFIG_PATH"] = str(_TEST_HOME / "config.yaml")
os.environ["KASPA_AIO_DATA_DIR"] = str(_TEST_HOME / "data")

from kaspa_aio.config import get_config
from kaspa_aio.exceptions import RuntimeCommandError
from kaspa_aio.models.catalog import Service
from kaspa_aio.models.config import AppConfig, PathsConfig
from kaspa_aio.models.installation import GeneratedArtifacts
from kaspa_aio.services import installation, versions
from kaspa_aio.services.catalog import ServiceCatalog, get_catalog
from kaspa_aio.services.installation import InstallationOrchestrator, ProgressBroadcaster
from kaspa_aio.services.runtime import ContainerRuntime, HealthState
from kaspa_aio.services.versions import VersionStore


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime recording every call in order."""

    def __init__(self):
        self.calls: list[tuple[str, ...]] = []
        self.written: list[GeneratedArtifacts] = []
        self.running: set[str] = set()
        self.pull_failures: dict[str, list[Exception]] = {}
        self.health_states: dict[str, HealthState] = {}
        self.fail_start: set[str] = set()
        self.fail_stop = False
        self.not_running: set[str] = set()
        self.log_lines: list[str] = ["starting", "fatal: bind failed"]

    async def write_artifacts(self, artifacts: GeneratedArtifacts) -> None:
        self.calls.append(("write",))
        self.written.append(artifacts)

    async def pull_image(self, service: Service) -> None:
        self.calls.append(("pull", service.id))
        failures = self.pull_failures.get(service.id)
        if failures:
            raise failures.pop(0)

    async def start_services(self, service_ids: list[str]) -> None:
        for service_id in service_ids:
            self.calls.append(("start", service_id))
            if service_id in self.fail_start:
                raise RuntimeCommandError(service_id, "container exited with code 1")
            self.running.add(service_id)

    async def stop_services(self, service_ids: list[str]) -> None:
        self.calls.append(("stop", *service_ids))
        if self.fail_stop:
            raise RuntimeCommandError(service_ids[0], "docker daemon not responding")
        self.running.difference_update(service_ids)

    async def health(self, service_id: str) -> HealthState:
        state = self.health_states.get(service_id)
        if state is None:
            state = HealthState.HEALTHY if service_id in self.running else HealthState.MISSING
        self.calls.append(("health", service_id, state.value))
        return state

    async def logs(self, service_id: str, lines: int) -> list[str]:
        self.calls.append(("logs", service_id))
        return self.log_lines[-lines:]

    async def running_services(self) -> list[str]:
        return sorted(self.running - self.not_running)

    def index(self, *call: str) -> int:
        return self.calls.index(call)


@pytest.fixture
def catalog() -> ServiceCatalog:
    return get_catalog()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig(paths=PathsConfig(data_dir=tmp_path / "data"))
    config.orchestration.health_poll_interval_seconds = 1.0
    config.orchestration.health_timeout_seconds = 5.0
    return config


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def store(app_config: AppConfig) -> VersionStore:
    assert app_config.paths.versions_dir is not None
    return VersionStore(app_config.paths.versions_dir, secret_keys=["POSTGRES_PASSWORD"])


@pytest.fixture
def orchestrator(catalog, runtime, store, app_config, sleeps) -> InstallationOrchestrator:
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return InstallationOrchestrator(
        catalog,
        runtime,
        store,
        ProgressBroadcaster(buffer_size=1024),
        app_config,
        sleep=fake_sleep,
    )


def _clear_singletons() -> None:
    installation.get_rollback_manager.cache_clear()
    installation.get_orchestrator.cache_clear()
    installation.get_broadcaster.cache_clear()
    versions.get_version_store.cache_clear()


@pytest.fixture
def app_runtime(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[FakeRuntime]:
    """Point the API singletons at a fresh data directory and a fake runtime."""
    config = get_config()
    monkeypatch.setattr(config, "paths", PathsConfig(data_dir=tmp_path / "api-data"))
    _clear_singletons()

    fake = FakeRuntime()
    orchestrator = installation.get_orchestrator()
    orchestrator.runtime = fake
    orchestrator.settings = config.orchestration.model_copy(
        update={"health_poll_interval_seconds": 0.01, "health_timeout_seconds": 0.05, "pull_backoff_seconds": 0.0}
    )
    yield fake
    _clear_singletons()
