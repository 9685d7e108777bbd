# ruff: noqa: ANN201, ANN001, ANN002, ANN003
import json
import subprocess

import pytest

from kaspa_aio.exceptions import ImageAcquisitionError, RuntimeCommandError
from kaspa_aio.services.runtime import ComposeRuntime, HealthState
from kaspa_aio.services.runtime import compose as compose_module


class FakeExecutor:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.commands: list[list[str]] = []
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    async def run(self, *args, **kwargs):
        self.commands.append(list(args))
        return subprocess.CompletedProcess(
            list(args), self.returncode, self.stdout.encode("utf-8"), self.stderr.encode("utf-8")
        )


@pytest.fixture
def executor(monkeypatch: pytest.MonkeyPatch) -> FakeExecutor:
    fake = FakeExecutor()
    monkeypatch.setattr(compose_module.SubprocessExecutor, "run", staticmethod(fake.run))
    return fake


@pytest.fixture
def compose(tmp_path) -> ComposeRuntime:
    return ComposeRuntime(tmp_path, "kaspa-aio")


@pytest.mark.asyncio
async def test_start_targets_only_named_services(executor, compose, tmp_path):
    await compose.start_services(["kaspa-node", "dashboard"])
    command = executor.commands[0]
    assert command[:6] == ["docker", "compose", "--project-name", "kaspa-aio", "--project-directory", str(tmp_path)]
    assert command[-6:] == ["up", "-d", "--no-deps", "--remove-orphans", "kaspa-node", "dashboard"]


@pytest.mark.asyncio
async def test_start_failure_raises_runtime_error(executor, compose):
    executor.returncode = 1
    executor.stderr = "Error response from daemon: port is already allocated\n"
    with pytest.raises(RuntimeCommandError) as exc_info:
        await compose.start_services(["dashboard"])
    assert exc_info.value.service == "dashboard"
    assert "already allocated" in exc_info.value.params["reason"]


@pytest.mark.asyncio
async def test_empty_start_is_a_no_op(executor, compose):
    await compose.start_services([])
    assert executor.commands == []


@pytest.mark.asyncio
async def test_transient_pull_failure_is_retriable(executor, compose, catalog):
    executor.returncode = 1
    executor.stderr = "Get https://registry-1.docker.io/v2/: net/http: TLS handshake timeout"
    with pytest.raises(ImageAcquisitionError) as exc_info:
        await compose.pull_image(catalog.get_service("kaspa-node"))
    assert exc_info.value.retriable


@pytest.mark.asyncio
async def test_missing_image_is_not_retriable(executor, compose, catalog):
    executor.returncode = 1
    executor.stderr = "manifest for kaspanet/rusty-kaspad:nope not found: manifest unknown"
    with pytest.raises(ImageAcquisitionError) as exc_info:
        await compose.pull_image(catalog.get_service("kaspa-node"))
    assert not exc_info.value.retriable


@pytest.mark.parametrize(
    ("container", "expected"),
    [
        ({"State": "running", "Health": "healthy"}, HealthState.HEALTHY),
        ({"State": "running", "Health": "starting"}, HealthState.STARTING),
        ({"State": "running", "Health": "unhealthy"}, HealthState.UNHEALTHY),
        ({"State": "running", "Health": ""}, HealthState.RUNNING),
        ({"State": "exited", "Health": ""}, HealthState.EXITED),
        ({"State": "created", "Health": ""}, HealthState.STARTING),
    ],
)
@pytest.mark.asyncio
async def test_health_parses_ps_output(executor, compose, container, expected):
    executor.stdout = json.dumps({"Service": "kaspa-node", **container}) + "\n"
    assert await compose.health("kaspa-node") == expected


@pytest.mark.asyncio
async def test_health_accepts_json_array(executor, compose):
    executor.stdout = json.dumps([{"Service": "dashboard", "State": "running", "Health": "healthy"}])
    assert await compose.health("dashboard") == HealthState.HEALTHY


@pytest.mark.asyncio
async def test_health_of_unknown_container(executor, compose):
    assert await compose.health("dashboard") == HealthState.MISSING


@pytest.mark.asyncio
async def test_logs_are_tailed(executor, compose):
    executor.stdout = "\n".join(f"line {i}" for i in range(10)) + "\n"
    assert await compose.logs("kaspa-node", 3) == ["line 7", "line 8", "line 9"]


@pytest.mark.asyncio
async def test_running_services(executor, compose):
    executor.stdout = "kaspa-node\ndashboard\n\n"
    assert await compose.running_services() == ["kaspa-node", "dashboard"]


@pytest.mark.asyncio
async def test_write_artifacts_lands_in_project_dir(compose, tmp_path):
    from kaspa_aio.models.installation import GeneratedArtifacts

    await compose.write_artifacts(GeneratedArtifacts(manifest="services: {}\n", secrets_file="A=1\n"))
    assert (tmp_path / "docker-compose.yml").read_text(encoding="utf-8") == "services: {}\n"
    assert (tmp_path / ".env").read_text(encoding="utf-8") == "A=1\n"
