"""Container runtime backed by the ``docker compose`` CLI."""

import asyncio
import json
from pathlib import Path
from typing import Any

from kaspa_aio.exceptions import ImageAcquisitionError, RuntimeCommandError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Service
from kaspa_aio.models.installation import GeneratedArtifacts
from kaspa_aio.services.generation import MANIFEST_FILENAME, ConfigurationGenerator
from kaspa_aio.utils import SubprocessExecutor, tail_lines

from .base import ContainerRuntime, HealthState

logger = get_logger(__name__)

# stderr fragments of pull failures worth retrying
TRANSIENT_PULL_ERRORS = (
    "timeout",
    "timed out",
    "temporary failure",
    "connection reset",
    "connection refused",
    "tls handshake",
    "unexpected eof",
    "too many requests",
    "service unavailable",
)

COMMAND_TIMEOUT_SECONDS = 120.0
PULL_TIMEOUT_SECONDS = 1800.0


class ComposeRuntime(ContainerRuntime):
    """Drives a compose project in ``project_dir``."""

    def __init__(self, project_dir: Path, project_name: str, docker_bin: str = "docker") -> None:
        self.project_dir = project_dir
        self.project_name = project_name
        self.docker_bin = docker_bin

    def _compose(self, *args: str) -> list[str]:
        return [
            self.docker_bin,
            "compose",
            "--project-name",
            self.project_name,
            "--project-directory",
            str(self.project_dir),
            "-f",
            str(self.project_dir / MANIFEST_FILENAME),
            *args,
        ]

    async def write_artifacts(self, artifacts: GeneratedArtifacts) -> None:
        await asyncio.to_thread(ConfigurationGenerator.write, artifacts, self.project_dir)

    async def pull_image(self, service: Service) -> None:
        try:
            result = await SubprocessExecutor.run(*self._compose("pull", service.id), timeout=PULL_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as e:
            raise ImageAcquisitionError(service.id, service.image, reason="pull timed out", transient=True) from e
        except OSError as e:
            raise ImageAcquisitionError(service.id, service.image, reason=str(e), transient=False) from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace")
            transient = any(fragment in stderr.lower() for fragment in TRANSIENT_PULL_ERRORS)
            reason = " ".join(tail_lines(stderr, 3))
            logger.warning(f"Pull of {service.image} failed (transient={transient}): {reason}")
            raise ImageAcquisitionError(service.id, service.image, reason=reason, transient=transient)

    async def start_services(self, service_ids: list[str]) -> None:
        if not service_ids:
            return
        await self._checked(service_ids, "up", "-d", "--no-deps", "--remove-orphans", *service_ids)

    async def stop_services(self, service_ids: list[str]) -> None:
        if not service_ids:
            return
        await self._checked(service_ids, "stop", *service_ids)

    async def health(self, service_id: str) -> HealthState:
        result = await SubprocessExecutor.run(
            *self._compose("ps", "--all", "--format", "json", service_id), timeout=COMMAND_TIMEOUT_SECONDS
        )
        if result.returncode != 0:
            return HealthState.MISSING
        containers = self._parse_ps(result.stdout.decode("utf-8", errors="replace"))
        if not containers:
            return HealthState.MISSING
        container = containers[0]
        state = str(container.get("State", "")).lower()
        health = str(container.get("Health", "")).lower()
        if state in ("exited", "dead"):
            return HealthState.EXITED
        if state != "running":
            return HealthState.STARTING
        if health == "healthy":
            return HealthState.HEALTHY
        if health == "unhealthy":
            return HealthState.UNHEALTHY
        if health == "starting":
            return HealthState.STARTING
        return HealthState.RUNNING

    async def logs(self, service_id: str, lines: int) -> list[str]:
        result = await SubprocessExecutor.run(
            *self._compose("logs", "--no-color", "--tail", str(lines), service_id),
            timeout=COMMAND_TIMEOUT_SECONDS,
        )
        output = result.stdout.decode("utf-8", errors="replace") + result.stderr.decode("utf-8", errors="replace")
        return tail_lines(output, lines)

    async def running_services(self) -> list[str]:
        result = await SubprocessExecutor.run(
            *self._compose("ps", "--services", "--filter", "status=running"), timeout=COMMAND_TIMEOUT_SECONDS
        )
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.decode("utf-8", errors="replace").splitlines() if line.strip()]

    async def _checked(self, service_ids: list[str], *args: str) -> None:
        result = await SubprocessExecutor.run(*self._compose(*args), timeout=COMMAND_TIMEOUT_SECONDS)
        if result.returncode != 0:
            reason = " ".join(tail_lines(result.stderr.decode("utf-8", errors="replace"), 3))
            raise RuntimeCommandError(", ".join(service_ids), reason or f"exit code {result.returncode}")

    @staticmethod
    def _parse_ps(output: str) -> list[dict[str, Any]]:
        """Compose prints either a JSON array or one JSON object per line."""
        output = output.strip()
        if not output:
            return []
        if output.startswith("["):
            return list(json.loads(output))
        return [json.loads(line) for line in output.splitlines() if line.strip()]
