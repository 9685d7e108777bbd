"""Installation orchestrator.

A phased state machine driving a selection from nothing to a running,
health-checked system:

    validating -> generating_config -> acquiring_images
    -> starting_infrastructure -> awaiting_infrastructure_health
    -> starting_applications -> awaiting_application_health
    -> verifying -> complete

Any phase may fail. A failure after the checkpoint (taken right before
``generating_config``) is rolled back automatically; if the rollback itself
fails the run ends in ``needs_intervention``.
"""

import asyncio
import json
import math
import os
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import psutil

from kaspa_aio.exceptions import (
    AppBaseError,
    CatalogError,
    HealthTimeoutError,
    ImageAcquisitionError,
    InstallationConflictError,
    OperationalError,
    ResourceConflictError,
    ResourceNotFoundError,
    RollbackFailure,
    RuntimeCommandError,
    ValidationError,
)
from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Service
from kaspa_aio.models.config import AppConfig
from kaspa_aio.models.configuration import Configuration, HostContext
from kaspa_aio.models.installation import (
    FailureInfo,
    InstallationRun,
    Phase,
    RunLogLine,
    ServiceState,
    ServiceStatus,
)
from kaspa_aio.services.catalog import ServiceCatalog
from kaspa_aio.services.generation import ConfigurationGenerator
from kaspa_aio.services.resources import HostResourceDetector, ResourceCalculator
from kaspa_aio.services.runtime import ContainerRuntime, HealthState
from kaspa_aio.services.validation import ConfigurationValidator, build_configuration
from kaspa_aio.services.versions import VersionStore
from kaspa_aio.utils import atomic_write_text

from .broadcaster import ProgressBroadcaster

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
T = TypeVar("T")


class InstallationOrchestrator:
    """Single entry point for installations; every run emits progress events."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        runtime: ContainerRuntime,
        versions: VersionStore,
        broadcaster: ProgressBroadcaster,
        config: AppConfig,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.catalog = catalog
        self.runtime = runtime
        self.versions = versions
        self.broadcaster = broadcaster
        self.settings = config.orchestration
        self.paths = config.paths
        self.validator = ConfigurationValidator(catalog)
        self.generator = ConfigurationGenerator(self.settings.compose_project, catalog.version)
        self._sleep = sleep
        self._runs: dict[str, InstallationRun] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._active_run_id: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(
        self,
        configuration: Configuration | dict[str, Any],
        profiles: list[str] | None = None,
        template: str | None = None,
        restored_from: str | None = None,
        enforce_resources: bool = False,
    ) -> InstallationRun:
        """
        Start an installation in the background.

        Args:
            configuration: User configuration (defaults are filled in during validation)
            profiles: Profiles to install; the template's profiles are used when omitted
            template: Template whose profiles and defaults apply
            restored_from: Version id when re-applying a stored configuration
            enforce_resources: Fail validation when the host is below minimum requirements

        Returns:
            The new run, in phase ``validating``

        Raises:
            InstallationConflictError: another run is in flight on this host
            CatalogError: unknown template
        """
        self._ensure_no_active_run()

        template_defaults: dict[str, Any] = {}
        if template is not None:
            template_entry = self.catalog.get_template(template)
            template_defaults = dict(template_entry.defaults)
            if not profiles:
                profiles = list(template_entry.profiles)

        if not isinstance(configuration, Configuration):
            configuration = Configuration.from_plain(configuration)

        run = InstallationRun(
            id=uuid.uuid4().hex[:12],
            profiles=list(profiles or []),
            template=template,
            configuration=configuration,
            restored_from=restored_from,
        )
        self._acquire_lock(run.id)
        self._runs[run.id] = run
        self._active_run_id = run.id
        self._persist(run)
        logger.info(f"Installation {run.id} started for profiles {run.profiles}")

        task = asyncio.create_task(self._execute(run, template_defaults, enforce_resources))
        self._tasks[run.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(run.id, None))
        return run

    def get_run(self, run_id: str) -> InstallationRun:
        run = self._runs.get(run_id)
        if run is not None:
            return run
        run_file = self._run_file(run_id)
        if not run_file.exists():
            raise ResourceNotFoundError("install.run_not_found", run_id=run_id)
        with open(run_file, encoding="utf-8") as f:
            return InstallationRun(**json.load(f))

    def active_run(self) -> InstallationRun | None:
        if self._active_run_id is None:
            return None
        return self._runs.get(self._active_run_id)

    def cancel(self, run_id: str) -> InstallationRun:
        """Request cancellation; honoured at the next phase boundary."""
        run = self.get_run(run_id)
        if run.finished_at is not None:
            raise ResourceConflictError("install.run_finished", run_id=run_id)
        run.cancel_requested = True
        self._log(run, "Cancellation requested; stopping at the next phase boundary", level="warning")
        return run

    def discard(self, run_id: str) -> None:
        """Remove a finished run from memory and disk."""
        run = self.get_run(run_id)
        if run.finished_at is None:
            raise ResourceConflictError("install.run_active", run_id=run_id)
        self._runs.pop(run_id, None)
        self._run_file(run_id).unlink(missing_ok=True)
        logger.info(f"Discarded installation run {run_id}")

    async def wait(self, run_id: str) -> InstallationRun:
        """Wait for a run's background task to finish."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return self.get_run(run_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, run: InstallationRun, template_defaults: dict[str, Any], enforce_resources: bool) -> None:
        try:
            self._publish_phase(run)
            services = self._validate(run, template_defaults, enforce_resources)

            self._check_cancel(run)
            checkpoint = self.versions.checkpoint(label=f"before install {run.id}", run_id=run.id)
            run.checkpoint_id = checkpoint.id
            self._advance(run, Phase.GENERATING_CONFIG)
            artifacts = self.generator.generate(run.configuration, services)
            # Stop through the old manifest before it is replaced
            await self._retire_services(run, checkpoint.profiles, services)
            await self.runtime.write_artifacts(artifacts)
            self._log(run, f"Generated manifest for {len(artifacts.services)} service(s)")

            self._advance(run, Phase.ACQUIRING_IMAGES)
            await self._acquire_images(run, services)

            infrastructure = [s for s in services if s.kind == "infrastructure"]
            applications = [s for s in services if s.kind == "application"]
            healthy: set[str] = set()

            self._advance(run, Phase.STARTING_INFRASTRUCTURE)
            await self._start_in_waves(run, infrastructure, healthy, Phase.AWAITING_INFRASTRUCTURE_HEALTH)

            self._advance(run, Phase.STARTING_APPLICATIONS)
            await self._start_in_waves(run, applications, healthy, Phase.AWAITING_APPLICATION_HEALTH)

            self._advance(run, Phase.VERIFYING)
            await self._verify(run, services)

            version = self.versions.record(
                run.configuration,
                run.profiles,
                label=f"install {run.id}",
                restored_from=run.restored_from,
                run_id=run.id,
            )
            run.result_version_id = version.id
            self._advance(run, Phase.COMPLETE)
            logger.info(f"Installation {run.id} complete (version {version.id})")
        except AppBaseError as e:
            await self._handle_failure(run, e)
        except Exception as e:
            logger.error(f"Unexpected error in installation {run.id} during {run.phase.value}: {e}")
            await self._handle_failure(run, OperationalError("install.internal_error", reason=str(e)))
        finally:
            run.finished_at = datetime.now()
            self._persist(run)
            self._release_lock(run.id)
            if self._active_run_id == run.id:
                self._active_run_id = None
            self.broadcaster.close(run.id)

    def _validate(self, run: InstallationRun, template_defaults: dict[str, Any], enforce_resources: bool) -> list[Service]:
        selection = self.catalog.resolve_profiles(run.profiles)
        services = selection.services
        run.services = {s.id: ServiceState(service=s.id, kind=s.kind) for s in services}

        configuration = build_configuration(self.catalog, run.configuration, services, template_defaults)
        host_context = HostContext(previous_network=self.versions.previous_network())
        report = self.validator.validate(configuration, services, host_context)
        run.dropped_keys = report.dropped_keys
        if report.dropped_keys:
            self._log(run, f"Ignored undeclared keys: {', '.join(report.dropped_keys)}", level="warning")
        for warning in report.warnings:
            self._log(run, warning.message, level="warning")
        if report.errors:
            for error in report.errors:
                self._log(run, error.message, level="error")
            raise ValidationError(report.errors)

        if enforce_resources:
            host = HostResourceDetector().detect(self.paths.data_dir)
            ResourceCalculator(self.catalog).combine(run.profiles, host).enforce()

        run.configuration = report.configuration
        self._log(run, f"Configuration valid for {len(services)} service(s)")
        return services

    async def _acquire_images(self, run: InstallationRun, services: list[Service]) -> None:
        pulled: dict[str, str] = {}
        for service in services:
            if service.image in pulled:
                self._set_service(run, service.id, "pulled", f"Image shared with {pulled[service.image]}")
                continue
            self._set_service(run, service.id, "pulling", f"Pulling {service.image}")
            await self._pull_with_retry(run, service)
            pulled[service.image] = service.id
            self._set_service(run, service.id, "pulled")

    async def _pull_with_retry(self, run: InstallationRun, service: Service) -> None:
        attempts = self.settings.pull_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._call_runtime(service.id, self.runtime.pull_image(service))
                return
            except ImageAcquisitionError as e:
                if not e.retriable or attempt == attempts:
                    raise ImageAcquisitionError(
                        service.id,
                        service.image,
                        attempts=attempt,
                        reason=str(e.params.get("reason", "")),
                        transient=e.retriable,
                    ) from e
                delay = min(
                    self.settings.pull_backoff_seconds * 2 ** (attempt - 1),
                    self.settings.pull_backoff_max_seconds,
                )
                self._log(
                    run,
                    f"Pull of {service.image} failed (attempt {attempt}/{attempts}); retrying in {delay:g}s",
                    service=service.id,
                    level="warning",
                )
                await self._sleep(delay)

    async def _start_in_waves(
        self,
        run: InstallationRun,
        group: list[Service],
        healthy: set[str],
        awaiting_phase: Phase,
    ) -> None:
        """Start ``group`` wave by wave; a service starts only once its dependencies are healthy.

        Intermediate waves are health-gated inside the starting phase; the last
        wave's gate runs in ``awaiting_phase``.
        """
        selected = set(run.services)
        remaining = list(group)
        while remaining:
            wave = [
                s for s in remaining if all(dep in healthy for dep in s.dependencies if dep in selected)
            ]
            if not wave:
                blocked = ", ".join(s.id for s in remaining)
                raise CatalogError("catalog.dependency.cycle", services=blocked)
            remaining = [s for s in remaining if s not in wave]

            await self._gather([self._start_service(run, s) for s in wave])
            if not remaining:
                self._advance(run, awaiting_phase)
            await self._gather([self._await_healthy(run, s) for s in wave])
            healthy.update(s.id for s in wave)

        if not group:
            self._advance(run, awaiting_phase)

    async def _start_service(self, run: InstallationRun, service: Service) -> None:
        if not self.catalog.is_lifecycle_service(service.id):
            raise CatalogError("catalog.service.unknown", service=service.id)
        self._set_service(run, service.id, "starting")
        run.started_services.append(service.id)
        await self._call_runtime(service.id, self.runtime.start_services([service.id]))

    async def _await_healthy(self, run: InstallationRun, service: Service) -> None:
        """Bounded poll: fixed interval, fixed number of polls derived from the timeout."""
        interval = self.settings.health_poll_interval_seconds
        timeout = self.settings.health_timeout_seconds
        polls = max(1, math.ceil(timeout / interval)) if interval > 0 else 1
        state = HealthState.MISSING
        for poll in range(polls):
            state = await self._call_runtime(service.id, self.runtime.health(service.id))
            if state == HealthState.HEALTHY or (state == HealthState.RUNNING and service.healthcheck is None):
                status: ServiceStatus = "healthy" if state == HealthState.HEALTHY else "running"
                self._set_service(run, service.id, status)
                return
            if state == HealthState.EXITED:
                raise HealthTimeoutError(service.id, timeout, state.value, message_key="health.exited")
            if poll < polls - 1:
                await self._sleep(interval)
        raise HealthTimeoutError(service.id, timeout, state.value)

    async def _verify(self, run: InstallationRun, services: list[Service]) -> None:
        running = set(await self.runtime.running_services())
        for service in services:
            if service.id not in running:
                raise OperationalError("install.verification_failed", service=service.id)
        self._log(run, f"All {len(services)} service(s) running")

    async def _retire_services(
        self, run: InstallationRun, previous_profiles: list[str], services: list[Service]
    ) -> None:
        """Stop services of the previous topology that the new selection no longer contains."""
        if not previous_profiles:
            return
        selected = {s.id for s in services}
        previous = self.catalog.resolve_profiles(previous_profiles).service_ids
        retired = [service_id for service_id in reversed(previous) if service_id not in selected]
        if not retired:
            return
        self._log(run, f"Stopping services no longer selected: {', '.join(retired)}")
        await self._call_runtime(retired[0], self.runtime.stop_services(retired))
        run.retired_services = retired

    @staticmethod
    async def _call_runtime(service_id: str, operation: Awaitable[T]) -> T:
        """Await a runtime call made for one service; unexpected errors are attributed to it."""
        try:
            return await operation
        except AppBaseError:
            raise
        except Exception as e:
            raise RuntimeCommandError(service_id, f"{type(e).__name__}: {e}") from e

    @staticmethod
    async def _gather(coroutines: list[Awaitable[None]]) -> None:
        """Run concurrently; let every in-flight operation finish, then raise the first error."""
        results = await asyncio.gather(*coroutines, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    # ------------------------------------------------------------------
    # Failure & rollback
    # ------------------------------------------------------------------

    async def _handle_failure(self, run: InstallationRun, error: AppBaseError) -> None:
        service_id = getattr(error, "service", None) or error.params.get("service")
        logs: list[str] = []
        if service_id and self.catalog.is_lifecycle_service(service_id):
            try:
                logs = await self.runtime.logs(service_id, self.settings.log_tail_lines)
            except Exception as e:
                logger.warning(f"Could not fetch logs for {service_id}: {e}")
            self._set_service(run, service_id, "failed", error.message)

        run.failure = FailureInfo(
            phase=run.phase,
            service=service_id,
            code=error.message_key,
            message=error.message,
            logs=logs,
        )
        logger.error(f"Installation {run.id} failed in {run.phase.value} ({service_id or 'no service'}): {error}")
        self._log(run, error.message, service=service_id, level="error")
        for line in logs:
            self._log(run, line, service=service_id, level="error")

        self._set_phase(run, Phase.FAILED)
        if run.checkpoint_id is None:
            return

        self._set_phase(run, Phase.ROLLING_BACK)
        try:
            await self._rollback(run)
        except RollbackFailure as e:
            run.rollback_error = e.params.get("reason")
            logger.error(f"Rollback of {run.id} failed: {e}")
            self._log(run, e.message, level="error")
            self._set_phase(run, Phase.NEEDS_INTERVENTION)
            return
        self._set_phase(run, Phase.ROLLED_BACK)

    async def _rollback(self, run: InstallationRun) -> None:
        assert run.checkpoint_id is not None
        try:
            started = list(reversed(run.started_services))
            if started:
                self._log(run, f"Stopping {', '.join(started)}")
                await self.runtime.stop_services(started)
                for service_id in started:
                    self._set_service(run, service_id, "stopped")

            checkpoint = self.versions.get(run.checkpoint_id)
            if checkpoint.profiles:
                selection = self.catalog.resolve_profiles(checkpoint.profiles)
                artifacts = self.generator.generate(checkpoint.configuration, selection.services)
                await self.runtime.write_artifacts(artifacts)
                await self.runtime.start_services(selection.service_ids)
                if run.retired_services:
                    self._log(run, f"Restarted retired services: {', '.join(run.retired_services)}")
                self._log(run, f"Re-applied checkpoint {checkpoint.id} ({len(selection.services)} service(s))")

            self.versions.set_current(checkpoint.id)
        except Exception as e:
            raise RollbackFailure(f"{type(e).__name__}: {e}") from e
        self._log(run, f"Rolled back to checkpoint {run.checkpoint_id}")

    # ------------------------------------------------------------------
    # State & events
    # ------------------------------------------------------------------

    def _check_cancel(self, run: InstallationRun) -> None:
        if run.cancel_requested:
            raise OperationalError("install.cancelled")

    def _advance(self, run: InstallationRun, phase: Phase) -> None:
        """Forward transition; the phase boundary is where cancellation is honoured."""
        self._check_cancel(run)
        self._set_phase(run, phase)

    def _set_phase(self, run: InstallationRun, phase: Phase) -> None:
        if phase.rank < run.phase.rank:
            raise RuntimeError(f"Phase cannot go backward: {run.phase.value} -> {phase.value}")
        run.phase = phase
        self._persist(run)
        self._publish_phase(run)

    def _publish_phase(self, run: InstallationRun) -> None:
        logger.info(f"Installation {run.id}: {run.phase.value}")
        self.broadcaster.publish(run, "phase", message=run.phase.value)

    def _set_service(self, run: InstallationRun, service_id: str, status: ServiceStatus, message: str | None = None) -> None:
        state = run.services.get(service_id)
        if state is None:
            return
        state.status = status
        state.message = message
        state.updated_at = datetime.now()
        self.broadcaster.publish(run, "service", service=service_id, status=status, message=message)

    def _log(self, run: InstallationRun, message: str, service: str | None = None, level: str = "info") -> None:
        run.logs.append(RunLogLine(phase=run.phase, service=service, level=level, message=message))  # type: ignore[arg-type]
        self.broadcaster.publish(run, "log", service=service, status=level, message=message)

    # ------------------------------------------------------------------
    # Persistence & host lock
    # ------------------------------------------------------------------

    def _run_file(self, run_id: str) -> Path:
        assert self.paths.runs_dir is not None
        return self.paths.runs_dir / f"{run_id}.json"

    def _persist(self, run: InstallationRun) -> None:
        try:
            atomic_write_text(self._run_file(run.id), run.model_dump_json(indent=2))
        except OSError as e:
            logger.error(f"Failed to save installation run {run.id}: {e}")

    def _ensure_no_active_run(self) -> None:
        active = self.active_run()
        if active is not None and active.finished_at is None:
            raise InstallationConflictError(active.id)

        lock = self._read_lock()
        if lock is None:
            return
        pid = lock.get("pid")
        if isinstance(pid, int) and pid != os.getpid() and psutil.pid_exists(pid):
            raise InstallationConflictError(str(lock.get("run_id", "unknown")))
        logger.info(f"Removing stale installation lock {self.paths.lock_file}")
        self.paths.lock_file.unlink(missing_ok=True)

    def _read_lock(self) -> dict[str, Any] | None:
        lock_file = self.paths.lock_file
        if not lock_file.exists():
            return None
        try:
            with open(lock_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable installation lock {lock_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _acquire_lock(self, run_id: str) -> None:
        atomic_write_text(self.paths.lock_file, json.dumps({"pid": os.getpid(), "run_id": run_id}))

    def _release_lock(self, run_id: str) -> None:
        lock = self._read_lock()
        if lock is not None and lock.get("run_id") == run_id:
            self.paths.lock_file.unlink(missing_ok=True)
