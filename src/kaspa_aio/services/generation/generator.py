"""Compose manifest and environment file generation.

``generate`` is a pure function of its inputs: no timestamps, no host
lookups, stable key order. Identical inputs give byte-identical artifacts,
which is what makes versions diffable.
"""

import os
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import yaml

from kaspa_aio.exceptions import GenerationError
from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Service, SettingBinding
from kaspa_aio.models.configuration import Configuration
from kaspa_aio.models.installation import GeneratedArtifacts
from kaspa_aio.utils import atomic_write_text

logger = get_logger(__name__)

MANIFEST_FILENAME = "docker-compose.yml"
SECRETS_FILENAME = ".env"
NETWORK_NAME = "kaspa-network"
LABEL_PREFIX = "io.kaspa-aio"

_NEEDS_QUOTES = re.compile(r"[\s#'\"$\\]")


def _render(value: Any) -> str:  # noqa: ANN401
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class ConfigurationGenerator:
    """Compiles a configuration and a service selection into deployable artifacts."""

    def __init__(self, project_name: str = "kaspa-aio", catalog_version: str | None = None) -> None:
        self.project_name = project_name
        self.catalog_version = catalog_version

    def generate(self, configuration: Configuration, ordered_services: Iterable[Service]) -> GeneratedArtifacts:
        """
        Generate the manifest and the secrets file.

        Args:
            configuration: Validated configuration
            ordered_services: Services in dependency order

        Returns:
            GeneratedArtifacts

        Raises:
            GenerationError: a binding does not match its service's interface,
                or a command-line template references an unset key
        """
        services = list({service.id: service for service in ordered_services}.values())
        selected = {service.id: service for service in services}
        values = configuration.plain()

        manifest_services: dict[str, Any] = {}
        named_volumes: list[str] = []
        secret_keys: list[str] = []

        for service in services:
            self._check_interface(service)
            entry: dict[str, Any] = {
                "image": service.image,
                "container_name": f"{self.project_name}-{service.id}",
                "restart": service.restart,
            }

            if service.interface == "cli":
                entry["command"] = list(service.command) + self._cli_arguments(service, values)
            else:
                if service.command:
                    entry["command"] = list(service.command)
                environment = self._environment(service, values)
                if environment:
                    entry["environment"] = environment
                for binding in service.bindings:
                    if values.get(binding.key) is not None and binding.key not in secret_keys:
                        secret_keys.append(binding.key)

            ports = self._ports(service, values)
            if ports:
                entry["ports"] = ports

            volumes = self._volumes(service, values, named_volumes)
            if volumes:
                entry["volumes"] = volumes

            depends_on = self._depends_on(service, selected)
            if depends_on:
                entry["depends_on"] = depends_on

            if service.healthcheck is not None:
                entry["healthcheck"] = service.healthcheck.model_dump(exclude_none=True)

            entry["networks"] = [NETWORK_NAME]
            entry["labels"] = {
                f"{LABEL_PREFIX}.service": service.id,
                f"{LABEL_PREFIX}.kind": service.kind,
            }
            manifest_services[service.id] = entry

        manifest: dict[str, Any] = {
            "name": self.project_name,
            "services": manifest_services,
            "networks": {NETWORK_NAME: {"driver": "bridge"}},
        }
        if named_volumes:
            manifest["volumes"] = {name: {} for name in named_volumes}

        header = "# Generated by kaspa-aio"
        if self.catalog_version:
            header += f" from service catalog v{self.catalog_version}"
        header += ". Do not edit; changes are overwritten on the next install.\n"

        manifest_text = header + yaml.safe_dump(
            manifest, sort_keys=False, default_flow_style=False, allow_unicode=True, width=4096
        )
        secrets_text = header + "".join(
            f"{key}={self._env_value(values[key])}\n" for key in secret_keys
        )

        logger.debug(f"Generated manifest for {len(services)} services ({len(secret_keys)} env keys)")
        return GeneratedArtifacts(
            manifest=manifest_text,
            secrets_file=secrets_text,
            services=[service.id for service in services],
        )

    @staticmethod
    def write(artifacts: GeneratedArtifacts, project_dir: Path) -> tuple[Path, Path]:
        """Write the artifacts into ``project_dir``.

        Returns:
            Paths of the manifest and the secrets file
        """
        manifest_path = project_dir / MANIFEST_FILENAME
        secrets_path = project_dir / SECRETS_FILENAME
        atomic_write_text(manifest_path, artifacts.manifest)
        atomic_write_text(secrets_path, artifacts.secrets_file)
        os.chmod(secrets_path, 0o600)
        logger.info(f"Wrote {manifest_path} and {secrets_path}")
        return manifest_path, secrets_path

    # ------------------------------------------------------------------

    @staticmethod
    def _check_interface(service: Service) -> None:
        for binding in service.bindings:
            if service.interface == "env":
                if binding.arg is not None or binding.arg_map:
                    raise GenerationError(
                        "generation.interface_mismatch",
                        service=service.id,
                        interface=service.interface,
                        key=binding.key,
                        form="command-line arguments",
                    )
                if not binding.env:
                    raise GenerationError("generation.binding_empty", service=service.id, key=binding.key)
            else:
                if binding.env is not None:
                    raise GenerationError(
                        "generation.interface_mismatch",
                        service=service.id,
                        interface=service.interface,
                        key=binding.key,
                        form="environment variables",
                    )
                if binding.arg is None and not binding.arg_map:
                    raise GenerationError("generation.binding_empty", service=service.id, key=binding.key)

    @staticmethod
    def _cli_arguments(service: Service, values: Mapping[str, Any]) -> list[str]:
        args: list[str] = []
        rendered = {key: _render(value) for key, value in values.items() if value is not None}
        for binding in service.bindings:
            value = values.get(binding.key)
            if value is None or value == "":
                continue
            arg = ConfigurationGenerator._render_binding(service, binding, _render(value), rendered)
            if arg is not None:
                # Compose interpolates "$" in command strings
                args.append(arg.replace("$", "$$"))
        return args

    @staticmethod
    def _render_binding(
        service: Service, binding: SettingBinding, value: str, rendered: dict[str, str]
    ) -> str | None:
        if binding.arg_map:
            mapped = binding.arg_map.get(value)
            if mapped is not None or binding.arg is None:
                return mapped
        if binding.arg is None:
            raise GenerationError("generation.binding_empty", service=service.id, key=binding.key)
        try:
            return binding.arg.format_map({**rendered, "value": value})
        except KeyError as e:
            raise GenerationError("generation.missing_value", service=service.id, key=e.args[0]) from e

    @staticmethod
    def _environment(service: Service, values: Mapping[str, Any]) -> dict[str, str]:
        return {
            binding.env: f"${{{binding.key}}}"
            for binding in service.bindings
            if binding.env and values.get(binding.key) is not None
        }

    @staticmethod
    def _ports(service: Service, values: Mapping[str, Any]) -> list[str]:
        ports: list[str] = []
        for spec in service.settings:
            if spec.type != "port" or spec.container_port is None:
                continue
            host_port = values.get(spec.key)
            if host_port is None:
                continue
            ports.append(f"{host_port}:{spec.container_port}")
        return ports

    @staticmethod
    def _volumes(service: Service, values: Mapping[str, Any], named_volumes: list[str]) -> list[str]:
        volumes: list[str] = []
        for spec in service.settings:
            if spec.type != "path" or spec.mount is None:
                continue
            host_path = values.get(spec.key)
            if host_path:
                volumes.append(f"{host_path}:{spec.mount}")
            else:
                name = spec.key.lower().replace("_", "-")
                named_volumes.append(name)
                volumes.append(f"{name}:{spec.mount}")
        return volumes

    @staticmethod
    def _depends_on(service: Service, selected: Mapping[str, Service]) -> dict[str, dict[str, str]]:
        depends_on: dict[str, dict[str, str]] = {}
        for dep_id in service.dependencies:
            dependency = selected.get(dep_id)
            if dependency is None:
                continue
            condition = "service_healthy" if dependency.healthcheck is not None else "service_started"
            depends_on[dep_id] = {"condition": condition}
        return depends_on

    @staticmethod
    def _env_value(value: Any) -> str:  # noqa: ANN401
        text = _render(value)
        if not _NEEDS_QUOTES.search(text):
            return text
        if "'" not in text:
            # Single quotes disable interpolation in compose env files
            return f"'{text}'"
        escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("$", "$$")
        return f'"{escaped}"'
