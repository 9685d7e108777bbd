"""Configuration validation.

Stages run independently and all of them run, so the caller gets the whole
error list in one round trip:

0. allow-list: keys no selected service (or global scope) declares are dropped
1. type / range per key
2. cross-field port uniqueness
3. filesystem checks for path settings
4. network change warning
"""

import os
from collections.abc import Iterable
from itertools import combinations
from pathlib import Path
from typing import Any

from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Service, SettingSpec
from kaspa_aio.models.configuration import (
    Configuration,
    HostContext,
    SettingValue,
    ValidationIssue,
    ValidationReport,
)
from kaspa_aio.services.catalog import ServiceCatalog

logger = get_logger(__name__)

PORT_MIN = 1024
PORT_MAX = 65535
DEFAULT_PASSWORD_MIN_LENGTH = 8
NETWORK_KEY = "KASPA_NETWORK"

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class _CoercionError(ValueError):
    pass


class ConfigurationValidator:
    """Validates a configuration against the selected services and the host."""

    def __init__(self, catalog: ServiceCatalog) -> None:
        self.catalog = catalog

    def validate(
        self,
        config: Configuration | dict[str, Any],
        selected_services: Iterable[Service],
        host_context: HostContext | None = None,
    ) -> ValidationReport:
        """
        Validate a configuration.

        Args:
            config: Configuration (or plain key -> value mapping)
            selected_services: Resolved service selection
            host_context: Host facts (previous network, filesystem checks)

        Returns:
            ValidationReport with errors, warnings, dropped keys and the
            stripped, coerced configuration
        """
        if not isinstance(config, Configuration):
            config = Configuration.from_plain(config)
        services = list(selected_services)
        host_context = host_context or HostContext()

        kept, dropped = self._apply_allow_list(config, services)
        report = ValidationReport(dropped_keys=dropped)

        specs = self._specs_for(services)
        coerced = self._check_types(kept, specs, report)
        self._check_port_collisions(coerced, specs, report)
        if host_context.check_filesystem:
            self._check_paths(coerced, specs, report)
        self._check_network(coerced, host_context, report)

        report.configuration = coerced
        if report.errors:
            logger.info(f"Configuration rejected with {len(report.errors)} error(s)")
        return report

    # ------------------------------------------------------------------
    # Stage 0
    # ------------------------------------------------------------------

    def _apply_allow_list(self, config: Configuration, services: list[Service]) -> tuple[Configuration, list[str]]:
        allowed = self.catalog.allowed_keys(services)
        dropped = sorted(key for key in config.values if key not in allowed)
        if dropped:
            logger.warning(f"Dropping {len(dropped)} key(s) not declared by the selected services: {dropped}")
        kept = Configuration(values={k: v for k, v in config.values.items() if k in allowed})
        return kept, dropped

    def _specs_for(self, services: list[Service]) -> list[tuple[str | None, SettingSpec]]:
        """(owner, spec) pairs in declaration order; owner None means global."""
        specs: list[tuple[str | None, SettingSpec]] = [(None, spec) for spec in self.catalog.global_settings]
        for service in services:
            specs.extend((service.id, spec) for spec in service.settings)
        return specs

    # ------------------------------------------------------------------
    # Stage 1
    # ------------------------------------------------------------------

    def _check_types(
        self,
        config: Configuration,
        specs: list[tuple[str | None, SettingSpec]],
        report: ValidationReport,
    ) -> Configuration:
        result: dict[str, SettingValue] = {}
        for owner, spec in specs:
            setting = config.values.get(spec.key)
            if setting is None or setting.value is None or setting.value == "":
                if spec.required:
                    report.errors.append(
                        ValidationIssue(
                            stage="type",
                            key=spec.key,
                            services=[owner] if owner else [],
                            message=f"{spec.key} is required",
                        )
                    )
                continue

            try:
                value = self._coerce(spec, setting.value)
            except _CoercionError as e:
                report.errors.append(
                    ValidationIssue(stage="type", key=spec.key, services=[owner] if owner else [], message=str(e))
                )
                result[spec.key] = setting
                continue
            result[spec.key] = SettingValue(value=value, provenance=setting.provenance)
        return Configuration(values=result)

    @staticmethod
    def _coerce(spec: SettingSpec, raw: Any) -> Any:  # noqa: ANN401
        key = spec.key
        if spec.type == "port":
            port = ConfigurationValidator._as_int(key, raw)
            if port < PORT_MIN:
                raise _CoercionError(f"{key}={port} is below {PORT_MIN}; ports must be in range {PORT_MIN}-{PORT_MAX}")
            if port > PORT_MAX:
                raise _CoercionError(f"{key}={port} is above {PORT_MAX}; ports must be in range {PORT_MIN}-{PORT_MAX}")
            return port

        if spec.type == "integer":
            return ConfigurationValidator._as_int(key, raw)

        if spec.type == "boolean":
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise _CoercionError(f"{key} must be a boolean, got '{raw}'")

        if spec.type == "enum":
            text = str(raw)
            if text not in spec.choices:
                raise _CoercionError(f"{key} must be one of {', '.join(spec.choices)}, got '{text}'")
            return text

        if spec.type == "password":
            text = str(raw)
            min_length = spec.min_length or DEFAULT_PASSWORD_MIN_LENGTH
            if len(text) < min_length:
                raise _CoercionError(f"{key} must be at least {min_length} characters")
            return text

        # string / path
        if isinstance(raw, dict | list):
            raise _CoercionError(f"{key} must be a string")
        return str(raw)

    @staticmethod
    def _as_int(key: str, raw: Any) -> int:  # noqa: ANN401
        if isinstance(raw, bool):
            raise _CoercionError(f"{key} must be an integer, got '{raw}'")
        if isinstance(raw, int):
            return raw
        if isinstance(raw, float) and raw.is_integer():
            return int(raw)
        if isinstance(raw, str) and raw.strip().lstrip("-").isdigit():
            return int(raw.strip())
        raise _CoercionError(f"{key} must be an integer, got '{raw}'")

    # ------------------------------------------------------------------
    # Stage 2
    # ------------------------------------------------------------------

    @staticmethod
    def _check_port_collisions(
        config: Configuration,
        specs: list[tuple[str | None, SettingSpec]],
        report: ValidationReport,
    ) -> None:
        ports: list[tuple[str, str, int]] = []
        for owner, spec in specs:
            if spec.type != "port":
                continue
            value = config.get(spec.key)
            if isinstance(value, int) and not isinstance(value, bool):
                ports.append((owner or "global", spec.key, value))

        for (service_a, key_a, port_a), (service_b, key_b, port_b) in combinations(ports, 2):
            if port_a != port_b:
                continue
            report.errors.append(
                ValidationIssue(
                    stage="cross_field",
                    key=key_b,
                    services=[service_a, service_b],
                    port=port_a,
                    message=f"Port {port_a} is used by both {service_a} ({key_a}) and {service_b} ({key_b})",
                )
            )

    # ------------------------------------------------------------------
    # Stage 3
    # ------------------------------------------------------------------

    @staticmethod
    def _check_paths(
        config: Configuration,
        specs: list[tuple[str | None, SettingSpec]],
        report: ValidationReport,
    ) -> None:
        for owner, spec in specs:
            if spec.type != "path":
                continue
            value = config.get(spec.key)
            if not value:
                continue
            path = Path(str(value))
            services = [owner] if owner else []
            if not path.is_absolute():
                report.errors.append(
                    ValidationIssue(
                        stage="filesystem",
                        key=spec.key,
                        path=str(path),
                        services=services,
                        message=f"{spec.key} must be an absolute path: {path}",
                    )
                )
            elif path.exists() and not path.is_dir():
                report.errors.append(
                    ValidationIssue(
                        stage="filesystem",
                        key=spec.key,
                        path=str(path),
                        services=services,
                        message=f"{spec.key} exists and is not a directory: {path}",
                    )
                )
            elif path.exists() and not os.access(path, os.W_OK):
                report.errors.append(
                    ValidationIssue(
                        stage="filesystem",
                        key=spec.key,
                        path=str(path),
                        services=services,
                        message=f"{spec.key} is not writable: {path}",
                    )
                )

    # ------------------------------------------------------------------
    # Stage 4
    # ------------------------------------------------------------------

    @staticmethod
    def _check_network(config: Configuration, host_context: HostContext, report: ValidationReport) -> None:
        requested = config.get(NETWORK_KEY)
        previous = host_context.previous_network
        if previous is None or requested is None or requested == previous:
            return
        report.warnings.append(
            ValidationIssue(
                stage="network",
                key=NETWORK_KEY,
                message=(
                    f"Switching network from {previous} to {requested} invalidates existing node and indexer data"
                ),
            )
        )
