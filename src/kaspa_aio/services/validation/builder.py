"""Fill a user configuration with defaults and generated secrets."""

import secrets
from collections.abc import Iterable
from typing import Any

from kaspa_aio.logger import get_logger
from kaspa_aio.models.catalog import Service
from kaspa_aio.models.configuration import Configuration, SettingValue
from kaspa_aio.services.catalog import ServiceCatalog

logger = get_logger(__name__)

GENERATED_PASSWORD_BYTES = 24


def generate_password() -> str:
    return secrets.token_urlsafe(GENERATED_PASSWORD_BYTES)


def build_configuration(
    catalog: ServiceCatalog,
    user_values: Configuration | dict[str, Any],
    services: Iterable[Service],
    template_defaults: dict[str, Any] | None = None,
) -> Configuration:
    """
    Complete a configuration for the selected services.

    Values already present are never replaced. Missing keys take the template
    default, then the catalog default; missing generated passwords are created.
    Keys the selection does not declare are passed through untouched so the
    validator's allow-list can report them.

    Args:
        catalog: Service catalog
        user_values: Values entered by the user
        services: Resolved service selection
        template_defaults: Defaults of the chosen template, if any

    Returns:
        New Configuration with provenance recorded per key
    """
    if not isinstance(user_values, Configuration):
        user_values = Configuration.from_plain(user_values)
    template_defaults = template_defaults or {}

    specs = list(catalog.global_settings)
    for service in services:
        specs.extend(service.settings)

    values: dict[str, SettingValue] = {}
    generated: list[str] = []
    for spec in specs:
        current = user_values.values.get(spec.key)
        if current is not None and current.value not in (None, ""):
            values[spec.key] = current
        elif spec.key in template_defaults:
            values[spec.key] = SettingValue(value=template_defaults[spec.key], provenance="default")
        elif spec.default is not None:
            values[spec.key] = SettingValue(value=spec.default, provenance="default")
        elif spec.type == "password" and spec.generated:
            values[spec.key] = SettingValue(value=generate_password(), provenance="generated")
            generated.append(spec.key)

    for key, setting in user_values.values.items():
        values.setdefault(key, setting)

    if generated:
        logger.info(f"Generated secrets for: {', '.join(generated)}")
    return Configuration(values=values)
