"""Container runtime boundary."""

from .base import ContainerRuntime, HealthState
from .compose import ComposeRuntime

__all__ = ["ComposeRuntime", "ContainerRuntime", "HealthState"]
