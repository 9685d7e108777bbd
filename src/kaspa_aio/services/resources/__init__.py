"""Resource calculation and host detection."""

from .calculator import ResourceCalculator
from .host import HostResourceDetector

__all__ = ["HostResourceDetector", "ResourceCalculator"]
