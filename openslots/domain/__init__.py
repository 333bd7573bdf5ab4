"""
Domain layer - Pure business logic without external dependencies.
"""

from .models import GeneratedSlot, ResolvedDay, TimeRange, WallWindow
from .resolver import AvailabilitySnapshot, TemplateResolver
from .slot_calculator import SlotCalculator, StepPolicy

__all__ = [
    "GeneratedSlot",
    "ResolvedDay",
    "TimeRange",
    "WallWindow",
    "AvailabilitySnapshot",
    "TemplateResolver",
    "SlotCalculator",
    "StepPolicy",
]
