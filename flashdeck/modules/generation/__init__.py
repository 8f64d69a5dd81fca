"""AI generation lifecycle and the candidate generator."""

from .engine import ACTIVE_GENERATION_KEY, GenerationLifecycleEngine
from .models import GenerationRecord, GenerationStatus

__all__ = [
    "ACTIVE_GENERATION_KEY",
    "GenerationLifecycleEngine",
    "GenerationRecord",
    "GenerationStatus",
]
