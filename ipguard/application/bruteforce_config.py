"""Brute-force defense tunables -- immutable, injected at service construction."""
from dataclasses import dataclass

from ipguard.domain.errors import ValidationError


@dataclass(frozen=True)
class BruteforceConfig:
    max_attempts: int = 5
    window_seconds: int = 300
    block_duration_seconds: int = 1800
    # Escalation to a permanent block
    escalation_threshold: int = 3
    escalation_window_seconds: int = 86400

    def __post_init__(self):
        for name in (
            "max_attempts",
            "window_seconds",
            "block_duration_seconds",
            "escalation_threshold",
            "escalation_window_seconds",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{name} must be a positive integer, got {value!r}")
