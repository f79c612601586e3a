"""
Emulator configuration defaults.

The stack capacity is given in bytes. esp and ebp start at the capacity and
every push moves esp down by one word, so the capacity must be a whole number
of words.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

WORD_SIZE = 4                  # bytes per stack slot
DEFAULT_STACK_CAPACITY = 1024  # 256 words
DEFAULT_MAX_STEPS = 100_000    # steps before the runner stops with TIMEOUT


def check_stack_capacity(capacity: int) -> int:
    """Validate a stack capacity in bytes and return it."""
    if not isinstance(capacity, int) or isinstance(capacity, bool):
        raise ValueError(f"Stack capacity must be an integer, got {capacity!r}")
    if capacity < 0:
        raise ValueError(f"Stack capacity must be non-negative, got {capacity}")
    if capacity % WORD_SIZE:
        raise ValueError(
            f"Stack capacity must be a multiple of {WORD_SIZE} bytes, got {capacity}")
    return capacity


@dataclass(frozen=True)
class EmulatorConfig:
    """Settings shared by the emulator and the runner."""
    stack_capacity: int = DEFAULT_STACK_CAPACITY
    max_steps: int = DEFAULT_MAX_STEPS
    trace: bool = False
    breakpoints: FrozenSet[int] = field(default_factory=frozenset)

    def __post_init__(self):
        check_stack_capacity(self.stack_capacity)
        if self.max_steps <= 0:
            raise ValueError(f"max_steps must be positive, got {self.max_steps}")

    @classmethod
    def from_args(cls, stack_size: Optional[int] = None,
                  max_steps: Optional[int] = None,
                  trace: bool = False,
                  breakpoints: Iterable[int] = ()) -> "EmulatorConfig":
        """Build a config from optional CLI values, falling back to defaults."""
        return cls(
            stack_capacity=DEFAULT_STACK_CAPACITY if stack_size is None else stack_size,
            max_steps=DEFAULT_MAX_STEPS if max_steps is None else max_steps,
            trace=trace,
            breakpoints=frozenset(breakpoints),
        )
