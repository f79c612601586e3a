"""
x86 Emulator - Call/Data Stack

The stack contents live in a Python list; ESP is kept in the register file
and only tracks the logical depth (capacity - 4 * depth while programs leave
ESP alone). Both are updated together by push/pop.

Bounds are checked before anything is mutated:
  push past capacity or with ESP < 4  -> StackOverflowError
  pop when the list is empty           -> StackUnderflowError
"""

from __future__ import annotations
from typing import List

from ..config import WORD_SIZE
from ..errors import StackOverflowError, StackUnderflowError
from .regs import Registers, MASK32


class CallStack:
    """LIFO of 32-bit values bounded by the configured capacity."""

    def __init__(self, regs: Registers):
        self.regs = regs
        self._values: List[int] = []

    @property
    def capacity(self) -> int:
        return self.regs.stack_capacity

    def __len__(self) -> int:
        return len(self._values)

    @property
    def values(self) -> tuple:
        """Stack contents, bottom first."""
        return tuple(self._values)

    def check_push(self):
        """Raise StackOverflowError if one more word does not fit."""
        if (len(self._values) + 1) * WORD_SIZE > self.capacity or self.regs.esp < WORD_SIZE:
            raise StackOverflowError(self.capacity, self.regs.current_line)

    def check_pop(self):
        if not self._values:
            raise StackUnderflowError(self.regs.current_line)

    def push(self, value: int):
        self.check_push()
        self._values.append(value & MASK32)
        self.regs.esp -= WORD_SIZE

    def pop(self) -> int:
        self.check_pop()
        value = self._values.pop()
        self.regs.esp += WORD_SIZE
        return value

    def peek(self) -> int:
        self.check_pop()
        return self._values[-1]

    def clear(self):
        self._values.clear()
