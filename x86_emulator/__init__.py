"""
x86 Teaching Emulator
=====================
A simplified 32-bit register machine for learning assembly and CPU state.
Source text is validated once, then executed one instruction per step.

Architecture:
    ┌──────────┐    ┌──────────────┐    ┌───────────────┐    ┌──────────────┐
    │ .asm text│───>│ Lexer        │───>│ Emulator.step │───>│ Registers    │
    │          │    │ (tokens +    │    │ (dispatch on  │    │ EFLAGS       │
    │          │    │  validation) │    │  Opcode)      │    │ CallStack    │
    └──────────┘    └──────────────┘    └───────────────┘    └──────────────┘

    - lexer.py:      line-oriented tokenizer; rejects bad programs at load
    - cpu/regs.py:   register slots, sub-register views, flag masks
    - cpu/alu.py:    arithmetic/bitwise results and flag formulas
    - cpu/stack.py:  bounded LIFO tied to ESP
    - cpu/ops.py:    one free-function handler per opcode
    - emu.py:        load/reset/step and state queries
    - runner.py:     caller-side run loop with stop reasons
"""

__version__ = "0.2.0"

from .errors import (SimulatorError, LoadError, ExecutionError, InvalidRegisterError,
                     UnknownInstructionError, DivisionByZeroError, StackOverflowError,
                     StackUnderflowError, LabelNotFoundError)
from .config import EmulatorConfig, DEFAULT_STACK_CAPACITY, DEFAULT_MAX_STEPS
from .lexer import Lexer, Program, Instruction, tokenize
from .emu import Emulator
from .runner import run, RunResult, StopReason


def run_source(source: str, *, stack_capacity: int = DEFAULT_STACK_CAPACITY,
               max_steps: int = DEFAULT_MAX_STEPS) -> Emulator:
    """Load source into a fresh emulator and run it to a stop.

    Returns the emulator so callers can inspect registers afterwards.
    """
    emu = Emulator(stack_capacity=stack_capacity)
    emu.load(source)
    emu.reset()
    run(emu, max_steps=max_steps)
    return emu
