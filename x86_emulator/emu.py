"""
x86 Emulator - Main Emulator Class

Integrates:
  - Register file + EFLAGS (cpu/regs.py)
  - Call/data stack (cpu/stack.py)
  - Lexer/validator (lexer.py)
  - Instruction handlers (cpu/ops.py)

Execution model, one token group per step():
  1. Nothing loaded or EIP outside the token stream -> do nothing
  2. Label declaration token                        -> EIP += 1
  3. Empty token after comment stripping            -> EIP += 1
  4. Decode the instruction at EIP                  -> UnknownInstructionError if none
  5. Run its handler                                -> EIP += returned delta

There is no run loop in here. Callers drive step() themselves and stop on an
exception, on is_halted, or when EIP leaves the stream (see runner.py).
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional, Tuple

from .config import DEFAULT_STACK_CAPACITY, check_stack_capacity
from .cpu.ops import DISPATCH, MachineState
from .cpu.opcodes import Opcode
from .cpu.regs import Registers, REGISTERS_32
from .cpu.stack import CallStack
from .errors import ExecutionError, UnknownInstructionError
from .lexer import Lexer, Program

logger = logging.getLogger(__name__)


class Emulator:
    """Simplified 32-bit register machine.

    Usage:
        emu = Emulator(stack_capacity=256)
        emu.load("mov eax, 5\\nmov ebx, 3\\nadd eax, ebx")
        while emu.in_range:
            emu.step()
        emu.register('eax')   # 8
    """

    def __init__(self, stack_capacity: int = DEFAULT_STACK_CAPACITY, trace: bool = False):
        self.stack_capacity = check_stack_capacity(stack_capacity)
        self.regs = Registers(self.stack_capacity)
        self.stack = CallStack(self.regs)
        self.program: Program = Program(source="")

        # Set by HLT, cleared by reset() and load()
        self.halted = False
        self.steps = 0

        self._trace = trace
        self.trace_output: List[str] = []

    # ══════════════════════════════════════════════
    # Loading / reset
    # ══════════════════════════════════════════════

    def load(self, source: str) -> Program:
        """Tokenize and validate source, then make it the current program.

        Raises LoadError and keeps the previous program if source is bad.
        Machine state is not reset; call reset() for a fresh run.
        """
        program = Lexer(source).tokenize()
        self.program = program
        self.halted = False
        return program

    def reset(self):
        """Restore registers, flags, stack and EIP. Keeps the loaded program."""
        self.regs.reset()
        self.stack.clear()
        self.halted = False
        self.steps = 0
        self.trace_output.clear()
        logger.debug("Reset: esp=ebp=%d", self.stack_capacity)

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self):
        """Advance by exactly one instruction, label, or blank token."""
        tokens = self.program.tokens
        eip = self.regs.eip
        if not tokens or not 0 <= eip < len(tokens):
            return

        token = tokens[eip]
        if token.endswith(':'):
            self.regs.eip = eip + 1
            return

        token = token.split(';', 1)[0].strip()
        if not token:
            self.regs.eip = eip + 1
            return

        line_num = self.program.line_of(eip) or 0
        self.regs.current_line = line_num
        insn = self.program.instructions.get(eip)
        handler = DISPATCH.get(insn.opcode) if insn is not None else None
        if handler is None:
            logger.warning("Line %d: unknown instruction %r at token %d", line_num, token, eip)
            raise UnknownInstructionError(token, line_num)

        if self._trace:
            self.trace_output.append(f"L{line_num:<4d} {str(insn):24s} {self.regs.display()}")
        logger.debug("L%d [%d] %s", line_num, eip, insn)

        try:
            delta = handler(MachineState(self.regs, self.stack, self.program), insn)
        except ExecutionError as e:
            logger.warning("%s", e)
            raise

        self.regs.eip = self.regs.eip + delta
        self.steps += 1
        if insn.opcode is Opcode.HLT:
            self.halted = True

    # ══════════════════════════════════════════════
    # Queries
    # ══════════════════════════════════════════════

    def register(self, name: str) -> int:
        """Value of any register alias, 'eip' or 'eflags'."""
        return self.regs.get(name)

    @staticmethod
    def register_names() -> Tuple[str, ...]:
        """Canonical ordered 32-bit register names."""
        return REGISTERS_32

    def flag(self, name: str) -> bool:
        """Boolean value of a named flag ('zero', 'carry', ...)."""
        return self.regs.flag_by_name(name)

    @property
    def eflags(self) -> int:
        return self.regs.eflags

    @property
    def eip(self) -> int:
        return self.regs.eip

    @property
    def in_range(self) -> bool:
        """True while EIP points into the token stream."""
        return 0 <= self.regs.eip < len(self.program.tokens)

    @property
    def is_halted(self) -> bool:
        """Stopped: HLT executed or EIP left the token stream."""
        return self.halted or not self.in_range

    def current_line(self) -> Optional[int]:
        """1-based source line of the instruction about to execute."""
        return self.program.line_of(self.regs.eip)

    def snapshot(self) -> Dict[str, int]:
        return self.regs.snapshot()
