"""
Simulator exceptions.

Two phases of failure:
  LoadError       - raised by Emulator.load() when the source is malformed.
                    The whole program is rejected.
  ExecutionError  - raised by Emulator.step() when an instruction cannot run.
                    The failing instruction leaves all machine state as it was.

Every exception carries the 1-based source line it refers to (0 = unknown).
"""

from __future__ import annotations

__all__ = [
    'SimulatorError', 'LoadError', 'ExecutionError',
    'InvalidRegisterError', 'UnknownInstructionError', 'DivisionByZeroError',
    'StackOverflowError', 'StackUnderflowError', 'LabelNotFoundError',
]


class SimulatorError(Exception):
    """Base class for every error raised by the simulator."""
    def __init__(self, message: str, line_num: int = 0):
        self.line_num = line_num
        self.message = message
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


class LoadError(SimulatorError):
    """Syntax error found while tokenizing/validating a program."""
    def __init__(self, message: str, line_num: int = 0, line_text: str = "",
                 expected: str = ""):
        self.line_text = line_text
        self.expected = expected
        if expected:
            message = f"{message} (expected: {expected})"
        super().__init__(message, line_num)


class ExecutionError(SimulatorError):
    """Run-time failure of a single step."""


class InvalidRegisterError(ExecutionError):
    def __init__(self, name: str, line_num: int = 0):
        self.register = name
        super().__init__(f"Invalid register: {name}", line_num)


class UnknownInstructionError(ExecutionError):
    def __init__(self, token: str, line_num: int = 0):
        self.token = token
        super().__init__(f"Unknown instruction: {token}", line_num)


class DivisionByZeroError(ExecutionError):
    def __init__(self, line_num: int = 0):
        super().__init__("Division by zero", line_num)


class StackOverflowError(ExecutionError):
    def __init__(self, capacity: int, line_num: int = 0):
        self.capacity = capacity
        super().__init__(f"Stack overflow (capacity {capacity} bytes)", line_num)


class StackUnderflowError(ExecutionError):
    def __init__(self, line_num: int = 0):
        super().__init__("Stack underflow", line_num)


class LabelNotFoundError(ExecutionError):
    def __init__(self, label: str, line_num: int = 0):
        self.label = label
        super().__init__(f"Label not found: {label}", line_num)
