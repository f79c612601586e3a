"""
Run loop for callers that want continuous execution.

The emulator itself only steps. This module drives step() until one of the
termination conditions holds:

  HALT     - HLT executed (EIP stalls on it)
  END      - EIP left the token stream
  BREAK    - the next instruction sits on a breakpoint line
  TIMEOUT  - max_steps instructions executed

Simulator errors are not caught; they end the run by propagating.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .config import DEFAULT_MAX_STEPS
from .emu import Emulator

logger = logging.getLogger(__name__)


class StopReason(Enum):
    HALT = 'HALT'
    END = 'END'
    BREAK = 'BREAK'
    TIMEOUT = 'TIMEOUT'


@dataclass
class RunResult:
    reason: StopReason
    steps: int
    line: Optional[int] = None


def run(emu: Emulator, max_steps: int = DEFAULT_MAX_STEPS,
        breakpoints: Iterable[int] = ()) -> RunResult:
    """Step emu until it stops. Returns why, and how many steps were taken.

    A breakpoint stops before the instruction on that line executes. The
    line the run started on never triggers, so calling run() again after a
    BREAK continues past it.
    """
    bps = frozenset(breakpoints)
    start_line = emu.current_line()
    steps = 0

    while True:
        if emu.halted:
            reason = StopReason.HALT
            break
        if not emu.in_range:
            reason = StopReason.END
            break
        line = emu.current_line()
        if line in bps and (steps or line != start_line):
            reason = StopReason.BREAK
            break
        if steps >= max_steps:
            reason = StopReason.TIMEOUT
            break
        emu.step()
        steps += 1

    result = RunResult(reason, steps, emu.current_line())
    logger.info("Stopped: %s after %d steps (line %s)", reason.value, steps, result.line)
    return result
