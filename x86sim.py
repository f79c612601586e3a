#!/usr/bin/env python3
"""
x86sim - command line front end for the x86 teaching emulator

Usage:
    python x86sim.py run <program.asm> [--stack-size N] [--max-steps N]
                                       [--break LINE]... [--trace] [-v]
    python x86sim.py check <program.asm>
    python x86sim.py tokens <program.asm>

Commands:
    run      Load, reset and run until HLT, end of program, a breakpoint or
             the step limit; then print the register table
    check    Validate the program only
    tokens   Dump the token stream with the source line of every token

Exit status: 0 = stopped normally, 1 = simulator or file error, 2 = step limit hit

Examples:
    python x86sim.py run examples/factorial.asm
    python x86sim.py run examples/countdown.asm --break 6 --trace
    python x86sim.py check examples/subroutine.asm
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from x86_emulator import __version__
from x86_emulator.config import EmulatorConfig
from x86_emulator.cpu.regs import FLAG_NAMES, to_signed
from x86_emulator.emu import Emulator
from x86_emulator.errors import LoadError, SimulatorError
from x86_emulator.lexer import Lexer
from x86_emulator.log_setup import setup_logging, verbosity_to_level
from x86_emulator.runner import StopReason, run

logger = logging.getLogger("x86_emulator.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_TIMEOUT = 2


def parse_int_arg(value: str) -> int:
    """Parse an integer argument that may be hex (0x...) or decimal."""
    value = value.strip()
    if value.lower().startswith("0x"):
        return int(value, 16)
    return int(value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="x86sim",
        description="x86 teaching emulator: step through simplified 32-bit assembly",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"x86sim {__version__}")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase log verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only log errors")
    parser.add_argument("--log-file", help="Also write a DEBUG log to this file")
    sub = parser.add_subparsers(dest="command", metavar="command")
    sub.required = True

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run a program and print the registers")
    p_run.add_argument("input", help="Assembly source file")
    p_run.add_argument("--stack-size", type=parse_int_arg, default=None,
                       help="Stack capacity in bytes (multiple of 4)")
    p_run.add_argument("--max-steps", type=parse_int_arg, default=None,
                       help="Stop with exit status 2 after this many steps")
    p_run.add_argument("--break", dest="breakpoints", type=int, action="append",
                       default=[], metavar="LINE",
                       help="Stop before executing this source line (repeatable)")
    p_run.add_argument("--trace", action="store_true",
                       help="Print every executed instruction with register state")

    # ── check ────────────────────────────────────────────────────────────
    p_check = sub.add_parser("check", help="Validate a program without running it")
    p_check.add_argument("input", help="Assembly source file")

    # ── tokens ───────────────────────────────────────────────────────────
    p_tok = sub.add_parser("tokens", help="Dump the token stream")
    p_tok.add_argument("input", help="Assembly source file")

    return parser


def register_table(emu: Emulator) -> Table:
    """Registers in unsigned, signed, hex and binary, plus the flags row."""
    table = Table(title="Registers")
    table.add_column("Register")
    table.add_column("Unsigned", justify="right")
    table.add_column("Signed", justify="right")
    table.add_column("Hexadecimal")
    table.add_column("Binary")
    for name in emu.register_names():
        value = emu.register(name)
        table.add_row(name, str(value), str(to_signed(value, 32)),
                      f"0x{value:08x}", f"0b{value:032b}")
    flags = " ".join(name for name in FLAG_NAMES if emu.flag(name)) or "-"
    table.add_row("eflags", str(emu.eflags), "", f"0x{emu.eflags:04x}", flags)
    return table


def _read_source(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def cmd_run(args, console: Console) -> int:
    config = EmulatorConfig.from_args(stack_size=args.stack_size, max_steps=args.max_steps,
                                      trace=args.trace, breakpoints=args.breakpoints)
    logger.info("Running %s (stack %d bytes, limit %d steps)",
                args.input, config.stack_capacity, config.max_steps)
    emu = Emulator(stack_capacity=config.stack_capacity, trace=config.trace)
    emu.load(_read_source(args.input))
    emu.reset()
    try:
        result = run(emu, max_steps=config.max_steps, breakpoints=config.breakpoints)
    finally:
        if config.trace:
            for line in emu.trace_output:
                console.print(line, highlight=False, markup=False)

    console.print(register_table(emu))
    console.print(f"Stopped: {result.reason.value} after {result.steps} steps"
                  + (f" at line {result.line}" if result.line else ""), highlight=False, markup=False)
    if result.reason is StopReason.TIMEOUT:
        return EXIT_TIMEOUT
    return EXIT_OK


def cmd_check(args, console: Console) -> int:
    program = Lexer(_read_source(args.input)).tokenize()
    console.print(f"{args.input}: OK ({len(program.tokens)} tokens, "
                  f"{len(program.instructions)} instructions, {len(program.labels)} labels)",
                  highlight=False, markup=False)
    return EXIT_OK


def cmd_tokens(args, console: Console) -> int:
    program = Lexer(_read_source(args.input)).tokenize()
    for index, (token, line) in enumerate(zip(program.tokens, program.token_lines)):
        console.print(f"{index:5d}  L{line:<5d} {token}", highlight=False, markup=False)
    return EXIT_OK


COMMANDS = {
    "run": cmd_run,
    "check": cmd_check,
    "tokens": cmd_tokens,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbosity_to_level(args.verbose, args.quiet), args.log_file)
    console = Console(soft_wrap=True)
    err_console = Console(stderr=True, soft_wrap=True)

    try:
        return COMMANDS[args.command](args, console)
    except LoadError as e:
        err_console.print(f"Error: {e}", highlight=False, markup=False)
        if e.line_text.strip():
            err_console.print(f"    > {e.line_text.strip()}", highlight=False, markup=False)
        return EXIT_ERROR
    except SimulatorError as e:
        err_console.print(f"Error: {e}", highlight=False, markup=False)
        return EXIT_ERROR
    except ValueError as e:
        err_console.print(f"Invalid option: {e}", highlight=False, markup=False)
        return EXIT_ERROR
    except OSError as e:
        err_console.print(f"Error reading {args.input}: {e}", highlight=False, markup=False)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
