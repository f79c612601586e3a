"""
Lexer / Validator for the x86 teaching emulator.

Converts assembly source into a flat token stream, validating every line on
the way. A program either loads completely or not at all.

Source rules:
  - One statement per line.
  - Blank lines and lines starting with ';' are dropped.
  - ';' later on a line starts a comment.
  - "name:" alone on a line declares a label. The declaration stays in the
    token stream as a single token, colon included.
  - Mnemonics and register names are case-insensitive and are normalized to
    lowercase. Label names are case-sensitive.
  - Two-operand instructions separate operands with a comma; single-operand
    instructions must not contain one.

The token stream is what EIP indexes. Alongside it the lexer records the
source line of every token, the decoded Instruction at every mnemonic
position, and the label table (first declaration wins).
"""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .cpu.opcodes import Opcode, Shape, expected_form, MNEMONICS
from .cpu.regs import Register
from .errors import LoadError

logger = logging.getLogger(__name__)

Operand = Union[Register, int, str]

_LABEL_RE = re.compile(r'[A-Za-z_.][A-Za-z0-9_.]*')
_INT_RE = re.compile(r'[+-]?\d+')


# ──────────────────────────────────────────────
# Program representation
# ──────────────────────────────────────────────

@dataclass(frozen=True)
class Instruction:
    """One decoded instruction sitting at `index` in the token stream.

    Operands are Register descriptors, ints (immediates) or str (labels).
    """
    opcode: Opcode
    operands: Tuple[Operand, ...]
    index: int
    line_num: int

    @property
    def size(self) -> int:
        """Tokens occupied: mnemonic plus operands."""
        return 1 + len(self.operands)

    def __str__(self):
        ops = ", ".join(_operand_text(op) for op in self.operands)
        return f"{self.opcode.value} {ops}".rstrip()


@dataclass(frozen=True)
class Program:
    """Immutable result of a successful load."""
    source: str
    tokens: Tuple[str, ...] = ()
    token_lines: Tuple[int, ...] = ()
    instructions: Dict[int, Instruction] = field(default_factory=dict)
    labels: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.tokens)

    def line_of(self, index: int) -> Optional[int]:
        """1-based source line of the token at index, None if out of range."""
        if 0 <= index < len(self.token_lines):
            return self.token_lines[index]
        return None

    def find_label(self, name: str) -> Optional[int]:
        """Token index of the 'name:' declaration, or None."""
        return self.labels.get(name)

    def source_line(self, line_num: int) -> str:
        lines = self.source.splitlines()
        if 1 <= line_num <= len(lines):
            return lines[line_num - 1].strip()
        return ""


def _operand_text(op: Operand) -> str:
    if isinstance(op, Register):
        return op.reg_name
    return str(op)


# ──────────────────────────────────────────────
# Lexer
# ──────────────────────────────────────────────

class Lexer:
    """Tokenizes and validates assembly source into a Program."""

    def __init__(self, source: str):
        self.source = source
        self._tokens: List[str] = []
        self._lines: List[int] = []
        self._instructions: Dict[int, Instruction] = {}
        self._labels: Dict[str, int] = {}

    def tokenize(self) -> Program:
        """Validate the whole source. Raises LoadError on the first bad line."""
        for line_num, raw in enumerate(self.source.splitlines(), 1):
            text = _strip_comment(raw)
            if not text:
                continue
            if text.endswith(':'):
                self._label(text, line_num, raw)
            else:
                self._statement(text, line_num, raw)

        program = Program(
            source=self.source,
            tokens=tuple(self._tokens),
            token_lines=tuple(self._lines),
            instructions=dict(self._instructions),
            labels=dict(self._labels),
        )
        logger.info("Loaded %d tokens (%d instructions, %d labels)",
                    len(program.tokens), len(program.instructions), len(program.labels))
        return program

    def _emit(self, token: str, line_num: int):
        self._tokens.append(token)
        self._lines.append(line_num)

    def _label(self, text: str, line_num: int, raw: str):
        name = text[:-1].strip()
        if not _LABEL_RE.fullmatch(name) or text[:-1] != name:
            raise LoadError(f"Malformed label declaration: {text!r}", line_num, raw,
                            expected="name:")
        if name in self._labels:
            logger.warning("Line %d: duplicate label %r, first declaration at token %d wins",
                           line_num, name, self._labels[name])
        else:
            self._labels[name] = len(self._tokens)
        self._emit(text, line_num)

    def _statement(self, text: str, line_num: int, raw: str):
        parts = text.split(None, 1)
        mnem = parts[0].lower()
        rest = parts[1].strip() if len(parts) > 1 else ""

        try:
            opcode = Opcode.lookup(mnem)
        except ValueError:
            raise LoadError(f"Unknown mnemonic: {parts[0]}", line_num, raw,
                            expected="one of " + ", ".join(MNEMONICS)) from None

        shape = opcode.shape
        form = expected_form(opcode)

        if shape is Shape.NONE:
            if rest:
                raise LoadError(f"{mnem} takes no operands", line_num, raw, expected=form)
            operands: Tuple[Operand, ...] = ()
        elif shape is Shape.REG_SRC:
            operands = self._two_operands(mnem, rest, line_num, raw, form)
        else:
            operands = (self._one_operand(mnem, shape, rest, line_num, raw, form),)

        insn = Instruction(opcode, operands, len(self._tokens), line_num)
        self._instructions[insn.index] = insn
        self._emit(mnem, line_num)
        for op in operands:
            self._emit(_operand_text(op), line_num)

    def _two_operands(self, mnem, rest, line_num, raw, form) -> Tuple[Operand, ...]:
        if not rest:
            raise LoadError(f"{mnem} needs two operands", line_num, raw, expected=form)
        if ',' not in rest:
            if len(rest.split()) >= 2:
                raise LoadError(f"{mnem}: missing comma between operands", line_num, raw,
                                expected=form)
            raise LoadError(f"{mnem} needs two operands", line_num, raw, expected=form)
        pieces = [p.strip() for p in rest.split(',')]
        if len(pieces) != 2 or not all(pieces):
            raise LoadError(f"{mnem} needs exactly two operands", line_num, raw, expected=form)
        for piece in pieces:
            if len(piece.split()) != 1:
                raise LoadError(f"{mnem}: malformed operand {piece!r}", line_num, raw,
                                expected=form)
        dst = _parse_register(pieces[0], line_num, raw, form)
        src = _parse_source(pieces[1], line_num, raw, form)
        return (dst, src)

    def _one_operand(self, mnem, shape, rest, line_num, raw, form) -> Operand:
        if not rest or ',' in rest or len(rest.split()) != 1:
            raise LoadError(f"{mnem} needs exactly one operand", line_num, raw, expected=form)
        if shape is Shape.REG:
            return _parse_register(rest, line_num, raw, form)
        if shape is Shape.SRC:
            return _parse_source(rest, line_num, raw, form)
        if not _LABEL_RE.fullmatch(rest):
            raise LoadError(f"{mnem}: malformed label {rest!r}", line_num, raw, expected=form)
        return rest


# ──────────────────────────────────────────────
# Operand parsing
# ──────────────────────────────────────────────

def _strip_comment(line: str) -> str:
    text = line.strip()
    if not text or text.startswith(';'):
        return ""
    semi = text.find(';')
    if semi >= 0:
        text = text[:semi]
    return text.strip()


def _parse_register(token: str, line_num: int, raw: str, form: str) -> Register:
    if Register.is_register(token) and token.lower() != 'eip':
        return Register.lookup(token)
    if _INT_RE.fullmatch(token):
        raise LoadError(f"Expected a register, got immediate {token}", line_num, raw,
                        expected=form)
    raise LoadError(f"Invalid register name: {token}", line_num, raw, expected=form)


def _parse_source(token: str, line_num: int, raw: str, form: str) -> Operand:
    if _INT_RE.fullmatch(token):
        return int(token, 10)
    return _parse_register(token, line_num, raw, form)


def tokenize(source: str) -> Program:
    """Convenience wrapper: Lexer(source).tokenize()."""
    return Lexer(source).tokenize()
