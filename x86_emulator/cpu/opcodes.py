"""
x86 Emulator - Opcode Table

Each mnemonic has one operand shape. The lexer uses the shape to validate
source lines; the dispatcher uses the opcode to pick a handler.

Shapes:
  REG_SRC  - two operands "dst, src": register, then register or immediate
  REG      - one register
  SRC      - one register or immediate
  LABEL    - one label name (existence checked at run time)
  NONE     - no operands
"""

import enum
from typing import Dict


class Shape(enum.Enum):
    REG_SRC = 'reg, reg|imm'
    REG = 'reg'
    SRC = 'reg|imm'
    LABEL = 'label'
    NONE = ''


class Opcode(enum.Enum):
    MOV = 'mov'
    ADD = 'add'
    SUB = 'sub'
    CMP = 'cmp'
    AND = 'and'
    OR = 'or'
    XOR = 'xor'
    SHL = 'shl'
    SHR = 'shr'

    MUL = 'mul'
    DIV = 'div'
    INC = 'inc'
    DEC = 'dec'
    NOT = 'not'
    PUSH = 'push'
    POP = 'pop'

    JMP = 'jmp'
    JE = 'je'
    JZ = 'jz'
    JNE = 'jne'
    JNZ = 'jnz'
    JG = 'jg'
    JNS = 'jns'
    JL = 'jl'
    JS = 'js'
    CALL = 'call'

    RET = 'ret'
    HLT = 'hlt'

    @property
    def shape(self) -> Shape:
        return SHAPES[self]

    @classmethod
    def lookup(cls, mnemonic: str) -> "Opcode":
        """Resolve a mnemonic (case-insensitive). Raises ValueError."""
        return cls(mnemonic.lower())


SHAPES: Dict[Opcode, Shape] = {}
for _op in (Opcode.MOV, Opcode.ADD, Opcode.SUB, Opcode.CMP, Opcode.AND,
            Opcode.OR, Opcode.XOR, Opcode.SHL, Opcode.SHR):
    SHAPES[_op] = Shape.REG_SRC
for _op in (Opcode.MUL, Opcode.DIV, Opcode.INC, Opcode.DEC, Opcode.NOT, Opcode.POP):
    SHAPES[_op] = Shape.REG
SHAPES[Opcode.PUSH] = Shape.SRC
for _op in (Opcode.JMP, Opcode.JE, Opcode.JZ, Opcode.JNE, Opcode.JNZ,
            Opcode.JG, Opcode.JNS, Opcode.JL, Opcode.JS, Opcode.CALL):
    SHAPES[_op] = Shape.LABEL
for _op in (Opcode.RET, Opcode.HLT):
    SHAPES[_op] = Shape.NONE
del _op

if set(SHAPES) != set(Opcode):
    raise RuntimeError(f"Opcodes without a shape: {set(Opcode) - set(SHAPES)}")

MNEMONICS = tuple(op.value for op in Opcode)


def expected_form(opcode: Opcode) -> str:
    """Human-readable syntax for error messages, e.g. 'mov reg, reg|imm'."""
    shape = SHAPES[opcode]
    if shape is Shape.NONE:
        return opcode.value
    return f"{opcode.value} {shape.value}"
