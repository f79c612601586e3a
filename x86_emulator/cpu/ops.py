"""
x86 Emulator - Instruction Handlers

Every handler is a free function:

    handler(state: MachineState, insn: Instruction) -> int

and returns the EIP delta in tokens. Straight-line instructions return
insn.size (1 + operand count). Taken jumps return the distance to the label
declaration token, so EIP lands on the label and the next step consumes it
as a no-op. RET sets EIP itself and returns 0; HLT returns 0 and leaves EIP
where it is.

Handlers read and validate everything they need before the first write, so
an instruction that raises leaves registers, flags and stack untouched.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict

from ..errors import DivisionByZeroError, LabelNotFoundError
from ..lexer import Instruction, Program
from . import alu
from .opcodes import Opcode
from .regs import Registers, Register, FL_ZF, FL_SF, FL_OF
from .stack import CallStack


@dataclass
class MachineState:
    """Everything a handler may touch."""
    regs: Registers
    stack: CallStack
    program: Program


Handler = Callable[[MachineState, Instruction], int]


# ──────────────────────────────────────────────
# Operand helpers
# ──────────────────────────────────────────────

def _value(st: MachineState, operand, width: int = 32) -> int:
    """Register or immediate value, fitted to `width` bits."""
    if isinstance(operand, Register):
        value = st.regs.read(operand)
    else:
        value = operand
    return value & ((1 << width) - 1)


def _jump_delta(st: MachineState, insn: Instruction) -> int:
    label = insn.operands[0]
    target = st.program.find_label(label)
    if target is None:
        raise LabelNotFoundError(label, insn.line_num)
    return target - insn.index


# ──────────────────────────────────────────────
# Data movement
# ──────────────────────────────────────────────

def op_mov(st: MachineState, insn: Instruction) -> int:
    dst, src = insn.operands
    st.regs.write(dst, _value(st, src, dst.width))
    return insn.size


def op_push(st: MachineState, insn: Instruction) -> int:
    st.stack.push(_value(st, insn.operands[0]))
    return insn.size


def op_pop(st: MachineState, insn: Instruction) -> int:
    dst = insn.operands[0]
    st.regs.write(dst, st.stack.pop())
    return insn.size


# ──────────────────────────────────────────────
# Arithmetic
# ──────────────────────────────────────────────

def op_add(st: MachineState, insn: Instruction) -> int:
    dst, src = insn.operands
    result, flags = alu.add(st.regs.read(dst), _value(st, src, dst.width), dst.width)
    st.regs.write(dst, result)
    st.regs.set_flags(flags)
    return insn.size


def op_sub(st: MachineState, insn: Instruction) -> int:
    dst, src = insn.operands
    result, flags = alu.sub(st.regs.read(dst), _value(st, src, dst.width), dst.width)
    st.regs.write(dst, result)
    st.regs.set_flags(flags)
    return insn.size


def op_cmp(st: MachineState, insn: Instruction) -> int:
    left, right = insn.operands
    _, flags = alu.sub(st.regs.read(left), _value(st, right, left.width), left.width)
    st.regs.set_flags(flags)
    return insn.size


def op_mul(st: MachineState, insn: Instruction) -> int:
    st.regs.eax = alu.mul(st.regs.eax, _value(st, insn.operands[0]))
    return insn.size


def op_div(st: MachineState, insn: Instruction) -> int:
    divisor = _value(st, insn.operands[0])
    if divisor == 0:
        raise DivisionByZeroError(insn.line_num)
    quotient, remainder = alu.divmod32(st.regs.eax, divisor)
    st.regs.eax = quotient
    st.regs.edx = remainder
    return insn.size


def op_inc(st: MachineState, insn: Instruction) -> int:
    dst = insn.operands[0]
    st.regs.write(dst, alu.inc(st.regs.read(dst), dst.width))
    return insn.size


def op_dec(st: MachineState, insn: Instruction) -> int:
    dst = insn.operands[0]
    st.regs.write(dst, alu.dec(st.regs.read(dst), dst.width))
    return insn.size


# ──────────────────────────────────────────────
# Bitwise
# ──────────────────────────────────────────────

def _binary(fn) -> Handler:
    def handler(st: MachineState, insn: Instruction) -> int:
        dst, src = insn.operands
        st.regs.write(dst, fn(st.regs.read(dst), _value(st, src, dst.width), dst.width))
        return insn.size
    handler.__name__ = f"op_{fn.__name__.rstrip('_')}"
    return handler


op_and = _binary(alu.and_)
op_or = _binary(alu.or_)
op_xor = _binary(alu.xor)


def op_not(st: MachineState, insn: Instruction) -> int:
    dst = insn.operands[0]
    st.regs.write(dst, alu.not_(st.regs.read(dst), dst.width))
    return insn.size


def op_shl(st: MachineState, insn: Instruction) -> int:
    dst, count = insn.operands
    st.regs.write(dst, alu.shl(st.regs.read(dst), _value(st, count), dst.width))
    return insn.size


def op_shr(st: MachineState, insn: Instruction) -> int:
    dst, count = insn.operands
    st.regs.write(dst, alu.shr(st.regs.read(dst), _value(st, count), dst.width))
    return insn.size


# ──────────────────────────────────────────────
# Control flow
# ──────────────────────────────────────────────

def op_jmp(st: MachineState, insn: Instruction) -> int:
    return _jump_delta(st, insn)


def _branch_if(mask: int, taken_when_set: bool) -> Handler:
    """Conditional jump on one flag. Not-taken jumps never resolve the label."""
    def handler(st: MachineState, insn: Instruction) -> int:
        if st.regs.flag(mask) == taken_when_set:
            return _jump_delta(st, insn)
        return insn.size
    return handler


op_je = _branch_if(FL_ZF, True)
op_jne = _branch_if(FL_ZF, False)
# JG/JNS test OF and JL/JS test SF directly: OF is the "greater" bit here.
op_jg = _branch_if(FL_OF, True)
op_jl = _branch_if(FL_SF, True)


def op_call(st: MachineState, insn: Instruction) -> int:
    delta = _jump_delta(st, insn)
    st.stack.push(insn.index + insn.size)
    return delta


def op_ret(st: MachineState, insn: Instruction) -> int:
    st.regs.eip = st.stack.pop()
    return 0


def op_hlt(st: MachineState, insn: Instruction) -> int:
    return 0


DISPATCH: Dict[Opcode, Handler] = {
    Opcode.MOV: op_mov,
    Opcode.ADD: op_add,
    Opcode.SUB: op_sub,
    Opcode.CMP: op_cmp,
    Opcode.AND: op_and,
    Opcode.OR: op_or,
    Opcode.XOR: op_xor,
    Opcode.SHL: op_shl,
    Opcode.SHR: op_shr,
    Opcode.MUL: op_mul,
    Opcode.DIV: op_div,
    Opcode.INC: op_inc,
    Opcode.DEC: op_dec,
    Opcode.NOT: op_not,
    Opcode.PUSH: op_push,
    Opcode.POP: op_pop,
    Opcode.JMP: op_jmp,
    Opcode.JE: op_je,
    Opcode.JZ: op_je,
    Opcode.JNE: op_jne,
    Opcode.JNZ: op_jne,
    Opcode.JG: op_jg,
    Opcode.JNS: op_jg,
    Opcode.JL: op_jl,
    Opcode.JS: op_jl,
    Opcode.CALL: op_call,
    Opcode.RET: op_ret,
    Opcode.HLT: op_hlt,
}

if set(DISPATCH) != set(Opcode):
    raise RuntimeError(f"Opcodes without a handler: {set(Opcode) - set(DISPATCH)}")
