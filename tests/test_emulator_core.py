"""
x86 Emulator - Core Integration Tests

Programs are loaded as source text and stepped one instruction at a time.
Expected values are worked out by hand from the instruction semantics.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from x86_emulator import Emulator, run_source
from x86_emulator.cpu.regs import FL_ZF, FL_SF, FL_OF, FL_CF
from x86_emulator.errors import (LoadError, DivisionByZeroError, StackOverflowError,
                                 StackUnderflowError, LabelNotFoundError,
                                 UnknownInstructionError)


def _emu(source: str, capacity: int = 64) -> Emulator:
    emu = Emulator(stack_capacity=capacity)
    emu.load(source)
    emu.reset()
    return emu


def _run(source: str, capacity: int = 64, max_steps: int = 1000) -> Emulator:
    """Step until HLT or end of program."""
    emu = _emu(source, capacity)
    for _ in range(max_steps):
        if emu.is_halted:
            break
        emu.step()
    return emu


# ═══════════════════════════════════════════════
# Scenarios
# ═══════════════════════════════════════════════

class TestScenarios:
    def test_add_two_registers(self):
        emu = _emu("mov eax, 5\nmov ebx, 3\nadd eax, ebx")
        for _ in range(3):
            emu.step()
        assert emu.register('eax') == 8

    def test_je_taken_skips_mov(self):
        emu = _run("mov ecx, 0\ncmp ecx, 0\nje done\nmov eax, 1\ndone:\nhlt")
        assert emu.register('eax') == 0
        assert emu.halted

    def test_push_pop_order(self):
        emu = _run("push 10\npush 20\npop eax\npop ebx")
        assert emu.register('eax') == 20
        assert emu.register('ebx') == 10

    def test_bad_load_executes_nothing(self):
        emu = Emulator()
        with pytest.raises(LoadError) as exc:
            emu.load("foo eax, 1")
        assert exc.value.line_num == 1
        emu.reset()
        before = emu.snapshot()
        for _ in range(5):
            emu.step()
        assert emu.snapshot() == before
        assert emu.steps == 0


# ═══════════════════════════════════════════════
# Data movement and arithmetic
# ═══════════════════════════════════════════════

class TestMov:
    def test_immediate(self):
        emu = _run("mov ecx, 1234")
        assert emu.register('ecx') == 1234

    def test_negative_immediate_wraps(self):
        emu = _run("mov eax, -1")
        assert emu.register('eax') == 0xFFFFFFFF

    def test_register_to_register(self):
        emu = _run("mov eax, 77\nmov esi, eax")
        assert emu.register('esi') == 77

    def test_narrow_source_zero_extends(self):
        emu = _run("mov eax, -1\nmov ebx, ah")
        assert emu.register('ebx') == 0xFF

    def test_wide_source_narrowed_to_destination(self):
        emu = _run("mov eax, 305419896\nmov bl, eax")   # 0x12345678
        assert emu.register('ebx') == 0x78

    def test_sub_register_destination_keeps_parent_bits(self):
        emu = _run("mov edx, -1\nmov dl, 0")
        assert emu.register('edx') == 0xFFFFFF00

    def test_mov_leaves_flags(self):
        emu = _run("cmp eax, 0\nmov eax, 5")
        assert emu.flag('zero')


class TestArithmetic:
    def test_add_immediate(self):
        emu = _run("mov eax, 40\nadd eax, 2")
        assert emu.register('eax') == 42

    def test_add_sets_flags(self):
        emu = _run("mov eax, -1\nadd eax, 1")
        assert emu.register('eax') == 0
        assert emu.flag('zero')
        assert emu.flag('carry')

    def test_sub(self):
        emu = _run("mov eax, 10\nsub eax, 4")
        assert emu.register('eax') == 6
        assert emu.flag('overflow')

    def test_sub_negative_result(self):
        emu = _run("mov eax, 1\nsub eax, 2")
        assert emu.register('eax') == 0xFFFFFFFF
        assert emu.flag('sign')

    def test_add_8bit_wraps_within_view(self):
        emu = _run("mov eax, 511\nadd al, 1")   # 0x1FF
        assert emu.register('eax') == 0x100
        assert emu.flag('zero')

    def test_flags_fully_rebuilt(self):
        emu = _run("mov eax, 1\nsub eax, 2\nmov eax, 5\nadd eax, 3")
        # SF/CF from the sub are gone after the add
        assert emu.eflags & (FL_SF | FL_CF) == 0
        assert emu.flag('overflow')

    def test_cmp_does_not_store(self):
        emu = _run("mov eax, 9\ncmp eax, 9")
        assert emu.register('eax') == 9
        assert emu.flag('zero')

    def test_cmp_less(self):
        emu = _run("mov eax, 2\ncmp eax, 9")
        assert emu.flag('sign')
        assert not emu.flag('overflow')

    def test_mul(self):
        emu = _run("mov eax, 6\nmov ebx, 7\nmul ebx")
        assert emu.register('eax') == 42
        assert emu.register('edx') == 0

    def test_mul_truncates(self):
        emu = _run("mov eax, 65536\nmov ecx, 65536\nmul ecx")
        assert emu.register('eax') == 0

    def test_div(self):
        emu = _run("mov eax, 17\nmov ebx, 5\ndiv ebx")
        assert emu.register('eax') == 3
        assert emu.register('edx') == 2

    def test_div_remainder_uses_original_dividend(self):
        emu = _run("mov eax, 100\nmov ecx, 7\ndiv ecx")
        assert emu.register('eax') == 14
        assert emu.register('edx') == 2

    def test_div_by_zero_mutates_nothing(self):
        emu = _emu("mov eax, 10\nmov edx, 3\nmov ebx, 0\ndiv ebx")
        for _ in range(3):
            emu.step()
        before = emu.snapshot()
        with pytest.raises(DivisionByZeroError) as exc:
            emu.step()
        assert exc.value.line_num == 4
        assert emu.snapshot() == before

    def test_inc_dec(self):
        emu = _run("mov eax, 5\ninc eax\ninc eax\ndec ebx")
        assert emu.register('eax') == 7
        assert emu.register('ebx') == 0xFFFFFFFF

    def test_inc_leaves_flags(self):
        emu = _run("mov eax, -1\ncmp eax, eax\ninc eax")
        assert emu.register('eax') == 0
        assert emu.eflags == FL_ZF | 0x0004

    def test_inc_byte_view(self):
        emu = _run("mov eax, 255\ninc al")
        assert emu.register('eax') == 0


class TestBitwise:
    def test_and_or_xor(self):
        emu = _run("mov eax, 12\nand eax, 10\nmov ebx, 12\nor ebx, 10\nmov ecx, 12\nxor ecx, 10")
        assert emu.register('eax') == 8
        assert emu.register('ebx') == 14
        assert emu.register('ecx') == 6

    def test_not(self):
        emu = _run("not eax\nmov ebx, 15\nnot bl")
        assert emu.register('eax') == 0xFFFFFFFF
        assert emu.register('ebx') == 0xF0

    def test_shifts(self):
        emu = _run("mov eax, 1\nshl eax, 10\nmov ecx, 3\nmov ebx, 64\nshr ebx, ecx")
        assert emu.register('eax') == 1024
        assert emu.register('ebx') == 8

    def test_bitwise_leaves_flags(self):
        emu = _run("mov eax, 3\ncmp eax, 3\nxor eax, 1\nshl eax, 2")
        assert emu.flag('zero')

    def test_registers_example(self):
        path = os.path.join(os.path.dirname(__file__), "..", "examples", "registers.asm")
        with open(path, encoding="utf-8") as f:
            emu = _run(f.read())
        assert emu.register('eax') == 0x0023400F
        assert emu.register('ebx') == 0
        assert emu.register('edx') == 2


# ═══════════════════════════════════════════════
# Stack and control flow
# ═══════════════════════════════════════════════

class TestStack:
    def test_push_pop_restores_esp(self):
        emu = _emu("push 123\npop ecx", capacity=32)
        emu.step()
        assert emu.register('esp') == 28
        emu.step()
        assert emu.register('ecx') == 123
        assert emu.register('esp') == 32

    def test_push_register(self):
        emu = _run("mov eax, 9\npush eax\npop bx")
        assert emu.register('ebx') == 9

    def test_push_negative_immediate(self):
        emu = _run("push -2\npop eax")
        assert emu.register('eax') == 0xFFFFFFFE

    def test_overflow(self):
        emu = _emu("push 1\npush 2\npush 3", capacity=8)
        emu.step()
        emu.step()
        before = emu.snapshot()
        with pytest.raises(StackOverflowError) as exc:
            emu.step()
        assert exc.value.line_num == 3
        assert emu.snapshot() == before
        assert len(emu.stack) == 2

    def test_underflow_pop(self):
        emu = _emu("mov eax, 5\npop eax")
        emu.step()
        with pytest.raises(StackUnderflowError):
            emu.step()
        assert emu.register('eax') == 5
        assert emu.eip == 3

    def test_underflow_ret(self):
        emu = _emu("ret")
        with pytest.raises(StackUnderflowError):
            emu.step()
        assert emu.eip == 0


class TestJumps:
    def test_jmp_lands_on_label(self):
        emu = _emu("jmp end\nmov eax, 1\nend:\nhlt")
        emu.step()
        assert emu.eip == 5
        assert emu.current_line() == 3
        emu.step()                      # label consumed as a no-op
        assert emu.eip == 6
        assert emu.steps == 1

    def test_backward_jump(self):
        emu = _run("mov ecx, 3\ntop:\ndec ecx\ncmp ecx, 0\njne top\nhlt")
        assert emu.register('ecx') == 0
        assert emu.halted

    def test_label_not_found(self):
        emu = _emu("mov eax, 1\njmp missing")
        emu.step()
        with pytest.raises(LabelNotFoundError) as exc:
            emu.step()
        assert exc.value.label == "missing"
        assert exc.value.line_num == 2
        assert emu.eip == 3

    def test_untaken_jump_skips_missing_label(self):
        emu = _run("mov eax, 1\ncmp eax, 0\nje nowhere\nmov ebx, 2\nhlt")
        assert emu.register('ebx') == 2

    def test_jz_jnz_aliases(self):
        emu = _run("cmp eax, 0\njz a\nmov ebx, 1\na:\ncmp eax, 1\njnz b\nmov ecx, 1\nb:\nhlt")
        assert emu.register('ebx') == 0
        assert emu.register('ecx') == 0

    def test_jne_not_taken(self):
        emu = _run("cmp eax, 0\njne skip\nmov ebx, 5\nskip:\nhlt")
        assert emu.register('ebx') == 5

    def test_jg_tests_overflow_flag(self):
        emu = _run("mov eax, 5\ncmp eax, 3\njg big\nmov ebx, 1\nbig:\nhlt")
        assert emu.register('ebx') == 0

    def test_jg_not_taken_when_less(self):
        emu = _run("mov eax, 1\ncmp eax, 3\njg big\nmov ebx, 1\nbig:\nhlt")
        assert emu.register('ebx') == 1

    def test_jns_uses_overflow_not_sign(self):
        # equal operands: SF clear but OF clear too, so jns is not taken
        emu = _run("cmp eax, 0\njns t\nmov ebx, 1\nt:\nhlt")
        assert emu.register('ebx') == 1

    def test_jl_js_test_sign(self):
        emu = _run("mov eax, 1\ncmp eax, 3\njl small\nmov ebx, 1\nsmall:\n"
                   "cmp eax, 2\njs neg\nmov ecx, 1\nneg:\nhlt")
        assert emu.register('ebx') == 0
        assert emu.register('ecx') == 0

    def test_countdown_example(self):
        path = os.path.join(os.path.dirname(__file__), "..", "examples", "countdown.asm")
        with open(path, encoding="utf-8") as f:
            emu = _run(f.read())
        assert emu.register('ebx') == 55


class TestCallRet:
    def test_call_pushes_return_index(self):
        emu = _emu("call sub\nhlt\nsub:\nret", capacity=16)
        emu.step()
        assert emu.eip == 3
        assert emu.stack.values == (2,)
        assert emu.register('esp') == 12
        emu.step()                      # label
        emu.step()                      # ret
        assert emu.eip == 2
        assert emu.register('esp') == 16
        emu.step()
        assert emu.halted

    def test_call_missing_label_leaves_stack(self):
        emu = _emu("call nowhere")
        with pytest.raises(LabelNotFoundError):
            emu.step()
        assert len(emu.stack) == 0
        assert emu.register('esp') == 64

    def test_call_overflow(self):
        emu = _emu("f:\ncall f", capacity=4)
        for _ in range(3):              # label, call, label
            emu.step()
        with pytest.raises(StackOverflowError):
            emu.step()
        assert emu.eip == 1
        assert emu.stack.values == (3,)

    def test_subroutine_example(self):
        path = os.path.join(os.path.dirname(__file__), "..", "examples", "subroutine.asm")
        with open(path, encoding="utf-8") as f:
            emu = _run(f.read())
        assert emu.register('ebx') == 42
        assert emu.register('esp') == 64

    def test_factorial_example(self):
        path = os.path.join(os.path.dirname(__file__), "..", "examples", "factorial.asm")
        with open(path, encoding="utf-8") as f:
            emu = _run(f.read())
        assert emu.register('eax') == 120

    def test_ret_into_operand_is_unknown_instruction(self):
        emu = _emu("push 1\nret\nhlt")
        emu.step()
        emu.step()
        assert emu.eip == 1             # token "1", an operand
        with pytest.raises(UnknownInstructionError):
            emu.step()


# ═══════════════════════════════════════════════
# Engine lifecycle and queries
# ═══════════════════════════════════════════════

class TestLifecycle:
    def test_reset(self):
        emu = _run("mov eax, 3\npush eax\ncmp eax, 3\nhlt", capacity=128)
        emu.reset()
        assert emu.eip == 0
        assert emu.eflags == 0
        assert emu.register('esp') == 128
        assert emu.register('ebp') == 128
        assert emu.register('eax') == 0
        assert len(emu.stack) == 0
        assert not emu.halted
        assert emu.program.tokens       # program kept

    def test_hlt_stalls(self):
        emu = _emu("hlt")
        emu.step()
        emu.step()
        assert emu.eip == 0
        assert emu.halted
        assert emu.is_halted

    def test_step_past_end_does_nothing(self):
        emu = _emu("mov eax, 1")
        emu.step()
        assert emu.eip == 3
        assert not emu.in_range
        emu.step()
        assert emu.eip == 3
        assert emu.current_line() is None

    def test_failed_load_keeps_previous_program(self):
        emu = _emu("mov eax, 1")
        with pytest.raises(LoadError):
            emu.load("mov eax 1")
        emu.step()
        assert emu.register('eax') == 1

    def test_load_is_idempotent(self):
        emu = Emulator()
        first = emu.load("mov eax, 1\nhlt")
        second = emu.load("mov eax, 1\nhlt")
        assert first.tokens == second.tokens

    def test_current_line(self):
        emu = _emu("; comment\n\nmov eax, 1\n\nhlt")
        assert emu.current_line() == 3
        emu.step()
        assert emu.current_line() == 5

    def test_register_names(self):
        assert Emulator.register_names()[0] == 'eax'
        assert 'eip' in Emulator.register_names()

    def test_flag_query(self):
        emu = _run("cmp eax, 0")
        assert emu.flag('zero')
        assert not emu.flag('sign')
        assert emu.register('eflags') == emu.eflags

    def test_invalid_stack_capacity(self):
        with pytest.raises(ValueError):
            Emulator(stack_capacity=10)
        with pytest.raises(ValueError):
            Emulator(stack_capacity=-4)

    def test_trace(self):
        emu = Emulator(trace=True)
        emu.load("mov eax, 1\nhlt")
        emu.reset()
        emu.step()
        assert len(emu.trace_output) == 1
        assert "mov eax, 1" in emu.trace_output[0]

    def test_run_source(self):
        emu = run_source("mov eax, 2\nmul eax\nhlt")
        assert emu.register('eax') == 4


class TestTokenAccounting:
    PROGRAM = """
        mov ecx, 3
        push 7
    top:
        add eax, ecx
        call helper
        dec ecx
        cmp ecx, 0
        jne top
        pop ebx
        hlt
    helper:
        inc edx
        ret
    """

    def test_eip_always_on_instruction_or_label(self):
        emu = _emu(self.PROGRAM)
        starts = set(emu.program.instructions) | set(emu.program.labels.values())
        for _ in range(200):
            if emu.is_halted:
                break
            emu.step()
            assert emu.eip in starts or not emu.in_range
        assert emu.halted
        assert emu.register('eax') == 6
        assert emu.register('edx') == 3
        assert emu.register('ebx') == 7
