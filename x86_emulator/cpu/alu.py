"""
x86 Emulator - ALU Operations

Arithmetic functions return (result, flags). The caller stores the result
(or not, for CMP) and hands the flags to Registers.set_flags(), which clears
the word before applying them.

The flag formulas are a teaching approximation, not IA-32 hardware behavior.
Given unsigned operands a, b at width w, the unbounded result raw = a +/- b,
the stored value r = raw mod 2**w and its signed view s:

  ZF = r == 0
  SF = s < 0
  PF = r is even
  CF = raw outside [0, 2**w)                      (magnitude test)
  AF = low-nibble carry/borrow                    (magnitude test)
  OF = s > 0, or sign(s) != sign(signed(a) +/- signed(b))   (sign mismatch)

OF therefore doubles as the "greater" indicator that JG tests, and SF as the
"less" indicator that JL tests.

Bitwise and shift functions return the result only; they never touch flags.
"""

from .regs import FL_CF, FL_PF, FL_AF, FL_ZF, FL_SF, FL_OF, to_signed


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _result_flags(raw: int, signed_raw: int, width: int) -> int:
    """Flags shared by ADD/SUB/CMP, computed from the post-operation value."""
    result = raw & ((1 << width) - 1)
    signed = to_signed(result, width)
    flags = 0
    if result == 0:
        flags |= FL_ZF
    if signed < 0:
        flags |= FL_SF
    if result % 2 == 0:
        flags |= FL_PF
    if raw != result:
        flags |= FL_CF
    if signed > 0 or _sign(signed) != _sign(signed_raw):
        flags |= FL_OF
    return flags


def add(a: int, b: int, width: int = 32) -> tuple:
    """a + b at width. Sets ZF, SF, PF, CF, AF, OF."""
    raw = a + b
    flags = _result_flags(raw, to_signed(a, width) + to_signed(b, width), width)
    if (a & 0xF) + (b & 0xF) > 0xF:
        flags |= FL_AF
    return (raw & ((1 << width) - 1), flags)


def sub(a: int, b: int, width: int = 32) -> tuple:
    """a - b at width. Sets ZF, SF, PF, CF, AF, OF. Also used by CMP."""
    raw = a - b
    flags = _result_flags(raw, to_signed(a, width) - to_signed(b, width), width)
    if (a & 0xF) < (b & 0xF):
        flags |= FL_AF
    return (raw & ((1 << width) - 1), flags)


# ──────────────────────────────────────────────
# Flag-neutral operations
# ──────────────────────────────────────────────

def and_(a: int, b: int, width: int = 32) -> int:
    return (a & b) & ((1 << width) - 1)


def or_(a: int, b: int, width: int = 32) -> int:
    return (a | b) & ((1 << width) - 1)


def xor(a: int, b: int, width: int = 32) -> int:
    return (a ^ b) & ((1 << width) - 1)


def not_(a: int, width: int = 32) -> int:
    return ~a & ((1 << width) - 1)


def shl(a: int, count: int, width: int = 32) -> int:
    """Logical shift left. The count is masked to 5 bits like IA-32."""
    return (a << (count & 0x1F)) & ((1 << width) - 1)


def shr(a: int, count: int, width: int = 32) -> int:
    """Logical shift right (zero fill). The count is masked to 5 bits."""
    return ((a & ((1 << width) - 1)) >> (count & 0x1F))


def inc(a: int, width: int = 32) -> int:
    return (a + 1) & ((1 << width) - 1)


def dec(a: int, width: int = 32) -> int:
    return (a - 1) & ((1 << width) - 1)


def mul(a: int, b: int) -> int:
    """Low 32 bits of a * b (no high word)."""
    return (a * b) & 0xFFFFFFFF


def divmod32(dividend: int, divisor: int) -> tuple:
    """Unsigned (quotient, remainder). Caller guarantees divisor != 0."""
    return (dividend // divisor, dividend % divisor)
