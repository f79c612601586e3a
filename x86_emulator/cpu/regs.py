"""
x86 Emulator - Register File + EFLAGS Management

Register model (32-bit, simplified IA-32):
  EAX EBX ECX EDX  - general purpose, each with 16/8-bit views
  ESI EDI EBP ESP  - index/pointer registers, 16-bit views only
  EIP              - instruction pointer (token index, not a byte address).
                     Not addressable by instructions; readable for display.

Sub-registers are views onto the parent slot, never separate storage:
  AX = bits[15:0]   AH = bits[15:8]   AL = bits[7:0]

  A view write preserves every bit of the parent outside the view.
  A view read returns the masked bits zero-extended.

EFLAGS bits of interest:
  bit 11: OF (Overflow)     bit 7: SF (Sign)     bit 6: ZF (Zero)
  bit 4:  AF (Aux carry)    bit 2: PF (Parity)   bit 0: CF (Carry)
"""

from __future__ import annotations
import enum
from typing import Dict, List, Tuple, Union

from ..errors import InvalidRegisterError

# EFLAGS bit masks
FL_CF = 0x0001
FL_PF = 0x0004
FL_AF = 0x0010
FL_ZF = 0x0040
FL_SF = 0x0080
FL_OF = 0x0800
FLAGS_MASK = FL_CF | FL_PF | FL_AF | FL_ZF | FL_SF | FL_OF

FLAG_NAMES: Dict[str, int] = {
    'carry': FL_CF,
    'parity': FL_PF,
    'auxiliary_carry': FL_AF,
    'zero': FL_ZF,
    'sign': FL_SF,
    'overflow': FL_OF,
}

MASK32 = 0xFFFFFFFF


class Slot(enum.IntEnum):
    """Canonical 32-bit storage slots, in display order."""
    EAX = 0
    EBX = 1
    ECX = 2
    EDX = 3
    ESI = 4
    EDI = 5
    EBP = 6
    ESP = 7
    EIP = 8


REGISTERS_32: Tuple[str, ...] = tuple(s.name.lower() for s in Slot)


class Register(enum.Enum):
    """Every addressable register name as a (parent slot, width, shift) view."""

    EAX = (Slot.EAX, 32, 0)
    EBX = (Slot.EBX, 32, 0)
    ECX = (Slot.ECX, 32, 0)
    EDX = (Slot.EDX, 32, 0)
    ESI = (Slot.ESI, 32, 0)
    EDI = (Slot.EDI, 32, 0)
    EBP = (Slot.EBP, 32, 0)
    ESP = (Slot.ESP, 32, 0)
    EIP = (Slot.EIP, 32, 0)

    AX = (Slot.EAX, 16, 0)
    BX = (Slot.EBX, 16, 0)
    CX = (Slot.ECX, 16, 0)
    DX = (Slot.EDX, 16, 0)
    SI = (Slot.ESI, 16, 0)
    DI = (Slot.EDI, 16, 0)
    BP = (Slot.EBP, 16, 0)
    SP = (Slot.ESP, 16, 0)

    AH = (Slot.EAX, 8, 8)
    BH = (Slot.EBX, 8, 8)
    CH = (Slot.ECX, 8, 8)
    DH = (Slot.EDX, 8, 8)

    AL = (Slot.EAX, 8, 0)
    BL = (Slot.EBX, 8, 0)
    CL = (Slot.ECX, 8, 0)
    DL = (Slot.EDX, 8, 0)

    def __init__(self, slot: Slot, width: int, shift: int):
        self.slot = slot
        self.width = width
        self.shift = shift

    @property
    def mask(self) -> int:
        """Mask of the view at bit 0 (0xFF for 8-bit views)."""
        return (1 << self.width) - 1

    @property
    def reg_name(self) -> str:
        return self.name.lower()

    @classmethod
    def lookup(cls, name: str) -> "Register":
        """Resolve a register name (case-insensitive). Raises KeyError."""
        return cls[name.upper()]

    @classmethod
    def is_register(cls, name: str) -> bool:
        return name.upper() in cls.__members__


def to_signed(value: int, width: int) -> int:
    """Interpret the low `width` bits of value as two's complement."""
    value &= (1 << width) - 1
    if value & (1 << (width - 1)):
        return value - (1 << width)
    return value


class Registers:
    """Register file + flags word.

    Storage is nine canonical 32-bit slots. All narrower access goes through
    Register descriptors.
    """

    __slots__ = ('_slots', 'eflags', 'stack_capacity', 'current_line')

    def __init__(self, stack_capacity: int = 0):
        self._slots: List[int] = [0] * len(Slot)
        self.eflags: int = 0
        self.stack_capacity = stack_capacity
        # Line of the instruction being executed, used to tag errors
        self.current_line: int = 0
        self.reset()

    # --- Descriptor access ---

    def read(self, reg: Register) -> int:
        """Read a register view, zero-extended."""
        return (self._slots[reg.slot] >> reg.shift) & reg.mask

    def write(self, reg: Register, value: int):
        """Write a register view; bits outside the view are preserved."""
        field = reg.mask << reg.shift
        parent = self._slots[reg.slot]
        self._slots[reg.slot] = (parent & ~field & MASK32) | ((value & reg.mask) << reg.shift)

    # --- Name access ---

    def _resolve(self, name: Union[str, Register]) -> Register:
        if isinstance(name, Register):
            return name
        try:
            return Register.lookup(name)
        except (KeyError, AttributeError):
            raise InvalidRegisterError(str(name), self.current_line) from None

    def get(self, name: Union[str, Register]) -> int:
        """Read a register by name (any width alias, including eip)."""
        if isinstance(name, str) and name.lower() == 'eflags':
            return self.eflags
        return self.read(self._resolve(name))

    def set(self, name: Union[str, Register], value: int):
        """Write a register by name (any width alias)."""
        self.write(self._resolve(name), value)

    # --- Convenience properties for the registers the engine touches ---

    @property
    def eax(self) -> int:
        return self._slots[Slot.EAX]

    @eax.setter
    def eax(self, value: int):
        self._slots[Slot.EAX] = value & MASK32

    @property
    def edx(self) -> int:
        return self._slots[Slot.EDX]

    @edx.setter
    def edx(self, value: int):
        self._slots[Slot.EDX] = value & MASK32

    @property
    def esp(self) -> int:
        return self._slots[Slot.ESP]

    @esp.setter
    def esp(self, value: int):
        self._slots[Slot.ESP] = value & MASK32

    @property
    def eip(self) -> int:
        return self._slots[Slot.EIP]

    @eip.setter
    def eip(self, value: int):
        self._slots[Slot.EIP] = value & MASK32

    # --- EFLAGS access ---

    def set_flags(self, flags: int):
        """Replace the whole flags word (cleared, then rebuilt)."""
        self.eflags = flags & FLAGS_MASK

    def flag(self, mask: int) -> bool:
        """Test one flag by mask."""
        return bool(self.eflags & mask)

    def flag_by_name(self, name: str) -> bool:
        try:
            return self.flag(FLAG_NAMES[name.lower()])
        except KeyError:
            raise ValueError(f"Unknown flag: {name}") from None

    @property
    def carry(self) -> bool:
        return bool(self.eflags & FL_CF)

    @property
    def parity(self) -> bool:
        return bool(self.eflags & FL_PF)

    @property
    def aux_carry(self) -> bool:
        return bool(self.eflags & FL_AF)

    @property
    def zero(self) -> bool:
        return bool(self.eflags & FL_ZF)

    @property
    def sign(self) -> bool:
        return bool(self.eflags & FL_SF)

    @property
    def overflow(self) -> bool:
        return bool(self.eflags & FL_OF)

    # --- Display ---

    def snapshot(self) -> Dict[str, int]:
        """All 32-bit registers plus eflags, in canonical order."""
        state = {name: self._slots[slot] for name, slot in zip(REGISTERS_32, Slot)}
        state['eflags'] = self.eflags
        return state

    def display(self) -> str:
        """Format register state for traces."""
        flag_chars = []
        for ch, mask in (('O', FL_OF), ('S', FL_SF), ('Z', FL_ZF),
                         ('A', FL_AF), ('P', FL_PF), ('C', FL_CF)):
            flag_chars.append(ch if self.eflags & mask else '.')
        return (f"EAX={self.eax:08X} EBX={self._slots[Slot.EBX]:08X} "
                f"ECX={self._slots[Slot.ECX]:08X} EDX={self.edx:08X} "
                f"ESP={self.esp:08X} EIP={self.eip} [{''.join(flag_chars)}]")

    def reset(self):
        """General registers to 0, ebp = esp = stack capacity, flags and eip to 0."""
        for slot in Slot:
            self._slots[slot] = 0
        self._slots[Slot.EBP] = self.stack_capacity & MASK32
        self._slots[Slot.ESP] = self.stack_capacity & MASK32
        self.eflags = 0
        self.current_line = 0
