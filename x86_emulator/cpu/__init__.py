"""CPU model: registers, flags, stack, opcode table and handlers."""
