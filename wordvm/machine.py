"""A small stack machine that runs 32-bit word programs from a 4 KiB memory image."""

from __future__ import annotations

import re
import sys
from enum import IntEnum
from pathlib import Path
from typing import Callable, TextIO

MAGIC = b"\xde\xad\xbe\xef"
MEMORY_SIZE = 4096
WORD = 4

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1


class VMError(Exception):
    """Raised when an image cannot be loaded or a program fails at run time."""


class Opcode(IntEnum):
    """The instruction class held in the top four bits of a word."""

    MISC = 0
    POP = 1
    BINARY_ARITHMETIC = 2
    UNARY_ARITHMETIC = 3
    STRING_PRINT = 4
    CALL = 5
    RETURN = 6
    GOTO = 7
    BINARY_IF = 8
    UNARY_IF = 9
    DUP = 12
    PRINT = 13
    DUMP = 14
    PUSH = 15


_LABELS = {
    Opcode.MISC: "Misc. instruction",
    Opcode.POP: "Pop instruction",
    Opcode.BINARY_ARITHMETIC: "Binary arithmetic instruction",
    Opcode.UNARY_ARITHMETIC: "Unary arithmetic instruction",
    Opcode.STRING_PRINT: "String print instruction",
    Opcode.CALL: "Call instruction",
    Opcode.RETURN: "Return instruction",
    Opcode.GOTO: "Unconditional goto instruction",
    Opcode.BINARY_IF: "Binary if instruction",
    Opcode.UNARY_IF: "Unary if instruction",
    Opcode.DUP: "Dup instruction",
    Opcode.PRINT: "Print instruction",
    Opcode.DUMP: "Dump instruction",
    Opcode.PUSH: "Push instruction",
}

_DIGITS = {2: "01", 10: "0-9", 16: "0-9a-fA-F"}


def _to_i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _trunc_div(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return quotient if (left < 0) == (right < 0) else -quotient


def _parse_i32(text: str, radix: int, message: str) -> int:
    if not re.fullmatch(rf"[+-]?[{_DIGITS[radix]}]+", text):
        raise VMError(message)
    value = int(text, radix)
    if not _INT32_MIN <= value <= _INT32_MAX:
        raise VMError(message)
    return value


def _lsr(left: int, right: int) -> int:
    return (left & 0xFFFFFFFF) >> (right & 31)


_BINARY_OPS: dict[int, tuple[str, Callable[[int, int], int]]] = {
    0: ("add", lambda a, b: a + b),
    1: ("sub", lambda a, b: a - b),
    2: ("mul", lambda a, b: a * b),
    3: ("div", _trunc_div),
    4: ("rem", lambda a, b: a - _trunc_div(a, b) * b),
    5: ("and", lambda a, b: a & b),
    6: ("or", lambda a, b: a | b),
    7: ("xor", lambda a, b: a ^ b),
    8: ("lsl", lambda a, b: a << (b & 31)),
    9: ("lsr", _lsr),
    11: ("asr", lambda a, b: a >> (b & 31)),
}

_UNARY_OPS: dict[int, tuple[str, Callable[[int], int]]] = {
    0: ("neg", lambda a: -a),
    1: ("not", lambda a: ~a),
}


class VirtualMachine:
    """Machine state: memory shared by program and stack, plus SP and PC."""

    def __init__(self, image: bytes, stdin: TextIO | None = None, stdout: TextIO | None = None):
        if len(image) > MEMORY_SIZE + len(MAGIC):
            raise VMError("File too big.")
        if len(image) < len(MAGIC) or image[: len(MAGIC)] != MAGIC:
            raise VMError("File format is invalid.")

        memory = bytearray(image[len(MAGIC):])
        memory.extend(bytes(MEMORY_SIZE - len(memory)))
        self.memory = memory
        self.stack_pointer = MEMORY_SIZE
        self.program_counter = 0
        self.exit_code = 0
        self.halted = False
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout

        self._misc_ops: dict[int, tuple[str, Callable[[int], None] | None]] = {
            0x0: ("Exit Instruction", self._exit),
            0x1: ("Swap Instruction", None),
            0x2: ("Nop Instruction", None),
            0x4: ("Input Instruction", self._input),
            0x5: ("stinput Instruction", self._stinput),
            0xF: ("Debug Instruction", self._debug),
        }
        self._handlers: dict[Opcode, Callable[[int], None]] = {
            Opcode.MISC: self._misc,
            Opcode.POP: self._pop,
            Opcode.BINARY_ARITHMETIC: self._binary_arithmetic,
            Opcode.UNARY_ARITHMETIC: self._unary_arithmetic,
            Opcode.CALL: self._call,
            Opcode.GOTO: self._goto,
            Opcode.PUSH: self._push,
        }

    @classmethod
    def from_file(cls, path, stdin: TextIO | None = None, stdout: TextIO | None = None) -> "VirtualMachine":
        """Load a machine from an image file on disk."""
        try:
            image = Path(path).read_bytes()
        except OSError as exc:
            raise VMError("Couldn't open file.") from exc
        return cls(image, stdin, stdout)

    def run(self) -> int:
        """Execute instructions until the program exits; return its exit code."""
        while True:
            self.step()
            if self.halted:
                return self.exit_code

    def step(self) -> None:
        """Fetch, execute and advance past a single instruction."""
        instruction = self._fetch()
        self._execute(instruction)
        self.program_counter += WORD

    def dump_stack(self) -> str:
        """Return a hex listing of the whole memory, sixteen bytes per line."""
        lines = (
            f" {offset:04x} | " + "".join(f"  {byte:02x}" for byte in self.memory[offset:offset + 16])
            for offset in range(0, len(self.memory), 16)
        )
        return "\n".join(lines) + "\n"

    # -- internals ---------------------------------------------------------

    def _write(self, text: str) -> None:
        self.stdout.write(text)

    def _fetch(self) -> int:
        pc = self.program_counter
        if pc < 0 or pc + WORD >= len(self.memory):
            raise VMError("program counter out of range")
        return int.from_bytes(self.memory[pc:pc + WORD], "little")

    def _execute(self, instruction: int) -> None:
        code = instruction >> 28
        self._write(f"opcode: {code:x} -- ")
        try:
            opcode = Opcode(code)
        except ValueError:
            raise VMError("Bad instruction.") from None
        self._write(_LABELS[opcode] + "\n")
        handler = self._handlers.get(opcode)
        if handler is not None:
            handler(instruction)

    def _pop_word(self) -> int:
        new_sp = self.stack_pointer + WORD
        if new_sp > MEMORY_SIZE:
            raise VMError("Failed to pop: stack is empty.")
        if self.stack_pointer < 0:
            raise VMError("stack pointer out of range")
        value = int.from_bytes(self.memory[self.stack_pointer:new_sp], "big")
        self.stack_pointer = new_sp
        return value

    def _push_word(self, value: int) -> None:
        new_sp = self.stack_pointer - WORD
        if new_sp < 0:
            raise VMError("Out of memory.")
        self._write(f"DEBUG: {value}\n")
        self.memory[new_sp:new_sp + WORD] = (value & 0xFFFFFFFF).to_bytes(WORD, "big")
        self.stack_pointer = new_sp

    def _read_line(self) -> str:
        return self.stdin.readline().strip()

    # -- instructions ------------------------------------------------------

    def _misc(self, instruction: int) -> None:
        label, handler = self._misc_ops.get(instruction >> 24, (None, None))
        if label is None:
            raise VMError("Bad instruction.")
        self._write(label + "\n")
        if handler is not None:
            handler(instruction)

    def _exit(self, instruction: int) -> None:
        code = _to_i32(instruction)
        self.exit_code = code
        self.halted = True
        self._write(f"DEBUG: exit code: {code}\n")

    def _input(self, instruction: int) -> None:
        text = self._read_line()
        if "0x" in text or "0X" in text:
            value = _parse_i32(text[2:], 16, "Bad Hex Input")
        elif "0b" in text or "0B" in text:
            value = _parse_i32(text[2:], 2, "Bad Binary Input")
        else:
            value = _parse_i32(text, 10, "Bad input.")
        self._push_word(value)

    def _stinput(self, instruction: int) -> None:
        limit = instruction & 0x00FF_FFFF
        self._write(f"{limit}\n")
        # The line is consumed and cut to the limit; string storage is not defined yet.
        _ = self._read_line()[:limit]

    def _debug(self, instruction: int) -> None:
        self._write(self.dump_stack())
        self._write(f" - stack pointer:   {self.stack_pointer}\n")
        self._write(f" - program counter: {self.program_counter}\n")

    def _push(self, instruction: int) -> None:
        value = instruction & 0x0FFFFFFF
        if value & (1 << 27):
            value |= 0xF << 28
        self._push_word(_to_i32(value))

    def _pop(self, instruction: int) -> None:
        offset = instruction & 0x0FFFFFFF
        new_sp = self.stack_pointer + offset
        self._write(f"DEBUG: sp: {self.stack_pointer} o:{offset} nsp:{new_sp}\n")
        if offset % WORD:
            raise VMError("pop: Offset should be a multiple of four.")
        if self.stack_pointer == MEMORY_SIZE:
            return
        self.stack_pointer = min(new_sp, MEMORY_SIZE)

    def _binary_arithmetic(self, instruction: int) -> None:
        which = (instruction >> 24) & 0xF
        right = _to_i32(self._pop_word())
        left = _to_i32(self._pop_word())

        if which in (3, 4) and right == 0:
            raise VMError("Attempt to divide by zero.")
        if which <= 8 and right < 0:
            raise VMError("Attempt to shift by a negative number.")

        self._write(f"{which:x} - l:{left} r:{right} - ")
        try:
            name, operation = _BINARY_OPS[which]
        except KeyError:
            raise VMError("Binary arithmetic instruction contained bad identifier.") from None
        self._write(name + "\n")
        result = _to_i32(operation(left, right))
        self._write(f"Result: {result}\n")
        self._push_word(result)

    def _unary_arithmetic(self, instruction: int) -> None:
        operand = _to_i32(self._pop_word())
        which = (instruction >> 24) & 0xF
        self._write(f"DEBUG -- wo:{which} op:{operand} -- ")
        try:
            name, operation = _UNARY_OPS[which]
        except KeyError:
            raise VMError("Unary arithmetic instruction contained bad identifier.") from None
        self._write(name + "\n")
        self._push_word(_to_i32(operation(operand)))

    @staticmethod
    def _branch_offset(instruction: int) -> int:
        raw = (instruction >> 2) & 0x3FFFFFF
        return raw - (1 << 26) if raw & (1 << 25) else raw

    def _call(self, instruction: int) -> None:
        offset = self._branch_offset(instruction)
        return_address = self.program_counter + WORD
        self._push_word(return_address)
        # Step adds one word after execution, so land one word short.
        self.program_counter = _to_i32(self.program_counter + (offset << 2)) - WORD
        self._write(
            f"DEBUG: call - return_address={return_address}, "
            f"new_pc={self.program_counter + WORD}, raw_offset={offset & 0xFFFFFFFF:#x}\n"
        )

    def _goto(self, instruction: int) -> None:
        offset = self._branch_offset(instruction)
        self._write(f"Goto offset: {offset}\n")