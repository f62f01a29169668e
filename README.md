# wordvm

`wordvm` is a small stack-based virtual machine. It loads a bytecode image
into a 4096-byte memory and runs 32-bit little-endian instruction words from
address 0 until an exit instruction is reached. The stack grows down from
the top of memory and holds big-endian 32-bit words.

## Image format

An image begins with the four magic bytes `de ad be ef`, followed by at
most 4096 bytes of program. The program is copied to the start of memory
and the rest of memory is filled with zeros. An image that is too large, or
that does not start with the magic bytes, is rejected.

## Running a program

```console
$ wordvm program.v
```

The command takes exactly one argument; otherwise it prints
`usage: wordvm <file.v>` to standard error and exits with status 1.

The process exits with the code given by the program's exit instruction.
If the file cannot be read, is too large or badly formed, or if the program
runs into an error such as a division by zero, a stack underflow, running
out of memory or a bad instruction, the message is written to standard
error and the exit status is 1. While it runs, the machine writes a trace
of every instruction to standard output.

## Using it from Python

```python
import io
from wordvm.machine import VirtualMachine, VMError

vm = VirtualMachine.from_file("program.v", stdin=io.StringIO("42\n"), stdout=io.StringIO())
try:
    code = vm.run()
except VMError as err:
    print("program failed:", err)
else:
    print("exit code", code)
```

- `VirtualMachine(image, stdin=None, stdout=None)` takes the whole image as
  bytes, magic header included, and raises `VMError` if it is invalid.
  `stdin` and `stdout` default to `sys.stdin` and `sys.stdout`.
- `VirtualMachine.from_file(path, stdin=None, stdout=None)` reads the image
  from disk; an unreadable file raises `VMError("Couldn't open file.")`.
- `run()` executes until the program exits and returns the exit code.
- `step()` executes a single instruction and advances the program counter.
- `dump_stack()` returns a hex listing of all of memory, 16 bytes per line.
- The attributes `memory`, `stack_pointer`, `program_counter`, `exit_code`
  and `halted` expose the machine state.
- `Opcode` names the instruction class held in the top four bits of each
  instruction word.

## Instructions

Working instructions are: exit, input, debug (prints the memory dump, stack
pointer and program counter), push of a sign-extended 28-bit value, pop by
a byte offset, the binary operations add, sub, mul, div, rem, and, or,
xor, lsl, lsr and asr, the unary operations neg and not, and call (pushes
the return address and jumps by a signed word offset).

The input instruction reads one line from `stdin` and accepts a decimal
integer, or a hexadecimal or binary one written with a `0x` or `0b` prefix,
within the signed 32-bit range; anything else raises `VMError`.

## What it does not do

Several opcodes are recognised and traced but have no effect yet: swap,
nop, string print, return, binary if, unary if, dup, print and dump. The
goto instruction reports its offset but does not jump. The string input
instruction reads a line and trims it to the given length, but does not
store it anywhere.

## Tests

```console
$ pip install -e ".[test]"
$ pytest
```