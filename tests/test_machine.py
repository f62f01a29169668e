import io

import pytest

from wordvm.machine import Opcode, VirtualMachine, VMError

HEADER = b"\xde\xad\xbe\xef"


def _image(*words):
    return HEADER + b"".join((w & 0xFFFFFFFF).to_bytes(4, "little") for w in words)


def _push(value):
    return 0xF0000000 | (value & 0x0FFFFFFF)


def _binop(op):
    return 0x20000000 | (op << 24)


def _unop(op):
    return 0x30000000 | (op << 24)


def _call(words):
    return 0x50000000 | ((words & 0x3FFFFFF) << 2)


def _pop(offset):
    return 0x10000000 | offset


INPUT = 0x04000000
DEBUG = 0x0F000000
GOTO = 0x70000000


def _vm(*words, stdin=""):
    return VirtualMachine(_image(*words), io.StringIO(stdin), io.StringIO())


def _top(vm):
    return int.from_bytes(vm.memory[vm.stack_pointer:vm.stack_pointer + 4], "big", signed=True)


def test_rejects_bad_magic():
    with pytest.raises(VMError, match="File format is invalid."):
        VirtualMachine(b"\x00\x01\x02\x03", io.StringIO(), io.StringIO())


def test_rejects_short_image():
    with pytest.raises(VMError, match="File format is invalid."):
        VirtualMachine(b"\xde\xad", io.StringIO(), io.StringIO())


def test_rejects_oversized_image():
    with pytest.raises(VMError, match="File too big."):
        VirtualMachine(HEADER + bytes(4097), io.StringIO(), io.StringIO())


def test_memory_padded_and_stack_empty():
    vm = _vm(7)
    assert len(vm.memory) == 4096
    assert vm.stack_pointer == 4096
    assert vm.program_counter == 0


def test_exit_code_returned():
    assert _vm(7).run() == 7


def test_push_sign_extends():
    vm = _vm(_push(-1), 0)
    vm.run()
    assert _top(vm) == -1


def test_push_then_add():
    vm = _vm(_push(2), _push(3), _binop(0), 0)
    vm.run()
    assert _top(vm) == 5
    assert vm.stack_pointer == 4092


def test_division_truncates_toward_zero():
    vm = _vm(_push(-7), _push(2), _binop(3), 0)
    vm.run()
    assert _top(vm) == -3


def test_divide_by_zero():
    with pytest.raises(VMError, match="divide by zero"):
        _vm(_push(1), _push(0), _binop(3), 0).run()


def test_negative_right_operand_rejected_for_low_ops():
    with pytest.raises(VMError, match="shift by a negative"):
        _vm(_push(1), _push(-1), _binop(0), 0).run()


def test_lsr_is_unsigned_asr_is_signed():
    lsr = _vm(_push(-8), _push(1), _binop(9), 0)
    lsr.run()
    asr = _vm(_push(-8), _push(1), _binop(11), 0)
    asr.run()
    assert _top(lsr) > 0
    assert _top(asr) < 0


def test_bad_binary_identifier():
    with pytest.raises(VMError, match="bad identifier"):
        _vm(_push(1), _push(1), _binop(10), 0).run()


def test_binary_pop_from_empty_stack():
    with pytest.raises(VMError, match="stack is empty"):
        _vm(_binop(0), 0).run()


def test_neg_and_not_are_involutions():
    for op in (0, 1):
        vm = _vm(_push(123), _unop(op), _unop(op), 0)
        vm.run()
        assert _top(vm) == 123


def test_bad_unary_identifier():
    with pytest.raises(VMError, match="Unary arithmetic"):
        _vm(_push(1), _unop(5), 0).run()


def test_bad_opcode():
    with pytest.raises(VMError, match="Bad instruction."):
        _vm(0xA0000000).run()


def test_bad_misc_instruction():
    with pytest.raises(VMError, match="Bad instruction."):
        _vm(0x03000000).run()


def test_opcode_values():
    assert Opcode(15) is Opcode.PUSH
    assert Opcode(5) is Opcode.CALL


@pytest.mark.parametrize("text,decimal", [("0x1f", "31"), ("0b101", "5"), ("+12", "12")])
def test_input_radixes_agree(text, decimal):
    a = _vm(INPUT, 0, stdin=text + "\n")
    a.run()
    b = _vm(INPUT, 0, stdin=decimal + "\n")
    b.run()
    assert _top(a) == _top(b)


@pytest.mark.parametrize("text,message", [("abc", "Bad input."), ("0xzz", "Bad Hex"), ("0b12", "Bad Binary"), ("", "Bad input.")])
def test_input_rejects_garbage(text, message):
    with pytest.raises(VMError, match=message):
        _vm(INPUT, 0, stdin=text).run()


def test_stinput_consumes_a_line():
    vm = _vm(0x05000003, INPUT, 0, stdin="hello\n42\n")
    vm.run()
    ref = _vm(INPUT, 0, stdin="42\n")
    ref.run()
    assert _top(vm) == _top(ref)


def test_pop_overshoot_resets_to_bottom():
    vm = _vm(_push(1), _push(2), _pop(0x100), 0)
    vm.run()
    assert vm.stack_pointer == 4096


def test_pop_on_empty_stack_has_no_effect():
    vm = _vm(_pop(4), 0)
    vm.run()
    assert vm.stack_pointer == 4096


def test_pop_misaligned_offset():
    with pytest.raises(VMError, match="multiple of four"):
        _vm(_push(1), _pop(3), 0).run()


def test_call_pushes_return_address_and_jumps():
    vm = _vm(_call(2), 1, 9)
    assert vm.run() == 9
    assert _top(vm) == 4


def test_call_backwards_leaves_memory():
    vm = _vm(_call(-1), 0)
    with pytest.raises(VMError, match="program counter"):
        vm.run()


def test_goto_does_not_move():
    assert _vm(GOTO | (5 << 2), 3).run() == 3


def test_out_of_memory():
    vm = _vm(_push(1), 0)
    vm.stack_pointer = 0
    with pytest.raises(VMError, match="Out of memory."):
        vm.step()


def test_step_advances_program_counter():
    vm = _vm(_push(1), _push(2), 0)
    vm.step()
    vm.step()
    assert vm.program_counter == 8
    assert vm.halted is False


def test_dump_stack_layout():
    vm = _vm(_push(2), 0)
    vm.run()
    lines = vm.dump_stack().splitlines()
    assert len(lines) == 256
    assert lines[0].startswith(" 0000 | ")
    assert lines[-1].endswith("  00  00  00  02")


def test_debug_instruction_reports_state():
    vm = _vm(DEBUG, 0)
    vm.run()
    out = vm.stdout.getvalue()
    assert " - stack pointer:   4096" in out
    assert "Debug Instruction" in out


def test_trace_output():
    vm = _vm(_push(1), 0)
    vm.run()
    assert "Push instruction" in vm.stdout.getvalue()


def test_from_file_missing(tmp_path):
    with pytest.raises(VMError, match="Couldn't open file."):
        VirtualMachine.from_file(tmp_path / "missing.v", io.StringIO(), io.StringIO())


def test_from_file_runs(tmp_path):
    path = tmp_path / "prog.v"
    path.write_bytes(_image(_push(4), 6))
    vm = VirtualMachine.from_file(path, io.StringIO(), io.StringIO())
    assert vm.run() == 6