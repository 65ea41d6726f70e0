import inspect
import os
import sys

import pytest

from tape_runtime import (
    Assign, If, Move, TapeMachine, TapeParsingException, TapeProgram,
    TapeRuntimeError, While, main,
)
from turing_translator import TuringMachine, TuringTranslator

root = os.path.join(os.path.dirname(__file__), "train_tape")


def get_results(program, max_iterations=1000):
    machine = TapeMachine(TapeProgram(program))
    return machine.execute(max_iterations=max_iterations)


def run_machine(source, sort=False, max_iterations=1000):
    program = TuringTranslator(
        TuringMachine.from_string(source), sort=sort).compile()
    return get_results(program, max_iterations)[0]


def run_file(name, sort=False, max_iterations=1000):
    program = TuringTranslator(
        TuringMachine.from_file(os.path.join(root, name)), sort=sort).compile()
    return get_results(program, max_iterations)[0]


def test_parse_program():
    program = TapeProgram(
        "symbol = 3\nmove_left\n"
        "while state != 1 && state != 2 {\n"
        "if state == 0 {\nstate = 1\n} else {\nstate = 2\n}\n"
        "}\n")
    first, second, loop = program.statements
    assert first == Assign("symbol", 3)
    assert second == Move(-1)
    assert isinstance(loop, While)
    assert [str(c) for c in loop.condition] == ["state != 1", "state != 2"]
    branch = loop.body[0]
    assert isinstance(branch, If)
    assert branch.body == [Assign("state", 1)]
    assert branch.orelse == [Assign("state", 2)]


def test_parse_error():
    with pytest.raises(TapeParsingException, match="line 2"):
        TapeProgram("state = 1\nstate := 2\n")


def test_symbol_follows_head():
    machine = TapeMachine(TapeProgram(
        "symbol = 5\nmove_right\nsymbol = 7\nmove_left\n"
        "if symbol == 5 {\nmsg = 65\noutput ( msg )\n}\n"
        "move_right\nmove_right\n"
        "if symbol == 0 {\nmsg = 66\noutput ( msg )\n}\n"))
    output, results = machine.execute()
    assert output == "AB"
    assert machine.head == 2
    assert machine.tape == {0: 5, 1: 7}
    assert results["moves"] == 4
    assert results["used_cells"] == 3


def test_iteration_limit():
    with pytest.raises(TapeRuntimeError, match="Max iteration limit"):
        get_results("while state == 0 {\nmove_right\n}\n", max_iterations=50)


def test_accept():
    assert run_file("accept.tm") == "Y\n"


def test_reject():
    assert run_file("reject.tm") == "N\n"


def test_missing_init_transition_never_halts():
    with pytest.raises(TapeRuntimeError):
        run_file("stuck.tm", max_iterations=100)


def test_undefined_pair_never_halts():
    with pytest.raises(TapeRuntimeError):
        run_machine("*1\ns\nacc\nrej\ns 0 * R acc\n", max_iterations=100)


def test_cursor_and_left_move():
    assert run_file("rewind.tm") == "Y\n"
    assert run_machine("*a b\ns\nyes\nno\ns a * R t\nt a * * yes\nt b * * no\n") \
        == "N\n"


def test_written_symbol_is_kept():
    assert run_file("overwrite.tm") == "Y\n"
    assert run_file("overwrite.tm", sort=True) == "Y\n"


@pytest.mark.parametrize("tape, expected", [
    ("*_", "Y\n"),
    ("*1 _", "N\n"),
    ("*1 1 0 _", "Y\n"),
    ("*1 0 1 0 1 _", "N\n"),
])
def test_parity(tape, expected):
    with open(os.path.join(root, "parity.tm")) as fobj:
        lines = fobj.read().splitlines()
    source = "\n".join([tape] + lines[1:])
    assert run_machine(source) == expected
    assert run_machine(source, sort=True) == expected


def test_parity_file():
    assert run_file("parity.tm") == "N\n"


def test_main(capsys, tmp_path):
    path = tmp_path / "accept.tape"
    path.write_text(TuringTranslator(
        TuringMachine.from_file(os.path.join(root, "accept.tm"))).compile())
    assert main([str(path), "--notrace"]) == 0
    assert capsys.readouterr().out == "Y\n"
    assert main([str(path)]) == 0
    assert "Loop iterations: 1" in capsys.readouterr().out


def test_main_errors(capsys, tmp_path):
    path = tmp_path / "loop.tape"
    path.write_text("while state == 0 {\n}\n")
    assert main([str(path), "-m", "10"]) == 1
    assert capsys.readouterr().err.startswith("Error:")
    assert main([str(tmp_path / "missing.tape")]) == 1


@pytest.fixture
def shallow_stack():
    limit = sys.getrecursionlimit()
    sys.setrecursionlimit(len(inspect.stack(0)) + 150)
    yield
    sys.setrecursionlimit(limit)


def chain_program(length):
    lines = ["*0", "s0", "acc", "rej"]
    lines += [f"s{i} 0 0 * s{i + 1}" for i in range(length)]
    lines.append(f"s{length} 0 0 * acc")
    return TuringTranslator(
        TuringMachine.from_string("\n".join(lines))).compile()


def test_deep_program_is_a_parse_error(shallow_stack):
    program = chain_program(200)
    with pytest.raises(TapeParsingException, match="nested too deeply"):
        TapeProgram(program)


def test_main_deep_program(capsys, tmp_path, shallow_stack):
    path = tmp_path / "chain.tape"
    path.write_text(chain_program(200))
    assert main([str(path)]) == 1
    assert "nested too deeply" in capsys.readouterr().err


def test_chain_program():
    assert get_results(chain_program(5))[0] == "Y\n"
