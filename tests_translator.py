import os

import pytest

from turing_translator import (
    Action, Encoding, TuringCompileException, TuringMachine,
    TuringParsingException, TuringTranslator, main,
)

root = os.path.join(os.path.dirname(__file__), "train_tape")


def get_machine(name):
    return TuringMachine.from_file(os.path.join(root, name))


def get_program(source, **kwargs):
    return TuringTranslator(
        TuringMachine.from_string(source), **kwargs).compile()


ACCEPT_PROGRAM = """\
symbol = 0
move_right
move_left
state = 0
while state != 1 && state != 2 {
if state == 0 {
if symbol == 0 {
symbol = 0
state = 1
}
}
}
if state == 1 {
msg = 89
output ( msg )
} else {
msg = 78
output ( msg )
}
msg = 10
output ( msg )"""


def test_parse_machine():
    machine = get_machine("rewind.tm")
    assert machine.tape == ("a", "b")
    assert machine.cursor == 1
    assert machine.init_state == "s"
    assert machine.accept_state == "yes"
    assert machine.reject_state == "no"
    assert list(machine.transitions) == ["s", "t"]
    assert machine.transitions["s"]["b"] == Action("*", "L", "t", 5)


def test_header_extra_tokens_are_ignored():
    machine = TuringMachine.from_string("*0\ns0 comment\nacc x\nrej y z\n")
    assert (machine.init_state, machine.accept_state, machine.reject_state) \
        == ("s0", "acc", "rej")
    assert dict(machine.transitions) == {}


def test_first_marker_wins():
    machine = TuringMachine.from_string("0 *1 *2\ns\na\nr\n")
    assert machine.tape == ("0", "1", "2")
    assert machine.cursor == 1
    assert machine.markers == 2


def test_bare_marker_is_a_symbol():
    machine = TuringMachine.from_string("* *x\ns\na\nr\n")
    assert machine.tape == ("*", "x")
    assert machine.cursor == 1


@pytest.mark.parametrize("source, message", [
    ("", "No tape"),
    ("*0\n", "No init state"),
    ("*0\ns\n", "No accept state"),
    ("*0\ns\na\n", "No reject state"),
    ("*0\n\na\nr\n", "No init state"),
    ("*0\ns\na\n   \n", "No reject state"),
])
def test_missing_sections(source, message):
    with pytest.raises(TuringParsingException, match=message):
        TuringMachine.from_string(source)


def test_missing_cursor_marker():
    with pytest.raises(TuringParsingException, match="cursor marker"):
        TuringMachine.from_string("0 1\ns\na\nr\n")


@pytest.mark.parametrize("line", ["s 0 1 R", "s 0 1 R t extra"])
def test_transition_field_count(line):
    with pytest.raises(TuringParsingException, match="Line 6"):
        TuringMachine.from_string("*0\ns\na\nr\ns 0 0 R s\n" + line + "\n")


def test_blank_transition_lines_are_skipped():
    machine = get_machine("overwrite.tm")
    assert machine.transitions["s"]["a"].line == 6
    assert list(machine.transitions["u"]) == ["b", "a"]


def test_last_transition_wins():
    machine = TuringMachine.from_string(
        "*0\ns\na\nr\ns 0 1 R r\ns 1 1 R r\ns 0 0 L a\n")
    assert list(machine.transitions["s"]) == ["0", "1"]
    assert machine.transitions["s"]["0"] == Action("0", "L", "a", 7)


def test_unreadable_file():
    with pytest.raises(TuringParsingException, match="Can't read"):
        get_machine("missing.tm")


def test_encoding_covers_every_name():
    machine = get_machine("overwrite.tm")
    encoding = Encoding.from_machine(machine)
    assert encoding.states == {"s": 0, "acc": 1, "rej": 2, "t": 3, "u": 4}
    # "b" enters the alphabet as a write target
    assert encoding.symbols == {"a": 0, "b": 1}


def test_encoding_includes_tape_only_symbols():
    machine = TuringMachine.from_string("x *y z\ns\na\nr\ns y * R a\n")
    assert Encoding.from_machine(machine).symbols == {"x": 0, "y": 1, "z": 2}


def test_wildcard_write_is_not_a_symbol():
    machine = TuringMachine.from_string("*0\ns\na\nr\ns 0 * * a\n")
    assert machine.list_symbols() == ["0"]


def test_sorted_encoding():
    machine = get_machine("parity.tm")
    encoding = Encoding.from_machine(machine, sort=True)
    assert encoding.states == {"acc": 0, "even": 1, "odd": 2, "rej": 3}
    assert encoding.symbols == {"0": 0, "1": 1, "_": 2}


def test_unknown_name():
    encoding = Encoding(["s"], ["0"])
    with pytest.raises(TuringCompileException, match="State 'q'"):
        encoding.state("q")
    with pytest.raises(TuringCompileException, match="Symbol '9'"):
        encoding.symbol("9")


def test_accept_program():
    translator = TuringTranslator(get_machine("accept.tm"))
    assert translator.compile() == ACCEPT_PROGRAM


def test_outer_arms_match_table_states():
    translator = TuringTranslator(get_machine("parity.tm"))
    code = translator.transition_function()
    outer = [line for line in code if line.startswith("if state ==")]
    assert len(outer) == len(translator.machine.transitions) == 2


def test_inner_arms_match_state_symbols():
    translator = TuringTranslator(get_machine("overwrite.tm"))
    code = translator.transition_function()
    assert len([line for line in code if line.startswith("if symbol ==")]) \
        == sum(len(actions) for actions in translator.machine.transitions.values())
    assert code.count("} else {") == (3 - 1) + (2 - 1)
    assert code.count("if state == 3 {") == 1


def test_actions():
    translator = TuringTranslator(get_machine("overwrite.tm"))
    code = translator.transition_function()
    assert code[:5] == [
        "if state == 0 {",
        "if symbol == 0 {",
        "symbol = 1",
        "move_left",
        "state = 3",
    ]
    assert "move_right" in code


def test_empty_table():
    translator = TuringTranslator(get_machine("accept.tm"))
    assert TuringTranslator(
        TuringMachine.from_string("*0\ns\na\nr\n")).transition_function() == []
    assert translator.transition_function()[-2:] == ["}", "}"]


def test_invalid_direction():
    with pytest.raises(TuringCompileException, match=r"Line 5: invalid direction 'U'"):
        get_program("*0\ns\na\nr\ns 0 0 U a\n")


def test_single_cell_prologue():
    translator = TuringTranslator(get_machine("accept.tm"))
    assert translator.prologue() == ["symbol = 0", "move_right", "move_left"]


def test_prologue_positions_head():
    translator = TuringTranslator(get_machine("rewind.tm"))
    assert translator.prologue() == [
        "symbol = 0", "move_right",
        "symbol = 1", "move_right",
        "move_left", "move_left",
        "move_right",
    ]


def test_compile_is_deterministic():
    with open(os.path.join(root, "parity.tm")) as fobj:
        source = fobj.read()
    assert get_program(source) == get_program(source)
    assert get_program(source, sort=True) == get_program(source, sort=True)


def test_strict_mode():
    with pytest.raises(TuringCompileException, match=r"\(s0, 0\)"):
        TuringTranslator(get_machine("stuck.tm"), strict=True).compile()
    assert TuringTranslator(get_machine("accept.tm"), strict=True).compile() \
        == ACCEPT_PROGRAM


def test_strict_mode_rejects_two_markers():
    with pytest.raises(TuringCompileException, match="2 cursor markers"):
        get_program("*0 *0\ns\na\nr\ns 0 * * a\n", strict=True)


def test_undefined_transitions():
    machine = get_machine("parity.tm")
    assert machine.undefined_transitions() == []
    machine = get_machine("overwrite.tm")
    assert machine.undefined_transitions() == [("s", "b"), ("t", "b")]


def test_main(capsys):
    assert main([os.path.join(root, "accept.tm")]) == 0
    assert capsys.readouterr().out == ACCEPT_PROGRAM + "\n"


def test_main_view(capsys):
    assert main([os.path.join(root, "rewind.tm"), "--view"]) == 0
    err = capsys.readouterr().err
    assert "States:" in err
    assert "1\tyes" in err


@pytest.mark.parametrize("name, args", [
    ("missing.tm", []),
    ("stuck.tm", ["--strict"]),
])
def test_main_errors(capsys, name, args):
    assert main([os.path.join(root, name)] + args) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith("Error:")


@pytest.mark.parametrize("space", ["\xa0", "　", " "])
def test_unicode_whitespace_separates_tokens(space):
    machine = TuringMachine.from_string(
        f"*0{space}1\n{space}s\na{space}x\nr\ns{space}0 0 * a\n")
    assert machine.tape == ("0", "1")
    assert machine.init_state == "s"
    assert machine.accept_state == "a"
    assert machine.transitions["s"]["0"] == Action("0", "*", "a", 5)


def test_unicode_whitespace_field_count():
    with pytest.raises(TuringParsingException, match="got 4"):
        TuringMachine.from_string("*0\ns\na\nr\ns　0 0 *\n")


def test_main_unicode_whitespace(capsys, tmp_path):
    path = tmp_path / "nbsp.tm"
    path.write_text("*0\xa01\ns\na\nr\ns 0 0 * a\n", encoding="utf-8")
    assert main([str(path)]) == 0
    assert capsys.readouterr().out.startswith("symbol = 0\nmove_right\nsymbol = 1")


def test_form_feed_stays_inside_line():
    with pytest.raises(TuringParsingException, match="Line 6"):
        TuringMachine.from_string("*0\ns\na\nr\ns 0\f0 * a\ns 1 1\n")
    machine = TuringMachine.from_string("*0\ns\na\nr\ns 0\f0 * a\r\ns 1 1 * r\n")
    assert machine.transitions["s"]["1"].line == 6


def test_transitions_are_read_only():
    machine = get_machine("accept.tm")
    with pytest.raises(TypeError):
        machine.transitions["s1"] = {}
    with pytest.raises(TypeError):
        machine.transitions["s0"]["1"] = Action("1", "R", "acc")
