import argparse
import sys
from dataclasses import dataclass
from types import MappingProxyType

import pyparsing as pp


WILDCARD = "*"
TAPE_MARKER = "*"
# every character str.split() and the regex \s treat as a separator
WHITESPACE = "".join(c for c in map(chr, range(0x3001)) if c.isspace())


class TuringException(Exception):
    pass


class TuringParsingException(TuringException):
    pass


class TuringCompileException(TuringException):
    pass


@dataclass(frozen=True)
class Action:
    write: str
    direction: str
    next_state: str
    line: int = 0


@dataclass(frozen=True)
class TapeCell:
    symbol: str
    marked: bool


token = pp.Regex(r"\S+").set_whitespace_chars(WHITESPACE)

marked_cell = pp.Regex(r"\*\S+").set_whitespace_chars(WHITESPACE)
marked_cell.set_parse_action(
    lambda toks: TapeCell(toks[0][len(TAPE_MARKER):], True))
plain_cell = token.copy().set_parse_action(
    lambda toks: TapeCell(toks[0], False))
tape_parser = pp.OneOrMore(marked_cell | plain_cell) \
    .set_whitespace_chars(WHITESPACE)

header_parser = token("name")

transition_parser = (
    token("state") + token("symbol") + token("write")
    + token("direction") + token("next_state")
).set_whitespace_chars(WHITESPACE)


def split_lines(source):
    # only "\n" ends a line, form feeds and other separators stay inside it
    lines = source.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.rstrip("\r") for line in lines]


def parse_line(parser, line, number, parse_all=True):
    try:
        return parser.parse_string(line.strip(), parse_all=parse_all)
    except pp.ParseException as e:
        raise TuringParsingException("Line {}: {}".format(number, e))


class TuringMachine:
    SECTIONS = ("tape", "init state", "accept state", "reject state")

    def __init__(self, tape, cursor, init_state, accept_state,
                 reject_state, transitions, markers=1):
        if not 0 <= cursor < len(tape):
            raise TuringParsingException(
                "Cursor {} is outside of the tape".format(cursor))
        self._tape = tuple(tape)
        self._cursor = cursor
        self._init_state = init_state
        self._accept_state = accept_state
        self._reject_state = reject_state
        self._transitions = MappingProxyType({
            state: MappingProxyType(dict(actions))
            for state, actions in transitions.items()})
        self._markers = markers

    @property
    def tape(self):
        return self._tape

    @property
    def cursor(self):
        return self._cursor

    @property
    def init_state(self):
        return self._init_state

    @property
    def accept_state(self):
        return self._accept_state

    @property
    def reject_state(self):
        return self._reject_state

    @property
    def transitions(self):
        return self._transitions

    @property
    def markers(self):
        return self._markers

    @classmethod
    def from_string(cls, source):
        return cls.from_lines(split_lines(source))

    @classmethod
    def from_file(cls, path, encoding="utf-8"):
        try:
            with open(path, "r", encoding=encoding) as fobj:
                lines = split_lines(fobj.read())
        except (OSError, UnicodeDecodeError) as e:
            raise TuringParsingException(
                "Can't read {}: {}".format(path, e))
        return cls.from_lines(lines)

    @classmethod
    def from_lines(cls, lines):
        lines = [line.rstrip("\r\n") for line in lines]
        for i, section in enumerate(cls.SECTIONS):
            if i >= len(lines):
                raise TuringParsingException("No {}".format(section))
            if not lines[i].strip():
                raise TuringParsingException(
                    "No {} (line {} is blank)".format(section, i + 1))

        cells = parse_line(tape_parser, lines[0], 1)
        init_state, accept_state, reject_state = (
            parse_line(header_parser, line, number, parse_all=False)["name"]
            for number, line in enumerate(lines[1:4], start=2))
        tape = [cell.symbol for cell in cells]
        marked = [i for i, cell in enumerate(cells) if cell.marked]
        if not marked:
            raise TuringParsingException(
                "Line 1: cursor marker '{}' wasn't found on the tape".format(
                    TAPE_MARKER))

        transitions = {}
        for number, line in enumerate(lines[4:], start=5):
            if not line.strip():
                continue
            try:
                fields = transition_parser.parse_string(
                    line.strip(), parse_all=True)
            except pp.ParseException:
                raise TuringParsingException(
                    "Line {}: transition needs exactly 5 fields "
                    "'state symbol write direction next_state', got {}".format(
                        number, len(line.split())))
            transitions.setdefault(fields["state"], {})[fields["symbol"]] = \
                Action(fields["write"], fields["direction"],
                       fields["next_state"], number)

        return cls(tape, marked[0], init_state, accept_state,
                   reject_state, transitions, markers=len(marked))

    def list_states(self):
        states = {self.init_state: None,
                  self.accept_state: None,
                  self.reject_state: None}
        for state, actions in self.transitions.items():
            states[state] = None
            for action in actions.values():
                states[action.next_state] = None
        return list(states)

    def list_symbols(self):
        symbols = dict.fromkeys(self.tape)
        for actions in self.transitions.values():
            for symbol, action in actions.items():
                symbols[symbol] = None
                if action.write != WILDCARD:
                    symbols[action.write] = None
        return list(symbols)

    def undefined_transitions(self):
        halting = (self.accept_state, self.reject_state)
        symbols = self.list_symbols()
        undefined = []
        for state in self.list_states():
            if state in halting:
                continue
            actions = self.transitions.get(state, {})
            undefined.extend(
                (state, symbol) for symbol in symbols if symbol not in actions)
        return undefined


class Encoding:
    def __init__(self, states, symbols):
        self._states = {name: i for i, name in enumerate(states)}
        self._symbols = {name: i for i, name in enumerate(symbols)}

    @classmethod
    def from_machine(cls, machine, sort=False):
        states = machine.list_states()
        symbols = machine.list_symbols()
        if sort:
            states, symbols = sorted(states), sorted(symbols)
        return cls(states, symbols)

    @property
    def states(self):
        return self._states

    @property
    def symbols(self):
        return self._symbols

    def state(self, name):
        try:
            return self._states[name]
        except KeyError:
            raise TuringCompileException(
                "State '{}' has no encoding".format(name))

    def symbol(self, name):
        try:
            return self._symbols[name]
        except KeyError:
            raise TuringCompileException(
                "Symbol '{}' has no encoding".format(name))


class TuringTranslator:
    MOVES = {"L": "move_left", "R": "move_right", WILDCARD: None}
    ACCEPT_CHAR = ord("Y")
    REJECT_CHAR = ord("N")
    NEWLINE_CHAR = ord("\n")

    def __init__(self, machine, sort=False, strict=False):
        self._machine = machine
        self._strict = strict
        self._encoding = Encoding.from_machine(machine, sort=sort)

    @property
    def machine(self):
        return self._machine

    @property
    def encoding(self):
        return self._encoding

    def check(self):
        problems = []
        if self.machine.markers > 1:
            problems.append("tape has {} cursor markers".format(
                self.machine.markers))
        undefined = self.machine.undefined_transitions()
        if undefined:
            problems.append("undefined transitions: " + ", ".join(
                "({}, {})".format(state, symbol)
                for state, symbol in undefined))
        if problems:
            raise TuringCompileException(
                "Strict check failed: " + "; ".join(problems))

    def prologue(self):
        code = []
        for symbol in self.machine.tape:
            code.append(f"symbol = {self.encoding.symbol(symbol)}")
            code.append("move_right")
        code.extend(["move_left"] * len(self.machine.tape))
        code.extend(["move_right"] * self.machine.cursor)
        return code

    def _action(self, action):
        if action.direction not in self.MOVES:
            raise TuringCompileException(
                f"Line {action.line}: invalid direction '{action.direction}'")
        code = []
        if action.write != WILDCARD:
            code.append(f"symbol = {self.encoding.symbol(action.write)}")
        if self.MOVES[action.direction]:
            code.append(self.MOVES[action.direction])
        code.append(f"state = {self.encoding.state(action.next_state)}")
        return code

    def _chain(self, register, arms):
        # if a { .. } else { if b { .. } else { .. } }
        code = []
        for i, (value, body) in enumerate(arms):
            if i:
                code.append("} else {")
            code.append(f"if {register} == {value} {{")
            code.extend(body)
        code.extend(["}"] * len(arms))
        return code

    def transition_function(self):
        arms = []
        for state, actions in self.machine.transitions.items():
            inner = [(self.encoding.symbol(symbol), self._action(action))
                     for symbol, action in actions.items()]
            arms.append((self.encoding.state(state),
                         self._chain("symbol", inner)))
        return self._chain("state", arms)

    def compile(self):
        if self._strict:
            self.check()
        accept = self.encoding.state(self.machine.accept_state)
        reject = self.encoding.state(self.machine.reject_state)
        code = self.prologue()
        code.append(f"state = {self.encoding.state(self.machine.init_state)}")
        code.append(f"while state != {accept} && state != {reject} {{")
        code.extend(self.transition_function())
        code.append("}")
        code.extend([
            f"if state == {accept} {{",
            f"msg = {self.ACCEPT_CHAR}",
            "output ( msg )",
            "} else {",
            f"msg = {self.REJECT_CHAR}",
            "output ( msg )",
            "}",
            f"msg = {self.NEWLINE_CHAR}",
            "output ( msg )",
        ])
        return "\n".join(code)


def compile_file(path, sort=False, strict=False, encoding="utf-8"):
    machine = TuringMachine.from_file(path, encoding=encoding)
    return TuringTranslator(machine, sort=sort, strict=strict)


def print_encoding(encoding, file):
    print("States:", file=file)
    for name, value in encoding.states.items():
        print(f"  {value}\t{name}", file=file)
    print("Symbols:", file=file)
    for name, value in encoding.symbols.items():
        print(f"  {value}\t{name}", file=file)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Translates a Turing machine description into a tape language program",
        prog="Turing Translator"
    )

    parser.add_argument("path", help="Path to the machine description")
    parser.add_argument("--sort", action="store_true",
                        help="Number states and symbols in lexicographic order")
    parser.add_argument("--strict", action="store_true",
                        help="Reject machines with undefined transitions")
    parser.add_argument("--view", action="store_true",
                        help="Print the state and symbol encodings to stderr")
    parser.add_argument("-e", "--encoding", action="store", default="utf-8",
                        help="Encoding of the machine description")

    args = parser.parse_args(argv)
    try:
        translator = compile_file(args.path, sort=args.sort,
                                  strict=args.strict, encoding=args.encoding)
        program = translator.compile()
    except TuringException as e:
        print("Error:", str(e), file=sys.stderr)
        return 1
    if args.view:
        print_encoding(translator.encoding, sys.stderr)
    print(program)
    return 0


if __name__ == "__main__":
    sys.exit(main())
