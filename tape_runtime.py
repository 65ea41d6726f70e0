import argparse
import sys
from dataclasses import dataclass, field

import pyparsing as pp


class TapeException(Exception):
    pass


class TapeParsingException(TapeException):
    pass


class TapeRuntimeError(TapeException):
    pass


@dataclass
class Assign:
    register: str
    value: int

    def __str__(self):
        return f"{self.register} = {self.value}"


@dataclass
class Move:
    shift: int

    def __str__(self):
        return "move_right" if self.shift > 0 else "move_left"


@dataclass
class Output:
    register: str

    def __str__(self):
        return f"output ( {self.register} )"


@dataclass
class Compare:
    register: str
    operator: str
    value: int

    def __str__(self):
        return f"{self.register} {self.operator} {self.value}"


@dataclass
class If:
    condition: list
    body: list
    orelse: list = field(default_factory=list)

    def __str__(self):
        return "if " + " && ".join(map(str, self.condition))


@dataclass
class While:
    condition: list
    body: list

    def __str__(self):
        return "while " + " && ".join(map(str, self.condition))


LBRACE, RBRACE, LPAR, RPAR = map(pp.Suppress, "{}()")

integer = pp.Word(pp.nums).set_parse_action(lambda toks: int(toks[0]))
register = pp.Word(pp.alphas + "_", pp.alphanums + "_")

compare = (register + pp.one_of("== !=") + integer).set_parse_action(
    lambda toks: Compare(toks[0], toks[1], toks[2]))
condition = pp.Group(compare + pp.ZeroOrMore(pp.Suppress("&&") + compare))

statement = pp.Forward()
block = LBRACE + pp.Group(pp.ZeroOrMore(statement)) + RBRACE

move = (pp.Keyword("move_left") | pp.Keyword("move_right")).set_parse_action(
    lambda toks: Move(-1 if toks[0] == "move_left" else 1))
output = (pp.Keyword("output").suppress() + LPAR + register + RPAR) \
    .set_parse_action(lambda toks: Output(toks[0]))
assign = (register + pp.Suppress("=") + integer).set_parse_action(
    lambda toks: Assign(toks[0], toks[1]))
if_stmt = (pp.Keyword("if").suppress() + condition + block
           + pp.Opt(pp.Keyword("else").suppress() + block)).set_parse_action(
    lambda toks: If(list(toks[0]), list(toks[1]),
                    list(toks[2]) if len(toks) > 2 else []))
while_stmt = (pp.Keyword("while").suppress() + condition + block) \
    .set_parse_action(lambda toks: While(list(toks[0]), list(toks[1])))

statement <<= if_stmt | while_stmt | move | output | assign
program_parser = pp.ZeroOrMore(statement)


class TapeProgram:
    def __init__(self, source):
        if not isinstance(source, str):
            source = "\n".join(source)
        try:
            self._statements = list(
                program_parser.parse_string(source, parse_all=True))
        except pp.ParseException as e:
            raise TapeParsingException(
                "Invalid program at line {}, column {}. Parser message: {}".format(
                    e.lineno, e.col, str(e)))
        except RecursionError:
            raise TapeParsingException(
                "Program is nested too deeply to parse "
                "(recursion limit {})".format(sys.getrecursionlimit()))

    @classmethod
    def from_file(cls, source, encoding="utf-8"):
        with open(source, "r", encoding=encoding) as fobj:
            return cls(fobj.read())

    @property
    def statements(self):
        return self._statements


class TapeMachine:
    SYMBOL_REGISTER = "symbol"
    STATE_REGISTER = "state"

    def __init__(self, program):
        self._program = program
        self._reset()

    def _reset(self):
        self._registers = {}
        self._tape = {}
        self._head = 0

    @property
    def program(self):
        return self._program

    @property
    def tape(self):
        return dict(self._tape)

    @property
    def head(self):
        return self._head

    def read(self, register):
        # symbol is the cell under the head, unwritten cells hold 0
        if register == self.SYMBOL_REGISTER:
            return self._tape.get(self._head, 0)
        return self._registers.get(register, 0)

    def write(self, register, value):
        if register == self.SYMBOL_REGISTER:
            self._tape[self._head] = value
        else:
            self._registers[register] = value

    def _test(self, condition):
        for compare in condition:
            value = self.read(compare.register)
            if compare.operator == "==" and value != compare.value:
                return False
            if compare.operator == "!=" and value == compare.value:
                return False
        return True

    def execute(self, max_iterations=10000, debug_prints=False):
        self._reset()
        self._max_iterations = max_iterations
        self._debug_prints = debug_prints
        self._output = []
        self._used_cells = {self._head}
        self._trace_results = {"iterations": 0, "moves": 0}
        try:
            self._run(self.program.statements)
        except RecursionError:
            raise TapeRuntimeError(
                "Program is nested too deeply to execute")
        self._trace_results["used_cells"] = len(self._used_cells)
        self._trace_results["final_state"] = self.read(self.STATE_REGISTER)
        return "".join(self._output), self._trace_results

    def _run(self, statements):
        for statement in statements:
            if self._debug_prints:
                print(f"[{self._head}] {statement}")
            if isinstance(statement, Assign):
                self.write(statement.register, statement.value)
            elif isinstance(statement, Move):
                self._head += statement.shift
                self._used_cells.add(self._head)
                self._trace_results["moves"] += 1
            elif isinstance(statement, Output):
                self._output.append(chr(self.read(statement.register)))
            elif isinstance(statement, If):
                if self._test(statement.condition):
                    self._run(statement.body)
                else:
                    self._run(statement.orelse)
            elif isinstance(statement, While):
                while self._test(statement.condition):
                    if self._trace_results["iterations"] >= self._max_iterations:
                        raise TapeRuntimeError(
                            "Max iteration limit has reached. "
                            "Maybe, program execution is infinite")
                    self._trace_results["iterations"] += 1
                    self._run(statement.body)
            else:
                raise TapeRuntimeError(f"Unknown statement: {statement}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Runs a tape language program produced by the Turing translator",
        prog="Tape Runtime"
    )

    parser.add_argument("path", help="Path to the program")
    parser.add_argument("-m", "--max-iterations", type=int, default=10000,
                        help="Loop iteration limit")
    parser.add_argument("--notrace", action="store_true",
                        help="Print only the output, without statistics")
    parser.add_argument("-d", "--debug", action="store_true", default=False,
                        help="Print every executed statement")

    args = parser.parse_args(argv)
    try:
        machine = TapeMachine(TapeProgram.from_file(args.path))
        output, results = machine.execute(
            max_iterations=args.max_iterations, debug_prints=args.debug)
    except (OSError, TapeException) as e:
        print("Error:", str(e), file=sys.stderr)
        return 1
    print(output, end="")
    if not args.notrace:
        print("Loop iterations:", results["iterations"])
        print("Head moves:", results["moves"])
        print("Used cells:", results["used_cells"])
        print("Final state:", results["final_state"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
