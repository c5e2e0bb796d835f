"""
Expression Evaluator
====================

Evaluates expressions directly from the active input frame, one character
at a time. Evaluation starts at the frame's current character and stops at
the first character that cannot continue the expression (',', '{', end of
statement, ...), which is left as ``last_byte`` for the caller.

Supported Operations
--------------------
**Arithmetic:** + - * / %  (division truncates toward zero)

**Bitwise:** & | ^ ~ << >>

**Comparison:** < <= > >= = == != <>  (result is 1 or 0)

**Logical:** ! (NOT, result is 1 or 0)

Operands
--------
- Decimal ``42``, hex ``$2a`` or ``0x2a``, binary ``%101010`` or ``0b101010``
- Character literal ``'a'`` or ``"a"``
- ``*`` - current program counter
- ``name`` (global) or ``.name`` (local to the current zone)
- ``( expr )``

Precedence (lowest to highest)
------------------------------
1. Comparison
2. Bitwise OR: |
3. Bitwise XOR: ^
4. Bitwise AND: &
5. Shift: << >>
6. Addition/Subtraction: + -
7. Multiplication/Division: * / %
8. Unary: + - ~ !
9. Primary

Forward References
------------------
A reference to a symbol without a value yields an *undefined* Result
instead of an error, and counts toward the pass's undefined total. The
multi-pass driver re-runs the source until that total reaches zero; in the
final reporting pass an undefined reference raises UndefinedSymbolError.
Callers that cannot proceed without a value use defined_int().
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional
import operator

from flowasm.assembler.cursor import CHAR_EOS, QUOTES
from flowasm.assembler.lexer import LOCAL_PREFIX, is_keyword_char, is_keyword_start
from flowasm.errors import ExpressionError, SeriousError

if TYPE_CHECKING:
    from flowasm.assembler.context import AssemblyContext


# =============================================================================
# Results and Operators
# =============================================================================

@dataclass(frozen=True)
class Result:
    """
    Value of an evaluated expression.

    Attributes:
        value: Integer value (0 if undefined)
        defined: False if any symbol involved had no value yet
    """
    value: int
    defined: bool = True


def _divide(left: int, right: int) -> int:
    quotient = abs(left) // abs(right)
    return -quotient if (left < 0) != (right < 0) else quotient


def _modulo(left: int, right: int) -> int:
    return left - right * _divide(left, right)


def _shift_left(left: int, right: int) -> int:
    return left << right


def _shift_right(left: int, right: int) -> int:
    return left >> right


_COMPARISON_OPS: dict[str, Callable[[int, int], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
}

_SHIFT_OPS = {"<<": _shift_left, ">>": _shift_right}
_ADDITIVE_OPS = {"+": operator.add, "-": operator.sub}
_MULTIPLICATIVE_OPS = {"*": operator.mul, "/": _divide, "%": _modulo}

_OPERATOR_START = set("<>=!|^&+-*/%")
_OPERATOR_PAIRS = {"<=", ">=", "<<", ">>", "<>", "==", "!="}

_HEX_DIGITS = set("0123456789abcdefABCDEF")


# =============================================================================
# Evaluator
# =============================================================================

class ExpressionEvaluator:
    """
    Character-level recursive descent evaluator.

    Bound to an assembly context for symbol lookup, the program counter and
    the active input frame.

    Operators are read lazily: after an operand, the next operator (if
    any) is read once and kept pending until the precedence level it
    belongs to consumes it.
    """

    def __init__(self, ctx: "AssemblyContext"):
        self._ctx = ctx
        self._lexer = ctx.lexer
        self._operator: Optional[str] = None

    # =========================================================================
    # Public Interface
    # =========================================================================

    def evaluate(self) -> Result:
        """
        Evaluate the expression at the current input position.

        Returns:
            The Result; last_byte is left on the first character after the
            expression (blanks skipped)

        Raises:
            ExpressionError: If the expression is malformed
            UndefinedSymbolError: In the final pass, for undefined symbols
        """
        self._operator = None
        result = self._parse_comparison()
        if self._operator is not None:
            raise ExpressionError(
                f"Unexpected operator '{self._operator}'.", self._lexer.location()
            )
        return result

    def defined_int(self) -> int:
        """
        Evaluate an expression whose value is needed right now.

        Raises:
            SeriousError: If the value is undefined (e.g. a forward
                reference in a loop condition)
        """
        result = self.evaluate()
        if not result.defined:
            raise SeriousError("Value not defined.", self._lexer.location())
        return result.value

    # =========================================================================
    # Operator Reading
    # =========================================================================

    def _peek_operator(self) -> Optional[str]:
        if self._operator is None:
            self._operator = self._read_operator()
        return self._operator

    def _take_operator(self) -> str:
        op = self._operator
        self._operator = None
        return op

    def _read_operator(self) -> Optional[str]:
        lexer = self._lexer
        char = lexer.skip_space()
        if char not in _OPERATOR_START:
            return None
        lexer.get_byte()
        op = char
        if char + lexer.last_byte in _OPERATOR_PAIRS:
            op = char + lexer.last_byte
            lexer.get_byte()
        lexer.skip_space()
        return op

    def _binary_level(
        self,
        operators: dict[str, Callable[[int, int], int]],
        operand: Callable[[], Result],
    ) -> Result:
        left = operand()
        while self._peek_operator() in operators:
            op = self._take_operator()
            right = operand()
            left = self._apply(op, operators[op], left, right)
        return left

    def _apply(
        self,
        op: str,
        func: Callable[[int, int], int],
        left: Result,
        right: Result,
    ) -> Result:
        defined = left.defined and right.defined
        if not defined:
            # Operands may be placeholders; don't trip over them
            if op in ("/", "%", "<<", ">>"):
                return Result(0, False)
            return Result(int(func(left.value, right.value)), False)

        if op in ("/", "%") and right.value == 0:
            raise ExpressionError("Division by zero.", self._lexer.location())
        if op in ("<<", ">>") and right.value < 0:
            raise ExpressionError("Negative shift count.", self._lexer.location())
        return Result(int(func(left.value, right.value)))

    # =========================================================================
    # Precedence Levels
    # =========================================================================

    def _parse_comparison(self) -> Result:
        """Parse comparison operators (lowest precedence)."""
        return self._binary_level(_COMPARISON_OPS, self._parse_or)

    def _parse_or(self) -> Result:
        return self._binary_level({"|": operator.or_}, self._parse_xor)

    def _parse_xor(self) -> Result:
        return self._binary_level({"^": operator.xor}, self._parse_and)

    def _parse_and(self) -> Result:
        return self._binary_level({"&": operator.and_}, self._parse_shift)

    def _parse_shift(self) -> Result:
        return self._binary_level(_SHIFT_OPS, self._parse_additive)

    def _parse_additive(self) -> Result:
        return self._binary_level(_ADDITIVE_OPS, self._parse_multiplicative)

    def _parse_multiplicative(self) -> Result:
        return self._binary_level(_MULTIPLICATIVE_OPS, self._parse_unary)

    def _parse_unary(self) -> Result:
        """Parse unary operators (+, -, ~, !)."""
        lexer = self._lexer
        char = lexer.skip_space()

        if char in ("+", "-", "~", "!"):
            lexer.get_byte()
            operand = self._parse_unary()
            if char == "-":
                value = -operand.value
            elif char == "~":
                value = ~operand.value
            elif char == "!":
                value = int(not operand.value)
            else:
                value = operand.value
            return Result(value, operand.defined)

        return self._parse_primary()

    def _parse_primary(self) -> Result:
        """Parse numbers, symbols, the program counter and groups."""
        lexer = self._lexer
        char = lexer.skip_space()

        if char == "(":
            lexer.get_byte()
            result = self._parse_comparison()
            if self._operator is not None or lexer.skip_space() != ")":
                raise ExpressionError("Missing ')'.", lexer.location())
            lexer.get_byte()
            return result

        if char.isdigit():
            return Result(self._read_decimal())

        if char == "$":
            lexer.get_byte()
            return Result(self._read_digits(_HEX_DIGITS, 16))

        if char == "%":
            lexer.get_byte()
            return Result(self._read_digits(set("01"), 2))

        if char in QUOTES:
            return Result(self._read_character(char))

        if char == "*":
            lexer.get_byte()
            return Result(self._ctx.pc)

        if char == LOCAL_PREFIX or is_keyword_start(char):
            return self._read_symbol()

        if char == CHAR_EOS:
            raise ExpressionError("Missing value.", lexer.location())
        raise ExpressionError(f"Unexpected character '{char}'.", lexer.location())

    # =========================================================================
    # Operands
    # =========================================================================

    def _read_digits(self, digits: set[str], base: int) -> int:
        lexer = self._lexer
        chars = []
        while lexer.last_byte in digits:
            chars.append(lexer.last_byte)
            lexer.get_byte()
        if not chars:
            raise ExpressionError("Malformed number.", lexer.location())
        return int("".join(chars), base)

    def _read_decimal(self) -> int:
        lexer = self._lexer
        chars = []
        while is_keyword_char(lexer.last_byte):
            chars.append(lexer.last_byte)
            lexer.get_byte()
        text = "".join(chars).lower()
        try:
            if text.startswith("0x"):
                return int(text[2:], 16)
            if text.startswith("0b"):
                return int(text[2:], 2)
            return int(text, 10)
        except ValueError:
            raise ExpressionError(
                f"Malformed number '{text}'.", lexer.location()
            ) from None

    def _read_character(self, quote: str) -> int:
        lexer = self._lexer
        char = lexer.get_byte()
        if char == CHAR_EOS or char == quote:
            raise ExpressionError("Empty character literal.", lexer.location())
        if lexer.get_byte() != quote:
            raise ExpressionError(
                "Character literal must be a single character.", lexer.location()
            )
        lexer.get_byte()
        return ord(char)

    def _read_symbol(self) -> Result:
        ctx = self._ctx
        zone, name = self._lexer.read_zone_and_keyword(ctx.zone)
        if not name:
            raise ExpressionError("Missing symbol name.", self._lexer.location())

        symbol = ctx.symbols.find(name, zone, location=self._lexer.location())
        if ctx.pass_number == 0:
            symbol.usage += 1
        if symbol.defined:
            return Result(symbol.value)

        ctx.note_undefined(name)
        return Result(0, False)


# =============================================================================
# Symbol Suggestions
# =============================================================================

def find_similar_names(name: str, candidates: list[str]) -> list[str]:
    """
    Find names with similar spelling for error hints.

    Uses simple edit distance heuristic.
    """
    name_lower = name.lower()
    similar = []

    for candidate in candidates:
        candidate_lower = candidate.lower()
        if (
            candidate_lower == name_lower or
            abs(len(candidate) - len(name)) <= 1 and
            _edit_distance(name_lower, candidate_lower) <= 2
        ):
            similar.append(candidate)

    return similar[:3]


def _edit_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein edit distance between two strings."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    distances = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        new_distances = [i + 1]
        for j, c2 in enumerate(s2):
            if c1 == c2:
                new_distances.append(distances[j])
            else:
                new_distances.append(1 + min(
                    distances[j],
                    distances[j + 1],
                    new_distances[-1],
                ))
        distances = new_distances

    return distances[-1]
