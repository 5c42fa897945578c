"""
Formula Evaluator Module
Parses and evaluates incentive policy formulas over a named-variable scope.

Only arithmetic is supported: + - * /, unary signs, parentheses, numeric
literals and variable names. The formula is tokenized, parsed into a small
AST and evaluated by walking the tree, so a formula can only ever read values
from the scope it is given.
"""

import logging
import math
import numbers
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class FormulaError(Exception):
    """Raised when a formula cannot be parsed or evaluated"""

    def __init__(self, message: str, formula: Optional[str] = None):
        super().__init__(message)
        self.formula = formula


# ---------- Tokens ----------

TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/()])"
    r")"
)


@dataclass(frozen=True)
class Token:
    kind: str  # 'number', 'name', 'op', 'end'
    value: str
    position: int


def tokenize(formula: str) -> List[Token]:
    """Split a formula into tokens, failing on any character outside the grammar"""
    tokens = []
    position = 0
    length = len(formula)

    while position < length:
        if formula[position:].strip() == "":
            break

        match = TOKEN_PATTERN.match(formula, position)
        if not match or match.end() == position:
            offending = formula[position:].lstrip()[:1]
            raise FormulaError(f"Unexpected character {offending!r} at position {position}", formula)

        kind = match.lastgroup
        tokens.append(Token(kind, match.group(kind), match.start(kind)))
        position = match.end()

    tokens.append(Token("end", "", length))
    return tokens


# ---------- AST ----------

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, UnaryOp, BinaryOp]

# Deepest run of parentheses and unary signs the parser accepts
MAX_NESTING_DEPTH = 100


class _Parser:
    """
    Recursive-descent parser:

        expression := term (('+' | '-') term)*
        term       := factor (('*' | '/') factor)*
        factor     := ('+' | '-') factor | primary
        primary    := number | name | '(' expression ')'
    """

    def __init__(self, formula: str):
        self.formula = formula
        self.tokens = tokenize(formula)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, message: str) -> FormulaError:
        return FormulaError(f"{message} at position {self.current.position}", self.formula)

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise FormulaError("Formula is empty", self.formula)

        node = self._expression()
        if self.current.kind != "end":
            raise self._error(f"Unexpected token {self.current.value!r}")
        return node

    def _expression(self) -> Node:
        node = self._term()
        while self.current.kind == "op" and self.current.value in "+-":
            op = self._advance().value
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while self.current.kind == "op" and self.current.value in "*/":
            op = self._advance().value
            node = BinaryOp(op, node, self._factor())
        return node

    def _nested(self, parse):
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self._error(f"Formula is nested more than {MAX_NESTING_DEPTH} levels deep")
        try:
            return parse()
        finally:
            self.depth -= 1

    def _factor(self) -> Node:
        if self.current.kind == "op" and self.current.value in "+-":
            op = self._advance().value
            return UnaryOp(op, self._nested(self._factor))
        return self._primary()

    def _primary(self) -> Node:
        token = self.current

        if token.kind == "number":
            self._advance()
            return Number(float(token.value))

        if token.kind == "name":
            self._advance()
            return Variable(token.value)

        if token.kind == "op" and token.value == "(":
            self._advance()
            node = self._nested(self._expression)
            if not (self.current.kind == "op" and self.current.value == ")"):
                raise self._error("Missing closing parenthesis")
            self._advance()
            return node

        if token.kind == "end":
            raise self._error("Unexpected end of formula")
        raise self._error(f"Unexpected token {token.value!r}")


def parse_formula(formula: str) -> Node:
    """Parse a formula string into an AST"""
    if not isinstance(formula, str):
        raise FormulaError("Formula must be a string")
    return _Parser(formula).parse()


def extract_variables(formula: str) -> List[str]:
    """Return the variable names referenced by a formula, in first-use order"""
    names: List[str] = []

    def walk(node: Node):
        if isinstance(node, Variable):
            if node.name not in names:
                names.append(node.name)
        elif isinstance(node, UnaryOp):
            walk(node.operand)
        elif isinstance(node, BinaryOp):
            walk(node.left)
            walk(node.right)

    tree = parse_formula(formula)
    try:
        walk(tree)
    except RecursionError as e:
        raise FormulaError("Formula is too long to analyse", formula) from e
    return names


def _resolve(name: str, scope: Dict[str, float], defaults: Dict[str, float], formula: str) -> float:
    if name in scope and scope[name] is not None:
        value = scope[name]
    elif name in defaults and defaults[name] is not None:
        value = defaults[name]
    else:
        raise FormulaError(f"Unknown variable '{name}'", formula)

    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise FormulaError(f"Variable '{name}' is not numeric: {value!r}", formula)
    return float(value)


def _evaluate(node: Node, scope: Dict[str, float], defaults: Dict[str, float], formula: str) -> float:
    if isinstance(node, Number):
        return node.value

    if isinstance(node, Variable):
        return _resolve(node.name, scope, defaults, formula)

    if isinstance(node, UnaryOp):
        operand = _evaluate(node.operand, scope, defaults, formula)
        return -operand if node.op == "-" else operand

    if isinstance(node, BinaryOp):
        left = _evaluate(node.left, scope, defaults, formula)
        right = _evaluate(node.right, scope, defaults, formula)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            raise FormulaError("Division by zero", formula)
        return left / right

    raise FormulaError(f"Unsupported node {node!r}", formula)


def evaluate_formula(formula: str, scope: Dict[str, float],
                     defaults: Optional[Dict[str, float]] = None) -> float:
    """
    Evaluate a formula against a variable scope

    Args:
        formula: Arithmetic expression, e.g. "baseSalary + totalCreditPoints * baseIncentiveRate"
        scope: Variable name -> numeric value (case-sensitive)
        defaults: Fallback values for variables missing from the scope

    Returns:
        The numeric result

    Raises:
        FormulaError: on any parse or evaluation failure
    """
    tree = parse_formula(formula)
    try:
        result = _evaluate(tree, scope or {}, defaults or {}, formula)
    except RecursionError as e:
        # Long operator chains build a left-deep tree
        raise FormulaError("Formula is too long to evaluate", formula) from e

    if not math.isfinite(result):
        raise FormulaError(f"Formula produced a non-finite result: {result}", formula)
    return result


def calculate_base_incentive(formula: str, scope: Dict[str, float],
                             defaults: Optional[Dict[str, float]] = None) -> float:
    """Evaluate the policy formula, degrading to zero on failure and never going negative"""
    try:
        result = evaluate_formula(formula, scope, defaults)
    except FormulaError as e:
        logger.warning(f"Base incentive formula failed, using 0: {e} (formula: {formula!r})")
        return 0.0

    return max(0.0, result)
