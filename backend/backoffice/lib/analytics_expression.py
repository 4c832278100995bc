"""
Safe arithmetic evaluator for analytics builder formulas.

Supports + - * / and parentheses over numbers and metric slot names, using a
recursive-descent parser (never eval). Division by zero makes the whole
result None; unknown slots and syntax errors raise ExpressionError.

    expr   := term (('+' | '-') term)*
    term   := factor (('*' | '/') factor)*
    factor := '-' factor | '(' expr ')' | NUMBER | IDENT
"""

import math
import re
from decimal import InvalidOperation
from typing import Iterable, List, Mapping, NamedTuple, Optional, Union

from backoffice.lib.money import round2

NUMBER_CHARS = re.compile(r"[\d.]")
IDENT_START = re.compile(r"[a-zA-Z_]")
IDENT_CHARS = re.compile(r"[a-zA-Z0-9_]")

OPERATORS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "(": "LPAREN",
    ")": "RPAREN",
}


class ExpressionError(ValueError):
    pass


class Token(NamedTuple):
    type: str
    value: str


class _DivisionByZero:
    """Propagates through the parse instead of a number."""


DIV_BY_ZERO = _DivisionByZero()

Value = Union[float, _DivisionByZero]


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch.isdigit() or (ch == "." and i + 1 < n and text[i + 1].isdigit()):
            start = i
            while i < n and NUMBER_CHARS.match(text[i]):
                i += 1
            tokens.append(Token("NUMBER", text[start:i]))
            continue
        if IDENT_START.match(ch):
            start = i
            while i < n and IDENT_CHARS.match(text[i]):
                i += 1
            tokens.append(Token("IDENT", text[start:i]))
            continue
        if ch in OPERATORS:
            tokens.append(Token(OPERATORS[ch], ch))
            i += 1
            continue
        raise ExpressionError(f"Unexpected character: '{ch}'")
    tokens.append(Token("EOF", ""))
    return tokens


class _Parser:
    def __init__(self, tokens: List[Token], context: Mapping[str, float]):
        self.tokens = tokens
        self.context = context
        self.pos = 0

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def consume(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def at_end(self) -> bool:
        return self.peek().type == "EOF"

    def expect(self, token_type: str) -> Token:
        token = self.consume()
        if token.type != token_type:
            raise ExpressionError(f"Expected {token_type}, got {token.type}")
        return token

    def parse_expr(self) -> Value:
        left = self.parse_term()
        while self.peek().type in ("PLUS", "MINUS"):
            op = self.consume().type
            right = self.parse_term()
            if left is DIV_BY_ZERO or right is DIV_BY_ZERO:
                left = DIV_BY_ZERO
                continue
            left = left + right if op == "PLUS" else left - right
        return left

    def parse_term(self) -> Value:
        left = self.parse_factor()
        while self.peek().type in ("STAR", "SLASH"):
            op = self.consume().type
            right = self.parse_factor()
            if left is DIV_BY_ZERO or right is DIV_BY_ZERO:
                left = DIV_BY_ZERO
                continue
            if op == "SLASH":
                left = DIV_BY_ZERO if right == 0 else left / right
            else:
                left = left * right
        return left

    def parse_factor(self) -> Value:
        token = self.peek()
        if token.type == "MINUS":
            self.consume()
            value = self.parse_factor()
            return value if value is DIV_BY_ZERO else -value
        if token.type == "LPAREN":
            self.consume()
            value = self.parse_expr()
            self.expect("RPAREN")
            return value
        if token.type == "NUMBER":
            self.consume()
            try:
                value = float(token.value)
            except ValueError:
                raise ExpressionError(f"Invalid number: '{token.value}'")
            if not math.isfinite(value):
                raise ExpressionError(f"Number out of range: '{token.value[:20]}...'")
            return value
        if token.type == "IDENT":
            self.consume()
            if token.value not in self.context:
                raise ExpressionError(f"Unknown metric: '{token.value}'")
            return float(self.context[token.value])
        raise ExpressionError(f"Unexpected token: '{token.value}' ({token.type})")


def evaluate_expression(expression: Optional[str], context: Mapping[str, float]) -> Optional[float]:
    """
    Evaluate a formula such as "(revenue - cogs - advertising) / orders".

    Returns the value rounded to 2 decimals, or None for a blank expression, a division
    by zero or a result too large for a float.
    """
    if not expression or not expression.strip():
        return None

    parser = _Parser(tokenize(expression), context)
    result = parser.parse_expr()
    if not parser.at_end():
        raise ExpressionError("Unexpected tokens after expression end")
    if result is DIV_BY_ZERO or not math.isfinite(result):
        return None
    try:
        return float(round2(result))
    except InvalidOperation:
        # too many digits to carry cents
        return result


def validate_expression(expression: str, known_slots: Iterable[str]) -> Optional[str]:
    """Return an error message, or None when the formula is valid."""
    try:
        evaluate_expression(expression, {slot: 1.0 for slot in known_slots})
        return None
    except ExpressionError as exc:
        return str(exc)
