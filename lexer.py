from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class MonkeyError(Exception):
    """Base class for interpreter errors."""


class MonkeyParseError(MonkeyError):
    """Raised by front ends when the parser reported errors."""

    def __init__(self, errors: List[str], *, filename: Optional[str] = None) -> None:
        self.errors = list(errors)
        self.filename = filename
        prefix = f"{filename}: " if filename else ""
        super().__init__(prefix + "; ".join(self.errors))


ILLEGAL = "ILLEGAL"
EOF = "EOF"

IDENTIFIER = "IDENTIFIER"
INT = "INT"
STRING = "STRING"

ASSIGN = "ASSIGN"
PLUS = "PLUS"
MINUS = "MINUS"
STAR = "STAR"
SLASH = "SLASH"
EQ = "EQ"
NEQ = "NEQ"
GR = "GR"
LE = "LE"
EXCLA = "EXCLA"

COMMA = "COMMA"
SEMICOLON = "SEMICOLON"
COLON = "COLON"
LP = "LP"
RP = "RP"
LB = "LB"
RB = "RB"
LSB = "LSB"
RSB = "RSB"

LET = "LET"
FUNCTION = "FUNCTION"
TRUE = "TRUE"
FALSE = "FALSE"
IF = "IF"
ELSE = "ELSE"
RETURN = "RETURN"


@dataclass(frozen=True)
class Token:
    type: str
    literal: str
    line: int = 0
    column: int = 0


KEYWORDS = {
    "let": LET,
    "fn": FUNCTION,
    "true": TRUE,
    "false": FALSE,
    "if": IF,
    "else": ELSE,
    "return": RETURN,
}

SYMBOLS = {
    "+": PLUS,
    "-": MINUS,
    "*": STAR,
    "/": SLASH,
    "<": LE,
    ">": GR,
    ",": COMMA,
    ";": SEMICOLON,
    ":": COLON,
    "(": LP,
    ")": RP,
    "{": LB,
    "}": RB,
    "[": LSB,
    "]": RSB,
}

# Characters that may be followed by '=' to form a two-character operator.
DOUBLE_SYMBOLS = {
    "=": (ASSIGN, EQ),
    "!": (EXCLA, NEQ),
}

WHITESPACE = " \t\r\n"


def lookup_ident(ident: str) -> str:
    return KEYWORDS.get(ident, IDENTIFIER)


class Lexer:
    def __init__(self, text: str, filename: str = "<string>") -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        next_token = self.next_token
        while True:
            token = next_token()
            tokens_append(token)
            if token.type == EOF:
                return tokens

    def next_token(self) -> Token:
        self._skip_whitespace()
        if self._eof:
            return Token(EOF, "", self.line, self.column)

        line, col = self.line, self.column
        ch = self._peek()
        if ch in DOUBLE_SYMBOLS:
            single, double = DOUBLE_SYMBOLS[ch]
            self._advance()
            if not self._eof and self._peek() == "=":
                self._advance()
                return Token(double, ch + "=", line, col)
            return Token(single, ch, line, col)
        if ch in SYMBOLS:
            self._advance()
            return Token(SYMBOLS[ch], ch, line, col)
        if ch == '"':
            return self._consume_string()
        if self._is_letter(ch):
            value = self._consume_while(self._is_letter)
            return Token(lookup_ident(value), value, line, col)
        if self._is_digit(ch):
            value = self._consume_while(self._is_digit)
            return Token(INT, value, line, col)
        self._advance()
        return Token(ILLEGAL, ch, line, col)

    def _consume_string(self) -> Token:
        line, col = self.line, self.column
        self._advance()  # opening quote
        chars: List[str] = []
        while not self._eof:
            ch = self._peek()
            self._advance()
            if ch == '"':
                break
            chars.append(ch)
        # An unterminated string runs to end of input.
        return Token(STRING, "".join(chars), line, col)

    def _consume_while(self, predicate) -> str:
        start = self.index
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and predicate(text[self.index]):
            _advance()
        return text[start:self.index]

    def _skip_whitespace(self) -> None:
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] in WHITESPACE:
            self._advance()

    @staticmethod
    def _is_letter(ch: str) -> bool:
        return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_"

    @staticmethod
    def _is_digit(ch: str) -> bool:
        return "0" <= ch <= "9"

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
