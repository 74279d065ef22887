from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np

from lexer import (
    ASSIGN,
    COLON,
    COMMA,
    ELSE,
    EOF,
    EQ,
    EXCLA,
    FALSE,
    FUNCTION,
    GR,
    IDENTIFIER,
    IF,
    INT,
    LB,
    LE,
    LET,
    LP,
    LSB,
    MINUS,
    NEQ,
    PLUS,
    RB,
    RETURN,
    RP,
    RSB,
    SEMICOLON,
    SLASH,
    STAR,
    STRING,
    TRUE,
    Lexer,
    Token,
)


INT64_MAX = int(np.iinfo(np.int64).max)


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    token: Token


@dataclass
class Program(Node):
    statements: List["Statement"] = field(default_factory=list)

    def __str__(self) -> str:
        return "".join(str(s) for s in self.statements)


class Statement(Node):
    pass


class Expression(Node):
    pass


@dataclass
class Identifier(Expression):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass
class Let(Statement):
    name: Identifier
    value: Expression

    def __str__(self) -> str:
        return f"let {self.name} = {self.value};"


@dataclass
class Return(Statement):
    value: Expression

    def __str__(self) -> str:
        return f"return {self.value};"


@dataclass
class ExpressionStatement(Statement):
    expression: Expression

    def __str__(self) -> str:
        return str(self.expression)


@dataclass
class Block(Statement):
    statements: List[Statement]

    def __str__(self) -> str:
        return "".join(str(s) for s in self.statements)


@dataclass
class IntegerLiteral(Expression):
    value: int

    def __str__(self) -> str:
        return self.token.literal


@dataclass
class BooleanLiteral(Expression):
    value: bool

    def __str__(self) -> str:
        return self.token.literal


@dataclass
class StringLiteral(Expression):
    value: str

    def __str__(self) -> str:
        return self.value


@dataclass
class ArrayLiteral(Expression):
    items: List[Expression]

    def __str__(self) -> str:
        return "[" + ", ".join(str(item) for item in self.items) + "]"


@dataclass
class HashLiteral(Expression):
    pairs: List[Tuple[Expression, Expression]]

    def __str__(self) -> str:
        return "{" + ", ".join(f"{key}:{value}" for key, value in self.pairs) + "}"


@dataclass
class Prefix(Expression):
    operator: str
    right: Expression

    def __str__(self) -> str:
        return f"({self.operator}{self.right})"


@dataclass
class Infix(Expression):
    operator: str
    left: Expression
    right: Expression

    def __str__(self) -> str:
        return f"({self.left} {self.operator} {self.right})"


@dataclass
class If(Expression):
    condition: Expression
    consequence: Block
    alternative: Optional[Block] = None

    def __str__(self) -> str:
        text = f"if{self.condition} {self.consequence}"
        if self.alternative is not None:
            text += f"else {self.alternative}"
        return text


@dataclass
class FunctionLiteral(Expression):
    parameters: List[Identifier]
    body: Block

    def __str__(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"{self.token.literal}({params}) {self.body}"


@dataclass
class Call(Expression):
    function: Expression
    arguments: List[Expression]

    def __str__(self) -> str:
        args = ", ".join(str(a) for a in self.arguments)
        return f"{self.function}({args})"


@dataclass
class Index(Expression):
    left: Expression
    index: Expression

    def __str__(self) -> str:
        return f"({self.left}[{self.index}])"


class Precedence(IntEnum):
    LOWEST = 1
    EQUALS = 2
    LESSGREATER = 3
    SUM = 4
    PRODUCT = 5
    PREFIX = 6
    CALL = 7
    INDEX = 8


PRECEDENCES: Dict[str, Precedence] = {
    EQ: Precedence.EQUALS,
    NEQ: Precedence.EQUALS,
    LE: Precedence.LESSGREATER,
    GR: Precedence.LESSGREATER,
    PLUS: Precedence.SUM,
    MINUS: Precedence.SUM,
    SLASH: Precedence.PRODUCT,
    STAR: Precedence.PRODUCT,
    LP: Precedence.CALL,
    LSB: Precedence.INDEX,
}

PrefixParseFn = Callable[[], Optional[Expression]]
InfixParseFn = Callable[[Expression], Optional[Expression]]
TokenSource = Union[Lexer, Iterable[Token]]


class Parser:
    """Pratt parser over a pull-based token stream.

    Errors never abort parsing: they are appended to ``self.errors`` and the
    offending construct is dropped. Callers must check ``errors`` before
    trusting the returned ``Program``.
    """

    def __init__(self, source: TokenSource, filename: str = "<string>") -> None:
        self.filename = filename
        if isinstance(source, Lexer):
            self._pull: Callable[[], Token] = source.next_token
        else:
            iterator = iter(source)
            self._pull = lambda: next(iterator, None) or self._eof_token()
        self.errors: List[str] = []
        self.prefix_parse_fns: Dict[str, PrefixParseFn] = {}
        self.infix_parse_fns: Dict[str, InfixParseFn] = {}

        self._register_prefix(IDENTIFIER, self._parse_identifier)
        self._register_prefix(INT, self._parse_integer_literal)
        self._register_prefix(STRING, self._parse_string_literal)
        self._register_prefix(TRUE, self._parse_boolean)
        self._register_prefix(FALSE, self._parse_boolean)
        self._register_prefix(EXCLA, self._parse_prefix_expression)
        self._register_prefix(MINUS, self._parse_prefix_expression)
        self._register_prefix(LP, self._parse_grouped_expression)
        self._register_prefix(IF, self._parse_if_expression)
        self._register_prefix(FUNCTION, self._parse_function_literal)
        self._register_prefix(LSB, self._parse_array_literal)
        self._register_prefix(LB, self._parse_hash_literal)
        for kind in (PLUS, MINUS, STAR, SLASH, EQ, NEQ, LE, GR):
            self._register_infix(kind, self._parse_infix_expression)
        self._register_infix(LP, self._parse_call_expression)
        self._register_infix(LSB, self._parse_index_expression)

        self.cur_token: Token = Token(EOF, "")
        self.peek_token: Token = Token(EOF, "")
        self._next_token()
        self._next_token()

    def parse(self) -> Program:
        program = Program(token=self.cur_token, statements=[])
        while not self._cur_token_is(EOF):
            statement = self._parse_statement()
            if statement is not None:
                program.statements.append(statement)
            self._next_token()
        return program

    # Statements

    def _parse_statement(self) -> Optional[Statement]:
        kind = self.cur_token.type
        if kind == LET:
            return self._parse_let_statement()
        if kind == RETURN:
            return self._parse_return_statement()
        return self._parse_expression_statement()

    def _parse_let_statement(self) -> Optional[Let]:
        token = self.cur_token
        if not self._expect_peek(IDENTIFIER):
            return None
        name = Identifier(token=self.cur_token, name=self.cur_token.literal)
        if not self._expect_peek(ASSIGN):
            return None
        self._next_token()
        value = self.parse_expression(Precedence.LOWEST)
        if value is None:
            return None
        self._skip_optional_semicolon()
        return Let(token=token, name=name, value=value)

    def _parse_return_statement(self) -> Optional[Return]:
        token = self.cur_token
        self._next_token()
        value = self.parse_expression(Precedence.LOWEST)
        if value is None:
            return None
        self._skip_optional_semicolon()
        return Return(token=token, value=value)

    def _parse_expression_statement(self) -> Optional[ExpressionStatement]:
        token = self.cur_token
        expression = self.parse_expression(Precedence.LOWEST)
        if expression is None:
            return None
        self._skip_optional_semicolon()
        return ExpressionStatement(token=token, expression=expression)

    def _parse_block(self) -> Block:
        block = Block(token=self.cur_token, statements=[])
        self._next_token()
        while not self._cur_token_is(RB) and not self._cur_token_is(EOF):
            statement = self._parse_statement()
            if statement is not None:
                block.statements.append(statement)
            self._next_token()
        return block

    # Expressions

    def parse_expression(self, precedence: Precedence) -> Optional[Expression]:
        prefix = self.prefix_parse_fns.get(self.cur_token.type)
        if prefix is None:
            self.errors.append(f"no prefix parse function for {self.cur_token.type} found")
            return None
        left = prefix()
        while left is not None and not self._peek_token_is(SEMICOLON) and precedence < self._peek_precedence():
            infix = self.infix_parse_fns.get(self.peek_token.type)
            if infix is None:
                return left
            self._next_token()
            left = infix(left)
        return left

    def _parse_identifier(self) -> Expression:
        return Identifier(token=self.cur_token, name=self.cur_token.literal)

    def _parse_integer_literal(self) -> Optional[Expression]:
        token = self.cur_token
        literal = token.literal
        if not literal.isascii() or not literal.isdigit() or int(literal) > INT64_MAX:
            self.errors.append(f'could not parse "{token.literal}" as integer')
            return None
        return IntegerLiteral(token=token, value=int(literal))

    def _parse_string_literal(self) -> Expression:
        return StringLiteral(token=self.cur_token, value=self.cur_token.literal)

    def _parse_boolean(self) -> Expression:
        return BooleanLiteral(token=self.cur_token, value=self._cur_token_is(TRUE))

    def _parse_prefix_expression(self) -> Optional[Expression]:
        token = self.cur_token
        self._next_token()
        right = self.parse_expression(Precedence.PREFIX)
        if right is None:
            return None
        return Prefix(token=token, operator=token.literal, right=right)

    def _parse_infix_expression(self, left: Expression) -> Optional[Expression]:
        token = self.cur_token
        precedence = self._cur_precedence()
        self._next_token()
        right = self.parse_expression(precedence)
        if right is None:
            return None
        return Infix(token=token, operator=token.literal, left=left, right=right)

    def _parse_grouped_expression(self) -> Optional[Expression]:
        self._next_token()
        expression = self.parse_expression(Precedence.LOWEST)
        if expression is None or not self._expect_peek(RP):
            return None
        return expression

    def _parse_if_expression(self) -> Optional[Expression]:
        token = self.cur_token
        if not self._expect_peek(LP):
            return None
        self._next_token()
        condition = self.parse_expression(Precedence.LOWEST)
        if condition is None:
            return None
        if not self._expect_peek(RP) or not self._expect_peek(LB):
            return None
        consequence = self._parse_block()
        alternative: Optional[Block] = None
        if self._peek_token_is(ELSE):
            self._next_token()
            if not self._expect_peek(LB):
                return None
            alternative = self._parse_block()
        return If(token=token, condition=condition, consequence=consequence, alternative=alternative)

    def _parse_function_literal(self) -> Optional[Expression]:
        token = self.cur_token
        if not self._expect_peek(LP):
            return None
        parameters = self._parse_function_parameters()
        if parameters is None or not self._expect_peek(LB):
            return None
        body = self._parse_block()
        return FunctionLiteral(token=token, parameters=parameters, body=body)

    def _parse_function_parameters(self) -> Optional[List[Identifier]]:
        if self._peek_token_is(RP):
            self._next_token()
            return []
        if not self._expect_peek(IDENTIFIER):
            return None
        identifiers = [Identifier(token=self.cur_token, name=self.cur_token.literal)]
        while self._peek_token_is(COMMA):
            self._next_token()
            if not self._expect_peek(IDENTIFIER):
                return None
            identifiers.append(Identifier(token=self.cur_token, name=self.cur_token.literal))
        if not self._expect_peek(RP):
            return None
        return identifiers

    def _parse_call_expression(self, function: Expression) -> Optional[Expression]:
        token = self.cur_token
        arguments = self._parse_expression_list(RP)
        if arguments is None:
            return None
        return Call(token=token, function=function, arguments=arguments)

    def _parse_index_expression(self, left: Expression) -> Optional[Expression]:
        token = self.cur_token
        self._next_token()
        index = self.parse_expression(Precedence.LOWEST)
        if index is None or not self._expect_peek(RSB):
            return None
        return Index(token=token, left=left, index=index)

    def _parse_array_literal(self) -> Optional[Expression]:
        token = self.cur_token
        items = self._parse_expression_list(RSB)
        if items is None:
            return None
        return ArrayLiteral(token=token, items=items)

    def _parse_hash_literal(self) -> Optional[Expression]:
        token = self.cur_token
        pairs: List[Tuple[Expression, Expression]] = []
        while not self._peek_token_is(RB):
            self._next_token()
            key = self.parse_expression(Precedence.LOWEST)
            if key is None or not self._expect_peek(COLON):
                return None
            self._next_token()
            value = self.parse_expression(Precedence.LOWEST)
            if value is None:
                return None
            pairs.append((key, value))
            if not self._peek_token_is(RB) and not self._expect_peek(COMMA):
                return None
        if not self._expect_peek(RB):
            return None
        return HashLiteral(token=token, pairs=pairs)

    def _parse_expression_list(self, end: str) -> Optional[List[Expression]]:
        items: List[Expression] = []
        if self._peek_token_is(end):
            self._next_token()
            return items
        self._next_token()
        item = self.parse_expression(Precedence.LOWEST)
        if item is None:
            return None
        items.append(item)
        while self._peek_token_is(COMMA):
            self._next_token()
            self._next_token()
            item = self.parse_expression(Precedence.LOWEST)
            if item is None:
                return None
            items.append(item)
        if not self._expect_peek(end):
            return None
        return items

    # Token helpers

    def _register_prefix(self, kind: str, fn: PrefixParseFn) -> None:
        self.prefix_parse_fns[kind] = fn

    def _register_infix(self, kind: str, fn: InfixParseFn) -> None:
        self.infix_parse_fns[kind] = fn

    def _next_token(self) -> None:
        self.cur_token = self.peek_token
        self.peek_token = self._pull()

    def _eof_token(self) -> Token:
        last = self.peek_token
        return Token(EOF, "", last.line, last.column)

    def _cur_token_is(self, kind: str) -> bool:
        return self.cur_token.type == kind

    def _peek_token_is(self, kind: str) -> bool:
        return self.peek_token.type == kind

    def _expect_peek(self, kind: str) -> bool:
        if self._peek_token_is(kind):
            self._next_token()
            return True
        self.errors.append(f"expected next token to be {kind}, got {self.peek_token.type} instead")
        return False

    def _skip_optional_semicolon(self) -> None:
        if self._peek_token_is(SEMICOLON):
            self._next_token()

    def _peek_precedence(self) -> Precedence:
        return PRECEDENCES.get(self.peek_token.type, Precedence.LOWEST)

    def _cur_precedence(self) -> Precedence:
        return PRECEDENCES.get(self.cur_token.type, Precedence.LOWEST)


def parse(source: str, filename: str = "<string>") -> Tuple[Program, List[str]]:
    parser = Parser(Lexer(source, filename), filename)
    program = parser.parse()
    return program, parser.errors
