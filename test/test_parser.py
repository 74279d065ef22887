"""
Parser tests: statements, precedence, rendering and error reporting
"""

import pytest
from lexer import Lexer
from parser import (
  ArrayLiteral, BooleanLiteral, Call, ExpressionStatement, FunctionLiteral,
  HashLiteral, Identifier, If, Index, Infix, IntegerLiteral, Let, Parser,
  Prefix, Return, StringLiteral, parse,
)


def parse_ok(source):
  program, errors = parse(source)
  assert errors == []
  return program


def single_expression(source):
  program = parse_ok(source)
  assert len(program.statements) == 1
  statement = program.statements[0]
  assert isinstance(statement, ExpressionStatement)
  return statement.expression


class TestStatements:
  """let / return / expression statements"""

  def test_let_statements(self):
    program = parse_ok("let x = 5; let y = true; let foo = y;")
    assert [s.name.name for s in program.statements] == ["x", "y", "foo"]
    assert all(isinstance(s, Let) for s in program.statements)
    assert isinstance(program.statements[0].value, IntegerLiteral)
    assert isinstance(program.statements[1].value, BooleanLiteral)
    assert isinstance(program.statements[2].value, Identifier)

  def test_return_statements(self):
    program = parse_ok("return 5; return x + y;")
    assert all(isinstance(s, Return) for s in program.statements)
    assert str(program.statements[1].value) == "(x + y)"

  def test_semicolons_are_optional(self):
    program = parse_ok("let a = 1\nlet b = 2\na + b")
    assert len(program.statements) == 3

  def test_let_renders_back(self):
    program = parse_ok("let myVar = anotherVar;")
    assert str(program) == "let myVar = anotherVar;"


class TestExpressions:
  """Literal and compound expression nodes"""

  def test_literals(self):
    assert single_expression("5").value == 5
    assert single_expression("true").value is True
    assert single_expression("false").value is False
    literal = single_expression('"hello world"')
    assert isinstance(literal, StringLiteral)
    assert literal.value == "hello world"

  def test_prefix(self):
    node = single_expression("!5")
    assert isinstance(node, Prefix)
    assert node.operator == "!"
    assert node.right.value == 5

  @pytest.mark.parametrize("operator", ["+", "-", "*", "/", "<", ">", "==", "!="])
  def test_infix(self, operator):
    node = single_expression(f"5 {operator} 6")
    assert isinstance(node, Infix)
    assert node.operator == operator
    assert (node.left.value, node.right.value) == (5, 6)

  def test_if(self):
    node = single_expression("if (x < y) { x }")
    assert isinstance(node, If)
    assert str(node.condition) == "(x < y)"
    assert len(node.consequence.statements) == 1
    assert node.alternative is None
    assert str(node) == "if(x < y) x"

  def test_if_else(self):
    node = single_expression("if (x < y) { x } else { y }")
    assert str(node.alternative) == "y"

  def test_function_literal(self):
    node = single_expression("fn(x, y) { x + y; }")
    assert isinstance(node, FunctionLiteral)
    assert [p.name for p in node.parameters] == ["x", "y"]
    assert str(node.body) == "(x + y)"
    assert str(node) == "fn(x, y) (x + y)"

  @pytest.mark.parametrize("source,expected", [
    ("fn() {};", []),
    ("fn(x) {};", ["x"]),
    ("fn(x, y, z) {};", ["x", "y", "z"]),
  ])
  def test_function_parameters(self, source, expected):
    assert [p.name for p in single_expression(source).parameters] == expected

  def test_call(self):
    node = single_expression("add(1, 2 * 3, 4 + 5)")
    assert isinstance(node, Call)
    assert str(node.function) == "add"
    assert [str(a) for a in node.arguments] == ["1", "(2 * 3)", "(4 + 5)"]

  def test_array_and_index(self):
    node = single_expression("[1, 2 * 2, 3 + 3]")
    assert isinstance(node, ArrayLiteral)
    assert [str(i) for i in node.items] == ["1", "(2 * 2)", "(3 + 3)"]
    index = single_expression("myArray[1 + 1]")
    assert isinstance(index, Index)
    assert str(index.index) == "(1 + 1)"

  def test_empty_array(self):
    assert single_expression("[]").items == []

  def test_hash_literals(self):
    node = single_expression('{"one": 1, "two": 2, "three": 3}')
    assert isinstance(node, HashLiteral)
    assert [(str(k), str(v)) for k, v in node.pairs] == [("one", "1"), ("two", "2"), ("three", "3")]
    assert single_expression("{}").pairs == []
    node = single_expression('{"one": 0 + 1, "two": 10 - 8}')
    assert [str(v) for _, v in node.pairs] == ["(0 + 1)", "(10 - 8)"]


class TestPrecedence:
  """Rendering shows how operators bind"""

  @pytest.mark.parametrize("source,expected", [
    ("-a * b", "((-a) * b)"),
    ("!-a", "(!(-a))"),
    ("a + b + c", "((a + b) + c)"),
    ("a * b / c", "((a * b) / c)"),
    ("a + b * c + d / e - f", "(((a + (b * c)) + (d / e)) - f)"),
    ("3 + 4; -5 * 5", "(3 + 4)((-5) * 5)"),
    ("5 > 4 == 3 < 4", "((5 > 4) == (3 < 4))"),
    ("3 + 4 * 5 == 3 * 1 + 4 * 5", "((3 + (4 * 5)) == ((3 * 1) + (4 * 5)))"),
    ("3 > 5 == false", "((3 > 5) == false)"),
    ("1 + (2 + 3) + 4", "((1 + (2 + 3)) + 4)"),
    ("-(5 + 5)", "(-(5 + 5))"),
    ("!(true == true)", "(!(true == true))"),
    ("a + add(b * c) + d", "((a + add((b * c))) + d)"),
    ("add(a, b, 1, 2 * 3, 4 + 5, add(6, 7 * 8))", "add(a, b, 1, (2 * 3), (4 + 5), add(6, (7 * 8)))"),
    ("a * [1, 2, 3, 4][b * c] * d", "((a * ([1, 2, 3, 4][(b * c)])) * d)"),
    ("add(a * b[2], b[1], 2 * [1, 2][1])", "add((a * (b[2])), (b[1]), (2 * ([1, 2][1])))"),
  ])
  def test_rendering(self, source, expected):
    assert str(parse_ok(source)) == expected


class TestErrors:
  """Errors accumulate instead of aborting"""

  def test_missing_identifier(self):
    _, errors = parse("let = 5;")
    assert errors[0] == "expected next token to be IDENTIFIER, got ASSIGN instead"

  def test_missing_assign(self):
    _, errors = parse("let x 5;")
    assert errors[0] == "expected next token to be ASSIGN, got INT instead"

  def test_no_prefix_function(self):
    _, errors = parse("@")
    assert errors == ["no prefix parse function for ILLEGAL found"]

  def test_integer_overflow(self):
    _, errors = parse("9223372036854775808")
    assert errors == ['could not parse "9223372036854775808" as integer']
    program, errors = parse("9223372036854775807")
    assert errors == []
    assert program.statements[0].expression.value == 9223372036854775807

  def test_unclosed_group(self):
    _, errors = parse("(1 + 2")
    assert errors == ["expected next token to be RP, got EOF instead"]

  def test_multiple_errors_collected(self):
    _, errors = parse("let = 1; let y 2;")
    assert len(errors) >= 2

  def test_malformed_statement_is_dropped(self):
    program, errors = parse("let x 5; let y = 2;")
    assert errors
    assert any(isinstance(s, Let) and s.name.name == "y" for s in program.statements)


class TestTokenSources:
  """The parser accepts a lexer or any token iterable"""

  def test_token_list(self):
    parser = Parser(Lexer("1 + 2").tokenize())
    program = parser.parse()
    assert parser.errors == []
    assert str(program) == "(1 + 2)"

  def test_iterable_without_eof(self):
    tokens = [t for t in Lexer("x * y").tokenize() if t.type != "EOF"]
    program = Parser(iter(tokens)).parse()
    assert str(program) == "(x * y)"
