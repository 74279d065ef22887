from __future__ import annotations
import json
import os
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from extensions import HookRegistry, RuntimeServices, build_default_services
from lexer import Lexer, MonkeyParseError
from objects import (
    FALSE,
    NULL,
    TRUE,
    Array,
    Builtin,
    Environment,
    Error,
    Function,
    Hash,
    HashPair,
    Integer,
    MonkeyRuntimeError,
    Object,
    ReturnValue,
    String,
    hash_key,
    make_array,
    native_bool,
    wrap_int64,
)
from parser import (
    ArrayLiteral,
    Block,
    BooleanLiteral,
    Call,
    Expression,
    ExpressionStatement,
    FunctionLiteral,
    HashLiteral,
    Identifier,
    If,
    Index,
    Infix,
    IntegerLiteral,
    Let,
    Node,
    Parser,
    Prefix,
    Program,
    Return,
    SourceLocation,
    Statement,
    StringLiteral,
)
from stdlib import Builtins

# Each Monkey call nests about seven Python frames.
RECURSION_LIMIT = 10000


@contextmanager
def recursion_headroom(limit: int = RECURSION_LIMIT) -> Iterator[None]:
    """Raise Python's recursion limit to ``limit`` for the duration of the block."""
    previous = sys.getrecursionlimit()
    if previous >= limit:
        yield
        return
    sys.setrecursionlimit(limit)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


@dataclass
class CallFrame:
    name: str
    env: Environment
    serial: int
    call_site: Optional[SourceLocation] = None


@dataclass
class Step:
    index: int
    node_kind: str
    location: Optional[SourceLocation]
    callee: Optional[str] = None
    env_snapshot: Optional[Dict[str, str]] = None


class StepLog:
    """Numbers evaluation steps.

    Only what a traceback reads is retained: the latest step, and the latest
    step of every frame still on the call stack. Environment snapshots are
    taken only when verbose.
    """

    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.count = 0
        self.last: Optional[Step] = None
        self.by_frame: Dict[int, Step] = {}

    def record(
        self,
        node_kind: str,
        location: Optional[SourceLocation],
        frame: Optional[CallFrame],
        *,
        callee: Optional[str] = None,
    ) -> Step:
        snapshot = frame.env.snapshot() if (self.verbose and frame is not None) else None
        step = Step(
            index=self.count,
            node_kind=node_kind,
            location=location,
            callee=callee,
            env_snapshot=snapshot,
        )
        self.count += 1
        self.last = step
        if frame is not None:
            self.by_frame[frame.serial] = step
        return step

    def for_frame(self, serial: int) -> Optional[Step]:
        return self.by_frame.get(serial)

    def forget_frame(self, serial: int) -> None:
        self.by_frame.pop(serial, None)


def is_truthy(obj: Object) -> bool:
    # Only FALSE is falsy; NULL and 0 count as true.
    return obj is not FALSE


def _is_signal(obj: Optional[Object]) -> bool:
    return isinstance(obj, (Error, ReturnValue))


class Interpreter:
    """Tree-walking evaluator.

    Language-level failures are ``Error`` objects threaded back through
    ``evaluate``; ``MonkeyRuntimeError`` is reserved for faults in the host
    (broken invariants, failing extension hooks, Python exceptions).
    """

    def __init__(
        self,
        *,
        source: str = "",
        filename: str = "<string>",
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.source = source
        self._source_lines = source.splitlines()
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.output_sink = output_sink or (lambda text: print(text))
        self.builtins = Builtins()

        # Extension builtins are appended but cannot override existing names.
        for spec in self.services.builtins:
            self.builtins.register_extension(
                name=spec.name,
                min_args=spec.min_args,
                max_args=spec.max_args,
                impl=spec.impl,
            )

        self.steps = StepLog(verbose=verbose)
        self.call_stack: List[CallFrame] = []
        self._frame_serial = 0

    def parse(self) -> Program:
        parser = Parser(Lexer(self.source, self.filename), self.filename)
        program = parser.parse()
        if parser.errors:
            raise MonkeyParseError(parser.errors, filename=self.filename)
        return program

    def run(self) -> Optional[Object]:
        """Parse and evaluate ``source`` in a fresh global environment."""
        global_env = Environment()
        frame = self.push_frame("<top-level>", global_env, None)
        try:
            return self.execute(self.source, global_env)
        finally:
            self.pop_frame(frame)

    def execute(self, source: str, env: Environment) -> Optional[Object]:
        """Parse and evaluate ``source`` in ``env``, which the caller keeps.

        A top-level ``return`` is unwrapped so callers see the plain value,
        and an ``Error`` result is returned, not raised. Parse errors raise
        ``MonkeyParseError``; every other failure, including a Python
        ``RecursionError`` from the parser or evaluator, raises
        ``MonkeyRuntimeError``.
        """
        self.source = source
        self._source_lines = source.splitlines()
        with recursion_headroom():
            try:
                program = self.parse()
                self._emit_event("program_start", self, program, env)
                result = self.evaluate(program, env)
            except MonkeyParseError:
                raise
            except MonkeyRuntimeError as error:
                self._fail(error)
                raise
            except Exception as exc:
                wrapped = MonkeyRuntimeError(f"Internal interpreter error: {exc}", origin="internal")
                self._fail(wrapped)
                raise wrapped from exc
        if isinstance(result, ReturnValue):
            result = result.value
        if isinstance(result, Error):
            self._emit_event("on_error", self, result)
        self._emit_event("program_end", self, result)
        return result

    # Evaluation

    def evaluate(self, node: Node, env: Environment) -> Optional[Object]:
        if isinstance(node, Program):
            return self._eval_statements(node.statements, env)
        if isinstance(node, Block):
            return self._eval_statements(node.statements, env)
        if isinstance(node, ExpressionStatement):
            return self.evaluate(node.expression, env)
        if isinstance(node, Let):
            value = self.evaluate(node.value, env)
            if _is_signal(value):
                return value
            env.set(node.name.name, self._require_value(value, node))
            return None
        if isinstance(node, Return):
            value = self.evaluate(node.value, env)
            if _is_signal(value):
                return value
            return ReturnValue(self._require_value(value, node))
        if isinstance(node, IntegerLiteral):
            return Integer(node.value)
        if isinstance(node, BooleanLiteral):
            return native_bool(node.value)
        if isinstance(node, StringLiteral):
            return String(node.value)
        if isinstance(node, Identifier):
            return self._eval_identifier(node, env)
        if isinstance(node, Prefix):
            right = self.evaluate(node.right, env)
            if _is_signal(right):
                return right
            return self._eval_prefix(node.operator, self._require_value(right, node))
        if isinstance(node, Infix):
            left = self.evaluate(node.left, env)
            if _is_signal(left):
                return left
            right = self.evaluate(node.right, env)
            if _is_signal(right):
                return right
            return self._eval_infix(node.operator, self._require_value(left, node), self._require_value(right, node))
        if isinstance(node, If):
            return self._eval_if(node, env)
        if isinstance(node, FunctionLiteral):
            return Function(parameters=node.parameters, body=node.body, env=env)
        if isinstance(node, Call):
            return self._eval_call(node, env)
        if isinstance(node, ArrayLiteral):
            items = self._eval_expressions(node.items, env)
            if isinstance(items, Object):
                return items
            return make_array(items)
        if isinstance(node, HashLiteral):
            return self._eval_hash_literal(node, env)
        if isinstance(node, Index):
            left = self.evaluate(node.left, env)
            if _is_signal(left):
                return left
            index = self.evaluate(node.index, env)
            if _is_signal(index):
                return index
            return self._eval_index(self._require_value(left, node), self._require_value(index, node))
        raise MonkeyRuntimeError(f"Unsupported node {node.__class__.__name__}", origin="evaluate")

    def _eval_statements(self, statements: List[Statement], env: Environment) -> Optional[Object]:
        emit_event = self._emit_event
        evaluate = self.evaluate
        result: Optional[Object] = None
        for statement in statements:
            emit_event("before_statement", self, statement, env)
            self._log_step(statement.__class__.__name__, self._location(statement))
            # Unwrapped here to keep recursion shallow.
            if isinstance(statement, ExpressionStatement):
                value = evaluate(statement.expression, env)
            else:
                value = evaluate(statement, env)
            emit_event("after_statement", self, statement, env)
            if _is_signal(value):
                return value
            if value is not None:
                result = value
        return result

    def _eval_identifier(self, node: Identifier, env: Environment) -> Object:
        value = env.get_optional(node.name)
        if value is not None:
            return value
        builtin = self.builtins.get_optional(node.name)
        if builtin is not None:
            return builtin
        return self.new_error(f"identifier not found: {node.name}", origin="Identifier")

    def _eval_prefix(self, operator: str, right: Object) -> Object:
        if operator == "!":
            if right is TRUE:
                return FALSE
            if right is FALSE or right is NULL:
                return TRUE
            return FALSE
        if operator == "-":
            if not isinstance(right, Integer):
                return self.new_error(f"unknown operator: -{right.type()}", origin="Prefix")
            return Integer(wrap_int64(-right.value))
        return self.new_error(f"unknown operator: {operator}{right.type()}", origin="Prefix")

    def _eval_infix(self, operator: str, left: Object, right: Object) -> Object:
        if isinstance(left, Integer) and isinstance(right, Integer):
            return self._eval_integer_infix(operator, left, right)
        if isinstance(left, String) and isinstance(right, String) and operator == "+":
            return String(left.value + right.value)
        # Everything else compares by identity: only the singletons are ever equal.
        if operator == "==":
            return native_bool(left is right)
        if operator == "!=":
            return native_bool(left is not right)
        if left.type() != right.type():
            return self.new_error(
                f"type mismatch: {left.type()} {operator} {right.type()}",
                origin="Infix",
            )
        return self.new_error(
            f"unknown operator: {left.type()} {operator} {right.type()}",
            origin="Infix",
        )

    def _eval_integer_infix(self, operator: str, left: Integer, right: Integer) -> Object:
        a = left.value
        b = right.value
        if operator == "+":
            return Integer(wrap_int64(a + b))
        if operator == "-":
            return Integer(wrap_int64(a - b))
        if operator == "*":
            return Integer(wrap_int64(a * b))
        if operator == "/":
            if b == 0:
                return self.new_error("division by zero", origin="Infix")
            quotient = abs(a) // abs(b)
            if (a < 0) != (b < 0):
                quotient = -quotient
            return Integer(wrap_int64(quotient))
        if operator == "<":
            return native_bool(a < b)
        if operator == ">":
            return native_bool(a > b)
        if operator == "==":
            return native_bool(a == b)
        if operator == "!=":
            return native_bool(a != b)
        return self.new_error(
            f"unknown operator: {left.type()} {operator} {right.type()}",
            origin="Infix",
        )

    def _eval_if(self, node: If, env: Environment) -> Object:
        condition = self.evaluate(node.condition, env)
        if _is_signal(condition):
            return condition
        if is_truthy(self._require_value(condition, node)):
            result = self._eval_statements(node.consequence.statements, env)
        elif node.alternative is not None:
            result = self._eval_statements(node.alternative.statements, env)
        else:
            return NULL
        return NULL if result is None else result

    def _eval_expressions(self, expressions: List[Expression], env: Environment):
        """Evaluate left to right; returns the first Error/ReturnValue instead of a list."""
        values: List[Object] = []
        for expression in expressions:
            value = self.evaluate(expression, env)
            if _is_signal(value):
                return value
            values.append(self._require_value(value, expression))
        return values

    def _eval_call(self, node: Call, env: Environment) -> Object:
        function = self.evaluate(node.function, env)
        if _is_signal(function):
            return function
        args = self._eval_expressions(node.arguments, env)
        if isinstance(args, Object):
            return args
        name = node.function.name if isinstance(node.function, Identifier) else "<anonymous>"
        return self.apply_function(self._require_value(function, node), args, name=name, location=self._location(node))

    def apply_function(
        self,
        function: Object,
        args: List[Object],
        *,
        name: str = "<anonymous>",
        location: Optional[SourceLocation] = None,
    ) -> Object:
        if isinstance(function, Function):
            call_env = function.env.child()
            # No arity check: extra arguments are dropped, missing parameters stay unbound.
            for param, arg in zip(function.parameters, args):
                call_env.set(param.name, arg)
            self._emit_event("before_call", self, name, args, call_env, location)
            self._log_step("Call", location, callee=name)
            frame = self.push_frame(name, call_env, location)
            try:
                evaluated = self._eval_statements(function.body.statements, call_env)
            except MonkeyRuntimeError as error:
                if not error.frames:
                    error.frames = TracebackFormatter(self).build_frames()
                raise
            finally:
                # No Python calls here: this also runs while a RecursionError unwinds.
                self.call_stack.pop()
                self.steps.by_frame.pop(frame.serial, None)
            if isinstance(evaluated, ReturnValue):
                result: Object = evaluated.value
            elif evaluated is None:
                result = NULL
            else:
                result = evaluated
            self._emit_event("after_call", self, name, result, call_env, location)
            return result
        if isinstance(function, Builtin):
            self._emit_event("before_call", self, function.name, args, None, location)
            self._log_step("Call", location, callee=function.name)
            result = self.builtins.invoke(self, function, args)
            self._emit_event("after_call", self, function.name, result, None, location)
            return result
        return self.new_error(f"not a function: {function.type()}", origin="Call")

    def _eval_hash_literal(self, node: HashLiteral, env: Environment) -> Object:
        pairs: Dict[Any, HashPair] = {}
        for key_node, value_node in node.pairs:
            key = self.evaluate(key_node, env)
            if _is_signal(key):
                return key
            key = self._require_value(key, key_node)
            hashed = hash_key(key)
            if hashed is None:
                return self.new_error(f"unusable as hash key: {key.type()}", origin="HashLiteral")
            value = self.evaluate(value_node, env)
            if _is_signal(value):
                return value
            value = self._require_value(value, value_node)
            existing = pairs.get(hashed)
            if existing is not None:
                existing.value = value
            else:
                pairs[hashed] = HashPair(key=key, value=value)
        return Hash(pairs=pairs)

    def _eval_index(self, left: Object, index: Object) -> Object:
        if isinstance(left, Array) and isinstance(index, Integer):
            position = index.value
            if position < 0 or position >= left.length():
                return NULL
            return left.elements[position]
        return self.new_error(f"index operator not supported: {left.type()}", origin="Index")

    def _require_value(self, value: Optional[Object], node: Node) -> Object:
        if value is None:
            raise MonkeyRuntimeError(
                f"{node.__class__.__name__} produced no value",
                location=self._location(node),
                origin=node.__class__.__name__,
            )
        return value

    # Frames, errors and tracing

    def push_frame(self, name: str, env: Environment, call_site: Optional[SourceLocation]) -> CallFrame:
        frame = CallFrame(name=name, env=env, serial=self._frame_serial, call_site=call_site)
        self._frame_serial += 1
        self.call_stack.append(frame)
        return frame

    def pop_frame(self, frame: CallFrame) -> None:
        """Unwind the call stack down to and including ``frame``."""
        while self.call_stack:
            popped = self.call_stack.pop()
            self.steps.forget_frame(popped.serial)
            if popped is frame:
                break

    def new_error(
        self,
        message: str,
        *,
        origin: Optional[str] = None,
        location: Optional[SourceLocation] = None,
    ) -> Error:
        """Build an Error object stamped with the current step and call stack."""
        last = self.steps.last
        if location is None and last is not None:
            location = last.location
        return Error(
            message=message,
            location=location,
            origin=origin,
            step_index=last.index if last is not None else None,
            frames=TracebackFormatter(self).build_frames(),
        )

    def _fail(self, error: MonkeyRuntimeError) -> None:
        last = self.steps.last
        if last is not None:
            if error.step_index is None:
                error.step_index = last.index
            if error.location is None:
                error.location = last.location
        if not error.frames:
            error.frames = TracebackFormatter(self).build_frames()
        self._emit_event("on_error", self, error)

    def _location(self, node: Node) -> SourceLocation:
        token = node.token
        line = token.line
        if 1 <= line <= len(self._source_lines):
            statement = self._source_lines[line - 1].strip()
        else:
            statement = str(node)
        return SourceLocation(file=self.filename, line=line, column=token.column, statement=statement)

    def _emit_event(self, event: str, *args: Any) -> None:
        for hook in self.hook_registry.hooks(event):
            try:
                hook.handler(*args)
            except (MonkeyRuntimeError, RecursionError):
                raise
            except Exception as exc:
                raise MonkeyRuntimeError(
                    f"Extension hook '{event}' failed: {exc} (extension '{hook.extension}')",
                    origin=event,
                ) from exc

    def _log_step(self, node_kind: str, location: Optional[SourceLocation], *, callee: Optional[str] = None) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        self.steps.record(node_kind, location, frame, callee=callee)


def evaluate(node: Node, env: Environment) -> Optional[Object]:
    """Evaluate a single node with a default interpreter (no hooks, stdout output)."""
    return Interpreter().evaluate(node, env)


@dataclass
class FrameSummary:
    name: str
    location: Optional[SourceLocation]
    step: Optional[Step]


class TracebackFormatter:
    """Renders the call stack captured on an ``Error`` or ``MonkeyRuntimeError``."""

    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[FrameSummary]:
        steps = self.interpreter.steps
        summaries: List[FrameSummary] = []
        for frame in self.interpreter.call_stack:
            step = steps.for_frame(frame.serial)
            location = step.location if step is not None else frame.call_site
            summaries.append(FrameSummary(name=frame.name, location=location, step=step))
        return summaries

    def _frames_for(self, error: Any) -> List[FrameSummary]:
        return getattr(error, "frames", None) or self.build_frames()

    def format_text(self, error: Any, verbose: bool = False) -> str:
        lines = ["Traceback (most recent call last):"]
        for summary in self._frames_for(error):
            location = summary.location
            if location is None:
                lines.append(f"  <unknown location> in {summary.name}")
            else:
                lines.append(f"  File \"{location.file}\", line {location.line}, column {location.column}, in {summary.name}")
                if location.statement:
                    lines.append(f"    {location.statement}")
            step = summary.step
            if step is not None and verbose and step.env_snapshot is not None:
                bindings = ", ".join(f"{k}={v}" for k, v in step.env_snapshot.items())
                lines.append(f"    [step {step.index}] {bindings}")
        lines.append(f"{error.__class__.__name__}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: Any) -> str:
        traceback: List[Dict[str, Any]] = []
        for index, summary in enumerate(self._frames_for(error)):
            frame: Dict[str, Any] = {"frame_index": index, "name": summary.name}
            if summary.location is not None:
                frame["source_location"] = {
                    "file": summary.location.file,
                    "line": summary.location.line,
                    "column": summary.location.column,
                    "statement": summary.location.statement,
                }
            if summary.step is not None:
                frame["step_index"] = summary.step.index
                frame["node_kind"] = summary.step.node_kind
                if summary.step.callee is not None:
                    frame["callee"] = summary.step.callee
                if summary.step.env_snapshot is not None:
                    frame["env_snapshot"] = summary.step.env_snapshot
            traceback.append(frame)
        payload = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "origin": error.origin,
                "step_index": error.step_index,
            },
            "traceback": traceback,
        }
        return json.dumps(payload, indent=2)
