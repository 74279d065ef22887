from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import numpy as np
from numpy.typing import NDArray

from lexer import MonkeyError
from parser import Block, Identifier, SourceLocation


INTEGER_OBJ = "INTEGER"
BOOLEAN_OBJ = "BOOLEAN"
NULL_OBJ = "NULL"
STRING_OBJ = "STRING"
ARRAY_OBJ = "ARRAY"
HASH_OBJ = "HASH"
FUNCTION_OBJ = "FUNCTION"
BUILTIN_OBJ = "BUILTIN"
RETURN_VALUE_OBJ = "RETURN_VALUE"
ERROR_OBJ = "ERROR"

INT64_MIN = int(np.iinfo(np.int64).min)
INT64_MAX = int(np.iinfo(np.int64).max)
_UINT64_MASK = (1 << 64) - 1


class MonkeyRuntimeError(MonkeyError):
    """Raised for host-level faults (never for ordinary language errors)."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        origin: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        # AST node kind or builtin name that raised the fault.
        self.origin = origin
        self.step_index: Optional[int] = None
        # Call stack captured by the interpreter before its frames unwind.
        self.frames: List[Any] = []


class Object:
    TYPE = ""

    def type(self) -> str:
        return self.TYPE

    def inspect(self) -> str:
        raise NotImplementedError


@dataclass(eq=False)
class Integer(Object):
    TYPE = INTEGER_OBJ
    value: int

    def inspect(self) -> str:
        return str(self.value)


@dataclass(eq=False)
class Boolean(Object):
    TYPE = BOOLEAN_OBJ
    value: bool

    def inspect(self) -> str:
        return "true" if self.value else "false"


@dataclass(eq=False)
class Null(Object):
    TYPE = NULL_OBJ

    def inspect(self) -> str:
        return "null"


@dataclass(eq=False)
class String(Object):
    TYPE = STRING_OBJ
    value: str

    def inspect(self) -> str:
        return self.value


@dataclass(eq=False)
class Array(Object):
    """Ordered sequence of objects.

    Elements live in a read-only numpy object array; operations that change
    an array (``push``, ``rest``) build a new one instead.
    """

    TYPE = ARRAY_OBJ
    elements: NDArray[Any]

    def __post_init__(self) -> None:
        items = list(self.elements)
        data = np.empty(len(items), dtype=object)
        # Element-wise assignment keeps numpy from broadcasting into objects.
        for i, item in enumerate(items):
            data[i] = item
        data.flags.writeable = False
        self.elements = data

    def length(self) -> int:
        return int(self.elements.shape[0])

    def items(self) -> List["Object"]:
        return list(self.elements)

    def inspect(self) -> str:
        return "[" + ", ".join(e.inspect() for e in self.elements) + "]"


@dataclass(frozen=True)
class HashKey:
    type: str
    value: Any


@dataclass(eq=False)
class HashPair:
    key: Object
    value: Object


@dataclass(eq=False)
class Hash(Object):
    TYPE = HASH_OBJ
    pairs: Dict[HashKey, HashPair] = field(default_factory=dict)

    def inspect(self) -> str:
        # dicts keep insertion order, which is the order keys were first written.
        body = ", ".join(f"{p.key.inspect()}:{p.value.inspect()}" for p in self.pairs.values())
        return "{" + body + "}"


@dataclass(eq=False)
class Function(Object):
    TYPE = FUNCTION_OBJ
    parameters: List[Identifier]
    body: Block
    env: "Environment" = field(repr=False)

    def inspect(self) -> str:
        params = ", ".join(str(p) for p in self.parameters)
        return f"fn({params}) {{\n{self.body}\n}}"


BuiltinImpl = Callable[[Any, List[Object]], Object]


@dataclass(eq=False)
class Builtin(Object):
    TYPE = BUILTIN_OBJ
    name: str
    min_args: int
    max_args: Optional[int]
    impl: BuiltinImpl

    def accepts(self, supplied: int) -> bool:
        if supplied < self.min_args:
            return False
        return self.max_args is None or supplied <= self.max_args

    def inspect(self) -> str:
        return "built-in function"


@dataclass(eq=False)
class ReturnValue(Object):
    TYPE = RETURN_VALUE_OBJ
    value: Object

    def inspect(self) -> str:
        return self.value.inspect()


@dataclass(eq=False)
class Error(Object):
    TYPE = ERROR_OBJ
    message: str
    # Filled in by the interpreter when the error is raised during evaluation.
    location: Optional[SourceLocation] = None
    origin: Optional[str] = None
    step_index: Optional[int] = None
    frames: List[Any] = field(default_factory=list)

    def inspect(self) -> str:
        return "ERROR: " + self.message


TRUE = Boolean(True)
FALSE = Boolean(False)
NULL = Null()


def wrap_int64(value: int) -> int:
    """Reduce an exact integer result to signed 64-bit two's complement."""
    bits = np.array(value & _UINT64_MASK, dtype=np.uint64)
    return int(bits.astype(np.int64))


def native_bool(value: bool) -> Boolean:
    return TRUE if value else FALSE


def is_error(obj: Optional[Object]) -> bool:
    return isinstance(obj, Error)


def hash_key(obj: Object) -> Optional[HashKey]:
    """Value-derived lookup key, or None when the object is not hashable."""
    if isinstance(obj, (Integer, String, Boolean)):
        return HashKey(obj.TYPE, obj.value)
    return None


def make_array(items: Iterable[Object]) -> Array:
    return Array(elements=list(items))


@dataclass(eq=False)
class Environment:
    parent: Optional["Environment"] = None
    values: Dict[str, Object] = field(default_factory=dict)

    def _find_env(self, name: str) -> Optional["Environment"]:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.values:
                return env
            env = env.parent
        return None

    def set(self, name: str, value: Object) -> Object:
        # Always binds in this scope, shadowing any outer binding.
        if isinstance(value, (ReturnValue, Error)):
            raise MonkeyRuntimeError(
                f"Cannot bind {value.type()} to '{name}'",
                origin="Let",
            )
        self.values[name] = value
        return value

    def get_optional(self, name: str) -> Optional[Object]:
        env = self._find_env(name)
        if env is not None:
            return env.values[name]
        return None

    def child(self) -> "Environment":
        return Environment(parent=self)

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Object) -> str:
            if isinstance(val, Function):
                rendered = "fn(" + ", ".join(str(p) for p in val.parameters) + ")"
            else:
                rendered = val.inspect()
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type()}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}

