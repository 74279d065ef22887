from __future__ import annotations
from typing import TYPE_CHECKING, Dict, List, Optional

from extensions import MonkeyExtensionError
from objects import (
    ARRAY_OBJ,
    NULL,
    Array,
    Builtin,
    BuiltinImpl,
    Integer,
    Object,
    String,
    make_array,
)

if TYPE_CHECKING:
    from interpreter import Interpreter


class Builtins:
    """Name -> Builtin table consulted after the environment chain."""

    def __init__(self) -> None:
        self.table: Dict[str, Builtin] = {}
        self._register_custom("len", 1, 1, self._len)
        self._register_custom("first", 1, 1, self._first)
        self._register_custom("last", 1, 1, self._last)
        self._register_custom("rest", 1, 1, self._rest)
        self._register_custom("push", 2, 2, self._push)
        self._register_custom("puts", 0, None, self._puts)

    def _register_custom(
        self,
        name: str,
        min_args: int,
        max_args: Optional[int],
        impl: BuiltinImpl,
    ) -> None:
        self.table[name] = Builtin(name=name, min_args=min_args, max_args=max_args, impl=impl)

    def register_extension(
        self,
        *,
        name: str,
        min_args: int,
        max_args: Optional[int],
        impl: BuiltinImpl,
    ) -> None:
        if name in self.table:
            raise MonkeyExtensionError(f"Cannot override existing builtin '{name}'")
        self._register_custom(name, min_args, max_args, impl)

    def get_optional(self, name: str) -> Optional[Builtin]:
        return self.table.get(name)

    def invoke(self, interpreter: "Interpreter", builtin: Builtin, args: List[Object]) -> Object:
        supplied = len(args)
        if not builtin.accepts(supplied):
            want = builtin.min_args if supplied < builtin.min_args else builtin.max_args
            return interpreter.new_error(
                f"wrong number of arguments. got={supplied}, want={want}",
                origin=builtin.name,
            )
        return builtin.impl(interpreter, args)

    # Helpers
    def _not_array(self, interpreter: "Interpreter", value: Object, rule: str) -> Object:
        return interpreter.new_error(
            f"argument to `{rule}` must be {ARRAY_OBJ}, got {value.type()}",
            origin=rule,
        )

    def _len(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        arg = args[0]
        if isinstance(arg, Array):
            return Integer(arg.length())
        if isinstance(arg, String):
            return Integer(len(arg.value))
        return interpreter.new_error(f"argument to `len` not supported, got {arg.type()}", origin="len")

    def _first(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        arr = args[0]
        if not isinstance(arr, Array):
            return self._not_array(interpreter, arr, "first")
        if arr.length() == 0:
            return NULL
        return arr.elements[0]

    def _last(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        arr = args[0]
        if not isinstance(arr, Array):
            return self._not_array(interpreter, arr, "last")
        if arr.length() == 0:
            return NULL
        return arr.elements[-1]

    def _rest(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        arr = args[0]
        if not isinstance(arr, Array):
            return self._not_array(interpreter, arr, "rest")
        if arr.length() == 0:
            return NULL
        return make_array(arr.elements[1:])

    def _push(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        arr = args[0]
        if not isinstance(arr, Array):
            return self._not_array(interpreter, arr, "push")
        return make_array([*arr.elements, args[1]])

    def _puts(self, interpreter: "Interpreter", args: List[Object]) -> Object:
        for arg in args:
            interpreter.output_sink(arg.inspect())
        return NULL
