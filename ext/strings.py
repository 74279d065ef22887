"""Monkey extension: string helpers.

Adds ``upper``, ``lower``, ``split`` and ``join`` as builtins. Load with
``monkey --ext ext/strings.py``.
"""

from __future__ import annotations

from typing import Any, List

from extensions import ExtensionAPI

MONKEY_EXTENSION_NAME = "strings"
MONKEY_EXTENSION_API_VERSION = 1


def _expect_str(interpreter: Any, value: Any, rule: str, position: int):
    from objects import STRING_OBJ, String

    if isinstance(value, String):
        return None
    return interpreter.new_error(
        f"argument {position} to `{rule}` must be {STRING_OBJ}, got {value.type()}",
        origin=rule,
    )


def _upper(interpreter: Any, args: List[Any]):
    from objects import String

    error = _expect_str(interpreter, args[0], "upper", 1)
    if error is not None:
        return error
    return String(args[0].value.upper())


def _lower(interpreter: Any, args: List[Any]):
    from objects import String

    error = _expect_str(interpreter, args[0], "lower", 1)
    if error is not None:
        return error
    return String(args[0].value.lower())


def _split(interpreter: Any, args: List[Any]):
    from objects import String, make_array

    for position, arg in enumerate(args, start=1):
        error = _expect_str(interpreter, arg, "split", position)
        if error is not None:
            return error
    text = args[0].value
    if len(args) == 1:
        parts = text.split()
    else:
        sep = args[1].value
        if sep == "":
            return interpreter.new_error("empty separator passed to `split`", origin="split")
        parts = text.split(sep)
    return make_array(String(part) for part in parts)


def _join(interpreter: Any, args: List[Any]):
    from objects import ARRAY_OBJ, Array, String

    arr = args[0]
    if not isinstance(arr, Array):
        return interpreter.new_error(
            f"argument 1 to `join` must be {ARRAY_OBJ}, got {arr.type()}",
            origin="join",
        )
    sep = ""
    if len(args) == 2:
        error = _expect_str(interpreter, args[1], "join", 2)
        if error is not None:
            return error
        sep = args[1].value
    pieces: List[str] = []
    for item in arr.elements:
        if not isinstance(item, String):
            return interpreter.new_error(
                f"`join` expects an array of STRING, got element {item.type()}",
                origin="join",
            )
        pieces.append(item.value)
    return String(sep.join(pieces))


def monkey_register(ext: ExtensionAPI) -> None:
    ext.metadata(name=ext.name, version="0.1.0")
    ext.register_builtin("upper", 1, 1, _upper)
    ext.register_builtin("lower", 1, 1, _lower)
    ext.register_builtin("split", 1, 2, _split)
    ext.register_builtin("join", 1, 2, _join)
