from __future__ import annotations

import hashlib
import importlib.util
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence


EXTENSION_API_VERSION = 1

# Events emitted by the interpreter, in the order they first occur.
EVENTS = (
    "program_start",
    "before_statement",
    "after_statement",
    "before_call",
    "after_call",
    "on_error",
    "program_end",
)


class MonkeyExtensionError(Exception):
    pass


@dataclass(frozen=True)
class ExtensionMetadata:
    name: str
    version: str = "0.0.0"
    requires_api: int = EXTENSION_API_VERSION


@dataclass(frozen=True)
class Hook:
    priority: int
    handler: Callable[..., None]
    extension: str


@dataclass(frozen=True)
class BuiltinSpec:
    """A builtin contributed by an extension, installed into every new interpreter."""

    name: str
    min_args: int
    max_args: Optional[int]
    impl: Callable[..., Any]


class HookRegistry:
    def __init__(self) -> None:
        self._hooks: Dict[str, List[Hook]] = {event: [] for event in EVENTS}

    def add(self, event: str, hook: Hook) -> None:
        hooks = self._hooks.get(event)
        if hooks is None:
            raise MonkeyExtensionError(f"Unknown event '{event}' (expected one of: {', '.join(EVENTS)})")
        hooks.append(hook)
        # Highest priority first; sort is stable so ties keep registration order.
        hooks.sort(key=lambda h: h.priority, reverse=True)

    def hooks(self, event: str) -> List[Hook]:
        return self._hooks[event]


@dataclass
class RuntimeServices:
    metadata: List[ExtensionMetadata] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)
    builtins: List[BuiltinSpec] = field(default_factory=list)


class ExtensionAPI:
    """Handle passed to an extension's ``monkey_register(ext)``."""

    def __init__(self, *, services: RuntimeServices, ext_name: str) -> None:
        self._services = services
        self._ext_name = ext_name

    @property
    def name(self) -> str:
        return self._ext_name

    def metadata(self, *, name: str, version: str = "0.0.0", requires_api: int = EXTENSION_API_VERSION) -> None:
        _check_api(name, requires_api)
        self._services.metadata.append(ExtensionMetadata(name=name, version=version, requires_api=requires_api))

    def register_builtin(self, name: str, min_args: int, max_args: Optional[int], impl: Callable[..., Any]) -> None:
        if not name:
            raise MonkeyExtensionError("Builtin name must be non-empty")
        if any(spec.name == name for spec in self._services.builtins):
            raise MonkeyExtensionError(f"Builtin '{name}' registered twice")
        upper = None if max_args is None else int(max_args)
        self._services.builtins.append(BuiltinSpec(name, int(min_args), upper, impl))

    def builtin(self, name: str, min_args: int, max_args: Optional[int] = None):
        def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.register_builtin(name, min_args, max_args, fn)
            return fn

        return deco

    def on_event(self, event: str, handler: Optional[Callable[..., None]] = None, *, priority: int = 0):
        """Subscribe ``handler`` to ``event``; usable as a decorator when ``handler`` is omitted."""

        def subscribe(fn: Callable[..., None]) -> Callable[..., None]:
            self._services.hook_registry.add(event, Hook(priority, fn, self._ext_name))
            return fn

        if handler is None:
            return subscribe
        return subscribe(handler)


def _check_api(name: str, requires_api: int) -> None:
    if requires_api != EXTENSION_API_VERSION:
        raise MonkeyExtensionError(
            f"Extension '{name}' requires API {requires_api}, host supports {EXTENSION_API_VERSION}"
        )


def _module_name(path: str) -> str:
    stem = os.path.splitext(os.path.basename(path))[0]
    digest = hashlib.sha256(path.encode("utf-8")).hexdigest()[:12]
    return "monkey_ext_{}_{}".format("".join(c if c.isalnum() else "_" for c in stem), digest)


def load_extension_module(path: str) -> Any:
    path = os.path.abspath(path)
    if not os.path.isfile(path):
        raise MonkeyExtensionError(f"Extension not found: {path}")
    spec = importlib.util.spec_from_file_location(_module_name(path), path)
    if spec is None or spec.loader is None:
        raise MonkeyExtensionError(f"Failed to load extension module: {path}")
    module = importlib.util.module_from_spec(spec)

    # Sibling imports resolve against the extension's own directory while it loads.
    ext_dir = os.path.dirname(path)
    sys.path.insert(0, ext_dir)
    try:
        spec.loader.exec_module(module)
    finally:
        if ext_dir in sys.path:
            sys.path.remove(ext_dir)
    return module


def build_default_services() -> RuntimeServices:
    return RuntimeServices()


def load_runtime_services(paths: Sequence[str]) -> RuntimeServices:
    """Load each extension file in order and collect what it registers."""
    services = build_default_services()
    for path in paths:
        module = load_extension_module(path)
        register = getattr(module, "monkey_register", None)
        if not callable(register):
            raise MonkeyExtensionError(f"Extension {path} must define callable monkey_register(ext)")
        default_name = os.path.splitext(os.path.basename(path))[0]
        ext_name = str(getattr(module, "MONKEY_EXTENSION_NAME", default_name))
        _check_api(ext_name, getattr(module, "MONKEY_EXTENSION_API_VERSION", EXTENSION_API_VERSION))
        register(ExtensionAPI(services=services, ext_name=ext_name))
    return services
