"""
Extension loading and evaluation hook tests
"""

import pytest
from extensions import (
  ExtensionAPI, MonkeyExtensionError, RuntimeServices, build_default_services,
  load_runtime_services,
)
from interpreter import Interpreter
from objects import Error, MonkeyRuntimeError


def write_extension(tmp_path, name, body):
  path = tmp_path / name
  path.write_text(body, encoding="utf-8")
  return str(path)


class TestHooks:
  """Events emitted while evaluating"""

  @pytest.fixture
  def services(self):
    return build_default_services()

  def test_event_order(self, services):
    events = []
    ext = ExtensionAPI(services=services, ext_name="trace")
    for event in ("program_start", "before_statement", "before_call", "after_call", "program_end"):
      ext.on_event(event, lambda *args, _event=event: events.append(_event))
    Interpreter(source="let f = fn(x) { x }; f(1)", services=services).run()
    assert events[0] == "program_start"
    assert events[-1] == "program_end"
    assert events.index("before_call") < events.index("after_call")
    assert events.count("before_statement") == 3

  def test_call_hooks_receive_results(self, services):
    seen = []
    ext = ExtensionAPI(services=services, ext_name="calls")

    @ext.on_event("after_call")
    def _after(interpreter, name, result, env, location):
      seen.append((name, result.inspect()))

    Interpreter(source="let sq = fn(x) { x * x }; sq(4); len([1])", services=services).run()
    assert seen == [("sq", "16"), ("len", "1")]

  def test_on_error_receives_error_object(self, services):
    errors = []
    ExtensionAPI(services=services, ext_name="err").on_event("on_error", lambda interp, err: errors.append(err))
    Interpreter(source="1 + true", services=services).run()
    assert len(errors) == 1
    assert isinstance(errors[0], Error)

  def test_priority_orders_handlers(self, services):
    order = []
    low = ExtensionAPI(services=services, ext_name="low")
    high = ExtensionAPI(services=services, ext_name="high")
    low.on_event("program_start", lambda *a: order.append("low"), priority=0)
    high.on_event("program_start", lambda *a: order.append("high"), priority=10)
    Interpreter(source="1", services=services).run()
    assert order == ["high", "low"]

  def test_failing_hook_raises_runtime_error(self, services):
    def boom(*args):
      raise ValueError("boom")

    ExtensionAPI(services=services, ext_name="bad").on_event("before_statement", boom)
    with pytest.raises(MonkeyRuntimeError) as info:
      Interpreter(source="1", services=services).run()
    assert "Extension hook 'before_statement' failed: boom (extension 'bad')" == info.value.message

  def test_failing_hook_inside_call_unwinds_frames(self, services):
    def fail_in_function(interpreter, statement, env):
      if len(interpreter.call_stack) > 1:
        raise ValueError("inside")

    ExtensionAPI(services=services, ext_name="bad").on_event("before_statement", fail_in_function)
    interpreter = Interpreter(source="let f = fn() { 1 };\nf();", services=services)
    with pytest.raises(MonkeyRuntimeError) as info:
      interpreter.run()
    assert [frame.name for frame in info.value.frames] == ["<top-level>", "f"]
    assert interpreter.call_stack == []
    assert interpreter.steps.by_frame == {}

  def test_unknown_event(self, services):
    with pytest.raises(MonkeyExtensionError):
      ExtensionAPI(services=services, ext_name="x").on_event("on_tick", lambda *a: None)


class TestLoading:
  """Extension modules loaded from files"""

  def test_strings_extension(self, ext_dir):
    services = load_runtime_services([str(ext_dir / "strings.py")])
    assert [m.name for m in services.metadata] == ["strings"]
    output = []
    source = 'puts(upper("abc"), lower("ABC"), split("a,b", ","), split(" x  y "), join(["a", "b"], "-"), join(["c", "d"]))'
    Interpreter(source=source, services=services, output_sink=output.append).run()
    assert output == ["ABC", "abc", "[a, b]", "[x, y]", "a-b", "cd"]

  def test_strings_extension_errors(self, ext_dir):
    services = load_runtime_services([str(ext_dir / "strings.py")])
    result = Interpreter(source="upper(1)", services=services).run()
    assert isinstance(result, Error)
    assert result.message == "argument 1 to `upper` must be STRING, got INTEGER"
    result = Interpreter(source='join([1], "")', services=services).run()
    assert result.message == "`join` expects an array of STRING, got element INTEGER"

  def test_decorator_registration(self, tmp_path):
    path = write_extension(tmp_path, "twice.py", (
      "MONKEY_EXTENSION_NAME = 'twice'\n"
      "def monkey_register(ext):\n"
      "    @ext.builtin('twice', 1, 1)\n"
      "    def _twice(interpreter, args):\n"
      "        from objects import Integer\n"
      "        return Integer(args[0].value * 2)\n"
    ))
    services = load_runtime_services([path])
    result = Interpreter(source="twice(21)", services=services).run()
    assert result.value == 42

  def test_cannot_override_builtin(self, tmp_path):
    path = write_extension(tmp_path, "override.py", (
      "def monkey_register(ext):\n"
      "    ext.register_builtin('len', 1, 1, lambda interpreter, args: args[0])\n"
    ))
    services = load_runtime_services([path])
    with pytest.raises(MonkeyExtensionError):
      Interpreter(source="len(1)", services=services)

  def test_missing_register_function(self, tmp_path):
    path = write_extension(tmp_path, "empty.py", "X = 1\n")
    with pytest.raises(MonkeyExtensionError):
      load_runtime_services([path])

  def test_api_version_mismatch(self, tmp_path):
    path = write_extension(tmp_path, "future.py", (
      "MONKEY_EXTENSION_API_VERSION = 99\n"
      "def monkey_register(ext):\n"
      "    pass\n"
    ))
    with pytest.raises(MonkeyExtensionError):
      load_runtime_services([path])

  def test_metadata_api_mismatch(self, tmp_path):
    path = write_extension(tmp_path, "meta.py", (
      "def monkey_register(ext):\n"
      "    ext.metadata(name='meta', requires_api=2)\n"
    ))
    with pytest.raises(MonkeyExtensionError) as info:
      load_runtime_services([path])
    assert "requires API 2" in str(info.value)

  def test_missing_file(self, tmp_path):
    with pytest.raises(MonkeyExtensionError):
      load_runtime_services([str(tmp_path / "nope.py")])

  def test_default_services_are_empty(self):
    services = build_default_services()
    assert isinstance(services, RuntimeServices)
    assert services.builtins == []
