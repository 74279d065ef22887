"""Monkey entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, Optional

from extensions import MonkeyExtensionError, RuntimeServices, load_runtime_services
from interpreter import Interpreter, TracebackFormatter, recursion_headroom
from lexer import MonkeyParseError
from objects import Environment, Error, MonkeyRuntimeError
from parser import Program, parse


def _parse_program(text: str, filename: str) -> Program:
    program, errors = parse(text, filename)
    if errors:
        raise MonkeyParseError(errors, filename=filename)
    return program


def _print_parse_errors(error: MonkeyParseError) -> None:
    for message in error.errors:
        print(f"ParseError: {message}", file=sys.stderr)


def _is_incomplete(text: str) -> bool:
    try:
        with recursion_headroom():
            _parse_program(text, "<string>")
    except MonkeyParseError:
        return True
    except RecursionError:
        # Too deep to check here; execute() reports it.
        return False
    return False


def run_repl(verbose: bool, services: Optional[RuntimeServices] = None) -> int:
    print("Monkey REPL. Enter statements, blank line to run buffer.")
    interpreter = Interpreter(source="", filename="<string>", verbose=verbose, services=services)
    global_env = Environment()
    interpreter.push_frame("<top-level>", global_env, None)
    buffer: List[str] = []

    def _run(text: str) -> None:
        try:
            result = interpreter.execute(text, global_env)
        except MonkeyParseError as error:
            _print_parse_errors(error)
            return
        except MonkeyRuntimeError as error:
            print(TracebackFormatter(interpreter).format_text(error, verbose=interpreter.verbose), file=sys.stderr)
            return
        finally:
            # Only the top-level frame survives between inputs.
            del interpreter.call_stack[1:]
        if result is not None:
            print(result.inspect())

    while True:
        prompt = ">> " if not buffer else ".. "
        try:
            line = input(prompt)
        except EOFError:
            print()
            break

        stripped = line.strip()
        if not buffer and stripped != "" and not stripped.endswith("{"):
            if _is_incomplete(line):
                # A line that does not parse alone starts a multi-line buffer.
                buffer.append(line)
                continue
            _run(line)
            continue

        if stripped == "" and buffer:
            source_text = "\n".join(buffer)
            buffer.clear()
            _run(source_text)
            continue

        if stripped != "":
            buffer.append(line)
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Monkey tree-walking interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--ext", action="append", default=[], metavar="PATH", help="Load an extension module (repeatable)")
    return _dispatch(parser.parse_args(argv))


def _dispatch(args: argparse.Namespace) -> int:
    services: Optional[RuntimeServices] = None
    if args.ext:
        try:
            services = load_runtime_services(args.ext)
        except MonkeyExtensionError as exc:
            print(f"ExtensionError: {exc}", file=sys.stderr)
            return 1

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(verbose=args.verbose, services=services)

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    try:
        interpreter = Interpreter(source=source_text, filename=filename, verbose=args.verbose, services=services)
    except MonkeyExtensionError as exc:
        print(f"ExtensionError: {exc}", file=sys.stderr)
        return 1
    try:
        result = interpreter.run()
    except MonkeyParseError as error:
        _print_parse_errors(error)
        return 1
    except MonkeyRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    if isinstance(result, Error):
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(result, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(result), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
