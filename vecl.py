"""vecl entry point and command-line wiring."""

from __future__ import annotations
import argparse
import json
import sys
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from interpreter import Interpreter, TracebackFormatter, VeclRuntimeError
from lexer import VeclError, tokenize
from parser import parse
from semantic import Scope, analyze


def _debug_dump(source_text: str, filename: str) -> str:
    program = parse(source_text, filename)
    scopes: Dict[str, Scope] = analyze(program)
    data: Dict[str, Any] = {
        "tokens": [asdict(token) for token in tokenize(source_text)],
        "ast": asdict(program),
        "scopes": {
            name: {
                "formal_params": scope.formal_params,
                "functions": sorted(scope.functions),
                "variables": sorted(scope.variables),
                "definition": scope.definition.name,
            }
            for name, scope in scopes.items()
        },
    }
    return json.dumps(data, indent=2)


def read_program(stream: Any = None) -> str:
    stream = stream or sys.stdin
    if stream.isatty():
        print("Write your program (end it with CTRL+D to execute):", file=sys.stderr)
    return stream.read()


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="vecl reference interpreter")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("--debug", action="store_true", help="Dump tokens, AST and scopes as JSON before running")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    args = parser.parse_args(argv)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        source_text = read_program()
        filename = "<stdin>"
    elif args.source_mode:
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
        if args.debug:
            print(_debug_dump(source_text, filename))
        program = parse(source_text, filename)
        interpreter = Interpreter(program, scopes=analyze(program), verbose=args.verbose)
    except VeclError as error:
        print(f"{error.__class__.__name__}: {error}", file=sys.stderr)
        return 1

    try:
        interpreter.run()
    except VeclRuntimeError as error:
        formatter = TracebackFormatter(interpreter)
        print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
        if args.traceback_json:
            print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
