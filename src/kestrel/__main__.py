#!/usr/bin/env python3
"""
CLI for the Kestrel interpreter.

Usage:
    python -m kestrel run FILE [ARGS ...]
    python -m kestrel ast FILE
    python -m kestrel -c SOURCE
    python -m kestrel                  # interactive REPL

Examples:
    # Run a script; its arguments are visible to it as `args`
    python -m kestrel run examples/fib.ks 20

    # Print the parsed tree
    python -m kestrel ast examples/fib.ks

    # Evaluate a one-liner and print the result
    python -m kestrel -c 'let x = 2 x * 21'

    # Deep recursion needs a larger host stack
    python -m kestrel --recursion-limit 20000 run deep.ks
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .errors import KestrelError, LexerError
from .lexer import tokenize
from .parser import parse
from .ast import print_ast
from .tokens import TokenType
from .runtime import create_global_env, format_value, run

logger = logging.getLogger(__name__)

OPENERS = {TokenType.LBRACE, TokenType.LPAREN, TokenType.LBRACKET}
CLOSERS = {TokenType.RBRACE, TokenType.RPAREN, TokenType.RBRACKET}


def report_error(error: KestrelError, as_json: bool = False) -> None:
    """Write a diagnostic to stderr."""
    if as_json:
        print(json.dumps(error.diagnostic.to_json(), indent=2), file=sys.stderr)
    else:
        print(error.diagnostic.format(), file=sys.stderr)


def read_source(path_str: str) -> Optional[str]:
    source_path = Path(path_str)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return None
    return source_path.read_text()


def cmd_run(args) -> int:
    """Run a Kestrel script."""
    source = read_source(args.file)
    if source is None:
        return 1

    env = create_global_env(args.script_args)
    try:
        run(source, env, filename=args.file)
    except KestrelError as e:
        report_error(e, args.json)
        return 1
    return 0


def cmd_ast(args) -> int:
    """Parse a script and print its syntax tree."""
    source = read_source(args.file)
    if source is None:
        return 1

    try:
        program = parse(tokenize(source, args.file), args.file, source)
    except KestrelError as e:
        report_error(e, args.json)
        return 1
    print_ast(program)
    return 0


def cmd_eval(args) -> int:
    """Evaluate source given on the command line and print the result."""
    try:
        value = run(args.command, filename="<command>")
    except KestrelError as e:
        report_error(e, args.json)
        return 1
    print(format_value(value))
    return 0


def needs_more_input(source: str) -> bool:
    """True while ``source`` has an open string or unbalanced brackets."""
    try:
        tokens = tokenize(source)
    except LexerError as e:
        return e.code == "E002"
    depth = 0
    for token in tokens:
        if token.type in OPENERS:
            depth += 1
        elif token.type in CLOSERS:
            depth -= 1
    return depth > 0


def repl(as_json: bool = False) -> int:
    """
    Interactive session sharing one global environment.

    Lines are buffered until brackets balance; errors are reported and the
    session continues. ``exit``, ``quit`` or end of input ends it.
    """
    env = create_global_env()
    buffer: List[str] = []
    while True:
        try:
            line = input("... " if buffer else "> ")
        except EOFError:
            print()
            return 0

        if not buffer and line.strip() in ("exit", "quit"):
            return 0

        buffer.append(line)
        source = "\n".join(buffer)
        if needs_more_input(source):
            continue
        buffer = []

        try:
            value = run(source, env, filename="<repl>")
        except KestrelError as e:
            report_error(e, as_json)
            continue
        print(format_value(value))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog='kestrel',
        description='Kestrel script interpreter',
    )
    parser.add_argument('-c', '--command', metavar='SOURCE',
                        help='Evaluate SOURCE and print the result')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--recursion-limit', type=int, metavar='N',
                        help='Python recursion limit (bounds script recursion depth)')
    parser.add_argument('--json', action='store_true',
                        help='Report diagnostics as JSON')

    subparsers = parser.add_subparsers(dest='action')

    # run command
    run_parser = subparsers.add_parser('run', help='Run a Kestrel script')
    run_parser.add_argument('file', help='Kestrel source file')
    run_parser.add_argument('script_args', nargs=argparse.REMAINDER,
                            help='Arguments passed to the script as `args`')

    # ast command
    ast_parser = subparsers.add_parser('ast', help='Print the syntax tree of a script')
    ast_parser.add_argument('file', help='Kestrel source file')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if args.recursion_limit:
        logger.debug("setting recursion limit to %d", args.recursion_limit)
        sys.setrecursionlimit(args.recursion_limit)

    if args.command is not None:
        return cmd_eval(args)
    if args.action == 'run':
        return cmd_run(args)
    elif args.action == 'ast':
        return cmd_ast(args)
    return repl(args.json)


if __name__ == '__main__':
    sys.exit(main())
