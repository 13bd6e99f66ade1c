"""
Kestrel exceptions and diagnostics.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional
from .tokens import SourceSpan, SourceLocation


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


# Placeholder span for runtime errors raised outside of any source node
UNKNOWN_SPAN = SourceSpan(SourceLocation(0, 0, 0), SourceLocation(0, 0, 0))


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: SourceSpan
    source_line: Optional[str] = None   # The actual line of source code
    hints: List[str] = field(default_factory=list)
    related: List["Diagnostic"] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = []

        # Header: location: severity[code]: message
        if self.span.start.line > 0:
            parts.append(f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}")
        else:
            parts.append(f"{self.severity.value}[{self.code}]: {self.message}")

        if show_source and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            if self.span.start.line == self.span.end.line:
                end_col = self.span.end.column
            else:
                end_col = len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        for related in self.related:
            parts.append(f"    --> {related.span.start}: {related.message}")

        return "\n".join(parts)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict for tooling integration."""
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "range": {
                "start": {
                    "line": self.span.start.line,
                    "column": self.span.start.column,
                    "offset": self.span.start.offset,
                },
                "end": {
                    "line": self.span.end.line,
                    "column": self.span.end.column,
                    "offset": self.span.end.offset,
                },
            },
            "hints": self.hints,
            "related": [r.to_json() for r in self.related],
        }


class KestrelError(Exception):
    """Base exception for all Kestrel errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def code(self) -> str:
        return self.diagnostic.code

    def __str__(self) -> str:
        return self.diagnostic.format()


class LexerError(KestrelError):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(KestrelError):
    """Error during parsing (E1xx)."""
    pass


class EvaluationError(KestrelError):
    """
    Error raised while evaluating a program (E4xx).

    Carries the runtime value that a ``catch`` block sees as ``error``: the
    thrown value for ``throw``, or a string holding the message for faults
    raised by the evaluator and native functions.
    """

    def __init__(self, diagnostic: Diagnostic, value: Any = None):
        super().__init__(diagnostic)
        if value is None:
            # Imported lazily: values depends on the runtime package
            from .runtime.values import string_val
            value = string_val(diagnostic.message)
        self.value = value


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_unterminated_string(span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Unterminated string literal."""
    diag = Diagnostic(
        code="E002",
        message="unterminated string literal",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["string literals must be closed with matching quotes"],
    )
    return LexerError(diag)


def error_invalid_escape_sequence(seq: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Invalid escape sequence in string."""
    diag = Diagnostic(
        code="E003",
        message=f"invalid escape sequence '\\{seq}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["valid escape sequences: \\n, \\t, \\r, \\\", \\', \\\\, \\0"],
    )
    return LexerError(diag)


def error_unterminated_comment(span: SourceSpan, source_line: str = None) -> LexerError:
    """E004: Unterminated block comment."""
    diag = Diagnostic(
        code="E004",
        message="unterminated block comment (expected closing */)",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E102: Unexpected end of file."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of file, expected {expected}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_invalid_expression(message: str, span: SourceSpan,
                             source_line: str = None) -> ParserError:
    """E103: Invalid expression or assignment target."""
    diag = Diagnostic(
        code="E103",
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_duplicate_default(span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: More than one default clause in a match."""
    diag = Diagnostic(
        code="E104",
        message="match expression has more than one default clause",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_missing_const_value(name: str, span: SourceSpan,
                              source_line: str = None) -> ParserError:
    """E105: Constant declared without an initializer."""
    diag = Diagnostic(
        code="E105",
        message=f"constant '{name}' must be initialized",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["use 'let' for variables declared without a value"],
    )
    return ParserError(diag)


def error_invalid_ternary(message: str, span: SourceSpan,
                          source_line: str = None) -> ParserError:
    """E106: Malformed ternary expression."""
    diag = Diagnostic(
        code="E106",
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=["ternary syntax is: condition -> when_true | when_false"],
    )
    return ParserError(diag)


# --- Runtime error codes ---

def _runtime_error(code: str, message: str, span: Optional[SourceSpan],
                   value: Any = None, hints: List[str] = None) -> EvaluationError:
    diag = Diagnostic(
        code=code,
        message=message,
        severity=ErrorSeverity.ERROR,
        span=span or UNKNOWN_SPAN,
        hints=hints or [],
    )
    return EvaluationError(diag, value)


def error_thrown(value: Any, description: str, span: SourceSpan = None) -> EvaluationError:
    """E400: Value raised by a throw statement."""
    return _runtime_error("E400", f"uncaught throw: {description}", span, value)


def error_undefined_variable(name: str, span: SourceSpan = None) -> EvaluationError:
    """E401: Name not bound in any enclosing scope."""
    return _runtime_error("E401", f"cannot resolve '{name}' as it does not exist", span)


def error_constant_reassignment(name: str, span: SourceSpan = None) -> EvaluationError:
    """E402: Assignment to a constant binding."""
    return _runtime_error(
        "E402", f"cannot reassign to variable '{name}' as it was declared constant", span
    )


def error_invalid_member(message: str, span: SourceSpan = None) -> EvaluationError:
    """E403: Member access or mutation on something that lacks the member."""
    return _runtime_error("E403", message, span)


def error_index_out_of_bounds(index: Any, length: int, span: SourceSpan = None) -> EvaluationError:
    """E404: Array index outside of the array."""
    return _runtime_error(
        "E404", f"index {index} out of bounds for array of length {length}", span
    )


def error_loop_control(keyword: str, span: SourceSpan = None) -> EvaluationError:
    """E405: break or continue outside of a loop body."""
    return _runtime_error("E405", f"can only {keyword} inside a loop", span)


def error_enum_arity(name: str, count: int, span: SourceSpan = None) -> EvaluationError:
    """E406: Enum member tagged with the wrong number of values."""
    return _runtime_error(
        "E406", f"enum member '{name}' takes exactly one value, got {count}", span
    )


def error_not_callable(type_name: str, span: SourceSpan = None) -> EvaluationError:
    """E407: Call on a value that is not a function."""
    return _runtime_error("E407", f"cannot call value of type '{type_name}'", span)


def error_not_a_class(type_name: str, span: SourceSpan = None) -> EvaluationError:
    """E408: new on something other than a class."""
    return _runtime_error("E408", f"cannot instantiate value of type '{type_name}'", span)


def error_division_by_zero(span: SourceSpan = None) -> EvaluationError:
    """E409: Division or modulo by zero."""
    return _runtime_error("E409", "division by zero", span)


def error_invalid_assignment(span: SourceSpan = None) -> EvaluationError:
    """E410: Assignment to something that is not a name or member path."""
    return _runtime_error("E410", "invalid assignment target", span)


def error_builtin_argument(name: str, message: str, span: SourceSpan = None) -> EvaluationError:
    """E411: Bad argument passed to a native function."""
    return _runtime_error("E411", f"{name}(): {message}", span)


def error_native_failure(name: str, message: str, span: SourceSpan = None) -> EvaluationError:
    """E412: A native function failed with a host exception."""
    return _runtime_error("E412", f"{name}() failed: {message}", span)
