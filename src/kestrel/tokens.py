"""
Token types for the Kestrel lexer.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E4xx: Runtime errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the Kestrel lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, 3.14
    STRING = auto()             # "hello", 'hi'

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names (also true/false/null)

    # --- Keywords ---
    LET = auto()                # let
    CONST = auto()              # const
    FN = auto()                 # fn
    IF = auto()                 # if
    ELSE = auto()               # else
    FOR = auto()                # for
    WHILE = auto()              # while
    BREAK = auto()              # break
    CONTINUE = auto()           # continue
    RETURN = auto()             # return
    CLASS = auto()              # class
    STATIC = auto()             # static
    ENUM = auto()               # enum
    MATCH = auto()              # match
    DEFAULT = auto()            # default (match fallback clause)
    NEW = auto()                # new
    THROW = auto()              # throw
    TRY = auto()                # try
    CATCH = auto()              # catch

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # &&
    BAR = auto()                # | (logical or, also the ternary separator)

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    COLON = auto()              # :
    SEMICOLON = auto()          # ;
    COMMA = auto()              # ,
    DOT = auto()                # .
    ARROW = auto()              # => (match case)
    TERNARY = auto()            # -> (ternary sugar)

    # --- Layout ---
    NEWLINE = auto()            # kept in the stream, optional to the parser

    # --- Special ---
    EOF = auto()                # end of file


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # Decoded value (int, float, str) or the operator spelling
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    @property
    def line(self) -> int:
        return self.span.start.line

    @property
    def column(self) -> int:
        return self.span.start.column

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


KEYWORDS: dict[str, TokenType] = {
    "let": TokenType.LET,
    "const": TokenType.CONST,
    "fn": TokenType.FN,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "for": TokenType.FOR,
    "while": TokenType.WHILE,
    "break": TokenType.BREAK,
    "continue": TokenType.CONTINUE,
    "return": TokenType.RETURN,
    "class": TokenType.CLASS,
    "static": TokenType.STATIC,
    "enum": TokenType.ENUM,
    "match": TokenType.MATCH,
    "default": TokenType.DEFAULT,
    "new": TokenType.NEW,
    "throw": TokenType.THROW,
    "try": TokenType.TRY,
    "catch": TokenType.CATCH,
}


# Operator spellings used when printing binary expressions
OPERATOR_SYMBOLS: dict[TokenType, str] = {
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.LT: "<",
    TokenType.GT: ">",
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.AND: "&&",
    TokenType.BAR: "|",
}


def is_keyword(token_type: TokenType) -> bool:
    """Check if a token type is a reserved keyword."""
    return token_type in KEYWORDS.values()
