"""
Kestrel - a small dynamically typed scripting language.

This package provides:
- Lexer: Tokenizes Kestrel source code
- Parser: Builds an AST from tokens
- Interpreter: Evaluates programs against an environment

Usage:
    from kestrel import run, tokenize, parse, create_global_env

    source = '''
    class Counter {
        count;
        constructor(start) { this.count = start }
        bump() { this.count = this.count + 1 }
    }
    let c = new Counter(1)
    c.bump()
    c.count
    '''
    result = run(source)          # NumberVal(2)

    # Or drive the stages yourself
    program = parse(tokenize(source), source=source)
    env = create_global_env()
    value = evaluate(program, env)
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    KEYWORDS,
    is_keyword,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse,
)

from .ast import (
    # Base
    AstNode,
    AstVisitor,
    Statement,
    Expression,
    ANONYMOUS,
    # Expressions
    NumericLiteral,
    StringLiteral,
    Identifier,
    BinaryExpr,
    AssignmentExpr,
    MemberExpr,
    CallExpr,
    NewExpr,
    Property,
    ObjectLiteral,
    ArrayLiteral,
    MatchCase,
    MatchExpr,
    TryCatchExpr,
    FunctionDeclaration,
    # Statements
    VarDeclaration,
    IfStatement,
    ForStatement,
    WhileStatement,
    ReturnStatement,
    ThrowStatement,
    BreakStatement,
    ContinueStatement,
    ClassDeclaration,
    EnumDeclaration,
    Program,
    # Helpers
    PrintVisitor,
    format_ast,
    print_ast,
)

from .errors import (
    KestrelError,
    LexerError,
    ParserError,
    EvaluationError,
    Diagnostic,
    ErrorSeverity,
)

from .runtime import (
    # Interpreter
    Interpreter,
    Completion,
    CompletionType,
    ExecutionResult,
    evaluate,
    execute,
    run,
    # Environment
    Environment,
    create_global_env,
    # Values
    RuntimeVal,
    format_value,
    to_python,
    from_python,
    values_equal,
    # Builtins
    BuiltinFunction,
    BuiltinRegistry,
    get_builtin_registry,
)

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'KEYWORDS',
    'is_keyword',

    # Lexer
    'Lexer',
    'tokenize',

    # Parser
    'Parser',
    'parse',

    # AST
    'AstNode',
    'AstVisitor',
    'Statement',
    'Expression',
    'ANONYMOUS',
    'NumericLiteral',
    'StringLiteral',
    'Identifier',
    'BinaryExpr',
    'AssignmentExpr',
    'MemberExpr',
    'CallExpr',
    'NewExpr',
    'Property',
    'ObjectLiteral',
    'ArrayLiteral',
    'MatchCase',
    'MatchExpr',
    'TryCatchExpr',
    'FunctionDeclaration',
    'VarDeclaration',
    'IfStatement',
    'ForStatement',
    'WhileStatement',
    'ReturnStatement',
    'ThrowStatement',
    'BreakStatement',
    'ContinueStatement',
    'ClassDeclaration',
    'EnumDeclaration',
    'Program',
    'PrintVisitor',
    'format_ast',
    'print_ast',

    # Errors
    'KestrelError',
    'LexerError',
    'ParserError',
    'EvaluationError',
    'Diagnostic',
    'ErrorSeverity',

    # Runtime
    'Interpreter',
    'Completion',
    'CompletionType',
    'ExecutionResult',
    'evaluate',
    'execute',
    'run',
    'Environment',
    'create_global_env',
    'RuntimeVal',
    'format_value',
    'to_python',
    'from_python',
    'values_equal',
    'BuiltinFunction',
    'BuiltinRegistry',
    'get_builtin_registry',
]

__version__ = "0.1.0"
