"""
Abstract Syntax Tree (AST) node definitions for Kestrel.

The AST is a strict tree: every node is owned by exactly one parent and
carries the source span it was parsed from. Statements and expressions
share one base class because blocks hold both, and the value of a block
is the value of its last entry.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Union, Any
from abc import ABC
from .tokens import SourceSpan, TokenType, OPERATOR_SYMBOLS


ANONYMOUS = "<anonymous>"


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def visit(self, node: AstNode) -> Any:
        method_name = f"visit_{node.__class__.__name__}"
        method = getattr(self, method_name, self.generic_visit)
        return method(node)

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Expression(Statement):
    """Base class for all expressions. Expressions may stand as statements."""
    pass


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class NumericLiteral(Expression):
    """A number literal (e.g., 42, 2.5)."""
    value: Union[int, float]


@dataclass
class StringLiteral(Expression):
    """A string literal."""
    value: str


@dataclass
class Identifier(Expression):
    """A variable reference."""
    symbol: str


@dataclass
class BinaryExpr(Expression):
    """A binary operation (e.g., a + b, x && y)."""
    left: Expression
    operator: TokenType
    right: Expression

    @property
    def symbol(self) -> str:
        return OPERATOR_SYMBOLS[self.operator]


@dataclass
class AssignmentExpr(Expression):
    """Assignment to a name or member path (e.g., x = 1, obj.a[0] = 2)."""
    target: Expression
    value: Expression


@dataclass
class MemberExpr(Expression):
    """Member access: ``obj.name`` or computed ``obj[expr]``."""
    object: Expression
    property: Expression
    computed: bool = False


@dataclass
class CallExpr(Expression):
    """A call (e.g., f(1, 2), obj.method(), Shape.Circle(3))."""
    callee: Expression
    arguments: List[Expression]


@dataclass
class NewExpr(Expression):
    """Class instantiation (e.g., new Point(1, 2))."""
    target: Expression
    arguments: List[Expression]


@dataclass
class Property(AstNode):
    """An object literal entry. A missing value means shorthand ``{key}``."""
    key: str
    value: Optional[Expression] = None


@dataclass
class ObjectLiteral(Expression):
    """An object literal (e.g., {a: 1, b})."""
    properties: List[Property]


@dataclass
class ArrayLiteral(Expression):
    """An array literal (e.g., [1, 2, 3])."""
    elements: List[Expression]


@dataclass
class MatchCase(AstNode):
    """One match clause: any of ``patterns`` selects ``body``."""
    patterns: List[Expression]
    body: List[Statement]


@dataclass
class MatchExpr(Expression):
    """
    Match expression.

    Cases are tried in source order. ``default`` holds the body of the
    default clause, if any.
    """
    value: Expression
    cases: List[MatchCase]
    default: Optional[List[Statement]] = None


@dataclass
class TryCatchExpr(Expression):
    """try { body } catch { handler }"""
    body: List[Statement]
    handler: List[Statement]


@dataclass
class FunctionDeclaration(Expression):
    """
    A function. Named functions are bound in the declaring scope;
    ``name == ANONYMOUS`` marks a function used as a value.
    """
    name: str
    parameters: List[str]
    body: List[Statement]

    @property
    def is_anonymous(self) -> bool:
        return self.name == ANONYMOUS


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class VarDeclaration(Statement):
    """let x = 1 / const y = 2 / let z"""
    identifier: str
    constant: bool = False
    value: Optional[Expression] = None


@dataclass
class IfStatement(Statement):
    """if (...) { } else { }. An ``else if`` is an IfStatement in ``alternate``."""
    test: Expression
    body: List[Statement]
    alternate: List[Statement] = field(default_factory=list)


@dataclass
class ForStatement(Statement):
    """for (let i = 0 i < n i = i + 1) { }"""
    init: VarDeclaration
    test: Expression
    update: Expression
    body: List[Statement]


@dataclass
class WhileStatement(Statement):
    test: Expression
    body: List[Statement]


@dataclass
class ReturnStatement(Statement):
    """return expr. A missing value returns null."""
    value: Optional[Expression] = None


@dataclass
class ThrowStatement(Statement):
    value: Expression


@dataclass
class BreakStatement(Statement):
    pass


@dataclass
class ContinueStatement(Statement):
    pass


@dataclass
class ClassDeclaration(Statement):
    """
    Class declaration.

    ``fields`` lists instance field names in declaration order;
    ``static_fields`` maps static field names to their initializers.
    """
    name: str
    fields: List[str] = field(default_factory=list)
    static_fields: Dict[str, Expression] = field(default_factory=dict)
    methods: Dict[str, FunctionDeclaration] = field(default_factory=dict)
    static_methods: Dict[str, FunctionDeclaration] = field(default_factory=dict)


@dataclass
class EnumDeclaration(Statement):
    """enum Color { Red, Green, Blue }"""
    name: str
    members: List[str]


@dataclass
class Program(AstNode):
    """Top-level program: the list of statements in a source file."""
    body: List[Statement]


# =============================================================================
# Debug printing
# =============================================================================

class PrintVisitor(AstVisitor):
    """Debug visitor that renders the AST structure as indented text."""

    def __init__(self, indent: int = 0):
        self.indent = indent
        self.lines: List[str] = []

    def _emit(self, text: str) -> None:
        self.lines.append("  " * self.indent + text)

    def _child(self, node: AstNode) -> None:
        child = PrintVisitor(self.indent + 2)
        child.visit(node)
        self.lines.extend(child.lines)

    def visit_BinaryExpr(self, node: BinaryExpr) -> None:
        self._emit(f"BinaryExpr '{node.symbol}'")
        self._child(node.left)
        self._child(node.right)

    def generic_visit(self, node: AstNode) -> None:
        self._emit(f"{node.__class__.__name__}")
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                self._emit(f"  {name}:")
                self._child(value)
            elif isinstance(value, list):
                self._emit(f"  {name}: [")
                for item in value:
                    if isinstance(item, AstNode):
                        self._child(item)
                    else:
                        self._emit(f"    {item!r}")
                self._emit("  ]")
            elif isinstance(value, dict):
                self._emit(f"  {name}: {{")
                for key, item in value.items():
                    self._emit(f"    {key}:")
                    self._child(item)
                self._emit("  }")
            else:
                self._emit(f"  {name}: {value!r}")


def format_ast(node: AstNode) -> str:
    """Render an AST node as indented text."""
    visitor = PrintVisitor()
    visitor.visit(node)
    return "\n".join(visitor.lines)


def print_ast(node: AstNode) -> None:
    """Print an AST node for debugging."""
    print(format_ast(node))
