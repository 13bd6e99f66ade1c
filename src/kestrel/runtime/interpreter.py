"""
Tree-walking interpreter for Kestrel.

Statements report how they finished through a ``Completion``: normally with
a value, or abruptly through ``return``, ``break`` or ``continue``. Blocks
stop at the first abrupt completion and hand it to the enclosing construct,
which either consumes it (loops, function calls) or passes it further out.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from .values import (
    RuntimeVal, BooleanVal, NumberVal, StringVal,
    FunctionVal, ClassFunctionVal, NativeFunctionVal,
    StaticClassVal, ClassVal, StaticEnumVal, EnumVal,
    null_val, bool_val, number_val, string_val, array_val, object_val,
    is_true, type_name, values_equal, format_value, to_python,
)
from .environment import Environment, create_global_env

from ..ast import (
    AstNode, Program, Statement, Expression,
    NumericLiteral, StringLiteral, Identifier, BinaryExpr, AssignmentExpr,
    MemberExpr, CallExpr, NewExpr, ObjectLiteral, ArrayLiteral,
    MatchExpr, TryCatchExpr, FunctionDeclaration,
    VarDeclaration, IfStatement, ForStatement, WhileStatement,
    ReturnStatement, ThrowStatement, BreakStatement, ContinueStatement,
    ClassDeclaration, EnumDeclaration,
)
from ..errors import (
    Diagnostic,
    KestrelError,
    EvaluationError,
    error_thrown,
    error_loop_control,
    error_enum_arity,
    error_not_callable,
    error_not_a_class,
    error_division_by_zero,
    error_invalid_assignment,
    error_native_failure,
)
from ..lexer import tokenize
from ..parser import parse
from ..tokens import SourceSpan, TokenType

logger = logging.getLogger(__name__)


class CompletionType(Enum):
    NORMAL = "normal"
    RETURN = "return"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass
class Completion:
    """How a statement or block finished, and the value it produced."""
    kind: CompletionType
    value: RuntimeVal

    @classmethod
    def normal(cls, value: RuntimeVal) -> "Completion":
        return cls(CompletionType.NORMAL, value)

    @property
    def is_abrupt(self) -> bool:
        return self.kind is not CompletionType.NORMAL


class _Unwind(Exception):
    """
    Carries an abrupt completion out of an expression.

    ``try`` and ``match`` hold blocks but may sit inside a larger
    expression; a ``return`` in such a block unwinds to the nearest
    statement boundary and continues from there as a Completion.
    """

    def __init__(self, completion: Completion):
        super().__init__(completion.kind.value)
        self.completion = completion


@dataclass
class ExecutionResult:
    """Result of running a piece of source."""
    success: bool
    value: Optional[RuntimeVal] = None
    diagnostic: Optional[Diagnostic] = None
    error_message: Optional[str] = None

    @property
    def data(self) -> Any:
        """The result converted to plain Python data."""
        if self.value is None:
            return None
        return to_python(self.value)


class Interpreter:
    """
    Tree-walking interpreter for Kestrel.

    Evaluates AST nodes by dispatching to type-specific methods. Holds no
    program state of its own; all state lives in the environments passed in.
    """

    def evaluate(self, node: AstNode, env: Environment) -> RuntimeVal:
        """Evaluate a program (or any single node) in ``env``, returning its value."""
        if isinstance(node, Program):
            return self._execute_block(node.body, env).value
        return self._execute_statement(node, env).value

    # =========================================================================
    # Statements
    # =========================================================================

    def _execute_block(self, statements: List[Statement], env: Environment) -> Completion:
        """Run statements in order, stopping at the first abrupt completion."""
        result = null_val()
        for stmt in statements:
            completion = self._execute_statement(stmt, env)
            if completion.is_abrupt:
                return completion
            result = completion.value
        return Completion.normal(result)

    def _execute_statement(self, stmt: Statement, env: Environment) -> Completion:
        try:
            return self._execute(stmt, env)
        except _Unwind as unwind:
            return unwind.completion

    def _execute(self, stmt: Statement, env: Environment) -> Completion:
        """Execute a statement."""
        if isinstance(stmt, VarDeclaration):
            return Completion.normal(self._execute_var_declaration(stmt, env))
        elif isinstance(stmt, IfStatement):
            return self._execute_if(stmt, env)
        elif isinstance(stmt, ForStatement):
            return self._execute_for(stmt, env)
        elif isinstance(stmt, WhileStatement):
            return self._execute_while(stmt, env)
        elif isinstance(stmt, ReturnStatement):
            value = self._evaluate(stmt.value, env) if stmt.value is not None else null_val()
            return Completion(CompletionType.RETURN, value)
        elif isinstance(stmt, BreakStatement):
            if not env.loop_permitted:
                raise error_loop_control("break", stmt.span)
            return Completion(CompletionType.BREAK, null_val())
        elif isinstance(stmt, ContinueStatement):
            if not env.loop_permitted:
                raise error_loop_control("continue", stmt.span)
            return Completion(CompletionType.CONTINUE, null_val())
        elif isinstance(stmt, ThrowStatement):
            value = self._evaluate(stmt.value, env)
            raise error_thrown(value, format_value(value, nested=True), stmt.span)
        elif isinstance(stmt, ClassDeclaration):
            return Completion.normal(self._execute_class_declaration(stmt, env))
        elif isinstance(stmt, EnumDeclaration):
            enum = StaticEnumVal(stmt.name, list(stmt.members))
            return Completion.normal(env.declare(stmt.name, enum))
        elif isinstance(stmt, TryCatchExpr):
            return self._execute_try_catch(stmt, env)
        elif isinstance(stmt, MatchExpr):
            return self._execute_match(stmt, env)
        elif isinstance(stmt, Expression):
            return Completion.normal(self._evaluate(stmt, env))
        else:
            raise RuntimeError(f"Unknown statement type: {type(stmt).__name__}")

    def _execute_var_declaration(self, stmt: VarDeclaration, env: Environment) -> RuntimeVal:
        value = self._evaluate(stmt.value, env) if stmt.value is not None else null_val()
        return env.declare(stmt.identifier, value, stmt.constant)

    def _execute_if(self, stmt: IfStatement, env: Environment) -> Completion:
        if is_true(self._evaluate(stmt.test, env)):
            return self._execute_block(stmt.body, Environment(env, name="if"))
        if stmt.alternate:
            return self._execute_block(stmt.alternate, Environment(env, name="else"))
        return Completion.normal(null_val())

    def _execute_while(self, stmt: WhileStatement, env: Environment) -> Completion:
        """Run the body while the test is true; the value is the last body value."""
        result = null_val()
        while True:
            scope = Environment(env, loop_permitted=True, name="while-loop")
            if not is_true(self._evaluate(stmt.test, scope)):
                break
            completion = self._execute_block(stmt.body, scope)
            if completion.kind is CompletionType.RETURN:
                return completion
            if completion.kind is CompletionType.BREAK:
                break
            if completion.kind is CompletionType.NORMAL:
                result = completion.value
        return Completion.normal(result)

    def _execute_for(self, stmt: ForStatement, env: Environment) -> Completion:
        """
        Run a for loop.

        The declaration lives in a scope around the whole loop; each
        iteration gets its own body scope. ``continue`` still runs the
        update before the next test.
        """
        loop_env = Environment(env, name="for-loop")
        self._execute_var_declaration(stmt.init, loop_env)

        while is_true(self._evaluate(stmt.test, loop_env)):
            scope = Environment(loop_env, loop_permitted=True, name="for-body")
            completion = self._execute_block(stmt.body, scope)
            if completion.kind is CompletionType.RETURN:
                return completion
            if completion.kind is CompletionType.BREAK:
                break
            self._evaluate(stmt.update, loop_env)

        return Completion.normal(null_val())

    def _execute_class_declaration(self, stmt: ClassDeclaration, env: Environment) -> StaticClassVal:
        cls = StaticClassVal(stmt.name, fields=list(stmt.fields))
        for name, initializer in stmt.static_fields.items():
            cls.static_fields[name] = self._evaluate(initializer, env)
        for name, method in stmt.methods.items():
            cls.methods[name] = ClassFunctionVal(
                name, list(method.parameters), method.body, env, bound=cls
            )
        for name, method in stmt.static_methods.items():
            cls.static_methods[name] = ClassFunctionVal(
                name, list(method.parameters), method.body, env, bound=cls
            )
        return env.declare(stmt.name, cls)

    def _execute_try_catch(self, expr: TryCatchExpr, env: Environment) -> Completion:
        """
        Run the try body; on an evaluation error, bind its value to
        ``error`` in the enclosing scope and run the catch body.
        """
        try:
            return self._execute_block(expr.body, Environment(env, name="try"))
        except EvaluationError as error:
            logger.debug("caught %s: %s", error.code, error.diagnostic.message)
            env.declare("error", error.value)
            return self._execute_block(expr.handler, Environment(env, name="catch"))

    def _execute_match(self, expr: MatchExpr, env: Environment) -> Completion:
        """
        Evaluate the scrutinee once, then run the first clause with a
        matching pattern, else the default clause, else produce null.
        """
        scope = Environment(env, name="match")
        value = self._evaluate(expr.value, scope)

        for case in expr.cases:
            for pattern in case.patterns:
                if self._pattern_matches(pattern, value, scope):
                    return self._execute_block(case.body, scope)

        if expr.default is not None:
            return self._execute_block(expr.default, scope)
        return Completion.normal(null_val())

    def _pattern_matches(self, pattern: Expression, value: RuntimeVal, scope: Environment) -> bool:
        """
        Test one pattern. ``Enum.Member(name)`` destructures a tagged member
        of the same enum, binding its payload to ``name`` in ``scope``; any
        other pattern is evaluated and compared structurally.
        """
        if (isinstance(pattern, CallExpr) and len(pattern.arguments) == 1
                and isinstance(pattern.arguments[0], Identifier)):
            candidate = self._evaluate(pattern.callee, scope)
            if isinstance(candidate, EnumVal):
                if (isinstance(value, EnumVal) and value.tagged is not None
                        and value.parent is candidate.parent and value.name == candidate.name):
                    scope.declare(pattern.arguments[0].symbol, value.tagged)
                    return True
                return False
            argument = self._evaluate(pattern.arguments[0], scope)
            return values_equal(self.call_function(candidate, [argument], scope, pattern.span), value)
        return values_equal(self._evaluate(pattern, scope), value)

    # =========================================================================
    # Expressions
    # =========================================================================

    def _evaluate(self, expr: Expression, env: Environment) -> RuntimeVal:
        """Evaluate an expression to produce a value."""
        if isinstance(expr, NumericLiteral):
            return number_val(expr.value)
        elif isinstance(expr, StringLiteral):
            return string_val(expr.value)
        elif isinstance(expr, Identifier):
            return env.lookup(expr.symbol, expr.span)
        elif isinstance(expr, BinaryExpr):
            return self._eval_binary(expr, env)
        elif isinstance(expr, AssignmentExpr):
            return self._eval_assignment(expr, env)
        elif isinstance(expr, MemberExpr):
            return env.resolve_member(expr, self._evaluate)
        elif isinstance(expr, CallExpr):
            return self._eval_call(expr, env)
        elif isinstance(expr, NewExpr):
            return self._eval_new(expr, env)
        elif isinstance(expr, ObjectLiteral):
            return self._eval_object_literal(expr, env)
        elif isinstance(expr, ArrayLiteral):
            return array_val([self._evaluate(e, env) for e in expr.elements])
        elif isinstance(expr, FunctionDeclaration):
            return self._eval_function_declaration(expr, env)
        elif isinstance(expr, (TryCatchExpr, MatchExpr)):
            completion = self._execute(expr, env)
            if completion.is_abrupt:
                raise _Unwind(completion)
            return completion.value
        else:
            raise RuntimeError(f"Unknown expression type: {type(expr).__name__}")

    def _eval_function_declaration(self, expr: FunctionDeclaration, env: Environment) -> FunctionVal:
        function = FunctionVal(expr.name, list(expr.parameters), expr.body, env)
        if not expr.is_anonymous:
            env.declare(expr.name, function, constant=True)
        return function

    def _eval_object_literal(self, expr: ObjectLiteral, env: Environment) -> RuntimeVal:
        properties = {}
        for prop in expr.properties:
            if prop.value is None:
                properties[prop.key] = env.lookup(prop.key, prop.span)
            else:
                properties[prop.key] = self._evaluate(prop.value, env)
        return object_val(properties)

    def _eval_assignment(self, expr: AssignmentExpr, env: Environment) -> RuntimeVal:
        value = self._evaluate(expr.value, env)
        target = expr.target
        if isinstance(target, Identifier):
            return env.assign(target.symbol, value, target.span)
        if isinstance(target, MemberExpr):
            return env.resolve_member(target, self._evaluate, value)
        raise error_invalid_assignment(target.span)

    def _eval_binary(self, expr: BinaryExpr, env: Environment) -> RuntimeVal:
        """
        Evaluate a binary operation. Both operands are always evaluated.

        Logical operators need two booleans and arithmetic or ordering needs
        two numbers (or two strings for '+'); any other combination is false.
        """
        left = self._evaluate(expr.left, env)
        right = self._evaluate(expr.right, env)
        op = expr.operator

        if op in (TokenType.AND, TokenType.BAR):
            if not (isinstance(left, BooleanVal) and isinstance(right, BooleanVal)):
                return bool_val(False)
            if op == TokenType.AND:
                return bool_val(left.value and right.value)
            return bool_val(left.value or right.value)

        if op == TokenType.EQ:
            return bool_val(values_equal(left, right))
        if op == TokenType.NE:
            return bool_val(not values_equal(left, right))

        if isinstance(left, NumberVal) and isinstance(right, NumberVal):
            return self._eval_numeric(op, left.value, right.value, expr.span)

        if op == TokenType.PLUS and isinstance(left, StringVal) and isinstance(right, StringVal):
            return string_val(left.value + right.value)

        return bool_val(False)

    def _eval_numeric(self, op: TokenType, a, b, span: SourceSpan) -> RuntimeVal:
        if op == TokenType.PLUS:
            return number_val(a + b)
        elif op == TokenType.MINUS:
            return number_val(a - b)
        elif op == TokenType.STAR:
            return number_val(a * b)
        elif op == TokenType.SLASH:
            if b == 0:
                raise error_division_by_zero(span)
            return number_val(a / b)
        elif op == TokenType.PERCENT:
            if b == 0:
                raise error_division_by_zero(span)
            return number_val(a % b)
        elif op == TokenType.LT:
            return bool_val(a < b)
        elif op == TokenType.GT:
            return bool_val(a > b)
        raise RuntimeError(f"Unknown numeric operator: {op}")

    # =========================================================================
    # Calls and instantiation
    # =========================================================================

    def _eval_call(self, expr: CallExpr, env: Environment) -> RuntimeVal:
        arguments = [self._evaluate(arg, env) for arg in expr.arguments]
        callee = self._evaluate(expr.callee, env)
        return self.call_function(callee, arguments, env, expr.span)

    def call_function(self, callee: RuntimeVal, arguments: List[RuntimeVal],
                      env: Environment, span: SourceSpan = None) -> RuntimeVal:
        """
        Call ``callee`` with already evaluated arguments.

        Parameters are bound positionally: extra arguments are ignored and
        missing parameters stay unbound.
        """
        if isinstance(callee, NativeFunctionVal):
            try:
                return callee.call(arguments, env)
            except (KestrelError, RecursionError):
                raise
            except Exception as exc:
                logger.debug("native %s raised %r", callee.name, exc)
                raise error_native_failure(callee.name, str(exc) or type(exc).__name__, span) from exc

        if isinstance(callee, FunctionVal):
            scope = Environment(callee.declaration_env, loop_permitted=False, name=callee.name)
            if isinstance(callee, ClassFunctionVal) and callee.bound is not None:
                scope.declare("this", callee.bound)
            for name, value in zip(callee.parameters, arguments):
                scope.declare(name, value)
            completion = self._execute_block(callee.body, scope)
            return completion.value

        if isinstance(callee, EnumVal):
            if len(arguments) != 1:
                raise error_enum_arity(callee.name, len(arguments), span)
            return callee.tag(arguments[0])

        raise error_not_callable(type_name(callee), span)

    def _eval_new(self, expr: NewExpr, env: Environment) -> ClassVal:
        """
        Instantiate a class: every declared field starts as null, methods
        are bound to the new instance, and ``constructor`` (if any) runs
        with the arguments.
        """
        target = self._evaluate(expr.target, env)
        if not isinstance(target, StaticClassVal):
            raise error_not_a_class(type_name(target), expr.span)
        arguments = [self._evaluate(arg, env) for arg in expr.arguments]

        instance = ClassVal(target, {name: null_val() for name in target.fields})
        instance.methods = {name: method.bind(instance) for name, method in target.methods.items()}
        logger.debug("instantiating %s with %d argument(s)", target.name, len(arguments))

        constructor = instance.methods.get("constructor")
        if constructor is not None:
            self.call_function(constructor, arguments, env, expr.span)
        return instance


def evaluate(node: AstNode, env: Environment) -> RuntimeVal:
    """Evaluate ``node`` in ``env`` with a fresh interpreter."""
    return Interpreter().evaluate(node, env)


def _attach_source(error: KestrelError, source: str) -> None:
    """Fill in the offending source line for diagnostics raised at runtime."""
    diag = error.diagnostic
    if diag.source_line is None and diag.span.start.line > 0:
        lines = source.splitlines()
        if diag.span.start.line <= len(lines):
            diag.source_line = lines[diag.span.start.line - 1]


def run(source: str, env: Optional[Environment] = None,
        filename: Optional[str] = None) -> RuntimeVal:
    """
    Tokenize, parse and evaluate ``source``.

    Args:
        source: Program text
        env: Environment to run in (a fresh global environment if omitted)
        filename: Optional filename for diagnostics

    Returns:
        The value of the last top-level statement

    Raises:
        LexerError, ParserError, EvaluationError
    """
    tokens = tokenize(source, filename)
    program = parse(tokens, filename, source)
    if env is None:
        env = create_global_env()
    try:
        return Interpreter().evaluate(program, env)
    except EvaluationError as error:
        _attach_source(error, source)
        raise


def execute(source: str, env: Optional[Environment] = None,
            filename: Optional[str] = None) -> ExecutionResult:
    """
    Run ``source``, reporting language errors in the result instead of raising.
    """
    try:
        value = run(source, env, filename)
    except KestrelError as error:
        return ExecutionResult(
            success=False,
            diagnostic=error.diagnostic,
            error_message=error.diagnostic.format(),
        )
    return ExecutionResult(success=True, value=value)
