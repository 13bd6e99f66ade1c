"""
Recursive descent parser for Kestrel.

Converts a token stream into an Abstract Syntax Tree (AST).

NEWLINE tokens stay in the stream; every lookahead looks past them, so
statements and expressions may be broken across lines freely.
"""

import logging
from typing import List, Optional, NoReturn

from .tokens import Token, TokenType, SourceSpan
from .ast import (
    ANONYMOUS,
    # Expressions
    Expression, NumericLiteral, StringLiteral, Identifier, BinaryExpr,
    AssignmentExpr, MemberExpr, CallExpr, NewExpr, Property, ObjectLiteral,
    ArrayLiteral, MatchCase, MatchExpr, TryCatchExpr, FunctionDeclaration,
    # Statements
    Statement, VarDeclaration, IfStatement, ForStatement, WhileStatement,
    ReturnStatement, ThrowStatement, BreakStatement, ContinueStatement,
    ClassDeclaration, EnumDeclaration, Program,
)
from .errors import (
    ParserError,
    error_unexpected_token,
    error_unexpected_eof,
    error_invalid_expression,
    error_duplicate_default,
    error_missing_const_value,
    error_invalid_ternary,
)

logger = logging.getLogger(__name__)


class Parser:
    """
    Recursive descent parser for Kestrel.

    Usage:
        parser = Parser(tokens)
        program = parser.parse_program()

    Expression precedence, loosest to tightest:
        ternary sugar  cond -> a | b
        new            new Target(args)
        assignment     target = value
        object         { key: value, key }
        array          [a, b]
        try/catch      try { } catch { }
        logical        && |
        additive       + - == != < >
        multiplicative * / %
        call           callee(args) with chained member access
        member         obj.name obj[expr]
        primary        literals, identifiers, fn, ( expr ), match
    """

    LOGICAL_OPERATORS = (TokenType.AND, TokenType.BAR)
    ADDITIVE_OPERATORS = (
        TokenType.PLUS, TokenType.MINUS,
        TokenType.EQ, TokenType.NE, TokenType.LT, TokenType.GT,
    )
    MULTIPLICATIVE_OPERATORS = (TokenType.STAR, TokenType.SLASH, TokenType.PERCENT)

    def __init__(self, tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None):
        self.tokens = tokens
        self.filename = filename
        self.source = source
        self.pos = 0
        self._previous: Optional[Token] = None
        self._lines = source.splitlines() if source else []

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _index_past_newlines(self, index: int) -> int:
        last = len(self.tokens) - 1
        while index < last and self.tokens[index].type == TokenType.NEWLINE:
            index += 1
        return min(index, last)

    def _current(self) -> Token:
        """Get the current token, looking past any newlines."""
        return self.tokens[self._index_past_newlines(self.pos)]

    def _peek(self, offset: int = 1) -> Token:
        """Peek at the non-newline token ``offset`` places after the current one."""
        index = self._index_past_newlines(self.pos)
        for _ in range(offset):
            index = self._index_past_newlines(index + 1)
        return self.tokens[index]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _skip_newlines(self) -> None:
        """Consume any NEWLINE tokens."""
        self.pos = self._index_past_newlines(self.pos)

    def _advance(self) -> Token:
        """Consume and return the current token."""
        self._skip_newlines()
        token = self.tokens[self.pos]
        if token.type != TokenType.EOF:
            self.pos += 1
        self._previous = token
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        """Consume token if it matches any of the given types."""
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, line: int) -> Optional[str]:
        if 1 <= line <= len(self._lines):
            return self._lines[line - 1]
        return None

    def _error(self, expected: str) -> NoReturn:
        """Raise a parser error at the current token."""
        token = self._current()
        source_line = self._source_line(token.line)
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span, source_line)
        raise error_unexpected_token(expected, f"'{token.lexeme}'", token.span, source_line)

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        end_token = self._previous or start
        return SourceSpan(start.span.start, end_token.span.end)

    def _node_span(self, first: Expression, last: Expression) -> SourceSpan:
        return SourceSpan(first.span.start, last.span.end)

    # =========================================================================
    # Program and Blocks
    # =========================================================================

    def parse_program(self) -> Program:
        """Parse a whole source file."""
        start = self._current()
        body = self._parse_statements(TokenType.EOF)
        program = Program(span=self._span_from(start), body=body)
        logger.debug("parsed %d top-level statements from %s",
                     len(body), self.filename or "<string>")
        return program

    def _parse_statements(self, terminator: TokenType) -> List[Statement]:
        """Parse statements until ``terminator`` (not consumed)."""
        body = []
        while True:
            while self._match(TokenType.SEMICOLON):
                pass
            if self._check(terminator) or self._is_at_end():
                break
            body.append(self._parse_statement())
        return body

    def _parse_block(self) -> List[Statement]:
        """Parse a brace-delimited block: { statements }"""
        self._consume(TokenType.LBRACE, "'{'")
        body = self._parse_statements(TokenType.RBRACE)
        self._consume(TokenType.RBRACE, "'}'")
        return body

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> Statement:
        """Parse a statement."""
        token_type = self._current().type

        if token_type in (TokenType.LET, TokenType.CONST):
            return self._parse_var_declaration()
        if token_type == TokenType.FN and self._peek().type == TokenType.IDENTIFIER:
            return self._parse_function()
        if token_type == TokenType.THROW:
            return self._parse_throw_statement()
        if token_type == TokenType.IF:
            return self._parse_if_statement()
        if token_type == TokenType.FOR:
            return self._parse_for_statement()
        if token_type == TokenType.WHILE:
            return self._parse_while_statement()
        if token_type == TokenType.CLASS:
            return self._parse_class_declaration()
        if token_type == TokenType.ENUM:
            return self._parse_enum_declaration()
        if token_type == TokenType.RETURN:
            return self._parse_return_statement()
        if token_type == TokenType.BREAK:
            token = self._advance()
            self._match(TokenType.SEMICOLON)
            return BreakStatement(span=token.span)
        if token_type == TokenType.CONTINUE:
            token = self._advance()
            self._match(TokenType.SEMICOLON)
            return ContinueStatement(span=token.span)

        return self._parse_expression()

    def _parse_var_declaration(self) -> VarDeclaration:
        """let x = value / const x = value / let x"""
        start = self._advance()  # consume 'let' or 'const'
        constant = start.type == TokenType.CONST
        name = self._consume(TokenType.IDENTIFIER, "variable name").value

        if not self._match(TokenType.ASSIGN):
            self._match(TokenType.SEMICOLON)
            if constant:
                raise error_missing_const_value(
                    name, self._span_from(start), self._source_line(start.line)
                )
            return VarDeclaration(span=self._span_from(start), identifier=name, constant=False)

        value = self._parse_expression()
        return VarDeclaration(
            span=self._span_from(start),
            identifier=name,
            constant=constant,
            value=value,
        )

    def _parse_throw_statement(self) -> ThrowStatement:
        start = self._advance()  # consume 'throw'
        value = self._parse_expression()
        return ThrowStatement(span=self._span_from(start), value=value)

    def _parse_if_statement(self) -> IfStatement:
        """if (test) { } [else if (...) { }] [else { }]"""
        start = self._advance()  # consume 'if'
        self._consume(TokenType.LPAREN, "'(' after 'if'")
        test = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after if condition")
        body = self._parse_block()

        alternate = []
        if self._match(TokenType.ELSE):
            if self._check(TokenType.IF):
                alternate = [self._parse_if_statement()]
            else:
                alternate = self._parse_block()

        return IfStatement(
            span=self._span_from(start),
            test=test,
            body=body,
            alternate=alternate,
        )

    def _parse_for_statement(self) -> ForStatement:
        """for (let i = 0 i < n i = i + 1) { } (semicolons optional)"""
        start = self._advance()  # consume 'for'
        self._consume(TokenType.LPAREN, "'(' after 'for'")
        if not self._check_any(TokenType.LET, TokenType.CONST):
            self._error("variable declaration in for loop")
        init = self._parse_var_declaration()
        test = self._parse_expression()
        update = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after for clauses")
        body = self._parse_block()
        return ForStatement(
            span=self._span_from(start),
            init=init,
            test=test,
            update=update,
            body=body,
        )

    def _parse_while_statement(self) -> WhileStatement:
        start = self._advance()  # consume 'while'
        self._consume(TokenType.LPAREN, "'(' after 'while'")
        test = self._parse_expression()
        self._consume(TokenType.RPAREN, "')' after while condition")
        body = self._parse_block()
        return WhileStatement(span=self._span_from(start), test=test, body=body)

    def _parse_return_statement(self) -> ReturnStatement:
        """return [value] [;]"""
        start = self._advance()  # consume 'return'
        if self._match(TokenType.SEMICOLON) or self._check_any(TokenType.RBRACE, TokenType.EOF):
            return ReturnStatement(span=self._span_from(start))
        value = self._parse_expression()
        return ReturnStatement(span=self._span_from(start), value=value)

    def _parse_class_declaration(self) -> ClassDeclaration:
        """
        Parse a class declaration:

            class Counter {
                count;
                static created = 0;

                constructor(start) { this.count = start }
                static make() { return new Counter(0) }
            }
        """
        start = self._advance()  # consume 'class'
        name = self._consume(TokenType.IDENTIFIER, "class name").value
        self._consume(TokenType.LBRACE, "'{' after class name")

        decl = ClassDeclaration(span=start.span, name=name)
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            is_static = self._match(TokenType.STATIC) is not None
            member = self._consume(TokenType.IDENTIFIER, "class field or method name")

            if self._check(TokenType.LPAREN):
                method = self._parse_function_rest(member, member.value)
                if is_static:
                    decl.static_methods[member.value] = method
                else:
                    decl.methods[member.value] = method
            elif is_static:
                self._consume(TokenType.ASSIGN, "'=' and initial value for static field")
                decl.static_fields[member.value] = self._parse_expression()
            elif member.value not in decl.fields:
                decl.fields.append(member.value)

            self._match(TokenType.SEMICOLON)

        self._consume(TokenType.RBRACE, "'}' after class body")
        decl.span = self._span_from(start)
        return decl

    def _parse_enum_declaration(self) -> EnumDeclaration:
        """enum Name { A, B, C }"""
        start = self._advance()  # consume 'enum'
        name = self._consume(TokenType.IDENTIFIER, "enum name").value
        self._consume(TokenType.LBRACE, "'{' after enum name")

        members = []
        while not self._check(TokenType.RBRACE):
            members.append(self._consume(TokenType.IDENTIFIER, "enum member name").value)
            if not self._check(TokenType.RBRACE):
                self._consume(TokenType.COMMA, "',' between enum members")

        self._consume(TokenType.RBRACE, "'}' after enum members")
        return EnumDeclaration(span=self._span_from(start), name=name, members=members)

    # =========================================================================
    # Functions
    # =========================================================================

    def _parse_function(self) -> FunctionDeclaration:
        """fn [name](params) { body }"""
        start = self._advance()  # consume 'fn'
        name = ANONYMOUS
        if self._check(TokenType.IDENTIFIER):
            name = self._advance().value
        return self._parse_function_rest(start, name)

    def _parse_function_rest(self, start: Token, name: str) -> FunctionDeclaration:
        """Parse the parameter list and body of a function or method."""
        self._consume(TokenType.LPAREN, "'(' before parameters")
        parameters = []
        while not self._check(TokenType.RPAREN):
            parameters.append(self._consume(TokenType.IDENTIFIER, "parameter name").value)
            if not self._check(TokenType.RPAREN):
                self._consume(TokenType.COMMA, "',' between parameters")
        self._consume(TokenType.RPAREN, "')' after parameters")
        body = self._parse_block()
        return FunctionDeclaration(
            span=self._span_from(start),
            name=name,
            parameters=parameters,
            body=body,
        )

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """
        Parse an expression, swallowing one trailing ';'.

        A '->' after the expression starts the ternary sugar
        ``cond -> a | b``, rewritten as an immediately invoked anonymous
        function whose body is ``if (cond) { a } else { b }``.
        """
        expr = self._parse_new_expr()

        if self._check(TokenType.TERNARY):
            arrow = self._advance()
            if not isinstance(expr, (BinaryExpr, Identifier)):
                raise error_invalid_ternary(
                    "ternary condition must be a comparison or identifier",
                    arrow.span, self._source_line(arrow.line),
                )
            branches = self._parse_expression()
            if not (isinstance(branches, BinaryExpr) and branches.operator == TokenType.BAR):
                raise error_invalid_ternary(
                    "ternary branches must be separated by '|'",
                    arrow.span, self._source_line(arrow.line),
                )
            span = self._node_span(expr, branches)
            conditional = IfStatement(
                span=span,
                test=expr,
                body=[branches.left],
                alternate=[branches.right],
            )
            thunk = FunctionDeclaration(span=span, name=ANONYMOUS, parameters=[], body=[conditional])
            expr = CallExpr(span=span, callee=thunk, arguments=[])

        self._match(TokenType.SEMICOLON)
        return expr

    def _parse_new_expr(self) -> Expression:
        """new Target(args), followed by any member/call chain."""
        if not self._check(TokenType.NEW):
            return self._parse_assignment_expr()

        start = self._advance()  # consume 'new'
        target = self._parse_member_expr()
        root = target
        while isinstance(root, MemberExpr):
            root = root.object
        if not isinstance(root, Identifier):
            raise error_invalid_expression(
                "'new' target must be a name or member path",
                target.span, self._source_line(target.span.start.line),
            )
        if not self._check(TokenType.LPAREN):
            self._error("'(' after class name in 'new' expression")
        arguments = self._parse_arguments()
        expr = NewExpr(span=self._span_from(start), target=target, arguments=arguments)
        return self._parse_call_chain(expr)

    def _parse_assignment_expr(self) -> Expression:
        left = self._parse_object_expr()

        # The target is checked when the assignment runs
        if self._match(TokenType.ASSIGN):
            value = self._parse_expression()
            return AssignmentExpr(span=self._node_span(left, value), target=left, value=value)

        return left

    def _parse_object_expr(self) -> Expression:
        """{ key: value, key, "quoted": value }"""
        if not self._check(TokenType.LBRACE):
            return self._parse_array_expr()

        start = self._advance()  # consume '{'
        properties = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            key_token = self._current()
            if key_token.type not in (TokenType.IDENTIFIER, TokenType.STRING):
                self._error("object key")
            self._advance()

            if self._check_any(TokenType.COMMA, TokenType.RBRACE):
                # Shorthand {key}: the value is the variable of the same name
                self._match(TokenType.COMMA)
                properties.append(Property(span=key_token.span, key=key_token.value))
                continue

            self._consume(TokenType.COLON, "':' after object key")
            value = self._parse_expression()
            properties.append(Property(span=self._span_from(key_token), key=key_token.value, value=value))
            if not self._check(TokenType.RBRACE):
                self._consume(TokenType.COMMA, "',' or '}' after object property")

        self._consume(TokenType.RBRACE, "'}' to close object literal")
        return ObjectLiteral(span=self._span_from(start), properties=properties)

    def _parse_array_expr(self) -> Expression:
        """[a, b, c]"""
        if not self._check(TokenType.LBRACKET):
            return self._parse_try_catch_expr()

        start = self._advance()  # consume '['
        elements = []
        while not self._check(TokenType.RBRACKET) and not self._is_at_end():
            elements.append(self._parse_expression())
            if not self._check(TokenType.RBRACKET):
                self._consume(TokenType.COMMA, "',' or ']' in array literal")

        self._consume(TokenType.RBRACKET, "']' to close array literal")
        return ArrayLiteral(span=self._span_from(start), elements=elements)

    def _parse_try_catch_expr(self) -> Expression:
        """try { body } catch { handler }"""
        if not self._check(TokenType.TRY):
            return self._parse_logical_expr()

        start = self._advance()  # consume 'try'
        body = self._parse_block()
        self._consume(TokenType.CATCH, "'catch' after try block")
        handler = self._parse_block()
        return TryCatchExpr(span=self._span_from(start), body=body, handler=handler)

    def _parse_logical_expr(self) -> Expression:
        """
        && and |.

        Two operands associate left; every further operand is parsed as a
        full expression, so ``a && b && c`` is ``(a && b) && (c)`` with the
        last operand extending as far right as an expression can.
        """
        left = self._parse_additive_expr()

        if self._check_any(*self.LOGICAL_OPERATORS):
            operator = self._advance().type
            right = self._parse_additive_expr()
            left = BinaryExpr(span=self._node_span(left, right), left=left, operator=operator, right=right)

            while self._check_any(*self.LOGICAL_OPERATORS):
                operator = self._advance().type
                right = self._parse_expression()
                left = BinaryExpr(span=self._node_span(left, right), left=left, operator=operator, right=right)

        return left

    def _parse_additive_expr(self) -> Expression:
        """+ - == != < > (left-associative)"""
        left = self._parse_multiplicative_expr()

        while self._check_any(*self.ADDITIVE_OPERATORS):
            operator = self._advance().type
            right = self._parse_multiplicative_expr()
            left = BinaryExpr(span=self._node_span(left, right), left=left, operator=operator, right=right)

        return left

    def _parse_multiplicative_expr(self) -> Expression:
        """* / % (left-associative)"""
        left = self._parse_call_member_expr()

        while self._check_any(*self.MULTIPLICATIVE_OPERATORS):
            operator = self._advance().type
            right = self._parse_call_member_expr()
            left = BinaryExpr(span=self._node_span(left, right), left=left, operator=operator, right=right)

        return left

    def _parse_call_member_expr(self) -> Expression:
        member = self._parse_member_expr()
        if self._check(TokenType.LPAREN):
            return self._parse_call_chain(member)
        return member

    def _parse_call_chain(self, expr: Expression) -> Expression:
        """Apply any sequence of (args), .name and [index] to ``expr``."""
        while True:
            if self._check(TokenType.LPAREN):
                arguments = self._parse_arguments()
                expr = CallExpr(
                    span=SourceSpan(expr.span.start, self._previous.span.end),
                    callee=expr,
                    arguments=arguments,
                )
            elif self._check_any(TokenType.DOT, TokenType.LBRACKET):
                expr = self._parse_member_suffix(expr)
            else:
                return expr

    def _parse_arguments(self) -> List[Expression]:
        """( expr, expr, ... )"""
        self._consume(TokenType.LPAREN, "'('")
        arguments = []
        while not self._check(TokenType.RPAREN):
            arguments.append(self._parse_expression())
            if not self._check(TokenType.RPAREN):
                self._consume(TokenType.COMMA, "',' or ')' in argument list")
        self._consume(TokenType.RPAREN, "')' after arguments")
        return arguments

    def _parse_member_expr(self) -> Expression:
        """primary followed by any number of .name / [expr]"""
        expr = self._parse_primary_expr()
        while self._check_any(TokenType.DOT, TokenType.LBRACKET):
            expr = self._parse_member_suffix(expr)
        return expr

    def _parse_member_suffix(self, obj: Expression) -> MemberExpr:
        if self._match(TokenType.DOT):
            name = self._current()
            if name.type != TokenType.IDENTIFIER:
                raise error_invalid_expression(
                    "member access with '.' requires an identifier",
                    name.span, self._source_line(name.line),
                )
            self._advance()
            prop = Identifier(span=name.span, symbol=name.value)
            return MemberExpr(span=SourceSpan(obj.span.start, name.span.end),
                              object=obj, property=prop, computed=False)

        self._consume(TokenType.LBRACKET, "'['")
        prop = self._parse_expression()
        end = self._consume(TokenType.RBRACKET, "']' after index")
        return MemberExpr(span=SourceSpan(obj.span.start, end.span.end),
                          object=obj, property=prop, computed=True)

    def _parse_primary_expr(self) -> Expression:
        """Parse a primary expression (literals, identifiers, grouping, fn, match)."""
        token = self._current()

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(span=token.span, symbol=token.value)

        if token.type == TokenType.NUMBER:
            self._advance()
            return NumericLiteral(span=token.span, value=token.value)

        if token.type == TokenType.STRING:
            self._advance()
            return StringLiteral(span=token.span, value=token.value)

        if token.type == TokenType.FN:
            return self._parse_function()

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')' after expression")
            return expr

        if token.type == TokenType.MATCH:
            return self._parse_match_expr()

        self._error("expression")

    # =========================================================================
    # Match
    # =========================================================================

    def _parse_match_expr(self) -> MatchExpr:
        """
        match value {
            1, 2 => { ... }
            Shape.Circle(r) => { ... }
            default => { ... }
        }
        """
        start = self._advance()  # consume 'match'
        value = self._parse_expression()
        self._consume(TokenType.LBRACE, "'{' after match value")

        cases: List[MatchCase] = []
        default = None
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            clause_start = self._current()
            patterns = []
            is_default = False
            while not self._check(TokenType.ARROW):
                if self._check(TokenType.DEFAULT):
                    self._advance()
                    is_default = True
                else:
                    patterns.append(self._parse_expression())
                if not self._check(TokenType.ARROW):
                    self._consume(TokenType.COMMA, "',' or '=>' in match clause")

            self._consume(TokenType.ARROW, "'=>' in match clause")
            body = self._parse_block()

            if is_default:
                if default is not None:
                    raise error_duplicate_default(
                        self._span_from(clause_start), self._source_line(clause_start.line)
                    )
                default = body
            if patterns:
                cases.append(MatchCase(span=self._span_from(clause_start), patterns=patterns, body=body))

        self._consume(TokenType.RBRACE, "'}' after match clauses")
        return MatchExpr(span=self._span_from(start), value=value, cases=cases, default=default)


def parse(tokens: List[Token], filename: Optional[str] = None, source: Optional[str] = None) -> Program:
    """
    Convenience function to parse tokens into a program.

    Args:
        tokens: List of tokens from the lexer
        filename: Optional filename for error messages
        source: Optional original source code for diagnostics

    Returns:
        Parsed Program AST

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, source)
    return parser.parse_program()
