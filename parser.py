from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence

from lexer import Lexer, Token, VeclError


class VeclSyntaxError(VeclError):
    """Raised when parsing fails."""

    def __init__(self, message: str, *, token: Optional[Token] = None) -> None:
        super().__init__(message)
        self.token = token


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


@dataclass
class FunctionDefinition(Node):
    is_global: bool
    name: str
    formal_params: List[str]
    statements: List[Node]


@dataclass
class Program(Node):
    name: str
    block: FunctionDefinition


@dataclass
class FunctionCall(Node):
    is_global: bool
    name: str
    actual_params: List[Node]


@dataclass
class Predicate(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Loop(Node):
    # True for WHILE, False for UNTIL
    positive: bool
    predicate: Predicate
    statements: List[Node]


@dataclass
class IfExpression(Node):
    predicate: Predicate
    then_statements: List[Node]
    else_statements: List[Node]


@dataclass
class Assignment(Node):
    is_global: bool
    name: str
    # None deallocates the variable
    rhs: Optional[Node]


@dataclass
class OutputExpression(Node):
    expression: Node


@dataclass
class Var(Node):
    is_global: bool
    name: str
    subscript: Optional[Node]


@dataclass
class Vector(Node):
    elements: List[Node]


@dataclass
class Int(Node):
    value: int


@dataclass
class String(Node):
    value: str


@dataclass
class UnaryOp(Node):
    op: str  # NEGATION | LENGTH
    operand: Node


@dataclass
class BinaryOp(Node):
    op: str  # ADD | SUB | MUL | DIV
    left: Node
    right: Node


RELATIONAL_OPS = ("LTE", "LT", "EQ", "NEQ", "GT", "GTE")
ELEMENT_START = ("STRING", "INT", "IDENT", "TILDE", "HASH", "LPAREN")
ADDITIVE_OPS = {"PLUS": "ADD", "MINUS": "SUB"}
MULTIPLICATIVE_OPS = {"STAR": "MUL", "SLASH": "DIV"}
UNARY_OPS = {"TILDE": "NEGATION", "HASH": "LENGTH"}


class Parser:
    """Recursive-descent parser with one token of lookahead.

    Grammar
    -------
    program    : BEGIN IDENT NEWLINE statements END NEWLINE? EOF
    function   : BEGIN IDENT (LPAREN IDENT (COMMA IDENT)* RPAREN)? NEWLINE statements END
    statements : (statement NEWLINE)+
    statement  : function | loop | if | assignment | expression
    loop       : (WHILE | UNTIL) predicate NEWLINE statements END
    if         : IF predicate NEWLINE statements (ELSE NEWLINE statements)? END
    predicate  : expression (LT | LTE | EQ | NEQ | GT | GTE) expression
    assignment : IDENT ASSIGN expression?
    expression : term ((PLUS | MINUS) term)*
    term       : factor ((STAR | SLASH) factor)*
    factor     : TILDE vector | HASH vector | LPAREN expression RPAREN | vector
    vector     : element element*
    element    : INT | STRING | call | variable | factor
    variable   : IDENT (LBRACKET expression RBRACKET)?
    call       : IDENT LPAREN (expression (COMMA expression)*)? RPAREN

    Loop and if bodies never contain function definitions.
    """

    def __init__(self, lexer: Lexer, source_lines: Sequence[str], filename: str = "<string>") -> None:
        self.lexer = lexer
        self.source_lines = source_lines
        self.filename = filename
        self.current: Token = lexer.next_token()

    def parse(self) -> Program:
        keyword = self._consume("BEGIN")
        name_token = self._consume("IDENT")
        self._consume("NEWLINE")
        statements = self._parse_statements(allow_functions=True)
        self._consume("END")
        self._match("NEWLINE")
        self._consume("EOF")
        location = self._location_from_token(keyword)
        block = FunctionDefinition(
            location=location,
            is_global=False,
            name=name_token.value,
            formal_params=[],
            statements=statements,
        )
        return Program(location=location, name=name_token.value, block=block)

    def _parse_statements(self, *, allow_functions: bool) -> List[Node]:
        statements: List[Node] = [self._parse_statement(allow_functions)]
        self._consume("NEWLINE")
        while self.current.type not in ("END", "ELSE"):
            statements.append(self._parse_statement(allow_functions))
            self._consume("NEWLINE")
        return statements

    def _parse_statement(self, allow_functions: bool) -> Node:
        token = self.current
        if allow_functions and token.type == "BEGIN":
            return self._parse_function()
        if token.type in ("WHILE", "UNTIL"):
            return self._parse_loop()
        if token.type == "IF":
            return self._parse_if()
        if token.type == "IDENT" and self.lexer.peek().type == "ASSIGN":
            return self._parse_assignment()
        location = self._location_from_token(token)
        if token.type == "IDENT" and self.lexer.peek().type == "LPAREN":
            call = self._parse_call()
            if self.current.type == "NEWLINE":
                return OutputExpression(location=location, expression=call)
            return OutputExpression(location=location, expression=self._parse_expression(first=call))
        return OutputExpression(location=location, expression=self._parse_expression())

    def _parse_function(self) -> FunctionDefinition:
        keyword = self._consume("BEGIN")
        name_token = self._consume("IDENT")
        params: List[str] = []
        if self._match("LPAREN"):
            while True:
                param = self._consume("IDENT")
                if param.value.startswith("."):
                    raise VeclSyntaxError(
                        f"Unexpected global function parameter at line {param.line}, column {param.column}",
                        token=param,
                    )
                params.append(param.value)
                if not self._match("COMMA"):
                    break
            self._consume("RPAREN")
        self._consume("NEWLINE")
        statements = self._parse_statements(allow_functions=True)
        self._consume("END")
        return FunctionDefinition(
            location=self._location_from_token(keyword),
            is_global=name_token.value.startswith("."),
            name=name_token.value,
            formal_params=params,
            statements=statements,
        )

    def _parse_loop(self) -> Loop:
        keyword = self._consume("WHILE", "UNTIL")
        predicate = self._parse_predicate()
        self._consume("NEWLINE")
        statements = self._parse_statements(allow_functions=False)
        self._consume("END")
        return Loop(
            location=self._location_from_token(keyword),
            positive=keyword.type == "WHILE",
            predicate=predicate,
            statements=statements,
        )

    def _parse_if(self) -> IfExpression:
        keyword = self._consume("IF")
        predicate = self._parse_predicate()
        self._consume("NEWLINE")
        then_statements = self._parse_statements(allow_functions=False)
        else_statements: List[Node] = []
        if self._match("ELSE"):
            self._consume("NEWLINE")
            else_statements = self._parse_statements(allow_functions=False)
        self._consume("END")
        return IfExpression(
            location=self._location_from_token(keyword),
            predicate=predicate,
            then_statements=then_statements,
            else_statements=else_statements,
        )

    def _parse_predicate(self) -> Predicate:
        location = self._location_from_token(self.current)
        left = self._parse_expression()
        op = self._consume(*RELATIONAL_OPS)
        right = self._parse_expression()
        return Predicate(location=location, op=op.type, left=left, right=right)

    def _parse_assignment(self) -> Assignment:
        ident = self._consume("IDENT")
        self._consume("ASSIGN")
        rhs: Optional[Node] = None if self.current.type == "NEWLINE" else self._parse_expression()
        return Assignment(
            location=self._location_from_token(ident),
            is_global=ident.value.startswith("."),
            name=ident.value,
            rhs=rhs,
        )

    def _parse_expression(self, first: Optional[Node] = None) -> Node:
        node = self._parse_term(first)
        while self.current.type in ADDITIVE_OPS:
            op = self._consume(self.current.type)
            right = self._parse_term()
            node = BinaryOp(location=self._location_from_token(op), op=ADDITIVE_OPS[op.type], left=node, right=right)
        return node

    def _parse_term(self, first: Optional[Node] = None) -> Node:
        node = self._parse_factor(first)
        while self.current.type in MULTIPLICATIVE_OPS:
            op = self._consume(self.current.type)
            right = self._parse_factor()
            node = BinaryOp(location=self._location_from_token(op), op=MULTIPLICATIVE_OPS[op.type], left=node, right=right)
        return node

    def _parse_factor(self, first: Optional[Node] = None) -> Node:
        if first is not None:
            return self._parse_vector(first)
        token = self.current
        if token.type in UNARY_OPS:
            self._consume(token.type)
            operand = self._parse_vector()
            return UnaryOp(location=self._location_from_token(token), op=UNARY_OPS[token.type], operand=operand)
        if token.type == "LPAREN":
            self._consume("LPAREN")
            expr = self._parse_expression()
            self._consume("RPAREN")
            return expr
        return self._parse_vector()

    def _parse_vector(self, first: Optional[Node] = None) -> Vector:
        location = self._location_from_token(self.current) if first is None else first.location
        elements: List[Node] = [first if first is not None else self._parse_element()]
        while self.current.type in ELEMENT_START:
            elements.append(self._parse_element())
        return Vector(location=location, elements=elements)

    def _parse_element(self) -> Node:
        token = self.current
        if token.type == "STRING":
            self._consume("STRING")
            return String(location=self._location_from_token(token), value=token.value)
        if token.type == "INT":
            self._consume("INT")
            return Int(location=self._location_from_token(token), value=int(token.value))
        if token.type == "IDENT":
            if self.lexer.peek().type == "LPAREN":
                return self._parse_call()
            return self._parse_variable()
        if token.type in ("TILDE", "HASH", "LPAREN"):
            return self._parse_factor()
        raise self._error(ELEMENT_START, token)

    def _parse_variable(self) -> Var:
        ident = self._consume("IDENT")
        subscript: Optional[Node] = None
        if self._match("LBRACKET"):
            subscript = self._parse_expression()
            self._consume("RBRACKET")
        return Var(
            location=self._location_from_token(ident),
            is_global=ident.value.startswith("."),
            name=ident.value,
            subscript=subscript,
        )

    def _parse_call(self) -> FunctionCall:
        ident = self._consume("IDENT")
        self._consume("LPAREN")
        args: List[Node] = []
        if self.current.type != "RPAREN":
            while True:
                args.append(self._parse_expression())
                if not self._match("COMMA"):
                    break
        self._consume("RPAREN")
        return FunctionCall(
            location=self._location_from_token(ident),
            is_global=ident.value.startswith("."),
            name=ident.value,
            actual_params=args,
        )

    def _consume(self, *token_types: str) -> Token:
        token = self.current
        if token.type not in token_types:
            raise self._error(token_types, token)
        self.current = self.lexer.next_token()
        return token

    def _match(self, token_type: str) -> bool:
        if self.current.type == token_type:
            self.current = self.lexer.next_token()
            return True
        return False

    def _error(self, expected: Sequence[str], token: Token) -> VeclSyntaxError:
        return VeclSyntaxError(
            f'Syntax error: expected token "{" or ".join(expected)}" but got "{token.type}" '
            f"at line {token.line}, column {token.column}",
            token=token,
        )

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)


def parse(text: str, filename: str = "<string>") -> Program:
    parser = Parser(Lexer(text), text.splitlines(), filename)
    return parser.parse()
