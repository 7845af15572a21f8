from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Set

from lexer import VeclError
from parser import (
    Assignment,
    BinaryOp,
    FunctionCall,
    FunctionDefinition,
    IfExpression,
    Int,
    Loop,
    Node,
    OutputExpression,
    Predicate,
    Program,
    String,
    UnaryOp,
    Var,
    Vector,
)


GLOBAL_SCOPE_NAME = "_Global"


class VeclSemanticError(VeclError):
    """Raised when symbol usage is invalid before execution."""


@dataclass
class Scope:
    formal_params: List[str]
    definition: FunctionDefinition
    functions: Set[str] = field(default_factory=set)
    variables: Set[str] = field(default_factory=set)


class SemanticAnalyzer:
    """Builds the flat scope table in two passes.

    The pre-scan registers every global-qualified function and variable so
    they can be referenced before their definition is reached. The
    validation pass then walks the program in execution order, creating one
    scope per function and checking every symbol use against it.
    """

    def __init__(self, program: Program) -> None:
        self.program = program
        self.global_scope = Scope(formal_params=[], definition=program.block)
        self.scopes: Dict[str, Scope] = {GLOBAL_SCOPE_NAME: self.global_scope}
        self.current_scope = self.global_scope
        self.global_definitions: Dict[str, FunctionDefinition] = {}

    def analyze(self) -> Dict[str, Scope]:
        self._prescan(self.program)
        self._validate(self.program)
        return self.scopes

    def _prescan(self, node: Node) -> None:
        if isinstance(node, Program):
            self._prescan(node.block)
            return
        if isinstance(node, FunctionDefinition):
            if node.is_global:
                self.global_scope.functions.add(node.name)
                self.global_definitions.setdefault(node.name, node)
            for statement in node.statements:
                self._prescan(statement)
            return
        if isinstance(node, Assignment):
            if node.is_global:
                if node.rhs is None:
                    self.global_scope.variables.discard(node.name)
                else:
                    self.global_scope.variables.add(node.name)
            if node.rhs is not None:
                self._prescan(node.rhs)
            return
        for child in _children(node):
            self._prescan(child)

    def _validate(self, node: Node) -> None:
        if isinstance(node, Program):
            self._validate(node.block)
            return
        if isinstance(node, FunctionDefinition):
            self._enter_function(node)
            return
        if isinstance(node, Assignment):
            scope = self.current_scope
            if node.name in scope.formal_params:
                raise VeclSemanticError(f'Cannot reassign to function parameter "{node.name}"')
            target = self.global_scope if node.is_global else scope
            if node.rhs is None:
                target.variables.discard(node.name)
                return
            self._validate(node.rhs)
            target.variables.add(node.name)
            return
        if isinstance(node, Var):
            scope = self.current_scope
            if (
                node.name not in self.global_scope.variables
                and node.name not in scope.formal_params
                and node.name not in scope.variables
            ):
                raise VeclSemanticError(f'Undefined variable "{node.name}"')
            if node.subscript is not None:
                self._validate(node.subscript)
            return
        if isinstance(node, FunctionCall):
            self._check_call(node)
            for param in node.actual_params:
                self._validate(param)
            return
        for child in _children(node):
            self._validate(child)

    def _enter_function(self, node: FunctionDefinition) -> None:
        if node.name in self.scopes:
            raise VeclSemanticError(f'Function "{node.name}" has already been defined')
        owner = self.global_scope if node.is_global else self.current_scope
        owner.functions.add(node.name)
        previous = self.current_scope
        self.current_scope = Scope(
            formal_params=list(node.formal_params),
            definition=node,
            functions={node.name},
        )
        self.scopes[node.name] = self.current_scope
        try:
            for statement in node.statements:
                self._validate(statement)
        finally:
            self.current_scope = previous

    def _check_call(self, node: FunctionCall) -> None:
        if node.is_global:
            if node.name not in self.global_scope.functions:
                raise VeclSemanticError(f'Undefined function "{node.name}"')
            scope = self.scopes.get(node.name)
            definition = scope.definition if scope is not None else self.global_definitions[node.name]
        else:
            scope = self.scopes.get(node.name)
            if scope is None or node.name == GLOBAL_SCOPE_NAME:
                raise VeclSemanticError(f'Undefined function "{node.name}"')
            definition = scope.definition
        expected = len(definition.formal_params)
        got = len(node.actual_params)
        if expected != got:
            raise VeclSemanticError(
                f'Parameters mismatch, expected {expected} arguments for function "{definition.name}" but got {got}'
            )


def _children(node: Node) -> List[Node]:
    if isinstance(node, OutputExpression):
        return [node.expression]
    if isinstance(node, Loop):
        return [node.predicate, *node.statements]
    if isinstance(node, IfExpression):
        return [node.predicate, *node.then_statements, *node.else_statements]
    if isinstance(node, Predicate):
        return [node.left, node.right]
    if isinstance(node, BinaryOp):
        return [node.left, node.right]
    if isinstance(node, UnaryOp):
        return [node.operand]
    if isinstance(node, Vector):
        return list(node.elements)
    if isinstance(node, FunctionCall):
        return list(node.actual_params)
    if isinstance(node, Var):
        return [] if node.subscript is None else [node.subscript]
    if isinstance(node, (Int, String)):
        return []
    raise VeclSemanticError(f"Unsupported node {node.__class__.__name__}")


def analyze(program: Program) -> Dict[str, Scope]:
    return SemanticAnalyzer(program).analyze()
