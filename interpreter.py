from __future__ import annotations
import json
import operator
import sys
import numpy as np
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from numpy.typing import NDArray

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
    SourceLocation,
    String,
    UnaryOp,
    Var,
    Vector,
)
from semantic import GLOBAL_SCOPE_NAME, Scope, analyze


TYPE_INT = "INT"
TYPE_STR = "STR"

# Counted including the global frame and the program's own frame.
MAX_CALL_STACK = 100

# Each language-level call nests a handful of Python frames; keep the host
# limit well above MAX_CALL_STACK so the language bound always fires first.
RECURSION_LIMIT = 10000


@dataclass
class Value:
    type: str
    value: Any  # NDArray of Python ints for INT, str for STR

    def render(self) -> str:
        if self.type == TYPE_INT:
            return " ".join(str(item) for item in self.value)
        return self.value


def int_vector(items: Any) -> Value:
    return Value(TYPE_INT, np.array(list(items), dtype=object))


class VeclRuntimeError(VeclError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None


@dataclass
class Frame:
    name: str
    variables: Dict[str, Value]
    frame_id: str
    call_location: Optional[SourceLocation]

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            rendered = val.render()
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.variables.items()}


@dataclass
class StepEntry:
    step_index: int
    frame_id: Optional[str]
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    step_record: Dict[str, Any] = field(default_factory=dict)


class StepLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StepEntry] = []
        self.frame_last_entry: Dict[str, StepEntry] = {}

    def record(
        self,
        *,
        frame: Optional[Frame],
        location: Optional[SourceLocation],
        step_record: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StepEntry:
        entry = StepEntry(
            step_index=len(self.entries),
            frame_id=frame.frame_id if frame else None,
            source_location=location,
            statement=location.statement if location else None,
            env_snapshot=env_snapshot,
            step_record={} if step_record is None else step_record,
        )
        self.entries.append(entry)
        if frame:
            self.frame_last_entry[frame.frame_id] = entry
        return entry

    def last_entry_for_frame(self, frame_id: str) -> Optional[StepEntry]:
        return self.frame_last_entry.get(frame_id)


def _truncating_div(a: int, b: int) -> int:
    if b == 0:
        raise VeclRuntimeError("Division by zero", rule="DIV")
    quotient = abs(a) // abs(b)
    return quotient if (a < 0) == (b < 0) else -quotient


ARITHMETIC_OPS: Dict[str, Callable[[NDArray[Any], NDArray[Any]], NDArray[Any]]] = {
    "ADD": np.frompyfunc(operator.add, 2, 1),
    "SUB": np.frompyfunc(operator.sub, 2, 1),
    "MUL": np.frompyfunc(operator.mul, 2, 1),
    "DIV": np.frompyfunc(_truncating_div, 2, 1),
}

RELATIONAL_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "LTE": operator.le,
    "LT": operator.lt,
    "EQ": operator.eq,
    "NEQ": operator.ne,
    "GT": operator.gt,
    "GTE": operator.ge,
}


class Interpreter:
    def __init__(
        self,
        program: Program,
        *,
        scopes: Optional[Dict[str, Scope]] = None,
        verbose: bool = False,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.program = program
        self.scopes = scopes
        self.verbose = verbose
        self.output_sink = output_sink or (lambda text: print(text))
        self.output: List[str] = []
        self.logger = StepLogger(verbose=verbose)
        self.call_stack: List[Frame] = []
        self.frame_counter = 0

    def run(self) -> List[str]:
        if self.scopes is None:
            self.scopes = analyze(self.program)
        self.output = []
        self.logger = StepLogger(verbose=self.verbose)
        self.frame_counter = 0
        entry = self.scopes[GLOBAL_SCOPE_NAME].definition
        self.call_stack = [
            self._new_frame(GLOBAL_SCOPE_NAME, None),
            self._new_frame(entry.name, None),
        ]
        previous_limit = sys.getrecursionlimit()
        if previous_limit < RECURSION_LIMIT:
            sys.setrecursionlimit(RECURSION_LIMIT)
        try:
            self._execute_body(entry)
        except VeclRuntimeError as error:
            if error.step_index is None and self.logger.entries:
                error.step_index = self.logger.entries[-1].step_index
            raise
        except Exception as exc:
            # Surface Python-level faults through the same traceback machinery.
            loc = None
            if self.logger.entries:
                loc = self.logger.entries[-1].source_location
            wrapped = VeclRuntimeError(f"Internal interpreter error: {exc}", location=loc, rule="internal")
            if self.logger.entries:
                wrapped.step_index = self.logger.entries[-1].step_index
            raise wrapped from exc
        finally:
            sys.setrecursionlimit(previous_limit)
        self.call_stack = self.call_stack[:1]
        return self.output

    def _execute_body(self, definition: FunctionDefinition) -> Optional[Value]:
        result: Optional[Value] = None
        for statement in definition.statements:
            # Nested definitions are declarations, not executed inline.
            if isinstance(statement, FunctionDefinition):
                continue
            result = self._evaluate(statement)
        return result

    def _execute_statements(self, statements: List[Node]) -> Optional[Value]:
        result: Optional[Value] = None
        for statement in statements:
            result = self._evaluate(statement)
        return result

    def _evaluate(self, node: Node) -> Optional[Value]:
        if isinstance(node, Int):
            return int_vector([node.value])
        if isinstance(node, String):
            return Value(TYPE_STR, node.value)
        if isinstance(node, Vector):
            return self._evaluate_vector(node)
        if isinstance(node, Var):
            return self._evaluate_var(node)
        if isinstance(node, BinaryOp):
            return self._evaluate_binary(node)
        if isinstance(node, UnaryOp):
            return self._evaluate_unary(node)
        if isinstance(node, FunctionCall):
            return self._call_function(node)
        self._log_step(rule=node.__class__.__name__, location=node.location)
        if isinstance(node, OutputExpression):
            value = self._evaluate(node.expression)
            if value is not None:
                line = value.render()
                self.output.append(line)
                self.output_sink(line)
            return value
        if isinstance(node, Assignment):
            return self._execute_assignment(node)
        if isinstance(node, IfExpression):
            if self._evaluate_predicate(node.predicate):
                return self._execute_statements(node.then_statements)
            return self._execute_statements(node.else_statements)
        if isinstance(node, Loop):
            self._execute_loop(node)
            return None
        if isinstance(node, Predicate):
            raise VeclRuntimeError("Predicate cannot be used as a value", location=node.location)
        raise VeclRuntimeError(f"Unsupported node {node.__class__.__name__}", location=node.location)

    def _execute_assignment(self, node: Assignment) -> Optional[Value]:
        frame = self.call_stack[0] if node.is_global else self.call_stack[-1]
        if node.rhs is None:
            frame.variables.pop(node.name, None)
            return None
        value = self._evaluate(node.rhs)
        if value is None:
            frame.variables.pop(node.name, None)
            return None
        frame.variables[node.name] = value
        return value

    def _execute_loop(self, node: Loop) -> None:
        while self._evaluate_predicate(node.predicate) == node.positive:
            self._execute_statements(node.statements)

    def _evaluate_predicate(self, node: Predicate) -> bool:
        left = self._evaluate(node.left)
        right = self._evaluate(node.right)
        compare = RELATIONAL_OPS[node.op]
        if left is not None and right is not None:
            if left.type == TYPE_INT and right.type == TYPE_INT:
                if len(left.value) != len(right.value):
                    raise VeclRuntimeError("Incompatible vector lengths", location=node.location, rule=node.op)
                return bool(np.all(np.frompyfunc(compare, 2, 1)(left.value, right.value)))
            if left.type == TYPE_STR and right.type == TYPE_STR:
                return bool(compare(left.value, right.value))
        raise VeclRuntimeError(
            f'Type mismatch, operator "{node.op}" can only be computed on vectors of the same type',
            location=node.location,
            rule=node.op,
        )

    def _evaluate_vector(self, node: Vector) -> Value:
        values: List[Value] = []
        for element in node.elements:
            value = self._evaluate(element)
            if value is None:
                raise VeclRuntimeError(
                    "Vector error, vector elements cannot be undefined", location=element.location, rule="VECTOR"
                )
            values.append(value)
        if len(values) == 1:
            return values[0]
        kinds = {value.type for value in values}
        if kinds == {TYPE_INT}:
            return Value(TYPE_INT, np.concatenate([value.value for value in values]))
        if kinds == {TYPE_STR}:
            return Value(TYPE_STR, "".join(value.value for value in values))
        raise VeclRuntimeError(
            "Vector error, vector elements must be of the same type", location=node.location, rule="VECTOR"
        )

    def _evaluate_var(self, node: Var) -> Value:
        frame = self.call_stack[0] if node.is_global else self.call_stack[-1]
        value = frame.variables.get(node.name)
        if value is None:
            if node.is_global:
                message = f'Uninitialized global variable "{node.name}"'
            else:
                message = f'Undefined variable "{node.name}"'
            raise VeclRuntimeError(message, location=node.location, rule="VAR")
        if node.subscript is None:
            return value
        subscript = self._evaluate(node.subscript)
        if subscript is None or subscript.type != TYPE_INT:
            shown = "" if subscript is None else subscript.render()
            raise VeclRuntimeError(
                f'Invalid subscript expression "{shown}"', location=node.location, rule="SUBSCRIPT"
            )
        items = list(value.value)
        picked = []
        for index in subscript.value:
            if index < 1 or index > len(items):
                raise VeclRuntimeError("Subscript out of range", location=node.location, rule="SUBSCRIPT")
            picked.append(items[index - 1])
        if value.type == TYPE_STR:
            return Value(TYPE_STR, "".join(picked))
        return int_vector(picked)

    def _evaluate_unary(self, node: UnaryOp) -> Value:
        operand = self._evaluate(node.operand)
        if node.op == "NEGATION":
            if operand is None or operand.type != TYPE_INT:
                raise VeclRuntimeError(
                    'Type mismatch, operator "~" is only applicable to a vector of integers',
                    location=node.location,
                    rule="NEGATION",
                )
            return Value(TYPE_INT, -operand.value)
        if operand is None:
            raise VeclRuntimeError(
                'Type mismatch, operator "#" is only applicable to a vector', location=node.location, rule="LENGTH"
            )
        return int_vector([len(operand.value)])

    def _evaluate_binary(self, node: BinaryOp) -> Value:
        left = self._evaluate(node.left)
        right = self._evaluate(node.right)
        if left is None or right is None or left.type != TYPE_INT or right.type != TYPE_INT:
            raise VeclRuntimeError(
                f'Type mismatch, operator "{node.op}" can only be applied to vectors of integers',
                location=node.location,
                rule=node.op,
            )
        self._check_lengths(left, right, node.location, node.op)
        try:
            result = ARITHMETIC_OPS[node.op](left.value, right.value)
        except VeclRuntimeError as err:
            err.location = node.location
            raise
        return Value(TYPE_INT, np.asarray(result, dtype=object).reshape(-1))

    def _check_lengths(self, left: Value, right: Value, location: SourceLocation, rule: str) -> None:
        n, m = len(left.value), len(right.value)
        if n != m and n != 1 and m != 1:
            raise VeclRuntimeError("Incompatible vector lengths", location=location, rule=rule)

    def _call_function(self, node: FunctionCall) -> Optional[Value]:
        if len(self.call_stack) > MAX_CALL_STACK:
            raise VeclRuntimeError("Maximum call stack exceeded", location=node.location, rule="CALL")
        scope = self.scopes.get(node.name) if self.scopes is not None else None
        if scope is None:
            raise VeclRuntimeError(f'Undefined function "{node.name}"', location=node.location, rule="CALL")
        frame = self._new_frame(node.name, node.location)
        for name, param in zip(scope.formal_params, node.actual_params):
            value = self._evaluate(param)
            if value is not None:
                frame.variables[name] = value
        self._log_step(rule="CALL", location=node.location, extra={"function": node.name})
        self.call_stack.append(frame)
        result = self._execute_body(scope.definition)
        self.call_stack.pop()
        return result

    def _new_frame(self, name: str, call_location: Optional[SourceLocation]) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, variables={}, frame_id=frame_id, call_location=call_location)

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        env_snapshot = frame.snapshot() if (self.verbose and frame) else None
        step: Dict[str, Any] = {"rule": rule}
        if extra:
            step.update(extra)
        self.logger.record(frame=frame, location=location, env_snapshot=env_snapshot, step_record=step)


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    step_entry: Optional[StepEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            location = entry.source_location if entry else frame.call_location
            frames.append(
                TracebackFrame(
                    name=frame.name,
                    location=location,
                    statement=entry.statement if entry else None,
                    step_entry=entry,
                )
            )
        return frames

    def format_text(self, error: VeclRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames():
            if frame.location:
                lines.append(f"  File \"{frame.location.file}\", line {frame.location.line}, in {frame.name}")
                if frame.statement:
                    lines.append(f"    {frame.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if frame.step_entry:
                lines.append(
                    f"    Step {frame.step_entry.step_index} ({frame.step_entry.step_record.get('rule', 'runtime')})"
                )
                if verbose and frame.step_entry.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.step_entry.env_snapshot.items())
                    lines.append(f"    Env snapshot: {snapshot}")
        rule = error.rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: VeclRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames()):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "statement": frame.location.statement,
                }
            if frame.step_entry:
                entry["step_index"] = frame.step_entry.step_index
                if frame.step_entry.env_snapshot is not None:
                    entry["env_snapshot"] = frame.step_entry.env_snapshot
                entry["step_record"] = frame.step_entry.step_record
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)


def run(
    program: Program,
    output_sink: Optional[Callable[[str], None]] = None,
    *,
    verbose: bool = False,
) -> List[str]:
    return Interpreter(program, verbose=verbose, output_sink=output_sink).run()
