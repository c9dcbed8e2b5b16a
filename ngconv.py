#!/usr/bin/env python3
"""
ngconv - AngularJS convention checks over ESTree syntax trees

High-level goals:
- Hydrate ESTree JSON (as produced by espree/acorn/babel) into a small typed IR
- Recognize AngularJS module registrations (angular.module(...).component(...))
- Run convention rules over every visited node and collect violations
- Configure rules from YAML, emit rich structured JSON for CI / IDEs

Parsing JavaScript text is not done here: feed the tool a JSON dump of the
syntax tree produced by the JavaScript parser of your choice.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union
import argparse
import json
import re
import sys

import jsonschema
import yaml


__version__ = "0.1.0"


# ============================================================
# =============== SOURCE LOCATION & CONTEXT ==================
# ============================================================

@dataclass
class SourceRange:
    file: str
    line_start: int
    col_start: int
    line_end: int
    col_end: int


# ============================================================
# ======================= TREE NODES =========================
# ============================================================
#
# One dataclass per syntactic kind the checks care about. Field names follow
# ESTree so that path lookups read the same as they would on the raw JSON.
# Anything else is kept as an OtherNode so traversal still reaches its
# children.

@dataclass
class Program:
    body: List[Any] = field(default_factory=list)
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "Program"


@dataclass
class Identifier:
    name: str
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "Identifier"


@dataclass
class Literal:
    value: Any
    raw: Optional[str] = None
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "Literal"


@dataclass
class ThisExpression:
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "ThisExpression"


@dataclass
class MemberExpression:
    """`a.b` / `a[b]` access; chains like `angular.module().component()` are built from these."""
    object: Any
    property: Any
    computed: bool = False
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "MemberExpression"


@dataclass
class CallExpression:
    callee: Any
    arguments: List[Any] = field(default_factory=list)
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "CallExpression"


@dataclass
class ObjectExpression:
    properties: List[Any] = field(default_factory=list)
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "ObjectExpression"


@dataclass
class Property:
    key: Any
    value: Any
    kind: str = "init"
    computed: bool = False
    shorthand: bool = False
    method: bool = False
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "Property"


@dataclass
class FunctionNode:
    """
    FunctionExpression, ArrowFunctionExpression or FunctionDeclaration.
    `body` is a BlockStatement, or a bare expression for concise arrows.
    """
    type: str
    body: Any = None
    params: List[Any] = field(default_factory=list)
    id: Any = None
    expression: bool = False
    source_range: Optional[SourceRange] = None


@dataclass
class ClassNode:
    type: str  # "ClassExpression" | "ClassDeclaration"
    body: Any = None
    id: Any = None
    super_class: Any = None
    source_range: Optional[SourceRange] = None


@dataclass
class BlockStatement:
    body: List[Any] = field(default_factory=list)
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "BlockStatement"


@dataclass
class ClassBody:
    body: List[Any] = field(default_factory=list)
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "ClassBody"


@dataclass
class MethodDefinition:
    key: Any
    value: Any = None
    kind: str = "method"
    static: bool = False
    computed: bool = False
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "MethodDefinition"


@dataclass
class ExpressionStatement:
    expression: Any
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "ExpressionStatement"


@dataclass
class AssignmentExpression:
    operator: str
    left: Any
    right: Any
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "AssignmentExpression"


@dataclass
class ReturnStatement:
    argument: Any = None
    source_range: Optional[SourceRange] = None

    type: ClassVar[str] = "ReturnStatement"


@dataclass
class OtherNode:
    """Any ESTree node kind without a dedicated variant."""
    type: str
    children: Dict[str, Any] = field(default_factory=dict)
    source_range: Optional[SourceRange] = None


Node = Union[
    Program,
    Identifier,
    Literal,
    ThisExpression,
    MemberExpression,
    CallExpression,
    ObjectExpression,
    Property,
    FunctionNode,
    ClassNode,
    BlockStatement,
    ClassBody,
    MethodDefinition,
    ExpressionStatement,
    AssignmentExpression,
    ReturnStatement,
    OtherNode,
]

_NODE_CLASSES = (
    Program,
    Identifier,
    Literal,
    ThisExpression,
    MemberExpression,
    CallExpression,
    ObjectExpression,
    Property,
    FunctionNode,
    ClassNode,
    BlockStatement,
    ClassBody,
    MethodDefinition,
    ExpressionStatement,
    AssignmentExpression,
    ReturnStatement,
    OtherNode,
)

# Child fields in source order, used for pre-order traversal.
_CHILD_FIELDS: Dict[type, Tuple[str, ...]] = {
    Program: ("body",),
    MemberExpression: ("object", "property"),
    CallExpression: ("callee", "arguments"),
    ObjectExpression: ("properties",),
    Property: ("key", "value"),
    FunctionNode: ("id", "params", "body"),
    ClassNode: ("id", "super_class", "body"),
    BlockStatement: ("body",),
    ClassBody: ("body",),
    MethodDefinition: ("key", "value"),
    ExpressionStatement: ("expression",),
    AssignmentExpression: ("left", "right"),
    ReturnStatement: ("argument",),
}

_FUNCTION_TYPES = frozenset({"FunctionExpression", "ArrowFunctionExpression", "FunctionDeclaration"})
_CLASS_TYPES = frozenset({"ClassExpression", "ClassDeclaration"})
_POSITION_KEYS = frozenset({"type", "loc", "range", "start", "end"})


def is_node(value: Any) -> bool:
    return isinstance(value, _NODE_CLASSES)


# ============================================================
# =================== ESTREE HYDRATION =======================
# ============================================================

def build_node_from_estree(raw: Any, file: Optional[str] = None) -> Optional[Node]:
    """
    Hydrate an ESTree mapping (as loaded from JSON) into the typed IR.
    Returns None for anything that is not an ESTree node.

    Works bottom-up from an explicit stack, so nesting depth is bounded by
    memory rather than the interpreter's recursion limit.
    """
    if not isinstance(raw, dict):
        return None

    pending: List[Dict[str, Any]] = [raw]
    order: List[Dict[str, Any]] = []
    while pending:
        current = pending.pop()
        order.append(current)
        for key, value in current.items():
            if key in _POSITION_KEYS:
                continue
            if isinstance(value, dict):
                pending.append(value)
            elif isinstance(value, list):
                pending.extend(item for item in value if isinstance(item, dict))

    # Parents precede their children in `order`; build in reverse.
    built: Dict[int, Optional[Node]] = {}
    for current in reversed(order):
        built[id(current)] = _build_single(current, file, built)
    return built[id(raw)]


def _build_single(raw: Dict[str, Any], file: Optional[str], built: Dict[int, Optional[Node]]) -> Optional[Node]:
    node_type = raw.get("type")
    if not isinstance(node_type, str):
        return None

    source_range = _make_source_range(raw, file)

    def child(key: str) -> Optional[Node]:
        return _lookup_built(raw.get(key), built)

    def children(key: str) -> List[Optional[Node]]:
        return _lookup_built_list(raw.get(key), built)

    if node_type == "Program":
        return Program(body=children("body"), source_range=source_range)
    if node_type == "Identifier":
        return Identifier(name=str(raw.get("name", "")), source_range=source_range)
    if node_type == "Literal":
        return Literal(value=raw.get("value"), raw=raw.get("raw"), source_range=source_range)
    if node_type == "ThisExpression":
        return ThisExpression(source_range=source_range)
    if node_type == "MemberExpression":
        return MemberExpression(
            object=child("object"),
            property=child("property"),
            computed=bool(raw.get("computed", False)),
            source_range=source_range,
        )
    if node_type == "CallExpression":
        return CallExpression(
            callee=child("callee"),
            arguments=children("arguments"),
            source_range=source_range,
        )
    if node_type == "ObjectExpression":
        return ObjectExpression(properties=children("properties"), source_range=source_range)
    if node_type == "Property":
        return Property(
            key=child("key"),
            value=child("value"),
            kind=str(raw.get("kind", "init")),
            computed=bool(raw.get("computed", False)),
            shorthand=bool(raw.get("shorthand", False)),
            method=bool(raw.get("method", False)),
            source_range=source_range,
        )
    if node_type in _FUNCTION_TYPES:
        return FunctionNode(
            type=node_type,
            body=child("body"),
            params=children("params"),
            id=child("id"),
            expression=bool(raw.get("expression", False)),
            source_range=source_range,
        )
    if node_type in _CLASS_TYPES:
        return ClassNode(
            type=node_type,
            body=child("body"),
            id=child("id"),
            super_class=child("superClass"),
            source_range=source_range,
        )
    if node_type == "BlockStatement":
        return BlockStatement(body=children("body"), source_range=source_range)
    if node_type == "ClassBody":
        return ClassBody(body=children("body"), source_range=source_range)
    if node_type == "MethodDefinition":
        return MethodDefinition(
            key=child("key"),
            value=child("value"),
            kind=str(raw.get("kind", "method")),
            static=bool(raw.get("static", False)),
            computed=bool(raw.get("computed", False)),
            source_range=source_range,
        )
    if node_type == "ExpressionStatement":
        return ExpressionStatement(expression=child("expression"), source_range=source_range)
    if node_type == "AssignmentExpression":
        return AssignmentExpression(
            operator=str(raw.get("operator", "=")),
            left=child("left"),
            right=child("right"),
            source_range=source_range,
        )
    if node_type == "ReturnStatement":
        return ReturnStatement(argument=child("argument"), source_range=source_range)

    other_children: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _POSITION_KEYS:
            continue
        if isinstance(value, dict):
            other_children[key] = _lookup_built(value, built)
        elif isinstance(value, list):
            other_children[key] = _lookup_built_list(value, built)
        else:
            other_children[key] = value
    return OtherNode(type=node_type, children=other_children, source_range=source_range)


def _lookup_built(value: Any, built: Dict[int, Optional[Node]]) -> Optional[Node]:
    if not isinstance(value, dict):
        return None
    return built.get(id(value))


def _lookup_built_list(raw_list: Any, built: Dict[int, Optional[Node]]) -> List[Optional[Node]]:
    # Holes (e.g. `[a, , b]`) stay as None to keep positions stable.
    if not isinstance(raw_list, list):
        return []
    return [_lookup_built(item, built) for item in raw_list]


def _make_source_range(raw: Dict[str, Any], file: Optional[str]) -> Optional[SourceRange]:
    loc = raw.get("loc")
    if not isinstance(loc, dict):
        return None
    start = loc.get("start")
    end = loc.get("end") or start
    try:
        return SourceRange(
            file=file or loc.get("source") or "<unknown>",
            line_start=int(start["line"]),
            col_start=int(start["column"]) + 1,
            line_end=int(end["line"]),
            col_end=int(end["column"]) + 1,
        )
    except (KeyError, TypeError, ValueError):
        return None


# ============================================================
# ======================= TRAVERSAL ==========================
# ============================================================

def iter_child_nodes(node: Any) -> Iterator[Node]:
    if isinstance(node, OtherNode):
        values: Sequence[Any] = list(node.children.values())
    else:
        values = [getattr(node, name, None) for name in _CHILD_FIELDS.get(type(node), ())]

    for value in values:
        if isinstance(value, list):
            for item in value:
                if is_node(item):
                    yield item
        elif is_node(value):
            yield value


def iter_nodes(root: Any) -> Iterator[Tuple[Node, Sequence[Node]]]:
    """
    Depth-first pre-order walk. Yields (node, ancestors) where ancestors runs
    from the root down to the node's parent.

    `ancestors` is one shared list that the walk pushes and pops; it is only
    valid until the generator is advanced. Copy it to keep it.
    """
    if not is_node(root):
        return
    ancestors: List[Node] = []
    yield root, ancestors
    ancestors.append(root)
    pending: List[Iterator[Node]] = [iter_child_nodes(root)]
    while pending:
        child_node = next(pending[-1], None)
        if child_node is None:
            pending.pop()
            ancestors.pop()
            continue
        yield child_node, ancestors
        ancestors.append(child_node)
        pending.append(iter_child_nodes(child_node))


# ============================================================
# ==================== NODE ACCESSORS ========================
# ============================================================

PathKey = Union[str, int]


def _step(value: Any, key: PathKey) -> Any:
    if value is None:
        return None
    if isinstance(key, int):
        if isinstance(value, (list, tuple)) and 0 <= key < len(value):
            return value[key]
        return None
    if isinstance(value, dict):
        return value.get(key)
    if isinstance(value, OtherNode) and key not in {"type", "children", "source_range"}:
        return value.children.get(key)
    if is_node(value):
        return getattr(value, key, None)
    return None


def get_path(node: Any, path: Sequence[PathKey], default: Any = None) -> Any:
    """
    Follow `path` (field names and list indices) through nested nodes.
    Returns `default` as soon as a step is missing or not navigable.
    """
    current = node
    for key in path:
        current = _step(current, key)
        if current is None:
            return default
    return current


def is_named(name: str, node: Any) -> bool:
    return get_path(node, ["name"]) == name


def is_function(node: Any) -> bool:
    return get_path(node, ["type"]) in {"FunctionExpression", "ArrowFunctionExpression"}


def is_class(node: Any) -> bool:
    return get_path(node, ["type"]) == "ClassExpression"


# ============================================================
# ================= CALLEE CHAIN RESOLUTION ==================
# ============================================================

def find_callee_named(query: str, node: Any) -> Optional[Node]:
    """
    Walk a call chain (`a.b().c().d`) from the outside in and return the first
    MemberExpression whose property, or the root Identifier, is named `query`.
    """
    current = node
    while current is not None:
        if isinstance(current, MemberExpression):
            if is_named(query, current.property):
                return current
            current = current.object
        elif isinstance(current, CallExpression):
            current = current.callee
        elif isinstance(current, Identifier):
            return current if current.name == query else None
        else:
            return None
    return None


def get_final_callee(node: Any) -> Optional[Identifier]:
    """Root Identifier of a call chain, or None when the chain starts elsewhere."""
    current = node
    while current is not None:
        if isinstance(current, MemberExpression):
            current = current.object
        elif isinstance(current, CallExpression):
            current = current.callee
        elif isinstance(current, Identifier):
            return current
        else:
            return None
    return None


# ============================================================
# ==================== OBJECT LITERALS =======================
# ============================================================

def get_object_property_value(key: str, node: Any) -> Optional[Node]:
    for prop in get_path(node, ["properties"], []):
        if get_path(prop, ["key", "name"]) == key:
            return get_path(prop, ["value"])
    return None


# ============================================================
# ================= ANGULARJS REGISTRATIONS ==================
# ============================================================

ANGULAR_GLOBAL = "angular"
MODULE_CALLEE = "module"
ELEMENT_KINDS = ("component", "service", "controller", "directive")


def is_module_register(element: str, node: Any) -> bool:
    """
    True for `angular.module(...)<...>.<element>(...)` call chains of any length.
    """
    prop = get_path(node, ["callee", "property"])
    return (
        is_named(element, prop)
        and find_callee_named(MODULE_CALLEE, node) is not None
        and is_named(ANGULAR_GLOBAL, get_final_callee(node))
    )


def get_element_config(node: Any) -> Optional[Node]:
    return get_path(node, ["arguments", 1])


def get_element_name(node: Any) -> Optional[str]:
    return get_path(node, ["arguments", 0, "value"])


def get_directive_config(node: Any) -> Optional[Node]:
    """
    Directives return their definition object from a factory function:
    `.directive('name', function () { return {...}; })`.
    """
    factory = get_element_config(node)
    if not is_function(factory):
        return None
    for statement in get_path(factory, ["body", "body"], []):
        if isinstance(statement, ReturnStatement):
            return statement.argument
    return None


# ============================================================
# ======================= RULE MODELS ========================
# ============================================================

@dataclass
class RuleMeta:
    """
    Static description of a rule.

    - messages: message id -> template, placeholders written as {{ name }}
    - schema: ordered JSON-schema shapes for the rule's positional options
    """
    description: str
    category: str
    recommended: bool
    messages: Dict[str, str]
    schema: List[Dict[str, Any]] = field(default_factory=list)
    fixable: Optional[str] = None


@dataclass
class Rule:
    id: str
    meta: RuleMeta
    # context -> {node type: callback}
    create: Callable[["RuleContext"], Dict[str, Callable[[Any], None]]]


@dataclass
class Violation:
    """
    Rich violation object that we will eventually serialize to JSON.
    """
    rule_id: str
    severity: str
    message: str

    location: Dict[str, Any]  # {file, line_start, col_start, line_end, col_end}

    context: Dict[str, Any] = field(default_factory=dict)
    suggested_fix: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)


TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")


def render_template(template: Optional[str], data: Optional[Dict[str, Any]]) -> str:
    if not template:
        return ""
    values = data or {}

    def replace(match: re.Match[str]) -> str:
        value = values.get(match.group(1))
        return "" if value is None else str(value)

    return TEMPLATE_PATTERN.sub(replace, template)


def _node_location(node: Any, filename: str) -> Dict[str, Any]:
    source_range = getattr(node, "source_range", None)
    if isinstance(source_range, SourceRange):
        return {
            "file": filename,
            "line_start": source_range.line_start,
            "col_start": source_range.col_start,
            "line_end": source_range.line_end,
            "col_end": source_range.col_end,
        }
    return {
        "file": filename,
        "line_start": 0,
        "col_start": 0,
        "line_end": 0,
        "col_end": 0,
    }


class RuleContext:
    """
    What a rule sees while the linter walks a file: its options, the file
    name, the ancestors of the node being visited, and a report sink.
    """

    def __init__(
        self,
        rule: Rule,
        *,
        filename: str,
        options: Optional[List[Any]] = None,
        severity: str = "error",
        sink: Optional[Callable[[Violation], None]] = None,
    ) -> None:
        self.rule = rule
        self.id = rule.id
        self.filename = filename
        self.options: List[Any] = list(options or [])
        self.severity = severity
        self.violations: List[Violation] = []
        self._sink = sink or self.violations.append
        self._ancestors: Sequence[Node] = ()

    def get_filename(self) -> str:
        return self.filename

    def get_ancestors(self) -> List[Node]:
        return list(self._ancestors)

    def set_ancestors(self, ancestors: Sequence[Node]) -> None:
        self._ancestors = ancestors

    def report(
        self,
        message_id: str,
        node: Any = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Violation:
        template = self.rule.meta.messages.get(message_id)
        if template is None:
            raise ValueError(f"rule '{self.id}' has no message '{message_id}'")

        violation = Violation(
            rule_id=self.id,
            severity=self.severity,
            message=render_template(template, data),
            location=_node_location(node, self.filename),
            context={
                "message_id": message_id,
                "node_type": getattr(node, "type", None),
                "data": dict(data or {}),
            },
            extras={"category": self.rule.meta.category},
        )
        self._sink(violation)
        return violation


# ============================================================
# ================== CONSISTENT TEST FILENAME ================
# ============================================================

TEST_DECLARATION_NAMES = frozenset({"describe", "xdescribe", "fdescribe", "it", "xit", "fit", "expect"})
DEFAULT_TEST_SUFFIX = "spec"


def is_test_declaration(callee: Any) -> bool:
    return any(is_named(name, callee) for name in TEST_DECLARATION_NAMES)


def get_expected_name(filename: str, suffix: str = DEFAULT_TEST_SUFFIX) -> str:
    """`foo.js` -> `foo.spec.js`; the suffix goes before the last dot segment."""
    name, _, extension = filename.rpartition(".")
    return f"{name}.{suffix}.{extension}"


def has_expected_name(filename: str, suffix: str = DEFAULT_TEST_SUFFIX) -> bool:
    return re.search(rf".+\.{re.escape(suffix)}\.js$", filename) is not None


def _create_consistent_test_filename(context: RuleContext) -> Dict[str, Callable[[Any], None]]:
    name_pattern = get_path(context.options, [0], {})
    suffix = name_pattern.get("suffix", DEFAULT_TEST_SUFFIX) if isinstance(name_pattern, dict) else DEFAULT_TEST_SUFFIX

    def call_expression(node: CallExpression) -> None:
        if not is_test_declaration(node.callee):
            return
        filename = context.get_filename()
        if has_expected_name(filename, suffix):
            return
        ancestors = context.get_ancestors()
        program = ancestors[0] if ancestors else None
        context.report(
            "noConsistentNaming",
            node=program,
            data={"expectedName": get_expected_name(filename, suffix)},
        )

    return {"CallExpression": call_expression}


CONSISTENT_TEST_FILENAME = Rule(
    id="consistent-test-filename",
    meta=RuleMeta(
        description="Enforce consistent naming of test files",
        category="Jasmine best practices",
        recommended=True,
        messages={"noConsistentNaming": 'Test file should be named "{{ expectedName }}"'},
        schema=[
            {
                "type": "object",
                "properties": {"suffix": {"type": "string"}},
                "additionalProperties": False,
            }
        ],
    ),
    create=_create_consistent_test_filename,
)


# ============================================================
# ==================== NO TWO-WAY BINDING ====================
# ============================================================

TWO_WAY_BINDING_MARKER = "="


def find_two_way_binding(node: Any) -> Optional[Node]:
    for binding in get_path(node, ["properties"], []):
        value = get_path(binding, ["value", "value"])
        if isinstance(value, str) and TWO_WAY_BINDING_MARKER in value:
            return binding
    return None


def get_bindings(node: Any) -> Optional[Node]:
    return get_object_property_value("bindings", get_element_config(node))


def get_scope(node: Any) -> Optional[Node]:
    return get_object_property_value("scope", get_directive_config(node))


def _create_no_two_way_binding(context: RuleContext) -> Dict[str, Callable[[Any], None]]:
    def call_expression(node: CallExpression) -> None:
        if is_module_register("component", node):
            declared = get_bindings(node)
        elif is_module_register("directive", node):
            declared = get_scope(node)
        else:
            return

        two_way_binding = find_two_way_binding(declared)
        if two_way_binding is not None:
            context.report(
                "noTwoWayBinding",
                node=two_way_binding,
                data={"name": get_element_name(node)},
            )

    return {"CallExpression": call_expression}


NO_TWO_WAY_BINDING = Rule(
    id="no-two-way-binding",
    meta=RuleMeta(
        description="Disallow use of two way bindings",
        category="AngularJS performance issues",
        recommended=True,
        messages={"noTwoWayBinding": "Use one way binding and callback functions"},
    ),
    create=_create_no_two_way_binding,
)


# ============================================================
# ================ REQUIRE $onInit IN CONTROLLER =============
# ============================================================

ON_INIT_HOOK = "$onInit"


def _is_on_init_method(statement: Any) -> bool:
    return isinstance(statement, MethodDefinition) and is_named(ON_INIT_HOOK, statement.key)


def _is_on_init_assignment(statement: Any) -> bool:
    # this.$onInit = ...
    return (
        isinstance(statement, ExpressionStatement)
        and get_path(statement, ["expression", "left", "object", "type"]) == "ThisExpression"
        and get_path(statement, ["expression", "left", "property", "name"]) == ON_INIT_HOOK
    )


def controller_statements(controller: Any) -> List[Any]:
    """Statements of a function controller, or members of a class controller."""
    if is_function(controller) or is_class(controller):
        return list(get_path(controller, ["body", "body"], []))
    return []


def has_on_init(controller: Any) -> bool:
    return any(
        _is_on_init_method(statement) or _is_on_init_assignment(statement)
        for statement in controller_statements(controller)
    )


def _create_require_comp_ctrl_on_init(context: RuleContext) -> Dict[str, Callable[[Any], None]]:
    def call_expression(node: CallExpression) -> None:
        if not is_module_register("component", node):
            return
        controller = get_object_property_value("controller", get_element_config(node))
        if not has_on_init(controller):
            context.report(
                "onInitNotFound",
                node=controller,
                data={"name": get_element_name(node)},
            )

    return {"CallExpression": call_expression}


REQUIRE_COMP_CTRL_ON_INIT = Rule(
    id="require-comp-ctrl-on-init",
    meta=RuleMeta(
        description="Require use of $onInit in Angular component",
        category="AngularJS 1.7 migration",
        recommended=True,
        messages={"onInitNotFound": "No $onInit in component controller"},
    ),
    create=_create_require_comp_ctrl_on_init,
)


RULES: Dict[str, Rule] = {
    rule.id: rule
    for rule in (CONSISTENT_TEST_FILENAME, NO_TWO_WAY_BINDING, REQUIRE_COMP_CTRL_ON_INIT)
}


# ============================================================
# ===================== CONFIGURATION ========================
# ============================================================

SEVERITIES = ("off", "warning", "error")
_SEVERITY_ALIASES: Dict[Any, str] = {
    "off": "off",
    "warn": "warning",
    "warning": "warning",
    "error": "error",
    0: "off",
    1: "warning",
    2: "error",
}


class ConfigError(ValueError):
    """Raised when a rule setting cannot be understood."""


@dataclass
class RuleSetting:
    severity: str
    options: List[Any] = field(default_factory=list)


@dataclass
class LintConfig:
    rule_settings: Dict[str, RuleSetting] = field(default_factory=dict)

    def setting_for(self, rule: Rule) -> RuleSetting:
        setting = self.rule_settings.get(rule.id)
        if setting is not None:
            return setting
        return RuleSetting(severity="error" if rule.meta.recommended else "off")


def _normalize_severity(raw: Any) -> str:
    # YAML 1.1 reads a bare `off` as False.
    if isinstance(raw, bool):
        return "error" if raw else "off"
    key = raw.lower() if isinstance(raw, str) else raw
    try:
        return _SEVERITY_ALIASES[key]
    except (KeyError, TypeError):
        raise ConfigError(f"unknown severity {raw!r}") from None


def parse_rule_setting(rule: Rule, raw: Any) -> RuleSetting:
    """
    Accepts `severity` or `[severity, *options]` and validates the options
    against the rule's schema.
    """
    if isinstance(raw, list):
        if not raw:
            raise ConfigError(f"empty setting for rule '{rule.id}'")
        severity = _normalize_severity(raw[0])
        options = list(raw[1:])
    else:
        severity = _normalize_severity(raw)
        options = []

    schema = {
        "type": "array",
        "items": list(rule.meta.schema),
        "minItems": 0,
        "maxItems": len(rule.meta.schema),
    }
    errors = sorted(
        jsonschema.Draft7Validator(schema).iter_errors(options),
        key=lambda err: list(err.path),
    )
    if errors:
        raise ConfigError(f"invalid options for rule '{rule.id}': {errors[0].message}")

    return RuleSetting(severity=severity, options=options)


def load_config_from_yaml(
    yaml_paths: List[str],
    rules: Optional[Dict[str, Rule]] = None,
) -> LintConfig:
    """
    Load rule settings from YAML config files. Later files win per rule.
    Problems are reported on stderr and the offending entry is skipped.
    """
    registry = RULES if rules is None else rules
    config = LintConfig()
    if not yaml_paths:
        return config

    def _rule_entries(doc: Any) -> Dict[str, Any]:
        if not isinstance(doc, dict):
            return {}
        entries = doc.get("rules")
        return entries if isinstance(entries, dict) else {}

    for path in yaml_paths:
        try:
            with open(path, "r", encoding="utf-8") as handle:
                documents = list(yaml.safe_load_all(handle))
        except FileNotFoundError:
            sys.stderr.write(f"[ngconv] Config file not found: {path}\n")
            continue
        except OSError as exc:
            sys.stderr.write(f"[ngconv] Could not read config file {path}: {exc}\n")
            continue
        except yaml.YAMLError as exc:
            sys.stderr.write(f"[ngconv] Invalid YAML in config file {path}: {exc}\n")
            continue

        for doc_index, doc in enumerate(documents):
            origin = f"{path}#doc{doc_index + 1}"
            for rule_id, raw_setting in _rule_entries(doc).items():
                rule = registry.get(rule_id)
                if rule is None:
                    sys.stderr.write(f"[ngconv] Skipping unknown rule '{rule_id}' from {origin}.\n")
                    continue
                try:
                    config.rule_settings[rule_id] = parse_rule_setting(rule, raw_setting)
                except ConfigError as exc:
                    sys.stderr.write(f"[ngconv] Skipping setting from {origin}: {exc}.\n")

    return config


# ============================================================
# ========================= LINTER ===========================
# ============================================================

class Linter:
    """
    The Linter will:
    - take the rule registry and a LintConfig
    - instantiate each enabled rule against a file
    - walk the tree pre-order, calling rule callbacks per node type
    - collect Violations in visit order
    """

    def __init__(
        self,
        rules: Optional[Dict[str, Rule]] = None,
        config: Optional[LintConfig] = None,
    ) -> None:
        self.rules = RULES if rules is None else rules
        self.config = config or LintConfig()
        self._callback_error_reported: Set[Tuple[str, str, str]] = set()

    def verify(self, program: Any, filename: str) -> List[Violation]:
        violations: List[Violation] = []
        listeners: List[Tuple[RuleContext, Dict[str, Callable[[Any], None]]]] = []

        for rule in self.rules.values():
            setting = self.config.setting_for(rule)
            if setting.severity == "off":
                continue
            context = RuleContext(
                rule,
                filename=filename,
                options=setting.options,
                severity=setting.severity,
                sink=violations.append,
            )
            listeners.append((context, rule.create(context)))

        if not listeners:
            return violations

        for node, ancestors in iter_nodes(program):
            for context, visitors in listeners:
                callback = visitors.get(node.type)
                if callback is None:
                    continue
                context.set_ancestors(ancestors)
                try:
                    callback(node)
                except Exception as exc:
                    self._report_callback_error(context.id, filename, node, exc)

        return violations

    def _report_callback_error(self, rule_id: str, filename: str, node: Any, exc: Exception) -> None:
        key = (filename, rule_id, node.type)
        if key in self._callback_error_reported:
            return
        sys.stderr.write(
            f"[ngconv] Rule '{rule_id}' failed on {node.type} in {filename}: {exc!r}.\n"
        )
        self._callback_error_reported.add(key)


# ============================================================
# ====================== INPUT LOADING =======================
# ============================================================

def _linted_filename(path: str) -> str:
    return path[: -len(".json")] if path.endswith(".json") else path


def load_estree_json(path: str) -> Optional[Tuple[str, Program]]:
    """
    Read an ESTree dump. The document is either a bare Program or an envelope
    {"filename": "src/foo.js", "ast": {...}}; bare dumps lint as the input
    path without its `.json` suffix.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            document = json.load(handle)
    except FileNotFoundError:
        sys.stderr.write(f"[ngconv] Input file not found: {path}\n")
        return None
    except OSError as exc:
        sys.stderr.write(f"[ngconv] Could not read input file {path}: {exc}\n")
        return None
    except json.JSONDecodeError as exc:
        sys.stderr.write(f"[ngconv] Input file {path} is not valid JSON: {exc}\n")
        return None
    except RecursionError:
        sys.stderr.write(f"[ngconv] Input file {path} is too deeply nested to decode.\n")
        return None

    if isinstance(document, dict) and isinstance(document.get("ast"), dict):
        filename = str(document.get("filename") or _linted_filename(path))
        raw_ast = document["ast"]
    else:
        filename = _linted_filename(path)
        raw_ast = document

    program = build_node_from_estree(raw_ast, filename)
    if not isinstance(program, Program):
        sys.stderr.write(f"[ngconv] Input file {path} does not hold an ESTree Program.\n")
        return None
    return filename, program


# ============================================================
# ==================== VIOLATION OUTPUT ======================
# ============================================================

def violation_to_json_obj(v: Violation) -> Dict[str, Any]:
    """
    Convert a Violation dataclass into a JSON-friendly dict.
    Kept explicit so the field order stays stable.
    """
    return {
        "rule_id": v.rule_id,
        "severity": v.severity,
        "message": v.message,
        "location": v.location,
        "context": v.context,
        "suggested_fix": v.suggested_fix,
        "extras": v.extras,
        "tool": "ngconv",
        "version": __version__,
    }


def rule_to_json_obj(rule: Rule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "description": rule.meta.description,
        "category": rule.meta.category,
        "recommended": rule.meta.recommended,
        "fixable": rule.meta.fixable,
        "messages": rule.meta.messages,
        "schema": rule.meta.schema,
    }


def emit_violations_json(violations: List[Violation], out: Optional[str] = None) -> None:
    """
    Serialize all violations to JSON (list of violation objects).
    """
    as_json = [violation_to_json_obj(v) for v in violations]
    text = json.dumps(as_json, indent=2, sort_keys=False)
    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text + "\n")
    else:
        print(text)


# ============================================================
# ============================ CLI ===========================
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.
    Intended usage:
      ngconv analyze --config ngconv.yaml build/ast/foo.js.json ...
      ngconv rules
    """
    parser = argparse.ArgumentParser(
        prog="ngconv",
        description="ngconv: AngularJS convention checks over ESTree syntax trees"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_p = subparsers.add_parser(
        "analyze",
        help="Check one or more ESTree JSON dumps and emit JSON violations."
    )
    analyze_p.add_argument(
        "--config",
        nargs="+",
        metavar="CONFIG_FILE",
        help="YAML config file(s) with rule settings.",
        required=False,
    )
    analyze_p.add_argument(
        "--out",
        metavar="OUT_JSON",
        help="Write violations to this JSON file instead of stdout.",
        required=False,
    )
    analyze_p.add_argument(
        "files",
        nargs="+",
        help="ESTree JSON files to analyze."
    )

    subparsers.add_parser("rules", help="Print the available rules as JSON.")

    args = parser.parse_args(argv)

    if args.command == "analyze":
        # 1. Load configuration
        config = load_config_from_yaml(args.config or [])

        # 2. Lint every tree
        linter = Linter(RULES, config)
        violations: List[Violation] = []
        for path in args.files:
            loaded = load_estree_json(path)
            if loaded is None:
                continue
            filename, program = loaded
            violations.extend(linter.verify(program, filename))

        # 3. Emit results as JSON
        emit_violations_json(violations, out=args.out)
        return 1 if any(v.severity == "error" for v in violations) else 0

    if args.command == "rules":
        print(json.dumps([rule_to_json_obj(rule) for rule in RULES.values()], indent=2))
        return 0

    # unreachable if parser is correct
    return 1


if __name__ == "__main__":
    sys.exit(main())
