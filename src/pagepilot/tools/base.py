"""
PagePilot - Tool building blocks

Shared by the registry and every tool group module: descriptors, side-effect
policies, handler results, JSON-schema helpers and the JavaScript wrappers
used to run caller-supplied function bodies in the page.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from pagepilot.session import SessionContext
    from pagepilot.tab import Tab

# Tab resolution modes
ENSURE = "ensure"    # create a tab lazily
CURRENT = "current"  # NoActiveTab when there is none
NONE = "none"        # session-level tool, no tab


@dataclass(frozen=True)
class SideEffectPolicy:
    """What the dispatcher does after the handler, in this order."""
    wait_for_network_idle: bool = False
    capture_snapshot: bool = False


NO_SIDE_EFFECTS = SideEffectPolicy()
SNAPSHOT = SideEffectPolicy(capture_snapshot=True)
SNAPSHOT_AFTER_IDLE = SideEffectPolicy(wait_for_network_idle=True, capture_snapshot=True)


@dataclass
class ToolResult:
    """What a handler produced: result text(s) and the code it ran."""
    texts: list[str] = field(default_factory=list)
    code: list[str] = field(default_factory=list)

    @classmethod
    def text(cls, text: str, code: list[str] | None = None) -> "ToolResult":
        return cls(texts=[text], code=list(code or []))

    @classmethod
    def json(cls, value: Any, code: list[str] | None = None) -> "ToolResult":
        return cls(texts=[to_json(value)], code=list(code or []))


Handler = Callable[["SessionContext", Optional["Tab"], dict], Awaitable[ToolResult]]
ArgCheck = Callable[[dict], None]


@dataclass(frozen=True)
class ToolDescriptor:
    """Immutable description of one tool."""
    name: str
    title: str
    description: str
    capability: str
    input_schema: dict
    handler: Handler
    policy: SideEffectPolicy = NO_SIDE_EFFECTS
    tab_mode: str = ENSURE
    serialized: bool = True
    read_only: bool = False
    check: ArgCheck | None = None  # argument rules JSON Schema can't express
    glob_fields: tuple[str, ...] = ()  # dotted paths of URL glob arguments


# ═══════════════════════════════════════════════════════════════════════════
# Schema helpers
# ═══════════════════════════════════════════════════════════════════════════


def object_schema(properties: dict[str, Any] | None = None, required: tuple[str, ...] = ()) -> dict:
    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties or {},
        "additionalProperties": False,
    }
    if required:
        schema["required"] = list(required)
    return schema


def string(description: str, **extra: Any) -> dict:
    return {"type": "string", "description": description, **extra}


def boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def integer(description: str, minimum: int | None = None) -> dict:
    prop: dict[str, Any] = {"type": "integer", "description": description}
    if minimum is not None:
        prop["minimum"] = minimum
    return prop


def enum(values: list[str], description: str) -> dict:
    return {"type": "string", "enum": values, "description": description}


TIMEOUT = {
    "type": "number",
    "exclusiveMinimum": 0,
    "description": "Timeout in milliseconds (default: 30000)",
}

ARGS = {
    "type": "array",
    "items": {},
    "description": "Positional arguments, available in the code as arg0, arg1, ...",
}

STRING_MAP = {"type": "object", "additionalProperties": {"type": "string"}}


def timeout_ms(ctx: "SessionContext", args: dict) -> float:
    return args.get("timeout") or ctx.config.default_timeout_ms


def to_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


# ═══════════════════════════════════════════════════════════════════════════
# JavaScript function bodies
# ═══════════════════════════════════════════════════════════════════════════

# The caller's code is a function body; positional args are bound as
# arg0..argN. The result is boxed so an `undefined` return survives the
# trip back (Playwright turns both undefined and null into None).

EVALUATE_BODY = """({codeStr, args}) => {
  const fn = new Function(...args.map((_, i) => `arg${i}`), codeStr);
  return Promise.resolve(fn(...args)).then(
    r => r === undefined ? {undefined: true} : {value: r});
}"""

EVALUATE_BODY_ON_ELEMENT = """(element, {codeStr, args}) => {
  const fn = new Function('element', ...args.map((_, i) => `arg${i}`), codeStr);
  return Promise.resolve(fn(element, ...args)).then(
    r => r === undefined ? {undefined: true} : {value: r});
}"""

EVALUATE_BODY_ON_ELEMENTS = """(elements, {codeStr, args}) => {
  const fn = new Function('elements', ...args.map((_, i) => `arg${i}`), codeStr);
  return Promise.resolve(fn(elements, ...args)).then(
    r => r === undefined ? {undefined: true} : {value: r});
}"""

# wait_for_function wants the raw truthy value, not a box.
PREDICATE_BODY = """({codeStr, args}) => {
  const fn = new Function(...args.map((_, i) => `arg${i}`), codeStr);
  return fn(...args);
}"""


def body_arg(args: dict) -> dict:
    return {"codeStr": args["code"], "args": args.get("args") or []}


def render_js_result(boxed: Any) -> str:
    """Text for a value returned through one of the EVALUATE_BODY wrappers."""
    if not isinstance(boxed, dict) or boxed.get("undefined"):
        return "undefined"
    return to_json(boxed.get("value"))
