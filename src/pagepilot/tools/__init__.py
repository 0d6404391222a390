"""
PagePilot - Tools

Capability-gated tool registry and the dispatcher that runs tool calls.

A call goes through the same pipeline whatever the tool:

    1. look the name up in the active (capability-filtered) set
    2. validate arguments against the tool's JSON Schema and compile URL globs
    3. resolve the tab (ensure / current / none)
    4. run the handler
    5. wait for network idle, then capture a snapshot, per the tool's policy
    6. serialize the result, or classify whatever was raised

Serialized tools hold the tab's lock from step 4 to the end, so two calls
against one tab never interleave their side effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from jsonschema import Draft202012Validator

from pagepilot.config import CORE
from pagepilot.errors import (
    DriverError,
    InternalError,
    PagePilotError,
    UnknownTool,
    ValidationError,
    classify,
)
from pagepilot.patterns import compile_glob
from pagepilot.tools.base import (
    CURRENT,
    ENSURE,
    NONE,
    SideEffectPolicy,
    ToolDescriptor,
    ToolResult,
)

logger = logging.getLogger("pagepilot.tools")

__all__ = [
    "CURRENT",
    "ENSURE",
    "NONE",
    "Dispatcher",
    "SideEffectPolicy",
    "ToolDescriptor",
    "ToolRegistry",
    "ToolResponse",
    "ToolResult",
    "create_tool_registry",
]


# ═══════════════════════════════════════════════════════════════════════════
# Tool Registry
# ═══════════════════════════════════════════════════════════════════════════


class ToolRegistry:
    """Name -> descriptor table, in declaration order."""

    def __init__(self, descriptors: Iterable[ToolDescriptor] = ()):
        self._tools: Mapping[str, ToolDescriptor] = MappingProxyType({})
        self.register(descriptors)

    def register(self, descriptors: Iterable[ToolDescriptor]) -> "ToolRegistry":
        """Add descriptors. Names must be unique across the registry."""
        table = dict(self._tools)
        for descriptor in descriptors:
            if descriptor.name in table:
                raise ValueError(f"Duplicate tool name: {descriptor.name}")
            table[descriptor.name] = descriptor
        self._tools = MappingProxyType(table)
        return self

    @property
    def tools(self) -> Mapping[str, ToolDescriptor]:
        return self._tools

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def build_active_set(self, capabilities: Iterable[str]) -> list[ToolDescriptor]:
        """Descriptors whose capability is enabled, ``core`` always included."""
        enabled = set(capabilities) | {CORE}
        return [d for d in self._tools.values() if d.capability in enabled]


def create_tool_registry() -> ToolRegistry:
    """Registry with every built-in tool group."""
    from pagepilot.tools import core, dom, frames, info, javascript, network, storage, waiting

    registry = ToolRegistry()
    for group in (core, network, storage, javascript, frames, waiting, dom, info):
        registry.register(group.TOOLS)
    return registry


# ═══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class ToolResponse:
    """Serialized outcome of one call: text content items, or a failure."""
    content: list[dict[str, str]] = field(default_factory=list)
    is_error: bool = False
    error: PagePilotError | None = None

    @property
    def text(self) -> str:
        return "\n\n".join(item["text"] for item in self.content)

    @classmethod
    def failure(cls, error: PagePilotError) -> "ToolResponse":
        return cls(content=[{"type": "text", "text": error.to_text()}], is_error=True, error=error)


class Dispatcher:
    """Runs tool calls for one session against its active tool set."""

    def __init__(self, registry: ToolRegistry, session: Any):
        self.registry = registry
        self.session = session
        self.active: dict[str, ToolDescriptor] = {
            d.name: d for d in registry.build_active_set(session.capabilities)
        }
        self._validators = {
            name: Draft202012Validator(d.input_schema) for name, d in self.active.items()
        }

    def list_tools(self) -> list[ToolDescriptor]:
        return list(self.active.values())

    # ── validation ──

    def validate(self, descriptor: ToolDescriptor, raw_args: Any) -> dict:
        """Schema-check ``raw_args``; raise ValidationError naming the field."""
        args = {} if raw_args is None else raw_args
        if not isinstance(args, dict):
            raise ValidationError(descriptor.name, "", "arguments must be an object")
        errors = sorted(self._validators[descriptor.name].iter_errors(args), key=lambda e: list(e.path))
        if errors:
            error = errors[0]
            raise ValidationError(descriptor.name, _error_field(error), error.message)
        for path in descriptor.glob_fields:
            pattern = _lookup(args, path)
            if pattern is None:
                continue
            try:
                compile_glob(pattern)
            except ValueError as e:
                raise ValidationError(descriptor.name, path, str(e)) from None
        if descriptor.check is not None:
            descriptor.check(args)
        return args

    # ── dispatch ──

    async def dispatch(self, name: str, raw_args: Any = None) -> ToolResponse:
        """Run one tool call. Never raises; failures come back classified."""
        descriptor = self.active.get(name)
        if descriptor is None:
            return self._failed(name, UnknownTool(name))

        logger.debug(f"Dispatching {name}", extra={"tool_name": name})
        tab = None
        try:
            args = self.validate(descriptor, raw_args)
            tab = await self._resolve_tab(descriptor)
            if tab is not None and descriptor.serialized:
                async with tab.lock:
                    return await self._run(descriptor, tab, args)
            return await self._run(descriptor, tab, args)
        except Exception as e:
            return self._failed(name, classify(e, name), tab_index=getattr(tab, "index", None))

    async def _resolve_tab(self, descriptor: ToolDescriptor):
        if descriptor.tab_mode == ENSURE:
            return await self.session.ensure_tab()
        if descriptor.tab_mode == CURRENT:
            return self.session.current_tab_or_die()
        return None

    async def _run(self, descriptor: ToolDescriptor, tab, args: dict) -> ToolResponse:
        result = await descriptor.handler(self.session, tab, args)
        target = tab if tab is not None else self.session.current_tab
        policy = descriptor.policy

        if policy.wait_for_network_idle and target is not None and not target.closed:
            await self._wait_for_network_idle(target)

        snapshot = None
        if policy.capture_snapshot and self.session.config.snapshots and target is not None and not target.closed:
            snapshot = await target.capture_snapshot()

        return ToolResponse(content=_render(result, snapshot))

    async def _wait_for_network_idle(self, tab):
        config = self.session.config
        idle = await tab.requests.wait_for_idle(config.network_idle_quiet_ms, config.network_idle_timeout_ms)
        if not idle:
            logger.debug(
                f"Network not idle after {config.network_idle_timeout_ms}ms, continuing",
                extra={"tab_index": tab.index},
            )

    def _failed(self, name: str, error: PagePilotError, tab_index: int | None = None) -> ToolResponse:
        extra = {"tool_name": name, "error_kind": error.kind}
        if tab_index is not None:
            extra["tab_index"] = tab_index
        if isinstance(error, (DriverError, InternalError)):
            original = error.original if isinstance(error.original, BaseException) else None
            logger.error(f"{name} failed: {error.message}", extra=extra, exc_info=original)
        else:
            logger.warning(f"{name} failed: {error.message}", extra=extra)
        return ToolResponse.failure(error)


def _error_field(error) -> str:
    """Best name for the argument a jsonschema error is about."""
    path = [str(p) for p in error.path]
    if error.validator == "required":
        missing = [p for p in error.validator_value if isinstance(error.instance, dict) and p not in error.instance]
        if missing:
            path.append(missing[0])
    elif error.validator == "additionalProperties" and isinstance(error.instance, dict):
        allowed = set(error.schema.get("properties", {}))
        extra = sorted(k for k in error.instance if k not in allowed)
        if extra:
            path.append(extra[0])
    return ".".join(path)


def _lookup(args: dict, path: str) -> Any:
    value: Any = args
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _render(result: ToolResult, snapshot: str | None) -> list[dict[str, str]]:
    content = [{"type": "text", "text": text} for text in result.texts]
    if result.code:
        content.append({
            "type": "text",
            "text": "- Ran Playwright code:\n```python\n" + "\n".join(result.code) + "\n```",
        })
    if snapshot is not None:
        content.append({"type": "text", "text": snapshot})
    return content
