"""
Tool registry: central dispatch for all tools.

Registries are composed explicitly at startup, either by hand through
RegistryBuilder or from config.yaml through build_registry(). Nothing is
discovered at runtime.

    registry = (
        RegistryBuilder()
        .add(DateTimeTool())
        .add(WeatherTool(url=...))
        .build()
    )
    text = await registry.dispatch("year_of", {"date": "2024-03-15"})
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Union

from toolchat.errors import (
    DuplicateToolError,
    InvalidToolArgumentsError,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownToolError,
)
from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import Tool, Toolkit
from toolchat.tools.datetime_tool import DateTimeTool
from toolchat.tools.document_search import DocumentSearchTool
from toolchat.tools.geocoding import GeocodingTool
from toolchat.tools.prompt_tool import load_prompt_tools
from toolchat.tools.weather import WeatherTool

logger = logging.getLogger(__name__)

Implementation = Callable[[dict], Union[str, Awaitable[str]]]

# Tool families that build_registry() knows how to construct
TOOL_FAMILIES = ("datetime", "geocoding", "weather", "document_search", "prompts")


def _coerce(param: ToolParameter, value: Any) -> Any:
    """Check one argument against its declared type, coercing obvious cases."""
    if param.type == "string":
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    elif param.type == "integer":
        if isinstance(value, bool):
            raise TypeError
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            return int(value.strip())
    elif param.type == "number":
        if isinstance(value, bool):
            raise TypeError
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            return float(value.strip())
    elif param.type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
    raise TypeError


class ToolRegistry:
    """Named tools, advertised in registration order and dispatched by name."""

    def __init__(self):
        self._entries: dict[str, tuple[ToolDescriptor, Implementation]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, descriptor: ToolDescriptor, implementation: Implementation):
        """Add a callable tool. Implementation receives the argument mapping."""
        if descriptor.name in self._entries:
            raise DuplicateToolError(descriptor.name)
        self._entries[descriptor.name] = (descriptor, implementation)
        logger.debug("Registered tool '%s'", descriptor.name)

    def add(self, item: Tool | Toolkit):
        """Register a Tool, or every tool of a Toolkit."""
        tools = item.tools() if isinstance(item, Toolkit) else [item]
        for tool in tools:
            self.register(tool.describe(), tool.invoke)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, name: str) -> ToolDescriptor | None:
        """Get a tool's descriptor by name, or None if not registered."""
        entry = self._entries.get(name)
        return entry[0] if entry else None

    def list_tools(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self._entries.keys())

    def describe_all(self, allowed: frozenset[str] | set[str] | None = None) -> list[ToolDescriptor]:
        """Descriptors to advertise, in registration order."""
        return [
            desc for name, (desc, _) in self._entries.items()
            if allowed is None or name in allowed
        ]

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def validate(self, name: str, arguments: dict) -> dict:
        """Check arguments against the descriptor. Returns coerced arguments."""
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownToolError(name, self.list_tools())
        descriptor = entry[0]

        if not isinstance(arguments, dict):
            raise InvalidToolArgumentsError(name, f"Arguments for '{name}' must be an object")

        unknown = [k for k in arguments if descriptor.parameter(k) is None]
        if unknown:
            raise InvalidToolArgumentsError(
                name, f"Unknown argument(s) for '{name}': {', '.join(unknown)}"
            )

        coerced = {}
        for param in descriptor.parameters:
            if param.name not in arguments or arguments[param.name] is None:
                if param.required:
                    raise InvalidToolArgumentsError(
                        name, f"Missing required argument '{param.name}' for '{name}'"
                    )
                continue
            value = arguments[param.name]
            try:
                coerced[param.name] = _coerce(param, value)
            except (TypeError, ValueError):
                raise InvalidToolArgumentsError(
                    name,
                    f"Argument '{param.name}' for '{name}' must be {param.type}, got {value!r}",
                ) from None
        return coerced

    async def dispatch(self, name: str, arguments: dict, timeout: float | None = None) -> str:
        """
        Validate and run a tool, returning its text.

        Raises UnknownToolError, InvalidToolArgumentsError, ToolTimeoutError,
        or ToolExecutionError (implementation raised; cause chained).
        """
        arguments = self.validate(name, arguments)
        implementation = self._entries[name][1]

        start = time.monotonic()
        try:
            if timeout is not None:
                result = await asyncio.wait_for(self._call(implementation, arguments), timeout)
            else:
                result = await self._call(implementation, arguments)
        except asyncio.TimeoutError:
            logger.warning("Tool '%s' timed out after %.1fs", name, timeout)
            raise ToolTimeoutError(name, timeout) from None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Tool '%s' raised: %s", name, e)
            raise ToolExecutionError(name, f"Tool '{name}' failed: {e}") from e

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info("Tool '%s' completed in %.0fms", name, elapsed_ms)
        return "" if result is None else str(result)

    @staticmethod
    async def _call(implementation: Implementation, arguments: dict):
        if inspect.iscoroutinefunction(implementation):
            return await implementation(arguments)
        result = await asyncio.to_thread(implementation, arguments)
        if inspect.isawaitable(result):
            result = await result
        return result


class RegistryBuilder:
    """Fluent composition of a ToolRegistry."""

    def __init__(self):
        self._items: list[Tool | Toolkit | tuple[ToolDescriptor, Implementation]] = []

    def add(self, item: Tool | Toolkit) -> RegistryBuilder:
        self._items.append(item)
        return self

    def register(self, descriptor: ToolDescriptor, implementation: Implementation) -> RegistryBuilder:
        self._items.append((descriptor, implementation))
        return self

    def build(self) -> ToolRegistry:
        registry = ToolRegistry()
        for item in self._items:
            if isinstance(item, tuple):
                registry.register(*item)
            else:
                registry.add(item)
        logger.info("Tool registry built: %s", registry.list_tools())
        return registry


def build_registry(
    cfg: dict,
    vector_store=None,
    backend=None,
    include: set[str] | list[str] | None = None,
) -> ToolRegistry:
    """
    Build a registry from the `tools:` section of config.yaml.

    Args:
        cfg: Full config dict.
        vector_store: VectorStore for document search (skipped when None).
        backend: CompletionBackend for prompt tools (skipped when None).
        include: Restrict to these tool families (see TOOL_FAMILIES).
    """
    tools_cfg = cfg.get("tools", {})
    wanted = set(include) if include is not None else set(TOOL_FAMILIES)
    builder = RegistryBuilder()

    # --- DateTime ---
    dt_cfg = tools_cfg.get("datetime", {})
    if "datetime" in wanted and dt_cfg.get("enabled", True):  # Enabled by default, no deps
        builder.add(DateTimeTool(local_tz_offset=dt_cfg.get("local_tz_offset")))

    # --- Geocoding ---
    geo_cfg = tools_cfg.get("geocoding", {})
    if "geocoding" in wanted and geo_cfg.get("enabled", False):
        builder.add(GeocodingTool(
            url=geo_cfg.get("url", "https://geocode.maps.co/"),
            api_key=geo_cfg.get("api_key", ""),
            retry_delay=geo_cfg.get("retry_delay", 1.0),
            timeout=geo_cfg.get("timeout", 30),
        ))

    # --- Weather ---
    wx_cfg = tools_cfg.get("weather", {})
    if "weather" in wanted and wx_cfg.get("enabled", False):
        builder.add(WeatherTool(
            url=wx_cfg.get("url", "https://api.open-meteo.com/v1/forecast"),
            timeout=wx_cfg.get("timeout", 30),
        ))

    # --- Document search ---
    ds_cfg = tools_cfg.get("document_search", {})
    if "document_search" in wanted and ds_cfg.get("enabled", False):
        if vector_store is None:
            logger.warning("document_search enabled but no vector store available — skipped")
        else:
            builder.add(DocumentSearchTool(
                vector_store=vector_store,
                max_results=ds_cfg.get("max_results", 3),
            ))

    # --- Prompt tools ---
    pr_cfg = tools_cfg.get("prompts", {})
    if "prompts" in wanted and pr_cfg.get("enabled", False):
        if backend is None:
            logger.warning("prompt tools enabled but no completion backend available — skipped")
        else:
            for tool in load_prompt_tools(pr_cfg.get("directory", "./prompts"), backend):
                builder.add(tool)

    return builder.build()
