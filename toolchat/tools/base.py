"""
Tool capability interface.

Every tool is {describe() -> ToolDescriptor, invoke(arguments) -> text}.
A Toolkit groups several tools around one external service (one geocoder
client, one weather client) and hands them out via tools().
"""

from __future__ import annotations

import abc
import asyncio
import inspect
from typing import Any, Callable

from toolchat.models import ToolDescriptor


class Tool(abc.ABC):
    """A single named, schema-described callable."""

    @abc.abstractmethod
    def describe(self) -> ToolDescriptor:
        ...

    @abc.abstractmethod
    async def invoke(self, arguments: dict) -> str:
        """Run the tool. Domain failures come back as text, not exceptions."""
        ...

    @property
    def name(self) -> str:
        return self.describe().name

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class FunctionTool(Tool):
    """Adapts a plain function (sync or async) taking keyword arguments."""

    def __init__(self, descriptor: ToolDescriptor, func: Callable[..., Any]):
        self._descriptor = descriptor
        self._func = func

    def describe(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, arguments: dict) -> str:
        if inspect.iscoroutinefunction(self._func):
            result = await self._func(**arguments)
        else:
            result = await asyncio.to_thread(self._func, **arguments)
        return str(result)


class Toolkit(abc.ABC):
    """A family of tools sharing configuration and clients."""

    @abc.abstractmethod
    def tools(self) -> list[Tool]:
        ...

    def names(self) -> list[str]:
        return [t.name for t in self.tools()]
