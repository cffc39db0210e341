"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the ToolRegistry: the name-keyed tool catalog an agent
exposes to the model. The registry is read-only while runs are in flight.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from ..llms.types import ToolDefinition
from .base import Tool
from .errors import ToolAlreadyRegisteredError, ToolNotFoundError, ToolValidationError


class ToolRegistry:
    """Stores tools by name and exports their model-facing definitions."""

    def __init__(self, tools: Iterable[Tool] = (), *, reserved_names: Iterable[str] = ()) -> None:
        self._tools: Dict[str, Tool] = {}
        self._reserved = frozenset(reserved_names)
        self.register_many(tools)

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        name = tool.name
        if name in self._reserved:
            raise ToolValidationError(f"Tool name is reserved: {name}")
        if not overwrite and name in self._tools:
            raise ToolAlreadyRegisteredError(f"Tool already registered: {name}")
        self._tools[name] = tool

    def register_many(self, tools: Iterable[Tool], *, overwrite: bool = False) -> None:
        for t in tools:
            self.register(t, overwrite=overwrite)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError as e:
            raise ToolNotFoundError(name) from e

    def find(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list(self) -> List[Tool]:
        return list(self._tools.values())

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def has(self, name: str) -> bool:
        return name in self._tools

    def definitions(self) -> List[ToolDefinition]:
        return [t.definition for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
