"""Tool specifications and their chat-completions wire representation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import json
import re
from typing import Any, Literal, Optional, Union

from ..errors import AdapterError
from ..message import (
    ToolCall,
    _ensure_json_compatible,
    _freeze_json_structure,
    thaw_json_structure,
)
from ..warnings import CallWarning

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """A function tool the model may call, described by a JSON schema."""

    name: str
    parameters: Mapping[str, Any]
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(self.name):
            msg = "tool name must match ^[a-zA-Z0-9_-]{1,64}$"
            raise AdapterError(msg)

        if self.description is not None:
            stripped = self.description.strip() if isinstance(self.description, str) else ""
            if not stripped:
                msg = "tool description must be a non-empty string when provided"
                raise AdapterError(msg)
            object.__setattr__(self, "description", stripped)

        if not isinstance(self.parameters, Mapping):
            msg = "tool parameters must be a mapping"
            raise AdapterError(msg)

        schema = thaw_json_structure(self.parameters)
        try:
            _ensure_json_compatible(schema, path=f"ToolSpec('{self.name}').parameters")
        except (TypeError, ValueError) as exc:
            raise AdapterError(str(exc)) from exc

        if schema.get("type") != "object":
            msg = "tool parameters must describe a JSON object"
            raise AdapterError(msg)

        properties = schema.get("properties", {})
        if not isinstance(properties, dict):
            msg = "tool parameters 'properties' must be a mapping"
            raise AdapterError(msg)

        for item in schema.get("required") or ():
            if item not in properties:
                msg = f"required parameter '{item}' is not defined"
                raise AdapterError(msg)

        object.__setattr__(self, "parameters", _freeze_json_structure(schema))


@dataclass(frozen=True, slots=True)
class ProviderTool:
    """A tool executed by a specific vendor; the chat endpoint cannot run it."""

    id: str
    name: str
    args: Mapping[str, Any] | None = None


AnyTool = Union[ToolSpec, ProviderTool]


@dataclass(frozen=True, slots=True)
class ToolChoice:
    """How the model should pick among the available tools.

    ``type`` is ``auto``, ``none``, ``required`` or ``tool``; the latter
    forces ``tool_name``.
    """

    type: Literal["auto", "none", "required", "tool"] = "auto"
    tool_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type == "tool" and not self.tool_name:
            msg = "tool choice of type 'tool' requires a tool_name"
            raise AdapterError(msg)

    @classmethod
    def tool(cls, name: str) -> "ToolChoice":
        return cls("tool", name)


def tool_spec_to_chat(spec: ToolSpec) -> dict[str, Any]:
    function: dict[str, Any] = {
        "name": spec.name,
        "parameters": thaw_json_structure(spec.parameters),
    }
    if spec.description is not None:
        function["description"] = spec.description
    return {"type": "function", "function": function}


def prepare_tools(
    tools: Sequence[AnyTool] | None,
    tool_choice: ToolChoice | None = None,
) -> tuple[list[dict[str, Any]] | None, Any, list[CallWarning]]:
    """Convert tools and tool choice to the chat wire format.

    Returns ``(tools, tool_choice, warnings)``. An empty tool list sends
    neither field. Vendor specific tools are dropped with an ``unsupported``
    warning.
    """

    warnings: list[CallWarning] = []
    if not tools:
        return None, None, warnings

    converted: list[dict[str, Any]] = []
    seen: set[str] = set()
    for index, tool in enumerate(tools):
        if isinstance(tool, ProviderTool):
            warnings.append(CallWarning.unsupported(f"provider tool: {tool.name}"))
            continue
        if not isinstance(tool, ToolSpec):
            msg = f"tools[{index}] must be a ToolSpec or ProviderTool"
            raise AdapterError(msg)
        if tool.name in seen:
            msg = f"duplicate tool name '{tool.name}'"
            raise AdapterError(msg)
        seen.add(tool.name)
        converted.append(tool_spec_to_chat(tool))

    if tool_choice is None:
        return converted, None, warnings
    if tool_choice.type == "tool":
        choice: Any = {"type": "function", "function": {"name": tool_choice.tool_name}}
    else:
        choice = tool_choice.type
    return converted, choice, warnings


def tool_call_to_chat(tool_call: ToolCall) -> dict[str, Any]:
    """Serialize an earlier assistant tool call for a follow-up request."""

    return {
        "id": tool_call.id,
        "type": "function",
        "function": {
            "name": tool_call.name,
            "arguments": json.dumps(thaw_json_structure(tool_call.arguments), allow_nan=False),
        },
    }


__all__ = [
    "AnyTool",
    "ProviderTool",
    "ToolChoice",
    "ToolSpec",
    "prepare_tools",
    "tool_call_to_chat",
    "tool_spec_to_chat",
]
