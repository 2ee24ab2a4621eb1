"""
Data models for conversations, tools and turns.
These define the shape of data flowing between the orchestrator,
the tool registry and the completion backends.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

ROLES = ("system", "user", "assistant", "tool")
PARAM_TYPES = ("string", "integer", "number", "boolean")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the completion backend."""
    tool_name: str
    arguments: dict = field(default_factory=dict)
    call_id: str = field(default_factory=lambda: f"call_{uuid4().hex[:24]}")
    raw_arguments: str = ""
    parse_error: str = ""    # Set when the backend sent unparseable arguments

    @classmethod
    def from_openai_format(cls, raw: dict) -> ToolCallRequest:
        """Build from one entry of an OpenAI `tool_calls` array."""
        fn = raw.get("function") or {}
        raw_args = fn.get("arguments")
        arguments: dict = {}
        parse_error = ""

        if isinstance(raw_args, dict):
            arguments = raw_args
            raw_args = json.dumps(raw_args)
        elif raw_args:
            try:
                parsed = json.loads(raw_args)
                if isinstance(parsed, dict):
                    arguments = parsed
                else:
                    parse_error = "arguments must be a JSON object"
            except json.JSONDecodeError as e:
                parse_error = f"invalid JSON arguments: {e}"
        else:
            raw_args = "{}"

        return cls(
            tool_name=fn.get("name", ""),
            arguments=arguments,
            call_id=raw.get("id") or f"call_{uuid4().hex[:24]}",
            raw_arguments=raw_args,
            parse_error=parse_error,
        )

    def to_openai_format(self) -> dict:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {
                "name": self.tool_name,
                "arguments": self.raw_arguments or json.dumps(self.arguments),
            },
        }


@dataclass(frozen=True)
class ToolCallResult:
    """Text output answering one ToolCallRequest."""
    call_id: str
    output: str


@dataclass(frozen=True)
class Message:
    """A single message in a conversation. Immutable once created."""
    role: str                # "system", "user", "assistant", "tool"
    content: str = ""
    tool_call_id: str = ""   # Only for role == "tool"
    tool_calls: tuple[ToolCallRequest, ...] = ()   # Only for role == "assistant"
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid message role: {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages must carry a tool_call_id")

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls=()) -> Message:
        return cls(role="assistant", content=content or "", tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, call_id: str, content: str) -> Message:
        return cls(role="tool", content=content, tool_call_id=call_id)

    def to_openai_format(self) -> dict:
        """Export in OpenAI messages array format."""
        out: dict = {"role": self.role, "content": self.content}
        if self.role == "tool":
            out["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            out["tool_calls"] = [c.to_openai_format() for c in self.tool_calls]
            # OpenAI accepts null content on tool-calling assistant messages
            if not self.content:
                out["content"] = None
        return out


# ---------------------------------------------------------------------------
# Tool descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str = "string"     # "string", "integer", "number", "boolean"
    description: str = ""
    required: bool = True

    def __post_init__(self):
        if self.type not in PARAM_TYPES:
            raise ValueError(f"Unsupported parameter type for '{self.name}': {self.type!r}")


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and ordered parameters advertised to the backend."""
    name: str
    description: str = ""
    parameters: tuple[ToolParameter, ...] = ()

    def parameter(self, name: str) -> ToolParameter | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    def to_openai_format(self) -> dict:
        """Render as an OpenAI `tools` entry (function declaration)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        p.name: {"type": p.type, "description": p.description}
                        for p in self.parameters
                    },
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------

class ReturnMode(str, enum.Enum):
    LAST_MESSAGE_ONLY = "lastMessageOnly"
    FULL_HISTORY = "fullHistory"


@dataclass
class TurnOptions:
    """Per-turn knobs. Timeouts are in seconds; None disables them."""
    max_tool_rounds: int = 1
    return_mode: ReturnMode = ReturnMode.LAST_MESSAGE_ONLY
    per_tool_timeout: float | None = None
    backend_timeout: float | None = None
    turn_timeout: float | None = None
    allowed_tools: frozenset[str] | str = "all"
    resolve_tools: bool = True
    parallel_tool_calls: bool = False
    strict_tools: bool = False

    def __post_init__(self):
        if not isinstance(self.max_tool_rounds, int) or self.max_tool_rounds < 1:
            raise ValueError(f"max_tool_rounds must be >= 1, got {self.max_tool_rounds!r}")
        self.return_mode = ReturnMode(self.return_mode)
        for name in ("per_tool_timeout", "backend_timeout", "turn_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive, got {value!r}")
        if isinstance(self.allowed_tools, str):
            if self.allowed_tools != "all":
                raise ValueError("allowed_tools must be a set of names or 'all'")
        else:
            self.allowed_tools = frozenset(self.allowed_tools)

    @property
    def allowed(self) -> frozenset[str] | None:
        """Allow-set, or None when every registered tool may be called."""
        return None if self.allowed_tools == "all" else self.allowed_tools

    @classmethod
    def from_config(cls, cfg: dict, **overrides) -> TurnOptions:
        """Build from the `orchestrator:` section of config.yaml."""
        orch_cfg = dict(cfg.get("orchestrator", {}))
        kwargs = {
            "max_tool_rounds": orch_cfg.get("max_tool_rounds", 1),
            "return_mode": orch_cfg.get("return_mode", ReturnMode.LAST_MESSAGE_ONLY.value),
            "per_tool_timeout": orch_cfg.get("per_tool_timeout"),
            "backend_timeout": orch_cfg.get("backend_timeout"),
            "turn_timeout": orch_cfg.get("turn_timeout"),
            "parallel_tool_calls": orch_cfg.get("parallel_tool_calls", False),
            "strict_tools": orch_cfg.get("strict_tools", False),
        }
        allowed = orch_cfg.get("allowed_tools")
        if allowed:
            kwargs["allowed_tools"] = allowed if allowed == "all" else frozenset(allowed)
        kwargs.update(overrides)
        return cls(**kwargs)


@dataclass
class TurnResult:
    """What a caller gets back from ConversationOrchestrator.turn()."""
    final_text: str
    history: list[Message] | None = None    # Only in FULL_HISTORY mode
    rounds: int = 0                          # Backend round-trips made
    pending_tool_calls: list[ToolCallRequest] = field(default_factory=list)
