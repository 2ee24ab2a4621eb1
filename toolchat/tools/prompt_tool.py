"""
Prompt tools — tools whose implementation is itself a completion call.

Each subdirectory of the prompts directory is one tool:

    prompts/
      food_suggestion/
        prompt.txt     # template, {{$param}} placeholders
        config.yaml    # description, parameters, execution settings

config.yaml example
-------------------
    description: Suggest a local dish for a city
    parameters:
      - name: city
        type: string
        description: The city to suggest food for
    execution:
      temperature: 0.7
      max_tokens: 400

The directory name is the tool name unless config.yaml sets `name`.
Broken directories are logged and skipped; they never stop startup.
"""

import logging
import re
from pathlib import Path

import yaml

from toolchat.models import ToolDescriptor, ToolParameter
from toolchat.tools.base import Tool

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*\$(\w+)\s*\}\}")


def render_template(template: str, arguments: dict) -> str:
    """Replace {{$name}} placeholders. Unknown names render as empty strings."""
    return _PLACEHOLDER.sub(lambda m: str(arguments.get(m.group(1), "")), template)


class PromptTool(Tool):
    """Renders a prompt template and returns the backend's answer."""

    def __init__(self, descriptor: ToolDescriptor, template: str, backend, execution: dict | None = None):
        self._descriptor = descriptor
        self.template = template
        self.backend = backend
        self.execution = execution or {}

    def describe(self) -> ToolDescriptor:
        return self._descriptor

    async def invoke(self, arguments: dict) -> str:
        prompt = render_template(self.template, arguments)
        try:
            response = await self.backend.complete(
                [{"role": "user", "content": prompt}],
                **self.execution,
            )
        except Exception as e:
            logger.error("Prompt tool '%s' failed: %s", self._descriptor.name, e)
            return f"Error: {e}"

        if not response.ok:
            logger.warning("Prompt tool '%s' backend error: %s", self._descriptor.name, response.error)
            return f"Error: {response.error}"
        return response.content

    @classmethod
    def from_directory(cls, path: str | Path, backend) -> "PromptTool":
        path = Path(path)
        template = (path / "prompt.txt").read_text(encoding="utf-8")

        cfg_file = path / "config.yaml"
        cfg = {}
        if cfg_file.exists():
            with open(cfg_file, encoding="utf-8") as f:
                cfg = yaml.safe_load(f) or {}

        params = tuple(
            ToolParameter(
                name=p["name"],
                type=p.get("type", "string"),
                description=p.get("description", ""),
                required=p.get("required", True),
            )
            for p in cfg.get("parameters", [])
        )
        if not params:
            # Same default as the template convention: a single free-text input
            params = tuple(
                ToolParameter(name, "string")
                for name in dict.fromkeys(_PLACEHOLDER.findall(template))
            )

        descriptor = ToolDescriptor(
            name=cfg.get("name", path.name),
            description=cfg.get("description", f"Run the {path.name} prompt"),
            parameters=params,
        )
        return cls(descriptor, template, backend, execution=cfg.get("execution", {}))


def load_prompt_tools(prompts_dir: str | Path, backend) -> list[PromptTool]:
    """Scan prompts_dir and build one PromptTool per subdirectory."""
    base = Path(prompts_dir).resolve()
    if not base.is_dir():
        logger.warning("Prompt directory not found: %s", base)
        return []

    tools: list[PromptTool] = []
    for sub in sorted(p for p in base.iterdir() if p.is_dir()):
        if sub.name.startswith((".", "_")):
            continue
        if not (sub / "prompt.txt").exists():
            logger.warning("Prompt tool: no prompt.txt in %s — skipped", sub.name)
            continue
        try:
            tool = PromptTool.from_directory(sub, backend)
        except Exception as e:
            logger.error("Prompt tool: failed to load %s: %s", sub.name, e)
            continue
        tools.append(tool)
        logger.info("Prompt tool loaded: '%s' ← %s", tool.name, sub.name)

    return tools
