"""Agent-tool integrations: where each tool looks for skills, MCP servers and hooks.

Each agent definition carries serializers from the universal declarations in
agents.toml to the tool's native JSON shape. The writers here only decide
merge-vs-fresh policy and deduplicate agents that share a physical file.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skillpin.models import HookDeclaration, McpDeclaration

logger = logging.getLogger("skillpin.agents")


@dataclass(frozen=True)
class ConfigFileSpec:
    file_path: str  # relative to the project root
    root_key: str
    # Shared files hold other content and are read-merge-written; dedicated
    # files are owned by skillpin and overwritten.
    shared: bool


@dataclass(frozen=True)
class AgentDefinition:
    id: str
    display_name: str
    skills_parent_dir: str  # <dir>/skills becomes a symlink into the store
    mcp: ConfigFileSpec
    serialize_server: Callable[[McpDeclaration], tuple[str, dict[str, Any]]]
    hooks: ConfigFileSpec | None = None
    serialize_hooks: Callable[[list[HookDeclaration]], Any] | None = None


# ─── Serializers ─────────────────────────────────────────────────────────


def _env_record(env: list[str], template: str) -> dict[str, str]:
    return {key: template.format(key=key) for key in env}


def _http_server(s: McpDeclaration, type_: str | None = None) -> tuple[str, dict[str, Any]]:
    config: dict[str, Any] = {"url": s.url}
    if type_:
        config = {"type": type_, **config}
    if s.headers:
        config["headers"] = s.headers
    return s.name, config


def _serialize_claude(s: McpDeclaration) -> tuple[str, dict[str, Any]]:
    if s.url:
        return _http_server(s)
    config: dict[str, Any] = {"command": s.command, "args": s.args}
    if s.env:
        config["env"] = _env_record(s.env, "${{{key}}}")
    return s.name, config


def _serialize_vscode(s: McpDeclaration) -> tuple[str, dict[str, Any]]:
    if s.url:
        return _http_server(s, "sse")
    config: dict[str, Any] = {"type": "stdio", "command": s.command, "args": s.args}
    if s.env:
        config["env"] = _env_record(s.env, "${{input:{key}}}")
    return s.name, config


def _serialize_opencode(s: McpDeclaration) -> tuple[str, dict[str, Any]]:
    if s.url:
        return _http_server(s, "remote")
    config: dict[str, Any] = {"type": "local", "command": [s.command, *s.args]}
    if s.env:
        config["environment"] = _env_record(s.env, "${{{key}}}")
    return s.name, config


def _serialize_claude_hooks(hooks: list[HookDeclaration]) -> dict[str, Any]:
    """{event: [{matcher?, hooks: [{type: "command", command}]}]}"""
    out: dict[str, list[dict[str, Any]]] = {}
    for h in hooks:
        entry: dict[str, Any] = {"hooks": [{"type": "command", "command": h.command}]}
        if h.matcher:
            entry = {"matcher": h.matcher, **entry}
        out.setdefault(h.event, []).append(entry)
    return out


_CLAUDE_HOOKS = ConfigFileSpec(".claude/settings.json", "hooks", shared=True)

AGENT_REGISTRY: dict[str, AgentDefinition] = {
    "claude": AgentDefinition(
        id="claude",
        display_name="Claude Code",
        skills_parent_dir=".claude",
        mcp=ConfigFileSpec(".mcp.json", "mcpServers", shared=False),
        serialize_server=_serialize_claude,
        hooks=_CLAUDE_HOOKS,
        serialize_hooks=_serialize_claude_hooks,
    ),
    "cursor": AgentDefinition(
        id="cursor",
        display_name="Cursor",
        skills_parent_dir=".cursor",
        mcp=ConfigFileSpec(".cursor/mcp.json", "mcpServers", shared=False),
        serialize_server=_serialize_claude,
        hooks=_CLAUDE_HOOKS,
        serialize_hooks=_serialize_claude_hooks,
    ),
    "vscode": AgentDefinition(
        id="vscode",
        display_name="VS Code Copilot",
        skills_parent_dir=".vscode",
        mcp=ConfigFileSpec(".vscode/mcp.json", "servers", shared=False),
        serialize_server=_serialize_vscode,
        hooks=_CLAUDE_HOOKS,
        serialize_hooks=_serialize_claude_hooks,
    ),
    "opencode": AgentDefinition(
        id="opencode",
        display_name="OpenCode",
        skills_parent_dir=".claude",
        mcp=ConfigFileSpec("opencode.json", "mcp", shared=True),
        serialize_server=_serialize_opencode,
    ),
}


def get_agent(agent_id: str) -> AgentDefinition | None:
    return AGENT_REGISTRY.get(agent_id)


def all_agent_ids() -> list[str]:
    return list(AGENT_REGISTRY)


# ─── Writers ─────────────────────────────────────────────────────────────


def _read_json(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def _write_json(path: Path, doc: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(doc, indent=2) + "\n", encoding="utf-8")


def _write_config(root: Path, spec: ConfigFileSpec, value: Any, merge_entries: bool = True) -> None:
    """Write value under spec.root_key.

    Shared files keep their other keys. With merge_entries, existing entries
    under root_key survive too (user-added MCP servers); otherwise root_key is
    replaced wholesale.
    """
    path = root / spec.file_path
    if spec.shared and path.exists():
        doc = _read_json(path)
        prev = doc.get(spec.root_key)
        if merge_entries and isinstance(prev, dict) and isinstance(value, dict):
            value = {**prev, **value}
        doc[spec.root_key] = value
    else:
        doc = {spec.root_key: value}
    _write_json(path, doc)
    logger.info("Wrote %s", spec.file_path)


def write_mcp_configs(root: Path, agent_ids: list[str], servers: list[McpDeclaration]) -> None:
    if not servers:
        return
    seen: set[str] = set()
    for agent_id in agent_ids:
        agent = get_agent(agent_id)
        if agent is None or agent.mcp.file_path in seen:
            continue
        seen.add(agent.mcp.file_path)
        serialized = dict(agent.serialize_server(s) for s in servers)
        _write_config(root, agent.mcp, serialized)


def write_hook_configs(root: Path, agent_ids: list[str], hooks: list[HookDeclaration]) -> list[str]:
    """Write hook files. Returns warnings for agents without hook support."""
    warnings: list[str] = []
    if not hooks:
        return warnings
    seen: set[str] = set()
    for agent_id in agent_ids:
        agent = get_agent(agent_id)
        if agent is None:
            continue
        if agent.hooks is None or agent.serialize_hooks is None:
            warnings.append(f'Agent "{agent.display_name}" does not support hooks')
            continue
        if agent.hooks.file_path in seen:
            continue
        seen.add(agent.hooks.file_path)
        # Events dropped from agents.toml must not linger
        _write_config(root, agent.hooks, agent.serialize_hooks(hooks), merge_entries=False)
    return warnings


def verify_mcp_configs(
    root: Path, agent_ids: list[str], servers: list[McpDeclaration]
) -> list[tuple[str, str]]:
    """Return (agent_id, issue) pairs for missing files or servers."""
    issues: list[tuple[str, str]] = []
    if not servers:
        return issues
    seen: set[str] = set()
    for agent_id in agent_ids:
        agent = get_agent(agent_id)
        if agent is None or agent.mcp.file_path in seen:
            continue
        seen.add(agent.mcp.file_path)
        path = root / agent.mcp.file_path
        if not path.exists():
            issues.append((agent_id, f"MCP config missing: {agent.mcp.file_path}"))
            continue
        try:
            existing = _read_json(path).get(agent.mcp.root_key) or {}
        except (OSError, ValueError):
            issues.append((agent_id, f"Failed to read MCP config: {agent.mcp.file_path}"))
            continue
        for s in servers:
            if s.name not in existing:
                issues.append((agent_id, f'MCP server "{s.name}" missing from {agent.mcp.file_path}'))
    return issues


def verify_hook_configs(
    root: Path, agent_ids: list[str], hooks: list[HookDeclaration]
) -> list[tuple[str, str]]:
    issues: list[tuple[str, str]] = []
    if not hooks:
        return issues
    seen: set[str] = set()
    for agent_id in agent_ids:
        agent = get_agent(agent_id)
        if agent is None or agent.hooks is None or agent.hooks.file_path in seen:
            continue
        seen.add(agent.hooks.file_path)
        path = root / agent.hooks.file_path
        if not path.exists():
            issues.append((agent_id, f"Hook config missing: {agent.hooks.file_path}"))
            continue
        try:
            section = _read_json(path).get(agent.hooks.root_key)
        except (OSError, ValueError):
            issues.append((agent_id, f"Failed to read hook config: {agent.hooks.file_path}"))
            continue
        if not isinstance(section, dict):
            issues.append(
                (agent_id, f'Hook config missing "{agent.hooks.root_key}" key in {agent.hooks.file_path}')
            )
    return issues
