"""Static catalog of claude-flow agent types."""

from __future__ import annotations

AGENT_TYPES: dict[str, dict[str, str]] = {
    # Development
    "code-analyzer": {"category": "Development", "description": "Analyze code structure and quality"},
    "code-generator": {"category": "Development", "description": "Generate new code from specifications"},
    "debugger": {"category": "Development", "description": "Debug and fix code issues"},
    "refactoring-agent": {"category": "Development", "description": "Refactor code for better quality"},
    "test-writer": {"category": "Development", "description": "Write comprehensive test suites"},
    "test-runner": {"category": "Development", "description": "Execute tests and report results"},
    "documentation": {"category": "Development", "description": "Generate documentation"},
    "architect": {"category": "Development", "description": "Design system architecture"},
    # Coordination
    "queen-coordinator": {"category": "Coordination", "description": "Coordinate swarm operations"},
    "task-distributor": {"category": "Coordination", "description": "Distribute tasks to workers"},
    "dependency-manager": {"category": "Coordination", "description": "Manage task dependencies"},
    "progress-tracker": {"category": "Coordination", "description": "Track overall progress"},
    # Quality
    "security-auditor": {"category": "Quality", "description": "Audit code for security issues"},
    "performance-optimizer": {"category": "Quality", "description": "Optimize code performance"},
    "code-reviewer": {"category": "Quality", "description": "Review code for best practices"},
    "linter": {"category": "Quality", "description": "Lint code and enforce standards"},
    # GitHub
    "github-pr-creator": {"category": "GitHub", "description": "Create pull requests"},
    "github-issue-manager": {"category": "GitHub", "description": "Manage GitHub issues"},
    "github-reviewer": {"category": "GitHub", "description": "Review pull requests"},
    "github-committer": {"category": "GitHub", "description": "Commit and push changes"},
    # Intelligence & memory
    "memory-manager": {"category": "Intelligence", "description": "Manage AgentDB memory"},
    "pattern-matcher": {"category": "Intelligence", "description": "Match patterns in code"},
    "semantic-searcher": {"category": "Intelligence", "description": "Semantic code search"},
    "context-analyzer": {"category": "Intelligence", "description": "Analyze project context"},
}


def display_name(agent_type: str) -> str:
    """``"code-analyzer"`` -> ``"Code Analyzer"``."""
    return " ".join(part.capitalize() for part in agent_type.split("-"))


def agents_by_category() -> dict[str, list[dict[str, str]]]:
    """Group the catalog by category, preserving declaration order."""
    grouped: dict[str, list[dict[str, str]]] = {}
    for agent_type, info in AGENT_TYPES.items():
        grouped.setdefault(info["category"], []).append({
            "type": agent_type,
            "name": display_name(agent_type),
            "description": info["description"],
        })
    return grouped
