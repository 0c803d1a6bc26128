"""Core agent components."""

from stateset.core.agent import (
    Agent,
    AgentConfig,
    ChatCallbacks,
    EventAgent,
    create_agent_factory,
)
from stateset.core.prompt import build_system_prompt
from stateset.core.signals import SILENT, is_silent

__all__ = [
    "SILENT",
    "Agent",
    "AgentConfig",
    "ChatCallbacks",
    "EventAgent",
    "build_system_prompt",
    "create_agent_factory",
    "is_silent",
]
