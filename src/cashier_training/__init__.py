"""Closed-loop prompt optimization for conversational cashier agents."""

from .agent import Agent, AgentClientError, AgentFactory, ChatCompletionAgent, chat_completion_agent_factory
from .config import TrainingConfiguration, TrainingRunConfig, load_config
from .events import EventBus, GenerationComplete, ProgressUpdated, ScenarioTested, TrainingComplete
from .pipelines.training import TrainingSessionController
from .prompt_store import FilePromptStore, MissingPromptError, PromptPersistenceError, PromptStore
from .session import InvalidStateError, SessionState

__all__ = [
    "Agent",
    "AgentClientError",
    "AgentFactory",
    "ChatCompletionAgent",
    "chat_completion_agent_factory",
    "TrainingConfiguration",
    "TrainingRunConfig",
    "load_config",
    "EventBus",
    "GenerationComplete",
    "ProgressUpdated",
    "ScenarioTested",
    "TrainingComplete",
    "TrainingSessionController",
    "FilePromptStore",
    "MissingPromptError",
    "PromptPersistenceError",
    "PromptStore",
    "InvalidStateError",
    "SessionState",
]
