from .coordinator import CoordinationOutcome, CoordinatorInterpreter
from .executor import AgentExecutor, ExecutionOutcome
from .generate import CommandGenerator, Generator, OllamaGenerator, build_generator
from .protocol import parse_actions, parse_status_marker

__all__ = [
    "AgentExecutor",
    "CommandGenerator",
    "CoordinationOutcome",
    "CoordinatorInterpreter",
    "ExecutionOutcome",
    "Generator",
    "OllamaGenerator",
    "build_generator",
    "parse_actions",
    "parse_status_marker",
]
