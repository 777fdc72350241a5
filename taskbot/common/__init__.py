"""
Taskbot Common Module

Shared infrastructure: configuration, model invocation and JSON recovery.
"""

from .config import TaskbotConfig, load_config, configure_logging
from .invoker import (
    FailureKind,
    InvocationError,
    InvocationFailure,
    InvocationResult,
    ModelInvoker,
    CLIInvoker,
    APIInvoker,
    build_invoker,
)
from .llm_client import LLMClient

__all__ = [
    "TaskbotConfig",
    "load_config",
    "configure_logging",
    "FailureKind",
    "InvocationError",
    "InvocationFailure",
    "InvocationResult",
    "ModelInvoker",
    "CLIInvoker",
    "APIInvoker",
    "build_invoker",
    "LLMClient",
]
