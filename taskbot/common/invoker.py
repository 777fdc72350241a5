"""
Model Invoker

Runs a single prompt against a language-model backend and returns the raw
text or a typed failure. Two backends share one interface:

- CLIInvoker: an external CLI (``claude -p <prompt>`` by default) in a
  subprocess, killed when the timeout elapses
- APIInvoker: one Anthropic Messages API call with the SDK timeout

No retries happen here. Callers decide what the user sees.
"""

import os
import signal
import subprocess
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .llm_client import LLMClient

logger = logging.getLogger("taskbot.common.invoker")

# Keeps CLI output plain and stops tools from waiting on a terminal
SUBPROCESS_ENV = {
    "NO_COLOR": "1",
    "FORCE_COLOR": "0",
    "TERM": "dumb",
    "CI": "1",
}

# Grace period for reaping a killed subprocess
REAP_TIMEOUT_S = 2.0


class FailureKind(str, Enum):
    """Why an invocation produced no text"""
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    LAUNCH_ERROR = "launch_error"


@dataclass
class InvocationFailure:
    """Typed failure of a single invocation"""
    kind: FailureKind
    detail: str = ""
    exit_code: Optional[int] = None
    terminated: bool = False  # subordinate was stopped after a timeout

    def user_message(self) -> str:
        """Plain-language explanation for a chat reply"""
        if self.kind == FailureKind.TIMEOUT:
            return "Sorry, the model took too long to answer and was stopped. Please try again."
        if self.kind == FailureKind.EMPTY_RESPONSE:
            return "Sorry, the model returned an empty answer. Please try again."
        return "Sorry, I couldn't reach the model right now."


@dataclass
class InvocationResult:
    """Text on success, failure otherwise"""
    text: str = ""
    failure: Optional[InvocationFailure] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.failure is None


class InvocationError(Exception):
    """Raised by callers that need to propagate an invocation failure"""

    def __init__(self, failure: InvocationFailure):
        super().__init__(f"{failure.kind.value}: {failure.detail}")
        self.failure = failure


def _check_args(prompt: str, timeout_ms: int) -> None:
    if not prompt or not prompt.strip():
        raise ValueError("prompt must be non-empty")
    if timeout_ms <= 0:
        raise ValueError("timeout_ms must be positive")


def _summarize(text: str, limit: int = 220) -> str:
    value = " ".join((text or "").split())
    if len(value) <= limit:
        return value
    return f"{value[:limit - 3]}..."


class ModelInvoker(ABC):
    """Runs one prompt against a language-model backend."""

    @abstractmethod
    def invoke(self, prompt: str, timeout_ms: int) -> InvocationResult:
        """
        Run the prompt once.

        Args:
            prompt: Non-empty prompt text
            timeout_ms: Positive timeout in milliseconds

        Returns:
            InvocationResult with trimmed text or a typed failure
        """


class CLIInvoker(ModelInvoker):
    """
    Invoker backed by a CLI subprocess.

    The command line is ``[executable, *args, prompt]``. Each call owns its
    process and its deadline; nothing is shared between concurrent calls.
    """

    def __init__(
        self,
        executable: str = "claude",
        args: Sequence[str] = ("-p",),
        extra_env: Optional[Dict[str, str]] = None,
    ):
        self.executable = executable
        self.args = list(args)
        self._extra_env = dict(extra_env or {})

    def build_command(self, prompt: str) -> List[str]:
        return [self.executable, *self.args, prompt]

    def build_env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(SUBPROCESS_ENV)
        env.update(self._extra_env)
        return env

    def invoke(self, prompt: str, timeout_ms: int) -> InvocationResult:
        _check_args(prompt, timeout_ms)
        started = time.monotonic()

        try:
            proc = subprocess.Popen(
                self.build_command(prompt),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                env=self.build_env(),
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.warning("Failed to launch %s: %s", self.executable, e)
            return InvocationResult(
                failure=InvocationFailure(kind=FailureKind.LAUNCH_ERROR, detail=str(e)),
            )

        try:
            out, err = proc.communicate(timeout=timeout_ms / 1000.0)
        except subprocess.TimeoutExpired:
            terminated = self._terminate(proc)
            elapsed = int((time.monotonic() - started) * 1000)
            logger.warning(
                "Model CLI timed out after %dms (pid=%s, terminated=%s)",
                timeout_ms, proc.pid, terminated,
            )
            return InvocationResult(
                failure=InvocationFailure(
                    kind=FailureKind.TIMEOUT,
                    detail=f"Timeout after {timeout_ms}ms",
                    exit_code=proc.returncode,
                    terminated=terminated,
                ),
                elapsed_ms=elapsed,
            )

        elapsed = int((time.monotonic() - started) * 1000)
        text = (out or "").strip()
        if not text:
            logger.warning(
                "Model CLI returned no output (exit=%s): %s",
                proc.returncode, _summarize(err),
            )
            return InvocationResult(
                failure=InvocationFailure(
                    kind=FailureKind.EMPTY_RESPONSE,
                    detail=_summarize(err) or f"exit={proc.returncode}",
                    exit_code=proc.returncode,
                ),
                elapsed_ms=elapsed,
            )

        if proc.returncode != 0:
            logger.warning("Model CLI exited with %s but produced output", proc.returncode)
        logger.debug("Model CLI answered in %dms (%d chars)", elapsed, len(text))
        return InvocationResult(text=text, elapsed_ms=elapsed)

    def _terminate(self, proc: subprocess.Popen) -> bool:
        """Kill the process group (SIGKILL) and reap it. True once it is gone."""
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, signal.SIGKILL)
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.warning("Failed to kill pid %s: %s", proc.pid, e)
            proc.kill()

        try:
            proc.communicate(timeout=REAP_TIMEOUT_S)
        except subprocess.TimeoutExpired:
            logger.error("Process %s did not exit after SIGKILL", proc.pid)
        return proc.returncode is not None


class APIInvoker(ModelInvoker):
    """Invoker backed by the Anthropic Messages API."""

    def __init__(self, llm_client: LLMClient, max_tokens: int = 1024):
        self._llm = llm_client
        self._max_tokens = max_tokens

    @property
    def is_available(self) -> bool:
        return self._llm.is_available

    def invoke(self, prompt: str, timeout_ms: int) -> InvocationResult:
        _check_args(prompt, timeout_ms)

        if not self._llm.is_available:
            return InvocationResult(
                failure=InvocationFailure(
                    kind=FailureKind.LAUNCH_ERROR,
                    detail="LLM client is not available",
                ),
            )

        started = time.monotonic()
        try:
            text = self._llm.generate(
                prompt,
                max_tokens=self._max_tokens,
                timeout=timeout_ms / 1000.0,
            )
        except Exception as e:
            elapsed = int((time.monotonic() - started) * 1000)
            if _is_timeout_error(e):
                logger.warning("Model API timed out after %dms", timeout_ms)
                return InvocationResult(
                    failure=InvocationFailure(
                        kind=FailureKind.TIMEOUT,
                        detail=f"Timeout after {timeout_ms}ms",
                        terminated=True,
                    ),
                    elapsed_ms=elapsed,
                )
            logger.warning("Model API call failed: %s", e)
            return InvocationResult(
                failure=InvocationFailure(kind=FailureKind.LAUNCH_ERROR, detail=str(e)),
                elapsed_ms=elapsed,
            )

        elapsed = int((time.monotonic() - started) * 1000)
        if not text:
            return InvocationResult(
                failure=InvocationFailure(
                    kind=FailureKind.EMPTY_RESPONSE,
                    detail="API returned no text",
                ),
                elapsed_ms=elapsed,
            )
        return InvocationResult(text=text, elapsed_ms=elapsed)


def _is_timeout_error(error: Exception) -> bool:
    if isinstance(error, TimeoutError):
        return True
    try:
        import anthropic
    except ImportError:
        return False
    return isinstance(error, anthropic.APITimeoutError)


def build_invoker(model_config) -> ModelInvoker:
    """Create the invoker selected by ``model_config.backend``"""
    backend = (model_config.backend or "cli").lower()
    if backend == "api":
        client = LLMClient(
            model=model_config.anthropic_model,
            anthropic_api_key=model_config.anthropic_api_key or None,
        )
        return APIInvoker(client)
    if backend != "cli":
        raise ValueError(f"Unsupported model backend: {model_config.backend}")
    return CLIInvoker(executable=model_config.executable, args=model_config.args)
