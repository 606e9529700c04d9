"""Text-generation backends that power agent ticks.

Every backend implements the `Generator` protocol. Failures surface as
`GenerateError` and timeouts as `GenerateTimeout`, which the dispatcher turns
into a failed run request.
"""

from __future__ import annotations

import json
import shlex
import socket
import subprocess
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from loguru import logger

from ..errors import GenerateError, GenerateTimeout, ValidationError

_POLL_SECONDS = 0.1


class Generator(Protocol):
    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        ...


@dataclass
class CommandGenerator:
    """Run a CLI (e.g. `claude -p`) with the prompt on stdin and return its stdout."""

    command: str = "claude -p"

    def _argv(self) -> list[str]:
        parts = shlex.split(self.command or "")
        if not parts:
            raise ValidationError("Generator command cannot be empty")
        return parts

    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        argv = self._argv()
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise GenerateError(f"Unable to start {argv[0]}: {exc}") from exc

        result: dict[str, Any] = {}

        def _communicate() -> None:
            result["out"], result["err"] = proc.communicate(prompt)

        reader = threading.Thread(target=_communicate, name="generate-io", daemon=True)
        reader.start()
        deadline = time.monotonic() + timeout
        while reader.is_alive():
            if cancel is not None and cancel.is_set():
                proc.kill()
                reader.join()
                raise GenerateError(f"{argv[0]} cancelled")
            if time.monotonic() >= deadline:
                proc.kill()
                reader.join()
                raise GenerateTimeout(f"{argv[0]} timed out after {timeout:g}s")
            reader.join(_POLL_SECONDS)

        stdout = str(result.get("out") or "")
        stderr = str(result.get("err") or "")
        if proc.returncode != 0:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit code {proc.returncode}"
            raise GenerateError(f"{argv[0]} failed: {detail}")
        return stdout


@dataclass
class OllamaGenerator:
    """Call an Ollama server's `/api/generate` endpoint and join the streamed chunks."""

    endpoint: str = "http://localhost:11434"
    model: str = "llama3"
    temperature: Optional[float] = None
    num_ctx: Optional[int] = None

    def _payload(self, prompt: str) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": True}
        options: dict[str, Any] = {}
        if self.temperature is not None:
            options["temperature"] = float(self.temperature)
        if self.num_ctx is not None:
            options["num_ctx"] = int(self.num_ctx)
        if options:
            payload["options"] = options
        return payload

    def generate(self, prompt: str, *, timeout: float, cancel: Optional[threading.Event] = None) -> str:
        request = urllib.request.Request(
            self.endpoint.rstrip("/") + "/api/generate",
            data=json.dumps(self._payload(prompt)).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        start = time.monotonic()
        parts: list[str] = []
        try:
            # Short socket timeout so the overall deadline is checked between chunks.
            with urllib.request.urlopen(request, timeout=min(15.0, max(timeout, 0.1))) as resp:
                while True:
                    if time.monotonic() - start > timeout:
                        raise GenerateTimeout(f"Ollama timed out after {timeout:g}s")
                    if cancel is not None and cancel.is_set():
                        raise GenerateError("Ollama request cancelled")
                    try:
                        line = resp.readline()
                    except socket.timeout:
                        continue
                    if not line:
                        break
                    try:
                        obj = json.loads(line.decode("utf-8", errors="replace"))
                    except json.JSONDecodeError:
                        logger.debug("Skipping malformed Ollama chunk: {!r}", line[:200])
                        continue
                    chunk = str(obj.get("response") or "")
                    if chunk:
                        parts.append(chunk)
                    if obj.get("error"):
                        raise GenerateError(f"Ollama error: {obj['error']}")
                    if bool(obj.get("done")):
                        break
        except urllib.error.HTTPError as exc:
            raise GenerateError(f"Ollama HTTP error: {exc.code} {exc.reason}") from exc
        except urllib.error.URLError as exc:
            raise GenerateError(f"Ollama URL error: {exc.reason}") from exc
        return "".join(parts)


def build_generator(config: dict[str, Any]) -> Generator:
    """Build a generator from the `generator` config block."""
    kind = str(config.get("type") or "command").strip().lower()
    if kind == "command":
        return CommandGenerator(command=str(config.get("command") or "claude -p"))
    if kind == "ollama":
        return OllamaGenerator(
            endpoint=str(config.get("endpoint") or "http://localhost:11434"),
            model=str(config.get("model") or "llama3"),
            temperature=config.get("temperature"),
            num_ctx=config.get("num_ctx"),
        )
    raise ValidationError(f"Unknown generator type: {kind}")
