from __future__ import annotations

import threading

import pytest

from mission_control.errors import GenerateError, GenerateTimeout, ValidationError
from mission_control.runtime.generate import CommandGenerator, OllamaGenerator, build_generator


def test_command_generator_pipes_prompt_through_stdin() -> None:
    assert CommandGenerator("cat").generate("hello agent", timeout=5) == "hello agent"


def test_command_generator_reports_nonzero_exit() -> None:
    generator = CommandGenerator("sh -c 'echo first >&2; echo broken pipe >&2; exit 3'")

    with pytest.raises(GenerateError, match="sh failed: broken pipe"):
        generator.generate("x", timeout=5)


def test_command_generator_times_out() -> None:
    with pytest.raises(GenerateTimeout, match="timed out after 0.2s"):
        CommandGenerator("sleep 5").generate("x", timeout=0.2)


def test_command_generator_honours_cancel() -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(GenerateError, match="cancelled"):
        CommandGenerator("sleep 5").generate("x", timeout=5, cancel=cancel)


def test_command_generator_missing_binary() -> None:
    with pytest.raises(GenerateError, match="Unable to start"):
        CommandGenerator("definitely-not-a-real-binary-xyz").generate("x", timeout=1)


def test_build_generator_from_config() -> None:
    assert build_generator({"type": "command", "command": "cat"}) == CommandGenerator("cat")
    ollama = build_generator({"type": "ollama", "model": "qwen", "temperature": 0.2})
    assert isinstance(ollama, OllamaGenerator)
    assert ollama._payload("hi") == {"model": "qwen", "prompt": "hi", "stream": True, "options": {"temperature": 0.2}}
    with pytest.raises(ValidationError):
        build_generator({"type": "telepathy"})
