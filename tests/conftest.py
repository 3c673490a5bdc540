"""Shared fixtures for proctl tests."""

import shlex
import sys
import uuid

import pytest

from proctl.errors import ProcessControlError
from proctl.registry import ProcessRegistry


def sleeper_command(seconds: float = 60.0, tag: str | None = None) -> str:
    """A command line for a Python child that sleeps; the tag makes its name unique."""
    tag = tag or uuid.uuid4().hex[:8]
    script = shlex.quote(f"import time; time.sleep({seconds})")
    return f"{shlex.quote(sys.executable)} -c {script} {tag}"


@pytest.fixture
def registry():
    """Registry tracking only its own children, cleaned up after the test."""
    reg = ProcessRegistry(include_system=False, stop_timeout=2.0)
    yield reg
    for proc in list(reg.list_processes()):
        try:
            reg.stop(proc.id)
        except ProcessControlError:
            pass
