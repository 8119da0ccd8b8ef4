"""Minimal GitHub Actions workflow-command support.

Mirrors the parts of ``@actions/core`` a sync step needs: reading an action
input from the environment, plain log lines and marking the step failed.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from typing import TextIO


def input_env_name(name: str) -> str:
    return "INPUT_" + name.replace(" ", "_").upper()


def get_input(name: str, env: Mapping[str, str] | None = None) -> str:
    env = os.environ if env is None else env
    return env.get(input_env_name(name), "").strip()


def running_in_actions(env: Mapping[str, str] | None = None) -> bool:
    env = os.environ if env is None else env
    return env.get("GITHUB_ACTIONS", "").lower() == "true"


def escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def info(message: str, stream: TextIO | None = None) -> None:
    print(message, file=stream or sys.stdout)


def set_failed(message: str, stream: TextIO | None = None) -> None:
    """Annotate the step as failed; the caller still sets the exit code."""
    print(f"::error::{escape_data(message)}", file=stream or sys.stdout)
