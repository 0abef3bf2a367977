import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tool_broker.api.config import BrokerConfig

PYTHON = sys.executable

ECHO_ARGS_SCRIPT = "import sys; print(' '.join(sys.argv[1:]))"
ECHO_STDIN_SCRIPT = "import sys; sys.stdout.write(sys.stdin.read())"


@pytest.fixture(autouse=True)
def clean_broker_env(monkeypatch):
    """Keep BROKER_* variables from the developer's shell out of tests."""
    import os

    for key in list(os.environ):
        if key.upper().startswith("BROKER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def project_root(tmp_path):
    """An allow-listed root directory that exists."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def default_root(tmp_path):
    root = tmp_path / "default"
    root.mkdir()
    return root


@pytest.fixture
def tool_table():
    """Tools that only depend on the running Python interpreter."""
    return {
        "listRoots": {"path": "/roots", "description": "List roots"},
        "echoArgs": {
            "path": "/echo",
            "description": "Echo arguments",
            "command": PYTHON,
            "args": ["-c", ECHO_ARGS_SCRIPT],
            "params": {
                "root": {"type": "string", "default": None},
                "keywords": {"type": "array", "items": {"type": "string"}, "example": ["a"]},
            },
        },
        "echoStdin": {
            "path": "/cat",
            "description": "Echo stdin",
            "command": PYTHON,
            "args": ["-c", ECHO_STDIN_SCRIPT],
            "mode": "stdin",
            "params": {"root": {"type": "string", "default": None}, "input": {"type": "string"}},
        },
        "cwd": {
            "path": "/cwd",
            "description": "Print working directory",
            "command": PYTHON,
            "args": ["-c", "import os; print(os.getcwd())"],
            "params": {"root": {"type": "string", "default": None}},
        },
        "missing": {
            "path": "/missing",
            "description": "Command that does not exist",
            "command": "tool-broker-no-such-command",
            "params": {"root": {"type": "string", "default": None}},
        },
    }


@pytest.fixture
def broker_config(project_root, default_root, tool_table):
    """Configuration with one allow-listed root and the test tool table."""
    return BrokerConfig(
        default_root=str(default_root),
        roots=[
            {
                "path": str(project_root),
                "name": "project",
                "description": "Test project",
                "keywords": ["test"],
            }
        ],
        tools=tool_table,
        output_character_limit=1000,
        output_drop_line_limit=100,
    )
