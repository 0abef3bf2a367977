"""Tests for request parsing and tool dispatch."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tool_broker.api.dispatch import (
    ArgumentMode,
    InvalidRequestError,
    StdinMode,
    ToolDispatcher,
    build_invocation,
    parse_request,
)
from tool_broker.api.execution import ProcessRunner
from tool_broker.api.models import ExecutionResult, ToolRequest
from tool_broker.api.registry import ToolRegistry
from tool_broker.api.roots import RootResolver


@pytest.fixture
def registry(broker_config):
    return ToolRegistry(broker_config.tools)


@pytest.fixture
def resolver(broker_config):
    return RootResolver(broker_config.default_root, broker_config.roots)


@pytest.fixture
def mock_runner():
    runner = MagicMock(spec=ProcessRunner)
    runner.run = AsyncMock(return_value=ExecutionResult(code=0, out="ok\n", err=""))
    return runner


@pytest.fixture
def dispatcher(registry, resolver, broker_config):
    runner = ProcessRunner(
        broker_config.output_character_limit, broker_config.output_drop_line_limit
    )
    return ToolDispatcher(registry, resolver, runner)


def test_parse_request_empty_body():
    """Test: an empty body means no parameters."""
    assert parse_request(b"") == ToolRequest()
    assert parse_request(b"  \n") == ToolRequest()


def test_parse_request_fields():
    request = parse_request(b'{"root": "/r", "keywords": ["-n", "x"], "input": "hi", "extra": 1}')

    assert request.root == "/r"
    assert request.keywords == ["-n", "x"]
    assert request.input == "hi"


@pytest.mark.parametrize("raw", [b"{not json", b"[1, 2]", b'"text"', b"\xff\xfe"])
def test_parse_request_rejects_malformed_json(raw):
    with pytest.raises(InvalidRequestError, match="invalid JSON body"):
        parse_request(raw)


def test_parse_request_rejects_wrong_types():
    with pytest.raises(InvalidRequestError, match="invalid request body"):
        parse_request(b'{"keywords": "not-a-list"}')


def test_parse_request_null_fields_are_absent():
    """Test: explicit nulls behave like omitted fields."""
    request = parse_request(b'{"root": null, "keywords": null, "input": null}')

    assert request == ToolRequest()
    assert request.keywords == []
    assert request.input == ""


def test_build_invocation_argument_mode(registry):
    tool = registry.get_tool("echoArgs")

    invocation = build_invocation(tool, ToolRequest(keywords=["a", "b"], input="ignored"))

    assert invocation == ArgumentMode(("a", "b"))


def test_build_invocation_stdin_mode(registry):
    tool = registry.get_tool("echoStdin")

    invocation = build_invocation(tool, ToolRequest(keywords=["ignored"], input="payload"))

    assert invocation == StdinMode("payload")


def test_list_roots(dispatcher, project_root):
    response = dispatcher.list_roots()

    assert response.status_code == 200
    assert response.body == {
        "roots": [
            {
                "path": str(project_root),
                "name": "project",
                "description": "Test project",
                "keywords": ["test"],
            }
        ]
    }


@pytest.mark.asyncio
async def test_invoke_forbidden_root_does_not_spawn(registry, resolver, mock_runner):
    """Test: a root outside the allow-list is rejected before anything runs."""
    dispatcher = ToolDispatcher(registry, resolver, mock_runner)

    response = await dispatcher.invoke(
        registry.get_tool("echoArgs"), ToolRequest(root="/etc")
    )

    assert response.status_code == 403
    assert response.body == {"error": "root not allowed", "root": "/etc"}
    mock_runner.run.assert_not_called()


@pytest.mark.asyncio
async def test_invoke_missing_root_does_not_spawn(registry, resolver, mock_runner, project_root):
    dispatcher = ToolDispatcher(registry, resolver, mock_runner)
    project_root.rmdir()

    response = await dispatcher.invoke(
        registry.get_tool("echoArgs"), ToolRequest(root=str(project_root))
    )

    assert response.status_code == 404
    assert response.body["error"] == "root does not exist"
    mock_runner.run.assert_not_called()


@pytest.mark.asyncio
async def test_invoke_builds_argument_list(registry, resolver, mock_runner, project_root):
    dispatcher = ToolDispatcher(registry, resolver, mock_runner)
    tool = registry.get_tool("echoArgs")

    response = await dispatcher.invoke(
        tool, ToolRequest(root=str(project_root), keywords=["x", "y"])
    )

    assert response.status_code == 200
    assert response.body == {"code": 0, "out": "ok\n", "err": ""}
    mock_runner.run.assert_awaited_once_with(
        tool.command, [*tool.args, "x", "y"], str(project_root), None
    )


@pytest.mark.asyncio
async def test_invoke_stdin_mode_passes_payload(registry, resolver, mock_runner, default_root):
    dispatcher = ToolDispatcher(registry, resolver, mock_runner)
    tool = registry.get_tool("echoStdin")

    await dispatcher.invoke(tool, ToolRequest(input="data", keywords=["ignored"]))

    mock_runner.run.assert_awaited_once_with(
        tool.command, list(tool.args), str(default_root), "data"
    )


@pytest.mark.asyncio
async def test_invoke_forced_root(registry, resolver, mock_runner, tmp_path):
    """Test: a pinned tool root overrides the request and must exist."""
    pinned = tmp_path / "pinned"
    tool = registry.get_tool("echoArgs").model_copy(update={"root": str(pinned)})
    dispatcher = ToolDispatcher(registry, resolver, mock_runner)

    response = await dispatcher.invoke(tool, ToolRequest(root="/etc"))
    assert response.status_code == 500
    assert response.body == {"error": "configured root does not exist", "root": str(pinned)}
    mock_runner.run.assert_not_called()

    pinned.mkdir()
    response = await dispatcher.invoke(tool, ToolRequest(root="/etc"))
    assert response.status_code == 200
    assert mock_runner.run.await_args.args[2] == str(pinned)


@pytest.mark.asyncio
async def test_invoke_end_to_end(dispatcher, registry, project_root):
    response = await dispatcher.invoke(
        registry.get_tool("echoArgs"), ToolRequest(root=str(project_root), keywords=["hi"])
    )

    assert response.status_code == 200
    assert response.body == {"code": 0, "out": "hi\n", "err": ""}


@pytest.mark.asyncio
async def test_invoke_spawn_failure_is_still_200(dispatcher, registry):
    """Test: spawn failures keep the uniform result shape."""
    response = await dispatcher.invoke(registry.get_tool("missing"), ToolRequest())

    assert response.status_code == 200
    assert response.body["code"] == -1
    assert response.body["out"] == ""
    assert response.body["err"]
