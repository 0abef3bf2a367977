"""Maps HTTP requests onto tool invocations."""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from pydantic import ValidationError

from .execution import ProcessRunner
from .models import RootsResponse, ToolDefinition, ToolMode, ToolRequest
from .registry import ToolRegistry
from .roots import Denied, RootResolver

logger = logging.getLogger(__name__)


class InvalidRequestError(ValueError):
    """The request body could not be turned into a :class:`ToolRequest`."""


@dataclass(frozen=True)
class ArgumentMode:
    """Request keywords are appended to the tool's fixed arguments."""

    extra_args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StdinMode:
    """Request input is piped to the tool's stdin."""

    payload: str = ""


Invocation = Union[ArgumentMode, StdinMode]


@dataclass(frozen=True)
class DispatchResponse:
    """Status code and JSON body to send back."""

    status_code: int
    body: Dict[str, Any]


def parse_request(raw: bytes) -> ToolRequest:
    """Parse a tool request body; an empty body means no parameters.

    Raises:
        InvalidRequestError: If the body is not a JSON object of the expected shape
    """
    if not raw.strip():
        return ToolRequest()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequestError("invalid JSON body") from e
    if not isinstance(data, dict):
        raise InvalidRequestError("invalid JSON body")
    try:
        return ToolRequest.model_validate(data)
    except ValidationError as e:
        raise InvalidRequestError("invalid request body") from e


def build_invocation(tool: ToolDefinition, request: ToolRequest) -> Invocation:
    """Select how request data reaches the tool process."""
    if tool.mode == ToolMode.STDIN:
        return StdinMode(request.input)
    return ArgumentMode(tuple(request.keywords))


class ToolDispatcher:
    """Authorizes a root, runs the tool and shapes the response."""

    def __init__(self, registry: ToolRegistry, resolver: RootResolver, runner: ProcessRunner):
        self.registry = registry
        self.resolver = resolver
        self.runner = runner

    def list_roots(self) -> DispatchResponse:
        body = RootsResponse(roots=list(self.resolver.roots)).model_dump()
        return DispatchResponse(200, body)

    async def invoke(self, tool: ToolDefinition, request: ToolRequest) -> DispatchResponse:
        """Run ``tool`` for ``request``.

        Root denials are answered with their status code before anything is
        spawned. Every run that gets past authorization is answered with 200
        and the ``{code, out, err}`` result, including spawn failures.
        """
        if tool.root:
            outcome = self.resolver.resolve_forced(tool.root)
        else:
            outcome = self.resolver.resolve(request.root)

        if isinstance(outcome, Denied):
            logger.info(f"{tool.name}: root denied ({outcome.status_code} {outcome.reason})")
            return DispatchResponse(outcome.status_code, outcome.to_body())

        invocation = build_invocation(tool, request)
        if isinstance(invocation, StdinMode):
            args, stdin_payload = list(tool.args), invocation.payload
        else:
            args, stdin_payload = [*tool.args, *invocation.extra_args], None

        logger.info(f"Running {tool.name} in {outcome.root}")
        result = await self.runner.run(tool.command, args, outcome.root, stdin_payload)
        return DispatchResponse(200, result.model_dump())
