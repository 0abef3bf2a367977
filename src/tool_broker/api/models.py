"""Pydantic request/response and configuration models for the Tool Broker API."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class RootDescriptor(BaseModel):
    """An allow-listed directory that tools may run in."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Directory path, used verbatim as working directory")
    name: str = Field(..., description="Human readable root name")
    description: str = Field("", description="What lives under this root")
    keywords: List[str] = Field(default_factory=list, description="Search keywords")


class ToolMode(str, Enum):
    """How request data reaches the tool process."""

    ARGS = "args"  # body.keywords appended to argv
    STDIN = "stdin"  # body.input piped to stdin


class ParamSpec(BaseModel):
    """Documentation schema for one tool parameter."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = Field(None, description="JSON schema type")
    items: Optional[Dict[str, Any]] = Field(None, description="Item schema for arrays")
    enum: Optional[List[Any]] = Field(None, description="Allowed values")
    default: Optional[Any] = Field(None, description="Default value")
    example: Optional[Any] = Field(None, description="Example value")
    description: Optional[str] = Field(None, description="Parameter description")

    @property
    def has_default(self) -> bool:
        """Whether a default was configured, including an explicit null."""
        return "default" in self.model_fields_set

    @property
    def has_example(self) -> bool:
        return "example" in self.model_fields_set


class ToolDefinition(BaseModel):
    """A configured command template exposed as one HTTP endpoint."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Tool name, used as the OpenAPI operationId")
    path: str = Field(..., description="HTTP path of the endpoint")
    description: str = Field("", description="Tool summary")
    command: Optional[str] = Field(None, description="Executable to spawn")
    args: List[str] = Field(default_factory=list, description="Fixed leading arguments")
    root: Optional[str] = Field(None, description="Pinned working directory")
    mode: ToolMode = Field(ToolMode.ARGS, description="Input mode")
    params: Dict[str, ParamSpec] = Field(default_factory=dict, description="Request parameters")

    @property
    def lists_roots(self) -> bool:
        """Parameterless tools answer GET with the root listing."""
        return not self.params


class ToolRequest(BaseModel):
    """JSON body accepted by tool endpoints."""

    model_config = ConfigDict(extra="ignore")

    root: Optional[str] = Field(None, description="Requested root path")
    keywords: List[str] = Field(default_factory=list, description="Extra arguments")
    input: str = Field("", description="Data piped to stdin")

    @field_validator("keywords", "input", mode="before")
    @classmethod
    def null_as_absent(cls, v: Any, info: ValidationInfo) -> Any:
        """Treat an explicit null like an omitted field."""
        if v is None:
            return [] if info.field_name == "keywords" else ""
        return v


class ExecutionResult(BaseModel):
    """Terminal value of one tool invocation."""

    model_config = ConfigDict(frozen=True)

    code: int = Field(..., description="Exit code, -1 when the process failed to start")
    out: str = Field("", description="Bounded standard output")
    err: str = Field("", description="Standard error or spawn failure message")


class RootsResponse(BaseModel):
    """Root listing returned by parameterless tools."""

    roots: List[RootDescriptor] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error body for rejected requests."""

    error: str = Field(..., description="Reason the request was rejected")
    root: Optional[str] = Field(None, description="Root the request attempted to use")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Service version")
    uptime: str = Field(..., description="Service uptime in human readable format")
    timestamp: datetime = Field(..., description="Current timestamp")
