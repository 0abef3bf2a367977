"""
Tool Broker HTTP API Service

This package exposes a fixed table of command-line tools as HTTP endpoints,
running each invocation as a child process under an allow-listed root.

Architecture:
- server.py: FastAPI application setup and entry point
- models.py: Pydantic request/response and configuration models
- config.py: Service configuration management
- roots.py: Root allow-listing and resolution
- execution.py: Subprocess runner with bounded output capture
- registry.py: Tool table and path lookup
- dispatch.py: Request to tool invocation mapping
- openapi.py: OpenAPI document generation
"""

__version__ = "0.1.0"
