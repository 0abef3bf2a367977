"""
Tool Broker - Local HTTP gateway for command-line code tools.

This package provides:
- Allow-listed working directories ("roots") for tool invocations
- Bounded, line-sanitized capture of tool output
- A self-describing OpenAPI document for automated callers
"""

__version__ = "0.1.0"
