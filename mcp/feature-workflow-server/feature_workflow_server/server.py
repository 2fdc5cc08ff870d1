#!/usr/bin/env python3
"""
Feature Workflow MCP Server

MCP server that tracks feature development workflows: numbered feature
directories seeded from templates, a task list per workflow stored in
SQLite, and a tasks.md checklist kept in step with it.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
    Resource,
    ResourceTemplate,
)

from .resources import RESOURCE_DESCRIPTIONS, RESOURCE_TEMPLATES, resolve_resource
from .workflow_tools import TOOL_SPECS, dispatch_tool, get_context

logger = logging.getLogger(__name__)

server = Server("feature-workflow-server")


TOOLS = [
    Tool(
        name=name.value,
        description=spec.description,
        inputSchema=spec.input_model.model_json_schema()
    )
    for name, spec in TOOL_SPECS.items()
]


@server.list_tools()
async def list_tools() -> list[Tool]:
    return TOOLS


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    result = dispatch_tool(name, arguments)
    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


@server.list_resources()
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri=uri,
            name=info["name"],
            mimeType=info["mimeType"],
            description=info["description"]
        )
        for uri, info in RESOURCE_DESCRIPTIONS.items()
    ]


@server.list_resource_templates()
async def list_resource_templates() -> list[ResourceTemplate]:
    return [
        ResourceTemplate(
            uriTemplate=uri_template,
            name=info["name"],
            mimeType=info["mimeType"],
            description=info["description"]
        )
        for uri_template, info in RESOURCE_TEMPLATES.items()
    ]


@server.read_resource()
async def read_resource(uri: Any) -> str:
    return resolve_resource(str(uri))


def configure_logging(level: str = "INFO") -> None:
    # stdout carries the MCP protocol
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


async def async_main():
    ctx = get_context()
    configure_logging(ctx.config.get("logging", {}).get("level", "INFO"))
    logger.info(f"Serving feature workflows for {ctx.project_root}")
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )
    finally:
        ctx.close()


def main():
    """Entry point for the MCP server."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
