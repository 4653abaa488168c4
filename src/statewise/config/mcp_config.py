"""
MCP tool servers for Statewise

Tool servers are described in a JSON file mapping server names to
MultiServerMCPClient connection settings, e.g.::

    {
      "math": {
        "command": "python",
        "args": ["scripts/run_mcp_server.py"],
        "transport": "stdio"
      }
    }
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

from langchain_mcp_adapters.client import MultiServerMCPClient

from src.statewise.config.constants import mcp_settings
from src.statewise.errors import ConfigurationError

logger = logging.getLogger(__name__)


def load_mcp_connections(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Read server connections from the MCP config file.

    Returns:
        Connections keyed by server name, empty when no file is configured
    """
    config_file = config_file or mcp_settings["config_file"]
    if not config_file:
        return {}

    if not os.path.exists(config_file):
        raise ConfigurationError(f"MCP config file not found at '{config_file}'")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            connections = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Error decoding JSON from {config_file}: {e}") from e

    if not isinstance(connections, dict):
        raise ConfigurationError(f"MCP config in {config_file} must be a JSON object")

    # Environment values may reference variables such as ${TODOIST_API_KEY}
    for connection in connections.values():
        env = connection.get("env") if isinstance(connection, dict) else None
        if isinstance(env, dict):
            connection["env"] = {k: os.path.expandvars(str(v)) for k, v in env.items()}

    return connections


async def load_mcp_tools(config_file: Optional[str] = None) -> List[Any]:
    """Connect to the configured MCP servers and collect their tools."""
    connections = load_mcp_connections(config_file)
    if not connections:
        logger.info("No MCP servers configured")
        return []

    logger.info(f"Initializing tools from MCP servers: {list(connections)}")
    start_time = time.time()
    client = MultiServerMCPClient(connections)  # type: ignore
    tools = await client.get_tools()
    logger.info(f"{len(tools)} tools initialized in {time.time() - start_time:.2f} seconds")
    return tools
