"""MCP server exposing registered contract methods as tools.

This module provides the DynamicMCPServer class which handles tool listing
and execution over MCP using the tools of a ContractManager.
"""

import json
import logging
import sys

from google.adk.tools.mcp_tool.conversion_utils import adk_to_mcp_tool_type
from mcp import types as mcp_types
from mcp.server.lowlevel import Server

from .contract_manager import ContractManager

logging.basicConfig(stream=sys.stderr, level=logging.INFO, format='[%(levelname)s] %(message)s')


def format_tool_result(result) -> str:
    """Render a tool result dict as the text shown to the MCP client"""
    if not isinstance(result, dict):
        return str(result)
    if result.get("success"):
        data = result.get("data")
        if data is not None:
            return f"{result.get('message', 'Success')}\n\nResponse Data:\n{json.dumps(data, indent=2)}"
        return result.get("message", "Success - no data returned")

    message = result.get("message", "Unknown error occurred")
    if result.get("data"):
        message = f"{message}\n\nResponse Body:\n{result['data']}"
    return message


class DynamicMCPServer:
    """MCP server that serves contract methods from a ContractManager

    Args:
        server_name: Name for the MCP server instance
        contract_manager: ContractManager instance to get tools from
    """

    def __init__(self, server_name: str = "rest-contract-mcp", contract_manager: ContractManager = None):
        self.server_name = server_name
        self.server = Server(server_name)
        self.contract_manager = contract_manager or ContractManager()
        self._setup_server()
        logging.info(f"[DynamicMCP] Initialized MCP server '{server_name}'")

    def _setup_server(self) -> None:
        """Register the list_tools and call_tool handlers"""

        @self.server.list_tools()
        async def list_tools():
            return self.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict):
            return await self.call_tool(name, arguments)

    def list_tools(self) -> list:
        tool_list = []
        for tool in self.contract_manager.tools.values():
            try:
                tool_list.append(adk_to_mcp_tool_type(tool))
            except Exception as e:
                logging.error(f"[DynamicMCP] Error converting tool {tool.name} to MCP type: {e}")
        logging.info(f"[DynamicMCP] Returning {len(tool_list)} tools to MCP client")
        return tool_list

    async def call_tool(self, name: str, arguments: dict) -> list:
        logging.info(f"[DynamicMCP] Tool call: {name} with args: {json.dumps(arguments, default=str)}")
        tool = self.contract_manager.tools.get(name)
        if tool is None:
            logging.warning(f"[DynamicMCP] Tool '{name}' not found")
            return [mcp_types.TextContent(type="text", text=f"Tool '{name}' not found")]

        try:
            result = await tool.run_async(args=arguments or {}, tool_context=None)
        except Exception as e:
            logging.exception(f"[DynamicMCP] Error executing tool '{name}': {e}")
            return [mcp_types.TextContent(type="text", text=f"Error executing tool: {e}")]

        return [mcp_types.TextContent(type="text", text=format_tool_result(result))]

    def get_server(self) -> Server:
        return self.server

    def get_contract_manager(self) -> ContractManager:
        return self.contract_manager


__all__ = [
    "DynamicMCPServer",
    "format_tool_result",
]
