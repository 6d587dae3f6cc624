import contextlib
import json
import logging
import os
import sys
from collections.abc import AsyncIterator
from typing import List

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from rest_contract.dynamic import (
    ContractDefinitionError,
    ContractManager,
    DynamicMCPServer,
)

logging.basicConfig(stream=sys.stderr, level=logging.INFO, format='[%(levelname)s] %(message)s')

contract_manager = ContractManager()
dynamic_server = DynamicMCPServer("rest-contract-mcp", contract_manager)


def load_contracts_file(path: str, manager: ContractManager = None) -> List[str]:
    """Register every contract configuration found in a JSON file

    The file holds either one contract configuration or a list of them.

    Returns:
        Names of the registered contracts

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not valid JSON or a contract name is taken
        ContractDefinitionError: If a contract configuration is invalid
    """
    manager = manager or contract_manager
    with open(path, encoding="utf-8") as f:
        configs = json.load(f)
    if isinstance(configs, dict):
        configs = [configs]

    names = []
    for config in configs:
        names.append(manager.register(config).name)
    logging.info(f"[DynamicHTTP] Loaded {len(names)} contract(s) from {path}")
    return names


async def add_contract_handler(request: Request) -> JSONResponse:
    """HTTP endpoint to register a contract from its JSON configuration

    Args:
        request: Starlette request containing the contract configuration JSON

    Returns:
        JSON response indicating success or failure
    """
    try:
        body = await request.json()
        descriptor = contract_manager.register(body)
    except (ContractDefinitionError, ValueError, TypeError, AttributeError) as e:
        logging.error(f"[DynamicHTTP] Error adding contract: {e}")
        return JSONResponse({
            "success": False,
            "message": f"Error adding contract: {e}"
        }, status_code=400)

    logging.info(f"[DynamicHTTP] Successfully added contract '{descriptor.name}'")
    return JSONResponse({
        "success": True,
        "message": f"Successfully added contract '{descriptor.name}'",
        "contract": {
            "name": descriptor.name,
            "base_address": descriptor.base_address,
            "methods": list(descriptor.method_names()),
        }
    })


async def remove_contract_handler(request: Request) -> JSONResponse:
    """HTTP endpoint to remove a registered contract

    Args:
        request: Starlette request with the contract name in path parameters

    Returns:
        JSON response indicating success or failure
    """
    name = request.path_params.get("name")
    if not name:
        logging.warning("[DynamicHTTP] Remove contract called without name")
        return JSONResponse({
            "success": False,
            "message": "Contract name is required"
        }, status_code=400)

    if contract_manager.remove_contract(name):
        logging.info(f"[DynamicHTTP] Successfully removed contract '{name}'")
        return JSONResponse({
            "success": True,
            "message": f"Successfully removed contract '{name}'"
        })
    return JSONResponse({
        "success": False,
        "message": f"Contract '{name}' not found"
    }, status_code=404)


async def list_contracts_handler(request: Request) -> JSONResponse:
    contracts = contract_manager.list_contracts()
    return JSONResponse({
        "success": True,
        "contracts": contracts,
        "count": len(contracts)
    })


async def health_handler(request: Request) -> JSONResponse:
    return JSONResponse({
        "status": "healthy",
        "server": dynamic_server.server_name,
        "contracts_count": len(contract_manager.contracts),
        "tools_count": len(contract_manager.tools)
    })


def create_app() -> Starlette:
    """Build the Starlette app serving MCP and the contract management API"""
    session_manager = StreamableHTTPSessionManager(
        app=dynamic_server.get_server(),
        event_store=None,
        json_response=True,
        stateless=True,
    )

    async def handle_streamable_http(scope: Scope, receive: Receive, send: Send) -> None:
        """Handle MCP protocol requests via streamable HTTP"""
        await session_manager.handle_request(scope, receive, send)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            tool_names = list(contract_manager.tools.keys())
            logging.info(f"[DynamicHTTP] Contract MCP server started with contracts {list(contract_manager.contracts)}")
            if not tool_names:
                logging.warning("[DynamicHTTP] No tools available; register contracts via POST /api/contracts")
            else:
                logging.info(f"[DynamicHTTP] {len(tool_names)} tools ready: {tool_names}")
            try:
                yield
            finally:
                logging.info("[DynamicHTTP] Contract MCP server shutting down...")
                await contract_manager.close()

    return Starlette(
        routes=[
            Route("/api/contracts", add_contract_handler, methods=["POST"]),
            Route("/api/contracts/{name}", remove_contract_handler, methods=["DELETE"]),
            Route("/api/contracts", list_contracts_handler, methods=["GET"]),
            Route("/health", health_handler, methods=["GET"]),
            Mount("/", app=handle_streamable_http),
        ],
        lifespan=lifespan,
    )


def main() -> None:
    """Start the contract MCP HTTP server"""
    port = int(os.getenv("PORT", 8080))
    host = os.getenv("HOST", "0.0.0.0")

    contracts_file = os.getenv("CONTRACTS_FILE")
    if contracts_file:
        load_contracts_file(contracts_file)

    logging.info(f"[DynamicHTTP] Starting on {host}:{port}")
    logging.info(f"[DynamicHTTP]   - POST http://{host}:{port}/ (MCP protocol)")
    logging.info(f"[DynamicHTTP]   - POST http://{host}:{port}/api/contracts (Add contract)")
    logging.info(f"[DynamicHTTP]   - DELETE http://{host}:{port}/api/contracts/{{name}} (Remove contract)")
    logging.info(f"[DynamicHTTP]   - GET http://{host}:{port}/api/contracts (List contracts)")
    logging.info(f"[DynamicHTTP]   - GET http://{host}:{port}/health (Health check)")

    import uvicorn
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()

__all__ = [
    "load_contracts_file",
    "add_contract_handler",
    "remove_contract_handler",
    "list_contracts_handler",
    "health_handler",
    "create_app",
    "main",
]
