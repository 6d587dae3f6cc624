"""Contract registration and client creation.

This module provides the ContractManager class which registers service
contracts, hands out dispatch proxies for them and exposes every contract
method as a tool for the MCP server.
"""

import inspect
import logging
from typing import Any, Dict, List, Optional, Union

from google.adk.tools.function_tool import FunctionTool

from .configuration import CallOptions, GlobalSettings
from .contract import describe
from .errors import ContractClientError, ResponseStatusError
from .models import ContractDescriptor, MethodDescriptor
from .proxy import DispatchProxy
from .serializer import JsonSerializer
from .transport import TransportPool

TOOL_TYPES = (str, int, float, bool)


class ContractManager:
    """Registers contracts and owns the transport pool shared by their clients

    Args:
        global_settings: Process-wide configuration (read from the environment by default)
        pool: Transport pool shared by every client (a new pool by default)
    """

    def __init__(self, global_settings: GlobalSettings = None, pool: TransportPool = None):
        self.global_settings = global_settings if global_settings is not None else GlobalSettings.from_env()
        self.pool = pool or TransportPool()
        self.contracts: Dict[str, ContractDescriptor] = {}
        self.clients: Dict[str, DispatchProxy] = {}
        self.tools: Dict[str, FunctionTool] = {}
        self._tool_owners: Dict[str, str] = {}
        self._serializer = JsonSerializer()
        logging.info("[ContractManager] Initialized contract manager")

    def register(self, contract: Any) -> ContractDescriptor:
        """Register a contract class or configuration dictionary

        Args:
            contract: Decorated contract class, config dict or ContractDescriptor

        Returns:
            The contract descriptor

        Raises:
            ContractDefinitionError: If the contract is malformed
            ValueError: If a contract with the same name is already registered, or a
                tool name clashes with a tool of another contract
        """
        descriptor = describe(contract)
        if descriptor.name in self.contracts:
            raise ValueError(f"Contract '{descriptor.name}' already exists")

        tool_names = [f"{descriptor.name}_{method.name}" for method in descriptor.methods]
        for tool_name in tool_names:
            if tool_name in self.tools:
                raise ValueError(
                    f"Tool '{tool_name}' of contract '{descriptor.name}' is already provided by "
                    f"contract '{self._tool_owners[tool_name]}'"
                )

        proxy = DispatchProxy(descriptor, self.pool, self.global_settings)
        self.contracts[descriptor.name] = descriptor
        self.clients[descriptor.name] = proxy

        for method, tool_name in zip(descriptor.methods, tool_names):
            self.tools[tool_name] = FunctionTool(self._create_tool_function(proxy, method, tool_name))
            self._tool_owners[tool_name] = descriptor.name

        logging.info(
            f"[ContractManager] Registered contract '{descriptor.name}' "
            f"({len(descriptor.methods)} method(s) at {descriptor.base_address})"
        )
        return descriptor

    def client(self, contract: Union[str, Any], options: Optional[CallOptions] = None) -> DispatchProxy:
        """Return the dispatch proxy for a contract, registering it on first use

        Args:
            contract: Contract name, or anything `register` accepts
            options: Call-site settings applied to every call of the returned proxy

        Raises:
            KeyError: If a contract name is given that was never registered
        """
        if isinstance(contract, str):
            if contract not in self.clients:
                raise KeyError(f"Contract '{contract}' is not registered")
            name = contract
        else:
            name = describe(contract).name
            if name not in self.clients:
                self.register(contract)

        proxy = self.clients[name]
        return proxy.with_options(options) if options is not None else proxy

    def _create_tool_function(self, proxy: DispatchProxy, method: MethodDescriptor, tool_name: str):
        sig_params = []
        annotations = {}
        for binding in sorted(method.parameters, key=lambda b: b.position):
            param_type = binding.annotation if binding.annotation in TOOL_TYPES else Any
            annotations[binding.name] = param_type
            if binding.required:
                sig_params.append(inspect.Parameter(
                    binding.name, inspect.Parameter.KEYWORD_ONLY, annotation=param_type
                ))
            else:
                sig_params.append(inspect.Parameter(
                    binding.name, inspect.Parameter.KEYWORD_ONLY, default=binding.default, annotation=param_type
                ))
        sig = inspect.Signature(sig_params, return_annotation=dict)

        async def tool_function(**kwargs):
            bound = sig.bind(**kwargs)
            bound.apply_defaults()
            return await self._call_contract_method(proxy, method, tool_name, dict(bound.arguments))

        tool_function.__name__ = tool_name
        tool_function.__doc__ = method.description or f"{method.verb.value} {method.path}"
        tool_function.__signature__ = sig
        tool_function.__annotations__ = {**annotations, "return": dict}
        return tool_function

    async def _call_contract_method(self, proxy: DispatchProxy, method: MethodDescriptor,
                                    tool_name: str, arguments: Dict[str, Any]) -> dict:
        """Call a contract method with tool arguments and return a standardized result

        Returns:
            Dict containing success status, data, and message
        """
        logging.info(f"[ContractManager] Calling tool '{tool_name}' with args: {arguments}")
        try:
            for binding in method.parameters:
                value = arguments.get(binding.name)
                if value is not None and binding.annotation not in TOOL_TYPES:
                    arguments[binding.name] = self._serializer.from_primitive(value, binding.annotation)
        except (TypeError, ValueError) as e:
            logging.warning(f"[ContractManager] Invalid arguments for '{tool_name}': {e}")
            return {"success": False, "message": f"Invalid arguments: {e}"}

        try:
            result = await proxy.invoke(method.name, **arguments)
        except ResponseStatusError as e:
            logging.warning(f"[ContractManager] API call failed: {tool_name} returned {e.status}")
            return {
                "success": False,
                "status_code": e.status,
                "data": e.body,
                "message": f"API call failed with status {e.status}",
            }
        except ContractClientError as e:
            logging.error(f"[ContractManager] Error calling '{tool_name}': {e}")
            return {
                "success": False,
                "stage": e.stage.value if e.stage else None,
                "message": f"Error calling API: {e}",
            }

        logging.info(f"[ContractManager] Tool call successful: {tool_name}")
        return {
            "success": True,
            "data": self._serializer.to_primitive(result),
            "message": f"Successfully called {tool_name}",
        }

    def remove_contract(self, name: str) -> bool:
        """Remove a contract, its client and its tools

        Returns:
            True if the contract was removed, False if it didn't exist
        """
        removed = self.contracts.pop(name, None) is not None
        self.clients.pop(name, None)
        for tool_name in [t for t, owner in self._tool_owners.items() if owner == name]:
            del self.tools[tool_name]
            del self._tool_owners[tool_name]

        if removed:
            logging.info(f"[ContractManager] Removed contract '{name}'")
        else:
            logging.warning(f"[ContractManager] Contract '{name}' not found for removal")
        return removed

    def get_tools(self) -> Dict[str, FunctionTool]:
        return self.tools

    def list_contracts(self) -> List[dict]:
        """List all registered contracts as dictionaries"""
        return [descriptor.to_dict() for descriptor in self.contracts.values()]

    async def close(self) -> None:
        await self.pool.close()

    async def __aenter__(self) -> "ContractManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


__all__ = [
    "ContractManager",
]
