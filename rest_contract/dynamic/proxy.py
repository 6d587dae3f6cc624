"""Dispatch proxy: the object handed to callers in place of a contract implementation.

Every contract method becomes an async callable with the contract's
signature. Each call runs a fresh pipeline:

    Received -> ConfigResolved -> RequestBuilt -> Sent -> ResponseReceived -> Completed
                        (any stage) -> Failed

A failure short-circuits the remaining stages and is raised to the caller
with the stage that failed attached.
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .binder import BoundParameters, bind
from .configuration import CallOptions, EffectiveConfiguration, Settings, layer_options, resolve
from .errors import ContractClientError, PipelineStage, RequestCancelledError, TransportError
from .models import ContractDescriptor, MethodDescriptor, ResponseOutcome
from .response_mapper import map_response
from .synthesizer import synthesize, template_values
from .template import expand
from .transport import PoolKey, Transport, TransportPool


class InvocationState(Enum):
    RECEIVED = "received"
    CONFIG_RESOLVED = "config_resolved"
    REQUEST_BUILT = "request_built"
    SENT = "sent"
    RESPONSE_RECEIVED = "response_received"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    InvocationState.RECEIVED: (InvocationState.CONFIG_RESOLVED, InvocationState.FAILED),
    InvocationState.CONFIG_RESOLVED: (InvocationState.REQUEST_BUILT, InvocationState.FAILED),
    InvocationState.REQUEST_BUILT: (InvocationState.SENT, InvocationState.FAILED),
    InvocationState.SENT: (InvocationState.RESPONSE_RECEIVED, InvocationState.FAILED),
    InvocationState.RESPONSE_RECEIVED: (InvocationState.COMPLETED, InvocationState.FAILED),
    InvocationState.COMPLETED: (),
    InvocationState.FAILED: (),
}


class Invocation:
    """State of a single dispatched call"""

    def __init__(self, contract: str, method: str):
        self.contract = contract
        self.method = method
        self.state = InvocationState.RECEIVED
        self.history: List[InvocationState] = [InvocationState.RECEIVED]
        self.requests_sent = 0
        self.error: Optional[BaseException] = None

    def advance(self, state: InvocationState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid transition {self.state.value} -> {state.value} for {self.contract}.{self.method}"
            )
        if state is InvocationState.SENT:
            if self.requests_sent:
                raise RuntimeError(f"{self.contract}.{self.method} already sent a request")
            self.requests_sent += 1
        self.state = state
        self.history.append(state)

    def fail(self, error: BaseException) -> None:
        self.error = error
        if not self.finished:
            self.advance(InvocationState.FAILED)

    @property
    def finished(self) -> bool:
        return self.state in (InvocationState.COMPLETED, InvocationState.FAILED)


def build_signature(method: MethodDescriptor) -> inspect.Signature:
    """Python signature for a contract method (without `self`)"""
    params = []
    keyword_only = False
    for binding in sorted(method.parameters, key=lambda b: b.position):
        if binding.required:
            default = inspect.Parameter.empty
            # A required parameter after an optional one can only be passed by keyword
            keyword_only = keyword_only or any(p.default is not inspect.Parameter.empty for p in params)
        else:
            default = binding.default
        kind = inspect.Parameter.KEYWORD_ONLY if keyword_only else inspect.Parameter.POSITIONAL_OR_KEYWORD
        params.append(inspect.Parameter(binding.name, kind, default=default, annotation=binding.annotation))
    return inspect.Signature(params)


def resolve_base_address(config: EffectiveConfiguration, bound: BoundParameters) -> str:
    """Base address with placeholders filled; used as the transport pool key"""
    return expand(config.base_address, template_values(config, bound))


class DispatchProxy:
    """Callable stand-in for a contract

    Args:
        descriptor: Contract descriptor the proxy implements
        pool: Shared transport pool
        global_settings: Process-wide configuration layer
        options: Call-site configuration layer applied to every call of this proxy
    """

    def __init__(self, descriptor: ContractDescriptor, pool: TransportPool,
                 global_settings: Optional[Settings] = None, options: Optional[CallOptions] = None,
                 _signatures: Optional[Mapping[str, inspect.Signature]] = None):
        self._descriptor = descriptor
        self._pool = pool
        self._global_settings = global_settings
        self._options = options
        self._signatures = _signatures or {m.name: build_signature(m) for m in descriptor.methods}
        self._handlers: Dict[str, Callable] = {m.name: self._make_handler(m) for m in descriptor.methods}

    def _make_handler(self, method: MethodDescriptor) -> Callable:
        async def handler(*args, **kwargs):
            return await self._invoke(method, args, kwargs)

        handler.__name__ = method.name
        handler.__qualname__ = f"{self._descriptor.name}.{method.name}"
        handler.__doc__ = method.description or None
        handler.__signature__ = self._signatures[method.name]
        return handler

    def __getattr__(self, name: str) -> Callable:
        handlers = self.__dict__.get("_handlers", {})
        try:
            return handlers[name]
        except KeyError:
            raise AttributeError(f"Contract '{self._descriptor.name}' has no method '{name}'") from None

    def __dir__(self):
        return sorted(set(super().__dir__()) | set(self._handlers))

    def __repr__(self) -> str:
        return f"<DispatchProxy {self._descriptor.name} methods={list(self._handlers)}>"

    def describe(self) -> ContractDescriptor:
        return self._descriptor

    def with_options(self, options: Optional[CallOptions] = None, **overrides: Any) -> "DispatchProxy":
        """Return a proxy whose calls carry extra call-site settings

        Either pass a CallOptions instance or its fields as keywords. The new
        settings are layered over the options this proxy already carries.
        """
        if options is None:
            options = CallOptions(**overrides)
        elif overrides:
            raise TypeError("Pass either a CallOptions instance or keyword overrides, not both")
        options = layer_options(self._options, options)
        return DispatchProxy(self._descriptor, self._pool, self._global_settings, options, self._signatures)

    async def invoke(self, method_name: str, *args, **kwargs) -> Any:
        """Call a contract method by name"""
        try:
            method = self._descriptor.method(method_name)
        except KeyError as e:
            raise AttributeError(str(e)) from None
        return await self._invoke(method, args, kwargs)

    async def _invoke(self, method: MethodDescriptor, args: Tuple, kwargs: Dict[str, Any]) -> Any:
        # Argument errors are plain TypeErrors, as for any Python call
        arguments = self._signatures[method.name].bind(*args, **kwargs)
        arguments.apply_defaults()

        invocation = Invocation(self._descriptor.name, method.name)
        cancellation = getattr(self._options, "cancellation", None)
        stage = PipelineStage.CONFIGURE
        try:
            config = resolve(self._descriptor, method, self._options, self._global_settings)
            invocation.advance(InvocationState.CONFIG_RESOLVED)

            stage = PipelineStage.BIND
            bound = bind(method, arguments.arguments)

            stage = PipelineStage.SYNTHESIZE
            base_address = resolve_base_address(config, bound)
            request = synthesize(config.base_address, method, config, bound)
            invocation.advance(InvocationState.REQUEST_BUILT)

            stage = PipelineStage.SEND
            if cancellation is not None and cancellation.is_set():
                raise RequestCancelledError(sent=False)
            transport = await self._pool.get(PoolKey(self._descriptor.name, base_address))
            logging.info(f"[DispatchProxy] Calling {request.method.value} {request.url} ({invocation.contract}.{method.name})")
            invocation.advance(InvocationState.SENT)
            outcome = await self._send(transport, request, cancellation)
            invocation.advance(InvocationState.RESPONSE_RECEIVED)

            stage = PipelineStage.MAP
            result = map_response(outcome, method.result, config.serializer)
            invocation.advance(InvocationState.COMPLETED)
            logging.info(f"[DispatchProxy] {invocation.contract}.{method.name} returned {outcome.status}")
            return result

        except ContractClientError as e:
            # A transport failure reported through the outcome still belongs to the send stage
            if not isinstance(e, TransportError):
                e.stage = stage
            invocation.fail(e)
            logging.warning(f"[DispatchProxy] {invocation.contract}.{method.name} failed at {e.stage.value}: {e}")
            raise
        except asyncio.CancelledError as e:
            invocation.fail(e)
            logging.info(f"[DispatchProxy] {invocation.contract}.{method.name} cancelled at {stage.value}")
            raise
        except Exception as e:
            if stage is PipelineStage.SEND:
                error = TransportError(e)
            else:
                error = ContractClientError(f"{stage.value} stage failed: {e}")
            error.stage = stage
            invocation.fail(error)
            logging.exception(f"[DispatchProxy] {invocation.contract}.{method.name} failed at {stage.value}: {e}")
            raise error from e

    async def _send(self, transport: Transport, request, cancellation: Optional[asyncio.Event]) -> ResponseOutcome:
        if cancellation is None:
            return await transport.send(request)

        send_task = asyncio.ensure_future(transport.send(request))
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            done, _ = await asyncio.wait({send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send_task.cancel()
            await asyncio.gather(send_task, return_exceptions=True)
            raise
        finally:
            cancel_task.cancel()

        if send_task in done:
            return send_task.result()

        send_task.cancel()
        # Collect the cancelled send so its outcome is never mapped or reported as unretrieved
        await asyncio.gather(send_task, return_exceptions=True)
        raise RequestCancelledError(sent=True)


__all__ = [
    "InvocationState",
    "Invocation",
    "DispatchProxy",
    "build_signature",
    "resolve_base_address",
]
