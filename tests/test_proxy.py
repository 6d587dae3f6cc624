import asyncio
import inspect
import json
import unittest
from typing import Annotated

from rest_contract.dynamic import (
    CallOptions,
    ClientRequestError,
    DispatchProxy,
    GlobalSettings,
    Path,
    PipelineStage,
    RequestCancelledError,
    ResponseOutcome,
    TransportError,
    TransportPool,
    UnresolvedPlaceholderError,
    UnsupportedParameterBindingError,
    describe,
    get,
    service,
)
from rest_contract.dynamic.models import HTTPMethod
from rest_contract.dynamic.proxy import Invocation, InvocationState
from rest_contract.dynamic.transport import PoolKey

from tests.support import CountingFactory, Customer, CustomerService, RegionalService, StubTransport, Tier


@service("https://{tenant}.svc.example")
class TenantService:
    @get("items")
    async def items(self, tenant: Annotated[str, Path()]) -> None: ...


class ProxyTestCase(unittest.IsolatedAsyncioTestCase):

    def make_proxy(self, contract=CustomerService, transport=None, global_settings=None, options=None):
        self.transport = transport or StubTransport()
        self.factory = CountingFactory(self.transport)
        self.pool = TransportPool(self.factory)
        return DispatchProxy(describe(contract), self.pool, global_settings, options)

    async def asyncTearDown(self):
        if hasattr(self, "pool"):
            await self.pool.close()


class TestDispatch(ProxyTestCase):

    async def test_path_parameter_request(self):
        """get_customer(7) sends GET .../customers/7 without a body."""
        body = json.dumps({"id": 7, "name": "Ada", "tier": "gold"}).encode()
        proxy = self.make_proxy(transport=StubTransport(ResponseOutcome.from_status(200, body)))

        customer = await proxy.get_customer(7)

        self.assertEqual(customer, Customer(id=7, name="Ada", tier=Tier.GOLD))
        (request,) = self.transport.requests
        self.assertEqual(request.method, HTTPMethod.GET)
        self.assertEqual(request.url, "https://svc.example/api/customers/7")
        self.assertIsNone(request.body)
        self.assertEqual(request.headers["X-Client"], "tests")

    async def test_post_sends_serialized_body(self):
        reply = ResponseOutcome.from_status(201, b'{"id": 1, "name": "Ada"}')
        proxy = self.make_proxy(transport=StubTransport(reply))

        created = await proxy.create(Customer(id=1, name="Ada"), trace="abc")

        self.assertEqual(created, Customer(id=1, name="Ada"))
        request = self.transport.requests[0]
        self.assertEqual(request.method, HTTPMethod.POST)
        self.assertEqual(json.loads(request.body)["name"], "Ada")
        self.assertEqual(request.headers["X-Trace"], "abc")
        self.assertEqual(request.timeout, 2.5)

    async def test_void_result(self):
        proxy = self.make_proxy()
        self.assertIsNone(await proxy.set_tier(3, Tier.GOLD))
        self.assertEqual(self.transport.requests[0].url, "https://svc.example/api/customers/3/tier?tier=gold")

    async def test_client_error_reports_status_and_body(self):
        reply = ResponseOutcome.from_status(404, b'{"error":"not found"}')
        proxy = self.make_proxy(transport=StubTransport(reply))

        with self.assertRaises(ClientRequestError) as ctx:
            await proxy.get_customer(7)

        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(ctx.exception.json(), {"error": "not found"})
        self.assertEqual(ctx.exception.stage, PipelineStage.MAP)

    async def test_timeout_is_a_transport_error(self):
        proxy = self.make_proxy(transport=StubTransport(error=TransportError(asyncio.TimeoutError(), timeout=True)))

        with self.assertRaises(TransportError) as ctx:
            await proxy.get_customer(7)

        self.assertTrue(ctx.exception.timeout)
        self.assertEqual(ctx.exception.stage, PipelineStage.SEND)

    async def test_foreign_transport_exception_is_wrapped(self):
        cause = ConnectionResetError("peer reset")
        proxy = self.make_proxy(transport=StubTransport(error=cause))

        with self.assertRaises(TransportError) as ctx:
            await proxy.get_customer(7)

        self.assertIs(ctx.exception.__cause__, cause)
        self.assertIs(ctx.exception.cause, cause)
        self.assertEqual(ctx.exception.stage, PipelineStage.SEND)

    async def test_transport_failure_outcome_keeps_send_stage(self):
        cause = ConnectionResetError("reset")
        proxy = self.make_proxy(transport=StubTransport(ResponseOutcome.transport_failure(cause)))

        with self.assertRaises(TransportError) as ctx:
            await proxy.get_customer(7)

        self.assertIs(ctx.exception.cause, cause)
        self.assertEqual(ctx.exception.stage, PipelineStage.SEND)

    async def test_unresolved_placeholder_never_reaches_the_transport(self):
        proxy = self.make_proxy(RegionalService, options=CallOptions(variables={"region": "eu"}))

        with self.assertRaises(UnresolvedPlaceholderError) as ctx:
            await proxy.status()

        self.assertEqual(ctx.exception.missing, ("version",))
        self.assertEqual(ctx.exception.stage, PipelineStage.SYNTHESIZE)
        self.assertEqual(self.factory.creations, 0)
        self.assertEqual(self.transport.requests, [])

    async def test_null_path_value_fails_at_bind(self):
        proxy = self.make_proxy()

        with self.assertRaises(UnsupportedParameterBindingError) as ctx:
            await proxy.get_customer(None)

        self.assertEqual(ctx.exception.stage, PipelineStage.BIND)
        self.assertEqual(self.transport.requests, [])

    async def test_bad_arguments_raise_type_error(self):
        proxy = self.make_proxy()
        with self.assertRaises(TypeError):
            await proxy.get_customer()
        with self.assertRaises(TypeError):
            await proxy.get_customer(1, 2)
        with self.assertRaises(TypeError):
            await proxy.search("ada", colour="red")

    async def test_global_settings_and_options(self):
        settings = GlobalSettings(headers={"X-Global": "yes"}, variables={"region": "eu", "version": "v1"})
        reply = ResponseOutcome.from_status(200, b'{"ok": true}')
        proxy = self.make_proxy(RegionalService, transport=StubTransport(reply), global_settings=settings)

        self.assertEqual(await proxy.status(), {"ok": True})
        self.assertEqual(await proxy.with_options(headers={"X-Call": "1"}).status(), {"ok": True})

        first, second = self.transport.requests
        self.assertEqual(first.url, "https://eu.svc.example/v1/status")
        self.assertEqual(first.headers, {"X-Global": "yes"})
        self.assertEqual(second.headers, {"X-Global": "yes", "X-Call": "1"})

    async def test_with_options_layers_over_existing_options(self):
        proxy = self.make_proxy().with_options(headers={"X-A": "1"}, cookies={"lang": "en"})

        await proxy.with_options(timeout=9.0, headers={"X-B": "2"}).get_customer(7)

        request = self.transport.requests[0]
        self.assertEqual(request.headers["X-A"], "1")
        self.assertEqual(request.headers["X-B"], "2")
        self.assertEqual(request.cookies, {"lang": "en"})
        self.assertEqual(request.timeout, 9.0)

    async def test_invoke_by_name(self):
        proxy = self.make_proxy()
        await proxy.invoke("remove", 4, session="s-1")
        request = self.transport.requests[0]
        self.assertEqual(request.method, HTTPMethod.DELETE)
        self.assertEqual(request.cookies, {"session": "s-1"})

        with self.assertRaises(AttributeError):
            await proxy.invoke("missing")

    async def test_unknown_method(self):
        proxy = self.make_proxy()
        with self.assertRaises(AttributeError):
            proxy.missing

    async def test_handlers_carry_contract_signature(self):
        proxy = self.make_proxy()
        self.assertEqual(list(inspect.signature(proxy.search).parameters), ["name", "limit", "tags"])
        self.assertEqual(proxy.get_customer.__doc__, "Fetch one customer")
        self.assertEqual(proxy.get_customer.__name__, "get_customer")
        self.assertIn("create", dir(proxy))
        self.assertIs(proxy.describe(), describe(CustomerService))


class TestTransportPooling(ProxyTestCase):

    async def test_concurrent_calls_share_one_transport(self):
        proxy = self.make_proxy(transport=StubTransport(delay=0.01))

        await asyncio.gather(proxy.set_tier(1, Tier.GOLD), proxy.set_tier(2, Tier.BASIC))

        self.assertEqual(self.factory.creations, 1)
        self.assertEqual(len(self.pool), 1)
        self.assertEqual(len(self.transport.requests), 2)
        self.assertIn(PoolKey("CustomerService", "https://svc.example/api"), self.pool)

    async def test_distinct_base_addresses_get_distinct_transports(self):
        proxy = self.make_proxy(RegionalService, transport=StubTransport(ResponseOutcome.from_status(200, b"{}")))

        await proxy.with_options(variables={"region": "eu", "version": "v1"}).status()
        await proxy.with_options(variables={"region": "us", "version": "v1"}).status()
        await proxy.with_options(variables={"region": "eu", "version": "v1"}).status()

        self.assertEqual(self.factory.creations, 2)
        self.assertEqual(
            [key.base_address for key in self.factory.keys],
            ["https://eu.svc.example/v1", "https://us.svc.example/v1"],
        )

    async def test_pool_key_matches_encoded_request_address(self):
        proxy = self.make_proxy(TenantService)

        await proxy.items("a b")

        self.assertEqual(self.transport.requests[0].url, "https://a%20b.svc.example/items")
        self.assertEqual(self.factory.keys, [PoolKey("TenantService", "https://a%20b.svc.example")])

    async def test_pool_close_closes_transports(self):
        proxy = self.make_proxy()
        await proxy.set_tier(1, Tier.GOLD)
        await self.pool.close()
        self.assertTrue(self.transport.closed)
        self.assertEqual(len(self.pool), 0)


class TestCancellation(ProxyTestCase):

    async def test_cancelled_before_sending(self):
        event = asyncio.Event()
        event.set()
        proxy = self.make_proxy(options=CallOptions(cancellation=event))

        with self.assertRaises(RequestCancelledError) as ctx:
            await proxy.get_customer(7)

        self.assertFalse(ctx.exception.sent)
        self.assertEqual(self.transport.requests, [])
        self.assertEqual(self.factory.creations, 0)

    async def test_cancelled_while_sending(self):
        event = asyncio.Event()
        proxy = self.make_proxy(transport=StubTransport(delay=5), options=CallOptions(cancellation=event))

        call = asyncio.create_task(proxy.get_customer(7))
        await asyncio.sleep(0.05)
        event.set()

        with self.assertRaises(RequestCancelledError) as ctx:
            await call

        self.assertTrue(ctx.exception.sent)
        self.assertEqual(ctx.exception.stage, PipelineStage.SEND)
        self.assertTrue(self.transport.cancelled)

    async def test_task_cancellation_propagates(self):
        proxy = self.make_proxy(transport=StubTransport(delay=5))

        call = asyncio.create_task(proxy.get_customer(7))
        await asyncio.sleep(0.05)
        call.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await call
        self.assertTrue(self.transport.cancelled)

    async def test_task_cancellation_with_cancellation_signal(self):
        """The in-flight send is cancelled and collected before the task ends."""
        proxy = self.make_proxy(transport=StubTransport(delay=5), options=CallOptions(cancellation=asyncio.Event()))

        call = asyncio.create_task(proxy.get_customer(7))
        await asyncio.sleep(0.05)
        call.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await call
        self.assertTrue(self.transport.cancelled)

    async def test_unset_event_does_not_interfere(self):
        reply = ResponseOutcome.from_status(200, b'[]')
        proxy = self.make_proxy(transport=StubTransport(reply), options=CallOptions(cancellation=asyncio.Event()))
        self.assertEqual(await proxy.search("ada"), [])


class TestInvocation(unittest.TestCase):

    def test_happy_path_history(self):
        invocation = Invocation("Svc", "op")
        for state in (InvocationState.CONFIG_RESOLVED, InvocationState.REQUEST_BUILT, InvocationState.SENT,
                      InvocationState.RESPONSE_RECEIVED, InvocationState.COMPLETED):
            invocation.advance(state)
        self.assertTrue(invocation.finished)
        self.assertEqual(invocation.history[0], InvocationState.RECEIVED)
        self.assertEqual(invocation.requests_sent, 1)

    def test_illegal_transitions(self):
        invocation = Invocation("Svc", "op")
        with self.assertRaises(RuntimeError):
            invocation.advance(InvocationState.SENT)

        invocation.advance(InvocationState.CONFIG_RESOLVED)
        invocation.advance(InvocationState.REQUEST_BUILT)
        invocation.advance(InvocationState.SENT)
        with self.assertRaises(RuntimeError):
            invocation.advance(InvocationState.SENT)

    def test_failure_is_terminal(self):
        invocation = Invocation("Svc", "op")
        error = ValueError("boom")
        invocation.fail(error)
        self.assertEqual(invocation.state, InvocationState.FAILED)
        self.assertIs(invocation.error, error)
        with self.assertRaises(RuntimeError):
            invocation.advance(InvocationState.CONFIG_RESOLVED)


if __name__ == '__main__':
    unittest.main()
