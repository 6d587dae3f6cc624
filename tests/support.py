"""Contracts and transport doubles shared by the test-suite."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, List, Optional

from rest_contract.dynamic import (
    Cookie,
    Header,
    Query,
    ResponseOutcome,
    Transport,
    delete,
    get,
    post,
    put,
    service,
)


class Tier(Enum):
    BASIC = "basic"
    GOLD = "gold"


@dataclass
class Address:
    city: str
    country: str = "UG"


@dataclass
class Customer:
    id: int
    name: str
    tier: Tier = Tier.BASIC
    tags: List[str] = field(default_factory=list)
    address: Optional[Address] = None


@service("https://svc.example/api", headers={"X-Client": "tests", "Accept": "application/json"}, timeout=5.0)
class CustomerService:
    @get("customers/{marketId}")
    async def get_customer(self, marketId: int) -> Customer:
        """Fetch one customer"""

    @get("customers")
    async def search(self, name: str, limit: int = 10,
                     tags: Annotated[List[str], Query(style="csv")] = None) -> List[Customer]: ...

    @post("customers", headers={"X-Client": "create"}, timeout=2.5)
    async def create(self, customer: Customer, trace: Annotated[str, Header("X-Trace")] = None) -> Customer: ...

    @put("customers/{customer_id}/tier")
    async def set_tier(self, customer_id: int, tier: Tier) -> None: ...

    @delete("customers/{customer_id}")
    async def remove(self, customer_id: int, session: Annotated[str, Cookie("session")] = None) -> None: ...


@service("https://{region}.svc.example/{version}")
class RegionalService:
    @get("status")
    async def status(self) -> dict: ...


class StubTransport(Transport):
    """Records requests and replays a canned outcome or error"""

    def __init__(self, outcome: ResponseOutcome = None, error: Exception = None, delay: float = 0):
        self.outcome = outcome or ResponseOutcome.from_status(204)
        self.error = error
        self.delay = delay
        self.requests = []
        self.cancelled = False
        self.closed = False

    async def send(self, request):
        self.requests.append(request)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.outcome

    async def close(self):
        self.closed = True


class CountingFactory:
    """Transport factory that counts how many transports it builds"""

    def __init__(self, transport: Transport = None):
        self.transport = transport or StubTransport()
        self.keys = []

    def __call__(self, key):
        self.keys.append(key)
        return self.transport

    @property
    def creations(self) -> int:
        return len(self.keys)
