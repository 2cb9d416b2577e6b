"""
Tests for the discovery sweep, with probes answered by httpx.MockTransport.
"""

import asyncio
import socket
from collections import namedtuple

import httpx
import pytest

from devlink.core.limiter import ConcurrencyLimiter
from devlink.domain.discovery.models import ServiceDescriptor
from devlink.domain.discovery.service import DiscoveryService

AGENT_A = {
    "name": "Agent-A",
    "websocket_url": "ws://10.0.0.5:9000",
    "version": "1.0",
    "platform": "macOS",
    "app": "Agent",
    "capabilities": ["chat"],
}

Address = namedtuple("Address", "family address netmask")


def client_factory(handler):
    def factory(timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

    return factory


def lan_handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "10.0.0.5":
        return httpx.Response(200, json=AGENT_A)
    if host == "10.0.0.6":
        return httpx.Response(404)
    if host == "10.0.0.7":
        return httpx.Response(200, text="<html>not json</html>")
    if host == "10.0.0.8":
        return httpx.Response(200, json={"name": "half a descriptor"})
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.mark.asyncio
async def test_scan_finds_the_single_agent() -> None:
    service = DiscoveryService(client_factory=client_factory(lan_handler))

    results = await service.scan("10.0.0.0/24")

    assert results == [ServiceDescriptor(endpoint_url="ws://10.0.0.5:9000")]
    descriptor = results[0]
    assert descriptor.name == "Agent-A"
    assert descriptor.version == "1.0"
    assert descriptor.platform == "macOS"
    assert descriptor.capabilities == ("chat",)
    assert service.discovered_services == results
    assert service.telemetry.get_events("discovery.scan_finished")[0].attributes["found"] == 1


@pytest.mark.asyncio
async def test_probe_uses_discovery_path_and_port() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(404)

    service = DiscoveryService(port=9999, client_factory=client_factory(handler))
    await service.scan("10.0.0.0/24")

    assert len(seen) == 254
    assert all(request.url.port == 9999 for request in seen)
    assert all(request.url.path == "/discover" for request in seen)
    assert all(request.headers["accept"] == "application/json" for request in seen)


@pytest.mark.asyncio
async def test_scan_respects_concurrency_limit() -> None:
    """The instrumented limiter never sees more holders than the configured bound."""
    limiters = []

    class InstrumentedLimiter(ConcurrencyLimiter):
        def __init__(self, limit: int):
            super().__init__(limit)
            self.max_in_use = 0
            limiters.append(self)

        async def acquire(self) -> None:
            await super().acquire()
            self.max_in_use = max(self.max_in_use, self.in_use)

    in_flight = 0
    max_in_flight = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.001)
        in_flight -= 1
        return httpx.Response(404)

    service = DiscoveryService(
        max_concurrent=5,
        client_factory=client_factory(handler),
        limiter_factory=InstrumentedLimiter,
    )
    await service.scan("10.0.0.0/24")

    assert limiters[0].max_in_use <= 5
    assert max_in_flight <= 5
    assert limiters[0].in_use == 0


@pytest.mark.asyncio
async def test_duplicate_endpoints_are_reported_once() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host in ("10.0.0.5", "10.0.0.9"):
            return httpx.Response(200, json=AGENT_A)
        return httpx.Response(404)

    service = DiscoveryService(client_factory=client_factory(handler))
    results = await service.scan("10.0.0.0/24")

    assert len(results) == 1
    assert len(service.discovered_services) == 1


@pytest.mark.asyncio
async def test_cancel_returns_results_gathered_so_far() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "10.0.0.1":
            return httpx.Response(200, json={**AGENT_A, "websocket_url": "ws://10.0.0.1:9000"})
        await asyncio.sleep(30)
        return httpx.Response(404)

    service = DiscoveryService(client_factory=client_factory(handler))
    scan = asyncio.create_task(service.scan("10.0.0.0/24"))

    for _ in range(200):
        if service.discovered_services:
            break
        await asyncio.sleep(0.005)
    service.cancel()

    results = await asyncio.wait_for(scan, timeout=2)
    assert [d.endpoint_url for d in results] == ["ws://10.0.0.1:9000"]
    assert service.telemetry.get_events("discovery.scan_finished")[0].attributes["cancelled"] is True


@pytest.mark.asyncio
async def test_background_scan_of_local_network() -> None:
    interfaces = {"eth0": [Address(socket.AF_INET, "10.0.0.42", "255.255.255.0")]}
    service = DiscoveryService(
        client_factory=client_factory(lan_handler),
        address_provider=lambda: interfaces,
    )

    task = service.start_scanning()
    assert service.is_scanning
    assert service.start_scanning() is None

    await task

    assert not service.is_scanning
    assert service.error is None
    assert [d.endpoint_url for d in service.discovered_services] == ["ws://10.0.0.5:9000"]


@pytest.mark.asyncio
async def test_background_scan_reports_missing_network() -> None:
    service = DiscoveryService(
        client_factory=client_factory(lan_handler),
        address_provider=lambda: {},
    )

    await service.start_scanning()

    assert not service.is_scanning
    assert service.error.startswith("Service discovery failed")
    assert service.discovered_services == []


@pytest.mark.asyncio
async def test_stop_scanning_keeps_discovered_services() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "10.0.0.5":
            return httpx.Response(200, json=AGENT_A)
        await asyncio.sleep(30)
        return httpx.Response(404)

    interfaces = {"eth0": [Address(socket.AF_INET, "10.0.0.42", "255.255.255.0")]}
    service = DiscoveryService(client_factory=client_factory(handler), address_provider=lambda: interfaces)

    service.start_scanning()
    for _ in range(200):
        if service.discovered_services:
            break
        await asyncio.sleep(0.005)
    await asyncio.wait_for(service.stop_scanning(), timeout=2)

    assert not service.is_scanning
    assert len(service.discovered_services) == 1

    # A preserving rescan keeps the earlier result visible while it runs
    service.start_scanning(preserve_services=True)
    assert len(service.discovered_services) == 1
    await service.stop_scanning()


@pytest.mark.asyncio
async def test_services_stream_publishes_latest_list() -> None:
    interfaces = {"eth0": [Address(socket.AF_INET, "10.0.0.42", "255.255.255.0")]}
    service = DiscoveryService(client_factory=client_factory(lan_handler), address_provider=lambda: interfaces)
    updates = service.services.subscribe()

    await service.start_scanning()

    snapshots = updates.pending()
    assert len(snapshots) == 1
    assert [d.endpoint_url for d in snapshots[0]] == ["ws://10.0.0.5:9000"]
    assert service.services.latest == service.discovered_services


def test_descriptor_capabilities() -> None:
    descriptor = ServiceDescriptor.from_dict({**AGENT_A, "capabilities": ["chat", "ai_conversation"]})

    assert descriptor.supports("ai_conversation")
    assert not descriptor.supports("file_sync")
