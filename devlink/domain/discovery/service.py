"""
Discovery domain service - sweeps a /24 for companion agent services
"""
import asyncio
import time
from typing import Callable, List, Optional

import httpx
import psutil

from ...core.constants import (
    DEFAULT_DISCOVERY_PORT,
    DEFAULT_INTERFACE_PRIORITY,
    DEFAULT_MAX_CONCURRENT_PROBES,
    DEFAULT_PROBE_TIMEOUT,
    DISCOVERY_PATH,
)
from ...core.events import EventStream
from ...core.exceptions import DiscoveryError, ProbeMiss
from ...core.limiter import ConcurrencyLimiter
from ...core.logging import get_logger
from ...core.telemetry import Telemetry
from .models import NetworkInfo, ServiceDescriptor
from .network import AddressProvider, get_local_network_info, host_addresses

logger = get_logger(__name__)

ClientFactory = Callable[[float], httpx.AsyncClient]
LimiterFactory = Callable[[int], ConcurrencyLimiter]


def _default_client_factory(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"Accept": "application/json"},
        follow_redirects=False,
    )


class DiscoveryService:
    """
    Finds companion services on the local network.

    Owns the list of discovered services; it is only updated from this
    service's own tasks.
    """

    def __init__(
        self,
        port: int = DEFAULT_DISCOVERY_PORT,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_PROBES,
        interfaces: tuple = DEFAULT_INTERFACE_PRIORITY,
        client_factory: ClientFactory = _default_client_factory,
        limiter_factory: LimiterFactory = ConcurrencyLimiter,
        address_provider: AddressProvider = psutil.net_if_addrs,
        telemetry: Optional[Telemetry] = None,
    ):
        """
        Initialize discovery service.

        Args:
            port: Discovery HTTP port probed on every host
            timeout: Per-probe timeout in seconds
            max_concurrent: Maximum probes in flight at once
            interfaces: Interface name patterns in priority order
            client_factory: Builds the httpx.AsyncClient used for one scan
            limiter_factory: Builds the limiter used for one scan
            address_provider: Interface address lookup (psutil.net_if_addrs)
            telemetry: Telemetry recorder
        """
        self.port = port
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.interfaces = interfaces
        self._client_factory = client_factory
        self._limiter_factory = limiter_factory
        self._address_provider = address_provider
        self.telemetry = telemetry or Telemetry()

        self._discovered: List[ServiceDescriptor] = []
        self._cancel_event: Optional[asyncio.Event] = None
        self._scan_task: Optional[asyncio.Task] = None
        self.is_scanning = False
        self.error: Optional[str] = None
        self.services = EventStream(latest_only=True)

    # --------------------
    # State
    # --------------------
    @property
    def discovered_services(self) -> List[ServiceDescriptor]:
        return list(self._discovered)

    def _add_service(self, service: ServiceDescriptor) -> None:
        if service in self._discovered:
            return
        self._discovered.append(service)
        logger.info(f"Discovered {service.display_name} at {service.endpoint_url}")
        self.services.publish(self.discovered_services)

    # --------------------
    # Operations
    # --------------------
    def get_local_network_info(self) -> NetworkInfo:
        """
        Inspect local interfaces.

        Raises:
            DiscoveryError: If no candidate interface has an IPv4 address
        """
        return get_local_network_info(self.interfaces, self._address_provider)

    async def probe(self, client: httpx.AsyncClient, address: str) -> Optional[ServiceDescriptor]:
        """Probe one host; any miss is silent and yields None"""
        try:
            return await self._fetch_descriptor(client, address)
        except ProbeMiss as e:
            logger.debug(f"Probe miss at {address}: {e}")
            return None

    async def _fetch_descriptor(self, client: httpx.AsyncClient, address: str) -> ServiceDescriptor:
        url = f"http://{address}:{self.port}{DISCOVERY_PATH}"
        try:
            response = await client.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ProbeMiss(f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise ProbeMiss(f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProbeMiss(f"Malformed body: {e}") from e

        return ServiceDescriptor.from_dict(body)

    async def scan(self, network_segment: str) -> List[ServiceDescriptor]:
        """
        Probe every host of a /24 concurrently.

        Calling `cancel()` stops new probes from starting, abandons the
        outstanding ones and returns what already arrived. Result order is
        not stable across runs.

        Args:
            network_segment: '10.0.0.0/24', a host address or '10.0.0'

        Returns:
            Descriptors found during this scan
        """
        addresses = host_addresses(network_segment)
        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        limiter = self._limiter_factory(self.max_concurrent)
        results: List[ServiceDescriptor] = []
        started = time.monotonic()

        logger.info(f"Scanning {len(addresses)} hosts in {network_segment} on port {self.port}")

        async with self._client_factory(self.timeout) as client:

            async def probe_host(address: str) -> None:
                async with limiter:
                    if cancel_event.is_set():
                        return
                    service = await self.probe(client, address)
                if service is not None and not cancel_event.is_set():
                    if service not in results:
                        results.append(service)
                    self._add_service(service)

            probes = [asyncio.create_task(probe_host(address)) for address in addresses]
            all_done = asyncio.gather(*probes)
            cancelled = asyncio.create_task(cancel_event.wait())
            try:
                await asyncio.wait({all_done, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in probes:
                    task.cancel()
                cancelled.cancel()
                await asyncio.gather(all_done, cancelled, return_exceptions=True)

        elapsed = time.monotonic() - started
        was_cancelled = cancel_event.is_set()
        if self._cancel_event is cancel_event:
            self._cancel_event = None

        logger.info(
            f"Scan of {network_segment} {'cancelled' if was_cancelled else 'finished'}: "
            f"{len(results)} service(s) in {elapsed:.1f}s"
        )
        self.telemetry.record_event("discovery.scan_finished", {
            "segment": network_segment,
            "found": len(results),
            "cancelled": was_cancelled,
        })
        self.telemetry.record_metric("discovery.scan_seconds", elapsed)
        return results

    def cancel(self) -> None:
        """Stop the running scan; it returns the results gathered so far"""
        if self._cancel_event is not None:
            self._cancel_event.set()

    async def scan_local_network(self) -> List[ServiceDescriptor]:
        """
        Determine the local /24 and scan it.

        Raises:
            DiscoveryError: If local network information is unavailable
        """
        info = self.get_local_network_info()
        return await self.scan(info.subnet_prefix)

    # --------------------
    # Background scanning
    # --------------------
    def start_scanning(self, preserve_services: bool = False) -> Optional[asyncio.Task]:
        """
        Start a background scan of the local network.

        Returns:
            The scan task, or None if a scan is already running
        """
        if self.is_scanning:
            return None

        if not preserve_services:
            self._discovered.clear()
            self.services.publish(self.discovered_services)

        self.is_scanning = True
        self.error = None
        self._scan_task = asyncio.create_task(self._run_background_scan())
        return self._scan_task

    async def _run_background_scan(self) -> None:
        try:
            await self.scan_local_network()
        except DiscoveryError as e:
            self.error = f"Service discovery failed: {e}"
            logger.error(self.error)
        finally:
            self.is_scanning = False
            self._scan_task = None

    async def stop_scanning(self) -> None:
        """Stop the background scan, keeping services already discovered"""
        self.cancel()
        task = self._scan_task
        if task is not None:
            if self._cancel_event is None:
                # Sweep has not started yet
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.is_scanning = False
