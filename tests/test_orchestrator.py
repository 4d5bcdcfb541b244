"""
Tests for the concurrent orchestrator.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from finfetch.config import Settings
from finfetch.coordinator.orchestrator import Orchestrator
from finfetch.data.base import FetchUnit
from finfetch.data.http import HTTPTransport
from finfetch.data.rate_limit import RateLimiterRegistry
from finfetch.data.registry import build_fetch_units
from finfetch.data.retry import RetryPolicy
from finfetch.exceptions import ConfigurationError, ErrorKind, FetchError


class FakeUnit(FetchUnit):
    """Unit that sleeps, then returns a value or raises."""

    def __init__(
        self,
        name: str,
        delay: float = 0.0,
        value: float = 1.0,
        error: Exception | None = None,
    ) -> None:
        super().__init__(HTTPTransport("fake", "https://fake.test", RateLimiterRegistry.unlimited()))
        self.name = name
        self.delay = delay
        self.value = value
        self.error = error
        self.closed = False

    @property
    def source_name(self) -> str:
        return "fake"

    @property
    def identifier(self) -> str:
        return self.name

    async def _fetch_value(self, deadline: float | None) -> float:
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value

    async def close(self) -> None:
        self.closed = True
        await super().close()


class TestOrchestrator:
    """Test fan-out / fan-in behaviour."""

    def test_empty_units_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="no fetch units configured"):
            Orchestrator([])

    @pytest.mark.asyncio
    async def test_one_outcome_per_unit(self) -> None:
        units = [
            FakeUnit("a", value=1.0),
            FakeUnit("b", error=FetchError.validation("bad body")),
            FakeUnit("c", error=FetchError.server(503)),
            FakeUnit("d", value=4.0),
        ]
        outcomes = await Orchestrator(units).run()

        assert len(outcomes) == 4
        by_key = {o.key: o for o in outcomes}
        assert set(by_key) == {"fake:a", "fake:b", "fake:c", "fake:d"}
        assert by_key["fake:a"].value == 1.0
        assert by_key["fake:d"].value == 4.0
        assert by_key["fake:b"].error is not None
        assert by_key["fake:b"].error.kind == ErrorKind.VALIDATION
        assert by_key["fake:c"].error is not None
        assert by_key["fake:c"].error.kind == ErrorKind.SERVER

    @pytest.mark.asyncio
    async def test_units_run_concurrently(self) -> None:
        """Five 200ms units finish in about 200ms, not one second."""
        units = [FakeUnit(str(i), delay=0.2) for i in range(5)]

        start = time.monotonic()
        outcomes = await Orchestrator(units).run()
        elapsed = time.monotonic() - start

        assert all(o.ok for o in outcomes)
        assert elapsed < 0.6

    @pytest.mark.asyncio
    async def test_deadline_bounds_run(self) -> None:
        units = [FakeUnit("slow", delay=5.0), FakeUnit("fast", value=2.0)]

        start = time.monotonic()
        outcomes = await Orchestrator(units).run(timeout=0.2)
        elapsed = time.monotonic() - start

        assert elapsed < 1.0
        by_key = {o.key: o for o in outcomes}
        assert by_key["fake:fast"].value == 2.0
        slow = by_key["fake:slow"]
        assert slow.value is None
        assert slow.error is not None
        assert slow.error.kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_expired_deadline(self) -> None:
        """A zero timeout still yields an outcome for every unit."""
        units = [FakeUnit(str(i), delay=0.5) for i in range(3)]
        outcomes = await Orchestrator(units).run(timeout=0)

        assert len(outcomes) == 3
        assert all(o.error is not None and o.error.kind == ErrorKind.TIMEOUT for o in outcomes)

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self) -> None:
        units = [FakeUnit("boom", error=RuntimeError("kaboom")), FakeUnit("ok", value=3.0)]
        outcomes = await Orchestrator(units).run()

        by_key = {o.key: o for o in outcomes}
        assert by_key["fake:ok"].value == 3.0
        boom = by_key["fake:boom"]
        assert boom.error is not None
        assert boom.error.kind == ErrorKind.UNKNOWN
        assert isinstance(boom.error.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_stream_yields_in_completion_order(self) -> None:
        units = [FakeUnit("slow", delay=0.2), FakeUnit("fast", delay=0.0)]
        keys = [o.key async for o in Orchestrator(units).stream()]
        assert keys == ["fake:fast", "fake:slow"]

    @pytest.mark.asyncio
    async def test_units_closed_after_run(self) -> None:
        units = [FakeUnit("a"), FakeUnit("b", error=FetchError.validation("x"))]
        await Orchestrator(units).run()
        assert all(unit.closed for unit in units)

    @pytest.mark.asyncio
    async def test_run_stats(self) -> None:
        units = [FakeUnit("a"), FakeUnit("b", error=FetchError.validation("x"))]
        orchestrator = Orchestrator(units)
        await orchestrator.run()

        stats = orchestrator.last_run
        assert stats is not None
        assert stats.run_id.startswith("run_")
        assert (stats.total, stats.succeeded, stats.failed) == (2, 1, 1)
        assert stats.failed_keys == ["fake:b"]

    @pytest.mark.asyncio
    async def test_caller_cancellation_propagates(self) -> None:
        units = [FakeUnit(str(i), delay=5.0) for i in range(3)]
        run = asyncio.create_task(Orchestrator(units).run())
        await asyncio.sleep(0.05)

        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run
        assert all(unit.closed for unit in units)


class TestOrchestratorFromSettings:
    """Run units built from settings against a mock provider."""

    @staticmethod
    def _provider(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "api.etherscan.io":
            if request.url.params["action"] == "ethprice":
                return httpx.Response(
                    200, json={"status": "1", "message": "OK", "result": {"ethusd": "3500.00"}}
                )
            return httpx.Response(
                200,
                json={"status": "1", "message": "OK", "result": "100000000000000000000"},
            )
        if host == "www.alphavantage.co":
            symbol = request.url.params["symbol"]
            if symbol == "GOOGL":
                return httpx.Response(200, json={"Note": "API call frequency exceeded"})
            return httpx.Response(200, json={"Global Quote": {"05. price": "178.23"}})
        if host == "api.rentcast.io":
            return httpx.Response(200, json={"price": 285000})
        return httpx.Response(404)

    @pytest.mark.asyncio
    async def test_full_run(self, mock_settings: Settings) -> None:
        units = build_fetch_units(
            mock_settings,
            limiter=RateLimiterRegistry.unlimited(),
            retry_policy=RetryPolicy.immediate(),
            transport=httpx.MockTransport(self._provider),
        )
        outcomes = await Orchestrator(units).run(timeout=5)

        by_key = {o.key: o for o in outcomes}
        assert by_key["etherscan:0x742d35Cc6634C0532925a3b844Bc454e4438f44e"].value == (
            pytest.approx(350000.00)
        )
        assert by_key["alphavantage:AAPL"].value == 178.23
        googl = by_key["alphavantage:GOOGL"]
        assert googl.error is not None
        assert googl.error.kind == ErrorKind.VALIDATION
        assert by_key["rentcast:5500_grand_lake_dr_san_antonio_tx_78244"].value == 285000.0
