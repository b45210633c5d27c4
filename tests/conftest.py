"""Shared test fixtures and dummy classes."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable

import httpx


class FakeClock:
    """Manually advanced clock for cache tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 6, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedTransport:
    """
    Builds an httpx.MockTransport that replays responses in order.

    Each script item is a status code, an (status, json_body) tuple, an
    (status, json_body, headers) tuple, an httpx.Response or an exception
    instance to raise. The last item repeats once the script runs out.
    """

    def __init__(self, *script: Any, default_body: Any = None) -> None:
        self.script = list(script)
        self.default_body = {"ok": True} if default_body is None else default_body
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _next(self) -> Any:
        index = min(len(self.requests) - 1, len(self.script) - 1)
        return self.script[index]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._next()
        if isinstance(item, Exception):
            if isinstance(item, httpx.RequestError):
                item.request = request
            raise item
        if isinstance(item, httpx.Response):
            return item
        if isinstance(item, int):
            return httpx.Response(item, json=self.default_body if item < 400 else {})
        status, body, *rest = item
        headers = rest[0] if rest else None
        return httpx.Response(status, json=body, headers=headers)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class RoutedTransport:
    """MockTransport that answers by URL path, counting calls per path."""

    def __init__(self, routes: dict[str, Callable[[httpx.Request], httpx.Response] | Any]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"detail": f"No route for {request.url.path}"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def fixed_jitter(factor: float) -> Callable[[float, float], float]:
    """rng replacement returning a constant jitter factor."""

    def rng(low: float, high: float) -> float:
        return factor

    return rng
