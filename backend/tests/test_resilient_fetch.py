import asyncio
import time

import httpx
import pytest

from tradeable.errors import (
    ConnectivityError,
    MalformedResponse,
    RateLimited,
    RequestRejected,
    ServerError,
    Timeout,
)
from tradeable.http.fetch import ResilientFetcher, RetryPolicy, redact_url, resilient_fetch


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class CountingHandler:
    def __init__(self, respond) -> None:
        self.respond = respond
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)


def make_fetcher(handler, policy=None, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("jitter", lambda: 0.0)
    return client, ResilientFetcher(client, policy or RetryPolicy(), **kwargs)


def run_fetch(handler, url="https://api.example.com/data", policy=None, fetch_kwargs=None, **kwargs):
    async def scenario():
        client, fetcher = make_fetcher(handler, policy, **kwargs)
        async with client:
            return await fetcher.fetch(url, **(fetch_kwargs or {}))

    return asyncio.run(scenario())


def test_success_returns_decoded_payload() -> None:
    handler = CountingHandler(lambda request: httpx.Response(200, json={"price": "1.5"}))
    payload = run_fetch(handler, sleep=SleepRecorder())
    assert payload == {"price": "1.5"}
    assert len(handler.requests) == 1


def test_permanent_failure_makes_exactly_n_attempts() -> None:
    handler = CountingHandler(lambda request: httpx.Response(500, text="boom"))
    sleep = SleepRecorder()
    policy = RetryPolicy(retries=4, base_timeout_ms=100, max_timeout_ms=200)

    with pytest.raises(ServerError) as excinfo:
        run_fetch(handler, policy=policy, sleep=sleep)

    assert len(handler.requests) == 4
    assert len(excinfo.value.attempts) == 4
    assert [attempt.attempt_number for attempt in excinfo.value.attempts] == [1, 2, 3, 4]
    assert len(sleep.delays) == 3


def test_rate_limited_scenario_backs_off_between_attempts() -> None:
    handler = CountingHandler(lambda request: httpx.Response(429))
    policy = RetryPolicy(retries=3, base_timeout_ms=100, base_delay_ms=10, max_delay_ms=1000)

    started = time.monotonic()
    with pytest.raises(RateLimited) as excinfo:
        run_fetch(handler, policy=policy)
    elapsed = time.monotonic() - started

    assert len(handler.requests) == 3
    assert len(excinfo.value.attempts) == 3
    assert excinfo.value.status_code == 429
    assert elapsed >= (policy.backoff_ms(1) + policy.backoff_ms(2)) / 1000


def test_backoff_delays_never_shrink() -> None:
    handler = CountingHandler(lambda request: httpx.Response(503))
    sleep = SleepRecorder()
    policy = RetryPolicy(retries=6, base_delay_ms=100, max_delay_ms=2000)

    with pytest.raises(RateLimited):
        run_fetch(handler, policy=policy, sleep=sleep)

    assert sleep.delays == sorted(sleep.delays)
    assert sleep.delays[-1] == pytest.approx(2.0)


def test_attempt_timeout_grows_until_cap() -> None:
    policy = RetryPolicy(base_timeout_ms=100, max_timeout_ms=250)
    assert [policy.attempt_timeout_ms(attempt) for attempt in (1, 2, 3, 4)] == [100, 200, 250, 250]


def test_retry_after_header_extends_backoff() -> None:
    handler = CountingHandler(lambda request: httpx.Response(429, headers={"Retry-After": "3"}))
    sleep = SleepRecorder()
    policy = RetryPolicy(retries=2, base_delay_ms=100, max_delay_ms=8000)

    with pytest.raises(RateLimited):
        run_fetch(handler, policy=policy, sleep=sleep)

    assert sleep.delays[0] == pytest.approx(3.0, abs=0.05)


def test_jitter_is_clamped_to_bounds() -> None:
    handler = CountingHandler(lambda request: httpx.Response(500))
    sleep = SleepRecorder()
    policy = RetryPolicy(retries=2, base_delay_ms=100, max_jitter_ms=500)

    with pytest.raises(ServerError):
        run_fetch(handler, policy=policy, sleep=sleep, jitter=lambda: 5.0)

    assert sleep.delays == [pytest.approx(0.2 + 0.5)]


def test_client_errors_are_not_retried() -> None:
    handler = CountingHandler(lambda request: httpx.Response(404))
    with pytest.raises(RequestRejected) as excinfo:
        run_fetch(handler, sleep=SleepRecorder())
    assert len(handler.requests) == 1
    assert excinfo.value.retryable is False


def test_malformed_payload_is_classified() -> None:
    handler = CountingHandler(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(MalformedResponse):
        run_fetch(handler, policy=RetryPolicy(retries=2), sleep=SleepRecorder())
    assert len(handler.requests) == 2


def test_parse_errors_become_malformed_response() -> None:
    handler = CountingHandler(lambda request: httpx.Response(200, json={"unexpected": True}))
    with pytest.raises(MalformedResponse):
        run_fetch(
            handler,
            policy=RetryPolicy(retries=1),
            fetch_kwargs={"parse": lambda payload: payload["data"]},
            sleep=SleepRecorder(),
        )


def test_slow_endpoint_times_out_within_budget() -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    policy = RetryPolicy(retries=2, base_timeout_ms=20, max_timeout_ms=40)
    started = time.monotonic()
    with pytest.raises(Timeout) as excinfo:
        run_fetch(slow, policy=policy, sleep=SleepRecorder())
    elapsed = time.monotonic() - started

    assert len(excinfo.value.attempts) == 2
    assert elapsed < policy.budget_ms / 1000 + 0.5


def test_connectivity_error_moves_to_alternate_host() -> None:
    def respond(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.binance.com":
            raise httpx.ConnectError("name resolution failed", request=request)
        return httpx.Response(200, json={"host": request.url.host})

    handler = CountingHandler(respond)

    async def scenario():
        client, fetcher = make_fetcher(
            handler,
            alternate_hosts={"api.binance.com": ["api1.binance.com", "api2.binance.com"]},
            sleep=SleepRecorder(),
        )
        async with client:
            first = await fetcher.fetch("https://api.binance.com/api/v3/ticker/24hr")
            second = await fetcher.fetch("https://api.binance.com/api/v3/ticker/24hr")
        return fetcher, first, second

    fetcher, first, second = asyncio.run(scenario())

    assert first == {"host": "api1.binance.com"}
    assert second == {"host": "api1.binance.com"}
    assert fetcher.substitutions.get("api.binance.com") == "api1.binance.com"
    assert [request.url.host for request in handler.requests] == [
        "api.binance.com",
        "api1.binance.com",
        "api1.binance.com",
    ]


def test_connectivity_error_without_alternates_fails() -> None:
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(ConnectivityError):
        run_fetch(CountingHandler(respond), policy=RetryPolicy(retries=2), sleep=SleepRecorder())


def test_undecodable_body_is_malformed_and_retried() -> None:
    handler = CountingHandler(
        lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=b"not-gzip-at-all"
        )
    )

    with pytest.raises(MalformedResponse) as excinfo:
        run_fetch(handler, policy=RetryPolicy(retries=2), sleep=SleepRecorder())

    assert len(handler.requests) == 2
    assert len(excinfo.value.attempts) == 2


def test_other_request_errors_are_classified() -> None:
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("redirect loop", request=request)

    with pytest.raises(ConnectivityError):
        run_fetch(CountingHandler(respond), policy=RetryPolicy(retries=2), sleep=SleepRecorder())


def test_recovers_after_transient_failure() -> None:
    responses = iter([httpx.Response(502), httpx.Response(200, json=[1, 2, 3])])
    handler = CountingHandler(lambda request: next(responses))
    assert run_fetch(handler, sleep=SleepRecorder()) == [1, 2, 3]
    assert len(handler.requests) == 2


def test_module_level_resilient_fetch_honours_retries() -> None:
    handler = CountingHandler(lambda request: httpx.Response(500))

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await resilient_fetch(
                "https://api.example.com/items",
                {"params": {"page": 1}},
                retries=2,
                client=client,
                sleep=SleepRecorder(),
                jitter=lambda: 0.0,
            )

    with pytest.raises(ServerError):
        asyncio.run(scenario())
    assert len(handler.requests) == 2
    assert handler.requests[0].url.params["page"] == "1"


def test_redact_url_drops_query_string() -> None:
    assert redact_url("https://newsapi.org/v2/everything?apiKey=secret&q=btc") == (
        "https://newsapi.org/v2/everything"
    )
