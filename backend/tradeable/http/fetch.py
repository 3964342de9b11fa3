"""
Resilient outbound HTTP.

Every attempt runs under its own timeout, which grows with the attempt
number up to a cap. Failures are classified (connectivity, rate limit,
timeout, malformed payload, server error, rejection). Retryable failures
are followed by an exponential backoff with bounded jitter. The whole call
is bounded by retries x max_timeout_ms of wall-clock time.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import httpx

from tradeable.config.settings import FetchSettings
from tradeable.errors import (
    ConnectivityError,
    FetchAttempt,
    FetchError,
    MalformedResponse,
    RateLimited,
    RequestRejected,
    ServerError,
    Timeout,
)
from tradeable.http.rate_limit import RateLimitState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]
Parser = Callable[[Any], T]

_RATE_LIMIT_STATUSES = (429, 503)
_MALFORMED_PARSE_ERRORS = (ValueError, TypeError, KeyError, IndexError, AttributeError)


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 3
    base_timeout_ms: int = 5000
    max_timeout_ms: int = 15000
    base_delay_ms: int = 500
    max_delay_ms: int = 8000
    max_jitter_ms: int = 1000

    @classmethod
    def from_settings(cls, fetch_settings: FetchSettings) -> "RetryPolicy":
        return cls(
            retries=fetch_settings.retries,
            base_timeout_ms=fetch_settings.base_timeout_ms,
            max_timeout_ms=fetch_settings.max_timeout_ms,
            base_delay_ms=fetch_settings.base_delay_ms,
            max_delay_ms=fetch_settings.max_delay_ms,
            max_jitter_ms=fetch_settings.max_jitter_ms,
        )

    def attempt_timeout_ms(self, attempt: int) -> int:
        return min(self.base_timeout_ms * attempt, self.max_timeout_ms)

    def backoff_ms(self, attempt: int) -> int:
        return min((2 ** attempt) * self.base_delay_ms, self.max_delay_ms)

    @property
    def budget_ms(self) -> int:
        return self.retries * self.max_timeout_ms


class EndpointSubstitutionCache:
    """Advisory hostname -> last known good alternate host."""

    def __init__(self) -> None:
        self._hosts: dict[str, str] = {}

    def get(self, host: str) -> Optional[str]:
        return self._hosts.get(host)

    def remember(self, host: str, alternate: str) -> None:
        self._hosts[host] = alternate

    def forget(self, host: str) -> None:
        self._hosts.pop(host, None)


def redact_url(url: httpx.URL | str) -> str:
    parsed = httpx.URL(str(url))
    return f"{parsed.scheme}://{parsed.netloc.decode('ascii')}{parsed.path}"


def _status_error(response: httpx.Response, url: str, retry_after_s: Optional[float]) -> FetchError:
    status_code = response.status_code
    message = f"HTTP {status_code} from {url}"
    if status_code in _RATE_LIMIT_STATUSES:
        return RateLimited(message, url=url, status_code=status_code, retry_after_s=retry_after_s)
    if status_code >= 500:
        return ServerError(message, url=url, status_code=status_code)
    return RequestRejected(message, url=url, status_code=status_code)


class ResilientFetcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        *,
        alternate_hosts: Optional[Mapping[str, list[str]]] = None,
        substitutions: Optional[EndpointSubstitutionCache] = None,
        sleep: Sleep = asyncio.sleep,
        jitter: Optional[Callable[[], float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.policy = policy or RetryPolicy()
        self._alternate_hosts = {host: list(alts) for host, alts in (alternate_hosts or {}).items()}
        self.substitutions = substitutions or EndpointSubstitutionCache()
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock

    def _jitter_s(self, policy: RetryPolicy) -> float:
        ceiling = policy.max_jitter_ms / 1000
        value = self._jitter() if self._jitter else random.uniform(0.0, ceiling)
        return min(max(0.0, value), ceiling)

    def _candidate_urls(self, url: httpx.URL) -> list[httpx.URL]:
        host = url.host
        hosts = [host, *self._alternate_hosts.get(host, [])]
        remembered = self.substitutions.get(host)
        if remembered and remembered in hosts:
            hosts.remove(remembered)
            hosts.insert(0, remembered)
        return [url.copy_with(host=candidate) for candidate in hosts]

    def retry_delay_s(
        self,
        policy: RetryPolicy,
        attempt: int,
        error: FetchError,
        rate_state: RateLimitState,
        now: float,
    ) -> float:
        delay_ms = float(policy.backoff_ms(attempt))
        if isinstance(error, RateLimited):
            hint_s = rate_state.delay_hint(now)
            if error.retry_after_s is not None:
                hint_s = max(hint_s, error.retry_after_s)
            delay_ms = min(max(delay_ms, hint_s * 1000), float(policy.max_delay_ms))
        return delay_ms / 1000 + self._jitter_s(policy)

    async def _send(
        self,
        method: str,
        url: httpx.URL,
        timeout_s: float,
        **request_kwargs: Any,
    ) -> httpx.Response:
        shown = redact_url(url)
        try:
            return await asyncio.wait_for(
                self._client.request(method, url, timeout=timeout_s, **request_kwargs),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise Timeout(f"Request to {shown} timed out after {timeout_s:.2f}s", url=shown, cause=exc) from exc
        except httpx.DecodingError as exc:
            raise MalformedResponse(f"Undecodable body from {shown}: {exc}", url=shown, cause=exc) from exc
        except httpx.RequestError as exc:
            raise ConnectivityError(f"Cannot reach {shown}: {exc}", url=shown, cause=exc) from exc

    def _decode(self, response: httpx.Response, url: str, parse: Optional[Parser]) -> Any:
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"Non-JSON body from {url}", url=url, status_code=response.status_code, cause=exc) from exc
        if parse is None:
            return payload
        try:
            return parse(payload)
        except _MALFORMED_PARSE_ERRORS as exc:
            raise MalformedResponse(
                f"Unexpected payload shape from {url}: {exc}",
                url=url,
                status_code=response.status_code,
                cause=exc,
            ) from exc

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        json_body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        parse: Optional[Parser] = None,
        retries: Optional[int] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> Any:
        policy = policy or self.policy
        if retries is not None:
            policy = replace(policy, retries=retries)
        if policy.retries < 1:
            raise ValueError("retries must be at least 1")

        request_kwargs: dict[str, Any] = {}
        if params is not None:
            request_kwargs["params"] = dict(params)
        if json_body is not None:
            request_kwargs["json"] = json_body
        if headers is not None:
            request_kwargs["headers"] = dict(headers)

        primary = httpx.URL(url)
        candidates = self._candidate_urls(primary)
        candidate_index = 0
        deadline = self._clock() + policy.budget_ms / 1000
        rate_state = RateLimitState()
        attempts: list[FetchAttempt] = []
        last_error: Optional[FetchError] = None

        for attempt in range(1, policy.retries + 1):
            remaining_s = deadline - self._clock()
            if remaining_s <= 0:
                break
            target = candidates[candidate_index]
            shown = redact_url(target)
            timeout_ms = policy.attempt_timeout_ms(attempt)
            timeout_s = min(timeout_ms / 1000, remaining_s)
            try:
                response = await self._send(method, target, timeout_s, **request_kwargs)
                rate_state = rate_state.merge(RateLimitState.from_headers(response.headers, time.time()))
                if response.status_code >= 400:
                    raise _status_error(response, shown, rate_state.retry_after_s)
                payload = self._decode(response, shown, parse)
            except FetchError as error:
                last_error = error
                attempts.append(
                    FetchAttempt(
                        url=shown,
                        attempt_number=attempt,
                        timeout_ms=timeout_ms,
                        succeeded=False,
                        kind=error.kind,
                        message=error.message,
                    )
                )
                if not error.retryable or attempt == policy.retries:
                    break
                if isinstance(error, ConnectivityError) and candidate_index + 1 < len(candidates):
                    if target.host != primary.host:
                        self.substitutions.forget(primary.host)
                    candidate_index += 1
                delay_s = self.retry_delay_s(policy, attempt, error, rate_state, time.time())
                delay_s = min(delay_s, max(0.0, deadline - self._clock()))
                logger.warning(
                    f"Attempt {attempt}/{policy.retries} for {shown} failed "
                    f"({error.kind.value}): {error.message}. Retrying in {delay_s:.2f}s"
                )
                await self._sleep(delay_s)
                continue

            attempts.append(
                FetchAttempt(url=shown, attempt_number=attempt, timeout_ms=timeout_ms, succeeded=True)
            )
            if target.host != primary.host:
                self.substitutions.remember(primary.host, target.host)
            return payload

        if last_error is None:
            last_error = Timeout(f"Retry budget exhausted for {redact_url(primary)}", url=redact_url(primary))
        last_error.attempts = tuple(attempts)
        logger.error(
            f"All {len(attempts)} attempts for {redact_url(primary)} failed; "
            f"last cause: {last_error.kind.value}"
        )
        raise last_error


async def resilient_fetch(
    url: str,
    options: Optional[Mapping[str, Any]] = None,
    retries: int = 3,
    *,
    client: httpx.AsyncClient,
    policy: Optional[RetryPolicy] = None,
    sleep: Sleep = asyncio.sleep,
    jitter: Optional[Callable[[], float]] = None,
) -> Any:
    """One-off resilient call; options accepts method, params, json_body, headers, parse."""
    fetcher = ResilientFetcher(client, policy, sleep=sleep, jitter=jitter)
    return await fetcher.fetch(url, retries=retries, **dict(options or {}))
