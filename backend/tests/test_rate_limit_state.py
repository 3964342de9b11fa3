from tradeable.http.rate_limit import RateLimitState


def test_from_headers_reads_limits_and_relative_reset() -> None:
    state = RateLimitState.from_headers(
        {
            "X-RateLimit-Limit": "100",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": "30",
        },
        now=1_700_000_000.0,
    )
    assert state.limit == 100
    assert state.remaining == 0
    assert state.reset_at == 1_700_000_030.0
    assert state.exhausted is True
    assert state.delay_hint(1_700_000_010.0) == 20.0


def test_retry_after_accepts_http_dates() -> None:
    now = 1_700_000_000.0
    state = RateLimitState.from_headers({"Retry-After": "Tue, 14 Nov 2023 22:13:30 GMT"}, now=now)
    assert state.retry_after_s == 10.0


def test_merge_returns_new_state_and_keeps_known_fields() -> None:
    first = RateLimitState.from_headers({"X-RateLimit-Limit": "50", "Retry-After": "4"}, now=10.0)
    second = RateLimitState.from_headers({"X-RateLimit-Remaining": "7"}, now=12.0)

    merged = first.merge(second)

    assert merged is not first
    assert first.remaining is None
    assert merged.limit == 50
    assert merged.remaining == 7
    assert merged.retry_after_s is None
    assert merged.observed_at == 12.0


def test_delay_hint_is_never_negative() -> None:
    state = RateLimitState.from_headers({"Retry-After": "2"}, now=100.0)
    assert state.delay_hint(101.0) == 1.0
    assert state.delay_hint(500.0) == 0.0
    assert RateLimitState().delay_hint(0.0) == 0.0
