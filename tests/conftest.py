"""Shared test fixtures."""

import pytest

from airchat.clients import rate_limit, tokens


@pytest.fixture(autouse=True)
def offline_singletons(monkeypatch):
    """Keep the shared estimator offline and give every test a fresh rate limiter."""
    monkeypatch.setattr(tokens, "_token_estimator", tokens.TokenEstimator(tokenizer=None))
    monkeypatch.setattr(rate_limit, "_rate_limiter", rate_limit.RequestRateLimiter())
