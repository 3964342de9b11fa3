from __future__ import annotations

import logging
from typing import get_args

from tradeable.config.settings import ENSEMBLE_SOURCE_IDS, Settings, WeightingStrategy
from tradeable.errors import ConfigurationError
from tradeable.schemas.validation import ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = {
    "binance": "binance_api_key",
    "news": "news_api_key",
    "huggingface": "huggingface_api_key",
    "gemini": "gemini_api_key",
    "twitter": "twitter_bearer_token",
}

# sources that cannot answer without a given credential
_SOURCE_CREDENTIALS = {
    "gemini": "gemini",
    "financial_bert": "huggingface",
    "crypto_bert": "huggingface",
    "news_analysis": "huggingface",
    "market_analysis": "huggingface",
}


def validate_settings(settings: Settings) -> ValidationResult:
    issues: list[ValidationIssue] = []
    providers = settings.providers

    for name in settings.required_credentials:
        field_name = CREDENTIAL_FIELDS.get(name)
        if field_name is None:
            issues.append(
                ValidationIssue(
                    field="required_credentials",
                    level="fail",
                    message=f"Unknown credential: {name}",
                )
            )
            continue
        if not (getattr(providers, field_name) or "").strip():
            issues.append(
                ValidationIssue(
                    field=f"providers.{field_name}",
                    level="fail",
                    message=f"Required credential {name} is missing.",
                )
            )

    for name, field_name in CREDENTIAL_FIELDS.items():
        if name in settings.required_credentials or name == "binance":
            continue
        if not (getattr(providers, field_name) or "").strip():
            issues.append(
                ValidationIssue(
                    field=f"providers.{field_name}",
                    level="warn",
                    message=f"{name} credential not set; fallback data will be used.",
                )
            )

    fetch = settings.fetch
    if fetch.retries < 1:
        issues.append(
            ValidationIssue(field="fetch.retries", level="fail", message="Retries must be at least 1.")
        )
    if fetch.base_timeout_ms <= 0 or fetch.base_timeout_ms > fetch.max_timeout_ms:
        issues.append(
            ValidationIssue(
                field="fetch.base_timeout_ms",
                level="fail",
                message="Base timeout must be positive and not exceed the max timeout.",
            )
        )
    if fetch.base_delay_ms < 0 or fetch.max_jitter_ms < 0 or fetch.base_delay_ms > fetch.max_delay_ms:
        issues.append(
            ValidationIssue(
                field="fetch.base_delay_ms",
                level="fail",
                message="Backoff delays must be non-negative and base delay must not exceed max delay.",
            )
        )

    if settings.sentiment.batch_concurrency < 1:
        issues.append(
            ValidationIssue(
                field="sentiment.batch_concurrency",
                level="fail",
                message="Batch concurrency must be positive.",
            )
        )

    ensemble = settings.ensemble
    if ensemble.weighting_strategy not in get_args(WeightingStrategy):
        issues.append(
            ValidationIssue(
                field="ensemble.weighting_strategy",
                level="fail",
                message=f"Unknown weighting strategy: {ensemble.weighting_strategy}",
            )
        )
    unknown_sources = [name for name in ensemble.enabled_sources if name not in ENSEMBLE_SOURCE_IDS]
    if unknown_sources:
        issues.append(
            ValidationIssue(
                field="ensemble.enabled_sources",
                level="fail",
                message="Unknown ensemble sources: " + ", ".join(unknown_sources),
            )
        )
    if ensemble.default_source not in ENSEMBLE_SOURCE_IDS:
        issues.append(
            ValidationIssue(
                field="ensemble.default_source",
                level="warn",
                message=f"Default source {ensemble.default_source} is not a known source.",
            )
        )
    for name in ensemble.enabled_sources:
        credential = _SOURCE_CREDENTIALS.get(name)
        if credential and not (getattr(providers, CREDENTIAL_FIELDS[credential]) or "").strip():
            issues.append(
                ValidationIssue(
                    field="ensemble.enabled_sources",
                    level="warn",
                    message=f"{name} is enabled but the {credential} credential is missing.",
                )
            )

    market = settings.market
    if market.top_n < 1 or market.refresh_interval_seconds <= 0 or market.freshness_window_seconds <= 0:
        issues.append(
            ValidationIssue(
                field="market",
                level="fail",
                message="Top N, refresh interval and freshness window must be positive.",
            )
        )

    status = "ok"
    if any(issue.level == "fail" for issue in issues):
        status = "fail"
    elif issues:
        status = "warn"

    return ValidationResult(status=status, issues=issues)


def ensure_valid_settings(settings: Settings) -> ValidationResult:
    validation = validate_settings(settings)
    for issue in validation.issues:
        if issue.level == "warn":
            logger.warning(f"{issue.field}: {issue.message}")
    if validation.status == "fail":
        failures = "; ".join(
            f"{issue.field}: {issue.message}" for issue in validation.issues if issue.level == "fail"
        )
        raise ConfigurationError(f"Invalid configuration: {failures}")
    return validation
