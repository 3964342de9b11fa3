import pytest

from tradeable.config.settings import EnsembleSettings, FetchSettings, ProviderSettings, Settings
from tradeable.errors import ConfigurationError
from tradeable.validation.validator import ensure_valid_settings, validate_settings


def build_settings(**overrides) -> Settings:
    providers = ProviderSettings(
        binance_api_key=None,
        news_api_key=None,
        huggingface_api_key=None,
        gemini_api_key=None,
        twitter_bearer_token=None,
    )
    values = {"providers": providers}
    values.update(overrides)
    return Settings(**values)


def test_missing_optional_keys_only_warn() -> None:
    result = validate_settings(build_settings())

    assert result.status == "warn"
    fields = {issue.field for issue in result.issues}
    assert "providers.news_api_key" in fields
    assert "providers.binance_api_key" not in fields
    assert all(issue.level == "warn" for issue in result.issues)


def test_enabled_source_without_credential_is_flagged() -> None:
    result = validate_settings(build_settings())
    messages = [issue.message for issue in result.issues if issue.field == "ensemble.enabled_sources"]
    assert any("financial_bert" in message for message in messages)


def test_missing_required_credential_fails_fast() -> None:
    settings = build_settings(required_credentials=["gemini"])

    result = validate_settings(settings)
    assert result.status == "fail"
    with pytest.raises(ConfigurationError, match="gemini"):
        ensure_valid_settings(settings)


def test_present_required_credential_passes() -> None:
    settings = build_settings(
        providers=ProviderSettings(gemini_api_key="g-key", huggingface_api_key="hf-key"),
        required_credentials=["gemini"],
    )
    result = ensure_valid_settings(settings)
    assert result.status != "fail"


def test_zero_retries_is_rejected() -> None:
    result = validate_settings(build_settings(fetch=FetchSettings(retries=0)))
    assert result.status == "fail"
    assert any(issue.field == "fetch.retries" for issue in result.issues)


def test_unknown_ensemble_source_is_rejected() -> None:
    settings = build_settings(ensemble=EnsembleSettings(enabled_sources=["gemini", "oracle"]))
    result = validate_settings(settings)
    assert result.status == "fail"
