import httpx
import pytest
from pydantic import ValidationError

from conftest import DOMAIN, make_token
from portal_setup.auth import ManagementAuthenticator, ManagementToken, check_domain_reachable
from portal_setup.config import SecretRef, SetupConfig
from portal_setup.errors import ValidationFailure


def _config(**overrides) -> SetupConfig:
    values = dict(domain=DOMAIN, token=SecretRef(value="x"), portal_url="https://portal.example.com")
    values.update(overrides)
    return SetupConfig(**values)


def test_portal_url_trailing_slash_is_stripped():
    assert _config(portal_url="https://portal.example.com/").portal_url == "https://portal.example.com"


@pytest.mark.parametrize("url", ["portal.example.com", "ftp://portal.example.com", "https://"])
def test_portal_url_must_be_absolute_http(url):
    with pytest.raises(ValidationError):
        _config(portal_url=url)


def test_domain_is_reduced_to_host():
    config = _config(domain="https://t.example.com/")

    assert config.domain == DOMAIN
    assert config.management_api_base == "https://t.example.com/api/v2"
    assert config.management_audience == "https://t.example.com/api/v2/"


def test_retry_defaults_match_fixed_five_second_unbounded_policy():
    retry = _config().retry

    assert retry.delay_seconds == 5.0
    assert retry.max_attempts is None
    assert retry.retry_on_status == [429]


def test_load_reads_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv("PORTAL_TOKEN", "tok")
    path = tmp_path / "setup.yaml"
    path.write_text(
        "domain: t.example.com\n"
        "token:\n  env: PORTAL_TOKEN\n"
        "portal_url: https://portal.example.com/\n"
        "retry:\n  delay_seconds: 1.5\n",
        encoding="utf-8",
    )

    config = SetupConfig.load(path)

    assert config.token.resolve() == "tok"
    assert config.retry.delay_seconds == 1.5


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SetupConfig.load(tmp_path / "missing.yaml")


def test_token_with_matching_issuer_and_scopes_validates():
    ManagementToken.from_raw(make_token()).validate_for(DOMAIN)


def test_token_issuer_must_match_domain():
    with pytest.raises(ValidationFailure, match="does not match the domain"):
        ManagementToken.from_raw(make_token(domain="other.auth0.com")).validate_for(DOMAIN)


def test_token_missing_scopes_are_listed():
    token = ManagementToken.from_raw(make_token(scopes=["read:connections", "create:clients"]))

    with pytest.raises(ValidationFailure, match="create:rules"):
        token.validate_for(DOMAIN)
    assert "update:connections" in token.missing_scopes()


def test_garbage_token_is_rejected():
    with pytest.raises(ValidationFailure):
        ManagementToken.from_raw("not-a-jwt")


def test_authenticator_caches_validated_token(audit_logger, audit_store):
    config = _config(token=SecretRef(value=make_token()))
    authenticator = ManagementAuthenticator(config, audit_logger)

    assert authenticator.acquire_token() == authenticator.acquire_token()
    assert len(audit_store.named("token_validated")) == 1


def test_authenticator_reports_unset_env(audit_logger, monkeypatch):
    monkeypatch.delenv("UNSET_PORTAL_TOKEN", raising=False)
    config = _config(token=SecretRef(env="UNSET_PORTAL_TOKEN"))

    with pytest.raises(ValidationFailure):
        ManagementAuthenticator(config, audit_logger).acquire_token()


@pytest.mark.asyncio
async def test_domain_probe():
    ok = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    await check_domain_reachable(DOMAIN, client=ok)

    missing = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
    with pytest.raises(ValidationFailure):
        await check_domain_reachable("nope.example.com", client=missing)
