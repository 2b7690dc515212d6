"""
Tests for the azure-identity token provider
"""

import asyncio

import pytest
from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError, ServiceRequestError
from azure.identity import ClientSecretCredential

from d365crm.auth import AuthError, AzureCredentialTokenProvider


class FakeCredential:
    """Synchronous stand-in for ClientSecretCredential"""

    def __init__(self, clock, tokens=("abc", "def", "ghi"), lifetime=3600, error=None):
        self._clock = clock
        self._tokens = iter(tokens)
        self._lifetime = lifetime
        self._error = error
        self.scopes = []
        self.closed = False

    def get_token(self, *scopes, **kwargs):
        self.scopes.append(scopes)
        if self._error is not None:
            raise self._error
        return AccessToken(next(self._tokens), int(self._clock()) + self._lifetime)

    def close(self):
        self.closed = True


@pytest.mark.unit
class TestAzureCredentialTokenProvider:
    @pytest.fixture
    def credential(self, clock):
        return FakeCredential(clock)

    @pytest.fixture
    def provider(self, settings, credential, clock):
        return AzureCredentialTokenProvider(settings, credential=credential, clock=clock)

    async def test_first_call_requests_d365_scope(self, provider, credential):
        assert await provider.get_token() == "abc"
        assert credential.scopes == [("https://contoso.crm.dynamics.com/.default",)]

    async def test_cached_token_reused_before_expiry(self, provider, credential, clock):
        await provider.get_token()
        clock.advance(1)

        assert await provider.get_token() == "abc"
        assert len(credential.scopes) == 1

    async def test_expires_on_converted_to_lifetime_with_skew(self, provider, clock):
        start = clock.now
        await provider.get_token()

        assert provider.state.expires_at == start + 3600 - 60

    async def test_refresh_after_expiry(self, provider, credential, clock):
        await provider.get_token()
        clock.advance(3601)

        assert await provider.get_token() == "def"
        assert await provider.get_token() == "def"
        assert len(credential.scopes) == 2

    async def test_rejected_secret_raises_auth_error(self, settings, clock):
        credential = FakeCredential(clock, error=ClientAuthenticationError(message="AADSTS7000215: Invalid client secret"))
        provider = AzureCredentialTokenProvider(settings, credential=credential, clock=clock)

        with pytest.raises(AuthError, match="AADSTS7000215") as exc_info:
            await provider.get_token()

        assert isinstance(exc_info.value.__cause__, ClientAuthenticationError)
        assert provider.state.access_token is None

    async def test_unreachable_authority_raises_auth_error(self, settings, clock):
        credential = FakeCredential(clock, error=ServiceRequestError(message="Name or service not known"))
        provider = AzureCredentialTokenProvider(settings, credential=credential, clock=clock)

        with pytest.raises(AuthError, match="Failed to acquire D365 token") as exc_info:
            await provider.get_token()

        assert isinstance(exc_info.value.__cause__, ServiceRequestError)

    async def test_unreachable_authority_fails_validation(self, settings, clock):
        credential = FakeCredential(clock, error=ServiceRequestError(message="Connection refused"))
        provider = AzureCredentialTokenProvider(settings, credential=credential, clock=clock)

        assert await provider.validate_credentials() is False

    async def test_expired_token_from_credential_rejected(self, settings, clock):
        credential = FakeCredential(clock, lifetime=0)
        provider = AzureCredentialTokenProvider(settings, credential=credential, clock=clock)

        with pytest.raises(AuthError):
            await provider.get_token()

    async def test_close_releases_credential(self, provider, credential):
        await provider.get_token()
        await provider.close()

        assert credential.closed is True
        # A second close has nothing left to release
        await provider.close()

    def test_token_survives_a_new_event_loop(self, provider, credential, clock):
        """The MCP server validates in one loop and serves tools from another"""
        assert asyncio.run(provider.get_token()) == "abc"
        clock.advance(3601)

        assert asyncio.run(provider.get_token()) == "def"
        assert len(credential.scopes) == 2

    async def test_default_credential_built_from_settings(self, settings, clock):
        provider = AzureCredentialTokenProvider(settings, clock=clock)

        credential = provider._get_credential()

        assert isinstance(credential, ClientSecretCredential)
        assert provider._get_credential() is credential
        await provider.close()

    async def test_missing_credentials_raise_before_building_credential(self, settings_factory, clock):
        provider = AzureCredentialTokenProvider(settings_factory(d365_client_secret=None), clock=clock)

        with pytest.raises(AuthError, match="D365_CLIENT_SECRET"):
            await provider.get_token()

    def test_provider_info(self, provider):
        info = provider.get_provider_info()

        assert info["type"] == "azure_identity"
        assert info["scope"] == "https://contoso.crm.dynamics.com/.default"
        assert info["client_id"] == "111111...5555"
        assert "s3cret" not in str(info)
