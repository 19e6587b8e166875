"""Tests for the token authority."""

import pytest

SECRET = "test-signing-secret-0123456789abcdef"


def make_authority(clock=None, ttl=3600):
    from mcp_gateway.oauth import TokenAuthority

    kwargs = {"clock": clock} if clock else {}
    return TokenAuthority("http://gateway.test/", SECRET, token_ttl_seconds=ttl, **kwargs)


def register(authority, name="acme"):
    from mcp_common.models import ClientRegistrationRequest

    return authority.register_client(ClientRegistrationRequest(client_name=name))


class TestSigningSecret:
    """Tests for signing secret validation."""

    @pytest.mark.parametrize("secret", [
        None,
        "",
        "CHANGEME-please-set-a-real-secret-value",
        "change-me-0123456789abcdef0123456789",
        "secret",
        "too-short",
    ])
    def test_rejects_unusable_secrets(self, secret):
        """Test that missing, placeholder and short secrets are refused."""
        from mcp_gateway.errors import ConfigurationError
        from mcp_gateway.oauth import TokenAuthority

        with pytest.raises(ConfigurationError):
            TokenAuthority("http://gateway.test", secret)

    def test_accepts_long_secret(self):
        """Test that a 32-byte secret is accepted."""
        from mcp_gateway.oauth import validate_signing_secret

        assert validate_signing_secret("x" * 32) == "x" * 32


class TestClientRegistration:
    """Tests for dynamic client registration."""

    def test_register_client_defaults(self):
        """Test registration fills RFC 7591 defaults."""
        authority = make_authority()

        client = register(authority)

        assert client.client_id.startswith("client_")
        assert client.client_secret.startswith("secret_")
        assert client.client_name == "acme"
        assert client.grant_types == ["authorization_code", "refresh_token"]
        assert client.response_types == ["code"]
        assert client.scope == "mcp"
        assert client.token_endpoint_auth_method == "client_secret_post"
        assert client.client_secret_expires_at == 0
        assert authority.get_client(client.client_id) == client

    def test_registrations_are_unique(self):
        """Test that each registration gets fresh credentials."""
        authority = make_authority()

        clients = [register(authority) for _ in range(20)]

        assert len({c.client_id for c in clients}) == 20
        assert len({c.client_secret for c in clients}) == 20
        assert authority.client_count == 20

    def test_blank_name_rejected(self):
        """Test that a blank client name is invalid metadata."""
        from mcp_gateway.errors import ClientRegistrationError

        authority = make_authority()

        with pytest.raises(ClientRegistrationError) as exc_info:
            register(authority, name="   ")

        assert exc_info.value.error == "invalid_client_metadata"
        assert authority.client_count == 0

    def test_secret_not_in_repr(self):
        """Test that the client secret stays out of repr."""
        client = register(make_authority())

        assert client.client_secret not in repr(client)


class TestTokenIssuance:
    """Tests for token issuance and validation."""

    def test_issue_token(self):
        """Test issuing a token for valid credentials."""
        from jose import jwt
        from mcp_common.models import TokenRequest

        authority = make_authority()
        client = register(authority)

        token = authority.issue_token(TokenRequest(
            grant_type="client_credentials",
            client_id=client.client_id,
            client_secret=client.client_secret,
        ))

        assert token.token_type == "Bearer"
        assert token.expires_in == 3600
        assert token.scope == "mcp"
        assert token.refresh_token.startswith("refresh_")
        assert authority.validate_token(token.access_token)
        assert authority.client_id_for(token.access_token) == client.client_id

        claims = jwt.decode(token.access_token, SECRET, algorithms=["HS256"])
        assert claims["sub"] == client.client_id
        assert claims["iss"] == "http://gateway.test"
        assert claims["exp"] - claims["iat"] == 3600
        assert claims["jti"]

    def test_tokens_are_unique(self):
        """Test that repeated issuance within the same second differs."""
        from mcp_common.models import TokenRequest

        authority = make_authority()
        client = register(authority)
        request = TokenRequest(
            grant_type="client_credentials",
            client_id=client.client_id,
            client_secret=client.client_secret,
        )

        tokens = {authority.issue_token(request).access_token for _ in range(5)}

        assert len(tokens) == 5

    def test_wrong_secret_rejected(self):
        """Test that a mismatched secret issues nothing."""
        from mcp_common.models import TokenRequest
        from mcp_gateway.errors import TokenIssuanceError

        authority = make_authority()
        client = register(authority)

        with pytest.raises(TokenIssuanceError) as exc_info:
            authority.issue_token(TokenRequest(
                grant_type="client_credentials",
                client_id=client.client_id,
                client_secret="wrong",
            ))

        assert exc_info.value.error == "invalid_client"
        assert authority.token_count == 0

    def test_unknown_client_same_error_as_wrong_secret(self):
        """Test that unknown clients are indistinguishable from bad secrets."""
        from mcp_common.models import TokenRequest
        from mcp_gateway.errors import TokenIssuanceError

        authority = make_authority()

        with pytest.raises(TokenIssuanceError) as exc_info:
            authority.issue_token(TokenRequest(
                grant_type="client_credentials",
                client_id="client_nope",
                client_secret="whatever",
            ))

        assert exc_info.value.error == "invalid_client"
        assert exc_info.value.description == "Invalid client credentials"

    def test_missing_grant_type(self):
        """Test that the grant type is required."""
        from mcp_common.models import TokenRequest
        from mcp_gateway.errors import TokenIssuanceError

        authority = make_authority()
        client = register(authority)

        with pytest.raises(TokenIssuanceError) as exc_info:
            authority.issue_token(TokenRequest(
                client_id=client.client_id,
                client_secret=client.client_secret,
            ))

        assert exc_info.value.error == "invalid_request"

    def test_token_expiry_evicts(self, clock):
        """Test that expired tokens fail validation and are evicted."""
        from mcp_common.models import TokenRequest

        authority = make_authority(clock=clock, ttl=60)
        client = register(authority)
        token = authority.issue_token(TokenRequest(
            grant_type="client_credentials",
            client_id=client.client_id,
            client_secret=client.client_secret,
        )).access_token

        clock.advance(seconds=59)
        assert authority.validate_token(token)

        clock.advance(seconds=1)
        assert not authority.validate_token(token)
        assert authority.token_count == 0

    def test_unknown_token(self):
        """Test that unknown and empty tokens are invalid."""
        authority = make_authority()

        assert not authority.validate_token("not-a-token")
        assert not authority.validate_token("")
        assert not authority.validate_token(None)

    def test_sweep_expired(self, clock):
        """Test sweeping removes only expired tokens."""
        from mcp_common.models import TokenRequest

        authority = make_authority(clock=clock, ttl=60)
        client = register(authority)
        request = TokenRequest(
            grant_type="client_credentials",
            client_id=client.client_id,
            client_secret=client.client_secret,
        )
        authority.issue_token(request)
        clock.advance(seconds=30)
        fresh = authority.issue_token(request).access_token
        clock.advance(seconds=40)

        assert authority.sweep_expired() == 1
        assert authority.token_count == 1
        assert authority.validate_token(fresh)


class TestDiscoveryMetadata:
    """Tests for authorization server metadata."""

    def test_metadata_uses_issuer(self):
        """Test endpoints are derived from the issuer without a trailing slash."""
        metadata = make_authority().discovery_metadata()

        assert metadata.issuer == "http://gateway.test"
        assert metadata.token_endpoint == "http://gateway.test/oauth/token"
        assert metadata.registration_endpoint == "http://gateway.test/oauth/register"
        assert "client_credentials" in metadata.grant_types_supported
        assert metadata.code_challenge_methods_supported == ["S256", "plain"]
