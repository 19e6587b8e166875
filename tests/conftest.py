"""Shared fixtures for gateway tests."""

from datetime import datetime, timedelta, timezone

import pytest

SIGNING_SECRET = "test-signing-secret-0123456789abcdef"


class FakeClock:
    """Manually advanced clock for expiry scenarios."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 6, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    """Settings with a usable signing secret and audit under tmp_path."""
    from mcp_common.config import OAuthSettings, ServerSettings, Settings

    return Settings(
        server=ServerSettings(audit_log_path=str(tmp_path / "audit.log")),
        oauth=OAuthSettings(issuer="http://gateway.test", jwt_secret=SIGNING_SECRET),
    )
