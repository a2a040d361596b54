"""Tests for the Session model."""

from __future__ import annotations

import time

from ssokit.session import Session
from ssokit.types import ServiceConfiguration, SessionStatus, TokenSet

from tests.constants import DISCOVERY
from tests.fakes import make_id_token, make_session, make_tokens


class TestSessionStatus:
    """Tests for the derived session status."""

    def test_valid_before_expiry(self) -> None:
        """A session is valid until its ID token expires."""
        assert make_session(exp_offset=60).status is SessionStatus.VALID

    def test_expired_after_expiry(self) -> None:
        """A session is expired once the expiry has passed."""
        assert make_session(exp_offset=-60).status is SessionStatus.EXPIRED

    def test_expired_at_exact_expiry(self) -> None:
        """The expiry instant itself counts as expired."""
        session = make_session()
        exp = session.claims.exp
        assert session.status_at(exp) is SessionStatus.EXPIRED
        assert session.status_at(exp - 1) is SessionStatus.VALID

    def test_no_session_without_id_token(self) -> None:
        """Undecodable claims give NO_SESSION."""
        session = Session(TokenSet(access_token="at", id_token="garbage"))
        assert session.claims is None
        assert session.status is SessionStatus.NO_SESSION

    def test_no_session_without_exp(self) -> None:
        """Claims without an expiry give NO_SESSION."""
        session = Session(TokenSet(access_token="at", id_token=make_id_token(sub="u")))
        assert session.status is SessionStatus.NO_SESSION
        assert session.expires_at is None

    def test_no_session_with_infinite_exp(self) -> None:
        """An expiry beyond the integer range gives NO_SESSION."""
        session = Session(TokenSet(access_token="at", id_token=make_id_token(exp=float("inf"))))
        assert session.status is SessionStatus.NO_SESSION


class TestSessionState:
    """Tests for session attributes."""

    def test_online_by_default(self) -> None:
        """Sessions start online."""
        assert make_session().online is True

    def test_set_online(self) -> None:
        """The online flag can be toggled."""
        session = make_session()
        session.set_online(False)
        assert session.online is False

    def test_token_accessors(self) -> None:
        """Token values are exposed as properties."""
        session = make_session(access_token="at-x", refresh_token="rt-x")
        assert session.access_token == "at-x"
        assert session.refresh_token == "rt-x"
        assert session.id_token == session.tokens.id_token
        assert session.scope == "openid profile"

    def test_repr_hides_tokens(self) -> None:
        """The repr never contains token values."""
        session = make_session(access_token="secret-at")
        text = repr(session)
        assert "secret-at" not in text
        assert "user-1" in text


class TestSessionRefreshed:
    """Tests for deriving a refreshed session."""

    def test_replaces_instance(self) -> None:
        """A refresh creates a new, online session."""
        session = make_session(online=False)
        refreshed = session.refreshed(make_tokens(access_token="at-2", refresh_token="rt-2"))
        assert refreshed is not session
        assert refreshed.online is True
        assert refreshed.access_token == "at-2"
        assert refreshed.refresh_token == "rt-2"
        assert session.access_token == "at-1"

    def test_keeps_omitted_values(self) -> None:
        """Values the refresh response left out are carried over."""
        session = make_session()
        refreshed = session.refreshed(TokenSet(access_token="at-2"))
        assert refreshed.refresh_token == "rt-1"
        assert refreshed.id_token == session.id_token
        assert refreshed.scope == session.scope
        assert refreshed.configuration == session.configuration

    def test_new_configuration(self) -> None:
        """A configuration passed to refreshed replaces the old one."""
        session = Session(make_tokens())
        config = ServiceConfiguration(discovery=dict(DISCOVERY))
        assert session.refreshed(TokenSet(access_token="at-2"), config).configuration is config


class TestSessionSerialization:
    """Tests for to_dict / from_dict."""

    def test_round_trip(self) -> None:
        """A serialized session restores its tokens and configuration."""
        session = make_session()
        restored = Session.from_dict(session.to_dict())
        assert restored.access_token == session.access_token
        assert restored.refresh_token == session.refresh_token
        assert restored.id_token == session.id_token
        assert restored.configuration.token_endpoint == DISCOVERY["token_endpoint"]
        assert restored.status is SessionStatus.VALID

    def test_online_not_persisted(self) -> None:
        """The online flag is not stored and loads as True."""
        session = make_session(online=False)
        data = session.to_dict()
        assert "online" not in data
        assert Session.from_dict(data).online is True

    def test_missing_optional_fields(self) -> None:
        """Optional fields default when missing."""
        before = time.time()
        restored = Session.from_dict({"access_token": "at"})
        assert restored.refresh_token is None
        assert restored.tokens.token_type == "Bearer"
        assert restored.tokens.issued_at >= before
        assert restored.configuration.discovery == {}
