"""Tests for the router firmware client: challenge-response, RCI and target resolution."""

from __future__ import annotations

import hashlib
import json

import pytest
import requests

from conftest import FakeResponse, FakeRouter, ndm_auth_handler, unreachable_handler
from src.ndm.challenge import ChallengeResponseVerifier, compute_response
from src.ndm.errors import (
    InvalidCredentialsError,
    RouterProtocolError,
    RouterUnreachableError,
)
from src.ndm.rci import RciClient
from src.ndm.target import FALLBACK_URL, TargetResolver


# ===================== Response Hash =====================


class TestComputeResponse:
    def test_known_vector(self) -> None:
        assert compute_response("alice", "secret", "example", "abc123") == (
            "84c6556a839355ff32b59228139f41b1cdc8d6f970fd2796d9f33d4a5ec59539"
        )

    def test_second_known_vector(self) -> None:
        assert compute_response("admin", "p@ss", "Keenetic", "XYZ") == (
            "de839ef7e1d4f78f35c5c6cd3a483fa72cd3cc269099eb920d1a558a75819371"
        )

    @pytest.mark.parametrize(
        "user,password,realm,challenge",
        [
            ("alice", "secret", "example", "abc123"),
            ("admin", "", "Keenetic Giga", "0" * 32),
            ("пользователь", "пароль", "realm", "ch"),
        ],
    )
    def test_matches_reference_and_is_deterministic(self, user, password, realm, challenge) -> None:
        h1 = hashlib.md5(f"{user}:{realm}:{password}".encode()).hexdigest()
        reference = hashlib.sha256((challenge + h1).encode()).hexdigest()
        first = compute_response(user, password, realm, challenge)
        assert first == reference
        assert compute_response(user, password, realm, challenge) == first
        assert len(first) == 64 and first == first.lower()

    def test_field_order_matters(self) -> None:
        assert compute_response("a", "b", "r", "c") != compute_response("b", "a", "r", "c")


# ===================== Challenge-Response Verifier =====================


class TestVerifierLogin:
    def test_full_exchange(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=ndm_router)
        assert verifier.login("alice", "secret") == "alice"

        get, post = ndm_router.calls
        assert (get.method, get.url) == ("GET", "http://192.168.1.1/auth")
        assert (post.method, post.url) == ("POST", "http://192.168.1.1/auth")
        assert post.kwargs["json"] == {
            "login": "alice",
            "password": "84c6556a839355ff32b59228139f41b1cdc8d6f970fd2796d9f33d4a5ec59539",
        }
        assert json.loads(json.dumps(post.kwargs["json"])) == post.kwargs["json"]

    def test_replays_challenge_cookies(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=ndm_router)
        verifier.login("alice", "secret")
        assert dict(ndm_router.calls[1].kwargs["cookies"]) == {"ndm_sid": "s1d"}

    def test_never_auto_follows_redirects_and_sets_timeout(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://192.168.1.1", timeout=3.0, session_factory=ndm_router)
        verifier.login("alice", "secret")
        for call in ndm_router.calls:
            assert call.kwargs["allow_redirects"] is False
            assert call.kwargs["timeout"] == 3.0

    def test_session_opened_and_closed_per_call(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=ndm_router)
        verifier.login("alice", "secret")
        verifier.verify_once("alice", "wrong")
        assert ndm_router.opened == ndm_router.closed == 2

    def test_wrong_password_is_invalid_credentials(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=ndm_router)
        with pytest.raises(InvalidCredentialsError) as info:
            verifier.login("alice", "wrong")
        # No router status code leaks into the error text
        assert str(info.value) == "invalid credentials"
        assert "401" not in str(info.value)

    def test_200_on_probe_grants_without_post(self) -> None:
        router = FakeRouter(lambda m, u, kw: FakeResponse(200))
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        assert verifier.login("alice", "whatever") == "alice"
        assert router.methods() == ["GET"]

    def test_follows_exactly_one_redirect(self) -> None:
        inner = ndm_auth_handler({"alice": "secret"})

        def handler(method, url, kwargs):
            if url.startswith("http://"):
                return FakeResponse(301, headers={"Location": "https://192.168.1.1/auth"})
            return inner(method, url, kwargs)

        router = FakeRouter(handler)
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        assert verifier.login("alice", "secret") == "alice"
        assert [c.url for c in router.calls] == [
            "http://192.168.1.1/auth",
            "https://192.168.1.1/auth",
            "https://192.168.1.1/auth",
        ]
        assert router.methods() == ["GET", "GET", "POST"]

    def test_relative_redirect_location(self) -> None:
        def handler(method, url, kwargs):
            if url == "http://192.168.1.1/auth":
                return FakeResponse(302, headers={"Location": "/ndm/auth"})
            return FakeResponse(200)

        router = FakeRouter(handler)
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        verifier.login("alice", "secret")
        assert router.calls[1].url == "http://192.168.1.1/ndm/auth"

    def test_second_redirect_is_protocol_error(self) -> None:
        router = FakeRouter(lambda m, u, kw: FakeResponse(307, headers={"Location": "https://other/auth"}))
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        with pytest.raises(RouterProtocolError):
            verifier.login("alice", "secret")
        assert len(router.calls) == 2

    @pytest.mark.parametrize(
        "headers",
        [{}, {"X-NDM-Realm": "example"}, {"X-NDM-Challenge": "abc123"}],
    )
    def test_missing_challenge_headers_is_protocol_error(self, headers) -> None:
        router = FakeRouter(lambda m, u, kw: FakeResponse(401, headers=headers))
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        with pytest.raises(RouterProtocolError):
            verifier.login("alice", "secret")
        assert router.methods() == ["GET"]

    def test_unexpected_status_is_protocol_error(self) -> None:
        router = FakeRouter(lambda m, u, kw: FakeResponse(500))
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        with pytest.raises(RouterProtocolError):
            verifier.login("alice", "secret")

    def test_unreachable_is_distinct_error(self) -> None:
        router = FakeRouter(unreachable_handler)
        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=router)
        with pytest.raises(RouterUnreachableError) as info:
            verifier.login("alice", "secret")
        assert not isinstance(info.value, InvalidCredentialsError)

    def test_timeout_is_unreachable(self) -> None:
        def handler(method, url, kwargs):
            raise requests.Timeout("read timed out")

        verifier = ChallengeResponseVerifier("http://192.168.1.1", session_factory=FakeRouter(handler))
        with pytest.raises(RouterUnreachableError):
            verifier.login("alice", "secret")


class TestVerifyOnce:
    def test_true_for_valid(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://r", session_factory=ndm_router)
        assert verifier.verify_once("alice", "secret") is True

    def test_false_for_invalid(self, ndm_router: FakeRouter) -> None:
        verifier = ChallengeResponseVerifier("http://r", session_factory=ndm_router)
        assert verifier.verify_once("alice", "nope") is False
        assert verifier.verify_once("mallory", "secret") is False

    def test_false_when_unreachable(self) -> None:
        verifier = ChallengeResponseVerifier("http://r", session_factory=FakeRouter(unreachable_handler))
        assert verifier.verify_once("alice", "secret") is False


class TestCheckCookies:
    def test_trusted_cookie_set(self) -> None:
        def handler(method, url, kwargs):
            ok = dict(kwargs.get("cookies") or {}).get("sid") == "good"
            return FakeResponse(200 if ok else 401, headers={"X-NDM-Realm": "r", "X-NDM-Challenge": "c"})

        verifier = ChallengeResponseVerifier("http://r", session_factory=FakeRouter(handler))
        assert verifier.check_cookies({"sid": "good"}) is True
        assert verifier.check_cookies({"sid": "bad"}) is False

    def test_unexpected_status_raises(self) -> None:
        verifier = ChallengeResponseVerifier("http://r", session_factory=FakeRouter(lambda m, u, kw: FakeResponse(503)))
        with pytest.raises(RouterProtocolError):
            verifier.check_cookies({"sid": "x"})


# ===================== RCI Client =====================


class TestRciClient:
    def test_interface_address(self) -> None:
        router = FakeRouter(lambda m, u, kw: FakeResponse(200, body={"id": "Bridge0", "address": "192.168.10.1"}))
        rci = RciClient("http://localhost:79/", session_factory=router)
        assert rci.interface_address("Bridge0") == "192.168.10.1"
        assert router.calls[0].url == "http://localhost:79/rci/show/interface/Bridge0"

    def test_missing_address_is_empty(self) -> None:
        rci = RciClient(session_factory=FakeRouter(lambda m, u, kw: FakeResponse(200, body={"id": "Home"})))
        assert rci.interface_address("Home") == ""

    def test_non_json_is_protocol_error(self) -> None:
        rci = RciClient(session_factory=FakeRouter(lambda m, u, kw: FakeResponse(200)))
        with pytest.raises(RouterProtocolError):
            rci.show_interface("Bridge0")

    def test_non_object_is_protocol_error(self) -> None:
        rci = RciClient(session_factory=FakeRouter(lambda m, u, kw: FakeResponse(200, body=["x"])))
        with pytest.raises(RouterProtocolError):
            rci.show_version()

    def test_error_status_is_protocol_error(self) -> None:
        rci = RciClient(session_factory=FakeRouter(lambda m, u, kw: FakeResponse(404, body={})))
        with pytest.raises(RouterProtocolError):
            rci.show_interface("Nope")

    def test_unreachable(self) -> None:
        rci = RciClient(session_factory=FakeRouter(unreachable_handler))
        with pytest.raises(RouterUnreachableError):
            rci.show_interface("Bridge0")


# ===================== Target Resolver =====================


def _rci_with(addresses: dict[str, object]) -> tuple[RciClient, FakeRouter]:
    """RCI fake: value is an address string, an HTTP status int, or an exception."""

    def handler(method, url, kwargs):
        name = url.rsplit("/", 1)[-1]
        value = addresses.get(name, 404)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, int):
            return FakeResponse(value)
        return FakeResponse(200, body={"address": value})

    router = FakeRouter(handler)
    return RciClient("http://localhost:79", session_factory=router), router


class TestTargetResolver:
    def test_bridge0_address(self) -> None:
        rci, router = _rci_with({"Bridge0": "192.168.10.1"})
        target = TargetResolver(rci).resolve()
        assert target.url == "http://192.168.10.1"
        assert target.source == "Bridge0"
        assert target.degraded is False
        assert len(router.calls) == 1

    def test_falls_back_to_home(self) -> None:
        rci, _ = _rci_with({"Bridge0": "", "Home": "10.0.0.1"})
        target = TargetResolver(rci).resolve()
        assert target.url == "http://10.0.0.1"
        assert target.source == "Home"
        assert not target.degraded

    def test_falls_back_to_isp_after_errors(self) -> None:
        rci, router = _rci_with({
            "Bridge0": requests.ConnectionError("down"),
            "Home": 500,
            "ISP": "172.16.0.1",
        })
        target = TargetResolver(rci).resolve()
        assert target.url == "http://172.16.0.1"
        probed = [c.url.rsplit("/", 1)[-1] for c in router.calls]
        assert probed == ["Bridge0", "Bridge0", "Home", "ISP"]

    def test_hardcoded_fallback_is_degraded(self, caplog) -> None:
        rci, _ = _rci_with({})
        with caplog.at_level("WARNING", logger="ttmanager.ndm"):
            target = TargetResolver(rci).resolve()
        assert target.url == FALLBACK_URL
        assert target.source == "fallback"
        assert target.degraded is True
        assert "fallback" in caplog.text

    def test_custom_fallback(self) -> None:
        rci, _ = _rci_with({})
        assert TargetResolver(rci, fallback_url="http://192.168.0.1/").resolve().url == "http://192.168.0.1"
