"""Unit tests for the signing-key cache."""

import asyncio

import httpx
import pytest

from awsinfra.auth.jwks import (
    SigningKeyCache,
    parse_jwks,
    rsa_public_key_from_jwk,
    rsa_public_key_to_jwk,
)
from awsinfra.core.exceptions import AuthenticationUnavailable

from conftest import JWKS_URL, KID


def test_jwk_round_trip(rsa_key):
    public_key = rsa_key.public_key()
    jwk = rsa_public_key_to_jwk("k1", public_key)

    assert jwk["kty"] == "RSA"
    assert jwk["alg"] == "RS256"
    assert rsa_public_key_from_jwk(jwk).public_numbers() == public_key.public_numbers()


def test_parse_jwks_skips_unusable_keys(rsa_key):
    good = rsa_public_key_to_jwk("good", rsa_key.public_key())
    document = {
        "keys": [
            good,
            {"kid": "ec", "kty": "EC", "crv": "P-256", "x": "AA", "y": "AA"},
            dict(good, kid="enc", use="enc"),
            {"kty": "RSA", "n": good["n"], "e": good["e"]},
        ]
    }

    keys = parse_jwks(document)
    assert list(keys) == ["good"]


def test_unsupported_kty_rejected():
    with pytest.raises(ValueError):
        rsa_public_key_from_jwk({"kty": "oct", "k": "c2VjcmV0"})


async def test_start_loads_keys(signing_keys, jwks_server):
    await signing_keys.start()

    assert KID in signing_keys.keys
    assert jwks_server.requests == 1
    assert signing_keys.started


async def test_start_tolerates_unreachable_issuer(signing_keys, jwks_server):
    jwks_server.fail = True

    await signing_keys.start()

    assert dict(signing_keys.keys) == {}
    jwks_server.fail = False
    assert await signing_keys.get_key(KID) is not None


async def test_known_kid_served_from_cache(signing_keys, jwks_server):
    await signing_keys.start()

    for _ in range(5):
        assert await signing_keys.get_key(KID) is not None
    assert jwks_server.requests == 1


async def test_unknown_kid_triggers_single_refresh(signing_keys, jwks_server):
    await signing_keys.start()

    assert await signing_keys.get_key("missing") is None
    assert jwks_server.requests == 2


async def test_unknown_kid_refresh_is_rate_limited(jwks_server):
    cache = SigningKeyCache(
        JWKS_URL,
        refresh_interval=0,
        min_refresh_interval=60,
        transport=jwks_server.transport(),
    )
    await cache.start()
    try:
        for _ in range(3):
            assert await cache.get_key("missing") is None
        assert jwks_server.requests == 1
    finally:
        await cache.close()


async def test_concurrent_refreshes_coalesce(signing_keys, jwks_server):
    results = await asyncio.gather(*(signing_keys.get_key(KID) for _ in range(10)))

    assert all(key is not None for key in results)
    assert jwks_server.requests == 1


async def test_refresh_publishes_whole_set(signing_keys, jwks_server, other_rsa_key):
    await signing_keys.start()
    before = signing_keys.keys

    jwks_server.add_key("second", other_rsa_key)
    await signing_keys.refresh()

    assert set(signing_keys.keys) == {KID, "second"}
    # The previous snapshot is never mutated in place
    assert set(before) == {KID}


async def test_failed_refresh_keeps_previous_keys(signing_keys, jwks_server):
    await signing_keys.start()
    jwks_server.fail = True

    with pytest.raises(AuthenticationUnavailable):
        await signing_keys.refresh()
    assert KID in signing_keys.keys


async def test_non_json_document():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
    cache = SigningKeyCache(JWKS_URL, refresh_interval=0, transport=transport)
    try:
        with pytest.raises(AuthenticationUnavailable):
            await cache.refresh()
    finally:
        await cache.close()


async def test_http_error_status():
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    cache = SigningKeyCache(JWKS_URL, refresh_interval=0, transport=transport)
    try:
        with pytest.raises(AuthenticationUnavailable):
            await cache.get_key(KID)
    finally:
        await cache.close()


async def test_periodic_refresh_task(jwks_server):
    cache = SigningKeyCache(
        JWKS_URL,
        refresh_interval=0.01,
        transport=jwks_server.transport(),
    )
    await cache.start()
    try:
        await asyncio.sleep(0.1)
        assert jwks_server.requests >= 2
    finally:
        await cache.close()
    assert not cache.started


async def test_concurrent_callers_share_failed_refresh():
    requests = []

    async def slow_failure(request):
        requests.append(request)
        await asyncio.sleep(0.2)
        raise httpx.ConnectError("issuer unreachable", request=request)

    cache = SigningKeyCache(
        JWKS_URL,
        refresh_interval=0,
        min_refresh_interval=10,
        transport=httpx.MockTransport(slow_failure),
    )
    loop = asyncio.get_running_loop()
    started = loop.time()
    try:
        results = await asyncio.gather(
            *(cache.get_key("k") for _ in range(5)), return_exceptions=True
        )
    finally:
        await cache.close()

    assert len(requests) == 1
    assert all(isinstance(r, AuthenticationUnavailable) for r in results)
    assert loop.time() - started < 0.6


async def test_failed_fetch_not_retried_within_min_interval(jwks_server):
    jwks_server.fail = True
    cache = SigningKeyCache(
        JWKS_URL,
        refresh_interval=0,
        min_refresh_interval=60,
        transport=jwks_server.transport(),
    )
    await cache.start()
    try:
        for _ in range(3):
            with pytest.raises(AuthenticationUnavailable):
                await cache.get_key(KID)
        assert jwks_server.requests == 1
    finally:
        await cache.close()
