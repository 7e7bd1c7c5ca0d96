"""
Unit tests for bearer token validation.

Tests signature, issuer, audience, expiry and role extraction.
"""

import time

import pytest

from awsinfra.auth import ENTRY_CREATE, ENTRY_READ, TokenValidator
from awsinfra.config import parse_role_map
from awsinfra.core.exceptions import AuthenticationFailed, AuthenticationUnavailable

from conftest import AUDIENCE, ISSUER


@pytest.fixture
def validator(signing_keys):
    return TokenValidator(
        signing_keys,
        issuer=ISSUER,
        audience=AUDIENCE,
        role_map=parse_role_map("writers=entry:create,entry:read;readers=entry:read"),
        leeway_seconds=30,
    )


async def test_valid_token(validator, make_token):
    principal = await validator.validate(make_token(sub="abc-123"))

    assert principal.subject == "abc-123"
    assert principal.roles == frozenset({ENTRY_CREATE, ENTRY_READ})
    assert principal.claims["iss"] == ISSUER


async def test_malformed_token(validator):
    with pytest.raises(AuthenticationFailed) as exc_info:
        await validator.validate("invalid.token.here")
    assert exc_info.value.status_code == 401


async def test_token_without_kid(validator, make_token):
    with pytest.raises(AuthenticationFailed, match="key id"):
        await validator.validate(make_token(kid=None))


async def test_token_signed_with_unknown_key(validator, make_token, other_rsa_key):
    token = make_token(key=other_rsa_key)

    with pytest.raises(AuthenticationFailed, match="Invalid signature"):
        await validator.validate(token)


async def test_unknown_kid_rejected(validator, make_token, other_rsa_key):
    token = make_token(key=other_rsa_key, kid="rogue")

    with pytest.raises(AuthenticationFailed, match="Unknown signing key"):
        await validator.validate(token)


async def test_rotated_key_picked_up(validator, make_token, jwks_server, other_rsa_key):
    await validator.validate(make_token())
    jwks_server.add_key("test-key-2", other_rsa_key)

    principal = await validator.validate(make_token(key=other_rsa_key, kid="test-key-2"))
    assert principal.subject == "user-123"


async def test_expired_token(validator, make_token):
    token = make_token(exp_in=-120)

    with pytest.raises(AuthenticationFailed, match="expired"):
        await validator.validate(token)


async def test_expired_within_leeway_accepted(validator, make_token):
    principal = await validator.validate(make_token(exp_in=-10))
    assert principal.subject == "user-123"


async def test_premature_token(validator, make_token):
    token = make_token(nbf=int(time.time()) + 600)

    with pytest.raises(AuthenticationFailed, match="not yet valid"):
        await validator.validate(token)


async def test_premature_within_leeway_accepted(validator, make_token):
    principal = await validator.validate(make_token(nbf=int(time.time()) + 10))
    assert principal.subject == "user-123"


async def test_wrong_issuer(validator, make_token):
    with pytest.raises(AuthenticationFailed, match="issuer"):
        await validator.validate(make_token(iss="https://evil.example.com"))


async def test_wrong_audience(validator, make_token):
    with pytest.raises(AuthenticationFailed, match="audience"):
        await validator.validate(make_token(aud="someone-else"))


async def test_missing_subject(validator, make_token):
    with pytest.raises(AuthenticationFailed, match="sub"):
        await validator.validate(make_token(sub=None))


async def test_unreachable_jwks(validator, make_token, jwks_server):
    jwks_server.fail = True

    with pytest.raises(AuthenticationUnavailable) as exc_info:
        await validator.validate(make_token())
    assert exc_info.value.status_code == 503


async def test_cached_keys_survive_outage(validator, make_token, jwks_server):
    await validator.validate(make_token())
    jwks_server.fail = True

    principal = await validator.validate(make_token())
    assert principal.subject == "user-123"


async def test_extract_roles_from_mapped_groups(validator):
    assert validator.extract_roles({"cognito:groups": ["readers"]}) == frozenset({ENTRY_READ})
    assert validator.extract_roles({"cognito:groups": ["writers"]}) == frozenset(
        {ENTRY_CREATE, ENTRY_READ}
    )


async def test_extract_roles_passes_internal_roles_through(validator):
    assert validator.extract_roles({"cognito:groups": ["entry:read"]}) == frozenset({ENTRY_READ})


async def test_extract_roles_ignores_unknown_values(validator):
    claims = {"cognito:groups": ["marketing", 42, "readers"]}
    assert validator.extract_roles(claims) == frozenset({ENTRY_READ})


async def test_extract_roles_space_delimited(signing_keys):
    validator = TokenValidator(signing_keys, issuer=ISSUER, audience=AUDIENCE, roles_claim="scope")
    assert validator.extract_roles({"scope": "openid entry:create"}) == frozenset({ENTRY_CREATE})


async def test_extract_roles_missing_claim(validator):
    assert validator.extract_roles({}) == frozenset()
    assert validator.extract_roles({"cognito:groups": {"not": "a list"}}) == frozenset()
