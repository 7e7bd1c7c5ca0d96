"""Bearer token validation.

Tokens are issued by an external identity provider (Cognito) using RS256
and published via JWKS. This module never issues tokens.
"""

from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Set

import jwt
from loguru import logger

from ..core.exceptions import AuthenticationFailed
from .jwks import SigningKeyCache
from .principal import INTERNAL_ROLES, Principal

ALGORITHM = "RS256"


class TokenValidator:
    """Turns a bearer token into a Principal or raises.

    Raises:
        AuthenticationFailed: malformed, unsigned, expired, premature or
            foreign tokens
        AuthenticationUnavailable: the signing-key set cannot be fetched
    """

    def __init__(
        self,
        signing_keys: SigningKeyCache,
        *,
        issuer: str,
        audience: str,
        roles_claim: str = "cognito:groups",
        role_map: Optional[Mapping[str, FrozenSet[str]]] = None,
        leeway_seconds: int = 60,
    ):
        self.signing_keys = signing_keys
        self.issuer = issuer.rstrip("/")
        self.audience = audience
        self.roles_claim = roles_claim
        self.role_map = dict(role_map or {})
        self.leeway_seconds = leeway_seconds

    async def validate(self, token: str) -> Principal:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError:
            raise AuthenticationFailed("Malformed token")

        if header.get("alg") != ALGORITHM:
            raise AuthenticationFailed("Unsupported token algorithm")
        kid = header.get("kid")
        if not kid:
            raise AuthenticationFailed("Token has no key id")

        public_key = await self.signing_keys.get_key(kid)
        if public_key is None:
            raise AuthenticationFailed("Unknown signing key")

        try:
            claims = jwt.decode(
                token,
                public_key,
                algorithms=[ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                leeway=self.leeway_seconds,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationFailed("Token expired")
        except jwt.ImmatureSignatureError:
            raise AuthenticationFailed("Token not yet valid")
        except jwt.InvalidAudienceError:
            raise AuthenticationFailed("Invalid audience")
        except jwt.InvalidIssuerError:
            raise AuthenticationFailed("Invalid issuer")
        except jwt.InvalidSignatureError:
            raise AuthenticationFailed("Invalid signature")
        except jwt.MissingRequiredClaimError as e:
            raise AuthenticationFailed(f"Missing claim '{e.claim}'")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {e}")
            raise AuthenticationFailed("Invalid token")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationFailed("Invalid subject")

        return Principal(subject=subject, roles=self.extract_roles(claims), claims=claims)

    def extract_roles(self, claims: Dict[str, Any]) -> FrozenSet[str]:
        """Map the configured group claim onto internal roles."""
        raw = claims.get(self.roles_claim)
        if raw is None:
            return frozenset()
        if isinstance(raw, str):
            values: Iterable[Any] = raw.split()
        elif isinstance(raw, (list, tuple)):
            values = raw
        else:
            return frozenset()

        roles: Set[str] = set()
        for value in values:
            if not isinstance(value, str):
                continue
            if value in self.role_map:
                roles.update(self.role_map[value])
            elif value in INTERNAL_ROLES:
                roles.add(value)
        return frozenset(roles)
