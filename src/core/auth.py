"""
OIDC bearer token authentication.

Tokens are verified against the signing keys published by the configured
OIDC issuer. When no issuer is configured, authentication is disabled and
every request runs as an anonymous user.

Usage:
    from src.core.auth import CurrentUserDep

    @router.post("/endpoint")
    async def endpoint(user: CurrentUserDep):
        pass
"""

import logging
from typing import Annotated, Any

import httpx
import jwt
from fastapi import Depends, HTTPException, Request, status
from pydantic import BaseModel

logger = logging.getLogger(__name__)

SIGNING_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "PS256"]


class AuthenticatedUser(BaseModel):
    """Represents the caller of a request."""

    auth_type: str  # "oidc" or "anonymous"
    subject: str | None = None
    claims: dict[str, Any] = {}


class OidcVerifier:
    """Verifies bearer tokens issued by one OIDC provider for one client."""

    def __init__(self, issuer_url: str, client_id: str, jwks_uri: str):
        self.issuer_url = issuer_url
        self.client_id = client_id
        self.jwks_client = jwt.PyJWKClient(jwks_uri)

    @classmethod
    async def discover(
        cls,
        issuer_url: str,
        client_id: str,
        client: httpx.AsyncClient | None = None,
    ) -> "OidcVerifier":
        """
        Create a verifier from the issuer's discovery document.

        Raises:
            RuntimeError: If the discovery document cannot be loaded
        """
        issuer_url = issuer_url.rstrip("/")
        discovery_url = f"{issuer_url}/.well-known/openid-configuration"
        logger.debug("Fetching OpenID Connect discovery from %s", discovery_url)

        owns_client = client is None
        client = client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))
        try:
            response = await client.get(discovery_url)
            response.raise_for_status()
            jwks_uri = response.json()["jwks_uri"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise RuntimeError(f"OIDC discovery at {discovery_url} failed: {e}") from e
        finally:
            if owns_client:
                await client.aclose()

        return cls(issuer_url, client_id, jwks_uri)

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a bearer token.

        Args:
            token: The encoded JWT

        Returns:
            The decoded claims

        Raises:
            HTTPException: If the token is invalid, expired, or not issued
                for this client
        """
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims: dict[str, Any] = jwt.decode(
                token,
                signing_key.key,
                algorithms=SIGNING_ALGORITHMS,
                issuer=self.issuer_url,
                options={"verify_aud": False, "require": ["exp", "iss", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Bearer token has expired",
            ) from e
        except jwt.PyJWTError as e:
            logger.error("Bearer token validation failed: %s", e)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid bearer token: {e}",
            ) from e

        # Keycloak puts the client into azp and only lists resource servers in aud
        audience = claims.get("aud") or []
        if isinstance(audience, str):
            audience = [audience]
        if self.client_id not in audience and claims.get("azp") != self.client_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Bearer token was not issued for this client",
            )

        logger.debug("Valid token for sub: %s", claims.get("sub"))
        return claims


def _get_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:]
    return None


async def get_current_user(request: Request) -> AuthenticatedUser:
    """Get the current authenticated user.

    Args:
        request: The incoming FastAPI request

    Returns:
        AuthenticatedUser with auth information

    Raises:
        HTTPException: If the bearer token is missing or invalid
    """
    verifier: OidcVerifier | None = getattr(request.app.state, "oidc", None)
    if verifier is None:
        return AuthenticatedUser(auth_type="anonymous")

    token = _get_bearer_token(request)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Bearer token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = verifier.verify(token)
    return AuthenticatedUser(auth_type="oidc", subject=claims.get("sub"), claims=claims)


# Type alias for dependency injection
CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]
