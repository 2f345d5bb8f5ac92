"""Minimal auth dependency for the tenant dashboard endpoints.

Stub implementation: the bearer token is the tenant ID itself. Token issuance
and validation belong to the external identity provider.
"""

from typing import Annotated

from fastapi import Header, HTTPException, status


async def get_current_tenant(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the calling tenant from the authorization header.

    Args:
        authorization: Authorization header ("Bearer <tenant_id>")

    Returns:
        Tenant ID

    Raises:
        HTTPException: 401 if the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    scheme, _, token = authorization.partition(" ")
    token = token.strip()

    if scheme != "Bearer" or not token or any(ch.isspace() for ch in token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token
