"""
Bearer-token authentication for storefront requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import bind_user, get_logger

ADMIN_ROLES = frozenset({"admin", "super_admin"})


@dataclass(frozen=True)
class AuthContext:
    """Who is calling. Trusted as given by the cache and resource layers."""

    user_id: Optional[str]
    email: Optional[str] = None
    role: str = "customer"
    is_anonymous: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None and not self.is_anonymous

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role in ADMIN_ROLES

    def require_user(self) -> str:
        if not self.is_authenticated:
            raise AuthenticationError()
        return self.user_id

    def require_admin(self) -> str:
        user_id = self.require_user()
        if not self.is_admin:
            raise AuthorizationError("Admin access required")
        return user_id


ANONYMOUS = AuthContext(user_id=None, is_anonymous=True)


class JWTAuthenticator:
    """Validates HS256 bearer tokens issued by the storefront auth flow."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.logger = get_logger("storefront.auth.jwt")

    async def authenticate(self, request: Request) -> AuthContext:
        """Resolve the caller; requests without a bearer token are anonymous."""
        authorization = request.headers.get("Authorization")
        if not authorization:
            return ANONYMOUS
        if not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid Authorization header")

        token = authorization[7:].strip()
        if not token:
            raise AuthenticationError("Authorization header contained empty bearer token")

        claims = self._decode(token)
        user_id = claims.get("sub") or claims.get("id")
        if not isinstance(user_id, str) or not user_id:
            raise AuthenticationError("JWT missing subject claim")

        context = AuthContext(
            user_id=user_id,
            email=claims.get("email"),
            role=claims.get("role", "customer"),
            is_anonymous=bool(claims.get("isAnonymous", False)),
        )
        request.state.auth_context = context
        bind_user(user_id)
        return context

    def _decode(self, token: str) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "verify_aud": self.audience is not None,
            "verify_iss": self.issuer is not None,
        }
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options=options,
            )
        except JWTError as exc:
            self.logger.info("Rejected bearer token", error=str(exc))
            raise AuthenticationError("JWT validation failed", details={"error": str(exc)}) from exc
