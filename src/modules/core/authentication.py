"""Actor JWT Authentication backend for Django REST Framework.

Session tokens are issued by the identity service of the back office and
signed with a shared secret.  The claims carry everything the workflow core
needs about the caller:

* ``sub``: numeric actor id.
* ``role``: the actor's primary role key.
* ``permissions``: merged permission keys (role grants + user overrides).

Security decisions
------------------
* **Fail Closed**: any decode / validation error returns 401.
* ``algorithms`` is hard-coded to the configured value (default HS256).
  Never derived from the incoming token.
"""

from __future__ import annotations

import jwt as pyjwt
import structlog
from django.conf import settings
from jwt.exceptions import PyJWTError

from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from modules.core.actors import ActorContext

logger = structlog.get_logger(__name__)


class Actor:
    """Lightweight user object for requests authenticated via actor tokens.

    The identity service is the source of truth: we do **not** require a
    local Django ``User`` row.  Views read ``request.user.context`` to hand
    an ``ActorContext`` to the service layer.
    """

    def __init__(self, payload: dict):
        self.payload = payload
        self.sub: str = str(payload.get("sub", ""))
        self.role: str = payload.get("role") or "none"
        self.permissions: list[str] = list(payload.get("permissions", []))

    # DRF checks
    is_authenticated = True
    is_active = True

    @property
    def pk(self) -> str:
        """Identity used by DRF's per-user throttles."""
        return self.sub

    @property
    def context(self) -> ActorContext:
        return ActorContext(
            actor_id=int(self.sub),
            role=self.role,
            permissions=frozenset(self.permissions),
        )

    def __str__(self) -> str:  # pragma: no cover
        return self.sub


class ActorJSONWebTokenAuthentication(BaseAuthentication):
    """DRF authentication class that validates actor JWT Bearer tokens."""

    keyword = "Bearer"

    def authenticate(self, request):
        """Return ``(Actor, token)`` or ``None`` (no credentials)."""
        header = request.META.get("HTTP_AUTHORIZATION", "")
        if not header:
            return None  # no credentials, DRF answers 401 downstream

        token = self._extract_token(header)
        payload = self._decode_token(token)
        user = Actor(payload)
        logger.info("jwt_authenticated", sub=user.sub, role=user.role)
        return (user, token)

    def authenticate_header(self, request):
        """Value for the ``WWW-Authenticate`` response header on 401."""
        return f'{self.keyword} realm="api"'

    @staticmethod
    def _extract_token(header: str) -> str:
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise AuthenticationFailed("Invalid Authorization header format.")
        return parts[1]

    @staticmethod
    def _decode_token(token: str) -> dict:
        try:
            payload = pyjwt.decode(
                token,
                settings.WORKFLOW_JWT_SECRET,
                algorithms=[settings.WORKFLOW_JWT_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
        except PyJWTError as exc:
            logger.warning("jwt_validation_failed", error=str(exc))
            raise AuthenticationFailed(f"Token validation failed: {exc}") from exc

        if not str(payload["sub"]).isdigit():
            raise AuthenticationFailed("Token subject must be a numeric actor id.")
        return payload
