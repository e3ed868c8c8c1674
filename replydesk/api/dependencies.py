"""FastAPI dependency injection providers.

The dependency container is created in the application lifespan and stored
on ``app.state``; route handlers pull services out of it through these
functions.
"""

import hmac

import structlog
from fastapi import Depends, Header, Request

from replydesk.core.container import DependencyContainer
from replydesk.core.exceptions import UnauthorizedError

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "Bearer "


def get_container(request: Request) -> DependencyContainer:
    """
    Get the application's dependency container.

    Raises:
        RuntimeError: If the lifespan has not run.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError(
            "Dependency container not initialized. Ensure the application lifespan has run."
        )
    return container


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


async def get_current_user(
    authorization: str | None = Header(default=None),
    container: DependencyContainer = Depends(get_container),
) -> str:
    """
    Resolve the acting tenant from a Supabase access token.

    Returns:
        The tenant's user id.

    Raises:
        UnauthorizedError: Missing, malformed or rejected token.
    """
    token = _bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Missing bearer token")

    try:
        result = container.supabase.auth.get_user(token)
    except Exception as e:
        logger.warning("auth_token_rejected", error=str(e))
        raise UnauthorizedError("Invalid access token") from e

    user = getattr(result, "user", None)
    if user is None or not getattr(user, "id", None):
        raise UnauthorizedError("Invalid access token")
    return str(user.id)


async def verify_cron_secret(
    authorization: str | None = Header(default=None),
    container: DependencyContainer = Depends(get_container),
) -> None:
    """
    Require ``Authorization: Bearer <CRON_SECRET>``.

    An unset secret rejects every call rather than leaving the jobs open.
    """
    secret = container.settings.cron_secret
    if secret is None:
        logger.warning("cron_secret_not_configured")
        raise UnauthorizedError("Cron secret is not configured")

    expected = f"{BEARER_PREFIX}{secret.get_secret_value()}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("cron_unauthorized")
        raise UnauthorizedError("Invalid cron secret")
