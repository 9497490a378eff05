"""Bearer token authentication for the admin API"""

import hashlib
from typing import Optional

from fastapi import Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import structlog

from src.cache.manager import CacheManager
from src.database.manager import DatabaseManager
from src.errors import AuthenticationError, AuthorizationError
from src.execution.pipeline import ArbitragePipeline
from src.risk.gate import Principal

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


def hash_token(token: str) -> str:
    """Tokens are stored as SHA-256 hex digests, never in clear"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def get_db_manager(request: Request) -> DatabaseManager:
    """Get database manager from app state"""
    return request.app.state.db_manager


async def get_pipeline(request: Request) -> ArbitragePipeline:
    """Get the arbitrage pipeline from app state"""
    return request.app.state.pipeline


async def get_cache_manager(request: Request) -> Optional[CacheManager]:
    """Get cache manager from app state"""
    return request.app.state.cache_manager


async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Principal:
    """
    Resolve the bearer token to an admin principal.

    Raises:
        AuthenticationError: If the token is missing or unknown (401)
        AuthorizationError: If the caller is not an admin (403)
    """
    if credentials is None or not credentials.credentials:
        logger.warning("api_auth_failed", reason="missing_token", path=request.url.path)
        raise AuthenticationError("Missing bearer token")

    db_manager: DatabaseManager = request.app.state.db_manager
    found = await db_manager.get_token_principal(hash_token(credentials.credentials))
    if found is None:
        logger.warning("api_auth_failed", reason="invalid_token", path=request.url.path)
        raise AuthenticationError("Invalid bearer token")

    user_id, roles = found
    principal = Principal(user_id=user_id, roles=list(roles))
    if not principal.is_admin:
        logger.warning("api_auth_forbidden", user_id=user_id, path=request.url.path)
        raise AuthorizationError("Admin role required")
    return principal
