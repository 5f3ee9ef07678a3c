"""
Core dependencies for route protection and membership checks
"""

import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, Query, Security, WebSocketException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from studysync.core.errors import AuthenticationError, PermissionDeniedError
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.database.supabase_client import get_backend
from studysync.modules.auth.service import AuthService

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_auth_service(backend: Backend = Depends(get_backend)) -> AuthService:
    return AuthService(backend)


def get_current_token(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    return credentials.credentials


async def get_current_session(
    token: str = Depends(get_current_token),
    auth_service: AuthService = Depends(get_auth_service)
) -> AuthSession:
    """Resolve the caller's AuthSession from the bearer token"""
    return await auth_service.resolve_session(token)


async def get_ws_session(
    token: Optional[str] = Query(None),
    auth_service: AuthService = Depends(get_auth_service)
) -> AuthSession:
    """WebSocket variant: browsers cannot set headers, so the token comes in the query string"""
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
    try:
        return await auth_service.resolve_session(token)
    except AuthenticationError as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)


async def get_user_backend(
    session: AuthSession = Depends(get_current_session),
    backend: Backend = Depends(get_backend)
) -> AsyncIterator[Backend]:
    """Backend whose record and storage calls run as the caller"""
    scoped = backend.for_session(session)
    try:
        yield scoped
    finally:
        await scoped.aclose()


async def get_ws_backend(
    session: AuthSession = Depends(get_ws_session),
    backend: Backend = Depends(get_backend)
) -> AsyncIterator[Backend]:
    scoped = backend.for_session(session)
    try:
        yield scoped
    finally:
        await scoped.aclose()


async def get_membership(group_id: str, user_id: str, backend: Backend) -> Optional[Dict[str, Any]]:
    return await backend.select_one(
        "group_members",
        {"group_id": group_id, "user_id": user_id},
    )


async def check_group_member(group_id: str, session: AuthSession, backend: Backend) -> Dict[str, Any]:
    """Check that the caller is a member of the group; returns the membership row"""
    membership = await get_membership(group_id, session.user_id, backend)
    if not membership:
        raise PermissionDeniedError("You must be a member of this group")
    return membership


async def check_group_admin(group_id: str, session: AuthSession, backend: Backend) -> Dict[str, Any]:
    """Check that the caller is an admin of the group"""
    membership = await get_membership(group_id, session.user_id, backend)
    if not membership or membership.get("role") != "admin":
        raise PermissionDeniedError("You must be a group admin to perform this action")
    return membership
