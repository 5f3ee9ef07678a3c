import hashlib
import logging
import time
from typing import Dict, Tuple

from studysync.core.errors import AuthenticationError, BackendError, ConflictError, WriteFailure
from studysync.core.session import AuthSession
from studysync.database.backend import Backend
from studysync.modules.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, RegisterResponse

logger = logging.getLogger(__name__)

# In-memory cache for resolve_session to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_SESSION_CACHE: Dict[str, Tuple[AuthSession, float]] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def clear_auth_cache() -> None:
    _AUTH_SESSION_CACHE.clear()


class AuthService:
    def __init__(self, backend: Backend):
        self.backend = backend

    async def register(self, register_data: RegisterRequest) -> RegisterResponse:
        """Register a new user using Supabase Auth"""
        metadata = {"name": register_data.name} if register_data.name else {}
        try:
            user = await self.backend.sign_up(register_data.email, register_data.password, metadata)
        except BackendError as e:
            if "already registered" in e.message.lower() or "already exists" in e.message.lower():
                raise ConflictError("User already exists", code="user_exists") from e
            raise WriteFailure(f"Registration failed: {e.message}", cause=e) from e
        logger.info(f"Registered user {user['id']}")
        return RegisterResponse(
            user_id=user["id"],
            email=user.get("email") or register_data.email,
            message="User registered successfully"
        )

    async def login(self, login_data: LoginRequest) -> TokenResponse:
        """Authenticate user using Supabase Auth"""
        try:
            session = await self.backend.sign_in(login_data.email, login_data.password)
        except BackendError as e:
            logger.info(f"Failed login for {login_data.email}: [{e.code}] {e.message}")
            raise AuthenticationError("Invalid email or password") from e
        return TokenResponse(
            access_token=session["access_token"],
            user_id=session["user_id"],
            email=session.get("email") or login_data.email
        )

    async def logout(self, token: str) -> bool:
        """Sign out and drop the cached session for this token"""
        _AUTH_SESSION_CACHE.pop(hashlib.sha256(token.encode()).hexdigest(), None)
        try:
            await self.backend.sign_out(token)
            return True
        except BackendError as e:
            logger.warning(f"Sign out failed: [{e.code}] {e.message}")
            return False

    async def resolve_session(self, token: str) -> AuthSession:
        """Resolve a bearer token into an AuthSession. Uses short TTL cache to reduce auth API calls."""
        cache_key = hashlib.sha256(token.encode()).hexdigest()
        now = time.monotonic()
        if cache_key in _AUTH_SESSION_CACHE:
            session, expiry = _AUTH_SESSION_CACHE[cache_key]
            if now < expiry:
                return session
            del _AUTH_SESSION_CACHE[cache_key]
        try:
            user = await self.backend.get_user(token)
        except BackendError as e:
            raise AuthenticationError("Invalid or expired token") from e
        if not user:
            raise AuthenticationError("Invalid or expired token")
        session = AuthSession.from_user(user, access_token=token)
        if len(_AUTH_SESSION_CACHE) < _AUTH_CACHE_MAX_SIZE:
            _AUTH_SESSION_CACHE[cache_key] = (session, now + _AUTH_CACHE_TTL_SEC)
        return session
