"""Login step of the authorization flow and the session account routes.

The consent page needs an authenticated user. Authentication is done against
Supabase when it is configured, otherwise against the demo account from the
config and any accounts registered in this process. Either way the result is
an ``AuthenticationResult``. On success the route moves the session to a new
id, keeping the pending authorization fields, and stores the user in it.
"""

import hashlib
import hmac
import logging
import secrets
import threading
import uuid
from urllib.parse import urlparse

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from oauth.models import AuthenticationResult, UserIdentity
from oauth.stores import attach_session_cookie, load_session
from oauth.templates import render_login

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["login"])


PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)


class Authenticator:
    """Checks user credentials and registers new accounts."""

    def __init__(self, config, supabase_client=None):
        self.config = config
        self.supabase = supabase_client
        # username -> (identity, salt, password hash); used without Supabase
        self._accounts: dict[str, tuple[UserIdentity, bytes, bytes]] = {}
        self._lock = threading.Lock()

    async def authenticate(self, username: str, password: str) -> AuthenticationResult:
        if not username or not password:
            return AuthenticationResult.failure("Username and password are required")

        if self.supabase:
            return await run_in_threadpool(self._supabase_sign_in, username, password)

        account = self._accounts.get(username)
        if account is not None:
            return await run_in_threadpool(self._check_account, account, password)

        username_ok = hmac.compare_digest(username.encode(), self.config.demo_username.encode())
        password_ok = hmac.compare_digest(password.encode(), self.config.demo_password.encode())
        if username_ok and password_ok:
            return AuthenticationResult.success(
                UserIdentity(id="1", username=self.config.demo_username, email="test@example.com")
            )
        return AuthenticationResult.failure("Invalid username or password")

    @staticmethod
    def _check_account(account: tuple, password: str) -> AuthenticationResult:
        user, salt, digest = account
        if hmac.compare_digest(hash_password(password, salt), digest):
            return AuthenticationResult.success(user)
        return AuthenticationResult.failure("Invalid username or password")

    async def register(self, username: str, password: str, email: str) -> AuthenticationResult:
        """Create an account. Without Supabase it lives only in this process."""
        if not username or not password or not email:
            return AuthenticationResult.failure("Missing required fields")

        if self.supabase:
            return await run_in_threadpool(self._supabase_sign_up, username, password, email)
        return await run_in_threadpool(self._register_local, username, password, email)

    def _register_local(self, username: str, password: str, email: str) -> AuthenticationResult:
        salt = secrets.token_bytes(16)
        digest = hash_password(password, salt)
        with self._lock:
            taken = username == self.config.demo_username or username in self._accounts or any(
                user.email == email for user, _, _ in self._accounts.values()
            )
            if taken:
                return AuthenticationResult.failure("Username or email already exists")
            user = UserIdentity(id=str(uuid.uuid4()), username=username, email=email)
            self._accounts[username] = (user, salt, digest)
        logger.info(f"[LOGIN] Registered user: {username}")
        return AuthenticationResult.success(user)

    def _supabase_sign_up(self, username: str, password: str, email: str) -> AuthenticationResult:
        try:
            response = self.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"username": username}},
            })
        except Exception as e:
            logger.warning(f"[LOGIN] Supabase sign-up failed: {e}")
            return AuthenticationResult.failure(str(e))

        if not response.user:
            return AuthenticationResult.failure("Registration failed")
        return AuthenticationResult.success(
            UserIdentity(id=str(response.user.id), username=username, email=response.user.email)
        )

    def _supabase_sign_in(self, email: str, password: str) -> AuthenticationResult:
        try:
            response = self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            logger.warning(f"[LOGIN] Supabase sign-in failed: {e}")
            return AuthenticationResult.failure("Invalid username or password")

        if not response.user:
            return AuthenticationResult.failure("Invalid username or password")
        return AuthenticationResult.success(
            UserIdentity(id=str(response.user.id), username=response.user.email, email=response.user.email)
        )


def safe_return_to(value: str) -> str:
    """Only same-site relative paths are followed after login."""
    if not value:
        return "/"
    parsed = urlparse(value)
    if parsed.scheme or parsed.netloc or not value.startswith("/") or value.startswith("//"):
        return "/"
    return value


# ============== Routes ==============

@router.get("/login")
async def login_page(return_to: str = "/"):
    """Show login form."""
    return HTMLResponse(render_login(safe_return_to(return_to)))


@router.post("/login")
async def login_submit(request: Request):
    """Handle login form submission."""
    form = await request.form()
    return_to = safe_return_to(str(form.get("return_to", "/")))
    authenticator: Authenticator = request.app.state.authenticator

    result = await authenticator.authenticate(str(form.get("username", "")), str(form.get("password", "")))
    if not result.ok:
        logger.info(f"[LOGIN] Authentication failed: {result.reason}")
        return HTMLResponse(render_login(return_to, error=result.reason), status_code=401)

    # New id for the signed-in session; pending authorization fields carry over
    sessions = request.app.state.sessions
    session = await load_session(request)
    session.authenticated_user = result.user
    session = await sessions.regenerate(session)
    logger.info(f"[LOGIN] User authenticated: {result.user.username}")

    response = RedirectResponse(url=return_to, status_code=302)
    attach_session_cookie(response, session, request.app.state.config)
    return response


@router.post("/logout")
async def logout(request: Request):
    session = await load_session(request)
    session.authenticated_user = None
    await request.app.state.sessions.persist(session)
    response = RedirectResponse(url="/", status_code=302)
    attach_session_cookie(response, session, request.app.state.config)
    return response


@router.post("/register", status_code=201)
async def register(request: Request):
    """Create an account from a JSON body with username, password and email."""
    try:
        data = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
    if not isinstance(data, dict):
        return JSONResponse({"error": "Missing required fields"}, status_code=400)

    authenticator: Authenticator = request.app.state.authenticator
    result = await authenticator.register(
        str(data.get("username") or ""), str(data.get("password") or ""), str(data.get("email") or "")
    )
    if not result.ok:
        logger.info(f"[LOGIN] Registration refused: {result.reason}")
        return JSONResponse({"error": result.reason}, status_code=400)

    user = result.user
    return {"message": "User created successfully",
            "user": {"id": user.id, "username": user.username, "email": user.email}}


@router.get("/profile")
async def profile(request: Request):
    session = await load_session(request)
    user = session.authenticated_user
    if user is None:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)
    return {"user": {"id": user.id, "username": user.username, "email": user.email}}
