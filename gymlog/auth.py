"""Authentication providers and the per-browser session context.

The current user is looked up once at sign-in, cached in the signed session
cookie and dropped on sign-out. Views read it from the session instead of
asking the provider on every request.
"""
import os
import json
import logging
import uuid
from contextlib import asynccontextmanager
from functools import wraps
from threading import Lock
from typing import Optional

import httpx
from flask import current_app, g, redirect, session, url_for
from supabase_auth import AsyncGoTrueClient
from supabase_auth.errors import AuthError as ProviderAuthError
from werkzeug.security import check_password_hash, generate_password_hash

from .models import AuthSession, CurrentUser

USER_LOCK = Lock()

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Sign-in or sign-up rejected; the message is safe to show to the user."""


class AuthProvider:
    name = "abstract"

    async def sign_in(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    async def sign_up(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    async def get_user(self, access_token: Optional[str]) -> Optional[CurrentUser]:
        """Resolve a token to a user, or None when anonymous."""
        raise NotImplementedError

    async def sign_out(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        raise NotImplementedError


class LocalAuthProvider(AuthProvider):
    """Accounts kept in a JSON user file with werkzeug password hashes.

    The access token handed back is the user id; this backend is meant for
    development and tests only.
    """

    name = "local"

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {"users": []}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Failed to read user file '%s': %s", self.path, e)
            raise AuthError("Account data is unavailable right now.") from e
        data.setdefault("users", [])
        return data

    def _save(self, data: dict) -> None:
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:  # pragma: no cover
            logger.error("Failed to write user file '%s': %s", self.path, e)
            raise AuthError("Unable to save the account right now.") from e

    async def sign_up(self, email: str, password: str) -> AuthSession:
        email = email.strip().lower()
        with USER_LOCK:
            data = self._load()
            if any(u["email"] == email for u in data["users"]):
                raise AuthError("User already registered")
            user = {
                "id": uuid.uuid4().hex,
                "email": email,
                "password_hash": generate_password_hash(password),
            }
            data["users"].append(user)
            self._save(data)
        return AuthSession(user=CurrentUser(user["id"], email), access_token=user["id"])

    async def sign_in(self, email: str, password: str) -> AuthSession:
        email = email.strip().lower()
        with USER_LOCK:
            users = self._load()["users"]
        for user in users:
            if user["email"] == email and check_password_hash(user["password_hash"], password):
                return AuthSession(user=CurrentUser(user["id"], email), access_token=user["id"])
        raise AuthError("Invalid login credentials")

    async def get_user(self, access_token: Optional[str]) -> Optional[CurrentUser]:
        if not access_token:
            return None
        with USER_LOCK:
            users = self._load()["users"]
        for user in users:
            if user["id"] == access_token:
                return CurrentUser(user["id"], user["email"])
        return None

    async def sign_out(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        return None


def _auth_client(url: str, key: str, http_client: httpx.AsyncClient) -> AsyncGoTrueClient:
    return AsyncGoTrueClient(
        url=f"{url.rstrip('/')}/auth/v1",
        headers={"apikey": key, "Authorization": f"Bearer {key}"},
        auto_refresh_token=False,
        persist_session=False,
        http_client=http_client,
    )


class SupabaseAuthProvider(AuthProvider):
    """Supabase Auth (email + password).

    Each call runs on its own httpx client, closed when the call returns.
    """

    name = "supabase"

    def __init__(self, url: str, key: str, client_factory=_auth_client) -> None:
        self.url = url
        self.key = key
        self._client_factory = client_factory

    @asynccontextmanager
    async def _client(self):
        async with httpx.AsyncClient() as http:
            yield self._client_factory(self.url, self.key, http)

    @staticmethod
    def _to_session(response) -> AuthSession:
        user = response.user
        tokens = response.session
        return AuthSession(
            user=CurrentUser(str(user.id), user.email or ""),
            access_token=tokens.access_token if tokens else None,
            refresh_token=tokens.refresh_token if tokens else None,
        )

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            async with self._client() as client:
                response = await client.sign_in_with_password({"email": email, "password": password})
        except ProviderAuthError as e:
            raise AuthError(e.message) from e
        except httpx.HTTPError as e:
            logger.error("Sign-in request failed: %s", e)
            raise AuthError("Authentication service unavailable.") from e
        return self._to_session(response)

    async def sign_up(self, email: str, password: str) -> AuthSession:
        try:
            async with self._client() as client:
                response = await client.sign_up({"email": email, "password": password})
        except ProviderAuthError as e:
            raise AuthError(e.message) from e
        except httpx.HTTPError as e:
            logger.error("Sign-up request failed: %s", e)
            raise AuthError("Authentication service unavailable.") from e
        if response.user is None:
            raise AuthError("Sign-up did not return a user.")
        return self._to_session(response)

    async def get_user(self, access_token: Optional[str]) -> Optional[CurrentUser]:
        if not access_token:
            return None
        try:
            async with self._client() as client:
                response = await client.get_user(access_token)
        except (ProviderAuthError, httpx.HTTPError) as e:
            logger.warning("Could not resolve current user: %s", e)
            return None
        if response is None or response.user is None:
            return None
        return CurrentUser(str(response.user.id), response.user.email or "")

    async def sign_out(self, access_token: Optional[str], refresh_token: Optional[str] = None) -> None:
        if not access_token or not refresh_token:
            return
        try:
            async with self._client() as client:
                await client.set_session(access_token, refresh_token)
                await client.sign_out()
        except (ProviderAuthError, httpx.HTTPError) as e:
            logger.warning("Remote sign-out failed: %s", e)


def get_auth_provider() -> AuthProvider:
    cfg = current_app.config
    if cfg["STORE_BACKEND"] == "supabase":
        return SupabaseAuthProvider(cfg["SUPABASE_URL"], cfg["SUPABASE_KEY"])
    return LocalAuthProvider(cfg["USER_FILE"])


def start_session(user: CurrentUser, auth_session: AuthSession) -> None:
    session.clear()
    session["user"] = user.to_session()
    session["access_token"] = auth_session.access_token
    session["refresh_token"] = auth_session.refresh_token


def end_session() -> None:
    session.clear()


def current_user() -> Optional[CurrentUser]:
    return CurrentUser.from_session(session.get("user"))


def login_required(view):
    """Redirect anonymous requests to the login view; sets ``g.user`` otherwise."""
    @wraps(view)
    async def wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return redirect(url_for("login"))
        g.user = user
        return await view(*args, **kwargs)
    return wrapped
