"""
# `salesdesk/core/identity.py` — Identity provider client

`IdentityClient` is the capability the session layer needs from the identity
provider. `FirebaseIdentityClient` implements it for Google sign-in through
Firebase Authentication, in the two flavours the web client uses:

- **popup**: the browser runs `signInWithPopup` and posts the Firebase ID
  token; it is verified with the Admin SDK (`verify_id_token`, revocation
  checked).
- **redirect**: `accounts:createAuthUri` yields the Google URL to send the
  browser to; the callback URL is exchanged via `accounts:signInWithIdp`
  (Identity Toolkit REST API, needs `FIREBASE_WEB_API_KEY`).

Provider failure codes are mapped onto the error taxonomy: dismissal
→ `UserCancelled`, duplicate request → `AlreadyInProgress`, anything else
→ `AuthFatal`.

One instance tracks one browser session.
"""
import asyncio
import functools
import logging
from typing import Awaitable, Callable, List, Optional, Protocol

import httpx
from firebase_admin import auth as firebase_auth

from salesdesk.config import Settings, get_firebase_app
from salesdesk.core.auth import decode_id_token, token_to_principal
from salesdesk.core.constants import (
    ALREADY_IN_PROGRESS_CODES,
    GOOGLE_PROVIDER_ID,
    IDENTITY_TOOLKIT_URL,
    USER_CANCELLED_CODES,
)
from salesdesk.core.errors import AlreadyInProgress, AuthFatal, UserCancelled
from salesdesk.schemas.principal import Principal
from salesdesk.schemas.session import LoginCredential, RedirectStart

logger = logging.getLogger("salesdesk.identity")

SessionListener = Callable[[Optional[Principal]], Awaitable[None]]


class IdentityClient(Protocol):
    def current_principal(self) -> Optional[Principal]:
        ...

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        ...

    async def begin_interactive_login(self, credential: LoginCredential) -> Principal:
        ...

    async def end_session(self) -> None:
        ...


def raise_for_provider_code(code: str) -> None:
    if code in USER_CANCELLED_CODES:
        raise UserCancelled("Sign-in dismissed", code=code)
    if code in ALREADY_IN_PROGRESS_CODES:
        raise AlreadyInProgress("Sign-in already in progress", code=code)
    raise AuthFatal(f"Sign-in failed: {code}", code=code)


class FirebaseIdentityClient:
    def __init__(self, settings: Settings, timeout: float = 10.0):
        self._settings = settings
        self._timeout = timeout
        self._principal: Optional[Principal] = None
        self._listeners: List[SessionListener] = []
        self._pending = False

    # ---- session state ----

    def current_principal(self) -> Optional[Principal]:
        return self._principal

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    async def _publish(self, principal: Optional[Principal]) -> None:
        self._principal = principal
        for listener in list(self._listeners):
            await listener(principal)

    # ---- login ----

    async def create_auth_uri(self, continue_uri: str) -> RedirectStart:
        """First leg of the redirect flow."""
        data = await self._toolkit("accounts:createAuthUri", {
            "providerId": GOOGLE_PROVIDER_ID,
            "continueUri": continue_uri,
        })
        try:
            return RedirectStart(auth_uri=data["authUri"], provider_session_id=data["sessionId"])
        except KeyError as exc:
            raise AuthFatal(f"createAuthUri response missing {exc}") from exc

    async def begin_interactive_login(self, credential: LoginCredential) -> Principal:
        if self._pending:
            raise AlreadyInProgress("Sign-in already in progress", code="auth/cancelled-popup-request")
        self._pending = True
        try:
            if credential.error:
                raise_for_provider_code(credential.error)
            if credential.id_token:
                principal = token_to_principal(await decode_id_token(credential.id_token))
            else:
                principal = await self._sign_in_with_idp(credential)
        finally:
            self._pending = False
        logger.info("Signed in uid=%s", principal.uid)
        await self._publish(principal)
        return principal

    async def _sign_in_with_idp(self, credential: LoginCredential) -> Principal:
        data = await self._toolkit("accounts:signInWithIdp", {
            "requestUri": credential.request_uri,
            "sessionId": credential.provider_session_id,
            "returnSecureToken": True,
            "returnIdpCredential": True,
        })
        uid = data.get("localId")
        if not uid:
            raise AuthFatal("signInWithIdp response missing localId")
        return Principal(
            uid=uid,
            email=data.get("email"),
            display_name=data.get("displayName") or data.get("fullName"),
            photo_url=data.get("photoUrl"),
        )

    async def _toolkit(self, method: str, payload: dict) -> dict:
        if not self._settings.firebase_web_api_key:
            raise AuthFatal("Server misconfigured: missing FIREBASE_WEB_API_KEY")
        url = f"{IDENTITY_TOOLKIT_URL}/{method}?key={self._settings.firebase_web_api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                r = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.exception("%s failed", method)
            raise AuthFatal(f"Identity service error: {exc}") from exc

        if r.status_code != 200:
            try:
                message = r.json().get("error", {}).get("message", "")
            except ValueError:
                message = ""
            logger.warning("%s response: %s %s", method, r.status_code, message or r.text)
            # messages look like "USER_CANCELLED" or "INVALID_IDP_RESPONSE : detail"
            raise_for_provider_code(message.split(" ", 1)[0] or f"http-{r.status_code}")
        return r.json()

    # ---- logout ----

    async def end_session(self) -> None:
        """
        Revokes the user's refresh tokens on every device and publishes the
        signed-out state. The browser should also call `signOut()` in the SDK.
        """
        principal = self._principal
        try:
            if principal is not None:
                revoke = functools.partial(firebase_auth.revoke_refresh_tokens, principal.uid, app=get_firebase_app())
                await asyncio.get_running_loop().run_in_executor(None, revoke)
        except firebase_auth.UserNotFoundError:
            # account deleted upstream; nothing to revoke
            pass
        except Exception as exc:
            raise AuthFatal(f"Could not revoke session: {exc}") from exc
        finally:
            await self._publish(None)
