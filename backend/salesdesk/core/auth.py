# salesdesk/core/auth.py
import asyncio
import functools
from typing import Optional

from fastapi import Request
from firebase_admin import auth as fb_auth

from salesdesk.config import get_firebase_app
from salesdesk.core.errors import AuthFatal
from salesdesk.schemas.principal import Principal


def extract_bearer_token(request: Request) -> Optional[str]:
    """
    Returns the token from an `Authorization: Bearer <id_token>` header,
    or None when there is none.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


async def decode_id_token(id_token: str) -> dict:
    """
    Verifies a Firebase ID token (revocation included).
    Invalid, revoked or expired tokens raise AuthFatal.
    """
    try:
        verify = functools.partial(fb_auth.verify_id_token, id_token, app=get_firebase_app(), check_revoked=True)
        return await asyncio.get_running_loop().run_in_executor(None, verify)
    except fb_auth.ExpiredIdTokenError as exc:
        raise AuthFatal("Token expired", code="token-expired") from exc
    except fb_auth.RevokedIdTokenError as exc:
        raise AuthFatal("Session revoked", code="token-revoked") from exc
    except fb_auth.UserDisabledError as exc:
        raise AuthFatal("User disabled", code="user-disabled") from exc
    except (ValueError, fb_auth.InvalidIdTokenError, fb_auth.CertificateFetchError) as exc:
        raise AuthFatal(f"Invalid Firebase ID token: {exc}", code="token-invalid") from exc


def token_to_principal(decoded: dict) -> Principal:
    """Builds a Principal from verified ID token claims."""
    uid = decoded.get("uid") or decoded.get("user_id")
    if not uid:
        raise AuthFatal("Token missing uid.", code="token-invalid")
    return Principal(
        uid=uid,
        email=decoded.get("email"),
        display_name=decoded.get("name"),
        photo_url=decoded.get("picture"),
    )
