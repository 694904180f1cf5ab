"""
salesdesk/config.py - Application configuration and Firebase initialization.

This module defines a Pydantic BaseSettings class to load configuration from environment,
and initializes the Firebase Admin SDK (Firestore client) from the provided credentials.
Initialization is lazy: nothing talks to Firebase until `get_db()` is first called, so
the package imports cleanly without a service account (tests, CLI help, ...).
"""
from functools import lru_cache
from typing import Literal, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True)

    firebase_cred_file: str = Field('firebase_service_account.json', alias='FIREBASE_CRED_FILE')
    firebase_project_id: str = Field('', alias='FIREBASE_PROJECT_ID')

    # Firebase credentials from environment variables (for Cloud Run)
    firebase_private_key_id: Optional[str] = Field(None, alias='FIREBASE_PRIVATE_KEY_ID')
    firebase_private_key: Optional[str] = Field(None, alias='FIREBASE_PRIVATE_KEY')
    firebase_client_email: Optional[str] = Field(None, alias='FIREBASE_CLIENT_EMAIL')
    firebase_client_id: Optional[str] = Field(None, alias='FIREBASE_CLIENT_ID')
    firebase_auth_uri: Optional[str] = Field(None, alias='FIREBASE_AUTH_URI')
    firebase_token_uri: Optional[str] = Field(None, alias='FIREBASE_TOKEN_URI')
    firebase_auth_provider_x509_cert_url: Optional[str] = Field(None, alias='FIREBASE_AUTH_PROVIDER_X509_CERT_URL')
    firebase_client_x509_cert_url: Optional[str] = Field(None, alias='FIREBASE_CLIENT_X509_CERT_URL')
    firebase_web_api_key: Optional[str] = Field(None, alias='FIREBASE_WEB_API_KEY')

    environment: Literal["development", "production"] = Field('development', alias='ENVIRONMENT')
    # auto -> redirect in production, popup everywhere else
    login_mode: Literal["auto", "popup", "redirect"] = Field('auto', alias='LOGIN_MODE')
    public_base_url: str = Field('http://localhost:8000', alias='PUBLIC_BASE_URL')

    store_timeout_seconds: float = Field(10.0, alias='STORE_TIMEOUT_SECONDS')
    guard_decision_timeout_seconds: float = Field(5.0, alias='GUARD_DECISION_TIMEOUT_SECONDS')

    session_cookie_name: str = Field('salesdesk_session', alias='SESSION_COOKIE_NAME')
    session_idle_minutes: int = Field(60, alias='SESSION_IDLE_MINUTES')
    session_sweep_minutes: int = Field(5, alias='SESSION_SWEEP_MINUTES')

    users_collection: str = Field('users', alias='USERS_COLLECTION')
    admins_collection: str = Field('admins', alias='ADMINS_COLLECTION')

    debug: bool = Field(False, alias='DEBUG')
    log_level: str = Field('INFO', alias='LOG_LEVEL')
    allowed_origins: str = Field('*', alias='ALLOWED_ORIGINS')  # Comma-separated list or '*' for all

    def model_post_init(self, __context):
        """Validate Firebase Web API Key format"""
        if self.firebase_web_api_key and not self.firebase_web_api_key.startswith('AIza'):
            raise ValueError("FIREBASE_WEB_API_KEY must be a valid Firebase Web API Key starting with 'AIza'")

    @property
    def effective_login_mode(self) -> str:
        if self.login_mode != "auto":
            return self.login_mode
        return "redirect" if self.environment == "production" else "popup"

    @property
    def redirect_callback_url(self) -> str:
        return self.public_base_url.rstrip("/") + "/auth/google/callback"


# Load settings from environment (.env file, etc.)
settings = Settings()


def _credential():
    # Check if we have environment variables for Firebase credentials (Cloud Run)
    if all([
        settings.firebase_private_key_id,
        settings.firebase_private_key,
        settings.firebase_client_email,
        settings.firebase_client_id,
        settings.firebase_auth_uri,
        settings.firebase_token_uri,
        settings.firebase_auth_provider_x509_cert_url,
        settings.firebase_client_x509_cert_url
    ]):
        cred_dict = {
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "private_key_id": settings.firebase_private_key_id,
            # env vars carry the PEM with escaped newlines
            "private_key": settings.firebase_private_key.replace("\\n", "\n"),
            "client_email": settings.firebase_client_email,
            "client_id": settings.firebase_client_id,
            "auth_uri": settings.firebase_auth_uri,
            "token_uri": settings.firebase_token_uri,
            "auth_provider_x509_cert_url": settings.firebase_auth_provider_x509_cert_url,
            "client_x509_cert_url": settings.firebase_client_x509_cert_url
        }
        return credentials.Certificate(cred_dict)
    # Use service account file (local development)
    return credentials.Certificate(settings.firebase_cred_file)


@lru_cache(maxsize=1)
def get_firebase_app() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK once per process."""
    try:
        options = {'projectId': settings.firebase_project_id} if settings.firebase_project_id else None
        return firebase_admin.initialize_app(_credential(), options)
    except ValueError as e:
        if "already exists" in str(e):
            # Firebase app already initialized, get the default app
            return firebase_admin.get_app()
        raise


@lru_cache(maxsize=1)
def get_db():
    """Firestore database client bound to the default Firebase app."""
    return firestore.client(get_firebase_app())
