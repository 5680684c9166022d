"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("jobline.config")


class Settings(BaseSettings):
    # Telephony provider (Yemot HaMashiach)
    yemot_api_base: str = "https://www.call2all.co.il/ym/api"
    yemot_api_token: str = ""
    yemot_system_number: str = ""
    # Provider extensions the caller is transferred into for alert lists
    tzintuk_register_extension: str = "/8"
    tzintuk_manage_extension: str = "/8/1"
    website_name: str = "בין הסדרים נקודה קום"
    # "Today" and relative posting dates are computed in this zone
    timezone: str = "Asia/Jerusalem"

    # Call session
    session_timeout_seconds: float = 300.0
    webhook_response_timeout_seconds: float = 25.0
    max_invalid_menu_attempts: int = 5
    max_compose_rounds: int = 3

    # Backing store
    store_backend: str = "memory"  # "memory" or "firestore"
    firestore_project: str = ""
    # Service-account key for Firestore; Application Default Credentials when empty
    google_service_account_json: str = ""

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []

        if self.store_backend not in ("memory", "firestore"):
            raise ValueError(
                f"STORE_BACKEND must be 'memory' or 'firestore', got {self.store_backend!r}."
            )

        if self.store_backend == "firestore" and not self.firestore_project:
            raise ValueError(
                "FIRESTORE_PROJECT is missing. Set it in .env to use the Firestore store."
            )

        if self.store_backend == "memory":
            warnings.append(
                "STORE_BACKEND=memory. Jobs and subscriptions are lost on restart."
            )

        if not self.yemot_api_token:
            warnings.append(
                "YEMOT_API_TOKEN not set. Alert-list membership lookups are disabled."
            )

        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if self.session_timeout_seconds <= 0:
            raise ValueError("SESSION_TIMEOUT_SECONDS must be positive.")

        return warnings


settings = Settings()
