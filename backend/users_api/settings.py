from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOCAL_DYNAMODB_ENDPOINT = "http://localhost:8000"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore", populate_by_name=True)

    # Runtime
    environment: str = Field(default="development", validation_alias="APP_ENV")
    stage: str = Field(default="dev", validation_alias="STAGE")
    version: str = Field(default="unknown", validation_alias="VERSION")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS (comma-separated; "*" allows any origin)
    cors_allow_origins: str = Field(default="*", validation_alias="CORS_ALLOW_ORIGINS")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    # Local mode talks to DynamoDB Local with dummy credentials.
    is_offline: bool = Field(default=False, validation_alias="IS_OFFLINE")
    dynamodb_endpoint_url: str | None = Field(default=None, validation_alias="DYNAMODB_ENDPOINT")
    users_table: str | None = Field(default="users", validation_alias="USERS_TABLE")
    # "dynamodb" or "memory"
    users_store: str = Field(default="dynamodb", validation_alias="USERS_STORE")
    users_list_limit: int = Field(default=100, validation_alias="USERS_LIST_LIMIT")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def normalized_users_store(self) -> str:
        v = (self.users_store or "").strip().lower()
        return v or "dynamodb"

    @property
    def resolved_dynamodb_endpoint(self) -> str | None:
        if self.dynamodb_endpoint_url and self.dynamodb_endpoint_url.strip():
            return self.dynamodb_endpoint_url.strip()
        if self.is_offline:
            return LOCAL_DYNAMODB_ENDPOINT
        return None

    @property
    def allowed_origins(self) -> list[str]:
        origins = [s.strip() for s in str(self.cors_allow_origins or "").split(",") if s.strip()]
        return origins or ["*"]

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Local and staging runs may use partial config (in-memory store,
        DynamoDB Local), production must point at a real table.
        """
        if not self.is_production:
            return

        missing: list[str] = []

        if self.normalized_users_store == "dynamodb" and not (self.users_table and self.users_table.strip()):
            missing.append("USERS_TABLE")
        if self.is_offline:
            missing.append("IS_OFFLINE must not be set")

        if missing:
            raise RuntimeError(
                "Invalid production configuration: " + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A representation safe for structured logs / diagnostics.
        """
        return {
            "environment": self.normalized_environment,
            "stage": self.stage,
            "version": self.version,
            "port": self.port,
            "cors_allow_origins": self.allowed_origins,
            "aws": {
                "aws_region": self.aws_region,
                "is_offline": bool(self.is_offline),
                "dynamodb_endpoint": self.resolved_dynamodb_endpoint,
                "users_table": self.users_table,
            },
            "users_store": self.normalized_users_store,
            "users_list_limit": self.users_list_limit,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s
