from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .db.dynamodb.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore", populate_by_name=True)

    # Runtime
    environment: str = Field(default="development", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # AWS / data
    # Region falls back to the boto3 resolution chain (AWS_DEFAULT_REGION, profile config).
    aws_region: str | None = Field(default=None, validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")
    # Point at DynamoDB Local / LocalStack during development.
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")

    # Scan page size (Limit). None lets DynamoDB cut pages at its 1 MB boundary.
    ddb_scan_page_size: int | None = Field(default=None, validation_alias="DDB_SCAN_PAGE_SIZE")

    # botocore client tuning
    ddb_connect_timeout: float = Field(default=2, validation_alias="DDB_CONNECT_TIMEOUT")
    ddb_read_timeout: float = Field(default=10, validation_alias="DDB_READ_TIMEOUT")
    ddb_max_attempts: int = Field(default=10, validation_alias="DDB_MAX_ATTEMPTS")
    # Worker threads used for deadline-bounded calls.
    ddb_max_inflight: int = Field(default=8, validation_alias="DDB_MAX_INFLIGHT")

    # Encrypts the opaque nextToken handed out by list_entities_page().
    next_token_enc_key: str | None = Field(default=None, validation_alias="NEXT_TOKEN_ENC_KEY")

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

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Development/staging may run with partial config (e.g. a dev token key),
        production must be fully configured.
        """
        if not self.is_production:
            return

        missing: list[str] = []
        if not (self.ddb_table_name and str(self.ddb_table_name).strip()):
            missing.append("DDB_TABLE_NAME")
        if not (self.next_token_enc_key and str(self.next_token_enc_key).strip()):
            missing.append("NEXT_TOKEN_ENC_KEY")

        if missing:
            raise ConfigurationError(
                message="Missing required production environment variables: " + ", ".join(missing),
                operation="Config",
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "log_level": self.log_level,
            "aws": {
                "aws_region": self.aws_region,
                "ddb_table_name": self.ddb_table_name,
                "ddb_endpoint_url": self.ddb_endpoint_url,
            },
            "dynamodb": {
                "scan_page_size": self.ddb_scan_page_size,
                "connect_timeout": self.ddb_connect_timeout,
                "read_timeout": self.ddb_read_timeout,
                "max_attempts": self.ddb_max_attempts,
                "max_inflight": self.ddb_max_inflight,
            },
            "next_token_enc_key_configured": _has(self.next_token_enc_key),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    try:
        s = Settings()
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid environment configuration: {e}",
            operation="Config",
            cause=e,
        ) from e
    s.require_in_production()
    return s
