"""Runtime configuration.

Values come from the environment (and a local ``.env``). When
``SECRETS_FILE`` names a mounted JSON document (e.g.
``/run/secrets/awsinfra.json`` populated by the secret store), its keys take
precedence over the environment for database credentials and issuer details.
"""

import json
import os
from typing import Annotated, Any, Dict, FrozenSet, Optional, Tuple, Type
from urllib.parse import quote_plus

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .core.exceptions import ConfigurationError


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./data/awsinfra.db"
DEFAULT_ISSUER = "https://cognito-idp.us-east-1.amazonaws.com/local"
DEFAULT_ROLE_MAP = "admin=entry:create,entry:read;writers=entry:create,entry:read;readers=entry:read"


def parse_role_map(raw: str) -> Dict[str, FrozenSet[str]]:
    """Parse ``group=role1,role2;group2=role3`` into a mapping."""
    mapping: Dict[str, FrozenSet[str]] = {}
    for chunk in raw.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        group, sep, roles = chunk.partition("=")
        if not sep or not group.strip():
            raise ConfigurationError(f"Malformed ROLE_MAP entry: {chunk!r}")
        mapping[group.strip()] = frozenset(r.strip() for r in roles.split(",") if r.strip())
    return mapping


def load_secrets(path: str) -> Dict[str, Any]:
    """Read the secret-store document mounted at ``path``."""
    try:
        with open(path, "rb") as f:
            data = json.loads(f.read())
    except OSError as e:
        raise ConfigurationError(f"Cannot read secrets file {path}: {e}")
    except ValueError as e:
        raise ConfigurationError(f"Secrets file {path} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Secrets file {path} must contain a JSON object")
    return data


def _database_url_from_secrets(secrets: Dict[str, Any]) -> Optional[str]:
    if secrets.get("database_url"):
        return str(secrets["database_url"])
    if secrets.get("db_username") and secrets.get("db_host"):
        user = quote_plus(str(secrets["db_username"]))
        password = quote_plus(str(secrets.get("db_password", "")))
        host = secrets["db_host"]
        port = secrets.get("db_port", 5432)
        name = secrets.get("db_name", "awsinfra")
        return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"
    return None


class SecretsFileSource(PydanticBaseSettingsSource):
    """Settings read from the JSON document named by ``SECRETS_FILE``."""

    # secret key -> settings env name
    OVERLAY = {
        "jwt_issuer": "JWT_ISSUER",
        "jwt_audience": "JWT_AUDIENCE",
        "jwks_url": "JWKS_URL",
    }

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        # The whole document is mapped at once in __call__
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        path = os.environ.get("SECRETS_FILE")
        if not path:
            return {}
        secrets = load_secrets(path)

        values: Dict[str, Any] = {}
        database_url = _database_url_from_secrets(secrets)
        if database_url:
            values["DATABASE_URL"] = database_url
        for key, env_name in self.OVERLAY.items():
            if secrets.get(key):
                values[env_name] = str(secrets[key])
        return values


class Settings(BaseSettings):
    """Service configuration; field aliases are the environment variable names."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Database
    database_url: str = Field(DEFAULT_DATABASE_URL, alias="DATABASE_URL")
    db_pool_size: int = Field(5, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(5, alias="DB_MAX_OVERFLOW")
    db_pool_timeout_seconds: float = Field(5.0, alias="DB_POOL_TIMEOUT_SECONDS")
    db_echo: bool = Field(False, alias="DB_ECHO")
    store_timeout_seconds: float = Field(5.0, alias="STORE_TIMEOUT_SECONDS")

    # Token validation
    jwt_issuer: str = Field(DEFAULT_ISSUER, alias="JWT_ISSUER")
    jwt_audience: str = Field("awsinfra-api", alias="JWT_AUDIENCE")
    jwks_url: Optional[str] = Field(None, alias="JWKS_URL")
    jwt_roles_claim: str = Field("cognito:groups", alias="JWT_ROLES_CLAIM")
    jwt_leeway_seconds: int = Field(60, alias="JWT_LEEWAY_SECONDS")
    jwks_timeout_seconds: float = Field(5.0, alias="JWKS_TIMEOUT_SECONDS")
    jwks_refresh_interval_seconds: float = Field(300.0, alias="JWKS_REFRESH_INTERVAL_SECONDS")
    jwks_min_refresh_interval_seconds: float = Field(10.0, alias="JWKS_MIN_REFRESH_INTERVAL_SECONDS")
    role_map: Annotated[Dict[str, FrozenSet[str]], NoDecode] = Field(
        default_factory=lambda: parse_role_map(DEFAULT_ROLE_MAP), alias="ROLE_MAP"
    )

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(True, alias="LOG_JSON")

    # Server
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8080, alias="API_PORT")
    api_reload: bool = Field(False, alias="API_RELOAD")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            SecretsFileSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @field_validator("role_map", mode="before")
    @classmethod
    def _parse_role_map(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return parse_role_map(value)
            except ConfigurationError as e:
                raise ValueError(e.message)
        return value

    @field_validator("jwt_issuer")
    @classmethod
    def _strip_issuer(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @model_validator(mode="after")
    def _default_jwks_url(self) -> "Settings":
        if not self.jwks_url:
            self.jwks_url = f"{self.jwt_issuer}/.well-known/jwks.json"
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @classmethod
    def from_env(cls, **overrides: Any) -> "Settings":
        """Load settings, reporting invalid values as ConfigurationError."""
        try:
            return cls(**overrides)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid configuration: {problems}")
