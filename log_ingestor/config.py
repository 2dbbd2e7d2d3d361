"""
config.py
-----------------------------------------------------
Configuración del ingestor (Redis → Elastic).
  ▪ Se lee una sola vez desde un YAML al arrancar.
  ▪ Las variables de entorno pisan valores concretos.
  ▪ El resultado es inmutable y se pasa a cada componente.
-----------------------------------------------------
"""

import os
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


class ConfigError(Exception):
    """Configuración ausente o inválida (fatal en el arranque)."""


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class UrlPort(_Frozen):
    url: str
    port: int = Field(ge=0, le=65535)

    def full_url(self) -> str:
        return f"{self.url}:{self.port}"


# ============================================================
# Credenciales Elastic: conjunto cerrado de dos variantes
# ============================================================
class ApiKeyCredentials(_Frozen):
    kind: Literal["api_key"] = "api_key"
    api_key: str

    def client_kwargs(self) -> dict:
        return {"api_key": self.api_key}


class BasicCredentials(_Frozen):
    kind: Literal["basic"] = "basic"
    username: str
    password: str

    def client_kwargs(self) -> dict:
        return {"basic_auth": (self.username, self.password)}


Credentials = Union[ApiKeyCredentials, BasicCredentials]


def resolve_credentials(
    api_key: Optional[str], username: Optional[str], password: Optional[str]
) -> Credentials:
    """Exactamente una forma: api_key, o bien username + password."""
    if api_key and (username or password):
        raise ValueError("Config has both an api_key and username/password, pick one!")
    if api_key:
        return ApiKeyCredentials(api_key=api_key)
    if username and password:
        return BasicCredentials(username=username, password=password)
    if username or password:
        raise ValueError("username and password must be given together!")
    raise ValueError("No credentials in config!")


class RetryConfig(_Frozen):
    strategy: Literal["drop", "backoff"] = "drop"
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(0.5, ge=0)
    max_delay: float = Field(10.0, ge=0)
    dead_letter_path: Optional[str] = None


class RedisConfig(_Frozen):
    url: UrlPort
    chunk_size: int = Field(100, ge=1, le=65535)
    blocktime_millis: int = Field(1000, ge=0)
    consumer_group: str = "log-ingestor"
    consumer_id: str = "log-ingestor"
    per_entry_decode: bool = False
    ack_entries: bool = False


class ElasticConfig(_Frozen):
    url: UrlPort
    credentials: Credentials = Field(discriminator="kind")
    chunk_size: int = Field(100, ge=1, le=65535)
    index: str = "logstash-bec_test123"
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @model_validator(mode="before")
    @classmethod
    def _resolve_credentials(cls, data):
        # api_key / username / password se resuelven aquí y no viajan más allá
        if isinstance(data, dict) and "credentials" not in data:
            data = dict(data)
            data["credentials"] = resolve_credentials(
                data.pop("api_key", None),
                data.pop("username", None),
                data.pop("password", None),
            )
        return data


class IngestorConfig(_Frozen):
    redis: RedisConfig
    elastic: ElasticConfig


# ============================================================
# Overrides por entorno
# ============================================================
ENV_OVERRIDES = {
    "REDIS_URL": ("redis", "url", "url"),
    "REDIS_PORT": ("redis", "url", "port"),
    "ELASTIC_URL": ("elastic", "url", "url"),
    "ELASTIC_PORT": ("elastic", "url", "port"),
    "ELASTIC_API_KEY": ("elastic", "api_key"),
    "ELASTIC_USERNAME": ("elastic", "username"),
    "ELASTIC_PASSWORD": ("elastic", "password"),
    "ELASTIC_INDEX": ("elastic", "index"),
}


def apply_env_overrides(raw: dict) -> dict:
    for env_key, path in ENV_OVERRIDES.items():
        value = os.getenv(env_key)
        if value is None:
            continue
        node = raw
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
    return raw


def parse_config(raw: dict) -> IngestorConfig:
    try:
        return IngestorConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config: {e}") from e


def load_config(path) -> IngestorConfig:
    """Lee el YAML en `path`, aplica el entorno y valida."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read supplied config file {path}: {e}") from e
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return parse_config(apply_env_overrides(raw))
