"""Configuration management for the lazy storage replicator."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)


def _int_env(var_name: str, default: int) -> int:
    """Parse an integer environment variable, falling back on bad values."""
    value = os.getenv(var_name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer {var_name}={value!r}, using {default}")
        return default


def _bool_env(var_name: str, default: bool) -> bool:
    value = os.getenv(var_name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class AzureBlobCredentials:
    """Credentials for Azure Blob Storage (backend A)"""
    account_name: Optional[str] = None
    account_key: Optional[str] = None
    connection_string: Optional[str] = None
    account_url: Optional[str] = None

    @property
    def resolved_account_url(self) -> Optional[str]:
        if self.account_url:
            return self.account_url
        if self.account_name:
            return f"https://{self.account_name}.blob.core.windows.net"
        return None

    def is_complete(self) -> bool:
        return bool(self.connection_string or (self.resolved_account_url and self.account_key))


@dataclass
class S3Credentials:
    """Credentials for AWS S3 (backend B)"""
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None

    def is_complete(self) -> bool:
        # Keys may also come from the default AWS credential chain
        return bool(self.region)


@dataclass
class RetryPolicy:
    """Retry settings applied by the adapters to transient backend failures"""
    max_attempts: int = 3
    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 10.0
    multiplier: float = 1.0


@dataclass
class ReplicatorConfig:
    """Central configuration for the replicator and its two backends."""

    azure: AzureBlobCredentials = field(default_factory=AzureBlobCredentials)
    s3: S3Credentials = field(default_factory=S3Credentials)
    default_container_name: Optional[str] = None
    default_bucket_name: Optional[str] = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    log_level: str = 'INFO'
    structured_logs: bool = False

    @classmethod
    def from_env(cls) -> "ReplicatorConfig":
        """Build a configuration from environment variables"""
        return cls(
            azure=AzureBlobCredentials(
                account_name=os.getenv('AZURE_STORAGE_ACCOUNT_NAME'),
                account_key=os.getenv('AZURE_STORAGE_ACCESS_KEY'),
                connection_string=os.getenv('AZURE_STORAGE_CONNECTION_STRING'),
                account_url=os.getenv('AZURE_STORAGE_ACCOUNT_URL'),
            ),
            s3=S3Credentials(
                access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
                secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
                region=os.getenv('AWS_REGION', 'us-east-1'),
                endpoint_url=os.getenv('AWS_ENDPOINT_URL'),
            ),
            default_container_name=os.getenv('AZURE_STORAGE_CONTAINER'),
            default_bucket_name=os.getenv('S3_BUCKET'),
            retry=RetryPolicy(max_attempts=_int_env('REPLICATOR_RETRY_ATTEMPTS', 3)),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            structured_logs=_bool_env('LOG_STRUCTURED', False),
        )

    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """Overlay values from a parsed YAML document"""
        sections = {
            'azure': self.azure,
            's3': self.s3,
            'retry': self.retry,
        }
        for key, value in overrides.items():
            if key in sections:
                if not isinstance(value, dict):
                    raise ConfigError(f"Config section '{key}' must be a mapping")
                target = sections[key]
                for sub_key, sub_value in value.items():
                    if not hasattr(target, sub_key):
                        raise ConfigError(f"Unknown config field '{key}.{sub_key}'")
                    setattr(target, sub_key, sub_value)
            elif hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ConfigError(f"Unknown config field '{key}'")

    def validate(self) -> bool:
        """Validate configuration."""
        if not self.azure.is_complete():
            raise ConfigError(
                "Azure Blob Storage needs a connection string, or an account name/URL and access key"
            )
        if not self.s3.is_complete():
            raise ConfigError("AWS S3 needs a region")
        if not (self.default_container_name or self.default_bucket_name):
            logger.warning("No default container or bucket configured; every call must name one")
        if self.retry.max_attempts < 1:
            raise ConfigError("retry.max_attempts must be at least 1")
        return True


def load_config(config_path: Optional[str] = None) -> ReplicatorConfig:
    """Load configuration from the environment, overlaid by a YAML file if present"""
    config = ReplicatorConfig.from_env()
    config_path = config_path or os.getenv('REPLICATOR_CONFIG', 'replicator.yaml')

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                file_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file {config_path}: {e}") from e
        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_path} must contain a mapping")
            config.apply_overrides(file_config)
        logger.info(f"Loaded configuration from {config_path}")

    return config
