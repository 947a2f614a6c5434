"""Configuration management for the conduit client."""

import os
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path


class ConnectionConfig(BaseModel):
    """Connection configuration."""
    origin: str = Field(default="ws://localhost:8080", description="Server origin URL")
    key: str = Field(default="", description="Session key sent in the connection URL")
    id: int = Field(default=0, ge=0, le=0xFFFFFFFF, description="Connection id (0 = random)")

    @field_validator('origin')
    @classmethod
    def validate_origin(cls, v):
        """Validate origin scheme."""
        if not v.startswith(("ws://", "wss://", "http://", "https://")):
            raise ValueError("Origin must be a ws://, wss://, http:// or https:// URL")
        return v.rstrip('/')


class ProtocolConfig(BaseModel):
    """Protocol configuration."""
    high_water_mark: int = Field(default=1024, ge=1, le=65535, description="Upload chunk size in bytes")
    call_timeout: Optional[float] = Field(default=None, gt=0, description="Seconds to wait for a reply (None = forever)")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="WARNING", description="Log level")
    file: Optional[str] = Field(default=None, description="Log file path")
    max_size: int = Field(default=10485760, description="Max log file size")
    backup_count: int = Field(default=5, description="Number of backup files")

    @field_validator('file')
    @classmethod
    def expand_path(cls, v):
        """Expand user path."""
        return os.path.expanduser(v) if v else v

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v


class Config(BaseSettings):
    """Main configuration class."""
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix='CONDUIT_',
        env_nested_delimiter='__',
        case_sensitive=False
    )

    @classmethod
    def load_from_file(cls, config_path: Optional[str] = None) -> 'Config':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to config file (uses default locations if None)

        Returns:
            Loaded configuration
        """
        if config_path:
            config_file = Path(config_path).expanduser()
        else:
            possible_paths = [
                Path("conduit.yaml"),
                Path("~/.conduit/config.yaml").expanduser(),
                Path("/etc/conduit/config.yaml"),
            ]

            config_file = None
            for path in possible_paths:
                if path.exists():
                    config_file = path
                    break

        if config_file and config_file.exists():
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f)

            if data:
                config_dict = {
                    section: values
                    for section, values in data.items()
                    if isinstance(values, dict)
                }
                return cls(**config_dict)

        return cls()

    def save_to_file(self, config_path: str):
        """
        Save configuration to YAML file.

        Args:
            config_path: Path to save config file
        """
        config_dict = {
            'connection': self.connection.model_dump(),
            'protocol': self.protocol.model_dump(),
            'logging': self.logging.model_dump()
        }

        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
