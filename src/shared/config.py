"""Environment-sourced settings using pydantic-settings.

These values are injected into ``docker compose`` and ``docker login``
but never interpreted by the pipeline itself.
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ServiceEnvironment(BaseSettings):
    """Configuration the service graph consumes at runtime."""
    mongo_root_username: str = Field(
        default="root", validation_alias="MONGO_INITDB_ROOT_USERNAME"
    )
    mongo_root_password: str = Field(
        default="changeme", validation_alias="MONGO_INITDB_ROOT_PASSWORD"
    )
    mongo_database: str = Field(
        default="dd_db", validation_alias="MONGO_INITDB_DATABASE"
    )
    mongodb_uri: str = Field(
        default="mongodb://mongodb:27017/dd_db", validation_alias="MONGODB_URI"
    )
    port: int = Field(default=8080, validation_alias="PORT")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    def as_env(self) -> dict[str, str]:
        """Return the settings keyed by their environment variable names."""
        return {
            "MONGO_INITDB_ROOT_USERNAME": self.mongo_root_username,
            "MONGO_INITDB_ROOT_PASSWORD": self.mongo_root_password,
            "MONGO_INITDB_DATABASE": self.mongo_database,
            "MONGODB_URI": self.mongodb_uri,
            "PORT": str(self.port),
        }


class RegistryCredentials(BaseSettings):
    """Credentials for pushing images to the container registry."""
    username: str = Field(default="", validation_alias="REGISTRY_USERNAME")
    password: str = Field(default="", validation_alias="REGISTRY_PASSWORD")

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)
