"""
Configuration management for nwlab.

Uses pydantic-settings for environment variable loading and validation.
"""

from pathlib import Path
from typing import Literal
from urllib.parse import quote_plus

from psycopg.conninfo import make_conninfo
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="NWLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Staging
    data_dir: Path = Field(default=Path("data"), description="Root staging directory")

    # Container bring-up
    compose_file: Path = Field(default=Path("docker-compose.yml"), description="Compose file")
    compose_enabled: bool = Field(default=True, description="Run `docker compose up` per backend")

    # PostgreSQL (tabular)
    pg_host: str = Field(default="localhost", description="PostgreSQL hostname")
    pg_port: int = Field(default=5432, description="PostgreSQL port")
    pg_user: str = Field(default="postgres", description="PostgreSQL user")
    pg_password: str | None = Field(default="postgres", description="PostgreSQL password")
    pg_admin_db: str = Field(default="postgres", description="Database used for catalog queries")
    pg_database: str = Field(default="northwind", description="Target database")

    # MongoDB (document)
    mongo_host: str = Field(default="localhost", description="MongoDB hostname")
    mongo_port: int = Field(default=27017, description="MongoDB port")
    mongo_username: str | None = Field(default=None, description="MongoDB user (optional)")
    mongo_password: str | None = Field(default=None, description="MongoDB password (optional)")
    mongo_database: str = Field(default="northwind", description="Target database")
    mongo_batch_size: int = Field(default=1000, ge=1, description="Documents per insert_many")

    # Neo4j (graph)
    neo4j_uri: str = Field(default="bolt://localhost:7687", description="Bolt URI")
    neo4j_user: str = Field(default="neo4j", description="Neo4j user")
    neo4j_password: str = Field(default="password", description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Target database")

    # Readiness polling
    ready_max_attempts: int = Field(default=30, ge=1, description="Readiness attempts per backend")
    ready_interval: float = Field(default=2.0, ge=0, description="Seconds between attempts")
    connect_timeout: int = Field(default=5, ge=1, description="Driver connect timeout (seconds)")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    def staging_dir(self, family: str) -> Path:
        """Directory holding the staged files of one backend family."""
        return self.data_dir / family

    def postgres_conninfo(self, dbname: str | None = None) -> str:
        """Build a libpq connection string.

        Values are quoted by libpq rules, so passwords may hold spaces or quotes.
        """
        return make_conninfo(
            host=self.pg_host,
            port=self.pg_port,
            dbname=dbname or self.pg_database,
            user=self.pg_user,
            connect_timeout=self.connect_timeout,
            password=self.pg_password or None,
        )

    def mongo_uri(self) -> str:
        """Build a MongoDB connection URI."""
        auth = ""
        if self.mongo_username:
            auth = quote_plus(self.mongo_username)
            if self.mongo_password:
                auth += f":{quote_plus(self.mongo_password)}"
            auth += "@"
        return f"mongodb://{auth}{self.mongo_host}:{self.mongo_port}/"


# Global settings instance
settings = Settings()
