"""
Polyglot Shelf
Centralized Configuration Management

Pydantic settings for every backing store, the warehouse loader and the API
server. Values come from environment variables (or a .env file) with
per-subsystem prefixes.
"""

from datetime import date
from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="polyglot_shelf", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: SecretStr = Field(default="", description="Database password")
    pool_size: int = Field(default=10, description="Connection pool size")
    max_overflow: int = Field(default=5, description="Max overflow connections")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, description="Full SQLAlchemy URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class MongoSettings(BaseSettings):
    """MongoDB Document Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="MONGO_")

    url: str = Field(default="mongodb://127.0.0.1:27017/", description="MongoDB connection string")
    database: str = Field(default="polyglot_shelf", description="Database name")
    products_collection: str = Field(default="products", description="Products collection")
    server_selection_timeout_ms: int = Field(default=5000, description="Server selection timeout")


class RedisSettings(BaseSettings):
    """Redis Key-Value Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")
    cart_ttl_seconds: int = Field(default=7 * 24 * 3600, description="Cart expiry in seconds")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class CassandraSettings(BaseSettings):
    """Cassandra Wide-Column Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="CASSANDRA_")

    contact_points: List[str] = Field(default=["127.0.0.1"], description="Cluster contact points")
    port: int = Field(default=9042, description="Native protocol port")
    local_datacenter: str = Field(default="datacenter1", description="Local data center name")
    keyspace: str = Field(default="polyglot_shelf", description="Keyspace")
    replication_factor: int = Field(default=1, description="SimpleStrategy replication factor")
    username: Optional[str] = Field(default=None, description="Auth username")
    password: Optional[SecretStr] = Field(default=None, description="Auth password")


class Neo4jSettings(BaseSettings):
    """Neo4j Graph Store Configuration"""

    model_config = SettingsConfigDict(env_prefix="NEO4J_")

    uri: str = Field(default="bolt://localhost:7687", description="Bolt URI")
    user: str = Field(default="neo4j", description="Neo4j user")
    password: SecretStr = Field(default="neo4j", description="Neo4j password")
    database: str = Field(default="neo4j", description="Database name")


class WarehouseSettings(BaseSettings):
    """Warehouse Loader Configuration"""

    model_config = SettingsConfigDict(env_prefix="WAREHOUSE_")

    unresolved_edge_policy: str = Field(
        default="skip",
        description="What to do with purchase edges whose user or product is missing: skip or fail",
    )
    purchase_date_window_days: int = Field(default=30, description="Synthesized purchase dates span this many days")
    purchase_date_anchor: Optional[date] = Field(default=None, description="Last day of the synthesized window (defaults to today)")
    advisory_lock_key: int = Field(default=72_114_031, description="pg_advisory_xact_lock key for rebuilds")
    schedule_interval_minutes: int = Field(default=60, description="Interval for the scheduled rebuild flow")
    analytics_cache_ttl: int = Field(default=600, description="Analytics cache TTL in seconds")

    @field_validator("unresolved_edge_policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        """Validate unresolved edge policy"""
        allowed = ["skip", "fail"]
        if v.lower() not in allowed:
            raise ValueError(f"Unresolved edge policy must be one of: {allowed}")
        return v.lower()


class SecuritySettings(BaseSettings):
    """CORS Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="polyglot-shelf", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=3000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    cassandra: CassandraSettings = Field(default_factory=CassandraSettings)
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    warehouse: WarehouseSettings = Field(default_factory=WarehouseSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
