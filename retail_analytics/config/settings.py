"""
Retail Order Analytics Engine
Centralized Configuration Management

Pydantic settings for the flat-file data sources, caches, keyword index and
verification checkpoint, with environment variable support and validation.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OrderSourceConfig(BaseModel):
    """One published orders data source"""

    manifest_url: str = Field(description="Manifest JSON location")
    base_dir: str = Field(description="Directory holding the monthly partitions")
    month_file_patterns: List[str] = Field(
        default_factory=list,
        description="Templates with ${baseDir}, ${yyyy}, ${mm}; probed in order",
    )
    layout: str = Field(default="single", description="single | split (orders.csv + line_items.csv)")

    @field_validator("layout")
    @classmethod
    def validate_layout(cls, v: str) -> str:
        """Validate partition layout"""
        allowed = ["single", "split"]
        if v.lower() not in allowed:
            raise ValueError(f"Layout must be one of: {allowed}")
        return v.lower()


def _default_order_sources() -> Dict[str, OrderSourceConfig]:
    return {
        "retail": OrderSourceConfig(
            manifest_url="/data/retail/orders/index.json",
            base_dir="/data/retail/orders",
            month_file_patterns=["${baseDir}/${yyyy}/${yyyy}-${mm}/line_items.csv"],
            layout="split",
        ),
        "in_store": OrderSourceConfig(
            manifest_url="/data/newstore/orders/index.json",
            base_dir="/data/newstore/orders",
            month_file_patterns=[
                "${baseDir}/${yyyy}/${yyyy}-${mm}/${yyyy}-${mm}_orders_in_store.csv",
            ],
            layout="single",
        ),
    }


class OrdersSettings(BaseSettings):
    """Monthly order export configuration"""

    model_config = SettingsConfigDict(env_prefix="ORDERS_")

    active: str = Field(default="retail", description="Key of the active order source")
    sources: Dict[str, OrderSourceConfig] = Field(default_factory=_default_order_sources)

    @property
    def active_source(self) -> OrderSourceConfig:
        """Configuration of the active order source"""
        if self.active not in self.sources:
            raise ValueError(f"Unknown order source '{self.active}', known: {sorted(self.sources)}")
        return self.sources[self.active]


class CatalogSettings(BaseSettings):
    """Product catalog file configuration"""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    base_dir: str = Field(default="/data/newstore/catalog", description="Catalog directory")
    current_file: str = Field(
        default="${baseDir}/storefront-catalog-en-us.csv",
        description="Canonical current catalog file",
    )
    daily_pattern: str = Field(
        default="${baseDir}/${yyyy}/${yyyy}-${mm}/${yyyy}-${mm}-${dd}_storefront-catalog-en-us.csv",
        description="Daily published catalog file",
    )
    archive_pattern: str = Field(
        default="${baseDir}/archive/${yyyy}-${mm}-storefront-catalog-en-us.csv",
        description="Monthly archived catalog file",
    )
    override_file: Optional[str] = Field(default=None, description="Force a specific catalog file if it exists")
    daily_lookback_days: int = Field(default=120, description="Days probed backward for a daily file")
    monthly_lookback_months: int = Field(default=24, description="Months probed backward for an archive file")
    cache_ttl_seconds: int = Field(default=300, description="Catalog cache time-to-live")


class ProviderSettings(BaseSettings):
    """Flat file provider configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    kind: str = Field(default="http", description="http | local")
    base_url: str = Field(default="http://localhost:5173", description="Static file server root")
    root_path: str = Field(default="./public", description="Filesystem root for the local provider")
    request_timeout_seconds: Optional[float] = Field(default=None, description="HTTP timeout, None disables")

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate provider kind"""
        allowed = ["http", "local"]
        if v.lower() not in allowed:
            raise ValueError(f"Provider kind must be one of: {allowed}")
        return v.lower()


class IndexSettings(BaseSettings):
    """Keyword index configuration"""

    model_config = SettingsConfigDict(env_prefix="INDEX_")

    default_dims: List[str] = Field(
        default=["product_name", "sku", "color", "size"],
        description="Dimensions indexed when none are requested",
    )
    default_lookback_months: int = Field(default=3, description="Months covered when no time range is given")
    search_limit: int = Field(default=200, description="Maximum order ids returned per search")


class VerificationSettings(BaseSettings):
    """Product verification checkpoint configuration"""

    model_config = SettingsConfigDict(env_prefix="VERIFICATION_")

    remember_decisions: bool = Field(
        default=False,
        description="Reuse user decisions for discovered products within a session",
    )


class MonitoringSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing engine configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="retail-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")
    version: str = Field(default="1.0.0", description="Application version")

    orders: OrdersSettings = Field(default_factory=OrdersSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    index: IndexSettings = Field(default_factory=IndexSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
