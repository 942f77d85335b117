"""
Test Suite Configuration
"""
from datetime import date

import pytest

from retail_analytics.config import CatalogSettings, OrderSourceConfig, Settings
from retail_analytics.ingestion.catalog_repository import CatalogRepository
from retail_analytics.ingestion.orders_repository import OrderRecordRepository
from retail_analytics.io.providers import MemoryFlatFileProvider

MANIFEST_URL = "orders/index.json"
CATALOG_PATH = "catalog/storefront-catalog-en-us.csv"

ORDER_COLUMNS = "order_id,line_number,product_name,sku,color,size,quantity,unit_price,line_discount,discounted_price,order_date\n"

NOVEMBER_CSV = ORDER_COLUMNS + (
    "1001,1,Tin Cloth Cruiser Jacket,TCJ-OG-M,Otter Green,M,1,$250.00,0,$250.00,2024-11-03 10:15:00\n"
    "1002,1,Tin Cloth Cruiser Jacket,TCJ-OG-L,Otter Green,L,1,250,0,250,2024-11-10 12:00:00\n"
    "1002,2,Duffle Bag Canvas,DB-TAN,Tan,,1,120,0,120,2024-11-10 12:00:00\n"
    "1003,1,Canvas Tote,CT-NAT,Natural,,2,45,5,,2024-11-20 09:00:00\n"
)

DECEMBER_CSV = ORDER_COLUMNS + (
    "2001,1,Tin Cloth Packer Jacket,TPJ-BR-M,Brown,M,1,295,0,295,2024-12-02 11:00:00\n"
    "2001,2,Tin Cloth Cruiser Jacket,TCJ-OG-M,Otter Green,M,1,250,25,225,2024-12-02 11:00:00\n"
    "2001,3,Duffle Bag Canvas,DB-TAN,Tan,,1,120,0,120,2024-12-02 11:00:00\n"
    "2002,1,Tin Cloth Packer Jacket,TPJ-BR-L,Brown,L,2,295,0,590,2024-12-15 16:30:00\n"
    "2003,1,Wool Beanie,WB-RED,Red,,1,35,0,35,2024-12-20 08:00:00\n"
)

CATALOG_CSV = (
    "product_id,title,variation_color_value,variation_size_value,price,is_available,"
    "external_identifiers,images,extended_attributes\n"
    'p1,Tin Cloth Cruiser Jacket,Otter Green,M,250,true,'
    '"[{""type"": ""sku"", ""value"": ""TCJ-OG-M""}]","[""https://img.example/p1.jpg""]",'
    '"[{""name"": ""fit"", ""value"": ""Trim""}]"\n'
    "p2,Tin Cloth Cruiser Jacket,Otter Green,L,250,true,,,\n"
    "p3,Duffle Bag Canvas,Tan,,120,false,,,\n"
    "p4,Wool Beanie,Red,,35,true,,,\n"
    ",Row Without Id,Red,,10,true,,,\n"
)


@pytest.fixture
def order_source() -> OrderSourceConfig:
    """Single-file source probing a flat then a nested month path"""
    return OrderSourceConfig(
        manifest_url=MANIFEST_URL,
        base_dir="orders",
        month_file_patterns=[
            "${baseDir}/${yyyy}-${mm}.csv",
            "${baseDir}/${yyyy}/${yyyy}-${mm}.csv",
        ],
        layout="single",
    )


@pytest.fixture
def catalog_settings() -> CatalogSettings:
    return CatalogSettings(base_dir="catalog", cache_ttl_seconds=300)


@pytest.fixture
def provider() -> MemoryFlatFileProvider:
    """November and December 2024 published, with the catalog"""
    return MemoryFlatFileProvider({
        MANIFEST_URL: {"years": {"2024": ["11", "12"]}},
        "orders/2024-11.csv": NOVEMBER_CSV,
        "orders/2024/2024-12.csv": DECEMBER_CSV,
        CATALOG_PATH: CATALOG_CSV,
    })


@pytest.fixture
def orders_repository(provider, order_source) -> OrderRecordRepository:
    return OrderRecordRepository(provider, order_source)


@pytest.fixture
def catalog_repository(provider, catalog_settings) -> CatalogRepository:
    return CatalogRepository(provider, catalog_settings, today=lambda: date(2024, 12, 31))


@pytest.fixture
def test_settings(order_source, catalog_settings) -> Settings:
    """Create test settings"""
    settings = Settings(
        app_env="testing",
        debug=True,
    )
    settings.orders.sources["test"] = order_source
    settings.orders.active = "test"
    settings.catalog = catalog_settings
    return settings
