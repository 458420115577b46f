from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./backoffice.db"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="BO_", extra="ignore")

    app_name: str = "Retail Back-Office"
    env: str = "dev"
    log_level: str = "INFO"

    database_url: str = DEFAULT_DATABASE_URL

    default_vat_percentage: Decimal = Field(
        default=Decimal("12"),
        ge=0,
        le=100,
        description="VAT rate already contained in POS prices",
    )
    default_order_tax_rate: Decimal = Field(
        default=Decimal("12"),
        ge=0,
        le=100,
        description="Tax rate added on top of purchase/customer order subtotals",
    )

    default_per_page: int = 15
    max_per_page: int = 100

    purchase_order_prefix: str = "PO"
    customer_order_prefix: str = "CO"
    payment_prefix: str = "PAY"
    invoice_prefix: str = "INV"

    def model_post_init(self, __context) -> None:
        if self.env.lower() == "dev":
            return

        if self.database_url == DEFAULT_DATABASE_URL or ":memory:" in self.database_url:
            raise ValueError(
                "the default local database is not allowed outside dev mode; set env var: BO_DATABASE_URL"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
