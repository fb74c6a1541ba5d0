# config.py
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from trace_query.runtime.storage.store_config import SpanStoreConfig

load_dotenv()


class Settings(BaseSettings):
    # Store type configuration
    STORE_TYPE: Literal["elasticsearch", "opensearch"] = Field(
        default="elasticsearch",
        description="Search backend holding the span and dependency indices"
    )

    # Elasticsearch settings
    ES_HOST: str = "localhost:9200"
    ES_USERNAME: str = "elastic"
    ES_PASSWORD: str = "password"

    # OpenSearch settings
    OS_HOST: str = "localhost:9200"
    OS_USERNAME: str = "admin"
    OS_PASSWORD: str = "admin"

    CA_CERT_PATH: str | None = Field(
        default=None,
        description="CA bundle used to verify https:// hosts"
    )

    # Span store settings
    INDEX_PREFIX: str = "zipkin"
    INDEX_DATE_SEPARATOR: str = "-"
    STRICT_TRACE_ID: bool = True
    NAMES_LOOKBACK: int = 86_400_000
    SEARCH_MAX_HITS: int = 10_000

    # Logging settings
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(extra="allow", env_file=".env")

    def span_store_config(self) -> SpanStoreConfig:
        return SpanStoreConfig(
            index=self.INDEX_PREFIX,
            date_separator=self.INDEX_DATE_SEPARATOR,
            strict_trace_id=self.STRICT_TRACE_ID,
            names_lookback=self.NAMES_LOOKBACK,
            max_hits=self.SEARCH_MAX_HITS,
        )


settings = Settings()
