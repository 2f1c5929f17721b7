from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Typed settings loaded from .env (and environment variables).
    Keep this as the single source of truth for configuration keys.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # -------------------
    # Voyage AI embeddings
    # -------------------
    # Only required once the Voyage embedder is built
    voyage_api_key: Optional[str] = Field(None, alias="VOYAGE_AI_API_KEY")
    voyage_api_url: str = Field("https://api.voyageai.com/v1/embeddings", alias="VOYAGE_API_URL")
    voyage_model: str = Field("voyage-3.5", alias="VOYAGE_MODEL")
    embedding_dimensions: Optional[int] = Field(1024, alias="EMBEDDING_DIMENSIONS")
    embedding_batch_size: int = Field(128, alias="EMBEDDING_BATCH_SIZE")
    embedding_timeout_seconds: float = Field(30.0, alias="EMBEDDING_TIMEOUT_SECONDS")

    # Retry / backoff for the embedding API
    embedding_max_retries: int = Field(3, alias="EMBEDDING_MAX_RETRIES")
    embedding_initial_backoff: float = Field(0.5, alias="EMBEDDING_INITIAL_BACKOFF")
    embedding_max_backoff: float = Field(8.0, alias="EMBEDDING_MAX_BACKOFF")

    # Embedding cache
    embedding_cache_size: int = Field(1024, alias="EMBEDDING_CACHE_SIZE")
    embedding_cache_ttl_seconds: float = Field(3600.0, alias="EMBEDDING_CACHE_TTL_SECONDS")

    # -------------------
    # Search
    # -------------------
    search_limit: int = Field(10, alias="SEARCH_LIMIT")
    search_threshold: float = Field(0.7, alias="SEARCH_THRESHOLD")
    similar_chunks_limit: int = Field(5, alias="SIMILAR_CHUNKS_LIMIT")
    similar_chunks_threshold: float = Field(0.8, alias="SIMILAR_CHUNKS_THRESHOLD")
    # Linear scan bound per query / per page
    search_scan_cap: int = Field(1000, alias="SEARCH_SCAN_CAP")

    # -------------------
    # Chunking + ingestion
    # -------------------
    chunk_size: int = Field(512, alias="CHUNK_SIZE")
    chunk_overlap: int = Field(128, alias="CHUNK_OVERLAP")
    ingest_local_path: str = Field("./data", alias="INGEST_LOCAL_PATH")
    store_path: str = Field("./data/store.json", alias="STORE_PATH")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator(
        "embedding_batch_size",
        "embedding_max_retries",
        "embedding_cache_size",
        "search_limit",
        "similar_chunks_limit",
        "search_scan_cap",
        "chunk_size",
    )
    @classmethod
    def _positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name.upper()} must be greater than 0")
        return v

    @field_validator("embedding_batch_size")
    @classmethod
    def _voyage_batch_limit(cls, v):
        if v > 128:
            raise ValueError("EMBEDDING_BATCH_SIZE cannot exceed the Voyage AI limit of 128")
        return v

    @field_validator("search_threshold", "similar_chunks_threshold")
    @classmethod
    def _cosine_range(cls, v, info):
        if not -1.0 <= v <= 1.0:
            raise ValueError(f"{info.field_name.upper()} must be within [-1, 1]")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v):
        return v.upper()

    @model_validator(mode="after")
    def _overlap_fits(self):
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError("CHUNK_OVERLAP must be between 0 and CHUNK_SIZE")
        return self


if __name__ == "__main__":
    s = Settings()
    print("✅ Settings loaded")
    print(f"Voyage model:          {s.voyage_model}")
    print(f"Voyage API key set:    {bool(s.voyage_api_key)}")
    print(f"Embedding dims:        {s.embedding_dimensions}")
    print(f"Embedding batch size:  {s.embedding_batch_size}")
    print(f"Retries/backoff:       {s.embedding_max_retries} / {s.embedding_initial_backoff}s..{s.embedding_max_backoff}s")
    print(f"Cache size/TTL:        {s.embedding_cache_size} / {s.embedding_cache_ttl_seconds}s")
    print(f"Search limit/thresh:   {s.search_limit}/{s.search_threshold}")
    print(f"Scan cap:              {s.search_scan_cap}")
    print(f"Chunk size/overlap:    {s.chunk_size}/{s.chunk_overlap}")
    print(f"Store path:            {s.store_path}")
