from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STATMINER_",
        extra="ignore",
    )

    # ── Source adapters ─────────────────────────────────────────────────────
    # Per-request timeout (seconds) for statistical API calls
    source_timeout: float = 20.0
    # Upper bound on remote search hits per source
    search_limit: int = 20

    # ── Provider adapters ───────────────────────────────────────────────────
    # Default per-call budget when the caller does not pass one
    provider_timeout: float = 60.0
    # OpenRouter attribution headers (optional)
    openrouter_referer: str = ""
    openrouter_title: str = "StatMiner"

    # ── Dispatch ────────────────────────────────────────────────────────────
    # Rows of dataset context prepended to a prompt
    context_preview_rows: int = 100

    # ── Validation ──────────────────────────────────────────────────────────
    freshness_max_age_days: int = 30
    # Fraction of null/empty cells above which a warning is raised
    missing_value_threshold: float = 0.10


settings = Settings()
