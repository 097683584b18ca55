"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    openai_api_key: str = ""
    google_api_key: str = ""

    # LLM
    llm_provider: str = "openai"  # "openai" or "gemini"
    openai_chat_model: str = "gpt-4o"
    gemini_model: str = "gemini-2.0-flash"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000

    # Network calls
    request_timeout_s: float = 30.0
    generation_max_retries: int = 3
    generation_backoff_base_s: float = 0.5

    # Retrieval collaborator
    retrieval_service_url: str = "http://localhost:8100"
    retrieval_strategy: str = "hybrid"
    retrieval_threshold: float = 0.5
    retrieval_max_results: int = 20

    # Confidence thresholds
    confidence_high_threshold: float = 0.8
    confidence_medium_threshold: float = 0.6
    confidence_low_threshold: float = 0.4
    confidence_minimum_threshold: float = 0.2

    # Confidence component weights
    conf_w_retrieval: float = 0.35
    conf_w_content: float = 0.25
    conf_w_context: float = 0.20
    conf_w_generation: float = 0.20

    # Chunk selection
    selection_min_similarity: float = 0.3
    selection_min_quality: float = 0.4
    selection_max_per_source: int = 3
    selection_max_per_page: int = 2
    selection_min_content_chars: int = 50
    selection_min_keyword_ratio: float = 0.1
    selection_min_trim_tokens: int = 100
    selection_w_similarity: float = 0.5
    selection_w_quality: float = 0.3
    selection_w_keyword: float = 0.2

    # Token budget
    budget_minimum: int = 200
    budget_maximum: int = 4000
    business_hours_start: int = 9
    business_hours_end: int = 17

    # Domain wording used in fallback messages
    domain_name: str = "fund management"

    # Storage paths
    sqlite_audit_db_path: str = "data/audit.db"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = {"env_file": ".env", "env_prefix": "RAG_"}
