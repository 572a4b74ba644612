from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Text generation (OpenAI-compatible chat completions)
    llm_provider: str = "openai"  # openai | openrouter | groq | deepseek | perplexity | mistral
    llm_model: str = "gpt-4o"
    llm_base_url: str = ""  # optional override for the provider's default endpoint
    llm_max_tokens: int = 4096
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    groq_api_key: str = ""
    deepseek_api_key: str = ""
    pplx_api_key: str = ""
    mistral_api_key: str = ""

    # Embeddings
    embedding_backend: str = "openai"  # openai | local
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 64
    local_embed_model: str = "BAAI/bge-small-en-v1.5"

    # Search providers
    search_chain: str = "langsearch,tavily,brave,google_cse,bing,duckduckgo"
    langsearch_api_key: str = ""
    tavily_api_key: str = ""
    brave_api_key: str = ""
    google_api_key: str = ""
    google_cx_key: str = ""
    bing_api_key: str = ""

    # Retrieval
    max_search_results_per_query: int = 5
    request_timeout_ms: int = 120000
    research_concurrency: int = 4

    # Report
    total_words: int = 1200
    report_language: str = "english"
    report_type: str = "research_report"
    citation_style: str = "APA"  # APA | MLA
    include_local: bool = True
    rag_top_k: int = 10
    preview_chars: int = 500

    # Storage
    index_path: str = "outputs/index.json"
    reports_dir: str = "outputs/reports"

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def search_chain_list(self) -> list[str]:
        return [name.strip().lower() for name in self.search_chain.split(",") if name.strip()]

    @property
    def max_results_clamped(self) -> int:
        return max(1, min(20, int(self.max_search_results_per_query)))

    @property
    def request_timeout_clamped_ms(self) -> int:
        return max(3000, int(self.request_timeout_ms))

    @property
    def total_words_clamped(self) -> int:
        return max(300, int(self.total_words))


settings = Settings()
