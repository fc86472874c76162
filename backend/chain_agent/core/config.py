from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Thread storage ────────────────────────────────────────────────────────
    thread_db_path: str = "thread-storage.sqlite"

    # ── LiteLLM / OpenAI ──────────────────────────────────────────────────────
    # mode: "openai"  = ChatOpenAI straight against the OpenAI API
    #       "proxy"   = ChatOpenAI pointed at an external LiteLLM container
    #       "library" = litellm imported directly (no network hop)
    litellm_mode: str = "openai"
    litellm_base_url: str = "http://litellm:4000/v1"
    litellm_master_key: str = ""
    openai_api_key: str = ""

    # ── Models ────────────────────────────────────────────────────────────────
    primary_model: str = "gpt-4o"
    fast_model: str = "gpt-4o-mini"          # used for thread summarisation
    temperature: float = 0.7
    llm_request_timeout: float = 60.0        # seconds per provider call

    # ── Agent turn ────────────────────────────────────────────────────────────
    max_agent_cycles: int = 10               # model calls allowed per turn

    # ── Summaries ─────────────────────────────────────────────────────────────
    summary_batch_size: int = 5
    summary_messages_per_thread: int = 3
    max_history_summaries: int = 100

    # ── Blockchain ────────────────────────────────────────────────────────────
    rpc_url: str = "http://localhost:8545"
    token_decimals: int = 18

    # ── Redis (Celery broker) ─────────────────────────────────────────────────
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = ""

    # ── App ───────────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env"}

    @property
    def redis_url(self) -> str:
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/0"
        return f"redis://{self.redis_host}:{self.redis_port}/0"


@lru_cache
def get_settings() -> Settings:
    return Settings()
