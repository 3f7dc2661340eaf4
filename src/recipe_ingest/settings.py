from pydantic import BaseModel, ConfigDict, Field
from dotenv import load_dotenv
import os

load_dotenv()


def _env(name: str, default: str | None = None):
    return lambda: os.getenv(name, default)


def _env_flag(name: str):
    return lambda: os.getenv(name, "0") == "1"


class Settings(BaseModel):
    # env values arrive as strings and are coerced like explicit input
    model_config = ConfigDict(validate_default=True)

    llm_provider: str = Field(default_factory=_env("LLM_PROVIDER", "mock"))
    llm_model: str = Field(default_factory=_env("LLM_MODEL", "deepseek-ai/DeepSeek-R1-0528"))
    openai_api_key: str | None = Field(default_factory=_env("OPENAI_API_KEY"))
    openai_base_url: str = Field(default_factory=_env("OPENAI_BASE_URL", "https://api.openai.com/v1"))

    llm_max_tokens: int = Field(default_factory=_env("LLM_MAX_TOKENS", "8000"))
    llm_temperature: float = Field(default_factory=_env("LLM_TEMPERATURE", "0.3"))
    llm_timeout_seconds: float = Field(default_factory=_env("LLM_TIMEOUT_SECONDS", "120"))

    # pause between files to stay under provider quotas
    pacing_delay_seconds: float = Field(default_factory=_env("PACING_DELAY_SECONDS", "1.0"))

    content_root: str = Field(default_factory=_env("CONTENT_ROOT", "."))
    output_dir: str = Field(default_factory=_env("OUTPUT_DIR", "output"))
    keep_raw_llm_output: bool = Field(default_factory=_env_flag("KEEP_RAW_LLM_OUTPUT"))

    mock_chaos: bool = Field(default_factory=_env_flag("MOCK_CHAOS"))
    mock_chaos_rate: float = Field(default_factory=_env("MOCK_CHAOS_RATE", "0.0"))
    mock_chaos_seed: str = Field(default_factory=_env("MOCK_CHAOS_SEED", ""))

    log_level: str = Field(default_factory=_env("LOG_LEVEL", "INFO"))


def get_settings() -> Settings:
    # re-read env each time (good for tests)
    return Settings()
