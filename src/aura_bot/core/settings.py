
"""Configurações Pydantic Settings para a aplicação."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator

class Settings(BaseSettings):
    """Configurações da aplicação. Carrega de env e .env.

    Todas as credenciais devem vir via env. Nunca hardcode.
    """
    model_config = SettingsConfigDict(env_file=".env", env_prefix="AURA_", case_sensitive=False)

    # Flask
    flask_debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    log_level: int = Field(default=20)

    # Catálogo (MySQL)
    database_url: str = Field(..., description="URL do catálogo, ex: mysql+pymysql://aura:pass@db:3306/aimotive")

    # Cache de sessão
    redis_url: str | None = Field(default=None, description="Sem redis_url usa cache em memória (dev/testes)")
    cache_timeout_s: float = Field(default=2.0)

    # API Aimotive (mensageria + diretório de veículos/produtos)
    aimotive_api_url: str = Field(...)
    aimotive_api_key: str = Field(...)
    aimotive_timeout_s: float = Field(default=10.0)
    media_base_url: str = Field(default="https://cdn.evo.skrit.es/evolution/evolution-api")

    # LLM / LiteLLM
    litellm_base_url: str = Field(..., description="URL do gateway LiteLLM (compatível OpenAI)")
    litellm_api_key: str | None = Field(default=None)
    litellm_model_primary: str = Field(default="gpt-4o")
    litellm_model_fallback: str = Field(default="gpt-4o-mini")
    litellm_model_vision: str = Field(default="gpt-4o-mini")
    embeddings_model: str = Field(default="text-embedding-3-small")
    transcription_model: str = Field(default="whisper-1")
    litellm_timeout_s: float = Field(default=20.0)
    litellm_max_tokens: int = Field(default=400)
    litellm_temperature: float = Field(default=0.2)

    # Sessão
    session_ttl_seconds: int = Field(default=180)
    session_max_messages: int = Field(default=12)
    session_context_window: int = Field(default=10)

    # Match de catálogo
    catalog_match_threshold: float = Field(default=0.82)
    catalog_match_topk: int = Field(default=5)
    catalog_refresh_s: float = Field(default=600.0)
    catalog_load_timeout_s: float = Field(default=15.0)

    @field_validator("aimotive_api_url")
    @classmethod
    def _require_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f'aimotive_api_url inválida: "{v}". Deve incluir http/https')
        return v.rstrip("/")
