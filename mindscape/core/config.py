from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Backend Selection ─────────────────────────────────────────────────────
    # True  → local Ollama model, free text + defensive JSON recovery
    # False → remote hosted model, JSON mode + strict schema validation
    USE_LOCAL_MODELS: bool = False

    AI_PROVIDER: str = "hybrid"

    @field_validator("AI_PROVIDER")
    @classmethod
    def validate_ai_provider(cls, v: str) -> str:
        allowed = {"hybrid", "groq", "gemini"}
        if v.lower() not in allowed:
            raise ValueError(f"AI_PROVIDER must be one of {allowed}, got '{v}'")
        return v.lower()

    # Groq (Llama 3 - High Speed)
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"

    # Google (Gemini)
    GOOGLE_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash"

    # Ollama (local)
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    LOCAL_MODEL: str = "llama3.1"

    # ── Limits ────────────────────────────────────────────────────────────────
    MAX_TOKENS: int = 8000
    AI_TIMEOUT_SECONDS: float = 120
    VALIDATE_LINKS: bool = True
    LINK_CHECK_TIMEOUT_SECONDS: float = 5.0

    # ── Core ──────────────────────────────────────────────────────────────────
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
