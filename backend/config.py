from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    gemini_api_key: str
    gemini_model: str = "gemini-2.0-flash"

    # Logs full prompts and raw responses. Conversation text is sensitive, keep off in production.
    llm_debug: bool = False

    # Shared outbound quota across every analysis call in the process
    llm_requests_per_minute: int = 1900

    # Database (sqlite for local runs, postgresql+asyncpg://... in deployments)
    database_url: str = "sqlite+aiosqlite:///./data/agenticflows.db"

    # CORS - Allowed origins (comma-separated in .env)
    # Use "*" only for development
    allowed_origins: str = "*"

    # Deadline for one /api/analysis or /api/analysis/chain request
    analysis_timeout_seconds: float = 300.0

    log_level: str = "INFO"

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse allowed_origins string into list."""
        if self.allowed_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"

settings = Settings()
