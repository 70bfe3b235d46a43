"""Configuration management for MeanGPT."""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys - a provider is only enabled when its key is present
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    grok_api_key: Optional[str] = Field(default=None, alias="GROK_API_KEY")

    # Models
    openai_model: str = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")
    anthropic_model: str = Field(default="claude-3-5-sonnet-20241022", alias="ANTHROPIC_MODEL")
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")
    grok_model: str = Field(default="grok-2-1212", alias="GROK_MODEL")

    # Internal roles of the orchestrator
    routing_model: str = Field(default="gpt-4o-mini", alias="ROUTING_MODEL")
    synthesis_model: str = Field(default="gpt-4o-mini", alias="SYNTHESIS_MODEL")
    default_provider: str = Field(default="openai", alias="DEFAULT_PROVIDER")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/meangpt.db",
        alias="DATABASE_URL"
    )
    # Skip durable storage entirely (short-lived deployments)
    ephemeral: bool = Field(default=False, alias="EPHEMERAL")

    # Context limits
    max_messages_per_context: int = Field(default=20, alias="MAX_MESSAGES_PER_CONTEXT")

    # Fan-out sampling
    forward_temperature: float = Field(default=0.7, alias="FORWARD_TEMPERATURE")
    forward_max_tokens: int = Field(default=4000, alias="FORWARD_MAX_TOKENS")

    # Server settings
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    debug: bool = Field(default=False, alias="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
