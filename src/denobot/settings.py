"""
deno-bot settings module

This module provides a typed configuration interface using pydantic-settings.
Configuration is loaded from a .env file or environment variables.
"""

import os
from typing import List

# Some hosting platforms export DEBUG with non-boolean values (e.g. 'app:*')
# which breaks Pydantic boolean parsing
if os.getenv("DEBUG") and not os.getenv("DEBUG").lower() in ["true", "false", "1", "0"]:
    del os.environ["DEBUG"]

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TwitterSettings(BaseSettings):
    """Twitter application and account credentials"""
    consumer_key: str = ""
    consumer_secret: str = ""
    access_token: str = ""
    access_token_secret: str = ""
    app_id: str = ""

    # Account activity environment used for webhooks ("dev" or "prod")
    webhook_env: str = "dev"

    model_config = SettingsConfigDict(
        env_prefix="TWITTER_",
        env_file=".env",
        extra="ignore",
    )

    def missing(self) -> List[str]:
        """Names of the credentials that are not configured"""
        required = ["consumer_key", "consumer_secret", "access_token", "access_token_secret"]
        return [name for name in required if not getattr(self, name)]


class SearchSettings(BaseSettings):
    """What the fav/RT task looks for"""
    hashtags: List[str] = ["#denoland", "#deno_land", "#parisdeno"]
    users: List[str] = ["@deno_land", "@ParisDeno"]
    languages: List[str] = ["fr", "en"]

    # Statuses need strictly more favorites or retweets than this in "famous" mode
    famous_threshold: int = 4

    result_type: str = "recent"
    count: int = 100

    model_config = SettingsConfigDict(
        env_prefix="DENOBOT_SEARCH_",
        env_file=".env",
        extra="ignore",
    )


class DenoBotSettings(BaseSettings):
    """Main settings class for deno-bot"""

    twitter: TwitterSettings = Field(default_factory=TwitterSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    # Shared secret expected in the x-deno-bot-secret header
    bot_secret: str = ""

    # Discord webhook receiving execution reports
    discord_webhook: str = ""

    # Operational flags
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    @field_validator('debug', mode='before')
    @classmethod
    def validate_debug(cls, v):
        """Handle non-boolean DEBUG values"""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            if v.lower() in ['true', '1', 'yes']:
                return True
            elif v.lower() in ['false', '0', 'no', '']:
                return False
            return False
        return bool(v)

    model_config = SettingsConfigDict(
        env_prefix="DENOBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )


# Global settings instance
settings = DenoBotSettings()


def get_settings() -> DenoBotSettings:
    """Get the global settings instance"""
    return settings
