"""
Configuration management for the Deal Desk engine.

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / '.env'
if _env_file.exists():
    load_dotenv(_env_file)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Configuration settings loaded from environment."""

    # Database (postgresql://... in production, sqlite+aiosqlite:///... locally)
    DATABASE_URL: str = os.getenv('DATABASE_URL', '')

    # OpenAI (contract document generation only)
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_CHAT_MODEL: str = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4.1-mini')
    CONTRACT_GENERATION_ENABLED: bool = _env_bool('CONTRACT_GENERATION_ENABLED', True)

    # Organization used when the identity resolver supplies none
    DEFAULT_ORG_ID: str = os.getenv('DEFAULT_ORG_ID', '')

    # Similarity ranking
    SIMILARITY_LOOKBACK_DAYS: int = int(os.getenv('SIMILARITY_LOOKBACK_DAYS', '365'))
    SIMILARITY_CANDIDATE_LIMIT: int = int(os.getenv('SIMILARITY_CANDIDATE_LIMIT', '200'))
    SIMILARITY_RESULT_LIMIT: int = int(os.getenv('SIMILARITY_RESULT_LIMIT', '10'))
    SIMILARITY_RECENT_DAYS: int = int(os.getenv('SIMILARITY_RECENT_DAYS', '90'))

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_JSON: bool = _env_bool('LOG_JSON', False)

    @classmethod
    def validate(cls) -> list[str]:
        """
        Validate that required configuration is present.

        Returns:
            List of missing required configuration keys
        """
        missing = []
        if not cls.DATABASE_URL:
            missing.append('DATABASE_URL')
        if cls.CONTRACT_GENERATION_ENABLED and not cls.OPENAI_API_KEY:
            missing.append('OPENAI_API_KEY')
        return missing


# Singleton config instance
config = Config()
