"""
Configuration module for easyai (configs).
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    def __init__(self) -> None:
        # Default model selection
        self.default_provider = os.getenv("EASYAI_PROVIDER", "groq").lower()
        self.default_model = os.getenv(
            "EASYAI_MODEL", "deepseek-r1-distill-llama-70b"
        )

        # Groq (OpenAI-compatible endpoint)
        self.groq_api_key = os.getenv("GROQ_API_KEY")
        self.groq_base_url = os.getenv(
            "GROQ_BASE_URL", "https://api.groq.com/openai/v1"
        )

        # OpenAI
        self.openai_api_key = os.getenv("OPENAI_API_KEY")
        # Optional base URL for OpenAI-compatible services
        self.openai_base_url = os.getenv("OPENAI_BASE_URL") or os.getenv(
            "OPENAI_API_BASE"
        )
        # Transport tuning handed to the SDK; the facade never retries itself
        self.openai_timeout = float(os.getenv("OPENAI_TIMEOUT", "60"))
        self.openai_max_retries = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

        # Google Gemini configuration
        self.google_gemini_api_key = os.getenv("GOOGLE_GEMINI_API_KEY")
        self.google_gemini_endpoint = os.getenv("GOOGLE_GEMINI_ENDPOINT")
        self.google_gemini_timeout = float(os.getenv("GOOGLE_GEMINI_TIMEOUT", "60"))

        # Reasoning extraction and stream smoothing
        self.reasoning_tag = os.getenv("EASYAI_REASONING_TAG", "think")
        self.smooth_stream_enabled = _env_flag("EASYAI_SMOOTH_STREAM", "true")
        self.smooth_stream_delay_ms = float(
            os.getenv("EASYAI_SMOOTH_STREAM_DELAY_MS", "10")
        )
        self.smooth_stream_chunking = os.getenv(
            "EASYAI_SMOOTH_STREAM_CHUNKING", "word"
        ).lower()

        # Logging / runtime
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_file = os.getenv("LOG_FILE")
        self.log_dir = os.getenv("LOG_DIR", "logs")

    def api_key_for(self, provider: str) -> str | None:
        """Return the configured credential for a provider name."""
        keys = {
            "groq": self.groq_api_key,
            "openai": self.openai_api_key,
            "google": self.google_gemini_api_key,
            "gemini": self.google_gemini_api_key,
        }
        return keys.get(provider.lower())


config = Config()
