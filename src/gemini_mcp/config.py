"""gemini-mcp configuration management."""

import os
from dataclasses import dataclass, field

DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class ConfigError(Exception):
    """Raised when the process cannot be configured to serve requests."""


class MissingCredentialError(ConfigError):
    """No Gemini API key in the environment."""

    def __init__(self):
        super().__init__("Error: GEMINI_API_KEY or GOOGLE_API_KEY environment variable required")


@dataclass
class ModelConfig:
    """Remote model identifiers.

    The image models are the two tiers picked by the model router:
    ``image`` is the fast tier, ``image_pro`` the advanced one.
    """

    chat: str = "gemini-3-pro-preview"
    image: str = "gemini-2.5-flash-image"
    image_pro: str = "gemini-3-pro-image-preview"
    video: str = "veo-3.1-generate-preview"


@dataclass
class SessionConfig:
    """Conversation retention."""

    retention_seconds: float = 60 * 60  # 1 hour idle


@dataclass
class GeminiConfig:
    """Top-level gemini-mcp configuration."""

    api_key: str = ""
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float | None = None  # remote calls may run arbitrarily long
    log_level: str = "INFO"
    models: ModelConfig = field(default_factory=ModelConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def load(cls, environ: dict[str, str] | None = None) -> "GeminiConfig":
        """Build config from defaults plus environment overrides.

        Does not validate the credential; call ``require_api_key`` for that.
        """
        env = os.environ if environ is None else environ
        config = cls()

        config.api_key = env.get("GEMINI_API_KEY") or env.get("GOOGLE_API_KEY") or ""

        base_url = env.get("GEMINI_API_BASE_URL")
        if base_url:
            config.api_base_url = base_url.rstrip("/")

        log_level = env.get("GEMINI_MCP_LOG_LEVEL")
        if log_level:
            config.log_level = log_level.upper()

        # Env var overrides for model selection
        chat_model = env.get("GEMINI_MODEL")
        image_model = env.get("GEMINI_IMAGE_MODEL")
        image_pro_model = env.get("GEMINI_IMAGE_PRO_MODEL")
        video_model = env.get("GEMINI_VIDEO_MODEL")

        if chat_model:
            config.models.chat = chat_model
        if image_model:
            config.models.image = image_model
        if image_pro_model:
            config.models.image_pro = image_pro_model
        if video_model:
            config.models.video = video_model

        ttl = env.get("GEMINI_MCP_SESSION_TTL")
        if ttl:
            try:
                config.sessions.retention_seconds = float(ttl)
            except ValueError:
                raise ConfigError(f"GEMINI_MCP_SESSION_TTL must be a number of seconds, got {ttl!r}")

        return config

    def require_api_key(self) -> str:
        """Return the API key or raise ``MissingCredentialError``."""
        if not self.api_key:
            raise MissingCredentialError()
        return self.api_key

    def masked_api_key(self) -> str:
        if not self.api_key:
            return "(not set)"
        if len(self.api_key) <= 8:
            return "****"
        return f"{self.api_key[:4]}...{self.api_key[-4:]}"

    def to_dict(self) -> dict:
        return {
            "api_key": self.masked_api_key(),
            "api_base_url": self.api_base_url,
            "request_timeout": self.request_timeout,
            "log_level": self.log_level,
            "models": {
                "chat": self.models.chat,
                "image": self.models.image,
                "image_pro": self.models.image_pro,
                "video": self.models.video,
            },
            "sessions": {
                "retention_seconds": self.sessions.retention_seconds,
            },
        }
