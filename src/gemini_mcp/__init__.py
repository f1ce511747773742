"""gemini-mcp: Google Gemini chat, image and video tools over MCP stdio."""

__version__ = "1.0.0"

from gemini_mcp.config import ConfigError, GeminiConfig, MissingCredentialError
from gemini_mcp.gemini_client import GeminiAPIError, GeminiClient
from gemini_mcp.instructions import compose_system_instruction
from gemini_mcp.model_router import ImageTier, RoutingDecision, route_image_request, select_tier
from gemini_mcp.sessions import ConversationSession, SessionStore, Turn
from gemini_mcp.tools import ServerContext, ToolDispatcher

__all__ = [
    "ConfigError",
    "GeminiConfig",
    "MissingCredentialError",
    "GeminiAPIError",
    "GeminiClient",
    "compose_system_instruction",
    "ImageTier",
    "RoutingDecision",
    "route_image_request",
    "select_tier",
    "ConversationSession",
    "SessionStore",
    "Turn",
    "ServerContext",
    "ToolDispatcher",
]
