"""
Application configuration loaded from environment variables.

Uses pydantic-settings so every option can come from the environment (or a
local .env file) with an IAPTIC_ prefix. Command-line flags parsed in
server.py take precedence over the environment.

The startup credentials are:
- IAPTIC_APP_NAME: the default app every call runs against
- IAPTIC_API_KEY: that app's API key
- IAPTIC_MASTER_KEY: optional account-wide key; when set, callers may target
  any app by name and the API key is no longer needed
"""

from pydantic_settings import BaseSettings

from iaptic_mcp.errors import ConfigurationError
from iaptic_mcp.identity import Identity, MasterKey, TenantKey


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the IAPTIC_ prefix,
    e.g. `app_name` reads IAPTIC_APP_NAME.
    """

    # --- Iaptic credentials ---

    app_name: str | None = None
    api_key: str | None = None
    master_key: str | None = None

    # --- Iaptic API ---

    base_url: str = "https://validator.iaptic.com/v3"

    # Seconds before a backend call fails with TransportError.
    request_timeout: float = 30.0

    # Page size used when a list tool gets no limit, and the hard ceiling
    # applied to whatever limit the caller asks for.
    default_limit: int = 100
    max_limit: int = 1000

    # How many events event_list renders into its text summary.
    event_summary_limit: int = 20

    # --- Server settings ---

    # "stdio" for local MCP clients, "streamable-http" to serve over HTTP.
    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"

    # --- HTTP transport authentication ---

    # Only used with transport="streamable-http". The default secret is for
    # local development.
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    required_scope: str = "iaptic:tools"

    model_config = {
        "env_prefix": "IAPTIC_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


def build_default_identity(config: Settings) -> Identity:
    """
    Build the startup identity from configuration.

    A master key wins over an app API key when both are set.

    Raises:
        ConfigurationError: If the app name or both credentials are missing
    """
    if not config.app_name:
        raise ConfigurationError(
            "App name is required. Provide it via --app-name argument or "
            "IAPTIC_APP_NAME environment variable"
        )

    if config.master_key:
        return Identity(tenant=config.app_name, credential=MasterKey(config.master_key))

    if not config.api_key:
        raise ConfigurationError(
            "API key is required. Provide it via --api-key argument or "
            "IAPTIC_API_KEY environment variable (or a master key via --master-key)"
        )

    return Identity(tenant=config.app_name, credential=TenantKey(config.api_key))


# Singleton instance: import this from other modules.
settings = Settings()
