"""
Configuration module for the UAT Routing Service.

Handles all configuration through environment variables with secure defaults.
Never stores sensitive data directly in code.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file
load_dotenv()


def _optional_float(name: str) -> Optional[float]:
    """Read an optional float from the environment (unset or empty -> None)."""
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


@dataclass(frozen=True)
class DevOpsConfig:
    """Configuration for the Azure DevOps work item tracker."""

    org_url: str = field(
        default_factory=lambda: os.getenv("AZURE_DEVOPS_ORG_URL", "")
    )
    pat: str = field(
        default_factory=lambda: os.getenv("AZURE_DEVOPS_PAT", "")
    )
    api_version: str = field(
        default_factory=lambda: os.getenv("AZURE_DEVOPS_API_VERSION", "7.1")
    )

    # None leaves timeouts to the transport
    request_timeout: Optional[float] = field(
        default_factory=lambda: _optional_float("REQUEST_TIMEOUT")
    )


@dataclass(frozen=True)
class LLMConfig:
    """
    Configuration for the Azure OpenAI chat completion deployment.

    Sampling parameters are fixed so that routing output stays reproducible.
    """

    endpoint: str = field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_ENDPOINT", "")
    )
    api_key: str = field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_API_KEY", "")
    )
    deployment: str = field(
        default_factory=lambda: os.getenv("AZURE_OPENAI_DEPLOYMENT", "")
    )
    api_version: str = field(
        default_factory=lambda: os.getenv(
            "AZURE_OPENAI_API_VERSION",
            "2024-10-01-preview",
        )
    )

    temperature: float = 0.3
    top_p: float = 0.95
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    max_tokens: int = 3000


@dataclass(frozen=True)
class GraphConfig:
    """Configuration for Microsoft Graph identity lookups (optional)."""

    client_id: str = field(
        default_factory=lambda: os.getenv("MICROSOFT_GRAPH_CLIENT_ID", "")
    )
    client_secret: str = field(
        default_factory=lambda: os.getenv("MICROSOFT_GRAPH_CLIENT_SECRET", "")
    )
    tenant_id: str = field(
        default_factory=lambda: os.getenv("MICROSOFT_GRAPH_TENANT_ID", "")
    )
    request_timeout: Optional[float] = field(
        default_factory=lambda: _optional_float("REQUEST_TIMEOUT")
    )

    @property
    def enabled(self) -> bool:
        """Identity resolution runs only when a Graph client is configured."""
        return bool(self.client_id)


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration aggregating all config sections."""

    devops: DevOpsConfig = field(default_factory=DevOpsConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)

    # Logging level
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )

    # Deployment environment; stack traces are only exposed outside production
    environment: str = field(
        default_factory=lambda: os.getenv("APP_ENV", "production")
    )

    # Number of work items routed concurrently in a batch request
    batch_concurrency: int = field(
        default_factory=lambda: int(os.getenv("BATCH_CONCURRENCY", "5"))
    )

    prompt_template_path: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["PROMPT_TEMPLATE_PATH"])
            if os.getenv("PROMPT_TEMPLATE_PATH")
            else None
        )
    )

    @property
    def is_production(self) -> bool:
        """Check whether the service runs in a production environment."""
        return self.environment.lower() == "production"

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of validation error messages (empty if valid).
        """
        errors = []

        # Validate work item tracker access
        if not self.devops.org_url:
            errors.append("AZURE_DEVOPS_ORG_URL is required")
        if not self.devops.pat:
            errors.append("AZURE_DEVOPS_PAT is required")

        # Validate completion endpoint
        if not self.llm.endpoint:
            errors.append("AZURE_OPENAI_ENDPOINT is required")
        if not self.llm.api_key:
            errors.append("AZURE_OPENAI_API_KEY is required")
        if not self.llm.deployment:
            errors.append("AZURE_OPENAI_DEPLOYMENT is required")

        # Graph is optional, but a half-configured client is an error
        if self.graph.enabled:
            if not self.graph.client_secret:
                errors.append("MICROSOFT_GRAPH_CLIENT_SECRET is required when MICROSOFT_GRAPH_CLIENT_ID is set")
            if not self.graph.tenant_id:
                errors.append("MICROSOFT_GRAPH_TENANT_ID is required when MICROSOFT_GRAPH_CLIENT_ID is set")

        if self.batch_concurrency < 1:
            errors.append("BATCH_CONCURRENCY must be at least 1")

        return errors


def get_config() -> AppConfig:
    """
    Get application configuration.

    Returns:
        AppConfig instance with all settings loaded from environment.
    """
    return AppConfig()
