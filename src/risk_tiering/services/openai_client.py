"""OpenAI client factory for policy document extraction.

Azure OpenAI is used when its credentials are present, otherwise the
standard OpenAI API.

Environment variables:
    AZURE_OPENAI_API_KEY      - Azure OpenAI API key
    AZURE_OPENAI_ENDPOINT     - Azure endpoint (AZURE_OPENAI_BASE_URL also accepted)
    AZURE_OPENAI_API_VERSION  - API version (default: 2024-08-01-preview)
    AZURE_OPENAI_DEPLOYMENT   - Deployment name used as the model
    OPENAI_API_KEY            - Standard OpenAI API key
    OPENAI_MODEL              - Model override for the standard API
"""

import logging
import os
from typing import Any, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2024-08-01-preview"
DEFAULT_MODEL = "gpt-4o"


def _azure_endpoint() -> Optional[str]:
    endpoint = os.getenv("AZURE_OPENAI_ENDPOINT") or os.getenv("AZURE_OPENAI_BASE_URL")
    if not endpoint:
        return None
    endpoint = endpoint.rstrip("/")
    for suffix in ("/openai/v1", "/openai"):
        if endpoint.endswith(suffix):
            return endpoint[: -len(suffix)]
    return endpoint


def ai_credentials_available() -> bool:
    """True if either Azure or standard OpenAI credentials are set."""
    azure = bool(os.getenv("AZURE_OPENAI_API_KEY") and _azure_endpoint())
    return azure or bool(os.getenv("OPENAI_API_KEY"))


def get_client_and_model(
    model: Optional[str] = None, timeout: float = 60.0
) -> Tuple[Any, str]:
    """Create a client and resolve the model/deployment name.

    Args:
        model: Optional model override (the prompt's configured model).
        timeout: Request timeout in seconds. Retries are handled by callers.

    Raises:
        ValueError: If no credentials are configured.
    """
    azure_key = os.getenv("AZURE_OPENAI_API_KEY")
    azure_endpoint = _azure_endpoint()

    if azure_key and azure_endpoint:
        from openai import AzureOpenAI

        logger.debug(f"Using Azure OpenAI endpoint {azure_endpoint[:30]}...")
        client = AzureOpenAI(
            api_key=azure_key,
            api_version=os.getenv("AZURE_OPENAI_API_VERSION", DEFAULT_API_VERSION),
            azure_endpoint=azure_endpoint,
            timeout=timeout,
            max_retries=0,
        )
        return client, os.getenv("AZURE_OPENAI_DEPLOYMENT") or model or DEFAULT_MODEL

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        from openai import OpenAI

        logger.debug("Using standard OpenAI API")
        client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        return client, os.getenv("OPENAI_MODEL") or model or DEFAULT_MODEL

    raise ValueError(
        "No OpenAI credentials found. Set AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT "
        "or OPENAI_API_KEY"
    )
