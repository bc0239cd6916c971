"""Provider client construction for extraction calls.

Workers AI, OpenAI and other OpenAI-compatible endpoints share the ``openai``
client; ``anthropic`` gets its own SDK client. SDK-level retries are disabled
because :class:`~mountaingraph.extraction.llm_extractor.LLMExtractor` retries
through its own :class:`~mountaingraph.utils.retry.RetryPolicy`.
"""

from typing import Any, Dict, Union

import anthropic
from loguru import logger
from openai import OpenAI

from mountaingraph.utils.config import LLMConfig

ChatClient = Union[OpenAI, anthropic.Anthropic]


def mask_key(api_key: str | None) -> str:
    if not api_key:
        return "None"
    if len(api_key) <= 8:
        return "***"
    return f"{api_key[:4]}...{api_key[-4:]}"


def create_llm_client(config: LLMConfig) -> ChatClient:
    """Build the SDK client for ``config.provider``.

    Unset ``api_key`` / ``base_url`` are left to the SDK, which reads its own
    environment variables (``OPENAI_API_KEY``, ``ANTHROPIC_API_KEY``...).

    Raises:
        ValueError: If the provider is not supported.
    """
    kwargs: Dict[str, Any] = {"timeout": float(config.timeout), "max_retries": 0}
    if config.api_key:
        kwargs["api_key"] = config.api_key
    if config.base_url:
        kwargs["base_url"] = config.base_url

    logger.debug(
        f"Creating {config.provider} client for {config.model}: "
        f"base_url={config.base_url}, api_key={mask_key(config.api_key)}, "
        f"timeout={config.timeout}"
    )

    if config.provider == "openai":
        return OpenAI(**kwargs)
    if config.provider == "anthropic":
        return anthropic.Anthropic(**kwargs)
    raise ValueError(f"Unsupported LLM provider: {config.provider}")
