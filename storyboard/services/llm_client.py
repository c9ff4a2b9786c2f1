"""Shared LLM client utilities for services.

Provides the async Ollama client used for prompt rewriting (sanitizing,
applying judge corrections, repairing judge JSON). Clients are created by
the ServiceContainer and injected; nothing here holds a module-level client.
"""

import logging
import time

import httpx
import ollama

from storyboard.settings import Settings
from storyboard.utils.exceptions import LLMConnectionError, LLMError
from storyboard.utils.json_parser import clean_llm_text

logger = logging.getLogger(__name__)


def create_ollama_client(settings: Settings) -> ollama.AsyncClient:
    """Create an async Ollama client for the given settings.

    Args:
        settings: Application settings with ollama_url and ollama_timeout.

    Returns:
        Ollama AsyncClient configured for the given settings.
    """
    client = ollama.AsyncClient(host=settings.ollama_url, timeout=float(settings.ollama_timeout))
    logger.debug(
        "Created Ollama client for %s (timeout=%ds)", settings.ollama_url, settings.ollama_timeout
    )
    return client


async def generate_text(
    client: ollama.AsyncClient,
    model: str,
    prompt: str,
    temperature: float = 0.7,
    system_prompt: str | None = None,
) -> str:
    """Generate free-form text with a single chat call.

    Args:
        client: Ollama client to call.
        model: The Ollama model to use.
        prompt: The user prompt to send.
        temperature: Sampling temperature.
        system_prompt: Optional system prompt.

    Returns:
        The response text with thinking tags and special tokens removed.
        May be empty if the model returned nothing.

    Raises:
        LLMConnectionError: If the server cannot be reached or times out.
        LLMError: If Ollama rejects the request.
    """
    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    logger.debug(
        "Generating text: model=%s, temperature=%s, prompt=%d chars",
        model,
        temperature,
        len(prompt),
    )

    start_time = time.time()
    try:
        response = await client.chat(
            model=model,
            messages=messages,
            options={"temperature": temperature},
        )
    except (ConnectionError, TimeoutError, httpx.TimeoutException, httpx.TransportError) as e:
        logger.warning("Transient error calling %s: %s", model, e)
        raise LLMConnectionError(f"Cannot reach Ollama for model {model}: {e}") from e
    except ollama.ResponseError as e:
        logger.error("Ollama response error for model %s: %s", model, e)
        raise LLMError(f"Text generation failed for model {model}: {e}") from e

    content = clean_llm_text(response.message.content or "")
    logger.info(
        "LLM call complete: model=%s, %.2fs, tokens: %s+%s",
        model,
        time.time() - start_time,
        response.prompt_eval_count,
        response.eval_count,
    )
    return content
