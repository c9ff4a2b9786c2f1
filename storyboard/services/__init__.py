"""Services layer - prompt rewriting and the scene quality loop.

Every service is constructed once by the ServiceContainer and shares its
Settings and LLM client.
"""

import logging
import time
from dataclasses import dataclass

import ollama

from storyboard.prompts import PromptRegistry
from storyboard.settings import Settings
from storyboard.utils.logging_config import setup_logging
from storyboard.utils.retry import RetryConfig, RetryController

from .llm_client import create_ollama_client, generate_text
from .prompt_service import JsonRepairer, PromptCorrector, PromptSanitizer
from .scene_quality_service import SceneQualityService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Dependency injection container for all services.

    Usage:
        settings = Settings.load()
        services = ServiceContainer(settings)

        result = await services.scene_quality.generate_scene(prompt, generate, judge)
    """

    settings: Settings
    llm_client: ollama.AsyncClient
    prompts: PromptRegistry
    retry: RetryController
    sanitizer: PromptSanitizer
    corrector: PromptCorrector
    json_repairer: JsonRepairer
    scene_quality: SceneQualityService

    def __init__(
        self,
        settings: Settings | None = None,
        llm_client: ollama.AsyncClient | None = None,
        configure_logging: bool = True,
    ):
        """Create and wire service instances that share a Settings object.

        Args:
            settings: Application settings. If omitted, loaded via Settings.load().
            llm_client: Ollama client to share. If omitted, one is created
                from the settings.
            configure_logging: Apply the settings' log_level and log_file to
                root logging. Disable when the caller configures logging itself.
        """
        t0 = time.perf_counter()
        logger.info("Initializing ServiceContainer...")
        self.settings = settings or Settings.load()
        if configure_logging:
            setup_logging(self.settings.log_level, self.settings.log_file)
        self.llm_client = llm_client or create_ollama_client(self.settings)
        self.prompts = PromptRegistry()
        self.retry = RetryController(RetryConfig.from_settings(self.settings), name="llm call")
        self.sanitizer = PromptSanitizer(self.settings, self.llm_client, self.prompts, self.retry)
        self.corrector = PromptCorrector(self.settings, self.llm_client, self.prompts, self.retry)
        self.json_repairer = JsonRepairer(
            self.settings, self.llm_client, self.prompts, self.retry
        )
        self.scene_quality = SceneQualityService(
            self.settings,
            self.sanitizer,
            self.corrector,
            repairer=self.json_repairer,
            controller=RetryController(
                RetryConfig.from_settings(self.settings), name="scene generation"
            ),
        )
        logger.info("ServiceContainer initialized in %.2fs", time.perf_counter() - t0)


__all__ = [
    "JsonRepairer",
    "PromptCorrector",
    "PromptSanitizer",
    "SceneQualityService",
    "ServiceContainer",
    "create_ollama_client",
    "generate_text",
]
