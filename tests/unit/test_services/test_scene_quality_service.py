"""Tests for SceneQualityService and the ServiceContainer wiring."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import ollama
import pytest

from storyboard.services import ServiceContainer
from storyboard.services.prompt_service import JsonRepairer, PromptCorrector, PromptSanitizer
from storyboard.services.scene_quality_service import SceneQualityService
from storyboard.settings import Settings
from storyboard.utils.exceptions import (
    ContentPolicyError,
    InvalidConfigError,
    SceneGenerationError,
)
from storyboard.utils.retry import RetryConfig, RetryController

LOOP_SLEEP = "storyboard.services.scene_quality_service._quality_loop.asyncio.sleep"
RETRY_SLEEP = "storyboard.utils.retry.asyncio.sleep"


def judge_response(rating: str, corrections: int = 0) -> str:
    return json.dumps(
        {
            "scores": {
                "narrativeFidelity": {"rating": rating, "weight": 0.5},
                "technicalQuality": {"rating": "PASS", "weight": 0.5},
            },
            "promptCorrections": [
                {
                    "issueType": "framing",
                    "originalPromptSection": "wide shot",
                    "correctedPromptSection": "close-up",
                }
            ]
            * corrections,
        }
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(quality_attempt_delay_seconds=0.0, retry_initial_delay_ms=10)


@pytest.fixture
def sanitizer() -> MagicMock:
    mock = MagicMock(spec=PromptSanitizer)
    mock.sanitize = AsyncMock(return_value="sanitized prompt")
    return mock


@pytest.fixture
def corrector() -> MagicMock:
    mock = MagicMock(spec=PromptCorrector)
    mock.correct = AsyncMock(return_value="corrected prompt")
    return mock


@pytest.fixture
def service(settings, sanitizer, corrector) -> SceneQualityService:
    return SceneQualityService(settings, sanitizer, corrector)


class TestSceneQualityService:
    """Tests for SceneQualityService.generate_scene."""

    def test_config_from_settings(self, settings, sanitizer, corrector):
        """Test thresholds and budgets come from the settings."""
        settings.quality_accept_threshold = 0.9
        settings.quality_minor_issue_threshold = 0.8
        settings.quality_max_attempts = 5

        service = SceneQualityService(settings, sanitizer, corrector)

        assert service.config.accept_threshold == 0.9
        assert service.config.max_attempts == 5
        assert service.gate.config is service.config
        assert service.controller.config == RetryConfig.from_settings(settings)

    def test_invalid_thresholds_rejected(self, settings, sanitizer, corrector):
        """Test misordered thresholds fail at construction."""
        settings.quality_accept_threshold = 0.5

        with pytest.raises(InvalidConfigError):
            SceneQualityService(settings, sanitizer, corrector)

    @pytest.mark.asyncio
    async def test_accepted_scene(self, service, corrector):
        """Test a scene the judge passes is returned on the first attempt."""
        generate = AsyncMock(return_value="clip-1")
        judge = AsyncMock(return_value=judge_response("PASS"))

        result = await service.generate_scene("a prompt", generate, judge, scene_id="scene-1")

        assert result.artifact == "clip-1"
        assert result.accepted
        judge.assert_awaited_once_with("clip-1", "a prompt", 1)
        corrector.correct.assert_not_awaited()

    @pytest.mark.asyncio
    @patch(LOOP_SLEEP, new_callable=AsyncMock)
    async def test_corrections_applied_between_attempts(self, mock_sleep, service, corrector):
        """Test the corrector rewrites the prompt after a below-accept evaluation."""
        generate = AsyncMock(side_effect=["clip-1", "clip-2"])
        judge = AsyncMock(
            side_effect=[judge_response("MAJOR_ISSUES", corrections=1), judge_response("PASS")]
        )

        result = await service.generate_scene(
            "a prompt", generate, judge, scene_description="Scene 1: opening"
        )

        assert result.artifact == "clip-2"
        assert result.prompt == "corrected prompt"
        assert generate.await_args_list[1].args == ("corrected prompt",)
        evaluation = corrector.correct.await_args.args[1]
        assert evaluation.prompt_corrections[0].corrected_prompt_section == "close-up"
        assert corrector.correct.await_args.args[2] == "Scene 1: opening"

    @pytest.mark.asyncio
    @patch(RETRY_SLEEP, new_callable=AsyncMock)
    async def test_safety_rejection_sanitizes(self, mock_sleep, service, sanitizer):
        """Test a safety rejection is retried with the sanitized prompt."""
        generate = AsyncMock(side_effect=[ContentPolicyError("celebrity 29310472"), "clip-1"])
        judge = AsyncMock(return_value=judge_response("PASS"))

        result = await service.generate_scene("Tom Cruise runs", generate, judge)

        assert result.artifact == "clip-1"
        sanitizer.sanitize.assert_awaited_once_with("Tom Cruise runs", "celebrity 29310472")
        assert generate.await_args_list[1].args == ("sanitized prompt",)
        assert judge.await_args.args[1] == "Tom Cruise runs"

    @pytest.mark.asyncio
    @patch(RETRY_SLEEP, new_callable=AsyncMock)
    @patch(LOOP_SLEEP, new_callable=AsyncMock)
    async def test_no_acceptable_scene(self, mock_loop_sleep, mock_retry_sleep, service):
        """Test SceneGenerationError when every attempt fails the gate."""
        generate = AsyncMock(return_value="clip")
        judge = AsyncMock(return_value=judge_response("FAIL"))

        with pytest.raises(SceneGenerationError) as exc_info:
            await service.generate_scene("p", generate, judge)

        assert exc_info.value.attempts == 3
        assert exc_info.value.best_score == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_evaluator_uses_repairer(self, settings, sanitizer, corrector):
        """Test the service's evaluator repairs malformed judge JSON."""
        repairer = MagicMock(spec=JsonRepairer)
        repairer.repair = AsyncMock(return_value=judge_response("PASS"))
        service = SceneQualityService(settings, sanitizer, corrector, repairer=repairer)

        outcome = await service.evaluator(AsyncMock(return_value="{broken")).evaluate("v", "p")

        assert outcome.accepted
        repairer.repair.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_controller(self, settings, sanitizer, corrector):
        """Test an injected controller is used for generation."""
        controller = RetryController(RetryConfig(initial_delay_ms=0), name="custom")
        service = SceneQualityService(settings, sanitizer, corrector, controller=controller)
        generate = AsyncMock(return_value="clip")
        judge = AsyncMock(return_value=judge_response("PASS"))

        with patch.object(controller, "execute", wraps=controller.execute) as execute:
            await service.generate_scene("p", generate, judge)

        execute.assert_awaited_once()


class TestServiceContainer:
    """Tests for ServiceContainer."""

    def test_wires_shared_dependencies(self, settings):
        """Test services share the settings, client and prompt registry."""
        client = MagicMock(spec=ollama.AsyncClient)

        container = ServiceContainer(settings, llm_client=client, configure_logging=False)

        assert container.sanitizer.client is client
        assert container.corrector.registry is container.prompts
        assert container.json_repairer.controller is container.retry
        assert container.scene_quality.sanitizer is container.sanitizer
        assert container.scene_quality.repairer is container.json_repairer
        assert container.scene_quality.controller is not container.retry

    def test_loads_settings_when_omitted(self):
        """Test settings are loaded from the (isolated) settings file."""
        container = ServiceContainer(
            llm_client=MagicMock(spec=ollama.AsyncClient), configure_logging=False
        )
        assert container.settings is Settings.load()

    def test_creates_client_when_omitted(self, settings):
        """Test an Ollama client is created from the settings."""
        with patch("storyboard.services.create_ollama_client") as create:
            container = ServiceContainer(settings, configure_logging=False)

        create.assert_called_once_with(settings)
        assert container.llm_client is create.return_value

    def test_applies_logging_settings(self, settings):
        """Test the settings' log level and file configure root logging."""
        settings.log_level = "DEBUG"
        settings.log_file = None

        with patch("storyboard.services.setup_logging") as setup:
            ServiceContainer(settings, llm_client=MagicMock(spec=ollama.AsyncClient))

        setup.assert_called_once_with("DEBUG", None)

    def test_logging_opt_out(self, settings):
        """Test logging is left alone when configure_logging is False."""
        with patch("storyboard.services.setup_logging") as setup:
            ServiceContainer(
                settings, llm_client=MagicMock(spec=ollama.AsyncClient), configure_logging=False
            )

        setup.assert_not_called()

    def test_log_level_override_reaches_logging(self, monkeypatch):
        """Test the LOG_LEVEL environment override is applied on startup."""
        monkeypatch.setenv("LOG_LEVEL", "warning")

        with patch("storyboard.services.setup_logging") as setup:
            ServiceContainer(llm_client=MagicMock(spec=ollama.AsyncClient))

        assert setup.call_args.args[0] == "WARNING"
