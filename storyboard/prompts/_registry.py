"""Registry for loading prompt templates from YAML files.

Templates are rendered with Jinja2 in strict mode, so a placeholder without a
value is an error rather than an empty string.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError
from pydantic import BaseModel, Field, field_validator

from storyboard.utils.exceptions import StoryboardError

logger = logging.getLogger(__name__)

# Templates directory next to this file
_TEMPLATES_DIR = Path(__file__).parent / "templates"

# Jinja2 environment configured for strict variable checking
_JINJA_ENV = Environment(undefined=StrictUndefined)


class PromptTemplateError(StoryboardError):
    """Raised when a prompt template cannot be loaded or rendered."""


class PromptTemplate(BaseModel):
    """A YAML prompt template with Jinja2 ``{{ variable }}`` placeholders."""

    id: str
    version: str
    description: str = ""
    required_variables: list[str] = Field(default_factory=list)
    optional_variables: list[str] = Field(default_factory=list)
    template: str

    @field_validator("template")
    @classmethod
    def check_syntax(cls, value: str) -> str:
        """Reject templates Jinja2 cannot parse."""
        try:
            _JINJA_ENV.parse(value)
        except TemplateSyntaxError as e:
            raise PromptTemplateError(f"Syntax error in template (line {e.lineno}): {e}") from e
        return value

    def render(self, **variables: Any) -> str:
        """Render the template with Jinja2.

        Optional variables that are not passed render as None.

        Raises:
            PromptTemplateError: If a required variable is missing or the
                template references an undefined variable.
        """
        missing = set(self.required_variables) - set(variables)
        if missing:
            raise PromptTemplateError(
                f"Missing required variables for template '{self.id}': {sorted(missing)}"
            )
        for name in self.optional_variables:
            variables.setdefault(name, None)

        try:
            rendered = _JINJA_ENV.from_string(self.template).render(**variables)
        except UndefinedError as e:
            raise PromptTemplateError(f"Undefined variable in template '{self.id}': {e}") from e
        logger.debug("Rendered template '%s' v%s (%d chars)", self.id, self.version, len(rendered))
        return rendered.strip()


class PromptRegistry:
    """Loads every ``*.yaml`` prompt template in a directory, keyed by id."""

    def __init__(self, templates_dir: Path | str | None = None):
        """Create the registry and load its templates.

        Args:
            templates_dir: Directory with template YAML files. Defaults to the
                package's built-in templates.

        Raises:
            PromptTemplateError: If the directory is missing or a template is invalid.
        """
        self.templates_dir = Path(templates_dir) if templates_dir else _TEMPLATES_DIR
        if not self.templates_dir.exists():
            raise PromptTemplateError(f"Templates directory does not exist: {self.templates_dir}")
        self._templates: dict[str, PromptTemplate] = {}
        self._load_all_templates()

    def _load_yaml_file(self, filepath: Path) -> dict[str, Any]:
        """Load and parse a YAML file into a dictionary."""
        try:
            with open(filepath, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise PromptTemplateError(f"Invalid YAML in {filepath}: {e}") from e
        except OSError as e:
            raise PromptTemplateError(f"Failed to read {filepath}: {e}") from e
        if not isinstance(data, dict):
            raise PromptTemplateError(f"Expected dict in {filepath}, got {type(data).__name__}")
        return data

    def _load_all_templates(self) -> None:
        """Load and validate all templates, failing if any is invalid."""
        errors: list[str] = []
        for yaml_file in sorted(self.templates_dir.glob("*.yaml")):
            try:
                template = PromptTemplate.model_validate(self._load_yaml_file(yaml_file))
            except (PromptTemplateError, ValueError) as e:
                errors.append(f"{yaml_file.name}: {e}")
                continue
            self._templates[template.id] = template
            logger.debug("Loaded prompt template: %s v%s", template.id, template.version)

        if errors:
            error_msg = f"Failed to load {len(errors)} prompt template(s):\n" + "\n".join(
                f"  - {e}" for e in errors
            )
            logger.error(error_msg)
            raise PromptTemplateError(error_msg)

        logger.info("Loaded %d prompt templates from %s", len(self._templates), self.templates_dir)

    def get(self, template_id: str) -> PromptTemplate:
        """Return a template by id.

        Raises:
            PromptTemplateError: If no template has that id.
        """
        try:
            return self._templates[template_id]
        except KeyError as e:
            raise PromptTemplateError(f"Unknown prompt template: {template_id}") from e

    def render(self, template_id: str, **variables: Any) -> str:
        """Render a template by id."""
        return self.get(template_id).render(**variables)

    @property
    def template_ids(self) -> list[str]:
        """Ids of all loaded templates."""
        return sorted(self._templates)
