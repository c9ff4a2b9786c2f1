"""Prompt templates for the LLM calls around scene generation."""

from storyboard.prompts._registry import PromptRegistry, PromptTemplate, PromptTemplateError

__all__ = ["PromptRegistry", "PromptTemplate", "PromptTemplateError"]
