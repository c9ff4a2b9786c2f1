"""Tests for utils/json_parser.py."""

import pytest

from storyboard.utils.exceptions import JSONParseError
from storyboard.utils.json_parser import clean_llm_text, extract_json


class TestCleanLlmText:
    """Tests for clean_llm_text."""

    def test_removes_think_blocks(self):
        """Test thinking blocks and their content are removed."""
        text = "<think>reasoning here</think>A wide shot of a harbor at dawn."
        assert clean_llm_text(text) == "A wide shot of a harbor at dawn."

    def test_removes_orphan_tags_and_special_tokens(self):
        """Test stray tags and special tokens are stripped."""
        assert clean_llm_text("</think>Prompt text<|endoftext|>") == "Prompt text"

    def test_collapses_blank_lines(self):
        """Test runs of blank lines collapse to one."""
        assert clean_llm_text("a\n\n\n\nb") == "a\n\nb"

    def test_empty_string(self):
        """Test empty input is returned unchanged."""
        assert clean_llm_text("") == ""


class TestExtractJson:
    """Tests for extract_json."""

    def test_json_code_block(self):
        """Test extraction from a ```json fenced block."""
        response = 'Here you go:\n```json\n{"feedback": "good"}\n```\nDone.'
        assert extract_json(response) == {"feedback": "good"}

    def test_plain_code_block(self):
        """Test extraction from an unlabeled fenced block."""
        assert extract_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_raw_object_with_prose(self):
        """Test extraction of a bare object surrounded by prose."""
        assert extract_json('The evaluation is {"a": [1, 2]} as requested.') == {"a": [1, 2]}

    def test_raw_array(self):
        """Test extraction of a bare array."""
        assert extract_json("[1, 2, 3]") == [1, 2, 3]

    def test_think_tags_ignored(self):
        """Test braces inside thinking blocks don't confuse extraction."""
        response = '<think>maybe {"wrong": true}</think>{"right": true}'
        assert extract_json(response) == {"right": True}

    def test_truncated_object_repaired(self):
        """Test an object cut off by a token limit is closed."""
        result = extract_json('{"feedback": "ok", "issues": [{"description": "blur"')
        assert result == {"feedback": "ok", "issues": [{"description": "blur"}]}

    def test_no_json_raises_in_strict_mode(self):
        """Test JSONParseError when nothing parses."""
        with pytest.raises(JSONParseError) as exc_info:
            extract_json("no json here")
        assert exc_info.value.response_preview == "no json here"

    def test_no_json_returns_none_when_not_strict(self):
        """Test non-strict mode returns None."""
        assert extract_json("no json here", strict=False) is None
