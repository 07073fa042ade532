"""
Classifier providers.

LLM-backed classifiers ask the model for a comma-separated tag list and
parse it with parse_tag_list. The keyword classifier needs no network
and is the default when no API key is configured.
"""

import logging
import os
import re

from ..errors import ClassifierError
from ..types import MAX_TAGS
from .base import (
    CLASSIFICATION_SYSTEM_PROMPT,
    build_classification_prompt,
    get_registry,
    parse_tag_list,
)

logger = logging.getLogger(__name__)


class AnthropicClassifier:
    """
    Classifier using Anthropic's Claude API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided)
    2. ANTHROPIC_API_KEY (API key from console.anthropic.com)

    Default model is claude-3-haiku: tagging needs little reasoning and
    the output is a single short line.
    """

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: str | None = None,
        max_tokens: int = 100,
    ):
        from anthropic import Anthropic

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not key:
            raise ValueError(
                "Anthropic authentication required. Set ANTHROPIC_API_KEY "
                "(API key from console.anthropic.com)"
            )

        self._client = Anthropic(api_key=key)

    def classify(self, text: str, *, max_length: int) -> list[str]:
        """Classify text using Anthropic Claude."""
        import anthropic

        # The SDK retries rate limits itself; anything left is a failure
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=CLASSIFICATION_SYSTEM_PROMPT,
                messages=[
                    {"role": "user", "content": build_classification_prompt(text)}
                ],
            )
        except anthropic.APIError as e:
            raise ClassifierError(f"Anthropic classification failed: {e}") from e

        output = "".join(
            block.text for block in (response.content or [])
            if getattr(block, "type", "text") == "text"
        )
        return parse_tag_list(output)


class OpenAIClassifier:
    """
    Classifier using OpenAI's chat API.

    Requires: CLASSIFY_OPENAI_API_KEY or OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        max_tokens: int = 100,
    ):
        from openai import OpenAI

        self.model = model
        self.max_tokens = max_tokens

        key = api_key or os.environ.get("CLASSIFY_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY")
        if not key:
            raise ValueError(
                "OpenAI API key required. Set CLASSIFY_OPENAI_API_KEY or OPENAI_API_KEY"
            )

        self._client = OpenAI(api_key=key)

        # GPT-5+ and reasoning models use a different API surface:
        # - max_completion_tokens instead of max_tokens
        # - temperature must be omitted (only default=1 supported)
        self._new_api = self.model.startswith(("gpt-5", "o3", "o4"))

    def _completion_kwargs(self) -> dict:
        """Return model-appropriate kwargs for token limit and temperature."""
        if self._new_api:
            return {"max_completion_tokens": self.max_tokens}
        return {"max_tokens": self.max_tokens, "temperature": 0.2}

    def classify(self, text: str, *, max_length: int) -> list[str]:
        """Classify text using OpenAI."""
        import openai

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
                    {"role": "user", "content": build_classification_prompt(text)},
                ],
                **self._completion_kwargs(),
            )
        except openai.OpenAIError as e:
            raise ClassifierError(f"OpenAI classification failed: {e}") from e

        if not response.choices:
            return []
        return parse_tag_list(response.choices[0].message.content)


class KeywordClassifier:
    """
    Offline classifier that matches a fixed keyword table.

    Deterministic and free; used when no model API key is available.
    Keywords match whole words, case-insensitively. Text matching nothing
    is tagged "unclassified".
    """

    # (tags, keywords) in output order
    RULES: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
        (("programming", "rust"), ("rust",)),
        (("web",), ("web", "http", "https", "html")),
        (("api",), ("api", "apis", "rest", "graphql")),
        (("database",), ("database", "databases", "sql", "redis")),
        (("ai",), ("ai", "machine learning", "ml")),
    ]

    FALLBACK_TAG = "unclassified"

    def __init__(self):
        self._patterns = [
            (tags, re.compile(
                r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b",
                re.IGNORECASE,
            ))
            for tags, keywords in self.RULES
        ]

    def classify(self, text: str, *, max_length: int) -> list[str]:
        tags: list[str] = []
        for rule_tags, pattern in self._patterns:
            if pattern.search(text):
                tags.extend(t for t in rule_tags if t not in tags)
        if not tags:
            tags.append(self.FALLBACK_TAG)
        return tags[:MAX_TAGS]


class NoopClassifier:
    """
    Classifier that assigns no tags.

    Records are stored but never appear in tag queries.
    """

    def classify(self, text: str, *, max_length: int) -> list[str]:
        return []


# Register providers
_registry = get_registry()
_registry.register_classifier("anthropic", AnthropicClassifier)
_registry.register_classifier("openai", OpenAIClassifier)
_registry.register_classifier("keyword", KeywordClassifier)
_registry.register_classifier("noop", NoopClassifier)
