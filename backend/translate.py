"""Natural-language front end.

Free text is sent to a text-completion service together with the current
category, asset type and field names, and the service answers with one line
of DSL. The answer is never trusted: it is parsed and resolved exactly like
hand-typed DSL, so a made-up or stale name fails the same way a typo does.
"""
import logging
import os
from dataclasses import dataclass, field

import anthropic
from sqlmodel import Session, select

from errors import UpstreamTranslationError
from models import AssetField, AssetType, Category
from query import run_dsl_query
from schemas import DSLQueryResult

logger = logging.getLogger(__name__)

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
NL_MODEL = os.getenv("NL_MODEL", "claude-haiku-4-5")
NL_TIMEOUT_SECONDS = float(os.getenv("NL_TIMEOUT_SECONDS", "15"))
NL_MAX_TOKENS = int(os.getenv("NL_MAX_TOKENS", "100"))

NL_TO_DSL_PROMPT = """You translate questions about farm records into a small query language.
Reply with the query only: one line, no explanation, no quotes around the whole query, no formatting.

Records are organised into categories (for example Produce or Livestock). Each category holds
groups (for example lettuce or cows), and each group has its own fields (for example weight or
covid_vax). Use the group and field names exactly as listed in the context below, even when the
user spells them differently.

Query format:
    group.field OP value
or, to list every record of a group:
    group

Operators by field type:
    Boolean fields: == with true or false
    Text fields: is (exact match) or like (partial match); quote the value with single quotes
    Number fields: ==, !=, >, >=, <, <=

Examples:
    "Cows that were born weighing more than 200 pounds" -> cows.born_weight > 200
    "lettuce where the amount is at most 100" -> lettuce.amount <= 100
    "all roma tomatoes with amount 75" -> roma_tomatoes.amount == 75
    "cows that have a covid vaccine" -> cows.covid_vax == true
    "Lettuce" -> lettuce
    "tomatoes with destination internal" -> tomatoes.destination is 'Internal'
    "cows with names containing Bess" -> cows.name like 'Bess'
    "cows that are not 5 years old" -> cows.age != 5"""


@dataclass
class PromptContext:
    categories: list[str] = field(default_factory=list)
    asset_types: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)


def load_prompt_context(session: Session) -> PromptContext:
    """Current normalized names, as the query language spells them."""

    def names(column):
        return sorted(set(session.exec(select(column)).all()))

    return PromptContext(
        categories=names(Category.name_key),
        asset_types=names(AssetType.name_key),
        fields=names(AssetField.name_key),
    )


def build_prompt(context: PromptContext) -> str:
    return (
        f"{NL_TO_DSL_PROMPT}\n\n"
        "Context data:\n"
        f"Categories: {', '.join(context.categories)}\n"
        f"Groups: {', '.join(context.asset_types)}\n"
        f"Fields: {', '.join(context.fields)}"
    )


def _completion_text(message) -> str:
    text = "".join(getattr(block, "text", "") for block in message.content or [])
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if len(lines) > 1:
        logger.warning(f"Completion returned {len(lines)} lines, using the first")
    return lines[0] if lines else ""


class NLTranslator:
    """Turns free text into DSL text through the Anthropic Messages API."""

    def __init__(self, api_key: str | None = None, model: str = NL_MODEL, timeout: float = NL_TIMEOUT_SECONDS, client=None):
        self.api_key = api_key or ANTHROPIC_API_KEY
        self.model = model
        self.timeout = timeout

        if client is None and self.api_key:
            client = anthropic.Anthropic(api_key=self.api_key, timeout=timeout)
        self.client = client

        if self.client is None:
            logger.warning("No Anthropic API key configured; natural-language queries are disabled")

    def translate(self, text: str, context: PromptContext, timeout: float | None = None) -> str:
        if self.client is None:
            raise UpstreamTranslationError("Translation service is not configured")

        timeout = timeout or self.timeout
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=NL_MAX_TOKENS,
                temperature=0.1,
                system=build_prompt(context),
                messages=[{"role": "user", "content": text}],
                timeout=timeout,
            )
        except anthropic.APITimeoutError as e:
            raise UpstreamTranslationError(f"Translation service timed out after {timeout}s") from e
        except anthropic.APIError as e:
            raise UpstreamTranslationError(f"Translation service error: {e}") from e

        dsl_query = _completion_text(message)
        if not dsl_query:
            raise UpstreamTranslationError("Translation service returned an empty response")
        return dsl_query


def translate_query(session: Session, text: str, translator: NLTranslator, timeout: float | None = None) -> str:
    logger.info(f"Translating natural language query: {text}")
    dsl_query = translator.translate(text, load_prompt_context(session), timeout=timeout)
    logger.info(f"Generated DSL query: {dsl_query}")
    return dsl_query


def run_nl_query(session: Session, text: str, translator: NLTranslator, timeout: float | None = None) -> DSLQueryResult:
    return run_dsl_query(session, translate_query(session, text, translator, timeout=timeout))
