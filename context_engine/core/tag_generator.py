"""Tag generation for memory lookup: an LLM-backed async tag generator."""

from __future__ import annotations

import json
import logging
import re

from ..types import CompletionProvider, TagGenerationFailed, TagGeneratorConfig

logger = logging.getLogger(__name__)

TAG_GENERATOR_PROMPT = """\
You are a semantic tagger for a personal knowledge base. Given a user query and the
conversation leading up to it, generate up to {max_tags} short, lowercase tags naming the
concrete topics someone would have filed related memories under.

Rules:
- Prefer specific tags over generic ones ("reservation-timing" not "timing").
  Single-word tags are fine when already specific ("database", "fitness").
- Tag the concrete subject, not the conversational framing.
  "What do you think of trees?" → "trees", NOT "introspection".
- Do NOT generate tags about the communication medium ("chat", "messaging").
- For trivial messages (greetings, reactions), return an empty list.
- Return JSON only: {{"tags": ["tag1", "tag2"]}}
- No markdown fences, no extra text

Text:
{text}"""


def normalize_tag(tag: str) -> str:
    """Lowercase, hyphenate, strip special chars."""
    t = tag.lower().strip()
    t = re.sub(r"[^a-z0-9-]", "-", t)
    return re.sub(r"-+", "-", t).strip("-")


def parse_tag_response(response: str) -> list[str]:
    """Extract a tag list from an LLM response.

    Accepts ``{"tags": [...]}``, a bare JSON list, or a comma-separated line,
    with optional markdown fences or ``<think>`` blocks around it.
    """
    text = response.strip()

    if "<think>" in text:
        text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()

    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    parsed = None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                parsed = json.loads(text[start:end])
            except json.JSONDecodeError:
                parsed = None

    if isinstance(parsed, dict):
        raw = parsed.get("tags", [])
    elif isinstance(parsed, list):
        raw = parsed
    else:
        raw = text.split(",")

    tags: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        tag = normalize_tag(item)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class LLMTagGenerator:
    """Generate lookup tags for a query using a completion provider.

    Instances are awaitable callables, so one can be passed straight to
    ``ContextRetriever.gather(tag_generator=...)``.
    """

    def __init__(
        self,
        llm: CompletionProvider,
        config: TagGeneratorConfig | None = None,
    ) -> None:
        self.llm = llm
        self.config = config or TagGeneratorConfig()

    async def __call__(self, text: str) -> list[str]:
        return await self.generate_tags(text)

    async def generate_tags(self, text: str) -> list[str]:
        prompt = TAG_GENERATOR_PROMPT.format(max_tags=self.config.max_tags, text=text)
        try:
            response = await self.llm.complete(prompt, use_fast_model=True)
        except Exception as e:
            raise TagGenerationFailed(f"Tag generation failed: {e}") from e

        tags = parse_tag_response(response)[: self.config.max_tags]
        logger.debug("LLM tags for %d chars: %s", len(text), tags)
        return tags
