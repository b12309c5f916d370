"""Claude-powered structured summaries and suggested resources for a session."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from anthropic import Anthropic, APIError

from talknotes.errors import UpstreamServiceError
from talknotes.extraction.models import HIGHLIGHT_COUNT, Resource, SessionSummary, SummaryResult

logger = logging.getLogger(__name__)

# Transcripts longer than this are condensed part by part before summarizing.
MAX_PART_CHARS = 12_000

_STRING_LIST: dict[str, Any] = {"type": "array", "items": {"type": "string"}}

SUMMARY_TOOL: dict[str, Any] = {
    "name": "store_session_summary",
    "description": (
        "Store the structured summary of a talk transcript. "
        "Call this once with every field filled in."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "short_summary": {"type": "string", "description": "Two or three sentence TL;DR."},
            "detailed_summary": {"type": "string", "description": "A few paragraphs."},
            "key_points": {**_STRING_LIST, "description": "Main takeaways, in talk order."},
            "action_items": {**_STRING_LIST, "description": "Things the listener should do next."},
            "highlights": {
                **_STRING_LIST,
                "description": f"Exactly {HIGHLIGHT_COUNT} memorable highlights.",
                "minItems": HIGHLIGHT_COUNT,
                "maxItems": HIGHLIGHT_COUNT,
            },
            "language": {"type": "string", "description": "Language code of the summary."},
            "resources": {
                "type": "array",
                "description": "Further reading related to the talk.",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "url": {"type": "string"},
                        "source_name": {"type": "string"},
                        "description": {"type": "string"},
                    },
                    "required": ["title", "url"],
                },
            },
        },
        "required": ["short_summary", "detailed_summary", "key_points", "action_items", "highlights"],
    },
}

PART_TOOL: dict[str, Any] = {
    "name": "store_part_summary",
    "description": "Store the condensed summary of one part of a long transcript.",
    "input_schema": {
        "type": "object",
        "properties": {
            "part_summary": {"type": "string"},
            "key_points": _STRING_LIST,
        },
        "required": ["part_summary", "key_points"],
    },
}

PART_SYSTEM_PROMPT = (
    "Summarize this part of a talk transcript. Keep it grounded in the text. "
    "Use the store_part_summary tool to return your result."
)


class Summarizer(Protocol):
    def summarize(
        self,
        transcript_text: str,
        *,
        title: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
        language: str | None = None,
    ) -> SummaryResult: ...


def build_summary_system_prompt(
    speakers: list[dict[str, Any]] | None = None,
    topic_context: str | None = None,
    language: str | None = None,
) -> str:
    context_lines: list[str] = []
    if speakers:
        context_lines.append(f"Speaker metadata: {json.dumps(speakers)}")
    if topic_context:
        context_lines.append(f"Session context: {topic_context}")
    if language:
        context_lines.append(f"Respond in language: {language}.")

    prompt = (
        "You summarize talk transcripts.\n\n"
        "Rules:\n"
        "- Keep the summary grounded in the transcript.\n"
        f"- Highlights must be exactly {HIGHLIGHT_COUNT} items.\n"
        "- Only suggest resources you are confident exist.\n"
        "- Use the store_session_summary tool to return your results."
    )
    if context_lines:
        prompt += "\n\nContext:\n" + "\n".join(context_lines)
    return prompt


def split_transcript(text: str, max_chars: int = MAX_PART_CHARS) -> list[str]:
    """Split *text* on word boundaries into parts of roughly *max_chars*."""
    if len(text) <= max_chars:
        return [text]
    parts: list[str] = []
    current: list[str] = []
    length = 0
    for word in text.split():
        current.append(word)
        length += len(word) + 1
        if length >= max_chars:
            parts.append(" ".join(current))
            current = []
            length = 0
    if current:
        parts.append(" ".join(current))
    return parts


def _coerce_strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _coerce_resources(value: Any) -> list[Resource]:
    if not isinstance(value, list):
        return []
    resources: list[Resource] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        url = str(item.get("url") or "").strip()
        if not title or not url:
            continue
        resources.append(
            Resource(
                title=title,
                url=url,
                source_name=str(item.get("source_name") or "").strip(),
                description=str(item.get("description") or "").strip(),
            )
        )
    return resources


def _tool_input(response: Any, tool_name: str) -> dict[str, Any] | None:
    """Return the input of the first *tool_name* tool_use block, if any."""
    for block in response.content:
        if block.type != "tool_use" or block.name != tool_name:
            continue
        data = block.input
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                return None
        return data if isinstance(data, dict) else None
    return None


def parse_summary_response(response: Any, language: str | None = None) -> SummaryResult:
    """Parse the ``store_session_summary`` tool call into a SummaryResult.

    Raises:
        UpstreamServiceError: If the tool call is missing or lacks either summary.
    """
    data = _tool_input(response, SUMMARY_TOOL["name"])
    if data is None:
        raise UpstreamServiceError("Summary response did not contain a store_session_summary call")

    short_summary = str(data.get("short_summary") or "").strip()
    detailed_summary = str(data.get("detailed_summary") or "").strip()
    if not short_summary or not detailed_summary:
        raise UpstreamServiceError("Summary response missing required fields")

    summary_language = str(data.get("language") or language or "").strip() or None
    return SummaryResult(
        summary=SessionSummary(
            short_summary=short_summary,
            detailed_summary=detailed_summary,
            key_points=_coerce_strings(data.get("key_points")),
            action_items=_coerce_strings(data.get("action_items")),
            highlights=_coerce_strings(data.get("highlights")),
            language=summary_language,
        ),
        resources=_coerce_resources(data.get("resources")),
    )


class ClaudeSummarizer:
    """Summarize transcripts with Claude, forcing structured tool output."""

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120.0,
        client: Anthropic | None = None,
    ) -> None:
        self._model = model
        self._client = client or Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _call(self, system: str, tool: dict[str, Any], content: str, max_tokens: int) -> Any:
        try:
            return self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=0.2,
                system=system,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=[{"role": "user", "content": content}],
            )
        except APIError as exc:
            raise UpstreamServiceError(f"Summarization failed: {exc}") from exc

    def _condense(self, parts: list[str], title: str | None) -> str:
        condensed: list[str] = []
        for idx, part in enumerate(parts):
            header = [f"Title: {title}"] if title else []
            content = "\n".join([*header, f"Part {idx + 1} of {len(parts)}:", part])
            response = self._call(PART_SYSTEM_PROMPT, PART_TOOL, content, max_tokens=1024)
            data = _tool_input(response, PART_TOOL["name"]) or {}
            part_summary = str(data.get("part_summary") or "").strip() or "Part summary unavailable."
            key_points = "; ".join(_coerce_strings(data.get("key_points")))
            condensed.append(f"Part {idx + 1}: {part_summary}\nKey points: {key_points}")
        return "\n\n".join(condensed)

    def summarize(
        self,
        transcript_text: str,
        *,
        title: str | None = None,
        speakers: list[dict[str, Any]] | None = None,
        topic_context: str | None = None,
        language: str | None = None,
    ) -> SummaryResult:
        """Summarize a transcript, condensing long ones part by part first.

        Args:
            transcript_text: Full transcript text.
            title: Session title, passed to the model as context.
            speakers: ``[{"name", "role"}]`` speaker metadata.
            topic_context: Free-text description of the session topic.
            language: Preferred summary language.

        Returns:
            The structured summary plus suggested resources.
        """
        parts = split_transcript(transcript_text)
        if len(parts) > 1:
            logger.info("Condensing %d transcript parts before summarizing", len(parts))
            body = ["Transcript summary (condensed by part):", self._condense(parts, title)]
        else:
            body = ["Transcript:", transcript_text]
        content = "\n".join(([f"Title: {title}"] if title else []) + body)

        response = self._call(
            build_summary_system_prompt(speakers, topic_context, language),
            SUMMARY_TOOL,
            content,
            max_tokens=4096,
        )
        return parse_summary_response(response, language)
