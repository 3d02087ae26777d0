"""Prompts and response handling for the language-model collaborator."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from memory_engine.core.errors import DecodeFailure
from memory_engine.core.logging import get_logger
from memory_engine.models.decisions import MemoryAnalysis
from memory_engine.utils.text import split_lines

LOGGER = get_logger(__name__)

JSON_OBJECT = "json_object"


@runtime_checkable
class LanguageModel(Protocol):
    """What the engine needs from a language model."""

    def complete(self, prompt: str, response_format: str | None = None) -> str:
        ...

    def count_tokens(self, text: str) -> int:
        ...


MEMORY_WORTHINESS_PROMPT = """You are the long-term memory of a personal assistant.
Decide which parts of the conversation below are worth keeping.

## Conversation
{content}

## Rules
1. Pick the target file:
   - SOUL.md: the assistant's personality, tone, working style and behaviour rules
   - USER.md: facts about the user such as name, job, skills and preferences
   - MEMORY.md: important facts, decisions and project information
   - IDENTITY.md: who the assistant is
2. Do not keep small talk, greetings or filler.
3. If something is worth keeping, condense it into short markdown.

## Output
Return only a JSON object:
{{"targetFile": "MEMORY.md", "extractedContent": "...", "shouldUpdate": true, "reason": "..."}}
"""

UPDATE_DECISION_PROMPT = """You maintain the memory file {target}.
Decide how the file should change to absorb the new content.

## Current file (numbered)
{numbered}

## New content
{new_content}

## Instructions
1. Check whether the new content conflicts with the file and name the conflict type.
2. Choose updateScope:
   - "whole-file" when the structure changes substantially (put the full new body in fileContent)
   - "line-based" for small edits (list lineUpdates)
   - "none" when nothing needs to change
   - "needs-confirmation" when you are unsure (explain in confirmationRequired)
3. Line directives apply one after another; later line numbers must account
   for lines inserted by earlier "add" directives.

## Output
Return only a JSON object:
{{"hasConflict": false, "conflictType": "", "needsUpdate": true,
  "updateScope": "line-based",
  "lineUpdates": [{{"lineNumber": 3, "content": "...", "operation": "update"}}],
  "fileContent": "", "uncertainParts": "", "reason": "", "confirmationRequired": ""}}
"""

SUMMARY_PROMPT = """Summarize the following conversation turns for later reference.
Keep decisions, facts, open tasks and user preferences. Drop greetings and filler.

{transcript}
"""

COMPRESS_PROMPT = """The memory file {name} has grown too long. Rewrite it more concisely.
Keep every distinct fact, decision and preference, merge duplicates, and keep
the markdown section headings. Return only the new file body.

{content}
"""


def number_lines(text: str) -> str:
    lines = split_lines(text)
    if not lines:
        return "(empty file)"
    return "\n".join(f"{index}: {line}" for index, line in enumerate(lines, start=1))


def render_transcript(turns: Sequence[tuple[str, str]]) -> str:
    return "\n".join(f"{role}: {content}" for role, content in turns)


class MemoryAnalyzer:
    """Builds prompts for the collaborator and decodes what comes back."""

    def __init__(self, llm: LanguageModel) -> None:
        self.llm = llm

    def analyze_memory(self, content: str) -> MemoryAnalysis:
        """Ask whether ``content`` holds anything worth remembering.

        A response that cannot be decoded yields the conservative default:
        keep the raw content in ``MEMORY.md``.
        """
        raw = self.llm.complete(MEMORY_WORTHINESS_PROMPT.format(content=content), response_format=JSON_OBJECT)
        try:
            return MemoryAnalysis.from_response(raw)
        except DecodeFailure as exc:
            LOGGER.warning("Undecodable memory analysis, keeping raw content: %s", exc)
            return MemoryAnalysis.fallback(content, reason=f"decode failure: {exc}")

    def request_update(self, target: str, new_content: str, existing: str) -> str:
        """Return the collaborator's raw update decision for ``target``."""
        prompt = UPDATE_DECISION_PROMPT.format(
            target=target,
            numbered=number_lines(existing),
            new_content=new_content,
        )
        return self.llm.complete(prompt, response_format=JSON_OBJECT)

    def summarize(self, turns: Sequence[tuple[str, str]]) -> str:
        return self.llm.complete(SUMMARY_PROMPT.format(transcript=render_transcript(turns))).strip()

    def compress_document(self, name: str, content: str) -> str:
        return self.llm.complete(COMPRESS_PROMPT.format(name=name, content=content)).strip()


__all__ = ["LanguageModel", "MemoryAnalyzer", "number_lines", "render_transcript", "JSON_OBJECT"]
