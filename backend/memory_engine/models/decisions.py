"""Pydantic models for decisions returned by the analysis collaborator."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from memory_engine.core.errors import DecodeFailure
from memory_engine.core.logging import get_logger
from memory_engine.utils.serialization import decode_json_object

LOGGER = get_logger(__name__)

DEFAULT_TARGET_FILE = "MEMORY.md"


class UpdateScope(str, Enum):
    WHOLE_FILE = "whole-file"
    LINE_BASED = "line-based"
    NONE = "none"
    NEEDS_CONFIRMATION = "needs-confirmation"


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value)
    return str(value)


class _CollaboratorModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_response(cls, raw: str | bytes | None):
        """Parse a raw collaborator response, raising ``DecodeFailure`` on bad input."""
        payload = decode_json_object(raw)
        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
            raise DecodeFailure(f"response does not match {cls.__name__}: {exc}", raw=text) from exc


class UpdateDecision(_CollaboratorModel):
    """How a memory file should change to absorb new content.

    ``line_updates`` keeps the raw directive objects; they are validated one by
    one when applied so a single malformed entry cannot sink the rest.
    Unrecognised scopes are read as ``needs-confirmation``.
    """

    needs_update: bool = Field(default=False, alias="needsUpdate")
    update_scope: UpdateScope = Field(default=UpdateScope.NONE, alias="updateScope")
    line_updates: list[Any] = Field(default_factory=list, alias="lineUpdates")
    file_content: str = Field(default="", alias="fileContent")
    has_conflict: bool = Field(default=False, alias="hasConflict")
    conflict_type: str = Field(default="", alias="conflictType")
    reason: str = ""
    uncertain_parts: str = Field(default="", alias="uncertainParts")
    confirmation_required: str = Field(default="", alias="confirmationRequired")

    @field_validator("update_scope", mode="before")
    @classmethod
    def _known_scope(cls, value: Any) -> Any:
        if isinstance(value, UpdateScope):
            return value
        normalized = str(value or "none").strip().lower().replace("_", "-").replace(" ", "-")
        try:
            return UpdateScope(normalized)
        except ValueError:
            LOGGER.warning("Unknown update scope %r, asking for confirmation", value)
            return UpdateScope.NEEDS_CONFIRMATION

    @field_validator("line_updates", mode="before")
    @classmethod
    def _directive_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value

    @field_validator(
        "file_content",
        "conflict_type",
        "reason",
        "uncertain_parts",
        "confirmation_required",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str:
        return _coerce_text(value)


class MemoryAnalysis(_CollaboratorModel):
    """Whether a piece of conversation is worth keeping, and where."""

    target_file: str = Field(default=DEFAULT_TARGET_FILE, alias="targetFile")
    extracted_content: str = Field(default="", alias="extractedContent")
    should_update: bool = Field(default=False, alias="shouldUpdate")
    reason: str = ""

    @field_validator("target_file", mode="before")
    @classmethod
    def _markdown_target(cls, value: Any) -> str:
        name = _coerce_text(value).strip()
        if not name.endswith(".md") or "/" in name or "\\" in name or name.startswith("."):
            return DEFAULT_TARGET_FILE
        return name

    @field_validator("extracted_content", "reason", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _coerce_text(value)

    @classmethod
    def fallback(cls, content: str, reason: str) -> "MemoryAnalysis":
        return cls(target_file=DEFAULT_TARGET_FILE, extracted_content=content, should_update=True, reason=reason)


__all__ = ["UpdateScope", "UpdateDecision", "MemoryAnalysis", "DEFAULT_TARGET_FILE"]
