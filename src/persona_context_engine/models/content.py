# persona_context_engine/models/content.py
"""Content sections, compression results, snapshots and context bundles."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from persona_context_engine.models.enums import ContentKind, Importance, StrategyName

# =============================================================================
# Sections
# =============================================================================


class ContentSection(BaseModel):
    """
    A markdown section derived from raw content.

    ``level`` 0 with an empty header is the preamble before the first header.
    Sections are recomputed on every compression run and never persisted.
    """

    header: str = ""
    level: int = Field(default=0, ge=0, le=6)
    body_lines: list[str] = Field(default_factory=list)
    importance: Importance = Importance.LOW
    score: float = 0.0
    kind: ContentKind = ContentKind.PROSE
    header_line: str | None = Field(default=None, description="Original header line, kept for lossless rendering")

    @property
    def is_preamble(self) -> bool:
        return self.level == 0

    @property
    def body(self) -> str:
        return "\n".join(self.body_lines)

    def lines(self) -> list[str]:
        """Original lines of the section, header line first."""
        if self.is_preamble:
            return list(self.body_lines)
        return [self.header_line or f"{'#' * self.level} {self.header}", *self.body_lines]


# =============================================================================
# Compression
# =============================================================================


class RepetitivePattern(BaseModel):
    """A markdown construct repeated often enough to be worth condensing."""

    pattern: str
    occurrences: int
    examples: list[str] = Field(default_factory=list)


class CompressionMetadata(BaseModel):
    """What a compression strategy did."""

    strategy: StrategyName
    original_tokens: int = 0
    compressed_tokens: int = 0
    removed_sections: list[str] = Field(default_factory=list)
    preserved_sections: list[str] = Field(default_factory=list)
    old_logs_removed: int = 0
    duplicates_removed: int = 0
    paragraphs_shortened: int = 0
    repetitive_patterns: list[RepetitivePattern] = Field(default_factory=list)
    fallback_to_original: bool = Field(default=False, description="Strategy output was larger, input kept")

    @property
    def tokens_saved(self) -> int:
        return self.original_tokens - self.compressed_tokens

    @property
    def compression_ratio(self) -> float:
        """Fraction of tokens removed (0.0-1.0)."""
        if self.original_tokens == 0:
            return 0.0
        return self.tokens_saved / self.original_tokens


class CompressionResult(BaseModel):
    """Compressed content plus metadata."""

    content: str
    metadata: CompressionMetadata


# =============================================================================
# Snapshot
# =============================================================================


class ErrorState(BaseModel):
    """Error signals observed in the project."""

    has_errors: bool = False
    test_failures: bool = False
    error_files: list[str] = Field(default_factory=list)


class SnapshotData(BaseModel):
    """Current project snapshot as reported by the ProjectSnapshot collaborator."""

    file_structure: list[str] = Field(default_factory=list)
    recent_files: list[str] = Field(default_factory=list)
    error_state: ErrorState = Field(default_factory=ErrorState)
    is_pull_request: bool = False
    notes: str | None = Field(default=None, description="Free-form recent-changes summary")


# =============================================================================
# Bundle
# =============================================================================


class ContextBundle(BaseModel):
    """The assembled, token-bounded context handed to the assistant."""

    model_config = {"frozen": True}

    persona_id: str
    base_content: str
    persona_overlay_summary: str
    sections: tuple[ContentSection, ...] = Field(default=())
    estimated_tokens: int = Field(default=0, ge=0)
    budget_tokens: int = Field(default=0, ge=0)
    original_tokens: int = Field(default=0, ge=0)
    strategy: StrategyName | None = None
    truncated: bool = False
    token_breakdown: dict[str, int] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def content(self) -> str:
        """Full rendered bundle: overlay first, then the compressed base."""
        return f"{self.persona_overlay_summary.rstrip()}\n\n{self.base_content}".strip() + "\n"

    @property
    def within_budget(self) -> bool:
        return self.estimated_tokens <= self.budget_tokens
