# tests/test_compression.py
"""
Tests for compression strategies and the compression engine.

Covers:
- Building blocks (cleanup, old logs, formatting, duplicates, paragraphs)
- minimal / balanced / aggressive behavior
- Token monotonicity across strategies
- Strategy resolution and fallback to original
"""

from datetime import UTC, datetime

import pytest

from persona_context_engine.compression import (
    CompressionConfig,
    CompressionEngine,
    identify_repetitive_content,
    resolve_strategy,
)
from persona_context_engine.compression.strategies import (
    cleanup,
    normalize_formatting,
    remove_duplicates,
    remove_old_logs,
    rewrite_paragraphs,
)
from persona_context_engine.exceptions import InvalidStrategyError
from persona_context_engine.models import (
    CompressionMetadata,
    CompressionResult,
    StrategyName,
)
from persona_context_engine.tokens import TokenEstimator

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


def _long_paragraph(sentences: int) -> str:
    return " ".join(f"Sentence number {i} describes the login service in some detail." for i in range(sentences))


def _doc() -> str:
    return "\n".join(
        [
            "Intro line for the project.",
            "",
            "## Goal",
            "- must ship the login flow",
            "- must ship the login flow",
            "",
            "## Implementation",
            "We will refactor the handlers.",
            "",
            "## History",
            "Something happened.",
            "[2025-01-01 10:00] old entry",
            "[2025-01-14 10:00] recent entry",
            "",
        ]
    )


SAMPLES = [
    "",
    "plain text",
    _doc(),
    "## Goal\n" + _long_paragraph(12) + "\n",
    "# A\n\n\n\n\n# A\n------\n** **\n",
    "```\n# code\n```\n## Notes\n- a\n- a\n",
]


# ===========================================================================
# Building blocks
# ===========================================================================


class TestBuildingBlocks:
    def test_cleanup_collapses_separators_and_empty_bold(self):
        assert cleanup("a\n--------\n** **b") == "a\n---\nb"

    def test_remove_old_logs(self):
        text = "[2025-01-01 10:00] old\n[2025-01-14 10:00] recent\nplain"
        result, removed = remove_old_logs(text, NOW, 7)
        assert removed == 1
        assert result == "[2025-01-14 10:00] recent\nplain"

    def test_old_logs_keep_headers_and_code(self):
        text = "## [2025-01-01 10:00] Release\n```\n[2025-01-01 10:00] trace\n```\n[2025-01-01 10:00] old"
        result, removed = remove_old_logs(text, NOW, 7)
        assert removed == 1
        assert result == "## [2025-01-01 10:00] Release\n```\n[2025-01-01 10:00] trace\n```"

    def test_invalid_log_dates_are_kept(self):
        text = "[2025-13-45 10:00] weird"
        assert remove_old_logs(text, NOW, 7) == (text, 0)

    def test_normalize_formatting(self):
        assert normalize_formatting("\n\nA  \n\n\n\n\nB\n\n") == "A\n\n\nB\n"

    def test_normalize_keeps_missing_final_newline(self):
        assert normalize_formatting("A\nB") == "A\nB"

    def test_remove_duplicates(self):
        text = "## Tasks\n- Fix bug\n- fix bug\n## tasks\n- other"
        result, removed = remove_duplicates(text)
        assert removed == 2
        assert result == "## Tasks\n- Fix bug\n- other"

    def test_remove_duplicates_ignores_code(self):
        text = "```\n- a\n- a\n```"
        assert remove_duplicates(text) == (text, 0)

    def test_rewrite_only_long_prose(self):
        text = "short one. short two."
        assert rewrite_paragraphs(text, 10, 1, lambda s: s[0]) == ("short one.", 1)
        assert rewrite_paragraphs(text, 100, 1, lambda s: s[0]) == (text, 0)

    def test_rewrite_skips_lists(self):
        text = "- first. second. third. fourth."
        assert rewrite_paragraphs(text, 5, 1, lambda s: s[0]) == (text, 0)

    def test_rewrite_never_grows(self):
        text = "one. two. three."
        assert rewrite_paragraphs(text, 1, 1, lambda s: text + " more") == (text, 0)

    def test_repetitive_content(self):
        patterns = identify_repetitive_content("- a\n- b\n- c\n- d\n", threshold=3)
        assert any(p.occurrences == 4 for p in patterns)
        assert identify_repetitive_content("- a\n- b\n", threshold=3) == []


# ===========================================================================
# Strategies
# ===========================================================================


class TestMinimal:
    def test_prunes_old_logs(self):
        result = CompressionEngine().compress(_doc(), "minimal", now=NOW)
        assert "old entry" not in result.content
        assert "recent entry" in result.content
        assert result.metadata.old_logs_removed == 1

    def test_keeps_every_section(self):
        result = CompressionEngine().compress(_doc(), "minimal", now=NOW)
        assert result.metadata.preserved_sections == ["Goal", "Implementation", "History"]
        assert result.metadata.removed_sections == []

    def test_timestamped_header_is_kept(self):
        text = "## [2024-01-01 10:00] Release\nBody line\n## Other\nMore\n"
        result = CompressionEngine().compress(text, "minimal", now=NOW)
        assert result.content == text
        assert result.metadata.preserved_sections == ["[2024-01-01 10:00] Release", "Other"]

    @pytest.mark.parametrize("sample", SAMPLES)
    def test_idempotent(self, sample):
        engine = CompressionEngine()
        once = engine.compress(sample, "minimal", now=NOW).content
        twice = engine.compress(once, "minimal", now=NOW).content
        assert once == twice

    def test_empty_content(self):
        result = CompressionEngine().compress("", "minimal", now=NOW)
        assert result.content == ""
        assert result.metadata.original_tokens == 0
        assert result.metadata.compression_ratio == 0.0


class TestBalanced:
    def test_drops_low_sections_and_duplicates(self):
        result = CompressionEngine().compress(_doc(), "balanced", now=NOW)
        assert "## History" not in result.content
        assert "## Implementation" in result.content
        assert result.metadata.removed_sections == ["History"]
        assert result.metadata.duplicates_removed == 1
        assert result.content.count("must ship the login flow") == 1

    def test_keeps_preamble(self):
        result = CompressionEngine().compress(_doc(), "balanced", now=NOW)
        assert result.content.startswith("Intro line for the project.")

    def test_shortens_long_paragraphs(self):
        content = "## Goal\n" + _long_paragraph(8) + "\n"
        result = CompressionEngine().compress(content, "balanced", now=NOW)
        assert result.metadata.paragraphs_shortened == 1
        assert result.content.endswith("[compressed]\n")
        assert "Sentence number 1" in result.content
        assert "Sentence number 2" not in result.content

    def test_strategy_recorded(self):
        result = CompressionEngine().compress(_doc(), StrategyName.BALANCED, now=NOW)
        assert result.metadata.strategy == StrategyName.BALANCED


class TestAggressive:
    def test_drops_medium_sections(self):
        result = CompressionEngine().compress(_doc(), "aggressive", now=NOW)
        assert "## Implementation" not in result.content
        assert "## Goal" in result.content
        assert set(result.metadata.removed_sections) == {"Implementation", "History"}

    def test_collapses_long_paragraphs(self):
        content = "## Goal\n" + _long_paragraph(10) + "\n"
        result = CompressionEngine().compress(content, "aggressive", now=NOW)
        assert result.metadata.paragraphs_shortened == 1
        assert "Sentence number 0" in result.content
        assert " ... Sentence number 9" in result.content
        assert "Sentence number 5" not in result.content

    def test_custom_config(self):
        engine = CompressionEngine(config=CompressionConfig(collapse_separator=" // "))
        content = "## Goal\n" + _long_paragraph(10) + "\n"
        assert " // " in engine.compress(content, "aggressive", now=NOW).content


class TestTokenContract:
    @pytest.mark.parametrize("strategy", ["minimal", "balanced", "aggressive"])
    @pytest.mark.parametrize("sample", SAMPLES)
    def test_output_never_larger(self, strategy, sample):
        estimator = TokenEstimator()
        result = CompressionEngine(estimator=estimator).compress(sample, strategy, now=NOW)
        assert estimator.estimate(result.content) <= estimator.estimate(sample)
        assert result.metadata.compressed_tokens <= result.metadata.original_tokens


# ===========================================================================
# Engine
# ===========================================================================


class TestEngine:
    def test_resolve_strategy(self):
        assert resolve_strategy(" Balanced ") == StrategyName.BALANCED
        assert resolve_strategy(StrategyName.MINIMAL) == StrategyName.MINIMAL

    def test_unknown_strategy(self):
        with pytest.raises(InvalidStrategyError):
            CompressionEngine().compress("text", "extreme")

    def test_unknown_strategy_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_strategy("extreme")

    def test_strategy_names(self):
        assert CompressionEngine().strategy_names == [
            StrategyName.MINIMAL,
            StrategyName.BALANCED,
            StrategyName.AGGRESSIVE,
        ]

    def test_falls_back_when_strategy_grows_content(self):
        def padding(content, persona=None, now=None, *, estimator, classifier, config):
            grown = content + " padding" * 20
            return CompressionResult(
                content=grown,
                metadata=CompressionMetadata(
                    strategy=StrategyName.MINIMAL,
                    original_tokens=estimator.estimate(content),
                    compressed_tokens=estimator.estimate(grown),
                    removed_sections=["x"],
                ),
            )

        engine = CompressionEngine(strategies={StrategyName.MINIMAL: padding})
        result = engine.compress("keep me", "minimal")

        assert result.content == "keep me"
        assert result.metadata.fallback_to_original
        assert result.metadata.compressed_tokens == result.metadata.original_tokens
        assert result.metadata.removed_sections == []

    def test_missing_registered_strategy(self):
        engine = CompressionEngine(strategies={StrategyName.MINIMAL: lambda *a, **k: None})
        with pytest.raises(InvalidStrategyError):
            engine.compress("text", "aggressive")

    def test_classify(self):
        sections = CompressionEngine().classify(_doc())
        assert [s.header for s in sections] == ["", "Goal", "Implementation", "History"]
