"""
HeuristicScorerのテスト
"""
import random

import pytest

from app.models.schemas import SKILLS
from app.services.scoring import HeuristicScorer, extract_features


class TestExtractFeatures:
    """特徴量抽出のテストクラス"""

    def test_basic_features(self):
        """語数・文数・句読点"""
        features = extract_features("I like tea. I like coffee, too!")

        assert features.word_count == 7
        assert features.distinct_words == 5
        assert features.sentence_count == 2
        assert features.has_capitalization is True
        assert features.has_terminal_punctuation is True

    def test_empty_text(self):
        """空のテキストでも例外を出さない"""
        features = extract_features("")

        assert features.word_count == 0
        assert features.sentence_count == 0
        assert features.lexical_diversity == 0.0

    def test_discourse_markers(self):
        """談話標識を数える"""
        features = extract_features("I stayed home because it rained, but I was happy.")

        assert features.discourse_markers == 2


class TestHeuristicScorer:
    """HeuristicScorerのテストクラス"""

    @pytest.fixture
    def scorer(self):
        """乱数補正なしの採点器"""
        return HeuristicScorer(jitter=0)

    def test_scores_are_in_range(self, scorer):
        """どの入力でも0-100に収まる"""
        for text in ["", "!!!", "a", "Hello. " * 200, "123 456"]:
            scores = scorer.score(text)
            for skill in SKILLS:
                assert 0 <= getattr(scores, skill) <= 100

    def test_longer_answer_scores_higher(self, scorer):
        """詳しい回答ほど流暢さと一貫性が高い"""
        short = scorer.score("Yes ok")
        long = scorer.score(
            "Yes, I think so. I usually walk to work because it is healthy, and then I drink coffee."
        )

        assert long.fluency > short.fluency
        assert long.coherence > short.coherence

    def test_jitter_is_bounded(self):
        """乱数補正は0〜jitterの範囲"""
        base = HeuristicScorer(jitter=0).score("Me good")
        jittered = HeuristicScorer(rng=random.Random(1), jitter=5).score("Me good")

        assert base.pronunciation == jittered.pronunciation
        for skill in ("fluency", "grammar", "vocabulary", "coherence"):
            assert 0 <= getattr(jittered, skill) - getattr(base, skill) <= 5

    def test_feedback_bands(self):
        """発話量に応じたフィードバック"""
        assert HeuristicScorer.feedback("Me good").startswith("Try to provide more detailed")
        assert HeuristicScorer.feedback("word " * 15).startswith("Good response length")
        assert HeuristicScorer.feedback("word " * 40).startswith("Excellent response detail")

    def test_suggestions(self):
        """句読点・詳細・接続詞の提案"""
        suggestions = HeuristicScorer.suggestions("Me good")

        assert "Remember to complete your sentences with proper punctuation" in suggestions
        assert "Try to elaborate more on your ideas with examples and details" in suggestions
        assert "Use connecting words to link your ideas more clearly" in suggestions

    @pytest.mark.asyncio
    async def test_assess(self, scorer):
        """採点・フィードバック・提案をまとめて返す"""
        scores, feedback, suggestions = await scorer.assess("Me good", "English", "beginner")

        assert scores.pronunciation == 60
        assert feedback
        assert isinstance(suggestions, list)
