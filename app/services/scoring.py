"""
発話テキストのヒューリスティック採点
テキストの表層的な特徴（長さ、語彙の多様性、句読点、母音密度、談話標識）から5技能のスコアを算出する
"""
import random
import re
from typing import List

from pydantic import BaseModel

from app.config import SETTINGS
from app.models.schemas import SpeakingScores

WORD_RE = re.compile(r"[^\W\d_]+(?:'[^\W\d_]+)*")
SENTENCE_SPLIT_RE = re.compile(r"[.!?。！？]+")
CLAUSE_SPLIT_RE = re.compile(r"[,;:.!?、。！？]+")
TERMINAL_PUNCTUATION = ".!?。！？"
VOWELS = set("aeiouáéíóúàèìòùâêîôûäëïöüœæøå")
DISCOURSE_MARKER_RE = re.compile(
    r"\b(and|but|so|because|since|although|though|however|therefore|moreover|furthermore"
    r"|also|then|first|finally|while|whereas|for example|for instance|in addition"
    r"|on the other hand)\b",
    re.IGNORECASE,
)
CONNECTOR_RE = re.compile(r"\b(because|since|although|however|therefore)\b", re.IGNORECASE)

BASE_SCORE = 35


class TextFeatures(BaseModel):
    """採点に使うテキスト特徴量"""

    word_count: int = 0
    distinct_words: int = 0
    sentence_count: int = 0
    avg_sentence_length: float = 0.0
    avg_clause_length: float = 0.0
    vowel_ratio: float = 0.0
    has_capitalization: bool = False
    has_terminal_punctuation: bool = False
    discourse_markers: int = 0

    @property
    def lexical_diversity(self) -> float:
        """異なり語数 / 総語数"""
        return self.distinct_words / self.word_count if self.word_count else 0.0


def extract_features(text: str) -> TextFeatures:
    """
    テキストから特徴量を抽出

    Args:
        text: 発話テキスト

    Returns:
        特徴量
    """
    text = (text or "").strip()
    words: List[str] = WORD_RE.findall(text)
    word_count: int = len(words)
    sentences: List[str] = [s for s in SENTENCE_SPLIT_RE.split(text) if WORD_RE.search(s)]
    clauses: List[str] = [c for c in CLAUSE_SPLIT_RE.split(text) if WORD_RE.search(c)]
    letters: List[str] = [c.lower() for c in text if c.isalpha()]

    return TextFeatures(
        word_count=word_count,
        distinct_words=len({w.lower() for w in words}),
        sentence_count=len(sentences),
        avg_sentence_length=word_count / len(sentences) if sentences else 0.0,
        avg_clause_length=word_count / len(clauses) if clauses else 0.0,
        vowel_ratio=sum(1 for c in letters if c in VOWELS) / len(letters) if letters else 0.0,
        has_capitalization=any(c.isupper() for c in text),
        has_terminal_punctuation=bool(text) and text[-1] in TERMINAL_PUNCTUATION,
        discourse_markers=len(DISCOURSE_MARKER_RE.findall(text)),
    )


def _progress(value: float, target: float) -> float:
    """目標値に対する達成率（0.0-1.0）"""
    if target <= 0 or value <= 0:
        return 0.0
    return min(1.0, value / target)


def pronunciation_score(f: TextFeatures) -> float:
    # 母音密度と発話量
    return BASE_SCORE + 20 * _progress(f.vowel_ratio, 0.35) + 50 * _progress(f.word_count, 20)


def fluency_score(f: TextFeatures) -> float:
    # 語数と平均文長
    return BASE_SCORE + 40 * _progress(f.word_count, 20) + 30 * _progress(f.avg_sentence_length, 12)


def grammar_score(f: TextFeatures) -> float:
    # 大文字、文末の句読点、節の長さ
    score: float = BASE_SCORE
    if f.has_capitalization:
        score += 15
    if f.has_terminal_punctuation:
        score += 15
    return score + 40 * _progress(f.avg_clause_length, 6)


def vocabulary_score(f: TextFeatures) -> float:
    # 語彙の多様性と異なり語数
    return BASE_SCORE + 30 * f.lexical_diversity + 40 * _progress(f.distinct_words, 15)


def coherence_score(f: TextFeatures) -> float:
    # 文の数、談話標識、発話量
    return (
        BASE_SCORE
        + 25 * _progress(f.sentence_count - 1, 2)
        + 25 * _progress(f.discourse_markers, 2)
        + 20 * _progress(f.word_count, 20)
    )


class HeuristicScorer:
    """テキストから5技能スコアを算出する採点器

    jitterが0より大きい場合、流暢さ・文法・語彙・一貫性に0〜jitterの乱数を加える。
    テストではシード付きのrandom.Randomを渡して再現性を保つ。
    """

    def __init__(self, rng: random.Random | None = None, jitter: float | None = None) -> None:
        self.rng: random.Random = rng or random.Random()
        self.jitter: float = SETTINGS.score_jitter if jitter is None else max(0.0, jitter)

    def _polish(self) -> float:
        if self.jitter <= 0:
            return 0.0
        return self.rng.uniform(0, self.jitter)

    def score(self, text: str) -> SpeakingScores:
        """
        テキストを採点

        Args:
            text: 発話テキスト

        Returns:
            0-100に丸められた5技能スコア
        """
        features: TextFeatures = extract_features(text)
        return SpeakingScores(
            pronunciation=pronunciation_score(features),
            fluency=fluency_score(features) + self._polish(),
            grammar=grammar_score(features) + self._polish(),
            vocabulary=vocabulary_score(features) + self._polish(),
            coherence=coherence_score(features) + self._polish(),
        )

    @staticmethod
    def feedback(text: str) -> str:
        """発話量に応じたフィードバック"""
        word_count: int = extract_features(text).word_count
        if word_count < 10:
            return "Try to provide more detailed responses to fully demonstrate your speaking ability."
        if word_count < 30:
            return "Good response length. Focus on adding more specific details and examples."
        return "Excellent response detail. Your explanations show good command of the language."

    @staticmethod
    def suggestions(text: str) -> List[str]:
        """改善のための提案"""
        text = (text or "").strip()
        suggestions: List[str] = []
        if not text or text[-1] not in TERMINAL_PUNCTUATION:
            suggestions.append("Remember to complete your sentences with proper punctuation")
        if extract_features(text).word_count < 20:
            suggestions.append("Try to elaborate more on your ideas with examples and details")
        if not CONNECTOR_RE.search(text):
            suggestions.append("Use connecting words to link your ideas more clearly")
        return suggestions

    async def assess(
        self, text: str, language: str = "English", difficulty: str = "intermediate"
    ) -> tuple[SpeakingScores, str, List[str]]:
        """採点・フィードバック・提案をまとめて返す（言語と難易度はこの採点器では使わない）"""
        return self.score(text), self.feedback(text), self.suggestions(text)
