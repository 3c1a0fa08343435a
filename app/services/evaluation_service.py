"""
評価サービス
会話の書き起こしをユーザー発話ごとに5技能で採点し、総合スコア・CEFRレベル・合否を決定する
"""
import logging
from typing import Dict, List, Protocol

from app.config import SETTINGS
from app.models.errors import ProviderError
from app.models.schemas import (
    SKILLS,
    ConversationTurn,
    Difficulty,
    EvaluationOutcome,
    SkillScores,
    Speaker,
    SpeakingEvaluation,
    SpeakingScores,
    round_score,
)
from app.services.openai_service import OpenAIService
from app.services.scoring import HeuristicScorer

logger = logging.getLogger(__name__)


# 難易度ごとのCEFR対応表（スコア下限, レベル）を上から順に評価する
CEFR_BANDS: Dict[Difficulty, List[tuple[int, str]]] = {
    Difficulty.BEGINNER: [(85, "A2"), (70, "A1+"), (0, "A1")],
    Difficulty.INTERMEDIATE: [(90, "B2"), (75, "B1"), (60, "A2+"), (0, "A2")],
    Difficulty.ADVANCED: [(95, "C2"), (85, "C1"), (75, "B2+"), (0, "B2")],
}

# 難易度ごとの合格点と、メッセージに使う目標CEFRレベル
PASS_THRESHOLDS: Dict[Difficulty, tuple[int, str]] = {
    Difficulty.BEGINNER: (60, "A1"),
    Difficulty.INTERMEDIATE: (70, "B1"),
    Difficulty.ADVANCED: (80, "B2"),
}


class Scorer(Protocol):
    """発話テキストを採点するインターフェース"""

    async def assess(
        self, text: str, language: str = ..., difficulty: str = ...
    ) -> tuple[SpeakingScores, str, List[str]]:
        ...


def to_difficulty(difficulty: Difficulty | str) -> Difficulty:
    """難易度を列挙型に変換（未知の値は初級として扱う）"""
    try:
        return Difficulty(difficulty)
    except ValueError:
        return Difficulty.BEGINNER


def determine_cefr_level(score: int, difficulty: Difficulty | str) -> str:
    """
    総合スコアと難易度からCEFRレベルを決定

    Args:
        score: 総合スコア（0-100）
        difficulty: テストの難易度

    Returns:
        CEFRレベル（例: A1, A1+, B2）
    """
    bands: List[tuple[int, str]] = CEFR_BANDS[to_difficulty(difficulty)]
    for minimum, level in bands:
        if score >= minimum:
            return level
    return bands[-1][1]


def pass_threshold(difficulty: Difficulty | str) -> tuple[int, str]:
    """難易度ごとの(合格点, 目標CEFRレベル)"""
    return PASS_THRESHOLDS[to_difficulty(difficulty)]


def build_result_message(
    score: int, threshold: int, is_passed: bool, difficulty: str, cefr_level: str, required_level: str
) -> str:
    """合否メッセージを生成"""
    if is_passed:
        return (
            f"Congratulations! You have successfully passed the {difficulty} level test with a "
            f"score of {score}% and achieved {cefr_level} level proficiency."
        )
    points_needed: int = threshold - score
    return (
        f"You scored {score}% but need {threshold}% to pass the {difficulty} level. You need "
        f"{points_needed} more points to achieve the required {required_level} level."
    )


def calculate_overall_score(evaluations: List[SpeakingEvaluation]) -> int:
    """発話ごとの5技能平均の平均（発話がなければ0）"""
    if not evaluations:
        return 0
    total: float = sum(evaluation.scores.mean() for evaluation in evaluations)
    return round_score(total / len(evaluations))


def calculate_skill_scores(evaluations: List[SpeakingEvaluation]) -> SkillScores:
    """技能ごとの平均と、5技能平均の平均"""
    if not evaluations:
        return SkillScores()
    count: int = len(evaluations)
    totals: Dict[str, int] = {
        skill: sum(getattr(evaluation.scores, skill) for evaluation in evaluations)
        for skill in SKILLS
    }
    means: Dict[str, float] = {skill: totals[skill] / count for skill in SKILLS}
    return SkillScores(
        **{skill: round_score(means[skill]) for skill in SKILLS},
        overall=round_score(sum(means.values()) / len(SKILLS)),
    )


class TranscriptEvaluator:
    """会話の書き起こしを評価するサービスクラス"""

    def __init__(self, scorer: Scorer | None = None, fallback: HeuristicScorer | None = None) -> None:
        """
        初期化処理
        採点器を指定しない場合はSCORER設定に従う
        OpenAIの環境変数が設定されていない場合はヒューリスティック採点を使用する

        Args:
            scorer: 採点器
            fallback: 採点器が失敗したときに使うヒューリスティック採点器
        """
        self.fallback: HeuristicScorer = fallback or HeuristicScorer()
        if scorer is None and SETTINGS.scorer == "openai":
            try:
                scorer = OpenAIService()
            except ValueError as e:
                logger.warning("OpenAI採点を使用できません。ヒューリスティック採点を使用します: %s", e)
        self.scorer: Scorer = scorer or self.fallback

    async def evaluate_turns(
        self, turns: List[ConversationTurn], language: str, difficulty: str
    ) -> List[SpeakingEvaluation]:
        """
        ユーザー発話ごとに採点

        Args:
            turns: 会話の発話列（順序を保持）
            language: 対象言語
            difficulty: テストの難易度

        Returns:
            ユーザー発話ごとの評価（空の発話は対象外）
        """
        evaluations: List[SpeakingEvaluation] = []
        for index, turn in enumerate(turns):
            if turn.speaker != Speaker.USER or not turn.text:
                continue
            text: str = turn.text
            try:
                scores, feedback, suggestions = await self.scorer.assess(text, language, difficulty)
            except ProviderError as e:
                logger.warning("発話の採点に失敗したためヒューリスティック採点を使用します: %s", e)
                scores, feedback, suggestions = await self.fallback.assess(text, language, difficulty)
            evaluations.append(
                SpeakingEvaluation(
                    prompt_id=turn.id or f"turn_{index}",
                    user_response=text,
                    scores=scores,
                    feedback=feedback,
                    suggestions=suggestions,
                )
            )
        return evaluations

    def aggregate(
        self,
        evaluations: List[SpeakingEvaluation],
        difficulty: Difficulty | str,
        threshold: int | None = None,
    ) -> EvaluationOutcome:
        """
        発話ごとの評価を集計

        Args:
            evaluations: 発話ごとの評価
            difficulty: テストの難易度
            threshold: 既存レポートで確定済みの合格点（再評価時に使用）

        Returns:
            集計結果
        """
        difficulty_label: str = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
        overall_score: int = calculate_overall_score(evaluations)
        cefr_level: str = determine_cefr_level(overall_score, difficulty)
        default_threshold, required_level = pass_threshold(difficulty)
        if threshold is None:
            threshold = default_threshold
        is_passed: bool = overall_score >= threshold

        return EvaluationOutcome(
            evaluations=evaluations,
            overall_score=overall_score,
            skill_scores=calculate_skill_scores(evaluations),
            cefr_level=cefr_level,
            pass_threshold=threshold,
            required_level=required_level,
            is_passed=is_passed,
            result_message=build_result_message(
                overall_score, threshold, is_passed, difficulty_label, cefr_level, required_level
            ),
        )

    async def evaluate(
        self,
        turns: List[ConversationTurn],
        language: str,
        difficulty: Difficulty | str,
        threshold: int | None = None,
    ) -> EvaluationOutcome:
        """
        書き起こし全体を評価

        Args:
            turns: 会話の発話列
            language: 対象言語
            difficulty: テストの難易度
            threshold: 確定済みの合格点（指定しない場合は難易度から決定）

        Returns:
            集計結果
        """
        difficulty_label: str = difficulty.value if isinstance(difficulty, Difficulty) else str(difficulty)
        evaluations: List[SpeakingEvaluation] = await self.evaluate_turns(turns, language, difficulty_label)
        outcome: EvaluationOutcome = self.aggregate(evaluations, difficulty, threshold)
        logger.info(
            "書き起こしを評価しました: turns=%d score=%d cefr=%s passed=%s",
            len(evaluations), outcome.overall_score, outcome.cefr_level, outcome.is_passed,
        )
        return outcome
