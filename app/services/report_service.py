"""
レポート生成サービス
評価結果とセッション情報から最終レポートを組み立てる
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List

from app.models.schemas import (
    ConversationTurn,
    EvaluationOutcome,
    SkillScores,
    TestConfig,
    TestReport,
    round_score,
)
from app.services.evaluation_service import TranscriptEvaluator

logger = logging.getLogger(__name__)

# この点数未満の技能には個別の学習提案を出す
COMPETENCY_FLOOR = 75

SKILL_RECOMMENDATIONS: Dict[str, str] = {
    "pronunciation": "Practice pronunciation with native speaker recordings and phonetic exercises",
    "fluency": "Improve fluency through regular conversation practice and speaking exercises",
    "grammar": "Focus on grammar accuracy through targeted exercises and sentence construction practice",
    "vocabulary": "Expand vocabulary through reading, listening, and active word learning strategies",
    "coherence": "Work on organizing ideas clearly and using connecting words to improve coherence",
}

GENERIC_RECOMMENDATIONS: List[str] = [
    "Continue practicing with challenging materials to maintain your excellent speaking level",
    "Consider advanced conversation practice with native speakers for further improvement",
]

# 会話IDを探す場所（優先順）
_DIRECT_ID_KEYS: tuple[str, ...] = ("conversationId", "conversation_id", "cvi_conversation_id")
_BLOB_KEYS: tuple[str, ...] = ("providerResponse", "provider_response", "cviResponse")


def parse_json_field(blob: Any) -> Dict[str, Any] | None:
    """辞書またはJSON文字列で保存されたフィールドを辞書として読む"""
    if isinstance(blob, dict):
        return blob
    if isinstance(blob, str) and blob:
        try:
            parsed: Any = json.loads(blob)
        except json.JSONDecodeError:
            logger.warning("プロバイダー応答を解析できませんでした")
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def extract_conversation_id(record: Dict[str, Any] | None) -> str | None:
    """
    保存されたセッションから会話IDを取り出す

    書き込み経路によって保存場所が異なるため、直接フィールド、会話ハンドル、
    プロバイダー応答（辞書またはJSON文字列）の順に探す。

    Args:
        record: セッションドキュメント

    Returns:
        会話ID（見つからない場合はNone）
    """
    if not record:
        return None
    for key in _DIRECT_ID_KEYS:
        if record.get(key):
            return str(record[key])
    handle: Dict[str, Any] | None = parse_json_field(record.get("conversation"))
    if handle:
        conversation_id: Any = handle.get("conversationId") or handle.get("conversation_id")
        if conversation_id:
            return str(conversation_id)
    for key in _BLOB_KEYS:
        blob: Dict[str, Any] | None = parse_json_field(record.get(key))
        if blob and blob.get("conversation_id"):
            return str(blob["conversation_id"])
    return None


def duration_minutes(start_time: float | None, end_time: float | None) -> int:
    """開始・終了時刻（UNIXミリ秒）から所要時間（分）を計算"""
    if not start_time or not end_time or end_time < start_time:
        return 0
    return round_score((end_time - start_time) / 60000)


def generate_general_feedback(overall_score: int, cefr_level: str) -> str:
    """総合スコア帯ごとの講評"""
    if overall_score >= 90:
        return (
            f"Excellent speaking performance! You've demonstrated {cefr_level} level proficiency "
            "with clear pronunciation, natural fluency, and sophisticated vocabulary usage."
        )
    if overall_score >= 80:
        return (
            f"Very good speaking skills! You've reached {cefr_level} level with effective "
            "communication and good command of the language structure."
        )
    if overall_score >= 70:
        return (
            f"Good speaking ability! You've achieved {cefr_level} level and can communicate "
            "effectively in most situations with some areas for improvement."
        )
    if overall_score >= 60:
        return (
            f"Satisfactory speaking skills at {cefr_level} level. You can communicate basic ideas "
            "but would benefit from more practice with pronunciation and fluency."
        )
    return (
        f"Basic speaking skills at {cefr_level} level. Continue practicing fundamental "
        "pronunciation patterns and building confidence in spoken communication."
    )


def generate_recommendations(skill_scores: SkillScores) -> List[str]:
    """
    技能別スコアから学習提案を生成

    Returns:
        基準点未満の技能ごとの提案。該当がなければ汎用の提案2件（空にはならない）
    """
    recommendations: List[str] = [
        text
        for skill, text in SKILL_RECOMMENDATIONS.items()
        if getattr(skill_scores, skill) < COMPETENCY_FLOOR
    ]
    return recommendations or list(GENERIC_RECOMMENDATIONS)


class ReportAssembler:
    """評価結果から最終レポートを組み立てるサービスクラス"""

    def __init__(self, evaluator: TranscriptEvaluator | None = None) -> None:
        self.evaluator: TranscriptEvaluator = evaluator or TranscriptEvaluator()

    def assemble(
        self,
        outcome: EvaluationOutcome,
        *,
        report_id: str,
        user_id: str,
        config: TestConfig,
        session_record: Dict[str, Any] | None = None,
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> TestReport:
        """
        レポートを組み立てる

        Args:
            outcome: 評価の集計結果
            report_id: レポートID
            user_id: ユーザーID
            config: テスト設定
            session_record: 保存済みのセッションドキュメント（会話IDの取得に使用）
            start_time: セッション開始時刻（UNIXミリ秒）
            end_time: セッション終了時刻（UNIXミリ秒）

        Returns:
            最終レポート
        """
        now: datetime = datetime.now()
        return TestReport(
            id=report_id,
            user_id=user_id,
            language=config.language,
            language_code=config.language_code,
            difficulty=config.difficulty.value,
            test_type="speaking",
            total_prompts=len(outcome.evaluations),
            completed_prompts=len(outcome.evaluations),
            overall_score=outcome.overall_score,
            cefr_level=outcome.cefr_level,
            is_passed=outcome.is_passed,
            pass_threshold=outcome.pass_threshold,
            required_level=outcome.required_level,
            result_message=outcome.result_message,
            conversation_id=extract_conversation_id(session_record),
            skill_scores=outcome.skill_scores,
            evaluations=outcome.evaluations,
            general_feedback=generate_general_feedback(outcome.overall_score, outcome.cefr_level),
            recommendations=generate_recommendations(outcome.skill_scores),
            test_duration=duration_minutes(start_time, end_time),
            created_at=now,
            updated_at=now,
        )

    async def reassemble(self, report: TestReport, turns: List[ConversationTurn]) -> TestReport:
        """
        同じ書き起こしからレポートを作り直す

        合格点はレポート作成時に確定した値を使い、現在の合格点表は参照しない。
        """
        outcome: EvaluationOutcome = await self.evaluator.evaluate(
            turns, report.language, report.difficulty, threshold=report.pass_threshold
        )
        return report.model_copy(
            update={
                "total_prompts": len(outcome.evaluations),
                "completed_prompts": len(outcome.evaluations),
                "overall_score": outcome.overall_score,
                "cefr_level": outcome.cefr_level,
                "is_passed": outcome.is_passed,
                "result_message": outcome.result_message,
                "skill_scores": outcome.skill_scores,
                "evaluations": outcome.evaluations,
                "general_feedback": generate_general_feedback(outcome.overall_score, outcome.cefr_level),
                "recommendations": generate_recommendations(outcome.skill_scores),
                "updated_at": datetime.now(),
            }
        )
