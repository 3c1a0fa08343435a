"""
データモデル（スキーマ定義）
外部へはcamelCaseのフィールド名でシリアライズする
"""

import math
from enum import Enum
from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Difficulty(str, Enum):
    """テストの難易度"""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TestStatus(str, Enum):
    """テストセッションの状態"""

    __test__ = False  # pytestの収集対象外

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Speaker(str, Enum):
    """発話者"""

    AI = "ai"
    USER = "user"


SKILLS: tuple[str, ...] = ("pronunciation", "fluency", "grammar", "vocabulary", "coherence")


def round_score(value: float) -> int:
    """四捨五入（0.5は切り上げ）"""
    return int(math.floor(value + 0.5))


def clamp_score(value: float) -> int:
    """0-100の整数に丸める"""
    return max(0, min(100, round_score(value)))


class CamelModel(BaseModel):
    """camelCaseのエイリアスを持つ共通ベースモデル"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestConfig(CamelModel):
    """テスト作成時に決まる不変のテストパラメータ"""

    __test__ = False

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    language: str  # 対象言語名（例: English）
    language_code: str  # 言語コード（例: en）
    difficulty: Difficulty
    test_type: str = "conversation"
    duration: int = 15  # 分


class ConversationHandle(CamelModel):
    """会話プロバイダーが発行する会話ハンドル"""

    conversation_id: str
    conversation_url: str  # 参加用URL
    daily_room_url: str | None = None
    status: str = "created"  # created, active, ended
    created_at: str | None = None


class ConversationTurn(CamelModel):
    """会話の1発話"""

    id: str = ""
    speaker: Speaker
    message: str = ""
    transcript: str | None = None  # ユーザー発話の書き起こし（こちらを優先）
    timestamp: float = 0  # UNIXミリ秒

    @property
    def text(self) -> str:
        """評価対象のテキスト（書き起こしがあれば優先）"""
        return (self.transcript or self.message or "").strip()


class SpeakingScores(CamelModel):
    """1発話の5技能スコア"""

    pronunciation: int = 0
    fluency: int = 0
    grammar: int = 0
    vocabulary: int = 0
    coherence: int = 0

    @field_validator(*SKILLS, mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_score(float(value))

    def mean(self) -> float:
        """5技能の平均"""
        return sum(getattr(self, skill) for skill in SKILLS) / len(SKILLS)


class SpeakingEvaluation(CamelModel):
    """ユーザー発話ごとの評価結果"""

    prompt_id: str
    prompt: str = "Conversation response"
    user_response: str = ""
    scores: SpeakingScores
    feedback: str = ""
    suggestions: List[str] = Field(default_factory=list)


class SkillScores(CamelModel):
    """技能別の集計スコア"""

    pronunciation: int = 0
    fluency: int = 0
    grammar: int = 0
    vocabulary: int = 0
    coherence: int = 0
    overall: int = 0


class EvaluationOutcome(CamelModel):
    """書き起こし評価の集計結果"""

    evaluations: List[SpeakingEvaluation] = Field(default_factory=list)
    overall_score: int = 0
    skill_scores: SkillScores = Field(default_factory=SkillScores)
    cefr_level: str = "A1"
    pass_threshold: int = 0
    required_level: str = ""
    is_passed: bool = False
    result_message: str = ""


class TestReport(CamelModel):
    """完了したセッションの最終レポート"""

    __test__ = False

    id: str
    user_id: str
    language: str
    language_code: str
    difficulty: str
    test_type: str = "speaking"
    total_prompts: int = 0
    completed_prompts: int = 0
    overall_score: int = 0
    cefr_level: str = "A1"
    is_passed: bool = False
    pass_threshold: int = 0
    required_level: str = ""
    result_message: str = ""
    conversation_id: str | None = None
    skill_scores: SkillScores = Field(default_factory=SkillScores)
    evaluations: List[SpeakingEvaluation] = Field(default_factory=list)
    general_feedback: str = ""
    recommendations: List[str] = Field(default_factory=list)
    test_duration: int = 0  # 分
    created_at: datetime
    updated_at: datetime


class TestSession(CamelModel):
    """テストセッション（作業単位）"""

    __test__ = False

    id: str
    user_id: str
    config: TestConfig
    status: TestStatus = TestStatus.NOT_STARTED
    start_time: float  # UNIXミリ秒
    end_time: float | None = None
    conversation: ConversationHandle | None = None
    conversation_id: str | None = None  # 検索用の直接フィールド
    turns: List[ConversationTurn] = Field(default_factory=list)
    report: TestReport | None = None
    provider_response: dict[str, Any] | str | None = None  # プロバイダーの生レスポンス


class TestReportSummary(CamelModel):
    """履歴一覧用のレポート要約"""

    __test__ = False

    id: str
    user_id: str
    language: str
    language_code: str
    difficulty: str
    test_type: str = "speaking"
    status: TestStatus
    start_time: float | None = None
    end_time: float | None = None
    conversation_id: str | None = None
    overall_score: int | None = None
    cefr_level: str | None = None
    is_passed: bool | None = None
    test_duration: int | None = None
    report: TestReport | None = None


class HistoryPage(CamelModel):
    """履歴のページング結果"""

    records: List[TestReportSummary] = Field(default_factory=list)
    total: int = 0
    has_more: bool = False


class StartSessionResult(CamelModel):
    """セッション開始結果"""

    session_id: str
    session: TestSession
    conversation: ConversationHandle
    token_balance: int
    message: str = ""


class CreditTransaction(CamelModel):
    """クレジット操作の監査ログ"""

    id: str
    user_id: str
    transaction_type: str  # reserve, refund, grant
    amount: int
    description: str = ""
    old_balance: int
    new_balance: int
    timestamp: datetime


class CreditResult(CamelModel):
    """クレジット操作の結果"""

    user_id: str
    old_balance: int
    new_balance: int
    amount: int
