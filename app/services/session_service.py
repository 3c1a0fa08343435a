"""
テストセッション管理サービス
クレジットの予約、会話の作成、セッションの保存、終了時の評価とレポート作成までを取りまとめる
"""
import logging
import time
import uuid
from typing import Any, Callable, Dict, List

from pydantic import ValidationError

from app.config import SETTINGS
from app.models.errors import (
    InsufficientCredits,
    InsufficientFunds,
    InvalidConfig,
    InvalidTransition,
    PersistenceError,
    ProviderError,
    SessionCreationFailed,
    SessionNotFound,
)
from app.models.schemas import (
    ConversationHandle,
    ConversationTurn,
    CreditResult,
    Difficulty,
    EvaluationOutcome,
    HistoryPage,
    StartSessionResult,
    TestConfig,
    TestReport,
    TestReportSummary,
    TestSession,
    TestStatus,
)
from app.services.context_service import conversation_name, generate_conversational_context
from app.services.credit_service import CreditLedger
from app.services.evaluation_service import TranscriptEvaluator
from app.services.report_service import ReportAssembler, extract_conversation_id, parse_json_field
from app.services.storage_service import SessionStore
from app.services.tavus_service import TavusService

logger = logging.getLogger(__name__)

REFUND_DESCRIPTION = "Language Test Refund: Session creation failed"
ANONYMOUS_USER = "anonymous"
DEFAULT_FALLBACK_CONFIG = TestConfig(
    language="English", language_code="en", difficulty=Difficulty.INTERMEDIATE
)

# 現在の状態 -> 遷移できる状態（完了・中断からは遷移しない）
ALLOWED_TRANSITIONS: Dict[TestStatus, set[TestStatus]] = {
    TestStatus.NOT_STARTED: {TestStatus.IN_PROGRESS, TestStatus.COMPLETED, TestStatus.ABANDONED},
    TestStatus.IN_PROGRESS: {TestStatus.COMPLETED, TestStatus.ABANDONED},
    TestStatus.COMPLETED: set(),
    TestStatus.ABANDONED: set(),
}


def check_transition(current: TestStatus, target: TestStatus) -> None:
    """
    状態遷移が許可されているか確認

    Raises:
        InvalidTransition: 許可されていない遷移の場合
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"状態を{current.value}から{target.value}に変更できません")


def validate_config(config: TestConfig | Dict[str, Any] | None) -> TestConfig:
    """
    テスト設定を検証してTestConfigに変換

    Raises:
        InvalidConfig: 言語・言語コード・難易度が欠けている、または難易度が不正な場合
    """
    if config is None:
        raise InvalidConfig("テスト設定がありません")
    if isinstance(config, TestConfig):
        return config
    try:
        parsed = TestConfig.model_validate(config)
    except ValidationError as e:
        raise InvalidConfig(f"テスト設定が不正です: {e}") from e
    if not parsed.language.strip() or not parsed.language_code.strip():
        raise InvalidConfig("言語と言語コードは必須です")
    return parsed


# 設定フィールド名とcamelCaseのエイリアス
_CONFIG_FIELDS: tuple[tuple[str, str], ...] = (
    ("language", "language"),
    ("language_code", "languageCode"),
    ("difficulty", "difficulty"),
    ("test_type", "testType"),
    ("duration", "duration"),
)


def merge_config(*sources: TestConfig | Dict[str, Any] | str | None) -> TestConfig:
    """
    複数の設定をフィールドごとに優先順で補完して合成

    どの設定にも有効な値がないフィールドは既定の設定（English / en / intermediate）を使う。
    不正な値は読み飛ばすため例外を出さない。

    Args:
        sources: 優先順に並べた設定（TestConfig、辞書、JSON文字列、None）

    Returns:
        合成したテスト設定
    """
    default: Dict[str, Any] = DEFAULT_FALLBACK_CONFIG.model_dump(mode="json", by_alias=True)
    candidates: List[Dict[str, Any]] = [
        source.model_dump(mode="json", by_alias=True)
        if isinstance(source, TestConfig)
        else parse_json_field(source) or {}
        for source in sources
    ]
    merged: Dict[str, Any] = dict(default)
    for name, alias in _CONFIG_FIELDS:
        for candidate in candidates:
            value: Any = candidate.get(alias) or candidate.get(name)
            if not value or (isinstance(value, str) and not value.strip()):
                continue
            try:
                TestConfig.model_validate({**default, alias: value})
            except ValidationError:
                logger.warning("不正な設定値を無視します: %s=%r", alias, value)
                continue
            merged[alias] = value
            break
    return TestConfig.model_validate(merged)


def _now_ms() -> float:
    return time.time() * 1000


class SessionLifecycleManager:
    """テストセッションの開始から終了までを管理するサービスクラス

    開始時はクレジット予約、会話作成、保存の順に進み、予約後に失敗した場合は
    必ず返金してからエラーを返す。
    """

    def __init__(
        self,
        ledger: CreditLedger,
        provider: TavusService,
        store: SessionStore,
        evaluator: TranscriptEvaluator | None = None,
        assembler: ReportAssembler | None = None,
        token_cost: int | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        初期化処理

        Args:
            ledger: クレジット台帳
            provider: 会話プロバイダー
            store: セッションストア
            evaluator: 書き起こし評価器
            assembler: レポート作成器（評価器を共有する）
            token_cost: 1回のテストで消費するトークン数
            clock: 現在時刻（UNIXミリ秒）を返す関数
        """
        self.ledger: CreditLedger = ledger
        self.provider: TavusService = provider
        self.store: SessionStore = store
        self.evaluator: TranscriptEvaluator = evaluator or TranscriptEvaluator()
        self.assembler: ReportAssembler = assembler or ReportAssembler(self.evaluator)
        self.token_cost: int = SETTINGS.language_test_token_cost if token_cost is None else token_cost
        self.clock: Callable[[], float] = clock or _now_ms

    async def _compensate(self, user_id: str, amount: int) -> None:
        # 返金の失敗は記録のみ行い、元のエラーを優先する
        try:
            await self.ledger.compensate(user_id, amount, REFUND_DESCRIPTION)
        except Exception:
            logger.exception("クレジットの返金に失敗しました: user=%s amount=%d", user_id, amount)

    async def start_session(
        self,
        user_id: str,
        config: TestConfig | Dict[str, Any] | None,
        provider_options: Dict[str, Any] | None = None,
    ) -> StartSessionResult:
        """
        テストセッションを開始

        Args:
            user_id: ユーザーID
            config: テスト設定
            provider_options: アバター指定（replica_id, persona_id）

        Returns:
            セッションID、会話ハンドル、予約後の残高

        Raises:
            InvalidConfig: 設定が不正な場合（副作用なし）
            InsufficientCredits: 残高不足の場合（副作用なし）
            SessionCreationFailed: 会話作成または保存に失敗した場合（返金済み）
        """
        if not user_id:
            raise InvalidConfig("ユーザーIDは必須です")
        test_config: TestConfig = validate_config(config)
        cost: int = self.token_cost
        description: str = f"Language Test: {test_config.language} ({test_config.difficulty.value})"

        try:
            reservation: CreditResult = await self.ledger.reserve(user_id, cost, description)
        except InsufficientFunds as e:
            logger.info("クレジット不足のためテストを開始できません: user=%s", user_id)
            raise InsufficientCredits(e.current_balance, cost) from e

        try:
            selectors: Dict[str, Any] = {
                **(provider_options or {}),
                "conversation_name": conversation_name(test_config),
                "language": test_config.language,
            }
            handle: ConversationHandle = await self.provider.open_conversation(
                generate_conversational_context(test_config), selectors
            )
        except ProviderError as e:
            logger.error("会話の作成に失敗しました: %s", e)
            await self._compensate(user_id, cost)
            raise SessionCreationFailed(f"会話の作成に失敗しました: {e}") from e
        except Exception as e:
            logger.exception("会話の作成中に予期しないエラーが発生しました")
            await self._compensate(user_id, cost)
            raise SessionCreationFailed(f"会話の作成に失敗しました: {e}") from e

        session = TestSession(
            id=uuid.uuid4().hex,
            user_id=user_id,
            config=test_config,
            status=TestStatus.NOT_STARTED,
            start_time=self.clock(),
            conversation=handle,
            conversation_id=handle.conversation_id,
            provider_response=handle.model_dump(mode="json"),
        )
        try:
            await self.store.create(session.id, self._to_document(session))
        except PersistenceError as e:
            logger.error("セッションの保存に失敗しました: %s", e)
            await self._compensate(user_id, cost)
            raise SessionCreationFailed(f"セッションの保存に失敗しました: {e}") from e

        logger.info(
            "テストセッションを作成しました: session=%s conversation=%s",
            session.id, handle.conversation_id,
        )
        return StartSessionResult(
            session_id=session.id,
            session=session,
            conversation=handle,
            token_balance=reservation.new_balance,
            message="Language test session created successfully",
        )

    @staticmethod
    def _to_document(session: TestSession) -> Dict[str, Any]:
        document: Dict[str, Any] = session.model_dump(mode="json", by_alias=True)
        # 履歴の検索用に設定を展開しておく
        document.update(
            {
                "language": session.config.language,
                "languageCode": session.config.language_code,
                "difficulty": session.config.difficulty.value,
                "testType": session.config.test_type,
            }
        )
        return document

    async def get_session(self, session_id: str) -> TestSession:
        """
        保存済みのセッションを取得

        Raises:
            SessionNotFound: セッションが存在しない場合
        """
        return TestSession.model_validate(await self.store.get(session_id))

    async def _transition(
        self, session_id: str, target: TestStatus, fields: Dict[str, Any] | None = None
    ) -> TestSession:
        session: TestSession = await self.get_session(session_id)
        check_transition(session.status, target)
        document: Dict[str, Any] = await self.store.update(
            session_id, {**(fields or {}), "status": target.value}
        )
        return TestSession.model_validate(document)

    async def join_session(self, session_id: str) -> TestSession:
        """ユーザーが会話に参加した（not_started -> in_progress）"""
        session: TestSession = await self._transition(session_id, TestStatus.IN_PROGRESS)
        logger.info("テストセッションを開始しました: %s", session_id)
        return session

    async def append_turns(self, session_id: str, turns: List[ConversationTurn | Dict[str, Any]]) -> TestSession:
        """
        書き起こしに発話を追加（既存の発話は変更しない）

        Raises:
            InvalidTransition: セッションが既に終了している場合
        """
        session: TestSession = await self.get_session(session_id)
        if not ALLOWED_TRANSITIONS[session.status]:
            raise InvalidTransition(f"終了済みのセッションには発話を追加できません: {session_id}")
        new_turns: List[ConversationTurn] = self._parse_turns(turns)
        document: Dict[str, Any] = await self.store.update(
            session_id,
            {"turns": [t.model_dump(mode="json", by_alias=True) for t in session.turns + new_turns]},
        )
        return TestSession.model_validate(document)

    async def abandon_session(self, session_id: str) -> TestSession:
        """
        セッションを中断（not_started/in_progress -> abandoned）
        会話の終了はベストエフォートで行う
        """
        session: TestSession = await self._transition(
            session_id, TestStatus.ABANDONED, {"endTime": self.clock()}
        )
        if session.conversation_id:
            try:
                await self.provider.end_conversation(session.conversation_id)
            except ProviderError as e:
                logger.warning("中断したセッションの会話を終了できませんでした: %s", e)
        logger.info("テストセッションを中断しました: %s", session_id)
        return session

    @staticmethod
    def _parse_turns(turns: List[ConversationTurn | Dict[str, Any]] | None) -> List[ConversationTurn]:
        return [
            turn if isinstance(turn, ConversationTurn) else ConversationTurn.model_validate(turn)
            for turn in turns or []
        ]

    async def end_session(
        self,
        session_id: str | None,
        turns: List[ConversationTurn | Dict[str, Any]] | None = None,
        fallback_config: TestConfig | Dict[str, Any] | None = None,
    ) -> TestReport:
        """
        テストセッションを終了し、書き起こしを評価してレポートを作成

        セッションが見つからない場合も評価は行い、保存はせずにレポートだけを返す。

        Args:
            session_id: セッションID
            turns: 最終的な発話列（指定しない場合は保存済みの発話を使用）
            fallback_config: セッションの設定が欠けている、または見つからない場合に
                フィールドごとに補う設定

        Returns:
            最終レポート

        Raises:
            InvalidTransition: セッションが既に終了している場合
            PersistenceError: 結果の保存に失敗した場合
        """
        final_turns: List[ConversationTurn] = self._parse_turns(turns)

        record: Dict[str, Any] | None = None
        if session_id:
            try:
                record = await self.store.get(session_id)
            except SessionNotFound:
                logger.warning("セッションが見つからないため保存せずに評価します: %s", session_id)

        end_time: float = self.clock()
        if record is not None:
            check_transition(TestStatus(record.get("status") or TestStatus.NOT_STARTED), TestStatus.COMPLETED)
            config: TestConfig = merge_config(record.get("config"), record, fallback_config)
            user_id: str = record.get("userId") or ANONYMOUS_USER
            report_id: str = f"report_{session_id}"
            start_time: float | None = record.get("startTime")
            if not final_turns:
                final_turns = self._parse_turns(record.get("turns"))
        else:
            config = merge_config(fallback_config)
            user_id = ANONYMOUS_USER
            report_id = f"report_{uuid.uuid4().hex}"
            start_time = None

        outcome: EvaluationOutcome = await self.evaluator.evaluate(
            final_turns, config.language, config.difficulty
        )
        report: TestReport = self.assembler.assemble(
            outcome,
            report_id=report_id,
            user_id=user_id,
            config=config,
            session_record=record,
            start_time=start_time,
            end_time=end_time,
        )

        if record is not None and session_id:
            await self.store.update(
                session_id,
                {
                    "status": TestStatus.COMPLETED.value,
                    "endTime": end_time,
                    "turns": [t.model_dump(mode="json", by_alias=True) for t in final_turns],
                    "report": report.model_dump(mode="json", by_alias=True),
                    # 履歴一覧が読む集計列。既存レコードの列名に合わせてsnake_caseで保存する
                    "conversation_id": report.conversation_id,
                    "overall_score": report.overall_score,
                    "cefr_level": report.cefr_level,
                    "is_passed": report.is_passed,
                    "test_duration": report.test_duration,
                },
            )
            logger.info(
                "テストセッションを完了しました: session=%s score=%d passed=%s",
                session_id, report.overall_score, report.is_passed,
            )
        return report

    @staticmethod
    def _to_summary(document: Dict[str, Any]) -> TestReportSummary:
        report_data: Dict[str, Any] | None = parse_json_field(document.get("report"))
        report: TestReport | None = TestReport.model_validate(report_data) if report_data else None
        config: Dict[str, Any] = parse_json_field(document.get("config")) or {}
        return TestReportSummary(
            id=document["id"],
            user_id=document.get("userId", ""),
            language=document.get("language") or config.get("language", ""),
            language_code=document.get("languageCode") or config.get("languageCode", ""),
            difficulty=document.get("difficulty") or config.get("difficulty", ""),
            test_type=document.get("testType") or "speaking",
            status=TestStatus(document.get("status", TestStatus.COMPLETED.value)),
            start_time=document.get("startTime"),
            end_time=document.get("endTime"),
            conversation_id=extract_conversation_id(document),
            overall_score=document.get("overall_score"),
            cefr_level=document.get("cefr_level"),
            is_passed=document.get("is_passed"),
            test_duration=document.get("test_duration"),
            report=report,
        )

    async def get_history(self, user_id: str, limit: int = 20, offset: int = 0) -> HistoryPage:
        """
        完了したテストの履歴を新しい順に取得

        Args:
            user_id: ユーザーID
            limit: 取得件数
            offset: 開始位置

        Returns:
            履歴のページ
        """
        limit = max(1, limit)
        offset = max(0, offset)
        documents, total = await self.store.list_completed(user_id, limit, offset)
        records: List[TestReportSummary] = [self._to_summary(d) for d in documents]
        return HistoryPage(records=records, total=total, has_more=offset + len(records) < total)

    async def get_conversation(self, conversation_id: str) -> ConversationHandle:
        """プロバイダー上の会話の状態を取得"""
        return await self.provider.get_conversation(conversation_id)
