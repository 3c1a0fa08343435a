"""
例外定義
各例外はユーザー向けのメッセージ分類（user_message）を持ち、内部エラー文字列をそのまま見せない
"""


class LanguageTestError(Exception):
    """言語テスト処理の基底例外"""

    category: str = "internal"
    user_message: str = "An unexpected error occurred. Please try again later."


class InvalidConfig(LanguageTestError):
    """テスト設定が不正（副作用なし、再試行しない）"""

    category = "configuration"
    user_message = "The test configuration is invalid. Please choose a language and difficulty."


class InsufficientFunds(LanguageTestError):
    """台帳上の残高不足"""

    category = "balance"
    label: str = "残高不足"

    def __init__(self, current_balance: int, required: int) -> None:
        super().__init__(f"{self.label}: 残高={current_balance}, 必要額={required}")
        self.current_balance: int = current_balance
        self.required: int = required


class InsufficientCredits(InsufficientFunds):
    """テスト開始に必要なクレジットが不足している（購入を促す）"""

    label = "クレジットが不足しています"

    @property
    def user_message(self) -> str:  # type: ignore[override]
        return (
            f"You need {self.required} tokens for a language test. "
            f"Your current balance is {self.current_balance}."
        )


class ProviderError(LanguageTestError):
    """会話プロバイダー呼び出しの失敗（タイムアウトを含む）"""

    category = "provider"
    user_message = "The video conversation service is temporarily unavailable. Please try again."

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code: int | None = status_code


class SessionCreationFailed(LanguageTestError):
    """セッション作成失敗（予約済みクレジットは返金済み）"""

    category = "provider"
    user_message = (
        "We could not start your test session. Your tokens have been refunded; please try again."
    )


class SessionNotFound(LanguageTestError):
    """セッションが見つからない"""

    category = "not_found"
    user_message = "The test session could not be found."

    def __init__(self, session_id: str) -> None:
        super().__init__(f"セッションが見つかりません: {session_id}")
        self.session_id: str = session_id


class PersistenceError(LanguageTestError):
    """永続化の失敗（リクエスト単位で致命的、自動再試行しない）"""

    category = "persistence"
    user_message = "Your results could not be saved. Please try again later."


class InvalidTransition(LanguageTestError):
    """許可されていない状態遷移"""

    category = "state"
    user_message = "This test session has already finished."
