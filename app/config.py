"""
アプリケーション設定
"""
import os
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_app_data_dir() -> Path:
    """
    アプリケーションのデータディレクトリを取得

    Returns:
        アプリケーションデータディレクトリのパス
    """
    if sys.platform == "win32":
        # Windowsの場合、AppData\Local\LanguageTestEngineを使用
        app_data: str | None = os.getenv("LOCALAPPDATA")
        if app_data:
            app_dir: Path = Path(app_data) / "LanguageTestEngine"
            app_dir.mkdir(exist_ok=True)
            return app_dir
    elif sys.platform == "darwin":
        # macOSの場合、~/Library/Application Support/LanguageTestEngineを使用
        app_support: Path = Path.home() / "Library" / "Application Support" / "LanguageTestEngine"
        app_support.mkdir(parents=True, exist_ok=True)
        return app_support
    # その他のOSまたはフォールバック
    return Path.home() / ".language_test_engine"


def get_log_file() -> Path:
    """
    ログファイルのパスを取得

    Returns:
        ログファイルのパス
    """
    return get_app_data_dir() / "app.log"


class Settings(BaseSettings):
    """環境変数（.envを含む）から読み込む実行時設定"""

    # Tavus CVI
    tavus_api_key: str | None = Field(default=None, validation_alias="TAVUS_API_KEY")
    tavus_base_url: str = Field(default="https://tavusapi.com/v2", validation_alias="TAVUS_BASE_URL")
    # IELTS試験官のデフォルトレプリカ
    tavus_replica_id: str = Field(default="r9d30b0e55ac", validation_alias="TAVUS_REPLICA_ID")
    tavus_persona_id: str = Field(default="pa9775068f50", validation_alias="TAVUS_PERSONA_ID")
    tavus_timeout: float = Field(default=30.0, validation_alias="TAVUS_TIMEOUT")  # 秒

    # クレジット
    language_test_token_cost: int = Field(default=10000, validation_alias="LANGUAGE_TEST_TOKEN_COST")
    initial_token_balance: int = Field(default=0, validation_alias="INITIAL_TOKEN_BALANCE")

    # 採点（heuristic または openai、jitterが0なら乱数による補正なし）
    scorer: str = Field(default="heuristic", validation_alias="SCORER")
    score_jitter: float = Field(default=0.0, validation_alias="SCORE_JITTER")

    # OpenAI（scorer=openaiの場合のみ使用、APIキーは環境変数から直接読む）
    openai_model: str = Field(default="gpt-5-nano", validation_alias="OPENAI_MODEL")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")


def setup_logging(level: str | None = None) -> None:
    """
    ルートロガーにコンソール出力とファイル出力を設定する

    Args:
        level: ログレベル（指定しない場合は設定値を使用）
    """
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel((level or SETTINGS.log_level).upper())
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        root.warning("ログファイルを開けませんでした: %s", e)


# アプリケーションデータディレクトリ
APP_DATA_DIR = get_app_data_dir()

# ログファイル
LOG_FILE = get_log_file()

# 実行時設定（OPENAI_API_KEYはSettings外で直接読むため.envも環境変数に読み込む）
load_dotenv()
SETTINGS = Settings()
