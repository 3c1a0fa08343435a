"""
言語テストエンジン - メインエントリーポイント
サービスを組み立て、起動時にAPIの接続状態を表示する
"""
import asyncio
import logging
from pathlib import Path
from typing import Dict, List

from app.config import APP_DATA_DIR, setup_logging
from app.services.api_check_service import APICheckService
from app.services.credit_service import CreditLedger
from app.services.evaluation_service import TranscriptEvaluator
from app.services.report_service import ReportAssembler
from app.services.session_service import SessionLifecycleManager
from app.services.storage_service import SessionStore
from app.services.tavus_service import TavusService

logger = logging.getLogger(__name__)


def build_session_manager(data_dir: Path | None = None) -> SessionLifecycleManager:
    """
    設定からセッション管理サービスを組み立てる

    Args:
        data_dir: データ保存先（指定しない場合はアプリケーションデータディレクトリ）

    Returns:
        セッション管理サービス

    Raises:
        ValueError: TAVUS_API_KEYが設定されていない場合
    """
    base_dir: Path = data_dir or APP_DATA_DIR
    evaluator = TranscriptEvaluator()
    return SessionLifecycleManager(
        ledger=CreditLedger(base_dir / "credits"),
        provider=TavusService(),
        store=SessionStore(base_dir / "language_tests"),
        evaluator=evaluator,
        assembler=ReportAssembler(evaluator),
    )


async def report_api_status() -> List[Dict[str, str]]:
    """APIの接続状態をログに出力"""
    results: List[Dict[str, str]] = await APICheckService().check_all_apis()
    for result in results:
        logger.info("%s: %s（%s）", result["name"], result["status"], result["message"])
    return results


if __name__ == "__main__":
    setup_logging()
    # アプリケーションデータディレクトリの作成
    APP_DATA_DIR.mkdir(parents=True, exist_ok=True)
    asyncio.run(report_api_status())
