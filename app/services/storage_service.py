"""
セッションストアサービス
テストセッションをJSONドキュメントとしてローカルファイルに保存する
"""
import asyncio
import json
import logging
import re
from typing import Dict, List, Any
from pathlib import Path
from datetime import datetime

import aiofiles

from app.config import APP_DATA_DIR
from app.models.errors import PersistenceError, SessionNotFound

logger = logging.getLogger(__name__)

# セッションIDはファイル名になるため、英数字・ハイフン・アンダースコアのみ許可する
SESSION_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


class SessionStore:
    """テストセッションのドキュメントを保存・読み込むサービスクラス"""

    def __init__(self, data_dir: Path | None = None) -> None:
        """
        初期化処理
        データ保存ディレクトリを作成する

        Args:
            data_dir: 保存先ディレクトリ（指定しない場合はアプリケーションデータディレクトリ配下）
        """
        self.data_dir: Path = data_dir or APP_DATA_DIR / "language_tests"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock: asyncio.Lock = asyncio.Lock()

    def _path(self, session_id: str) -> Path:
        if not SESSION_ID_RE.fullmatch(session_id or ""):
            raise SessionNotFound(session_id)
        return self.data_dir / f"{session_id}.json"

    async def _read(self, session_id: str) -> Dict[str, Any]:
        file_path: Path = self._path(session_id)
        if not file_path.exists():
            raise SessionNotFound(session_id)
        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"セッションの読み込みに失敗しました {session_id}: {e}") from e

    async def _write(self, session_id: str, document: Dict[str, Any]) -> None:
        try:
            json_str: str = json.dumps(document, ensure_ascii=False, indent=2)
            async with aiofiles.open(self._path(session_id), "w", encoding="utf-8") as f:
                await f.write(json_str)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"セッションの保存に失敗しました {session_id}: {e}") from e

    async def create(self, session_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        新しいセッションドキュメントを作成

        Args:
            session_id: セッションID
            fields: 保存するフィールド（JSONシリアライズ可能な辞書）

        Returns:
            保存したドキュメント

        Raises:
            PersistenceError: 同じIDが既に存在する、IDが不正、または書き込みに失敗した場合
        """
        if not SESSION_ID_RE.fullmatch(session_id or ""):
            raise PersistenceError(f"セッションIDが不正です: {session_id!r}")
        async with self._lock:
            if self._path(session_id).exists():
                raise PersistenceError(f"セッションIDが重複しています: {session_id}")
            now: str = datetime.now().isoformat()
            document: Dict[str, Any] = {**fields, "id": session_id, "createdAt": now, "updatedAt": now}
            await self._write(session_id, document)
        logger.info("セッションを保存しました: %s", session_id)
        return document

    async def get(self, session_id: str) -> Dict[str, Any]:
        """
        セッションドキュメントを取得

        Raises:
            SessionNotFound: ドキュメントが存在しない、またはIDが不正な場合
        """
        return await self._read(session_id)

    async def update(self, session_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        セッションドキュメントの一部フィールドを更新

        Args:
            session_id: セッションID
            fields: 上書きするフィールド

        Returns:
            更新後のドキュメント
        """
        async with self._lock:
            document: Dict[str, Any] = await self._read(session_id)
            document.update(fields)
            document["updatedAt"] = datetime.now().isoformat()
            await self._write(session_id, document)
        return document

    async def list_completed(
        self, user_id: str, limit: int = 20, offset: int = 0
    ) -> tuple[List[Dict[str, Any]], int]:
        """
        ユーザーの完了済みセッションを終了時刻の新しい順で取得

        Args:
            user_id: ユーザーID
            limit: 取得件数
            offset: 開始位置

        Returns:
            (ドキュメントのリスト, 完了済みセッションの総数)
        """
        documents: List[Dict[str, Any]] = []
        for file_path in self.data_dir.glob("*.json"):
            try:
                async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                    document: Dict[str, Any] = json.loads(await f.read())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("ファイルの読み込みに失敗しました %s: %s", file_path, e)
                continue
            if document.get("userId") == user_id and document.get("status") == "completed":
                documents.append(document)

        documents.sort(key=lambda d: d.get("endTime") or 0, reverse=True)
        return documents[offset:offset + limit], len(documents)
