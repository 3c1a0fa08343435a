"""
Tavus CVI（Conversational Video Interface）サービス
アバター試験官とのリアルタイム会話を作成・取得・終了する
"""
import logging
from datetime import datetime
from typing import Any, Dict

import httpx

from app.config import SETTINGS
from app.models.errors import ProviderError
from app.models.schemas import ConversationHandle

logger = logging.getLogger(__name__)


class TavusService:
    """Tavus CVI APIを使用するサービスクラス"""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        初期化処理
        環境変数からAPIキーを取得し、HTTPクライアントを初期化する

        Args:
            api_key: Tavus APIキー（指定しない場合はTAVUS_API_KEY）
            base_url: APIのベースURL
            timeout: タイムアウト秒数
            client: 差し替え用のHTTPクライアント
        """
        self.api_key: str | None = api_key or SETTINGS.tavus_api_key
        if not self.api_key:
            raise ValueError("TAVUS_API_KEY環境変数が設定されていません")
        self.base_url: str = (base_url or SETTINGS.tavus_base_url).rstrip("/")
        self.default_replica_id: str = SETTINGS.tavus_replica_id
        self.default_persona_id: str = SETTINGS.tavus_persona_id
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            timeout=timeout or SETTINGS.tavus_timeout
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-api-key": self.api_key or ""}

    async def _request(self, method: str, path: str, payload: Dict[str, Any] | None = None) -> httpx.Response:
        """APIを呼び出し、通信エラーと2xx以外の応答をProviderErrorに変換する"""
        try:
            response: httpx.Response = await self.client.request(
                method, f"{self.base_url}{path}", headers=self.headers, json=payload
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderError(f"Tavus APIがタイムアウトしました: {path}") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "Tavus APIエラー: status=%s body=%s", e.response.status_code, e.response.text
            )
            raise ProviderError(
                f"Tavus APIエラー: {e.response.status_code} {e.response.reason_phrase}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Tavus APIに接続できません: {e}") from e
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        """応答本文をJSONとして読む（JSONでなければProviderError）"""
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("Tavus APIの応答がJSONではありません") from e

    @staticmethod
    def _to_handle(data: Any) -> ConversationHandle:
        if not isinstance(data, dict):
            raise ProviderError("Tavus APIの応答の形式が不正です")
        conversation_id: str | None = data.get("conversation_id")
        conversation_url: str | None = data.get("conversation_url")
        if not conversation_id or not conversation_url:
            raise ProviderError("Tavus APIの応答に会話IDまたはURLが含まれていません")
        return ConversationHandle(
            conversation_id=conversation_id,
            conversation_url=conversation_url,
            daily_room_url=data.get("daily_room_url"),
            status=data.get("status") or "created",
            created_at=data.get("created_at") or datetime.now().isoformat(),
        )

    async def open_conversation(
        self,
        context_text: str,
        avatar_selectors: Dict[str, Any] | None = None,
    ) -> ConversationHandle:
        """
        新しい会話を作成

        Args:
            context_text: 試験官に渡す会話コンテキスト
            avatar_selectors: replica_id, persona_id, conversation_name, language を指定可能

        Returns:
            会話ハンドル（会話IDと参加用URL）

        Raises:
            ProviderError: API呼び出しに失敗した場合（タイムアウトを含む）
        """
        selectors: Dict[str, Any] = avatar_selectors or {}
        payload: Dict[str, Any] = {
            "replica_id": selectors.get("replica_id") or self.default_replica_id,
            "persona_id": selectors.get("persona_id") or self.default_persona_id,
            "conversation_name": selectors.get("conversation_name") or "Language Test",
            "conversational_context": context_text,
            "properties": {
                "enable_recording": True,
                "language": selectors.get("language") or "English",
            },
        }
        response = await self._request("POST", "/conversations", payload)
        handle: ConversationHandle = self._to_handle(self._json(response))
        logger.info("Tavus会話を作成しました: %s", handle.conversation_id)
        return handle

    async def get_conversation(self, conversation_id: str) -> ConversationHandle:
        """会話の状態を取得"""
        response = await self._request("GET", f"/conversations/{conversation_id}")
        return self._to_handle(self._json(response))

    async def end_conversation(self, conversation_id: str) -> None:
        """会話を終了"""
        await self._request("POST", f"/conversations/{conversation_id}/end")
        logger.info("Tavus会話を終了しました: %s", conversation_id)

    async def list_replicas(self) -> list[Dict[str, Any]]:
        """利用可能なレプリカの一覧を取得（接続確認にも使用）"""
        response = await self._request("GET", "/replicas")
        data: Any = self._json(response)
        if isinstance(data, dict):
            return data.get("data", [])
        return data

    async def aclose(self) -> None:
        await self.client.aclose()
