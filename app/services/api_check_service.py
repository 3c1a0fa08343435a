"""
API接続チェックサービス
会話プロバイダーと採点用LLM APIの接続状態をチェックする
"""
import os
from typing import Dict, List

from openai import AsyncOpenAI

from app.models.errors import ProviderError
from app.services.tavus_service import TavusService


class APICheckService:
    """API接続状態をチェックするサービスクラス"""

    async def check_openai_api(self) -> Dict[str, str]:
        """
        OpenAI APIの接続状態をチェック（SCORER=openaiの場合に使用）

        Returns:
            API名と状態を含む辞書
        """
        # OPENAI_API_KEYまたはOPENAI_APIのどちらかをサポート
        api_key: str | None = os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API")

        if not api_key:
            return {
                "name": "OpenAI API",
                "status": "不明",
                "message": "APIキーが設定されていません"
            }

        client = AsyncOpenAI(api_key=api_key)
        try:
            await client.models.list()
        except Exception as e:
            return {
                "name": "OpenAI API",
                "status": "エラー",
                "message": f"API接続エラー: {str(e)}"
            }
        return {
            "name": "OpenAI API",
            "status": "利用可能",
            "message": "APIキーが有効です"
        }

    async def check_tavus_api(self) -> Dict[str, str]:
        """
        Tavus CVI APIの接続状態をチェック

        Returns:
            API名と状態を含む辞書
        """
        api_key: str | None = os.getenv("TAVUS_API_KEY")

        if not api_key:
            return {
                "name": "Tavus CVI API",
                "status": "不明",
                "message": "APIキーが設定されていません"
            }

        service = TavusService(api_key=api_key)
        try:
            replicas = await service.list_replicas()
        except ProviderError as e:
            return {
                "name": "Tavus CVI API",
                "status": "エラー",
                "message": f"API接続エラー: {str(e)}"
            }
        finally:
            await service.aclose()
        return {
            "name": "Tavus CVI API",
            "status": "利用可能",
            "message": f"APIキーが有効です（レプリカ数: {len(replicas)}）"
        }

    async def check_all_apis(self) -> List[Dict[str, str]]:
        """
        全てのAPIの接続状態をチェック

        Returns:
            API状態のリスト
        """
        results: List[Dict[str, str]] = []

        # Tavus CVI APIのチェック
        results.append(await self.check_tavus_api())

        # OpenAI APIのチェック
        results.append(await self.check_openai_api())

        return results
