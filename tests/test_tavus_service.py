"""
TavusServiceのテスト
"""
import json
from unittest.mock import patch

import httpx
import pytest

from app.models.errors import ProviderError
from app.services.tavus_service import TavusService


def make_service(handler) -> TavusService:
    """MockTransportで応答を差し替えたサービスを作成"""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TavusService(api_key="test_key", base_url="https://tavus.test/v2", client=client)


class TestTavusService:
    """TavusServiceのテストクラス"""

    def test_init_failure_no_key(self):
        """APIキーが設定されていない場合の初期化失敗テスト"""
        with patch("app.services.tavus_service.SETTINGS") as mock_settings:
            mock_settings.tavus_api_key = None
            with pytest.raises(ValueError, match="TAVUS_API_KEY環境変数が設定されていません"):
                TavusService()

    @pytest.mark.asyncio
    async def test_open_conversation(self):
        """会話作成のリクエストと応答"""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "conversation_id": "c123",
                    "conversation_url": "https://tavus.daily.co/c123",
                    "status": "active",
                },
            )

        service = make_service(handler)
        handle = await service.open_conversation(
            "context text",
            {"conversation_name": "English Test", "language": "English", "replica_id": "r-custom"},
        )

        assert handle.conversation_id == "c123"
        assert handle.conversation_url == "https://tavus.daily.co/c123"
        assert handle.status == "active"

        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://tavus.test/v2/conversations"
        assert request.headers["x-api-key"] == "test_key"
        payload = json.loads(request.content)
        assert payload["replica_id"] == "r-custom"
        assert payload["persona_id"] == service.default_persona_id
        assert payload["conversational_context"] == "context text"
        assert payload["properties"] == {"enable_recording": True, "language": "English"}
        await service.aclose()

    @pytest.mark.asyncio
    async def test_open_conversation_http_error(self):
        """2xx以外の応答はProviderError"""
        service = make_service(lambda request: httpx.Response(500, json={"error": "boom"}))

        with pytest.raises(ProviderError) as exc_info:
            await service.open_conversation("context")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_open_conversation_timeout(self):
        """タイムアウトはProviderError"""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        service = make_service(handler)

        with pytest.raises(ProviderError, match="タイムアウト"):
            await service.open_conversation("context")

    @pytest.mark.asyncio
    async def test_open_conversation_connection_error(self):
        """接続エラーはProviderError"""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)

        with pytest.raises(ProviderError):
            await service.open_conversation("context")

    @pytest.mark.asyncio
    async def test_open_conversation_missing_url(self):
        """会話URLがない応答はProviderError"""
        service = make_service(lambda request: httpx.Response(200, json={"conversation_id": "c1"}))

        with pytest.raises(ProviderError):
            await service.open_conversation("context")

    @pytest.mark.asyncio
    async def test_get_and_end_conversation(self):
        """会話の取得と終了"""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={"conversation_id": "c1", "conversation_url": "https://x/c1", "status": "ended"},
                )
            return httpx.Response(200, json={})

        service = make_service(handler)
        handle = await service.get_conversation("c1")
        await service.end_conversation("c1")

        assert handle.status == "ended"
        assert requests[0].url.path == "/v2/conversations/c1"
        assert requests[1].method == "POST"
        assert requests[1].url.path == "/v2/conversations/c1/end"

    @pytest.mark.asyncio
    async def test_list_replicas(self):
        """レプリカ一覧の取得"""
        service = make_service(
            lambda request: httpx.Response(200, json={"data": [{"replica_id": "r1"}, {"replica_id": "r2"}]})
        )

        replicas = await service.list_replicas()

        assert len(replicas) == 2

    @pytest.mark.asyncio
    async def test_open_conversation_non_json_body(self):
        """2xxでもJSONでない応答はProviderError"""
        service = make_service(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        with pytest.raises(ProviderError, match="JSONではありません"):
            await service.open_conversation("context")

    @pytest.mark.asyncio
    async def test_get_conversation_non_object_body(self):
        """JSONがオブジェクトでない応答はProviderError"""
        service = make_service(lambda request: httpx.Response(200, json=["c1"]))

        with pytest.raises(ProviderError, match="形式が不正"):
            await service.get_conversation("c1")
