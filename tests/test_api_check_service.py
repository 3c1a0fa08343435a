"""
APICheckServiceのテスト
"""
import pytest
import os
from unittest.mock import patch, Mock, AsyncMock
from app.models.errors import ProviderError
from app.services.api_check_service import APICheckService


class TestAPICheckService:
    """APICheckServiceのテストクラス"""

    @pytest.fixture
    def api_check_service(self):
        """APICheckServiceのインスタンスを作成"""
        return APICheckService()

    @pytest.mark.asyncio
    @patch.dict(os.environ, {}, clear=True)
    async def test_check_openai_api_no_key(self, api_check_service):
        """APIキーが設定されていない場合のテスト"""
        result = await api_check_service.check_openai_api()

        assert result["name"] == "OpenAI API"
        assert result["status"] == "不明"
        assert "APIキーが設定されていません" in result["message"]

    @pytest.mark.asyncio
    @patch.dict(os.environ, {"OPENAI_API_KEY": "test_key"})
    @patch('app.services.api_check_service.AsyncOpenAI')
    async def test_check_openai_api_success(self, mock_openai, api_check_service):
        """OpenAI API接続成功のテスト"""
        mock_client = Mock()
        mock_client.models.list = AsyncMock(return_value=[])
        mock_openai.return_value = mock_client

        result = await api_check_service.check_openai_api()

        assert result["name"] == "OpenAI API"
        assert result["status"] == "利用可能"
        assert "APIキーが有効です" in result["message"]

    @pytest.mark.asyncio
    @patch.dict(os.environ, {"OPENAI_API_KEY": "test_key"})
    @patch('app.services.api_check_service.AsyncOpenAI')
    async def test_check_openai_api_error(self, mock_openai, api_check_service):
        """OpenAI API接続エラーのテスト"""
        mock_client = Mock()
        mock_client.models.list = AsyncMock(side_effect=Exception("Connection error"))
        mock_openai.return_value = mock_client

        result = await api_check_service.check_openai_api()

        assert result["name"] == "OpenAI API"
        assert result["status"] == "エラー"
        assert "API接続エラー" in result["message"]

    @pytest.mark.asyncio
    @patch.dict(os.environ, {}, clear=True)
    async def test_check_tavus_api_no_key(self, api_check_service):
        """Tavus APIキーが設定されていない場合のテスト"""
        result = await api_check_service.check_tavus_api()

        assert result["name"] == "Tavus CVI API"
        assert result["status"] == "不明"
        assert "APIキーが設定されていません" in result["message"]

    @pytest.mark.asyncio
    @patch.dict(os.environ, {"TAVUS_API_KEY": "test_key"})
    @patch('app.services.api_check_service.TavusService')
    async def test_check_tavus_api_success(self, mock_tavus, api_check_service):
        """Tavus API接続成功のテスト"""
        mock_service = Mock()
        mock_service.list_replicas = AsyncMock(return_value=[{"replica_id": "r1"}])
        mock_service.aclose = AsyncMock()
        mock_tavus.return_value = mock_service

        result = await api_check_service.check_tavus_api()

        assert result["status"] == "利用可能"
        assert "レプリカ数: 1" in result["message"]
        mock_tavus.assert_called_once_with(api_key="test_key")
        mock_service.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    @patch.dict(os.environ, {"TAVUS_API_KEY": "test_key"})
    @patch('app.services.api_check_service.TavusService')
    async def test_check_tavus_api_error(self, mock_tavus, api_check_service):
        """Tavus API接続エラーのテスト"""
        mock_service = Mock()
        mock_service.list_replicas = AsyncMock(side_effect=ProviderError("401 Unauthorized", status_code=401))
        mock_service.aclose = AsyncMock()
        mock_tavus.return_value = mock_service

        result = await api_check_service.check_tavus_api()

        assert result["status"] == "エラー"
        assert "401" in result["message"]
        mock_service.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    @patch.object(APICheckService, 'check_openai_api', new_callable=AsyncMock)
    @patch.object(APICheckService, 'check_tavus_api', new_callable=AsyncMock)
    async def test_check_all_apis(self, mock_tavus, mock_openai, api_check_service):
        """すべてのAPIチェックのテスト"""
        mock_openai.return_value = {"name": "OpenAI API", "status": "利用可能"}
        mock_tavus.return_value = {"name": "Tavus CVI API", "status": "利用可能"}

        results = await api_check_service.check_all_apis()

        assert len(results) == 2
        assert results[0]["name"] == "Tavus CVI API"
        assert mock_openai.called
        assert mock_tavus.called
