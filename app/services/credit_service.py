"""
クレジット台帳サービス
ユーザーごとのトークン残高を管理し、予約（差し引き）と補償（返金）を監査ログ付きで行う
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

import aiofiles

from app.config import APP_DATA_DIR, SETTINGS
from app.models.errors import InsufficientFunds, PersistenceError
from app.models.schemas import CreditResult, CreditTransaction

logger = logging.getLogger(__name__)


class CreditLedger:
    """トークン残高の台帳

    残高の確認と差し引きは同じロック内で行うため、同時に予約しても二重に消費されない。
    """

    def __init__(self, data_dir: Path | None = None, initial_balance: int | None = None) -> None:
        """
        初期化処理

        Args:
            data_dir: 台帳ファイルの保存先ディレクトリ
            initial_balance: 未登録ユーザーの初期残高
        """
        self.data_dir: Path = data_dir or APP_DATA_DIR / "credits"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.ledger_file: Path = self.data_dir / "ledger.json"
        self.initial_balance: int = (
            SETTINGS.initial_token_balance if initial_balance is None else initial_balance
        )
        self._lock: asyncio.Lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        if not self.ledger_file.exists():
            return {"balances": {}, "transactions": []}
        try:
            async with aiofiles.open(self.ledger_file, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"台帳の読み込みに失敗しました: {e}") from e

    async def _save(self, ledger: Dict[str, Any]) -> None:
        try:
            async with aiofiles.open(self.ledger_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(ledger, ensure_ascii=False, indent=2))
        except OSError as e:
            raise PersistenceError(f"台帳の保存に失敗しました: {e}") from e

    async def _apply(
        self, user_id: str, delta: int, transaction_type: str, description: str
    ) -> CreditResult:
        """残高に差分を適用し、取引を記録する（ロック取得済みで呼ぶこと）"""
        ledger: Dict[str, Any] = await self._load()
        old_balance: int = ledger["balances"].get(user_id, self.initial_balance)
        if old_balance + delta < 0:
            raise InsufficientFunds(old_balance, -delta)
        new_balance: int = old_balance + delta

        transaction = CreditTransaction(
            id=uuid.uuid4().hex,
            user_id=user_id,
            transaction_type=transaction_type,
            amount=abs(delta),
            description=description,
            old_balance=old_balance,
            new_balance=new_balance,
            timestamp=datetime.now(),
        )
        ledger["balances"][user_id] = new_balance
        ledger["transactions"].append(transaction.model_dump(mode="json", by_alias=True))
        await self._save(ledger)
        return CreditResult(
            user_id=user_id, old_balance=old_balance, new_balance=new_balance, amount=abs(delta)
        )

    async def get_balance(self, user_id: str) -> int:
        """現在の残高を取得"""
        ledger: Dict[str, Any] = await self._load()
        return ledger["balances"].get(user_id, self.initial_balance)

    async def reserve(self, user_id: str, amount: int, description: str) -> CreditResult:
        """
        残高からクレジットを予約（差し引き）する

        Args:
            user_id: ユーザーID
            amount: 差し引く量（正の整数）
            description: 監査ログに残す説明

        Returns:
            操作結果（新しい残高を含む）

        Raises:
            InsufficientFunds: 残高が不足している場合（残高は変更されない）
        """
        if amount <= 0:
            raise ValueError("amountは正の整数である必要があります")
        async with self._lock:
            result: CreditResult = await self._apply(user_id, -amount, "reserve", description)
        logger.info(
            "クレジットを予約しました: user=%s amount=%d balance=%d",
            user_id, amount, result.new_balance,
        )
        return result

    async def compensate(self, user_id: str, amount: int, description: str) -> CreditResult:
        """
        予約済みクレジットを返金する

        Args:
            user_id: ユーザーID
            amount: 返金する量（正の整数）
            description: 監査ログに残す説明

        Returns:
            操作結果（新しい残高を含む）
        """
        if amount <= 0:
            raise ValueError("amountは正の整数である必要があります")
        async with self._lock:
            result: CreditResult = await self._apply(user_id, amount, "refund", description)
        logger.info(
            "クレジットを返金しました: user=%s amount=%d balance=%d",
            user_id, amount, result.new_balance,
        )
        return result

    async def grant(self, user_id: str, amount: int, description: str = "Token purchase") -> CreditResult:
        """クレジットを付与する（購入・バウチャー）"""
        if amount <= 0:
            raise ValueError("amountは正の整数である必要があります")
        async with self._lock:
            return await self._apply(user_id, amount, "grant", description)

    async def list_transactions(self, user_id: str) -> List[CreditTransaction]:
        """ユーザーの取引履歴（古い順）を取得"""
        ledger: Dict[str, Any] = await self._load()
        return [
            CreditTransaction.model_validate(t)
            for t in ledger["transactions"]
            if t.get("userId") == user_id
        ]
