"""
OpenAI APIサービス
ヒューリスティック採点の代わりにLLMで発話を5技能採点する
"""

import os
import json
from typing import Any, Dict, List

from openai import AsyncOpenAI

from app.config import SETTINGS
from app.models.errors import ProviderError
from app.models.schemas import SKILLS, SpeakingScores


class OpenAIService:
    """OpenAI APIを使用する採点サービスクラス"""

    def __init__(self) -> None:
        """
        初期化処理
        環境変数からAPIキーを取得し、OpenAIクライアントを初期化する
        """
        # OPENAI_API_KEYまたはOPENAI_APIのどちらかをサポート
        api_key: str | None = os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_API")
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEYまたはOPENAI_API環境変数が設定されていません"
            )
        self.client: AsyncOpenAI = AsyncOpenAI(api_key=api_key)
        self.model: str = os.getenv("OPENAI_MODEL", SETTINGS.openai_model)

    async def evaluate_turn(self, text: str, language: str, difficulty: str) -> Dict[str, Any]:
        """
        1つの発話を5技能で評価

        Args:
            text: 受験者の発話（書き起こし）
            language: 対象言語
            difficulty: テストの難易度

        Returns:
            評価結果を含む辞書（失敗時は"error"キーを含む）
        """
        prompt: str = f"""
        あなたは厳格な{language}スピーキング試験の評価官です。難易度は{difficulty}です。
        以下の受験者の発話を、発音・流暢さ・文法・語彙・一貫性の5観点でそれぞれ0-100点で評価してください。
        書き起こしから推測できる範囲で評価し、短すぎる発話や意味をなさない発話は低く評価してください。

        発話：
        {text}

        評価結果を以下のJSON形式で返してください：
        {{
            "pronunciation": 0-100,
            "fluency": 0-100,
            "grammar": 0-100,
            "vocabulary": 0-100,
            "coherence": 0-100,
            "feedback": "Short feedback in English",
            "suggestions": ["Improvement suggestion in English"]
        }}
        """

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": "You are a language speaking test evaluation expert. Always respond in valid JSON format.",
                    },
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},  # JSON形式で返すことを強制
            )
            content: str | None = response.choices[0].message.content
            if not content:
                return {"error": "レスポンスが空"}
            try:
                evaluation_data: Dict[str, Any] = json.loads(content)
            except json.JSONDecodeError:
                return {"error": "JSON解析エラー"}
            result: Dict[str, Any] = {skill: evaluation_data.get(skill, 0) for skill in SKILLS}
            result["feedback"] = evaluation_data.get("feedback", "")
            result["suggestions"] = evaluation_data.get("suggestions", [])
            return result
        except Exception as e:
            return {"error": str(e)}

    async def assess(
        self, text: str, language: str = "English", difficulty: str = "intermediate"
    ) -> tuple[SpeakingScores, str, List[str]]:
        """
        採点・フィードバック・提案をまとめて返す

        Raises:
            ProviderError: APIの呼び出しまたは応答の解析に失敗した場合
        """
        result: Dict[str, Any] = await self.evaluate_turn(text, language, difficulty)
        if "error" in result:
            raise ProviderError(f"OpenAIによる採点に失敗しました: {result['error']}")
        try:
            scores = SpeakingScores(**{skill: result[skill] for skill in SKILLS})
        except (TypeError, ValueError) as e:
            raise ProviderError(f"OpenAIの採点結果が不正です: {e}") from e
        suggestions: Any = result.get("suggestions") or []
        if not isinstance(suggestions, list):
            suggestions = [str(suggestions)]
        return scores, str(result.get("feedback") or ""), [str(s) for s in suggestions]
