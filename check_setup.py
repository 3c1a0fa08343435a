"""
セットアップ確認スクリプト
実行前に必要な依存関係がインストールされているか確認する
"""
import sys
from pathlib import Path


def check_imports() -> bool:
    """必要なモジュールのインポートを確認"""
    errors: list[str] = []

    # 外部ライブラリ（パッケージ名, インポート名）
    libraries: list[tuple[str, str]] = [
        ("python-dotenv", "dotenv"),
        ("pydantic", "pydantic"),
        ("pydantic-settings", "pydantic_settings"),
        ("httpx", "httpx"),
        ("aiofiles", "aiofiles"),
        ("openai", "openai"),
    ]
    for package, module in libraries:
        try:
            __import__(module)
            print(f"✓ {package}: OK")
        except ImportError:
            errors.append(f"{package} がインストールされていません。pip install {package} を実行してください。")

    # アプリケーションモジュール
    try:
        sys.path.insert(0, str(Path(__file__).parent))
        from app.config import APP_DATA_DIR
        from app.models.schemas import TestConfig, TestReport
        from app.services.session_service import SessionLifecycleManager
        print("✓ アプリケーションモジュール: OK")
    except ImportError as e:
        errors.append(f"アプリケーションモジュールのインポートエラー: {e}")

    if errors:
        print("\n❌ 以下の問題が見つかりました:")
        for error in errors:
            print(f"  - {error}")
        print("\n依存関係をインストールするには:")
        print("  pip install -e .")
        return False

    print("\n✓ 全ての依存関係が正しくインストールされています。")
    return True


def check_structure() -> bool:
    """プロジェクト構造を確認"""
    base_path = Path(__file__).parent
    required_files = [
        "main.py",
        "app/config.py",
        "app/models/schemas.py",
        "app/models/errors.py",
        "app/services/credit_service.py",
        "app/services/tavus_service.py",
        "app/services/context_service.py",
        "app/services/storage_service.py",
        "app/services/scoring.py",
        "app/services/evaluation_service.py",
        "app/services/report_service.py",
        "app/services/session_service.py",
    ]

    missing_files: list[str] = []
    for file_path in required_files:
        if not (base_path / file_path).exists():
            missing_files.append(file_path)

    if missing_files:
        print("❌ 以下のファイルが見つかりません:")
        for file_path in missing_files:
            print(f"  - {file_path}")
        return False

    print("✓ プロジェクト構造: OK")
    return True


if __name__ == "__main__":
    print("=== セットアップ確認 ===\n")

    structure_ok = check_structure()
    print()
    imports_ok = check_imports()

    print("\n" + "=" * 40)
    if structure_ok and imports_ok:
        print("✓ セットアップは完了しています。")
        print("\n実行方法:")
        print("  python main.py")
        sys.exit(0)
    else:
        print("❌ セットアップに問題があります。")
        print("\n依存関係をインストールするには:")
        print("  pip install -e .")
        sys.exit(1)
