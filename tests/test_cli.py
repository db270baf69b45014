"""Tests for the modelvault CLI."""

from __future__ import annotations

import os
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from modelvault import __version__
from modelvault.cli import main


def _touch(path, size: int = 16) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return str(path)


@pytest.fixture
def home(tmp_path):
    return tmp_path / "vault"


@pytest.fixture
def invoke(home):
    runner = CliRunner()

    def _invoke(*args, **kwargs):
        return runner.invoke(main, list(args), env={"MODELVAULT_HOME": str(home)}, **kwargs)

    return _invoke


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestMain:
    def test_help_lists_command_groups(self, invoke):
        result = invoke("--help")
        assert result.exit_code == 0
        for name in ("models", "engine", "storage"):
            assert name in result.output

    def test_version(self, invoke):
        result = invoke("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_bad_environment(self, home):
        result = CliRunner().invoke(
            main,
            ["models", "list"],
            env={"MODELVAULT_HOME": str(home), "MODELVAULT_STALE_HOURS": "later"},
        )
        assert result.exit_code == 1
        assert "MODELVAULT_STALE_HOURS" in result.output


# ---------------------------------------------------------------------------
# models
# ---------------------------------------------------------------------------


class TestModelsCommands:
    def test_list_empty(self, invoke, home):
        result = invoke("models", "list")
        assert result.exit_code == 0, result.output
        assert "No models stored." in result.output
        assert (home / "models").is_dir()

    def test_list_picks_up_files_on_first_run(self, invoke, home):
        _touch(home / "models" / "qwen2.5-0.5b.gguf", 2048)
        _touch(home / "models" / "llava-7b.gguf", 1024)

        result = invoke("models", "list")

        assert result.exit_code == 0, result.output
        assert "qwen2.5-0.5b.gguf" in result.output
        assert "2.0 KB" in result.output
        assert "vision" in result.output

    def test_import_then_list(self, invoke, tmp_path):
        source = _touch(tmp_path / "downloads" / "phi-3.gguf")

        imported = invoke("models", "import", source)
        listed = invoke("models", "list")

        assert imported.exit_code == 0, imported.output
        assert "Imported phi-3.gguf" in imported.output
        assert "external" in listed.output

    def test_import_with_name(self, invoke, home, tmp_path):
        source = _touch(tmp_path / "downloads" / "model.bin.gguf")

        result = invoke("models", "import", source, "--name", "renamed.gguf")

        assert result.exit_code == 0, result.output
        assert (home / "models" / "renamed.gguf").exists()

    def test_import_missing_source(self, invoke, tmp_path):
        result = invoke("models", "import", str(tmp_path / "nope.gguf"))
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_import_twice_conflicts(self, invoke, tmp_path):
        source = _touch(tmp_path / "downloads" / "a.gguf")
        invoke("models", "import", source)

        result = invoke("models", "import", source)

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_rm_removes_companion(self, invoke, home):
        _touch(home / "models" / "a.gguf")
        _touch(home / "models" / "a-mmproj-f16.gguf")

        result = invoke("models", "rm", "a.gguf")

        assert result.exit_code == 0, result.output
        assert "Removed a.gguf" in result.output
        assert "Removed a-mmproj-f16.gguf" in result.output
        assert os.listdir(home / "models") == []

    def test_rm_unknown(self, invoke):
        result = invoke("models", "rm", "ghost.gguf")
        assert result.exit_code == 0
        assert "was not in the catalog" in result.output

    def test_export(self, invoke, home):
        _touch(home / "models" / "a.gguf", 100)

        result = invoke("models", "export", "a.gguf")

        assert result.exit_code == 0, result.output
        assert (home / "cache" / "export" / "a.gguf").stat().st_size == 100

    def test_export_missing(self, invoke):
        result = invoke("models", "export", "ghost.gguf")
        assert result.exit_code == 1

    def test_scan_and_refresh(self, invoke, home):
        _touch(home / "models" / "early.gguf")
        invoke("models", "list")
        _touch(home / "models" / "late.gguf")

        refreshed = invoke("models", "refresh")
        again = invoke("models", "refresh")
        scanned = invoke("models", "scan")

        assert "Registered 1 new model(s)" in refreshed.output
        assert "late.gguf" in refreshed.output
        assert "Catalog is up to date." in again.output
        assert "Catalog rebuilt: 2 model(s)." in scanned.output

    def test_clear(self, invoke, home):
        _touch(home / "models" / "a.gguf")
        invoke("models", "list")

        result = invoke("models", "clear", "--yes")

        assert result.exit_code == 0
        assert "Catalog cleared." in result.output
        assert (home / "models" / "a.gguf").exists()

    def test_clear_asks_for_confirmation(self, invoke):
        result = invoke("models", "clear", input="n\n")
        assert result.exit_code == 1
        assert "Catalog cleared." not in result.output


# ---------------------------------------------------------------------------
# engine
# ---------------------------------------------------------------------------


class TestEngineCommands:
    def test_show_default(self, invoke):
        result = invoke("engine", "show")
        assert result.exit_code == 0, result.output
        assert "Engine: llama" in result.output
        assert "Embeddings" in result.output

    def test_use_persists(self, invoke):
        used = invoke("engine", "use", "mlx")
        shown = invoke("engine", "show")

        assert used.exit_code == 0, used.output
        assert "Inference engine set to mlx" in used.output
        assert "Restart" in used.output
        assert "Engine: mlx" in shown.output
        assert "No optional features." in shown.output

    def test_use_unknown(self, invoke):
        result = invoke("engine", "use", "tensorrt")
        assert result.exit_code == 1
        assert "Unknown engine 'tensorrt'" in result.output

    def test_features(self, invoke):
        result = invoke("engine", "features")
        assert result.exit_code == 0
        assert "llama" in result.output and "mlx" in result.output
        assert "DRY sampling" in result.output


# ---------------------------------------------------------------------------
# storage
# ---------------------------------------------------------------------------


class TestStorageCommands:
    def test_info(self, invoke, home):
        _touch(home / "models" / "a.gguf", 2048)
        psutil = MagicMock()
        psutil.disk_usage.return_value = SimpleNamespace(free=50 * 1024**3, total=100 * 1024**3)

        with patch.dict("sys.modules", {"psutil": psutil}):
            result = invoke("storage", "info")

        assert result.exit_code == 0, result.output
        assert "Used by models: 2.0 KB" in result.output
        assert "Free space:     50.0 GB" in result.output

    def test_info_without_disk_stats(self, invoke):
        with patch.dict("sys.modules", {"psutil": None}):
            result = invoke("storage", "info")
        assert result.exit_code == 0
        assert "unknown" in result.output

    def test_cleanup(self, invoke, home):
        _touch(home / "temp" / "broken.part", 0)
        _touch(home / "temp" / "active.part", 10)

        result = invoke("storage", "cleanup")

        assert result.exit_code == 0, result.output
        assert "Removed broken.part" in result.output
        assert os.listdir(home / "temp") == ["active.part"]

    def test_cleanup_nothing(self, invoke):
        result = invoke("storage", "cleanup")
        assert "Nothing to clean up." in result.output
