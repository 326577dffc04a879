"""
tests/test_cli.py
CLI entry point — analyze and list-models with stubbed backends.
"""

from typing import Optional
from unittest.mock import patch

import pytest

from callguard.cli import main
from callguard.config import ENV_OVERRIDES
from callguard.llm.base import ClassifierAdapter
from callguard.models.record import ScamAnalysis


class FixedClassifier(ClassifierAdapter):
    model = "fixed"

    def __init__(self, verdict: Optional[ScamAnalysis]):
        self.verdict = verdict

    def is_available(self) -> bool:
        return True

    async def analyze(self, text: str) -> Optional[ScamAnalysis]:
        return self.verdict


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


def _run(tmp_path, *args):
    return main(["--config-dir", str(tmp_path), *args])


def test_analyze_scam(tmp_path, capsys):
    verdict = ScamAnalysis(True, 90, "Digital arrest", ["CBI officer"], "Threatens arrest")
    with patch("callguard.cli.build_classifier", return_value=FixedClassifier(verdict)):
        code = _run(tmp_path, "analyze", "Main CBI se bol raha hoon, aap arrest honge")
    out = capsys.readouterr().out
    assert code == 0
    assert "SCAM" in out
    assert "BLOCK" in out
    assert "Digital arrest" in out


def test_analyze_benign(tmp_path, capsys):
    verdict = ScamAnalysis(False, 3, "none", [], "Family chat")
    with patch("callguard.cli.build_classifier", return_value=FixedClassifier(verdict)):
        code = _run(tmp_path, "analyze", "Beta, dinner pe kab aa rahe ho?")
    assert code == 0
    assert "OK" in capsys.readouterr().out


def test_analyze_classifier_down_prints_fallback(tmp_path, capsys):
    with patch("callguard.cli.build_classifier", return_value=FixedClassifier(None)):
        code = _run(tmp_path, "analyze", "Please verify your account details")
    out = capsys.readouterr().out
    assert code == 0
    assert "OK" in out
    assert "fallback" in out


def test_analyze_short_text(tmp_path, capsys):
    with patch("callguard.cli.build_classifier", return_value=FixedClassifier(None)):
        code = _run(tmp_path, "analyze", "OTP?")
    assert code == 1
    assert "too short" in capsys.readouterr().out


def test_bad_backend_is_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("CALLGUARD_BACKEND", "gemini")
    assert _run(tmp_path, "list-models") == 2


def test_list_models(tmp_path, capsys):
    with patch("callguard.llm.ollama_adapter.OllamaAdapter.list_available_models",
               return_value=["llama3.1:8b", "qwen2.5:7b"]):
        code = _run(tmp_path, "list-models")
    assert code == 0
    assert "qwen2.5:7b" in capsys.readouterr().out


def test_list_models_none_found(tmp_path):
    with patch("callguard.llm.ollama_adapter.OllamaAdapter.list_available_models",
               return_value=[]):
        assert _run(tmp_path, "list-models") == 1


def test_serve_uses_config_dir_not_cwd(tmp_path, monkeypatch):
    cwd = tmp_path / "cwd"
    good = tmp_path / "good"
    cwd.mkdir()
    good.mkdir()
    (cwd / "callguard_config.json").write_text('{"storage": "redis"}', encoding="utf-8")
    (good / "callguard_config.json").write_text('{"port": 9911}', encoding="utf-8")
    monkeypatch.chdir(cwd)

    with patch("uvicorn.run") as run:
        code = main(["--config-dir", str(good), "serve"])
    assert code == 0
    assert run.call_args.kwargs["port"] == 9911
    assert "/api/sessions/start" in {route.path for route in run.call_args[0][0].routes}
