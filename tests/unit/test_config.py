"""Tests for service_ledger.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from service_ledger.config import (
    get_anthropic_api_key,
    get_database_url,
    get_document_base_url,
    get_document_store_path,
    get_extraction_timeout,
    get_llm_model,
)


class TestGetDatabaseUrl:
    """Tests for get_database_url()."""

    def test_url_present(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/ledger")
        assert get_database_url() == "postgresql://localhost/ledger"

    def test_url_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(ValueError, match="DATABASE_URL"):
            get_database_url()


class TestGetDocumentStorePath:
    """Tests for get_document_store_path()."""

    def test_default_is_absolute(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DOCUMENT_STORE_PATH", raising=False)
        path = get_document_store_path()
        assert path.is_absolute()
        assert path.parts[-2:] == ("data", "documents")

    def test_custom_path(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("DOCUMENT_STORE_PATH", str(tmp_path / "docs"))
        assert get_document_store_path() == (tmp_path / "docs").resolve()


class TestGetDocumentBaseUrl:
    """Tests for get_document_base_url()."""

    def test_unset_returns_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DOCUMENT_BASE_URL", raising=False)
        assert get_document_base_url() is None

    def test_empty_returns_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCUMENT_BASE_URL", "")
        assert get_document_base_url() is None

    def test_configured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DOCUMENT_BASE_URL", "https://files.example.com/docs")
        assert get_document_base_url() == "https://files.example.com/docs"


class TestGetAnthropicApiKey:
    """Tests for get_anthropic_api_key()."""

    def test_key_present(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test-key")
        assert get_anthropic_api_key() == "sk-ant-test-key"

    def test_key_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            get_anthropic_api_key()


class TestGetLlmModel:
    """Tests for get_llm_model()."""

    def test_default_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LLM_MODEL", raising=False)
        assert get_llm_model() == "claude-haiku-4-5-20251001"

    def test_custom_model(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LLM_MODEL", "claude-sonnet-4-20250514")
        assert get_llm_model() == "claude-sonnet-4-20250514"


class TestGetExtractionTimeout:
    """Tests for get_extraction_timeout()."""

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("EXTRACTION_TIMEOUT", raising=False)
        assert get_extraction_timeout() == 120.0

    def test_custom(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXTRACTION_TIMEOUT", "7.5")
        assert get_extraction_timeout() == 7.5

    def test_non_numeric_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXTRACTION_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="must be a number"):
            get_extraction_timeout()

    @pytest.mark.parametrize("value", ["0", "-3"])
    def test_non_positive_raises(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("EXTRACTION_TIMEOUT", value)
        with pytest.raises(ValueError, match="must be positive"):
            get_extraction_timeout()
