from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from labreport import main

runner = CliRunner()


@pytest.fixture(autouse=True)
def quiet_logging() -> Generator[None, None, None]:
    with patch.object(main.Log, "configure"):
        yield


@pytest.fixture
def report_path(tmp_path: Path, sample_pdf_bytes: bytes) -> Path:
    path = tmp_path / "labs.pdf"
    path.write_bytes(sample_pdf_bytes)
    return path


class TestProcessCommand:
    def test_local_only_prints_biomarkers(
        self, report_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOCAL_OCR_ENGINE", "pdfplumber")

        result = runner.invoke(main.app, ["process", "--local-only", "--analytics", str(report_path)])

        assert result.exit_code == 0, result.output
        assert "Glucose" in result.output
        assert "labs.pdf" in result.output
        assert "Recommended method" in result.output

    def test_missing_file_is_rejected(self, tmp_path: Path) -> None:
        result = runner.invoke(main.app, ["process", str(tmp_path / "missing.pdf")])

        assert result.exit_code != 0


class TestUploadCommand:
    def test_unknown_priority_is_rejected(self, report_path: Path) -> None:
        result = runner.invoke(main.app, ["upload", "--priority", "urgent", str(report_path)])

        assert result.exit_code != 0

    def test_oversized_file_is_reported_not_raised(
        self, report_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("BACKGROUND_MAX_FILE_SIZE_BYTES", "100")

        result = runner.invoke(main.app, ["upload", str(report_path)])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Rejected labs.pdf" in result.output
