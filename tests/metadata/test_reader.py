"""Tests for the synchronous metadata read through the dump tool."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from dcmview.config import get_config
from dcmview.metadata import MetadataReadError, read_metadata
from dcmview.metadata import reader as reader_module

FIXTURES = Path(__file__).resolve().parents[1] / "fixtures"


def test_read_metadata_invokes_dump_tool(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []
    payload = (FIXTURES / "image.xml").read_bytes()

    def fake_run(command, **kwargs):
        calls.append(command)
        assert kwargs["check"] is True
        return subprocess.CompletedProcess(command, 0, stdout=payload, stderr=b"")

    monkeypatch.setattr(reader_module.subprocess, "run", fake_run)
    source = tmp_path / "image.dcm"

    tree = read_metadata(source, get_config())

    assert calls == [
        [
            "dcm2xml",
            "--quiet",
            "--charset-assume",
            "latin-1",
            "--convert-to-utf8",
            str(source),
        ]
    ]
    assert tree.source == source
    assert tree.text("Modality") == "US"


def test_non_zero_exit_is_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command, output=b"", stderr=b"E: not a DICOM file")

    monkeypatch.setattr(reader_module.subprocess, "run", fake_run)

    with pytest.raises(MetadataReadError) as excinfo:
        read_metadata(tmp_path / "broken.dcm", get_config())

    assert "exit code 1" in str(excinfo.value)
    assert "not a DICOM file" in str(excinfo.value)


def test_missing_tool_is_reported(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(command, **kwargs):
        raise FileNotFoundError(command[0])

    monkeypatch.setattr(reader_module.subprocess, "run", fake_run)

    with pytest.raises(MetadataReadError):
        read_metadata(tmp_path / "image.dcm", get_config())


def test_unparseable_output_is_fatal(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(command, **kwargs):
        return subprocess.CompletedProcess(command, 0, stdout=b"not xml", stderr=b"")

    monkeypatch.setattr(reader_module.subprocess, "run", fake_run)

    with pytest.raises(MetadataReadError):
        read_metadata(tmp_path / "image.dcm", get_config())


def test_unrunnable_tool_is_reported(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(command, **kwargs):
        raise PermissionError(13, "Permission denied", command[0])

    monkeypatch.setattr(reader_module.subprocess, "run", fake_run)

    with pytest.raises(MetadataReadError) as excinfo:
        read_metadata(tmp_path / "image.dcm", get_config())

    assert "Permission denied" in str(excinfo.value)
