"""Tests for the command-line interface."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from menupub.app import cli


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(
        '[app]\ntenant = "resto"\n\n[paths]\ndata_dir = "data"\n\n[store]\nmax_batch_size = 2\n',
        encoding="utf-8",
    )
    return path


def _run(config_path: Path, *argv: str) -> int:
    return cli.main(["--config", str(config_path), "--log-plain", *argv])


def _show(config_path: Path, capsys: pytest.CaptureFixture[str]) -> list[dict]:
    capsys.readouterr()
    assert _run(config_path, "catalog", "show", "--format", "json") == 0
    return json.loads(capsys.readouterr().out)


def test_stage_and_publish_round_trip(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    photo = tmp_path / "soup.jpg"
    photo.write_bytes(b"jpeg")

    assert _run(
        config_path, "stage", "add", "--name", "Soup", "--section", "Starters",
        "--price", "80", "--diet", "veg", "--image", str(photo),
    ) == 0
    local_id = capsys.readouterr().out.strip()
    assert local_id.startswith("local-")
    assert (tmp_path / "data" / "state" / "drafts" / "resto.json").exists()

    rows = _show(config_path, capsys)
    assert [(row["id"], row["status"]) for row in rows] == [(local_id, "new")]

    assert _run(config_path, "publish", "--yes") == 0
    result = json.loads(capsys.readouterr().out.split("\n", 1)[1])
    assert result["created"] == 1

    rows = _show(config_path, capsys)
    assert len(rows) == 1
    assert rows[0]["status"] == "published"
    assert rows[0]["name"] == "Soup"
    assert rows[0]["image"].startswith("file://")
    assert not (tmp_path / "data" / "state" / "drafts" / "resto.json").exists()


def test_edit_delete_and_undo(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run(config_path, "stage", "add", "--name", "Tea", "--section", "Drinks", "--price", "20")
    _run(config_path, "publish", "--yes")
    item_id = _show(config_path, capsys)[0]["id"]

    assert _run(config_path, "stage", "edit", item_id, "--price", "25", "--special") == 0
    assert _run(config_path, "stage", "delete", item_id) == 0
    rows = _show(config_path, capsys)
    assert rows[0]["status"] == "pending_delete"

    assert _run(config_path, "stage", "undo", item_id) == 0
    rows = _show(config_path, capsys)
    assert rows[0]["status"] == "modified"
    assert rows[0]["price"] == "25"
    assert rows[0]["is_todays_special"] is True


def test_unknown_item_exits_with_usage_error(config_path: Path) -> None:
    assert _run(config_path, "stage", "delete", "does-not-exist") == 2


def test_import_reports_row_errors(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    csv_path = tmp_path / "menu.csv"
    csv_path.write_text("name,section,price\nSoup,,12\n", encoding="utf-8")

    assert _run(config_path, "stage", "import", str(csv_path)) == 2
    assert 'Row 2: "section" is required' in capsys.readouterr().err


def test_dry_run_lists_batches(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    for name in ("A", "B", "C"):
        _run(config_path, "stage", "add", "--name", name, "--section", "Mains", "--price", "10")
    capsys.readouterr()

    assert _run(config_path, "publish", "--dry-run") == 0

    lines = capsys.readouterr().out.strip().splitlines()
    assert [line.split(":", 1)[0] for line in lines] == ["batch 0", "batch 1"]
    assert lines[0].count("new:local-") == 2


def test_publish_prompt_can_be_declined(
    config_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    _run(config_path, "stage", "add", "--name", "Soup", "--section", "Mains", "--price", "10")
    monkeypatch.setattr("builtins.input", lambda _prompt: "n")

    assert _run(config_path, "publish") == 1
    assert "Publish aborted" in capsys.readouterr().out
    assert len(_show(config_path, capsys)) == 1


def test_publish_with_nothing_staged(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(config_path, "publish", "--yes") == 0
    assert "Nothing to publish" in capsys.readouterr().out


def test_discard_drops_staged_edits(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run(config_path, "stage", "add", "--name", "Soup", "--section", "Mains", "--price", "10")

    assert _run(config_path, "stage", "discard") == 0
    assert "Discarded 1" in capsys.readouterr().out
    assert _show(config_path, capsys) == []


def test_price_and_level_parsers() -> None:
    assert str(cli._price("12.50")) == "12.50"
    assert cli._level("3") == 3
    with pytest.raises(argparse.ArgumentTypeError):
        cli._price("free")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._price("-1")
    with pytest.raises(argparse.ArgumentTypeError):
        cli._level("6")


def test_missing_command_prints_help(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main([]) == 1
    assert "usage: menupub" in capsys.readouterr().err


def test_unreadable_catalog_reports_error(
    config_path: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    catalog = tmp_path / "data" / "catalog" / "resto.json"
    catalog.parent.mkdir(parents=True, exist_ok=True)
    catalog.write_text("{not json", encoding="utf-8")

    assert _run(config_path, "catalog", "show") == 1
    assert "Failed to read catalog file" in capsys.readouterr().err


def test_missing_config_file_is_a_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(tmp_path / "missing.toml", "catalog", "show") == 2
    assert "Config file not found" in capsys.readouterr().err


def test_diff_reports_pending_count(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _run(config_path, "stage", "add", "--name", "Soup", "--section", "Mains", "--price", "10")
    capsys.readouterr()

    assert _run(config_path, "stage", "diff", "--format", "json") == 0
    summary = json.loads(capsys.readouterr().out)["summary"]
    assert summary["pending"] == 1
    assert summary["new"] == 1
