import asyncio
import json

from kdp_insights import importer
from kdp_insights.main import ConsolePrompter, main
from kdp_insights.reconciler import UnmatchedTitle

from conftest import COZY_CSV, make_book


def run_cli(tmp_path, *args):
    return main(["--state", str(tmp_path / "state.json"), *args])


def test_add_book_import_and_analytics(tmp_path, capsys):
    report = tmp_path / "kdp.csv"
    report.write_bytes(COZY_CSV)

    assert run_cli(tmp_path, "add-book", "--title", "Cozy Mysteries Vol 1", "--niche", "Mystery",
                   "--publish-date", "2023-01-01", "--design-cost", "100") == 0
    assert run_cli(tmp_path, "import", str(report)) == 0
    assert "Jan 2024 imported - 1 books updated" in capsys.readouterr().out

    assert run_cli(tmp_path, "import", str(report)) == 1
    assert "already imported" in capsys.readouterr().err

    assert run_cli(tmp_path, "analytics") == 0
    result = json.loads(capsys.readouterr().out)
    assert result["overview"]["lifetime_revenue"] == 152.5
    assert result["overview"]["best_niche"] == "Mystery"


def test_auto_create_import(tmp_path, capsys):
    report = tmp_path / "kdp.csv"
    report.write_bytes(COZY_CSV)
    assert run_cli(tmp_path, "import", str(report), "--auto-create", "--niche", "Cozy") == 0
    capsys.readouterr()
    assert run_cli(tmp_path, "books") == 0
    out = capsys.readouterr().out
    assert "Cozy Mysteries Vol 1" in out
    assert "Cozy: 1" in out


def test_validation_error_is_reported(tmp_path, capsys):
    assert run_cli(tmp_path, "add-book", "--title", "X", "--niche", " ", "--publish-date", "2024-01-01") == 1
    assert "required book fields" in capsys.readouterr().err


def test_reset_requires_confirmation(tmp_path):
    assert run_cli(tmp_path, "reset") == 1
    assert run_cli(tmp_path, "reset", "--yes") == 0


def test_console_prompter_answers():
    answers = iter(["", "1"])
    prompter = ConsolePrompter(input_func=lambda prompt: next(answers))
    unmatched = [UnmatchedTitle("new one", "New One"), UnmatchedTitle("gr8", "Gr8")]
    books = [make_book("b1", "Great")]
    assert asyncio.run(prompter.resolve(unmatched, books)) == {"new one": "New One", "gr8": "Great"}


def test_console_prompter_cancel():
    prompter = ConsolePrompter(input_func=lambda prompt: "q")
    assert asyncio.run(prompter.resolve([UnmatchedTitle("x", "X")], [])) is None


def test_import_with_overflowing_month_keeps_cli_usable(tmp_path, capsys):
    report = tmp_path / "odd.csv"
    report.write_bytes(b"Title,Date,Royalty\nBook A,2024-13-01,10\n")

    assert run_cli(tmp_path, "import", str(report), "--auto-create") == 0
    assert "Jan 2025 imported - 1 books updated" in capsys.readouterr().out

    assert run_cli(tmp_path, "analytics") == 0
    result = json.loads(capsys.readouterr().out)
    assert result["monthly_trend"][0]["label"] == "Jan 2025"


def test_import_not_saved_when_message_fails(tmp_path, monkeypatch, capsys):
    report = tmp_path / "kdp.csv"
    report.write_bytes(COZY_CSV)

    def broken_label(month_key):
        raise ValueError("bad month")

    monkeypatch.setattr(importer, "month_label", broken_label)
    assert run_cli(tmp_path, "import", str(report), "--auto-create") == 1
    assert not (tmp_path / "state.json").exists()

    monkeypatch.undo()
    assert run_cli(tmp_path, "import", str(report), "--auto-create") == 0
