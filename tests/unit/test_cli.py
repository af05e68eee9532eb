"""Unit tests for the CLI entrypoint.

The pipeline entry points are patched out; these tests cover argument
handling, dry-run/live selection, typed confirmation, and exit codes.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from btc_import.__main__ import main
from btc_import.cleanup import EventDateCriterion, TempOrganizerCriterion, TempUserCriterion
from btc_import.exceptions import AccessError


def _no_input(prompt: str) -> str:
    raise AssertionError(f"unexpected prompt: {prompt}")


def _run(*failed_dates: str) -> MagicMock:
    """A finished import run with the given failed dates."""
    return MagicMock(failed_dates=list(failed_dates))


class TestImportCommand:
    """Tests for ``btc-import import``."""

    def test_dry_run_is_the_default(self, monkeypatch_env: dict[str, str]) -> None:
        run = _run()
        with (
            patch("btc_import.__main__.run_import", return_value=run) as mock_run,
            patch("btc_import.__main__.print_import_run") as mock_print,
        ):
            exit_code = main(["import", "--date", "2025-06-01"], input_fn=_no_input)

        assert exit_code == 0
        args, kwargs = mock_run.call_args
        assert args[1:] == (date(2025, 6, 1), date(2025, 6, 1))
        assert kwargs["dry_run"] is True
        mock_print.assert_called_once_with(run)

    def test_range_and_options_are_passed(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_import", return_value=_run()) as mock_run,
            patch("btc_import.__main__.print_import_run"),
        ):
            exit_code = main(
                [
                    "import",
                    "--start",
                    "2025-06-01",
                    "--end",
                    "2025-06-07",
                    "--update-existing",
                    "--use-default-organizer",
                    "--min-resolution-rate",
                    "0.8",
                ]
            )

        assert exit_code == 0
        args, kwargs = mock_run.call_args
        assert args[1:] == (date(2025, 6, 1), date(2025, 6, 7))
        assert kwargs["update_existing"] is True
        assert kwargs["use_default_organizer"] is True
        assert kwargs["use_placeholder_venue"] is False
        assert kwargs["thresholds"].minimum_resolution_rate == 0.8
        assert kwargs["thresholds"].minimum_validation_rate == 0.95

    def test_failed_date_exits_1(self, monkeypatch_env: dict[str, str]) -> None:
        run = _run("2025-06-02")
        with (
            patch("btc_import.__main__.run_import", return_value=run),
            patch("btc_import.__main__.print_import_run") as mock_print,
        ):
            exit_code = main(
                ["import", "--start", "2025-06-01", "--end", "2025-06-03"], input_fn=_no_input
            )

        assert exit_code == 1
        mock_print.assert_called_once_with(run)

    def test_live_with_confirm_skips_prompt(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_import", return_value=_run()) as mock_run,
            patch("btc_import.__main__.print_import_run"),
        ):
            exit_code = main(["import", "--date", "2025-06-01", "--live", "--confirm"], _no_input)

        assert exit_code == 0
        assert mock_run.call_args.kwargs["dry_run"] is False

    def test_dry_run_env_false_means_live(
        self, monkeypatch_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DRY_RUN", "false")
        with (
            patch("btc_import.__main__.run_import", return_value=_run()) as mock_run,
            patch("btc_import.__main__.print_import_run"),
        ):
            main(["import", "--date", "2025-06-01"], input_fn=lambda _prompt: "CONFIRM")

        assert mock_run.call_args.kwargs["dry_run"] is False

    def test_dry_run_flag_overrides_env(
        self, monkeypatch_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("DRY_RUN", "false")
        with (
            patch("btc_import.__main__.run_import", return_value=_run()) as mock_run,
            patch("btc_import.__main__.print_import_run"),
        ):
            main(["import", "--date", "2025-06-01", "--dry-run"], input_fn=_no_input)

        assert mock_run.call_args.kwargs["dry_run"] is True

    def test_wrong_phrase_cancels(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch("btc_import.__main__.run_import") as mock_run:
            exit_code = main(["import", "--date", "2025-06-01", "--live"], lambda _prompt: "yes")

        assert exit_code == 0
        mock_run.assert_not_called()
        assert "Operation cancelled" in capsys.readouterr().out

    def test_eof_at_prompt_exits_130(self, monkeypatch_env: dict[str, str]) -> None:
        def eof(_prompt: str) -> str:
            raise EOFError

        with patch("btc_import.__main__.run_import") as mock_run:
            exit_code = main(["import", "--date", "2025-06-01", "--live"], eof)

        assert exit_code == 130
        mock_run.assert_not_called()

    def test_bad_date_exits_1(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch("btc_import.__main__.run_import") as mock_run:
            exit_code = main(["import", "--date", "06/01/2025"])

        assert exit_code == 1
        mock_run.assert_not_called()
        assert "Error: --date must use YYYY-MM-DD" in capsys.readouterr().err

    def test_date_and_range_together_exits_1(self, monkeypatch_env: dict[str, str]) -> None:
        with patch("btc_import.__main__.run_import") as mock_run:
            exit_code = main(["import", "--date", "2025-06-01", "--start", "2025-06-01"])

        assert exit_code == 1
        mock_run.assert_not_called()

    def test_threshold_out_of_range_exits_1(self, monkeypatch_env: dict[str, str]) -> None:
        with patch("btc_import.__main__.run_import") as mock_run:
            exit_code = main(["import", "--date", "2025-06-01", "--min-overall-rate", "85"])

        assert exit_code == 1
        mock_run.assert_not_called()

    def test_fatal_access_error_exits_1(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch(
            "btc_import.__main__.run_import", side_effect=AccessError("All access methods failed")
        ):
            exit_code = main(["import", "--date", "2025-06-01"])

        assert exit_code == 1
        assert "All access methods failed" in capsys.readouterr().err

    def test_missing_subcommand_exits_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == 2
        assert "usage" in capsys.readouterr().err.lower()

    def test_verbose_sets_debug_logging(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_import", return_value=_run()),
            patch("btc_import.__main__.print_import_run"),
            patch("btc_import.__main__.setup_logging") as mock_setup,
        ):
            main(["import", "--date", "2025-06-01", "-v"])

        assert mock_setup.call_args.args[0] == "DEBUG"


class TestCleanupCommand:
    """Tests for ``btc-import cleanup``."""

    def test_date_criterion(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_cleanup") as mock_cleanup,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            exit_code = main(["cleanup", "--date", "2025-06-01"], _no_input)

        assert exit_code == 0
        _settings, criterion, dry_run = mock_cleanup.call_args.args
        assert criterion == EventDateCriterion(date(2025, 6, 1))
        assert dry_run is True

    def test_target_date_env_is_used(
        self, monkeypatch_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TARGET_DATE", "2025-07-04")
        with (
            patch("btc_import.__main__.run_cleanup") as mock_cleanup,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            main(["cleanup"], _no_input)

        assert mock_cleanup.call_args.args[1] == EventDateCriterion(date(2025, 7, 4))

    def test_missing_date_exits_1(
        self, monkeypatch_env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        with patch("btc_import.__main__.run_cleanup") as mock_cleanup:
            exit_code = main(["cleanup"])

        assert exit_code == 1
        mock_cleanup.assert_not_called()
        assert "TARGET_DATE" in capsys.readouterr().err

    def test_missing_token_exits_1(
        self, clean_env: None, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = main(["cleanup", "--date", "2025-06-01"])

        assert exit_code == 1
        assert "AUTH_TOKEN" in capsys.readouterr().err

    def test_temp_organizer_and_user_criteria(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_cleanup") as mock_cleanup,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            main(["cleanup", "--temp-organizers", "--include-btc-organizers"])
            main(["cleanup", "--temp-users"])

        criteria = [c.args[1] for c in mock_cleanup.call_args_list]
        assert criteria == [TempOrganizerCriterion(include_btc_imported=True), TempUserCriterion()]

    def test_live_requires_confirm_phrase(self, monkeypatch_env: dict[str, str]) -> None:
        prompts: list[str] = []

        def answer(prompt: str) -> str:
            prompts.append(prompt)
            return "CONFIRM"

        with (
            patch("btc_import.__main__.run_cleanup") as mock_cleanup,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            exit_code = main(["cleanup", "--date", "2025-06-01", "--live"], answer)

        assert exit_code == 0
        assert prompts == ['Type "CONFIRM" to proceed: ']
        assert mock_cleanup.call_args.args[2] is False


class TestRestoreCommand:
    """Tests for ``btc-import restore``."""

    def test_restore_needs_restore_phrase(self, monkeypatch_env: dict[str, str]) -> None:
        backup = Path("backup-events-2025-06-01-x.json")
        with (
            patch("btc_import.__main__.run_restore") as mock_restore,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            declined = main(["restore", str(backup), "--live"], lambda _prompt: "CONFIRM")
            accepted = main(["restore", str(backup), "--live"], lambda _prompt: "RESTORE")

        assert (declined, accepted) == (0, 0)
        mock_restore.assert_called_once()
        _settings, path, dry_run, kind = mock_restore.call_args.args
        assert (path, dry_run, kind) == (backup, False, None)

    def test_explicit_kind(self, monkeypatch_env: dict[str, str]) -> None:
        with (
            patch("btc_import.__main__.run_restore") as mock_restore,
            patch("btc_import.__main__.print_cleanup_result"),
        ):
            main(["restore", "export.json", "--kind", "organizers"], _no_input)

        assert mock_restore.call_args.args[3] == "organizers"

    def test_unknown_kind_is_an_argument_error(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["restore", "export.json", "--kind", "venues"])

        assert exc_info.value.code == 2
