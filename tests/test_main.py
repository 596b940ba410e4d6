from __future__ import annotations

import sys
from unittest.mock import MagicMock, patch

import pytest

from lockkeeper.__main__ import _print_startup_error, main


@pytest.mark.unit
class TestMain:
    """Tests for the ``python -m lockkeeper`` entry point."""

    @pytest.mark.parametrize(
        "exit_code",
        [0, 1, 2, 130],
        ids=["success", "error", "usage", "interrupted"],
    )
    def test_returns_cli_exit_code(self, exit_code: int) -> None:
        mock_cli_module = MagicMock()
        mock_cli_module.main = MagicMock(return_value=exit_code)

        with patch.dict("sys.modules", {"lockkeeper.cli": mock_cli_module}):
            result = main()

        assert result == exit_code
        mock_cli_module.main.assert_called_once_with()

    def test_import_error_returns_one(self, capsys: pytest.CaptureFixture) -> None:
        """A ``None`` entry in sys.modules makes the import raise ImportError."""
        with patch.dict("sys.modules", {"lockkeeper.cli": None}):
            result = main()

        assert result == 1
        captured = capsys.readouterr()
        assert "lockkeeper failed to start." in captured.err
        assert "ImportError:" in captured.err


@pytest.mark.unit
class TestPrintStartupError:
    """Tests for _print_startup_error."""

    def test_includes_version(self, capsys: pytest.CaptureFixture) -> None:
        mock_version_module = MagicMock(__version__="1.2.3")

        with patch.dict(sys.modules, {"lockkeeper.__version__": mock_version_module}):
            _print_startup_error(ImportError("No module named 'httpx'"))

        captured = capsys.readouterr()
        assert "lockkeeper version: 1.2.3" in captured.err
        assert "ImportError: No module named 'httpx'" in captured.err
        assert captured.out == ""

    def test_unknown_version(self, capsys: pytest.CaptureFixture) -> None:
        with patch.dict(sys.modules, {"lockkeeper.__version__": None}):
            _print_startup_error(ImportError("boom"))

        captured = capsys.readouterr()
        assert "lockkeeper version: <unknown>" in captured.err
        assert "" in captured.err.split("\n")
