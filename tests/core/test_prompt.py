"""Tests for devvy.core.prompt module."""

from unittest.mock import MagicMock, patch

import pytest

from devvy.core.prompt import ConsolePrompter


class TestConsolePrompter:
    """Tests for ConsolePrompter class."""

    @pytest.mark.parametrize(
        ("answers", "default", "expected"),
        [
            ([""], True, True),
            ([""], False, False),
            (["y"], False, True),
            (["NO"], True, False),
            (["maybe", "yes"], False, True),
        ],
    )
    def test_confirm(self, answers: list[str], default: bool, expected: bool) -> None:
        """Test yes/no answers and the default."""
        with patch("builtins.input", side_effect=answers):
            assert ConsolePrompter().confirm("Continue?", default=default) is expected

    @patch("builtins.input", side_effect=[""])
    def test_confirm_hint(self, mock_input: MagicMock) -> None:
        """Test that the default is shown in the hint."""
        ConsolePrompter().confirm("Continue?", default=True)
        assert mock_input.call_args.args[0] == "Continue? [Y/n]: "

    def test_select(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test picking by number after an invalid answer."""
        with patch("builtins.input", side_effect=["7", "2"]):
            assert ConsolePrompter().select("Pick", ["VS Code", "Cursor"]) == "Cursor"
        assert "Please enter a number between 1 and 2." in capsys.readouterr().out

    @patch("builtins.input", side_effect=[""])
    def test_select_default(self, mock_input: MagicMock) -> None:
        """Test the default choice."""
        assert ConsolePrompter().select("Pick", ["a", "b"], default=1) == "b"

    def test_select_empty(self) -> None:
        """Test that choices are required."""
        with pytest.raises(ValueError):
            ConsolePrompter().select("Pick", [])

    @patch("builtins.input", side_effect=["  "])
    def test_input_default(self, mock_input: MagicMock) -> None:
        """Test that an empty answer returns the default."""
        assert ConsolePrompter().input("Path", default="~/projects") == "~/projects"
        assert mock_input.call_args.args[0] == "Path [~/projects]: "

    @patch("getpass.getpass", return_value="s3cret")
    def test_password(self, mock_getpass: MagicMock) -> None:
        """Test masked input."""
        assert ConsolePrompter().password("Token") == "s3cret"
        mock_getpass.assert_called_once_with("Token: ")
