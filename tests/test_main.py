"""Tests for the terminal front end: slash commands and outcome printing."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from awb.builder import PROMPT_SUGGESTIONS, WidgetBuilder
from awb.main import _handle_command, _print_outcome, main

from conftest import failing, widget_doc


class TestHandleCommand:
    @pytest.mark.asyncio
    async def test_quit(self, mock_config, api):
        builder = WidgetBuilder(api.client(), clarify_first=False)
        assert await _handle_command(builder, "/quit") is False
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_ideas(self, mock_config, api, capsys):
        builder = WidgetBuilder(api.client(), clarify_first=False)
        assert await _handle_command(builder, "/ideas")
        assert PROMPT_SUGGESTIONS[0] in capsys.readouterr().out
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_restore_usage(self, mock_config, api, capsys):
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await _handle_command(builder, "/restore first")
        assert "Usage: /restore N" in capsys.readouterr().out
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_checkpoints_and_restore(self, mock_config, api, capsys):
        api.generations.extend([widget_doc("First"), widget_doc("Second")])
        api.critiques.append(failing())
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await builder.submit("a clock")

        await _handle_command(builder, "/checkpoints")
        out = capsys.readouterr().out
        assert "0. Initial build" in out
        assert "1. Fix 1" in out

        await _handle_command(builder, "/restore 0")
        assert "Restored checkpoint 0: Initial build" in capsys.readouterr().out
        assert builder.code == widget_doc("First")
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_save_writes_widget(self, mock_config, api, capsys):
        api.generations.append(widget_doc("Quote Rotator"))
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await builder.submit("quotes")

        await _handle_command(builder, "/save")

        assert "quote-rotator.html" in capsys.readouterr().out
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_save_without_code(self, mock_config, api, capsys):
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await _handle_command(builder, "/save")
        assert "No code to add" in capsys.readouterr().out
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_unknown_command_prints_help(self, mock_config, api, capsys):
        builder = WidgetBuilder(api.client(), clarify_first=False)
        assert await _handle_command(builder, "/wat")
        assert "Commands:" in capsys.readouterr().out
        await builder.aclose()


class TestPrintOutcome:
    @pytest.mark.asyncio
    async def test_failure_offers_retry(self, mock_config, api, capsys):
        api.generations.append(httpx.ConnectError("connection refused"))
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await builder.submit("a clock")

        _print_outcome(builder)

        out = capsys.readouterr().out
        assert "Error:" in out
        assert "/retry" in out
        await builder.aclose()

    @pytest.mark.asyncio
    async def test_remaining_issues_offer_fix(self, mock_config, api, capsys):
        mock_config["max_build_iterations"] = 1
        api.generations.append(widget_doc("Board"))
        api.critiques.append(failing())
        builder = WidgetBuilder(api.client(), clarify_first=False)
        await builder.submit("a kanban board")

        _print_outcome(builder)

        assert "/fix to run another fix round (2 left)" in capsys.readouterr().out
        await builder.aclose()


class TestMain:
    @patch("awb.main.asyncio.run")
    @patch("awb.main.run", new_callable=MagicMock)
    def test_no_clarify_flag(self, mock_run, mock_asyncio_run, mock_config):
        with patch("sys.argv", ["awb", "--no-clarify", "a", "clock"]):
            main()
        mock_run.assert_called_once_with("a clock", clarify=False)
        mock_asyncio_run.assert_called_once()

    @patch("awb.main.asyncio.run")
    @patch("awb.main.run", new_callable=MagicMock)
    def test_default_clarify(self, mock_run, _mock_asyncio_run, mock_config):
        with patch("sys.argv", ["awb"]):
            main()
        mock_run.assert_called_once_with("", clarify=None)
