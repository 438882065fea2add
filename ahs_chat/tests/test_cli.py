"""Tests for the command line interface."""

import base64
import json
import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from ahs_chat.cli.main import cli
from ahs_chat.cli.render import MessagePrinter, format_message, save_image
from ahs_chat.config.settings import Settings
from ahs_chat.core.messages import CodeBlock, Message, MessageImage, Sender
from ahs_chat.providers.mock import MOCK_IMAGE_BYTES


class TestRender:
    """Tests for terminal rendering of messages."""

    def test_format_text(self):
        message = Message(id=1, sender=Sender.USER, text="Hello")
        assert format_message(message) == "You: Hello"

    def test_format_code(self):
        message = Message(
            id=2,
            sender=Sender.AI,
            text="Here:",
            code_block=CodeBlock(content="print(1)", language="python"),
        )
        assert format_message(message) == "AI: Here:\n```python\nprint(1)\n```"

    def test_save_image(self):
        image = MessageImage.from_bytes(b"jpeg", "A red bike")
        message = Message(id=3, sender=Sender.AI, image=image)

        with tempfile.TemporaryDirectory() as temp_dir:
            path = save_image(message, Path(temp_dir) / "images")
            assert path.name == "a_red_bike.jpeg"
            assert path.read_bytes() == b"jpeg"
            assert format_message(message, path).endswith(f"-> {path}")

    def test_save_image_skips_text(self):
        message = Message(id=4, sender=Sender.AI, text="no image")
        assert save_image(message, Path("unused")) is None

    def test_printer_prints_each_message_once(self):
        class FakeConversation:
            messages = (
                Message(id=1, sender=Sender.USER, text="hi"),
                Message(id=2, sender=Sender.AI, text="hello"),
            )

        printer = MessagePrinter()
        with patch("ahs_chat.cli.render.click.echo") as mock_echo:
            printer(FakeConversation())
            printer(FakeConversation())

        assert mock_echo.call_count == 1
        assert "AI: hello" in mock_echo.call_args[0][0]


class TestAskCommand:
    """Tests for the ask command."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_ask_mock(self):
        result = self.runner.invoke(cli, ["ask", "--mock", "What is your name?"])
        assert result.exit_code == 0, result.output
        assert "AI: my name is Abdul Hadi." in result.output

    def test_ask_json(self):
        result = self.runner.invoke(cli, ["ask", "--mock", "--json", "What is your name?"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data[0]["sender"] == "ai"
        assert data[0]["text"] == "my name is Abdul Hadi."

    def test_ask_from_stdin(self):
        result = self.runner.invoke(cli, ["ask", "--mock"], input="What is your name?\n")
        assert result.exit_code == 0, result.output
        assert "Abdul Hadi" in result.output

    def test_ask_no_input(self):
        result = self.runner.invoke(cli, ["ask", "--mock"], input="")
        assert result.exit_code == 1
        assert "No input provided" in result.output

    def test_ask_image(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(
                cli, ["ask", "--mock", "--image-dir", "out", "/image a red bicycle"]
            )
            assert result.exit_code == 0, result.output
            saved = Path("out") / "a_red_bicycle.jpeg"
            assert saved.read_bytes() == MOCK_IMAGE_BYTES
            assert "[image: a red bicycle]" in result.output

    def test_ask_image_json(self):
        result = self.runner.invoke(cli, ["ask", "--mock", "--json", "/image a boat"])
        assert result.exit_code == 0, result.output
        image = json.loads(result.output)[0]["image"]
        assert image["prompt"] == "a boat"
        assert image["src"] == (
            "data:image/jpeg;base64," + base64.b64encode(MOCK_IMAGE_BYTES).decode()
        )

    @patch.dict("os.environ", {}, clear=True)
    def test_ask_gemini_without_key(self):
        result = self.runner.invoke(cli, ["ask", "--ai-provider", "gemini", "hello"])
        assert result.exit_code == 1
        assert "GOOGLE_API_KEY" in result.output


class TestChatCommand:
    """Tests for the interactive chat command."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_chat_mock_session(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(
                cli,
                ["chat", "--mock", "--speech-provider", "none", "--no-metrics"],
                input="What is your name?\n/quit\n",
            )

        assert result.exit_code == 0, result.output
        assert "Running in MOCK mode" in result.output
        assert "AI: my name is Abdul Hadi." in result.output
        assert "Goodbye!" in result.output

    def test_chat_voice_disabled(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(
                cli,
                ["chat", "--mock", "--speech-provider", "none", "--no-metrics"],
                input="/voice\n/quit\n",
            )

        assert result.exit_code == 0, result.output
        assert "Speech recognition is not supported on this system." in result.output

    def test_chat_end_of_input(self):
        with self.runner.isolated_filesystem():
            result = self.runner.invoke(
                cli, ["chat", "--mock", "--speech-provider", "none", "--no-metrics"], input=""
            )
        assert result.exit_code == 0, result.output
        assert "Shutting down" in result.output

    def test_invalid_provider(self):
        result = self.runner.invoke(cli, ["chat", "--ai-provider", "nope"])
        assert result.exit_code == 2
        assert "Invalid AI provider 'nope'" in result.output


class TestInfoCommands:
    """Tests for providers and config commands."""

    def test_providers(self):
        result = CliRunner().invoke(cli, ["providers"])
        assert result.exit_code == 0
        assert "gemini" in result.output
        assert "whisperkit" in result.output
        assert "mock" in result.output

    def test_config(self):
        result = CliRunner().invoke(cli, ["config"])
        data = json.loads(result.output.split("\n\n")[0])
        assert "providers" in data
        assert data["providers"]["gemini_text_model"]

    @patch.dict(os.environ, {}, clear=True)
    def test_config_file_option(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.json"
            config_path.write_text(json.dumps({"providers": {"gemini_top_k": 12}}))

            with patch("ahs_chat.cli.main.settings", Settings()):
                result = CliRunner().invoke(cli, ["config", "--file", str(config_path)])

        assert result.exit_code == 0
        output = result.output[result.output.index("{\n"):]
        data = json.loads(output.split("\n\n")[0])
        assert data["providers"]["gemini_top_k"] == 12
