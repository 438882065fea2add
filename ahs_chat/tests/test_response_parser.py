"""Tests for splitting model replies into text and code."""

from ahs_chat.core.messages import CodeBlock
from ahs_chat.core.response_parser import parse_response


class TestParseResponse:
    """Tests for parse_response."""

    def test_plain_text(self):
        """Replies without a fence come back as trimmed text."""
        parsed = parse_response("  Hello there!  \n")
        assert parsed.text == "Hello there!"
        assert parsed.code_block is None

    def test_code_with_language_and_prose(self):
        """Prose before the fence becomes text, the fence a code block."""
        raw = "Here it is:\n```python\nprint('hi')\n```"
        parsed = parse_response(raw)
        assert parsed.text == "Here it is:"
        assert parsed.code_block == CodeBlock(content="print('hi')", language="python")

    def test_code_without_language(self):
        """An untagged fence has no language."""
        parsed = parse_response("```\nls -la\n```")
        assert parsed.text is None
        assert parsed.code_block == CodeBlock(content="ls -la", language=None)

    def test_text_after_fence_is_dropped(self):
        """Anything after the closing fence is discarded."""
        parsed = parse_response("Intro\n```js\nlet x = 1;\n```\nHope that helps!")
        assert parsed.text == "Intro"
        assert parsed.code_block.content == "let x = 1;"
        assert "Hope" not in (parsed.text or "")

    def test_only_first_fence_used(self):
        """A second fenced block is ignored."""
        raw = "```python\na = 1\n```\n```python\nb = 2\n```"
        parsed = parse_response(raw)
        assert parsed.code_block.content == "a = 1"

    def test_multiline_body_is_trimmed(self):
        """Code body keeps inner lines but loses surrounding whitespace."""
        raw = "```go\n\n  fmt.Println(1)\n  fmt.Println(2)\n\n```"
        parsed = parse_response(raw)
        assert parsed.code_block.content == "fmt.Println(1)\n  fmt.Println(2)"
        assert parsed.code_block.language == "go"

    def test_unclosed_fence_is_text(self):
        """A fence with no closer is treated as plain text."""
        raw = "```python\nprint('never closed')"
        parsed = parse_response(raw)
        assert parsed.code_block is None
        assert parsed.text == raw

    def test_empty_and_blank(self):
        """Empty or whitespace-only replies parse to nothing."""
        assert parse_response("").is_empty
        assert parse_response("   \n\t").is_empty

    def test_whitespace_only_prose_is_none(self):
        """Blank prose before a fence does not produce text."""
        parsed = parse_response("   \n```sql\nSELECT 1;\n```")
        assert parsed.text is None
        assert parsed.code_block.language == "sql"
        assert not parsed.is_empty
