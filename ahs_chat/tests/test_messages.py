"""Tests for the message model and log."""

import base64
import threading

import pytest

from ahs_chat.core.messages import (
    CodeBlock,
    Message,
    MessageImage,
    MessageLog,
    Sender,
)


class TestMessageImage:
    """Tests for MessageImage."""

    def test_from_bytes_builds_data_uri(self):
        """Image source is a base64 data URI of the raw bytes."""
        image = MessageImage.from_bytes(b"\x89PNGdata", "a cat", mime_type="image/png")
        assert image.src == "data:image/png;base64," + base64.b64encode(b"\x89PNGdata").decode()
        assert image.alt == "a cat"
        assert image.prompt == "a cat"
        assert image.data == b"\x89PNGdata"

    def test_default_mime_type_is_jpeg(self):
        image = MessageImage.from_bytes(b"abc", "x")
        assert image.src.startswith("data:image/jpeg;base64,")

    @pytest.mark.parametrize(
        "prompt, name",
        [
            ("A Red Bike!", "a_red_bike_.jpeg"),
            ("sunset over hills", "sunset_over_hills.jpeg"),
            ("", "generated-image.jpeg"),
        ],
    )
    def test_download_name(self, prompt, name):
        """Non-alphanumerics become underscores and the name is lower case."""
        image = MessageImage(src="data:", alt=prompt, prompt=prompt)
        assert image.download_name == name


class TestMessage:
    """Tests for Message."""

    def test_requires_content(self):
        """A message with no text, image or code is rejected."""
        with pytest.raises(ValueError):
            Message(id=1, sender=Sender.AI)

    def test_is_immutable(self):
        message = Message(id=1, sender=Sender.USER, text="hi")
        with pytest.raises(AttributeError):
            message.text = "changed"

    def test_to_dict(self):
        """Serialized form carries all optional parts."""
        message = Message(
            id=3,
            sender=Sender.AI,
            text="Here:",
            code_block=CodeBlock(content="print(1)", language="python"),
        )
        data = message.to_dict()
        assert data["id"] == 3
        assert data["sender"] == "ai"
        assert data["text"] == "Here:"
        assert data["code_block"] == {"language": "python", "content": "print(1)"}
        assert data["image"] is None
        assert "timestamp" in data


class TestMessageLog:
    """Tests for MessageLog."""

    def test_ids_increase_in_insertion_order(self):
        log = MessageLog()
        first = log.append(Sender.USER, text="one")
        second = log.append(Sender.AI, text="two")
        third = log.append(Sender.AI, code_block=CodeBlock(content="x"))

        assert [m.id for m in log] == [first.id, second.id, third.id]
        assert first.id < second.id < third.id
        assert len(log) == 3
        assert log[1] is second

    def test_snapshot_is_unaffected_by_later_appends(self):
        log = MessageLog()
        log.append(Sender.USER, text="one")
        snapshot = log.snapshot()
        log.append(Sender.AI, text="two")

        assert len(snapshot) == 1
        assert len(log.snapshot()) == 2

    def test_concurrent_appends_get_unique_ids(self):
        """Appends from several threads never reuse an id."""
        log = MessageLog()

        def worker():
            for i in range(50):
                log.append(Sender.AI, text=str(i))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        ids = [m.id for m in log]
        assert len(ids) == 200
        assert ids == sorted(set(ids))
