"""Unit tests for the mock backend."""
import asyncio
import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from openllama.backends import MockAdapter
from openllama.backends.adapters.mock import build_mock_reply, split_fragments
from openllama.session import Attachment, AttachmentKind


async def _collect(fragments) -> list[str]:
    return [fragment async for fragment in fragments]


class TestMockReply:
    """Tests for canned reply selection."""

    def test_greeting_names_model(self, user_message):
        """Test that 'hello' triggers the greeting with the model id."""
        reply = build_mock_reply(user_message("Hello there"), "llama-3-8b-instruct")
        assert reply.startswith("Hello! I am running on the **llama-3-8b-instruct** model")

    def test_trigger_is_case_insensitive(self, user_message):
        """Test that trigger matching ignores case."""
        reply = build_mock_reply(user_message("SHOW ME SOME CODE"), "m")
        assert "```python" in reply

    def test_first_listed_trigger_wins(self, user_message):
        """Test that a greeting trigger beats 'code' when both match."""
        reply = build_mock_reply(user_message("code hello"), "m")
        assert reply.startswith("Hello!")

    def test_hi_substring_matches(self, user_message):
        """Test that 'hi' matches as a substring (e.g. 'this')."""
        reply = build_mock_reply(user_message("what is this"), "m")
        assert reply.startswith("Hello!")

    def test_echo_fallback_keeps_original_case(self, user_message):
        """Test that unmatched input is echoed verbatim."""
        reply = build_mock_reply(user_message("Tell me about Rust"), "m")
        assert reply == 'I received your message: "Tell me about Rust". (Mock Response)'

    def test_attachments_short_circuit_triggers(self, user_message):
        """Test that attachments win over trigger phrases."""
        attachment = Attachment(kind=AttachmentKind.FILE, name="a.txt", data="hello")
        reply = build_mock_reply(user_message("hello code", [attachment, attachment]), "m")
        assert reply.startswith("I see you uploaded 2 attachment(s).")


class TestSplitFragments:
    """Tests for fragment splitting."""

    def test_splits_before_whitespace(self):
        """Test that whitespace starts each fragment, not ends it."""
        assert split_fragments("Hello big world") == ["Hello", " big", " world"]

    def test_whitespace_run_stays_together(self):
        """Test that a run of spaces/newlines starts a single fragment."""
        assert split_fragments("a \n\nb") == ["a", " \n\nb"]

    def test_leading_whitespace_has_no_empty_fragment(self):
        """Test that no empty fragment is produced."""
        assert split_fragments("  x") == ["  x"]

    @given(st.text(alphabet=st.sampled_from(list("ab \n")), max_size=60))
    def test_fragments_rejoin_to_input(self, text: str):
        """Property test: fragments are non-empty and concatenate to the input."""
        fragments = split_fragments(text)
        assert "".join(fragments) == text
        assert all(fragments)


class TestMockAdapter:
    """Tests for MockAdapter streaming."""

    @pytest.mark.asyncio
    async def test_fragments_reproduce_reply(self, settings, user_message, never_cancelled):
        """Test that concatenated fragments equal the canned reply."""
        adapter = MockAdapter(initial_delay=0, min_delay=0, max_delay=0.002)
        transcript = [user_message("write code please")]

        fragments = await _collect(adapter.generate(transcript, "m", settings, never_cancelled))

        assert "".join(fragments) == build_mock_reply(transcript[-1], "m")
        assert len(fragments) > 1

    @pytest.mark.asyncio
    async def test_text_independent_of_timing(self, settings, user_message):
        """Test that different random delays produce the same text."""
        transcript = [user_message("Explain quicksort")]
        outputs = []
        for seed in (1, 2):
            adapter = MockAdapter(initial_delay=0, min_delay=0, max_delay=0.003, rng=random.Random(seed))
            outputs.append(await _collect(adapter.generate(transcript, "m", settings, asyncio.Event())))
        assert outputs[0] == outputs[1]

    @pytest.mark.asyncio
    async def test_cancel_stops_stream(self, settings, user_message):
        """Test that no fragment is yielded after cancellation."""
        adapter = MockAdapter(initial_delay=0, min_delay=0, max_delay=0)
        cancel = asyncio.Event()
        received = []

        async for fragment in adapter.generate([user_message("hello")], "m", settings, cancel):
            received.append(fragment)
            cancel.set()

        assert received == ["Hello!"]

    @pytest.mark.asyncio
    async def test_cancel_before_start_yields_nothing(self, settings, user_message):
        """Test that a pre-cancelled run ends without fragments."""
        cancel = asyncio.Event()
        cancel.set()
        adapter = MockAdapter(initial_delay=0, min_delay=0, max_delay=0)

        assert await _collect(adapter.generate([user_message("hello")], "m", settings, cancel)) == []

    def test_invalid_delay_range(self):
        """Test that an inverted delay range is rejected."""
        with pytest.raises(ValueError):
            MockAdapter(min_delay=0.5, max_delay=0.1)
