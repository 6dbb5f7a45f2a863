"""Tests for the sentence-boundary stream buffer."""

from hypothesis import given
from hypothesis import strategies as st

from newsin.core.streaming import SentenceBuffer, find_last_sentence_end


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_buffer(min_chars=10, max_chars=100, flush_interval=5.0, clock=None) -> SentenceBuffer:
    return SentenceBuffer(
        min_chars=min_chars,
        max_chars=max_chars,
        flush_interval=flush_interval,
        clock=clock or FakeClock(),
    )


class TestFindLastSentenceEnd:
    def test_no_boundary(self):
        assert find_last_sentence_end("no sentence end here") == -1

    def test_boundary_requires_following_whitespace(self):
        assert find_last_sentence_end("Version 2.5 is out") == -1
        assert find_last_sentence_end("It ended.") == -1

    def test_returns_last_boundary(self):
        text = "First one. Second one! Third"
        assert text[: find_last_sentence_end(text)] == "First one. Second one!"

    def test_includes_closing_quotes(self):
        text = 'He said "done." Then left'
        assert text[: find_last_sentence_end(text)] == 'He said "done."'


class TestSentenceBuffer:
    def test_holds_text_until_sentence_end(self):
        buffer = make_buffer()
        assert buffer.feed("The market") == []
        assert buffer.feed(" rallied today") == []
        assert buffer.feed(". Stocks") == ["The market rallied today."]
        assert buffer.pending == " Stocks"

    def test_short_sentence_waits_for_min_chars(self):
        buffer = make_buffer(min_chars=20)
        assert buffer.feed("Hi. ") == []
        assert buffer.feed("This is longer. And") == ["Hi. This is longer."]

    def test_flushes_everything_at_max_chars(self):
        buffer = make_buffer(min_chars=5, max_chars=12)
        assert buffer.feed("abcdefgh") == []
        assert buffer.feed("ijkl") == ["abcdefghijkl"]
        assert buffer.pending == ""

    def test_flushes_after_interval_without_boundary(self):
        clock = FakeClock()
        buffer = make_buffer(flush_interval=2.0, clock=clock)
        assert buffer.feed("partial") == []
        clock.now = 2.5
        assert buffer.feed(" words") == ["partial words"]

    def test_interval_restarts_after_flush(self):
        clock = FakeClock()
        buffer = make_buffer(flush_interval=2.0, clock=clock)
        clock.now = 3.0
        assert buffer.feed("one") == ["one"]
        clock.now = 4.0
        assert buffer.feed("two") == []

    def test_flush_returns_remainder(self):
        buffer = make_buffer()
        buffer.feed("Tail without end")
        assert buffer.flush() == "Tail without end"
        assert buffer.flush() == ""

    def test_empty_delta_is_ignored(self):
        buffer = make_buffer()
        assert buffer.feed("") == []
        assert buffer.pending == ""

    @given(st.lists(st.text(alphabet="ab .!?\n", max_size=15), max_size=30))
    def test_output_concatenation_equals_input(self, deltas):
        buffer = make_buffer(min_chars=4, max_chars=25)
        chunks = []
        for delta in deltas:
            chunks.extend(buffer.feed(delta))
        chunks.append(buffer.flush())
        assert "".join(chunks) == "".join(deltas)

    @given(st.lists(st.text(alphabet="ab .!?", max_size=15), max_size=30))
    def test_chunks_never_exceed_max_plus_delta(self, deltas):
        buffer = make_buffer(min_chars=4, max_chars=25)
        for delta in deltas:
            for chunk in buffer.feed(delta):
                assert len(chunk) < 25 + len(delta)
