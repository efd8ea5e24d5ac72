from ebook_engine.config import EngineSettings
from ebook_engine.models.tts import ChunkKind
from ebook_engine.tts.replacements import DEFAULT_RULES, ReplacementProcessor
from ebook_engine.tts.splitter import (
    extract_text_from_html,
    find_chunk_at_position,
    split_into_paragraphs,
)


def assert_offsets_match(text, chunks) -> None:
    for chunk in chunks:
        assert text[chunk.start_position:chunk.end_position] == chunk.text


def test_paragraph_chunks_and_positions() -> None:
    text = "A.\n\nB.\n\nC."
    chunks = split_into_paragraphs(text)

    assert [c.text for c in chunks] == ["A.", "B.", "C."]
    assert [c.start_position for c in chunks] == [0, 4, 8]
    assert all(c.kind is ChunkKind.PARAGRAPH for c in chunks)
    assert_offsets_match(text, chunks)


def test_blank_and_whitespace_paragraphs_are_skipped() -> None:
    text = "  First \n\n\n   \n\nSecond  "
    chunks = split_into_paragraphs(text)

    assert [c.text for c in chunks] == ["First", "Second"]
    assert_offsets_match(text, chunks)
    assert split_into_paragraphs("") == []


def test_long_paragraph_is_split_into_sentences() -> None:
    text = "This is a sentence. " * 300
    chunks = split_into_paragraphs(text)

    assert len(chunks) >= 2
    assert all(c.kind is ChunkKind.SENTENCE for c in chunks)
    assert all(len(c.text) <= 4000 for c in chunks)
    assert chunks[0].text == "This is a sentence."
    assert_offsets_match(text, chunks)


def test_mixed_terminators() -> None:
    text = "Really?! Yes. And then"
    chunks = split_into_paragraphs(text, EngineSettings(max_chunk_size=10))

    assert [c.text for c in chunks] == ["Really?!", "Yes.", "And then"]
    assert_offsets_match(text, chunks)


def test_word_fallback_for_long_sentences() -> None:
    text = "aaaa bbbb cccc " + "d" * 22
    chunks = split_into_paragraphs(text, EngineSettings(max_chunk_size=10))

    assert [c.text for c in chunks] == ["aaaa bbbb", "cccc", "d" * 10, "d" * 10, "dd"]
    assert all(len(c.text) <= 10 for c in chunks)
    assert_offsets_match(text, chunks)


def test_extract_text_keeps_paragraphs() -> None:
    html = "<h1>Title</h1><p>One <b>two</b></p>\n  <p>Three</p>"
    assert extract_text_from_html(html) == "Title\n\nOne two\n\nThree"


def test_extract_text_line_breaks_and_entities() -> None:
    assert extract_text_from_html("<p>a<br/>b</p>") == "a\nb"
    assert extract_text_from_html("<p>A &amp; B</p>") == "A & B"


def test_extract_text_drops_scripts_and_styles() -> None:
    html = "<html><head><title>T</title><style>p {}</style></head><body><p>x</p><script>var y</script></body></html>"
    assert extract_text_from_html(html) == "x"


def test_plain_text_passes_through() -> None:
    assert extract_text_from_html("no markup here") == "no markup here"


def test_extract_text_applies_rules() -> None:
    assert extract_text_from_html("<p>Dr. Who</p>", rules=DEFAULT_RULES) == "Doctor Who"
    assert extract_text_from_html("<p>Dr. Who</p>", rules=DEFAULT_RULES, enabled=False) == "Dr. Who"
    processor = ReplacementProcessor({"who": "what"})
    assert extract_text_from_html("<p>Dr. Who</p>", rules=processor) == "Dr. What"


def test_find_chunk_at_position() -> None:
    chunks = split_into_paragraphs("A.\n\nB.\n\nC.")

    assert find_chunk_at_position(chunks, 0) == 0
    assert find_chunk_at_position(chunks, 5) == 1
    assert find_chunk_at_position(chunks, 8) == 2
    # between chunks and past the end fall back to the first chunk
    assert find_chunk_at_position(chunks, 3) == 0
    assert find_chunk_at_position(chunks, 100) == 0
    assert find_chunk_at_position([], 4) == 0
