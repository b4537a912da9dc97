"""Tests for text chunking."""

import pytest

from faiss_index_gen.errors import ConfigurationError
from faiss_index_gen.indexing.splitter import (
    SplitterType,
    TextChunker,
    chunk_text_fixed,
    make_chunk_id,
    split_text,
    split_text_by_file_type,
)

SAMPLE_MARKDOWN = """# Header

This is a paragraph with some text. It contains multiple sentences.
Here is another sentence in the same paragraph.

## Another Section

More content here. This section talks about something else.
We have multiple lines of text to work with.

### Subsection

Final paragraph with more content. This helps test the splitter."""

SAMPLE_CODE = """function hello() {
  console.log("Hello, World!");
}

function goodbye() {
  console.log("Goodbye!");
}

class MyClass {
  constructor() {
    this.value = 42;
  }

  getValue() {
    return this.value;
  }
}"""


def test_splitter_types():
    assert SplitterType("recursive") is SplitterType.RECURSIVE
    assert {t.value for t in SplitterType} == {"recursive", "character", "markdown", "code", "fixed"}


def test_short_text_is_one_chunk():
    assert split_text("Hello", chunk_size=1000, chunk_overlap=100) == ["Hello"]
    assert split_text("Hello World", chunk_size=11, chunk_overlap=2) == ["Hello World"]


def test_empty_text_has_no_chunks():
    assert split_text("") == []


def test_long_text_splits_into_several_chunks():
    chunks = split_text(SAMPLE_MARKDOWN, chunk_size=100, chunk_overlap=20)

    assert len(chunks) > 1
    assert all(chunk.strip() for chunk in chunks)


def test_recursive_respects_chunk_size():
    chunks = split_text(SAMPLE_MARKDOWN, chunk_size=200, chunk_overlap=50)

    for chunk in chunks:
        assert len(chunk) <= 200


def test_recursive_prefers_paragraph_boundaries():
    text = "First paragraph here.\n\nSecond paragraph here.\n\nThird paragraph here."
    chunks = split_text(text, chunk_size=30, chunk_overlap=0)

    assert chunks == ["First paragraph here.", "Second paragraph here.", "Third paragraph here."]


def test_splitting_is_deterministic():
    first = split_text(SAMPLE_MARKDOWN, chunk_size=80, chunk_overlap=20)
    second = split_text(SAMPLE_MARKDOWN, chunk_size=80, chunk_overlap=20)

    assert first == second


def test_fixed_width_overlap():
    chunks = chunk_text_fixed("0123456789ABCDEFGHIJ", chunk_size=10, chunk_overlap=3)

    assert chunks[0] == "0123456789"
    assert chunks[1].startswith("789")
    assert chunks == ["0123456789", "789ABCDEFG", "EFGHIJ"]


def test_fixed_strategy_through_chunker():
    chunker = TextChunker(chunk_size=10, chunk_overlap=3, splitter="fixed")

    assert chunker.split("0123456789ABCDEFGHIJ")[0] == "0123456789"
    assert chunker.split("Hello") == ["Hello"]


def test_fixed_width_terminates_without_overlap():
    chunks = chunk_text_fixed("abcdefghij", chunk_size=4, chunk_overlap=0)

    assert chunks == ["abcd", "efgh", "ij"]


@pytest.mark.parametrize("size, overlap", [(10, 10), (10, 20), (0, 0), (10, -1)])
def test_invalid_sizes(size, overlap):
    with pytest.raises(ConfigurationError):
        TextChunker(chunk_size=size, chunk_overlap=overlap)
    with pytest.raises(ConfigurationError):
        chunk_text_fixed("abc", size, overlap)


def test_unknown_splitter():
    with pytest.raises(ConfigurationError, match="Unknown splitter type"):
        TextChunker(splitter="semantic")


@pytest.mark.parametrize("splitter", ["recursive", "character", "markdown", "code"])
def test_every_strategy_produces_chunks(splitter):
    chunks = split_text(SAMPLE_MARKDOWN, chunk_size=120, chunk_overlap=20, splitter=splitter)

    assert chunks
    assert "Header" in chunks[0]


def test_file_type_dispatch():
    assert TextChunker.for_file("notes.md").splitter_type is SplitterType.MARKDOWN
    assert TextChunker.for_file("README.markdown").splitter_type is SplitterType.MARKDOWN

    code = TextChunker.for_file("src/app.py")
    assert code.splitter_type is SplitterType.CODE
    assert code.language == "py"

    assert TextChunker.for_file("lib/main.rs").splitter_type is SplitterType.CODE
    assert TextChunker.for_file("file.txt").splitter_type is SplitterType.RECURSIVE
    assert TextChunker.for_file("file.txt", splitter="fixed").splitter_type is SplitterType.FIXED


def test_code_splitter_for_js():
    chunks = split_text_by_file_type(SAMPLE_CODE, "app.js", chunk_size=100, chunk_overlap=20)

    assert len(chunks) > 1
    assert chunks[0].startswith("function hello()")


def test_code_splitter_for_python():
    code = 'def hello():\n    print("Hello")\n\ndef goodbye():\n    print("Goodbye")'
    chunks = split_text_by_file_type(code, "script.py", chunk_size=40, chunk_overlap=10)

    assert chunks[0].startswith("def hello()")
    assert any(chunk.startswith("def goodbye()") for chunk in chunks)


def test_code_strategy_without_known_language_falls_back():
    chunker = TextChunker(chunk_size=100, chunk_overlap=10, splitter="code", language="cobol")

    assert chunker.split(SAMPLE_MARKDOWN)


def test_make_chunk_id():
    assert make_chunk_id("orders.txt", 0) == "orders_0"
    assert make_chunk_id("guides/setup.md", 2) == "guides_setup_2"
    assert make_chunk_id("win\\path\\file.txt", 1) == "win_path_file_1"
    assert make_chunk_id("archive.tar.gz", 0) == "archive.tar_0"
    assert make_chunk_id("Makefile", 3) == "Makefile_3"


def test_chunk_document():
    chunker = TextChunker(chunk_size=30, chunk_overlap=0)
    text = "First paragraph here.\n\nSecond paragraph here."

    chunks = chunker.chunk_document(text, "docs/intro.txt")

    assert [c.chunk_id for c in chunks] == ["docs_intro_0", "docs_intro_1"]
    assert [c.index for c in chunks] == [0, 1]
    assert chunks[0].to_dict() == {
        "doc": "docs/intro.txt",
        "chunk": "First paragraph here.",
        "chunk_id": "docs_intro_0",
    }
