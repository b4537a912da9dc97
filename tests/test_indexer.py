"""End-to-end tests for the build and query pipeline."""

import json

import pytest

from faiss_index_gen.config import Settings
from faiss_index_gen.errors import (
    ConfigurationError,
    DirectoryNotFoundError,
    DuplicateChunkIdError,
    EmptyIndexError,
    IndexNotFoundError,
    ServiceUnavailableError,
)
from faiss_index_gen.indexing import IndexBuilder, query

from conftest import FAKE_DIMENSIONS, FakeEmbedder


def make_builder(embedder=None, **settings) -> IndexBuilder:
    return IndexBuilder(
        Settings(**settings),
        embedder=embedder or FakeEmbedder(),
        model_dimensions=FAKE_DIMENSIONS,
    )


def test_build_writes_all_artifacts(docs_dir, tmp_path):
    out = tmp_path / "out"

    report = make_builder().build(docs_dir, out)

    assert report.files == 2
    assert report.chunks == 2
    assert report.vectors == 2
    assert report.chunks_per_file == {"orders.txt": 1, "users.txt": 1}
    assert report.changes.added == ["orders.txt", "users.txt"]
    assert not report.skipped

    for name in ["doc_index_cache.json", "metadata.json", "index.bin", "index_metadata.json"]:
        assert (out / name).exists()

    metadata = json.loads((out / "metadata.json").read_text())
    assert metadata == [
        {"doc": "orders.txt", "chunk": "Orders can be filtered by status and date.", "chunk_id": "orders_0"},
        {"doc": "users.txt", "chunk": "Users log in with email and password.", "chunk_id": "users_0"},
    ]
    assert set(json.loads((out / "doc_index_cache.json").read_text())) == {"orders.txt", "users.txt"}


def test_query_ranks_exact_chunk_first(docs_dir, tmp_path):
    out = tmp_path / "out"
    builder = make_builder()
    builder.build(docs_dir, out)

    results = builder.query(out, "Users log in with email and password.", k=5)

    assert len(results) == 2
    assert results[0].doc == "users.txt"
    assert results[0].chunk_id == "users_0"
    assert results[0].score == pytest.approx(1.0, abs=1e-5)


def test_long_documents_are_chunked(tmp_path):
    docs = tmp_path / "docs"
    docs.mkdir()
    paragraphs = [f"Paragraph {i} talks about topic number {i}." for i in range(6)]
    (docs / "guide.md").write_text("\n\n".join(paragraphs))

    builder = make_builder(chunk_size=60, chunk_overlap=10)
    report = builder.build(docs, tmp_path / "out")

    assert report.chunks > 1
    metadata = json.loads((tmp_path / "out" / "metadata.json").read_text())
    assert [m["chunk_id"] for m in metadata] == [f"guide_{i}" for i in range(len(metadata))]
    assert all(len(m["chunk"]) <= 60 for m in metadata)


def test_recursive_build_uses_relative_paths(tmp_path):
    docs = tmp_path / "docs"
    (docs / "guides").mkdir(parents=True)
    (docs / "guides" / "setup.md").write_text("Install the package first.")
    (docs / "intro.txt").write_text("Welcome.")

    builder = make_builder(recursive=True)
    builder.build(docs, tmp_path / "out")

    metadata = json.loads((tmp_path / "out" / "metadata.json").read_text())
    assert [(m["doc"], m["chunk_id"]) for m in metadata] == [
        ("guides/setup.md", "guides_setup_0"),
        ("intro.txt", "intro_0"),
    ]


def test_extension_filter(docs_dir, tmp_path):
    (docs_dir / "notes.rst").write_text("Not indexed by default.")

    report = make_builder().build(docs_dir, tmp_path / "out")
    assert report.files == 2

    report = make_builder(extensions="txt,rst").build(docs_dir, tmp_path / "out2")
    assert report.files == 3


def test_duplicate_chunk_ids(tmp_path):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "x.md").write_text("markdown")
    (docs / "x.txt").write_text("text")

    with pytest.raises(DuplicateChunkIdError, match="x_0"):
        make_builder().build(docs, tmp_path / "out")


def test_missing_input_directory(tmp_path):
    with pytest.raises(DirectoryNotFoundError):
        make_builder().build(tmp_path / "missing", tmp_path / "out")


def test_empty_input_directory(tmp_path):
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "image.png").write_bytes(b"\x89PNG")

    with pytest.raises(EmptyIndexError):
        make_builder().build(docs, tmp_path / "out")

    assert not (tmp_path / "out" / "index.bin").exists()


def test_server_down_leaves_no_index(docs_dir, tmp_path):
    with pytest.raises(ServiceUnavailableError):
        make_builder(FakeEmbedder(healthy=False)).build(docs_dir, tmp_path / "out")

    assert not (tmp_path / "out" / "index.bin").exists()


def test_skip_unchanged(docs_dir, tmp_path):
    out = tmp_path / "out"
    embedder = FakeEmbedder()
    builder = make_builder(embedder)
    builder.build(docs_dir, out)
    calls = len(embedder.calls)

    report = builder.build(docs_dir, out, skip_unchanged=True)

    assert report.skipped
    assert report.vectors == 2
    assert len(embedder.calls) == calls

    (docs_dir / "users.txt").write_text("Users can reset their password.")
    report = builder.build(docs_dir, out, skip_unchanged=True)

    assert not report.skipped
    assert report.changes.modified == ["users.txt"]
    assert report.changes.unchanged == ["orders.txt"]


def test_rebuild_reports_changes(docs_dir, tmp_path):
    out = tmp_path / "out"
    builder = make_builder()
    builder.build(docs_dir, out)

    (docs_dir / "orders.txt").unlink()
    (docs_dir / "billing.txt").write_text("Invoices are sent monthly.")
    report = builder.build(docs_dir, out)

    assert report.changes.added == ["billing.txt"]
    assert report.changes.removed == ["orders.txt"]
    assert report.vectors == 2


def test_progress_callback(docs_dir, tmp_path):
    progress = []

    make_builder().build(docs_dir, tmp_path / "out", lambda done, total: progress.append((done, total)))

    assert progress == [(1, 2), (2, 2)]


def test_load_missing_index(tmp_path):
    with pytest.raises(IndexNotFoundError):
        make_builder().load(tmp_path)


def test_load_missing_metadata(docs_dir, tmp_path):
    out = tmp_path / "out"
    builder = make_builder()
    builder.build(docs_dir, out)
    (out / "index_metadata.json").unlink()

    with pytest.raises(IndexNotFoundError, match="index_metadata.json"):
        builder.load(out)


def test_query_function_missing_index(tmp_path):
    with pytest.raises(IndexNotFoundError):
        query(tmp_path, "anything")


def test_invalid_chunk_settings_fail_early():
    with pytest.raises(ConfigurationError):
        make_builder(chunk_size=100, chunk_overlap=100)


def test_skip_unchanged_after_failed_build(docs_dir, tmp_path):
    """A failed build still writes the document cache but must not allow a skip."""
    out = tmp_path / "out"
    make_builder().build(docs_dir, out)

    (docs_dir / "billing.txt").write_text("Invoices are sent monthly.")
    with pytest.raises(ServiceUnavailableError):
        make_builder(FakeEmbedder(fail_on="Invoices")).build(docs_dir, out)

    assert "billing.txt" in json.loads((out / "doc_index_cache.json").read_text())
    assert not (out / "build_state.json").exists()

    builder = make_builder()
    report = builder.build(docs_dir, out, skip_unchanged=True)

    assert not report.skipped
    assert report.vectors == 3
    docs = {r.doc for r in builder.query(out, "Invoices are sent monthly.", k=5)}
    assert docs == {"billing.txt", "orders.txt", "users.txt"}


def test_build_state_records_files_and_settings(docs_dir, tmp_path):
    out = tmp_path / "out"
    builder = make_builder(chunk_size=500, chunk_overlap=50)
    builder.build(docs_dir, out)

    state = json.loads((out / "build_state.json").read_text())

    assert set(state["files"]) == {"orders.txt", "users.txt"}
    assert state["settings"] == builder.build_settings()
    assert state["settings"]["chunk_size"] == 500
    assert state["settings"]["dimension"] == 8


def test_skip_unchanged_rebuilds_on_metric_change(docs_dir, tmp_path):
    out = tmp_path / "out"
    make_builder(metric="IP").build(docs_dir, out)

    builder = make_builder(metric="L2")
    report = builder.build(docs_dir, out, skip_unchanged=True)

    assert not report.skipped
    assert report.vectors == 2
    assert builder.query(out, "Users log in with email and password.", k=1)[0].doc == "users.txt"


def test_skip_unchanged_rebuilds_on_chunking_change(docs_dir, tmp_path):
    out = tmp_path / "out"
    make_builder().build(docs_dir, out)

    report = make_builder(chunk_size=20, chunk_overlap=5).build(docs_dir, out, skip_unchanged=True)

    assert not report.skipped
    assert report.chunks > 2
    assert report.vectors == report.chunks


def test_skip_unchanged_rebuilds_when_index_unreadable(docs_dir, tmp_path):
    out = tmp_path / "out"
    builder = make_builder()
    builder.build(docs_dir, out)
    (out / "index_metadata.json").unlink()

    report = builder.build(docs_dir, out, skip_unchanged=True)

    assert not report.skipped
    assert (out / "index_metadata.json").exists()
