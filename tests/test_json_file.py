"""
tests/test_json_file.py — Whole-file JSON backend
==================================================
"""

from __future__ import annotations

import json

import pytest

from app.errors import StorageError
from app.schemas import PostRecord
from app.storage.json_file import JsonCollectionBackend, JsonFile

from helpers import run


@pytest.fixture
def posts_file(tmp_path) -> JsonFile:
    return JsonFile(tmp_path / "posts.json", default=list)


@pytest.fixture
def backend(posts_file) -> JsonCollectionBackend:
    return JsonCollectionBackend(posts_file, PostRecord, date_field="createdAt")


class TestJsonFile:
    def test_missing_file_reads_default(self, posts_file):
        assert run(posts_file.read()) == []
        assert not posts_file.exists()

    def test_write_leaves_no_temp_files(self, posts_file, tmp_path):
        run(posts_file.write([{"id": "1", "title": "عنوان"}]))
        assert [p.name for p in tmp_path.iterdir()] == ["posts.json"]
        raw = (tmp_path / "posts.json").read_text(encoding="utf-8")
        assert "عنوان" in raw  # ensure_ascii=False

    def test_corrupt_file_raises_storage_error(self, posts_file):
        posts_file.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            run(posts_file.read())


class TestJsonCollection:
    def test_posts_survive_round_trip(self, backend):
        created = [
            run(backend.create(PostRecord(id="", title=f"t{i}", content="c", author="a")))
            for i in range(5)
        ]
        loaded = {p.id: p for p in run(backend.read_all())}
        assert len(loaded) == 5
        for post in created:
            assert loaded[post.id] == post

    def test_ids_are_unique(self, backend):
        ids = {
            run(backend.create(PostRecord(id="", title="t", content="c", author="a"))).id
            for _ in range(20)
        }
        assert len(ids) == 20

    def test_numeric_legacy_ids_are_matched_as_strings(self, backend, posts_file):
        run(posts_file.write([{"id": 1, "title": "t", "content": "c", "author": "a", "approved": True}]))
        post = run(backend.read_by_id("1"))
        assert post is not None
        assert post.id == "1"
        assert post.status == "approved"

    def test_update_and_delete(self, backend):
        post = run(backend.create(PostRecord(id="", title="t", content="c", author="a")))
        assert run(backend.update(post.id, {"title": "new"})).title == "new"
        assert run(backend.update("missing", {"title": "x"})) is None
        assert run(backend.delete(post.id)) is True
        assert run(backend.delete(post.id)) is False

    def test_non_array_document_rejected(self, backend, posts_file):
        posts_file.path.write_text(json.dumps({"posts": []}), encoding="utf-8")
        with pytest.raises(StorageError):
            run(backend.read_all())

    def test_clear_returns_previous_length(self, backend):
        assert run(backend.clear()) == 0
        run(backend.create(PostRecord(id="", title="t", content="c", author="a")))
        assert run(backend.clear()) == 1
        assert run(backend.read_all()) == []
