"""Unit tests for the indexing pipeline."""

import pytest

from csv_indexer.domain.model import OpenMode
from csv_indexer.errors import MalformedInputError, NotFoundError
from csv_indexer.indexer import Indexer
from csv_indexer.searcher import Searcher


@pytest.fixture
def indexer(settings):
    return Indexer(settings)


@pytest.fixture
def find(settings):
    searcher = Searcher(settings)

    def _find(index, query, fields="id"):
        return [row.as_list() for row in searcher.find(index, fields, query).rows]

    return _find


@pytest.mark.unit
class TestInsert:
    def test_create_reports_counts(self, indexer, people_csv, tmp_path):
        result = indexer.insert(people_csv, tmp_path / "idx")

        assert result.operation == "create"
        assert result.mode is OpenMode.CREATE
        assert result.documents_written == 4
        assert result.documents_replaced == 0
        assert result.index_path == tmp_path / "idx"

    def test_create_replaces_previous_contents(self, indexer, people_csv, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)
        indexer.insert(write_csv("other.csv", [["id", "name"], ["9", "Zed"]]), index)

        assert find(index, "*:*") == [["9"]]

    def test_append_adds_without_deduplicating(self, indexer, people_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)
        result = indexer.insert(people_csv, index, OpenMode.APPEND)

        assert result.documents_written == 4
        assert find(index, "id:1") == [["1"], ["1"]]

    def test_append_requires_existing_index(self, indexer, people_csv, tmp_path):
        with pytest.raises(NotFoundError):
            indexer.insert(people_csv, tmp_path / "missing", "append")

        assert not (tmp_path / "missing").exists()

    @pytest.mark.parametrize("mode", [OpenMode.READ_ONLY, OpenMode.CREATE_OR_APPEND])
    def test_rejects_other_modes(self, indexer, people_csv, tmp_path, mode):
        with pytest.raises(ValueError, match="CREATE or APPEND"):
            indexer.insert(people_csv, tmp_path / "idx", mode)

    def test_new_columns_extend_the_index(self, indexer, people_csv, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)
        indexer.insert(write_csv("more.csv", [["id", "age"], ["5", "40"]]), index, OpenMode.APPEND)

        assert find(index, "age:40", "id,age,name") == [["5", "40", ""]]
        assert find(index, "id:1", "id,age") == [["1", ""]]

    def test_header_only_input_registers_columns(self, indexer, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        result = indexer.insert(write_csv("header.csv", "id,name,city\n"), index)

        assert result.documents_written == 0
        assert find(index, "*:*") == []


@pytest.mark.unit
class TestInputErrors:
    def test_missing_id_column_leaves_index_untouched(self, indexer, people_csv, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)

        with pytest.raises(MalformedInputError, match="no 'id' column"):
            indexer.insert(write_csv("noid.csv", [["name"], ["Ann"]]), index)

        assert len(find(index, "*:*")) == 4

    def test_missing_input_file(self, indexer, tmp_path):
        with pytest.raises(NotFoundError):
            indexer.insert(tmp_path / "nope.csv", tmp_path / "idx")

        assert not (tmp_path / "idx").exists()

    def test_rows_before_a_bad_row_stay_committed(self, indexer, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        path = write_csv("partial.csv", [["id", "name"], ["1", "Ann"], ["", "Nobody"], ["3", "Cid"]])

        with pytest.raises(MalformedInputError, match="Empty 'id' value on line 3"):
            indexer.insert(path, index)

        assert find(index, "*:*") == [["1"]]


@pytest.mark.unit
class TestUpdate:
    def test_update_creates_missing_index(self, indexer, people_csv, tmp_path, find):
        result = indexer.update(people_csv, tmp_path / "idx")

        assert result.mode is OpenMode.CREATE_OR_APPEND
        assert result.documents_written == 4
        assert result.documents_replaced == 0
        assert len(find(tmp_path / "idx", "*:*")) == 4

    def test_update_supersedes_by_key(self, indexer, people_csv, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)
        indexer.insert(people_csv, index, OpenMode.APPEND)
        changes = write_csv("changes.csv", [["id", "name", "city"], ["1", "John Smith", "Berlin"], ["5", "Eve", "Rome"]])

        result = indexer.update(changes, index)

        assert result.documents_written == 2
        assert result.documents_replaced == 2
        assert find(index, "id:1", "id,city") == [["1", "Berlin"]]
        assert find(index, "city:paris") == [["3"], ["3"]]
        assert find(index, "id:5", "name") == [["Eve"]]

    def test_update_is_idempotent(self, indexer, people_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.update(people_csv, index)
        result = indexer.update(people_csv, index)

        assert result.documents_replaced == 4
        assert len(find(index, "*:*")) == 4

    def test_last_row_wins_within_one_file(self, indexer, write_csv, tmp_path, find):
        path = write_csv("dupes.csv", [["id", "name"], ["1", "First"], ["1", "Second"]])

        indexer.update(path, tmp_path / "idx")

        assert find(tmp_path / "idx", "id:1", "name") == [["Second"]]


@pytest.mark.unit
class TestDrop:
    def test_drop_existing_then_missing(self, indexer, people_csv, tmp_path):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)

        assert indexer.drop(index) is True
        assert not index.exists()
        assert indexer.drop(index) is False

    def test_create_after_drop_starts_fresh(self, indexer, people_csv, write_csv, tmp_path, find):
        index = tmp_path / "idx"
        indexer.insert(people_csv, index)
        indexer.drop(index)

        other = write_csv("other.csv", [["id", "title"], ["10", "Dune"], ["11", "Emma"]])
        result = indexer.insert(other, index)

        assert result.documents_written == 2
        assert find(index, "*:*", "id,title") == [["10", "Dune"], ["11", "Emma"]]
        assert find(index, "name:smith") == []
