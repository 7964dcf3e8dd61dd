"""Unit tests for the command-line entry point."""

import io
import logging

import pytest

from csv_indexer.cli import NO_MATCHES_MESSAGE, USAGE, build_argument_parser, main, write_result
from csv_indexer.config import get_settings
from csv_indexer.domain.search import FindResult, ResultRow


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def index_dir(tmp_path):
    return tmp_path / "people-index"


@pytest.fixture
def created(index_dir, people_csv, capsys):
    assert main(["create", str(index_dir), "from", str(people_csv)]) == 0
    capsys.readouterr()
    return index_dir


def _find(index_dir, query, count="all", fields="id,name"):
    return main(["find", count, "return", fields, "from", str(index_dir), "where", query])


@pytest.mark.unit
class TestArguments:
    def test_no_arguments_prints_usage(self, capsys):
        assert main([]) == 1

        assert "Indexer, version 1.0.0" in capsys.readouterr().err

    def test_usage_lists_every_command(self):
        for command in ("create", "append", "update", "drop", "find"):
            assert f"csv-indexer {command}" in USAGE

    def test_usage_states_index_directory_comes_first(self):
        assert "index directory comes first" in USAGE
        assert "csv-indexer create [ index/dir ] from [ input.csv ]" in USAGE

    def test_swapped_arguments_leave_the_csv_untouched(self, people_csv, tmp_path):
        original = people_csv.read_bytes()

        assert main(["create", str(people_csv), "from", str(tmp_path / "idx")]) == 1

        assert people_csv.read_bytes() == original

    @pytest.mark.parametrize(
        "argv",
        [
            ["create", "idx", "into", "people.csv"],
            ["create", "idx"],
            ["find", "0", "return", "id", "from", "idx", "where", "x"],
            ["find", "some", "return", "id", "from", "idx", "where", "x"],
            ["find", "all", "fields", "id", "from", "idx", "where", "x"],
            ["rebuild", "idx"],
        ],
    )
    def test_malformed_invocations_exit_with_usage_error(self, argv):
        with pytest.raises(SystemExit) as excinfo:
            main(argv)

        assert excinfo.value.code == 2

    def test_count_accepts_all_case_insensitively(self):
        args = build_argument_parser().parse_args(["find", "ALL", "return", "id", "from", "idx", "where", "x"])

        assert args.count is None

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            main(["--version"])

        assert excinfo.value.code == 0
        assert "1.0.0" in capsys.readouterr().out


@pytest.mark.unit
class TestIndexCommands:
    def test_create_reports_progress_on_stderr(self, index_dir, people_csv, capsys):
        assert main(["create", str(index_dir), "from", str(people_csv)]) == 0

        captured = capsys.readouterr()
        assert captured.out == ""
        assert f"Creating index {index_dir} from {people_csv} ... Finished in" in captured.err

    def test_append_to_missing_index_fails(self, index_dir, people_csv, capsys):
        assert main(["append", str(index_dir), "from", str(people_csv)]) == 1

        err = capsys.readouterr().err
        assert "failed." in err
        assert "Error: Index not found" in err

    def test_update_reports_progress(self, created, people_csv, capsys):
        assert main(["update", str(created), "from", str(people_csv)]) == 0

        assert f"Updating index {created} with {people_csv}" in capsys.readouterr().err

    def test_missing_id_column_is_an_error(self, index_dir, write_csv, capsys):
        path = write_csv("noid.csv", [["name"], ["Ann"]])

        assert main(["create", str(index_dir), "from", str(path)]) == 1
        assert "Error: Input file has no 'id' column" in capsys.readouterr().err

    def test_drop_is_idempotent(self, created, capsys):
        assert main(["drop", str(created)]) == 0
        assert main(["drop", str(created)]) == 0

        assert f"Index {created} did not exist." in capsys.readouterr().err


@pytest.mark.unit
class TestFindCommand:
    def test_prints_header_and_rows(self, created, capsys):
        assert _find(created, "city:paris") == 0

        assert capsys.readouterr().out == "id,name\n1,John Smith\n3,Johnny Smyth\n"

    def test_count_limits_rows(self, created, capsys):
        assert _find(created, "*:*", count="2", fields="name") == 0

        assert capsys.readouterr().out == "name\nJohn Smith\nJane Doe\n"

    def test_no_matches_is_not_an_error(self, created, capsys):
        assert _find(created, "name:nobody") == 0

        captured = capsys.readouterr()
        assert captured.out == ""
        assert NO_MATCHES_MESSAGE in captured.err

    def test_syntax_error(self, created, capsys):
        assert _find(created, "name:(smith") == 1

        assert "Error: Cannot parse 'name:(smith'" in capsys.readouterr().err

    def test_missing_index(self, index_dir, capsys):
        assert _find(index_dir, "*:*") == 1

        assert "Error: Index not found" in capsys.readouterr().err

    def test_values_are_csv_quoted(self, index_dir, write_csv, capsys):
        path = write_csv("quoted.csv", [["id", "note"], ["1", 'a, "b"']])
        main(["create", str(index_dir), "from", str(path)])
        capsys.readouterr()

        assert _find(index_dir, "id:1", fields="note") == 0
        assert capsys.readouterr().out == 'note\n"a, ""b"""\n'


@pytest.mark.unit
class TestEnvironment:
    def test_invalid_configuration(self, monkeypatch, capsys):
        monkeypatch.setenv("CSV_INDEXER_LOG_LEVEL", "chatty")

        assert main(["drop", "whatever"]) == 1
        assert "Invalid configuration" in capsys.readouterr().err

    def test_metrics_textfile_written(self, monkeypatch, created, tmp_path, capsys):
        target = tmp_path / "metrics" / "csv_indexer.prom"
        monkeypatch.setenv("CSV_INDEXER_METRICS_TEXTFILE", str(target))
        get_settings.cache_clear()

        assert _find(created, "*:*") == 0
        assert "csv_indexer_commands_total" in target.read_text(encoding="utf-8")

    def test_output_delimiter(self, monkeypatch, created, capsys):
        monkeypatch.setenv("CSV_INDEXER_OUTPUT_DELIMITER", ";")
        get_settings.cache_clear()

        assert _find(created, "id:2") == 0
        assert capsys.readouterr().out == "id;name\n2;Jane Doe\n"


@pytest.mark.unit
def test_write_result():
    result = FindResult(
        fields=("id", "city"),
        query="*:*",
        rows=(ResultRow(key="1", values=(("id", "1"), ("city", "Paris"))),),
    )
    stream = io.StringIO()

    write_result(result, stream, "\t")

    assert stream.getvalue() == "id\tcity\n1\tParis\n"
