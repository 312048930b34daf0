"""
End-to-end conversion tests: single files, formats, failures and batch runs.
"""
import json

import pytest
import yaml

from wfconvert.cache import FragmentStore
from wfconvert.config import Settings
from wfconvert.converter import BatchFailure, BatchSuccess, Converter
from wfconvert.diagnostics import Category
from wfconvert.errors import (CircularImportError, ConfigError, ImportNotFoundError, ParseError,
                             ValidationError)
from wfconvert.imports import CancelToken, ImportCache

BROKEN = """version 1.0
task broken {
  command <<< echo >>>
  output {
    File f =
  }
}
"""

LIB = """version 1.0
task t {
  input {
    String x
  }
  command <<< echo ~{x} >>>
  output {
    String y = read_string(stdout())
  }
}
"""

USES_LIB = """version 1.0
import "lib.wdl" as lib
workflow {name} {{
  call lib.t {{ input: x = "{name}" }}
  output {{
    String y = t.y
  }}
}}
"""


def test_convert_file_writes_cwl(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    dst = tmp_path / "out" / "hello.cwl"
    result = Converter().convert_file(src, dst)
    assert result.output_path == str(dst)
    assert result.target_format == "cwl"
    assert result.diagnostics == []
    doc = yaml.safe_load(dst.read_text())
    assert doc["$graph"][0]["id"] == "main"
    assert result.workflow.name == "greet"


def test_destination_suffix_picks_format(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    converter = Converter()
    assert converter.convert_file(src, tmp_path / "h.json").target_format == "cwl-json"
    json.loads((tmp_path / "h.json").read_text())
    assert converter.convert_file(src, tmp_path / "h.wdl").target_format == "wdl"
    assert (tmp_path / "h.wdl").read_text().startswith("version 1.0")
    assert converter.convert_file(src, tmp_path / "h.txt").target_format == "cwl"


def test_explicit_target_overrides_suffix(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    result = Converter(target_format="wdl").convert_file(src, tmp_path / "h.cwl")
    assert result.target_format == "wdl"


def test_unknown_target_format():
    with pytest.raises(ConfigError):
        Converter(target_format="nextflow")


def test_missing_import_raises(write_wdl):
    src = write_wdl("a.wdl", 'version 1.0\nimport "gone.wdl"\nworkflow w {\n}\n')
    with pytest.raises(ImportNotFoundError) as exc:
        Converter().convert_file(src)
    assert "gone.wdl" in str(exc.value)


def test_circular_import_raises_circular_import_error(write_wdl):
    write_wdl("b.wdl", 'version 1.0\nimport "a.wdl"\n')
    src = write_wdl("a.wdl", 'version 1.0\nimport "b.wdl"\nworkflow w {\n}\n')
    with pytest.raises(CircularImportError) as exc:
        Converter(target_format="cwl").convert_file(src)
    assert "circular import" in str(exc.value)
    assert not isinstance(exc.value, ImportNotFoundError)


def test_parse_error_raises(write_wdl):
    src = write_wdl("bad.wdl", BROKEN)
    with pytest.raises(ParseError) as exc:
        Converter().convert_file(src)
    assert exc.value.location.task == "broken"


def test_validation_error_carries_category(write_wdl, scatter_wdl):
    src = write_wdl("s.wdl", scatter_wdl.replace("Array[File] files", "File files"))
    with pytest.raises(ValidationError) as exc:
        Converter().convert_file(src)
    assert exc.value.category == "scatter"


def test_best_effort_reports_instead_of_raising(write_wdl, hello_wdl):
    src = write_wdl("h.wdl", hello_wdl.replace("call hello { input: name = name }", "call nope"))
    result = Converter(best_effort=True).convert_file(src)
    assert any(d.is_error and d.category is Category.REFERENCE for d in result.diagnostics)
    assert "#nope" in result.text


def test_warnings_are_collected(write_wdl, hello_wdl):
    src = write_wdl("h.wdl", hello_wdl.replace("call hello { input: name = name }", "call hello"))
    result = Converter().convert_file(src)
    assert [d.category for d in result.warnings] == [Category.REFERENCE]
    quiet = Converter(validate=False).convert_file(src)
    assert quiet.warnings == []


def test_strict_mode_stops_at_parse_error():
    with pytest.raises(ParseError):
        Converter(strict=True).convert_text(BROKEN, "inline.wdl")


def test_convert_text(tmp_path, hello_wdl):
    result = Converter().convert_text(hello_wdl, base_dir=tmp_path, target_format="cwl-json")
    assert json.loads(result.text)["cwlVersion"] == "v1.2"
    assert result.output_path is None


def test_missing_source_is_os_error(tmp_path):
    with pytest.raises(OSError):
        Converter().convert_file(tmp_path / "nope.wdl")


def test_analyze(write_wdl, chain_wdl):
    summary = Converter().analyze(write_wdl("chain.wdl", chain_wdl))
    assert summary["workflow"] == "chain"
    assert summary["tasks"] == ["step"]
    assert summary["max_parallelism"] == 1
    assert summary["diagnostics"] == []


def test_convert_dir_ledger(write_wdl, hello_wdl, scatter_wdl, tmp_path):
    write_wdl("src/hello.wdl", hello_wdl)
    write_wdl("src/nested/scatter.wdl", scatter_wdl)
    write_wdl("src/bad.wdl", BROKEN)
    out = tmp_path / "out"
    batch = Converter().convert_dir(tmp_path / "src", out, max_workers=2)

    assert [o.source for o in batch.outcomes] == sorted(o.source for o in batch.outcomes)
    assert len(batch.outcomes) == 3
    assert len(batch.succeeded) == 2
    assert not batch.ok
    failure = batch.failed[0]
    assert isinstance(failure, BatchFailure)
    assert failure.source.endswith("bad.wdl")
    assert failure.category == "parse"
    assert failure.diagnostics[0].location.task == "broken"
    assert (out / "hello.cwl").is_file()
    assert (out / "nested" / "scatter.cwl").is_file()
    assert not (out / "bad.cwl").exists()

    ledger = batch.to_dict()
    assert [o["ok"] for o in ledger["outcomes"]] == [False, True, True]


def test_convert_dir_without_recursion(write_wdl, hello_wdl, tmp_path):
    write_wdl("src/hello.wdl", hello_wdl)
    write_wdl("src/nested/again.wdl", hello_wdl)
    batch = Converter().convert_dir(tmp_path / "src", tmp_path / "out", recursive=False,
                                    target_format="cwl-json")
    assert len(batch.outcomes) == 1
    assert isinstance(batch.outcomes[0], BatchSuccess)
    assert batch.outcomes[0].target.endswith("hello.json")


def test_convert_dir_shares_import_cache(write_wdl, tmp_path):
    write_wdl("src/lib.wdl", LIB)
    write_wdl("src/a.wdl", USES_LIB.format(name="a"))
    write_wdl("src/b.wdl", USES_LIB.format(name="b"))
    cache = ImportCache()
    batch = Converter(cache=cache).convert_dir(tmp_path / "src", tmp_path / "out", max_workers=4)
    assert batch.ok, batch.to_dict()
    assert (cache.misses, cache.hits) == (1, 1)


def test_cancelled_batch(write_wdl, hello_wdl, tmp_path):
    write_wdl("src/one.wdl", hello_wdl)
    write_wdl("src/two.wdl", hello_wdl)
    token = CancelToken()
    token.cancel()
    batch = Converter().convert_dir(tmp_path / "src", tmp_path / "out", cancel=token)
    assert len(batch.cancelled) == 2
    assert all(o.category == "cancelled" for o in batch.failed)
    assert not (tmp_path / "out").exists()


def test_convert_dir_missing_source(tmp_path):
    with pytest.raises(FileNotFoundError):
        Converter().convert_dir(tmp_path / "absent", tmp_path / "out")


def test_fragment_store_reuses_parses(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    store = FragmentStore(tmp_path / "cache")
    converter = Converter(store=store)
    first = converter.convert_file(src, target_format="cwl")
    assert len(store.list_entries()) == 1

    def fail(*_args, **_kwargs):
        raise AssertionError("parser should not run on a store hit")

    converter.parser.parse_text = fail
    second = converter.convert_file(src, target_format="cwl")
    assert second.text == first.text


def test_corrupt_store_entry_is_reparsed(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    store = FragmentStore(tmp_path / "cache")
    first = Converter(store=store).convert_file(src, target_format="cwl")
    [entry] = store.list_entries()
    with open(entry, "w", encoding="utf-8") as f:
        f.write("{not json")

    second = Converter(store=store).convert_file(src, target_format="cwl")
    assert second.text == first.text
    with open(entry, encoding="utf-8") as f:
        assert json.load(f)["fragment"]["tasks"]


def test_settings_cache_dir_enables_store(tmp_path):
    converter = Converter(settings=Settings(cache_dir=str(tmp_path / "c")))
    assert converter.store is not None
    assert (tmp_path / "c").is_dir()
