"""
FragmentStore tests: on-disk parse cache keyed by path and content.
"""
import json

from wfconvert.cache import CACHE_SCHEMA, FragmentStore


def test_save_and_load(tmp_path, parse, hello_wdl):
    store = FragmentStore(tmp_path / "store")
    wf, diags = parse(hello_wdl, "hello.wdl")
    path = store.save("hello.wdl", hello_wdl, wf, diags)
    assert path.endswith(".json")

    loaded, loaded_diags = store.load("hello.wdl", hello_wdl)
    assert loaded == wf
    assert loaded_diags == []


def test_diagnostics_are_cached(tmp_path, parse):
    text = "version 1.0\ntask t {\n  command <<< echo ~{missing} >>>\n}\n"
    store = FragmentStore(tmp_path)
    wf, diags = parse(text)
    store.save("t.wdl", text, wf, diags)
    _wf, cached = store.load("t.wdl", text)
    assert cached == diags


def test_changed_content_misses(tmp_path, parse, hello_wdl):
    store = FragmentStore(tmp_path)
    wf, diags = parse(hello_wdl)
    store.save("hello.wdl", hello_wdl, wf, diags)
    assert store.load("hello.wdl", hello_wdl + "\n") is None
    assert store.load("other.wdl", hello_wdl) is None


def test_stale_schema_is_ignored(tmp_path, parse, hello_wdl):
    store = FragmentStore(tmp_path)
    wf, diags = parse(hello_wdl)
    path = store.save("hello.wdl", hello_wdl, wf, diags)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    data["schema_version"] = CACHE_SCHEMA + 1
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f)
    assert store.load("hello.wdl", hello_wdl) is None


def test_digest_depends_on_origin_and_content():
    a = FragmentStore.digest("a.wdl", "x")
    assert a == FragmentStore.digest("a.wdl", "x")
    assert a != FragmentStore.digest("b.wdl", "x")
    assert a != FragmentStore.digest("a.wdl", "y")


def test_list_and_clear(tmp_path, parse, hello_wdl, chain_wdl):
    store = FragmentStore(tmp_path)
    for name, text in (("h.wdl", hello_wdl), ("c.wdl", chain_wdl)):
        wf, diags = parse(text, name)
        store.save(name, text, wf, diags)
    assert len(store.list_entries()) == 2
    assert store.clear() == 2
    assert store.list_entries() == []


def test_corrupt_entry_is_a_miss(tmp_path, parse, hello_wdl):
    store = FragmentStore(tmp_path)
    wf, diags = parse(hello_wdl)
    path = store.save("hello.wdl", hello_wdl, wf, diags)
    with open(path, "w", encoding="utf-8") as f:
        f.write("{not json")
    assert store.load("hello.wdl", hello_wdl) is None

    with open(path, "w", encoding="utf-8") as f:
        json.dump({"origin": "hello.wdl", "digest": "x", "timestamp": "t", "fragment": {"tasks": 3}}, f)
    assert store.load("hello.wdl", hello_wdl) is None

    store.save("hello.wdl", hello_wdl, wf, diags)
    loaded, _ = store.load("hello.wdl", hello_wdl)
    assert loaded == wf
