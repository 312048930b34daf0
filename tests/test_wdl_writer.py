"""
WDL writer tests: stable re-emission of parsed documents.
"""
import pytest

from wfconvert.errors import UnsupportedConstructError
from wfconvert.imports import resolve
from wfconvert.ir import Workflow
from wfconvert.writers import WdlWriter


def test_reemission_is_stable(parse, load, hello_wdl, scatter_wdl, chain_wdl):
    """Writing, parsing the output and writing again yields the same text."""
    for text in (hello_wdl, scatter_wdl, chain_wdl):
        first = WdlWriter().write(load(text))
        wf, diags = parse(first, "again.wdl")
        assert diags == [], first
        assert WdlWriter().write(wf) == first


def test_hello_layout(load, hello_wdl):
    text = WdlWriter().write(load(hello_wdl))
    assert text.startswith("version 1.0\n\ntask hello {\n")
    assert '    docker: "ubuntu:22.04"' in text
    assert '    memory: "2 GB"' in text
    assert "  call hello {\n    input:\n      name = name\n  }" in text
    assert "    File greeting = hello.out" in text
    assert text.endswith("}\n")


def test_scatter_block_is_regrouped(load, scatter_wdl):
    text = WdlWriter().write(load(scatter_wdl))
    assert "  scatter (f in files) {\n    call count {\n      input:\n        f = f\n    }\n  }" in text


def test_tasks_are_sorted(load):
    text = WdlWriter().write(load("""version 1.0
task zeta {
  command <<< echo z >>>
}
task alpha {
  command <<< echo a >>>
}
"""))
    assert text.index("task alpha") < text.index("task zeta")


def test_meta_round_trips(parse, load):
    wf = load("""version 1.0
task t {
  input {
    File reads
  }
  command <<< cat ~{reads} >>>
  meta {
    description: "Concatenate \\"reads\\""
    tags: ["io", "demo"]
    retries: 2
  }
  parameter_meta {
    reads: { description: "FASTQ input", optional: false }
  }
}
""")
    text = WdlWriter().write(wf)
    again, diags = parse(text)
    assert diags == []
    assert again.tasks["t"].meta == wf.tasks["t"].meta
    assert again.tasks["t"].parameter_meta == {"reads": {"description": "FASTQ input", "optional": False}}


def test_namespaced_tasks_are_renamed(parser, write_wdl):
    write_wdl("lib.wdl", """version 1.0
task t {
  command <<< echo lib >>>
}
""")
    a = write_wdl("a.wdl", """version 1.0
import "lib.wdl"
task t {
  command <<< echo local >>>
}
workflow w {
  call t
  call lib.t as other
}
""")
    fragment, _ = parser.parse_file(a)
    wf, _ = resolve(fragment, a.parent, parser.parse_file)
    text = WdlWriter().write(wf)
    assert "task lib_t {" in text
    assert "  call lib_t as other" in text
    assert "  call t\n" in text


def test_subworkflows_are_refused(load, hello_wdl):
    wf = load(hello_wdl)
    wf.subworkflows["lib.inner"] = Workflow(name="inner")
    with pytest.raises(UnsupportedConstructError):
        WdlWriter().write(wf)


def test_version_is_configurable(load, hello_wdl):
    assert WdlWriter(version="1.1").write(load(hello_wdl)).startswith("version 1.1\n")
