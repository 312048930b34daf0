"""
Semantic validation tests: names, references, types, scatter and structure.
"""
from wfconvert.diagnostics import Category, Level
from wfconvert.ir import Workflow, WorkflowCall
from wfconvert.semantic import Validator, validate
from wfconvert.types import Kind, TypeSpec

STEP = """version 1.0
task step {
  input {
    String x
  }
  command <<< echo ~{x} >>>
  output {
    String y = read_string(stdout())
  }
}
"""


def _categories(diags, level=Level.ERROR):
    return [d.category for d in diags if d.level is level]


def test_valid_workflows_have_no_diagnostics(load, hello_wdl, scatter_wdl, chain_wdl):
    for text in (hello_wdl, scatter_wdl, chain_wdl):
        ok, diags = validate(load(text))
        assert ok
        assert diags == []


def test_validation_does_not_mutate(load, hello_wdl):
    wf = load(hello_wdl)
    before = wf.model_copy(deep=True)
    validate(wf)
    assert wf == before


def test_unknown_callee(load):
    ok, diags = validate(load(STEP + "workflow w {\n  call nope\n}\n"))
    assert not ok
    assert _categories(diags) == [Category.REFERENCE]
    assert "nope" in diags[0].message
    assert diags[0].location.call == "nope"


def test_unknown_call_input(load):
    ok, diags = validate(load(STEP + 'workflow w {\n  call step { input: x = "a", z = "b" }\n}\n'))
    assert _categories(diags) == [Category.REFERENCE]
    assert "no input named 'z'" in diags[0].message


def test_reference_to_undeclared_call(load):
    ok, diags = validate(load(STEP + "workflow w {\n  call step { input: x = ghost.y }\n}\n"))
    assert not ok
    assert _categories(diags) == [Category.REFERENCE]
    assert "ghost" in diags[0].message


def test_reference_to_missing_output(load):
    ok, diags = validate(load(STEP + """workflow w {
  call step as a { input: x = "s" }
  call step as b { input: x = a.nothing }
}
"""))
    assert _categories(diags) == [Category.REFERENCE]
    assert "no output named 'nothing'" in diags[0].message


def test_unsupplied_required_input_is_a_warning(load, hello_wdl):
    text = hello_wdl.replace("call hello { input: name = name }", "call hello")
    ok, diags = validate(load(text))
    assert ok
    assert [d.level for d in diags] == [Level.WARNING]
    assert diags[0].category is Category.REFERENCE
    assert "hello_name" in diags[0].message


def test_type_mismatch(load, hello_wdl):
    text = hello_wdl.replace("input: name = name", "input: name = 3")
    ok, diags = validate(load(text))
    assert not ok
    assert _categories(diags) == [Category.TYPE]
    assert "expects String" in diags[0].message


def test_optional_value_into_required_input(load, hello_wdl):
    text = hello_wdl.replace("  input {\n    String name\n  }\n  call", "  input {\n    String? name\n  }\n  call")
    ok, diags = validate(load(text))
    assert _categories(diags) == [Category.TYPE]


def test_scatter_over_array(load, scatter_wdl):
    v = Validator(load(scatter_wdl))
    ok, diags = v.validate()
    assert ok
    wf = v.workflow
    counts = wf.outputs[0].expression
    assert v.type_of(counts) == TypeSpec.array(TypeSpec.of(Kind.STRING))


def test_scatter_over_file_is_an_error(load, scatter_wdl):
    text = scatter_wdl.replace("Array[File] files", "File files")
    ok, diags = validate(load(text))
    assert not ok
    assert _categories(diags) == [Category.SCATTER]
    scatter_diag = next(d for d in diags if d.category is Category.SCATTER)
    assert "an Array is required" in scatter_diag.message
    assert scatter_diag.location.call == "count"


def test_scatter_over_optional_array_warns(load, scatter_wdl):
    text = scatter_wdl.replace("Array[File] files", "Array[File]? files")
    ok, diags = validate(load(text))
    assert ok
    assert [(d.level, d.category) for d in diags] == [(Level.WARNING, Category.SCATTER)]


def test_gathered_output_must_be_an_array(load, scatter_wdl):
    text = scatter_wdl.replace("Array[String] counts", "String counts")
    ok, diags = validate(load(text))
    assert _categories(diags) == [Category.TYPE]
    assert "workflow output 'counts'" in diags[0].message


def test_duplicate_call_ids(load, chain_wdl):
    text = chain_wdl.replace("call step as C { input: x = B.y }", "call step as B { input: x = A.y }")
    text = text.replace("String last = C.y", "String last = A.y")
    ok, diags = validate(load(text))
    assert not ok
    assert Category.NAME in _categories(diags)


def test_call_id_shadowing_input(load):
    ok, diags = validate(load(STEP + """workflow w {
  input {
    String x
  }
  call step as x { input: x = x }
}
"""))
    assert Category.NAME in _categories(diags)


def test_duplicate_task_declarations(load):
    ok, diags = validate(load("""version 1.0
task t {
  input {
    String a
  }
  command <<< echo ~{a} >>>
  output {
    String a = "again"
  }
}
"""))
    assert _categories(diags) == [Category.NAME]
    assert diags[0].location.task == "t"


def test_cycle_is_a_structure_error(load):
    ok, diags = validate(load(STEP + """workflow w {
  call step as a { input: x = b.y }
  call step as b { input: x = a.y }
}
"""))
    assert not ok
    assert _categories(diags) == [Category.STRUCTURE]
    assert "a -> b -> a" in diags[0].message or "b -> a -> b" in diags[0].message


def test_every_check_runs(load):
    """Errors from different categories are all reported in one pass."""
    ok, diags = validate(load(STEP + """workflow w {
  input {
    File single
  }
  call nope
  scatter (s in single) {
    call step { input: x = s }
  }
  call step as a { input: x = b.y }
  call step as b { input: x = a.y }
}
"""))
    cats = _categories(diags)
    assert Category.REFERENCE in cats
    assert Category.SCATTER in cats
    assert Category.STRUCTURE in cats
    assert cats.index(Category.REFERENCE) < cats.index(Category.SCATTER) < cats.index(Category.STRUCTURE)


def test_subworkflows_are_validated_in_root_scope(load, hello_wdl):
    root = load(hello_wdl)
    root.subworkflows["lib.inner"] = Workflow(
        name="inner", calls=[WorkflowCall(id="h", callee="hello", inputs={}),
                             WorkflowCall(id="m", callee="missing")])
    ok, diags = validate(root)
    assert not ok
    assert _categories(diags) == [Category.REFERENCE]
    assert "missing" in diags[-1].message
    assert _categories(diags, Level.WARNING) == [Category.REFERENCE]


def test_duplicate_task_name_reports_only_name_errors(load, hello_wdl):
    wf = load(hello_wdl)
    wf.tasks["other"] = wf.tasks["hello"].model_copy(deep=True)
    ok, diags = validate(wf)
    assert not ok
    assert {d.category for d in diags} == {Category.NAME}
