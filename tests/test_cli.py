"""
CLI and configuration tests.
"""
import json

import pytest

from wfconvert import __version__
from wfconvert.cli import build_parser, main
from wfconvert.config import Settings
from wfconvert.errors import ConfigError

CYCLE = """version 1.0
task step {
  input {
    String x
  }
  command <<< echo ~{x} >>>
  output {
    String y = read_string(stdout())
  }
}
workflow loop {
  call step as a { input: x = b.y }
  call step as b { input: x = a.y }
}
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WFCONVERT_LOG_LEVEL", "WFCONVERT_OUTPUT_FORMAT", "WFCONVERT_CACHE_DIR", "WFCONVERT_MAX_WORKERS"):
        monkeypatch.delenv(name, raising=False)


def test_convert(write_wdl, hello_wdl, tmp_path, capsys):
    src = write_wdl("hello.wdl", hello_wdl)
    dst = tmp_path / "hello.cwl"
    assert main(["convert", str(src), str(dst)]) == 0
    assert dst.read_text().startswith("#!/usr/bin/env cwl-runner")
    assert "wrote" in capsys.readouterr().out


def test_convert_reports_validator_warnings(write_wdl, hello_wdl, tmp_path, capsys):
    src = write_wdl("hello.wdl", hello_wdl.replace("call hello { input: name = name }", "call hello"))
    assert main(["convert", "--validate", str(src), str(tmp_path / "h.cwl")]) == 0
    assert "[WARNING]" in capsys.readouterr().err


def test_convert_failure_exit_code(write_wdl, tmp_path, capsys):
    src = write_wdl("bad.wdl", "version 1.0\ntask t {\n  output {\n    File f =\n  }\n}\n")
    assert main(["convert", str(src), str(tmp_path / "bad.cwl")]) == 1
    assert "[Error]" in capsys.readouterr().err
    assert not (tmp_path / "bad.cwl").exists()


def test_missing_source_is_io_error(tmp_path):
    assert main(["convert", str(tmp_path / "nope.wdl"), str(tmp_path / "x.cwl")]) == 2


def test_undecodable_source_is_io_error(tmp_path, capsys):
    src = tmp_path / "latin.wdl"
    src.write_bytes(b"version 1.0\n\xff\xfe task t {}\n")
    assert main(["convert", str(src), str(tmp_path / "x.cwl")]) == 2
    assert main(["parse", str(src)]) == 2
    assert "[Error]" in capsys.readouterr().err


def test_verbose_flag_after_subcommand(write_wdl, hello_wdl, tmp_path):
    src = write_wdl("hello.wdl", hello_wdl)
    dst = tmp_path / "hello.cwl"
    assert main(["convert", str(src), str(dst), "-v"]) == 0
    assert dst.exists()


@pytest.mark.parametrize("argv, verbose", [
    (["parse", "x.wdl"], False),
    (["-v", "parse", "x.wdl"], True),
    (["parse", "x.wdl", "-v"], True),
    (["analyze", "--verbose", "x.wdl"], True),
])
def test_verbose_flag_positions(argv, verbose):
    assert build_parser().parse_args(argv).verbose is verbose


def test_parse_prints_ir(write_wdl, hello_wdl, capsys):
    assert main(["parse", str(write_wdl("hello.wdl", hello_wdl))]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["name"] == "greet"
    assert list(data["tasks"]) == ["hello"]


def test_parse_with_errors(write_wdl, capsys):
    src = write_wdl("t.wdl", "version 1.0\ntask t {\n  command <<< echo ~{nope} >>>\n}\n")
    assert main(["parse", str(src)]) == 1
    assert "undeclared name 'nope'" in capsys.readouterr().err


def test_analyze(write_wdl, chain_wdl, capsys):
    assert main(["analyze", str(write_wdl("chain.wdl", chain_wdl))]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["levels"] == [["A"], ["B"], ["C"]]


def test_analyze_cycle(write_wdl, capsys):
    assert main(["analyze", str(write_wdl("loop.wdl", CYCLE))]) == 1
    assert json.loads(capsys.readouterr().out)["is_dag"] is False


def test_convert_dir(write_wdl, hello_wdl, tmp_path, capsys):
    write_wdl("src/hello.wdl", hello_wdl)
    assert main(["convert-dir", str(tmp_path / "src"), str(tmp_path / "out"), "--to", "cwl-json"]) == 0
    assert (tmp_path / "out" / "hello.json").is_file()
    write_wdl("src/loop.wdl", CYCLE)
    assert main(["convert-dir", str(tmp_path / "src"), str(tmp_path / "out")]) == 1
    out = capsys.readouterr().out
    assert "FAIL" in out
    assert "1 converted, 1 failed" in out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out


def test_bad_environment_is_reported(monkeypatch, write_wdl, hello_wdl, tmp_path, capsys):
    monkeypatch.setenv("WFCONVERT_MAX_WORKERS", "zero")
    assert main(["parse", str(write_wdl("h.wdl", hello_wdl))]) == 1
    assert "WFCONVERT_MAX_WORKERS" in capsys.readouterr().err


def test_settings_from_env():
    settings = Settings.from_env({})
    assert settings == Settings()
    settings = Settings.from_env({"WFCONVERT_LOG_LEVEL": "debug", "WFCONVERT_OUTPUT_FORMAT": "wdl",
                                  "WFCONVERT_CACHE_DIR": "/tmp/wf", "WFCONVERT_MAX_WORKERS": "8"})
    assert settings.log_level == "DEBUG"
    assert settings.output_format == "wdl"
    assert settings.cache_dir == "/tmp/wf"
    assert settings.max_workers == 8


@pytest.mark.parametrize("env", [
    {"WFCONVERT_LOG_LEVEL": "loud"},
    {"WFCONVERT_OUTPUT_FORMAT": "nextflow"},
    {"WFCONVERT_MAX_WORKERS": "0"},
])
def test_invalid_settings(env):
    with pytest.raises(ConfigError):
        Settings.from_env(env)
