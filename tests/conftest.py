"""
Test configuration and fixtures for the wfconvert test suite.
"""
import sys
import pytest
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger

from wfconvert.parser import WdlParser


HELLO_WDL = """version 1.0

task hello {
  input {
    String name
  }
  command <<<
    echo "Hello ~{name}" > out.txt
  >>>
  output {
    File out = "out.txt"
  }
  runtime {
    docker: "ubuntu:22.04"
    memory: "2 GB"
    cpu: 2
  }
}

workflow greet {
  input {
    String name
  }
  call hello { input: name = name }
  output {
    File greeting = hello.out
  }
}
"""

SCATTER_WDL = """version 1.0

task count {
  input {
    File f
  }
  command <<<
    wc -l < ~{f}
  >>>
  output {
    String n = read_string(stdout())
  }
}

workflow many {
  input {
    Array[File] files
  }
  scatter (f in files) {
    call count { input: f = f }
  }
  output {
    Array[String] counts = count.n
  }
}
"""

CHAIN_WDL = """version 1.0

task step {
  input {
    String x
  }
  command <<<
    echo ~{x}
  >>>
  output {
    String y = read_string(stdout())
  }
}

workflow chain {
  input {
    String seed
  }
  call step as A { input: x = seed }
  call step as B { input: x = A.y }
  call step as C { input: x = B.y }
  output {
    String last = C.y
  }
}
"""


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep loguru sinks added by CLI tests from leaking into other tests."""
    yield
    logger.remove()
    logger.disable("wfconvert")


@pytest.fixture
def parser() -> WdlParser:
    return WdlParser()


@pytest.fixture
def parse(parser):
    """Parse WDL text and return (workflow, diagnostics)."""
    def _parse(text: str, origin: str = "test.wdl"):
        return parser.parse_text(text, origin)
    return _parse


@pytest.fixture
def load(parser):
    """Parse WDL text and fail the test on any diagnostic."""
    def _load(text: str, origin: str = "test.wdl"):
        workflow, diagnostics = parser.parse_text(text, origin)
        assert diagnostics == [], [str(d) for d in diagnostics]
        return workflow
    return _load


@pytest.fixture
def write_wdl(tmp_path):
    """Write a WDL file under tmp_path and return its path."""
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def hello_wdl() -> str:
    return HELLO_WDL


@pytest.fixture
def scatter_wdl() -> str:
    return SCATTER_WDL


@pytest.fixture
def chain_wdl() -> str:
    return CHAIN_WDL
