"""Golden-test runner for the token -> VM pipeline.

This test loads golden YAML records, compiles the source, runs it on the
processor and compares produced outputs (stdout, listing, step count, tape,
debug trace, errors) against the expectations in the golden files.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

import pytest

import processor
from config import load_config
from isa import format_listing
from processor import ControlUnit, Datapath, ExecutionError
from translator import CompileError, translate


def _mismatch(msg_title: str, got_text: str, expected_text: str) -> str:
    return f"{msg_title}\n--- got ---\n{got_text!r}\n--- expected ---\n{expected_text!r}"


@pytest.mark.golden_test("golden/*.yaml")
def test_translator_and_vm(golden: Any, tmp_path: Path) -> None:  # noqa: C901
    """Run one golden record: compile, run and compare outputs."""
    assert "__yaml_load_error__" not in golden, golden.get("__yaml_load_error__")

    expect = golden.get("expect") or {}
    stdin = io.BytesIO(str(golden.get("in_stdin", "")).encode("latin-1"))
    stdout = io.StringIO()
    cfg = load_config(golden.get("config"))

    log_path = tmp_path / "konamicode.log"
    processor.init_logging("konamicode", logfile=str(log_path), debug=True)

    error: Exception | None = None
    program = None
    cu = None
    try:
        program = translate(golden.get("source", ""))
        dp = Datapath(stdin, stdout, tape_cells=cfg["tape_cells"])
        cu = ControlUnit(program, dp, step_limit=cfg["step_limit"])
        cu.run()
    except (CompileError, ExecutionError) as e:
        error = e

    # 1) errors
    if "error" in expect:
        assert error is not None, f"expected {expect['error']}, got success"
        assert type(error).__name__ == expect["error"]
        if "error_message" in expect:
            assert str(error) == expect["error_message"]
    elif error is not None:
        raise AssertionError(f"unexpected {type(error).__name__}: {error}")

    # 2) listing
    if "out_listing" in expect:
        assert program is not None
        got = format_listing(program)
        exp = expect["out_listing"].strip()
        if got != exp:
            raise AssertionError(_mismatch("listing mismatch", got, exp))

    # 3) stdout
    if "out_stdout" in expect:
        got_out = stdout.getvalue()
        if got_out != expect["out_stdout"]:
            raise AssertionError(_mismatch("stdout mismatch", got_out, expect["out_stdout"]))

    # 4) step count, also checked against the per-step debug trace
    if "steps" in expect:
        assert cu is not None
        assert cu.step == int(expect["steps"]), f"steps mismatch: got {cu.step} expected {expect['steps']}"
        for h in logging.getLogger().handlers:
            h.flush()
        trace = [ln for ln in log_path.read_text(encoding="utf-8").splitlines() if "STEP:" in ln]
        assert len(trace) == cu.step

    # 5) tape cells
    if "tape" in expect:
        assert cu is not None
        for k, v in expect["tape"].items():
            assert cu.dp.tape[int(k)] == int(v), f"tape[{k}] mismatch: got {cu.dp.tape[int(k)]} expected {v}"
