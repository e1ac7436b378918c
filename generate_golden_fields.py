#!/usr/bin/env python3
"""
Fill out_listing (and out_stdout/steps for error-free programs) in a golden YAML.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

import io
import os
import sys

import yaml

from config import load_config
from isa import format_listing
from processor import ControlUnit, Datapath
from translator import CompileError, translate


def run_source(src_code, stdin_text, cfg):
    program = translate(src_code)
    out = io.StringIO()
    dp = Datapath(io.BytesIO(stdin_text.encode("latin-1")), out, tape_cells=cfg["tape_cells"])
    cu = ControlUnit(program, dp, step_limit=cfg["step_limit"])
    cu.run()
    return program, out.getvalue(), cu.step


def main(path):
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)

    if not isinstance(doc, dict) or "source" not in doc:
        print("No 'source' found in YAML, nothing to compile")
        sys.exit(2)

    target = doc.setdefault("expect", {})
    if "error" in target:
        # error records keep their hand-written expectations
        try:
            target["out_listing"] = format_listing(translate(doc["source"]))
        except CompileError:
            pass
    else:
        cfg = load_config(doc.get("config"))
        program, out, steps = run_source(doc["source"], str(doc.get("in_stdin", "")), cfg)
        target["out_listing"] = format_listing(program)
        target["out_stdout"] = out
        target["steps"] = steps

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with out_listing.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
