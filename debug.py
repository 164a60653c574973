"""Scratch runner for the reduction and Gamma code generation.

Edit the cases below freely. Every run overwrites `debug_output.txt` in the
current directory with the reduced terms and the generated task code.
"""

from __future__ import annotations

import contextlib
import io
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from rdmgen.library.active import Active
from rdmgen.library.index import parse_ops
from rdmgen.main_tools import driv


def _reset_output(output_file: str) -> None:
    Path(output_file).write_text("", encoding="utf-8")


def _append(output_file: str, text: str) -> None:
    with open(output_file, "a", encoding="utf-8") as f:
        f.write(text)


def _section(output_file: str, title: str) -> None:
    _append(output_file, f"\n// ==== {title} ====\n")


def _dump_terms(output_file: str, act: Active) -> None:
    buf = io.StringIO()
    with contextlib.redirect_stdout(buf):
        act.print("  ")
    _append(output_file, buf.getvalue())


def debug_run(output_file: str = "debug_output.txt") -> None:
    _reset_output(output_file)

    # Case 1: <E_x0x1 E_x2x3>, one hole contraction
    _section(output_file, "<x0+ x1 x2+ x3> (reduced)")
    act = Active(parse_ops("x0+ x1 x2+ x3"))
    act.reduce()
    assert act.done()
    _dump_terms(output_file, act)

    # Case 2: three excitation operators
    _section(output_file, "<x5+ x0 x4+ x1 x3+ x2> (reduced)")
    act = Active(parse_ops("x5+ x0 x4+ x1 x3+ x2"))
    act.reduce()
    assert act.done()
    _dump_terms(output_file, act)

    # Case 3: task code, plain and with the fock tensor merged in
    _section(output_file, "Gamma task code")
    out = driv.driver(
        [
            {"label": "Gamma1", "ops": "x0+ x1 x2+ x3"},
            {"label": "Gamma2", "ops": "x0+ x1 x2+ x3", "merged": "x2 x3", "mlab": "f1"},
        ],
        quiet=True,
    )
    _append(output_file, out.str())


if __name__ == "__main__":
    debug_run()
