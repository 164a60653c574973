import importlib.util
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
GEN_PATH = ROOT / "scripts" / "gen_rdm.py"
SPEC = importlib.util.spec_from_file_location("gen_rdm", GEN_PATH)
gen = importlib.util.module_from_spec(SPEC)
SPEC.loader.exec_module(gen)


def test_parse_spec_dict_format():
    spec = {
        "GAMMAS": [
            {"label": "Gamma2", "ops": "x0+ x1 x2+ x3", "merged": "x2 x3", "fac": 2},
        ],
        "OUTPUT": "out/gamma.cc",
    }
    gammas, output = gen.parse_spec(spec)
    assert output == "out/gamma.cc"
    assert gammas == [
        {
            "label": "Gamma2",
            "ops": "x0+ x1 x2+ x3",
            "index": None,
            "merged": ["x2", "x3"],
            "mlab": "f1",
            "fac": 2.0,
        }
    ]


def test_parse_spec_tuple_format():
    gammas, output = gen.parse_spec({"GAMMAS": [("Gamma0", ["x0+", "x1"])]})
    assert output is None
    assert gammas[0]["label"] == "Gamma0"
    assert gammas[0]["ops"] == "x0+ x1"
    assert gammas[0]["merged"] is None


@pytest.mark.parametrize(
    "spec",
    [
        {},
        {"GAMMAS": "x0+ x1"},
        {"GAMMAS": [("Gamma0",)]},
        {"GAMMAS": [{"label": "Gamma0"}]},
        {"GAMMAS": [("Gamma 0", "x0+ x1")]},
        {"GAMMAS": [("Gamma0", "x0+ x1"), ("Gamma0", "x2+ x3")]},
        {"GAMMAS": [42]},
        {"GAMMAS": [{"label": "Gamma0", "ops": "x0+ x1", "merged": 3}]},
    ],
)
def test_parse_spec_rejects(spec):
    with pytest.raises(ValueError):
        gen.parse_spec(spec)


def test_bundled_spec_emits(tmp_path):
    spec = gen.load_spec(ROOT / "method_inputs" / "caspt2" / "gamma_spec.py")
    gammas, output = gen.parse_spec(spec)
    assert output
    assert [g["label"] for g in gammas] == ["Gamma0", "Gamma1", "Gamma2", "Gamma3", "Gamma4"]

    path = tmp_path / "nested" / "gamma.cc"
    out = gen.emit(gammas, path, quiet=True)
    text = path.read_text()
    assert text == out.str()
    for n in range(len(gammas)):
        assert f"void Task{n}::Task_local::compute()" in text
    assert "fdata = in(2)->get_block(x2, x3);" in text


def test_main_with_raw_ops(tmp_path, monkeypatch, capsys):
    path = tmp_path / "raw.cc"
    monkeypatch.setattr(sys, "argv", ["gen_rdm.py", "--quiet", "--out", str(path), "x0+", "x1", "x2+", "x3"])
    gen.main()
    assert f"Wrote {path}" in capsys.readouterr().out
    assert "// Gamma0: <x0+ x1 x2+ x3>" in path.read_text()


def test_main_rejects_spec_with_ops(tmp_path, monkeypatch):
    spec_path = tmp_path / "spec.py"
    spec_path.write_text("GAMMAS = [('Gamma0', 'x0+ x1')]\n")
    monkeypatch.setattr(sys, "argv", ["gen_rdm.py", "--spec", str(spec_path), "x0+", "x1"])
    with pytest.raises(ValueError):
        gen.main()
