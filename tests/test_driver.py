import importlib

import pytest

from rdmgen.library import active
from rdmgen.main_tools import driv


@pytest.fixture(autouse=True)
def _fresh_cache():
    driv._REDUCTION_CACHE.clear()
    yield
    driv._REDUCTION_CACHE.clear()


def test_generate_gamma():
    out = driv.generate_gamma("Gamma1", "x0+ x1 x2+ x3", quiet=True)
    task = out.channel("task")
    assert out.channel("header").startswith("// Gamma1: <x0+ x1 x2+ x3>, inputs (rdm1, rdm2)")
    assert "void Task0::Task_local::compute() {" in task
    for n in range(4):
        assert f"  const Index x{n} = b({n});\n" in task
    assert "std::fill_n(odata.get(), out()->get_size(x0, x1, x2, x3), 0.0);" in task
    assert "  out()->add_block(odata, x0, x1, x2, x3);\n" in task
    assert task.count("non-merged case") == 2
    assert "std::make_shared<Task0>(std::vector<std::shared_ptr<Tensor>>{Gamma1, rdm1, rdm2}, range_);" in out.channel("subtask")
    assert out.channel("footer") == "// end of Gamma1\n"


def test_generate_gamma_merged():
    out = driv.generate_gamma("Gamma2", "x0+ x1 x2+ x3", merged="x2 x3", task_no=2, quiet=True)
    task = out.channel("task")
    assert "const Index x2" not in task
    assert "out()->add_block(odata, x0, x1);" in task
    assert "for (auto& x2 : *range_[1]) {" in task
    assert "in(2)->get_block(x2, x3)" in task
    assert "{Gamma2, rdm1, rdm2, f1}" in out.channel("subtask")


def test_generate_gamma_blas_falls_back_per_term():
    out = driv.generate_gamma("Gamma2", "x0+ x1 x2+ x3", merged=["x2", "x3"], use_blas=True, quiet=True)
    task = out.channel("task")
    # the rank-2 term goes through dgemm, the term with a delta keeps its loops
    assert task.count("dgemm_") == 1
    assert "if (x1 == x2) {" in task


def test_explicit_target_order():
    out = driv.generate_gamma("Gamma1", "x0+ x1 x2+ x3", index="x3 x2 x1 x0", quiet=True)
    task = out.channel("task")
    assert "const Index x3 = b(0);" in task
    assert "out()->add_block(odata, x3, x2, x1, x0);" in task


def test_unknown_label():
    with pytest.raises(ValueError):
        driv.generate_gamma("Gamma1", "x0+ x1 x2+ x3", merged="x7", quiet=True)


def test_driver_merges_in_order():
    out = driv.driver(
        [
            {"label": "Gamma0", "ops": "x0+ x1"},
            {"label": "Gamma1", "ops": "x0+ x1 x2+ x3"},
        ],
        quiet=True,
    )
    text = out.str()
    assert text.index("// Gamma0") < text.index("// Gamma1") < text.index("void Task0") < text.index("void Task1")
    assert text.index("auto task1") < text.index("// end of Gamma0")


def test_driver_is_deterministic():
    gammas = [{"label": "Gamma3", "ops": "x5+ x0 x4+ x1 x3+ x2"}]
    first = driv.driver(gammas, quiet=True).str()
    driv._REDUCTION_CACHE.clear()
    second = driv.driver(gammas, quiet=True).str()
    assert first == second


def test_verbose_output(capsys, monkeypatch):
    monkeypatch.setattr(driv, "QUIET", False)
    driv.driver([{"label": "Gamma0", "ops": "x0+ x1"}], quiet=False)
    printed = capsys.readouterr().out
    assert "Gamma0 = <x0+ x1>" in printed
    assert "generated 1 gamma tasks" in printed


def test_quiet_output(capsys):
    driv.driver([{"label": "Gamma0", "ops": "x0+ x1"}], quiet=True)
    assert capsys.readouterr().out == ""


def test_reduction_cache_returns_copies(monkeypatch):
    monkeypatch.setattr(driv, "CACHE_ENABLED", True)
    _index, first = driv.reduce_ops("x0+ x1 x2+ x3")
    _index, second = driv.reduce_ops("x0+  x1 x2+ x3")
    assert len(driv._REDUCTION_CACHE) == 1
    assert [r.fac for r in first] == [r.fac for r in second]
    assert all(a == b and a is not b for a, b in zip(first, second))
    second[0].fac = 10.0
    _index, third = driv.reduce_ops("x0+ x1 x2+ x3")
    assert third[0].fac == first[0].fac


def test_reduction_cache_key_includes_spin_mode(monkeypatch):
    monkeypatch.setattr(driv, "CACHE_ENABLED", True)
    driv.reduce_ops("x1@a x0+@a")
    monkeypatch.setattr(active, "SPIN_SUMMED", not active.SPIN_SUMMED)
    driv.reduce_ops("x1@a x0+@a")
    assert len(driv._REDUCTION_CACHE) == 2


def test_reduction_cache_is_bounded(monkeypatch):
    monkeypatch.setattr(driv, "CACHE_ENABLED", True)
    monkeypatch.setattr(driv, "CACHE_SIZE", 2)
    for text in ("x0+ x1", "x0+ x1 x2+ x3", "x2+ x3 x0+ x1"):
        driv.reduce_ops(text)
    assert len(driv._REDUCTION_CACHE) == 2
    assert all("x0+ x1" != key[0] for key in driv._REDUCTION_CACHE)


def test_env_config(monkeypatch):
    monkeypatch.setenv("RDMGEN_CACHE", "0")
    monkeypatch.setenv("RDMGEN_CACHE_SIZE", "lots")
    monkeypatch.setenv("RDMGEN_QUIET", "1")
    monkeypatch.setenv("RDMGEN_USE_BLAS", "1")
    try:
        mod = importlib.reload(driv)
        assert mod.CACHE_ENABLED is False
        assert mod.CACHE_SIZE == 128
        assert mod.QUIET is True
        assert mod.USE_BLAS is True
        mod.reduce_ops("x0+ x1")
        assert len(mod._REDUCTION_CACHE) == 0
    finally:
        monkeypatch.undo()
        importlib.reload(driv)


def test_merge_stats_report(capsys, monkeypatch):
    monkeypatch.setattr(driv, "QUIET", False)
    monkeypatch.setattr(driv, "MERGE_STATS", True)
    driv.driver([{"label": "Gamma1", "ops": "x0+ x1 x2+ x3"}], quiet=False)
    assert "merged 0 of 2 terms in 2 groups" in capsys.readouterr().out


def test_partial_target_is_rejected():
    with pytest.raises(ValueError):
        driv.generate_gamma("Gamma1", "x0+ x1 x2+ x3", index="x0 x1", quiet=True)
    with pytest.raises(ValueError):
        driv.generate_gamma("Gamma2", "x0+ x1 x2+ x3", index="x0", merged="x2 x3", quiet=True)


def test_global_quiet_silences_term_dump(capsys, monkeypatch):
    monkeypatch.setattr(driv, "QUIET", True)
    driv.generate_gamma("Gamma1", "x0+ x1 x2+ x3", quiet=False)
    assert capsys.readouterr().out == ""
