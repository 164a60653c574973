"""Active-space Gamma intermediates of the form <E E ...> used by CASPT2 tasks."""

OUTPUT = "generated_code/methods/caspt2/gamma.cc"

GAMMAS = [
    # <E_x0x1>
    {"label": "Gamma0", "ops": "x0+ x1"},
    # <E_x0x1 E_x2x3>
    {"label": "Gamma1", "ops": "x0+ x1 x2+ x3"},
    # <E_x0x1 E_x2x3> f1_x2x3, fock folded into the summation
    {"label": "Gamma2", "ops": "x0+ x1 x2+ x3", "merged": "x2 x3", "mlab": "f1"},
    # <E_x5x0 E_x4x1 E_x3x2>
    {"label": "Gamma3", "ops": "x5+ x0 x4+ x1 x3+ x2"},
    # de-excitation first: <x1 x0+> picks up the hole delta
    {"label": "Gamma4", "ops": "x1@a x0+@b x2+@a x3@b"},
]
