from __future__ import annotations

# Small text builders shared by the RDM task generators.

from fractions import Fraction

BLOCK_RANGE = {"c": 0, "x": 1, "a": 2}


def prefac(fac):
    return repr(float(fac))


def prefac_fraction(fac):
    frac = Fraction(fac).limit_denominator(1000)
    return frac.numerator, frac.denominator


def size(idx):
    return f"{idx.str_gen()}.size()"


def offset(names_and_sizes):
    """Column-major offset string, e.g. i0+x0.size()*(i1+x1.size()*(i2))."""
    if not names_and_sizes:
        return "0"
    var, _ = names_and_sizes[-1]
    out = var
    for var, dim in reversed(names_and_sizes[:-1]):
        out = f"{var}+{dim}*({out})"
    return out


def list_gen(index):
    return ", ".join(i.str_gen() for i in index)


def dim_product(index):
    if not index:
        return "1"
    return "*".join(size(i) for i in index)


def block_range(idx):
    try:
        return f"*range_[{BLOCK_RANGE[idx.label]}]"
    except KeyError:
        raise ValueError(f"No block range for index {idx} in the {idx.space.name.lower()} space.") from None


def close_all(close):
    return "".join(reversed(close))
