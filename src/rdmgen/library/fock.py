from __future__ import annotations

# Dense Jordan-Wigner representation of RDM terms.
#
# Used to check the operator algebra numerically: reduce_one() must conserve
# <psi| string |psi>, and sort() must conserve the normal-ordered value.
# Spin-orbital p = 2 * orbital + spin.

import itertools
from functools import lru_cache

import numpy as np


@lru_cache(maxsize=8)
def annihilators(nso):
    """a_p for p in range(nso) as dense (2**nso, 2**nso) matrices."""
    lower = np.array([[0.0, 1.0], [0.0, 0.0]])
    parity = np.diag([1.0, -1.0])
    eye = np.eye(2)
    ops = []
    for p in range(nso):
        mat = np.ones((1, 1))
        for q in range(nso):
            if q < p:
                mat = np.kron(mat, parity)
            elif q == p:
                mat = np.kron(mat, lower)
            else:
                mat = np.kron(mat, eye)
        ops.append(mat)
    return tuple(ops)


def random_state(nmo, seed=0):
    rng = np.random.default_rng(seed)
    psi = rng.standard_normal(2 ** (2 * nmo))
    return psi / np.linalg.norm(psi)


def orbital_assignments(nums, nmo):
    """Every map from index numbers to spatial orbitals in range(nmo)."""
    nums = list(nums)
    for values in itertools.product(range(nmo), repeat=len(nums)):
        yield dict(zip(nums, values))


def string_matrix(index, orbital, spin_of, nmo):
    ops = annihilators(2 * nmo)
    mat = np.eye(ops[0].shape[0])
    for i in index:
        a = ops[2 * orbital[i.num] + spin_of[i.spin]]
        mat = mat @ (a.T if i.dagger else a)
    return mat


def normal_order(index):
    """Creation operators first, both groups in their original order; returns (sign, string)."""
    sign = 1.0
    seen_ann = 0
    for i in index:
        if i.dagger:
            if seen_ann % 2:
                sign = -sign
        else:
            seen_ann += 1
    cre = [i for i in index if i.dagger]
    ann = [i for i in index if not i.dagger]
    return sign, cre + ann


def term_value(rdm, orbital, psi, nmo, spin_summed=True, normal_ordered=False):
    """fac * deltas * <psi| string |psi>, summed over the spin of every tag when spin_summed.

    With normal_ordered the string is read as an RDM element, i.e. inside
    normal-ordering braces, which is how sorted terms are to be read.
    """
    for i, j in rdm.delta.items():
        if orbital[i.num] != orbital[j.num]:
            return 0.0
    sign, index = normal_order(rdm.index) if normal_ordered else (1.0, rdm.index)
    spins = []
    for i in index:
        if i.spin not in spins:
            spins.append(i.spin)
    values = (0, 1) if spin_summed else (0,)
    total = 0.0
    for assignment in itertools.product(values, repeat=len(spins)):
        spin_of = dict(zip(spins, assignment))
        total += psi @ string_matrix(index, orbital, spin_of, nmo) @ psi
    return rdm.fac * sign * total
