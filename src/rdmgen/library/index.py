from __future__ import annotations

# Operator indices: one creation/annihilation operator each, never mutated.

import itertools
import re
from dataclasses import dataclass, field, replace
from enum import Enum


class OrbitalSpace(Enum):
    CLOSED = "c"
    ACTIVE = "x"
    VIRTUAL = "a"
    GENERAL = "g"

    def overlaps(self, other):
        if self is OrbitalSpace.GENERAL or other is OrbitalSpace.GENERAL:
            return True
        return self is other


_SPIN_COUNTER = itertools.count()
_INDEX_COUNTER = itertools.count()


class Spin:
    """Spin-equivalence tag. Two operators share a spin channel iff they hold the same object."""

    def __init__(self, num=None):
        self.num = next(_SPIN_COUNTER) if num is None else num

    def __repr__(self):
        return f"Spin({self.num})"


@dataclass(frozen=True)
class Index:
    num: int
    space: OrbitalSpace
    dagger: bool = False
    # spin is not part of the identity; a re-tagged index is still the same operator
    spin: Spin = field(default=None, compare=False)

    @property
    def label(self):
        return self.space.value

    def identical(self, other):
        return self == other

    def with_spin(self, spin):
        return replace(self, spin=spin)

    def str(self, with_spin=False):
        out = f"{self.label}{self.num}" + ("+" if self.dagger else "")
        if with_spin and self.spin is not None:
            out += f"(s{self.spin.num})"
        return out

    def str_gen(self):
        return f"{self.label}{self.num}"

    def loop_var(self, tag):
        return f"{tag}{self.num}"

    def __str__(self):
        return self.str()


def make_index(space, dagger=False, spin=None, num=None):
    if isinstance(space, str):
        space = OrbitalSpace(space)
    if num is None:
        num = next(_INDEX_COUNTER)
    return Index(num, space, dagger, spin)


def make_pair(space, cnum=None, anum=None, spin=None):
    """Creation/annihilation pair of one excitation operator E_pq, sharing a fresh spin."""
    spin = Spin() if spin is None else spin
    return make_index(space, True, spin, cnum), make_index(space, False, spin, anum)


_TOKEN = re.compile(r"^([cxag])(\d+)(\+?)(?:@(\w+))?$")


def parse_ops(text):
    """Parse tokens like ``x0+ x1 x2+ x3`` or ``x0+@a x3@a x2+@b x1@b``.

    Without any ``@`` tag the tokens are read as consecutive E_pq pairs,
    creation first, each pair with its own spin.
    """
    tokens = text.split() if isinstance(text, str) else list(text)
    parsed = []
    for token in tokens:
        m = _TOKEN.match(token)
        if m is None:
            raise ValueError(f"Malformed operator token '{token}'.")
        parsed.append((OrbitalSpace(m.group(1)), int(m.group(2)), m.group(3) == "+", m.group(4)))

    nums = [num for _space, num, _dag, _tag in parsed]
    if len(set(nums)) != len(nums):
        raise ValueError(f"Repeated operator index in '{text}'.")
    if len(parsed) % 2:
        raise ValueError(f"Odd number of operators in '{text}'.")

    tagged = [tag is not None for *_rest, tag in parsed]
    if any(tagged) and not all(tagged):
        raise ValueError(f"Either all or none of the operators need a spin tag: '{text}'.")

    out = []
    if all(tagged):
        spins = {}
        for space, num, dagger, tag in parsed:
            spins.setdefault(tag, []).append(dagger)
        for tag, daggers in spins.items():
            if sorted(daggers) != [False, True]:
                raise ValueError(f"Spin tag '{tag}' must hold one creation and one annihilation operator.")
        spin_objs = {tag: Spin() for tag in spins}
        for space, num, dagger, tag in parsed:
            out.append(make_index(space, dagger, spin_objs[tag], num))
        return out

    for k in range(0, len(parsed), 2):
        (cspace, cnum, cdag, _), (aspace, anum, adag, _) = parsed[k], parsed[k + 1]
        if not cdag or adag:
            raise ValueError(f"Untagged operators must come as creation/annihilation pairs: '{text}'.")
        spin = Spin()
        out.append(make_index(cspace, True, spin, cnum))
        out.append(make_index(aspace, False, spin, anum))
    return out
