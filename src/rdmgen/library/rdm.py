from __future__ import annotations

# Base RDM term: operator string, Kronecker deltas and prefactor.
# Rank-specific reduction and code generation live in active.py.


def dump_indices(index, with_spin=True):
    return " ".join(i.str(with_spin) for i in index)


class RDM:
    def __init__(self, index, delta=None, fac=1.0):
        self.index = list(index)
        # keyed by the Index handle; entries are only ever added
        self.delta = dict(delta) if delta else {}
        self.fac = fac

    @property
    def factor(self):
        return self.fac

    @property
    def rank(self):
        if len(self.index) % 2:
            raise RuntimeError(f"RDM with an odd number of operators: {dump_indices(self.index)}")
        return len(self.index) // 2

    def done(self):
        """True if the operators are aligned as a0+ a0 a1+ a1 ..."""
        if len(self.index) % 2:
            raise RuntimeError(f"RDM with an odd number of operators: {dump_indices(self.index)}")
        prev = None
        for cnt, i in enumerate(self.index):
            if cnt % 2 == 0:
                if not i.dagger:
                    return False
                prev = i.spin
            elif i.dagger or i.spin is not prev:
                return False
        return True

    def reduce_done(self, done):
        """False if the first unresolved annihilation operator has a creation operator to its right."""
        for n, i in enumerate(self.index):
            if not i.dagger and i.num not in done:
                return not any(j.dagger for j in self.index[n + 1:])
        return True

    def sort(self):
        # of course not the fastest way, but the strings are short
        done_spin = set()
        while not self.done():
            buf = []
            pos = 0
            # skip operators whose spin is already settled
            while pos < len(self.index) and self.index[pos].spin in done_spin:
                buf.append(self.index[pos])
                pos += 1
            if pos == len(self.index):
                raise RuntimeError(f"RDM.sort(): no unsettled operator in {dump_indices(self.index)}")

            cur = self.index[pos]
            cs = cur.spin
            cnt = 0
            found = False
            for j in self.index[pos + 1:]:
                if j.spin is cs:
                    if j.dagger == cur.dagger:
                        raise RuntimeError(f"RDM.sort(): {cur} and {j} share a spin but not a pair")
                    if cur.dagger:
                        # creation moves right before its annihilation partner
                        buf.extend((cur, j))
                    else:
                        # annihilation moves right after its creation partner
                        buf.extend((j, cur))
                        cnt += 1
                    found = True
                else:
                    buf.append(j)
                    if not found:
                        cnt += 1
            if cnt % 2 == 1:
                self.fac *= -1
            done_spin.add(cs)

            if len(buf) != len(self.index):
                raise RuntimeError(f"RDM.sort(): rebuilt string differs in length: {dump_indices(buf)}")
            self.index = buf

    def same_term(self, other):
        """Equal operator string and deltas; the factor is not compared."""
        if len(self.index) != len(other.index):
            return False
        # stricter than a size-only delta check: the pairs themselves must match
        if len(self.delta) != len(other.delta) or self.delta != other.delta:
            return False
        return all(i.identical(j) for i, j in zip(self.index, other.index))

    def __eq__(self, other):
        if not isinstance(other, RDM):
            return NotImplemented
        return self.fac == other.fac and self.same_term(other)

    __hash__ = None

    def dump(self, indent=""):
        out = f"{indent}{self.fac:7.2f} " + dump_indices(self.index)
        for i, j in self.delta.items():
            out += f" [{i}, {j}]"
        return out

    def print(self, indent=""):
        print(self.dump(indent))

    def copy(self):
        return type(self)(self.index, self.delta, self.fac)

    def reduce_one(self, done):
        raise NotImplementedError

    def generate(self, indent, itag, index, merged=(), mlab="", in_tensors=(), use_blas=False):
        raise NotImplementedError
