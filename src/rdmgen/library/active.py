from __future__ import annotations

# Rank variants of the RDM term: Wick reduction and Gamma task code generation.
#
# RDM0 is the scalar (all operators contracted, only deltas left), RDMn holds a
# density-matrix block of rank >= 1. make_rdm() picks the variant from the
# operator count, so a term changes variant as reduce_one() shortens it.

import os
import re
from collections import deque

from ..pkg import codegen
from . import compare_utils
from .rdm import RDM, dump_indices

# spin-free formulation: a closed spin loop contributes a factor 2
SPIN_SUMMED = os.getenv("RDMGEN_SPIN_SUMMED", "1") != "0"

_RDM_LABEL = re.compile(r"^rdm(\d+)$")


class ActiveRDM(RDM):
    """Reduction and code generation shared by every rank."""

    # ---------------------------------------------------------------
    # reduction
    # ---------------------------------------------------------------
    def reduce_one(self, done):
        """Move the first unresolved annihilation operator to the right end.

        Each creation operator passed on the way yields a delta child
        (a c+ = delta - c+ a); the last child is the fully moved string.
        The moved operator is registered in ``done``.
        """
        pos = None
        for n, i in enumerate(self.index):
            if not i.dagger and i.num not in done:
                pos = n
                break
        if pos is None or self.reduce_done(done):
            raise RuntimeError(f"reduce_one() on a fully reduced RDM: {self.dump()}")

        ann = self.index[pos]
        rest = self.index[:pos] + self.index[pos + 1:]
        out = []
        sign = 1.0
        for k in range(pos, len(rest)):
            if rest[k].dagger:
                child = self.contract(ann, rest[k], rest[:k] + rest[k + 1:], sign)
                if child is not None:
                    out.append(child)
            sign = -sign
        out.append(make_rdm(rest + [ann], self.delta, self.fac * sign))
        done.add(ann.num)
        return out

    def contract(self, ann, cre, rest, sign):
        if not ann.space.overlaps(cre.space):
            return None
        fac = self.fac * sign
        if ann.spin is cre.spin:
            if SPIN_SUMMED:
                fac *= 2.0
        else:
            # partners of ann and cre now form one pair
            rest = [i.with_spin(ann.spin) if i.spin is cre.spin else i for i in rest]
        delta = dict(self.delta)
        delta[ann] = cre
        return make_rdm(rest, delta, fac)

    # ---------------------------------------------------------------
    # code generation
    # ---------------------------------------------------------------
    def generate(self, indent, itag, index, merged=(), mlab="", in_tensors=(), use_blas=False):
        index = list(index)
        merged = list(merged)
        if use_blas:
            self.check_blas(index, merged)
        inlab = self.map_in_tensors(in_tensors, mlab if merged else "")
        if merged:
            if mlab not in inlab:
                raise ValueError(f"Merged tensor '{mlab}' is not among the input tensors {list(in_tensors)}.")
            return self.generate_merged(indent, itag, index, merged, inlab[mlab], inlab, use_blas)
        return self.generate_not_merged(indent, itag, index, inlab)

    def generate_not_merged(self, indent, itag, index, inlab):
        raise NotImplementedError

    def generate_merged(self, indent, itag, index, merged, mlab, inlab, use_blas):
        self.check_bound(index, merged)
        lbl = self.rdm_label(inlab)
        indent0 = indent
        close = []
        out = f"{indent}{{\n"
        indent += "  "
        out += f"{indent}// rdm{self.rank} merged case\n"
        text, indent = self.make_merged_loops(indent, merged, close)
        out += text
        text, indent = self.make_delta_if(indent, close)
        out += text
        out += self.make_get_block(indent, "i0", lbl)
        out += fetch_block(indent, "fdata", mlab, merged)
        if use_blas:
            out += self.make_blas_multiply(indent, index, merged)
        else:
            loop = self.loop_indices(index, merged, self.index)
            text, indent = self.make_sort_loops(itag, indent, loop, close)
            out += text
            out += self.multiply_merge(itag, indent, index, merged)
        out += codegen.close_all(close)
        out += f"{indent0}}}\n"
        return out

    def map_in_tensors(self, in_tensors, mlab=""):
        """rdmN labels first in ascending rank, then other tensors as given, the merged tensor mlab last."""
        unique = list(dict.fromkeys(in_tensors))
        rdms = sorted((t for t in unique if _RDM_LABEL.match(t)), key=lambda t: int(_RDM_LABEL.match(t).group(1)))
        others = [t for t in unique if not _RDM_LABEL.match(t) and t != mlab]
        if mlab in unique:
            others.append(mlab)
        return {t: f"in({n})" for n, t in enumerate(rdms + others)}

    def rdm_label(self, inlab):
        key = f"rdm{self.rank}"
        if key not in inlab:
            raise ValueError(f"Input tensor '{key}' is required by {self.dump().strip()}.")
        return inlab[key]

    def resolve(self, idx):
        seen = []
        while idx in self.delta and idx not in seen:
            seen.append(idx)
            idx = self.delta[idx]
        return idx

    def loop_indices(self, *groups):
        out = []
        for group in groups:
            for i in group:
                r = self.resolve(i)
                if r not in out:
                    out.append(r)
        return out

    def check_bound(self, index, merged):
        bound = set(index) | set(merged)
        used = set(self.index)
        for i, j in self.delta.items():
            used.update((i, j))
        if not used <= bound:
            missing = [i for i in self.index if i not in bound]
            missing += [i for pair in self.delta.items() for i in pair if i not in bound]
            raise RuntimeError(f"Indices {dump_indices(missing, False)} are not bound in the task for {self.dump().strip()}")
        free = [i for i in index if i not in used]
        if free:
            raise RuntimeError(f"Target indices {dump_indices(free, False)} do not appear in {self.dump().strip()}")

    def blas_problem(self, index, merged):
        """Reason why the BLAS path cannot handle this term, or None."""
        if not merged:
            return "BLAS multiplication requires a merged tensor."
        if self.rank == 0:
            return "BLAS multiplication requires an RDM of rank one or higher."
        if self.delta:
            return "BLAS multiplication is not supported for RDMs with deltas."
        if set(index) & set(merged):
            return "BLAS multiplication requires merged indices disjoint from the target."
        if len(self.index) != len(index) + len(merged) or set(self.index) != set(index) | set(merged):
            return "BLAS multiplication requires RDM indices to be the target plus merged indices."
        return None

    def check_blas(self, index, merged):
        problem = self.blas_problem(index, merged)
        if problem is not None:
            raise ValueError(f"{problem} Term: {self.dump().strip()}")

    def make_delta_if(self, indent, close):
        if not self.delta:
            return "", indent
        cond = " && ".join(f"{i.str_gen()} == {j.str_gen()}" for i, j in self.delta.items())
        close.append(f"{indent}}}\n")
        return f"{indent}if ({cond}) {{\n", indent + "  "

    def make_merged_loops(self, indent, merged, close):
        out = ""
        for i in merged:
            out += f"{indent}for (auto& {i.str_gen()} : {codegen.block_range(i)}) {{\n"
            close.append(f"{indent}}}\n")
            indent += "  "
        return out, indent

    def make_sort_loops(self, itag, indent, index, close):
        out = ""
        for i in reversed(index):
            var = i.loop_var(itag)
            out += f"{indent}for (int {var} = 0; {var} != {codegen.size(i)}; ++{var}) {{\n"
            close.append(f"{indent}}}\n")
            indent += "  "
        return out, indent

    def element(self, name, itag, index):
        pairs = [(self.resolve(i).loop_var(itag), codegen.size(i)) for i in index]
        return f"{name}[{codegen.offset(pairs)}]"

    def make_odata(self, itag, indent, index):
        return f"{indent}{self.element('odata', itag, index)} +="

    def fdata_mult(self, itag, merged):
        return self.element("fdata", itag, merged)

    def get_dim(self, di, index):
        return codegen.dim_product(index), codegen.dim_product(di)

    def make_get_block(self, indent, tag, lbl):
        return fetch_block(indent, f"{tag}data", lbl, self.index)

    def make_blas_multiply(self, indent, loop, index):
        raise NotImplementedError

    def multiply_merge(self, itag, indent, index, merged):
        raise NotImplementedError


def fetch_block(indent, name, lbl, index):
    return f"{indent}std::unique_ptr<double[]> {name} = {lbl}->get_block({codegen.list_gen(index)});\n"


class RDM0(ActiveRDM):
    """Fully contracted term: a prefactor times Kronecker deltas."""

    def reduce_one(self, done):
        raise RuntimeError(f"reduce_one() on a rank-0 RDM: {self.dump()}")

    def rdm_label(self, inlab):
        return None

    def make_get_block(self, indent, tag, lbl):
        return ""

    def generate_not_merged(self, indent, itag, index, inlab):
        self.check_bound(index, ())
        indent0 = indent
        close = []
        out = f"{indent}{{\n"
        indent += "  "
        out += f"{indent}// rdm0 non-merged case\n"
        text, indent = self.make_delta_if(indent, close)
        out += text
        text, indent = self.make_sort_loops(itag, indent, self.loop_indices(index), close)
        out += text
        out += f"{self.make_odata(itag, indent, index)} {codegen.prefac(self.fac)};\n"
        out += codegen.close_all(close)
        out += f"{indent0}}}\n"
        return out

    def multiply_merge(self, itag, indent, index, merged):
        return f"{self.make_odata(itag, indent, index)} {codegen.prefac(self.fac)} * {self.fdata_mult(itag, merged)};\n"


class RDMn(ActiveRDM):
    """Term carrying a rank >= 1 density-matrix block."""

    def generate_not_merged(self, indent, itag, index, inlab):
        self.check_bound(index, ())
        lbl = self.rdm_label(inlab)
        indent0 = indent
        close = []
        out = f"{indent}{{\n"
        indent += "  "
        out += f"{indent}// rdm{self.rank} non-merged case\n"
        text, indent = self.make_delta_if(indent, close)
        out += text
        out += self.make_get_block(indent, "i0", lbl)
        if not self.delta:
            out += self.make_sort_indices(indent, "i0", index)
        else:
            text, indent = self.make_sort_loops(itag, indent, self.loop_indices(index, self.index), close)
            out += text
            out += f"{self.make_odata(itag, indent, index)} {codegen.prefac(self.fac)} * {self.element('i0data', itag, self.index)};\n"
        out += codegen.close_all(close)
        out += f"{indent0}}}\n"
        return out

    def make_sort_indices(self, indent, tag, loop):
        if len(loop) != len(self.index) or set(loop) != set(self.index):
            raise RuntimeError(f"Target {dump_indices(loop, False)} is not a permutation of {self.dump().strip()}")
        perm = ",".join(str(self.index.index(i)) for i in loop)
        num, den = codegen.prefac_fraction(self.fac)
        dims = ", ".join(codegen.size(i) for i in self.index)
        return f"{indent}sort_indices<{perm},1,1,{num},{den}>({tag}data, odata, {dims});\n"

    def multiply_merge(self, itag, indent, index, merged):
        rdm = self.element("i0data", itag, self.index)
        return f"{self.make_odata(itag, indent, index)} {codegen.prefac(self.fac)} * {rdm} * {self.fdata_mult(itag, merged)};\n"

    def make_blas_multiply(self, indent, loop, index):
        # loop: target indices, index: merged indices
        order = list(loop) + list(index)
        perm = ",".join(str(self.index.index(i)) for i in order)
        odim, mdim = self.get_dim(index, loop)
        dims = ", ".join(codegen.size(i) for i in self.index)
        out = f"{indent}std::unique_ptr<double[]> i0data_sorted(new double[{odim}*{mdim}]);\n"
        out += f"{indent}sort_indices<{perm},0,1,1,1>(i0data, i0data_sorted, {dims});\n"
        out += (f"{indent}dgemm_(\"N\", \"N\", {odim}, 1, {mdim}, {codegen.prefac(self.fac)}, "
                f"i0data_sorted, {odim}, fdata, {mdim}, 1.0, odata, {odim});\n")
        return out


def make_rdm(index, delta=None, fac=1.0):
    index = list(index)
    if not index:
        return RDM0(index, delta, fac)
    return RDMn(index, delta, fac)


class Active:
    """Forest of RDM terms descending from one operator string."""

    def __init__(self, index, delta=None, fac=1.0):
        self.index = list(index)
        self.rdm = [make_rdm(index, delta, fac)]

    def reduce(self):
        queue = deque((rdm, set()) for rdm in self.rdm)
        out = []
        while queue:
            rdm, done = queue.popleft()
            if rdm.reduce_done(done):
                out.append(rdm)
                continue
            for child in rdm.reduce_one(done):
                queue.append((child, set(done)))

        for rdm in out:
            rdm.sort()

        compare_utils.reduce_terms(out, compare_utils.rdm_compare, compare_utils.merge_terms)
        self.rdm = [rdm for rdm in out if rdm.fac != 0.0]
        return self.rdm

    def done(self):
        return all(rdm.done() for rdm in self.rdm)

    def print(self, indent=""):
        for rdm in self.rdm:
            rdm.print(indent)

    def in_tensors(self, mlab=""):
        labels = sorted({rdm.rank for rdm in self.rdm if rdm.rank})
        out = [f"rdm{rank}" for rank in labels]
        if mlab:
            out.append(mlab)
        return out

    def generate(self, indent, itag, index, merged=(), mlab="", in_tensors=None, use_blas=False):
        if in_tensors is None:
            in_tensors = self.in_tensors(mlab if merged else "")
        return "".join(
            rdm.generate(indent, itag, index, merged, mlab, in_tensors, use_blas) for rdm in self.rdm
        )
