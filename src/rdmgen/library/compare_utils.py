# Deduplication of RDM terms: group by a cheap signature, then compare
# pairwise inside each group only.
import time
from collections import defaultdict


def term_signature(term):
    # equal for any two terms same_term() could match
    index_key = tuple((i.num, i.label, i.dagger) for i in term.index)
    delta_key = tuple(sorted((i.num, j.num) for i, j in term.delta.items()))
    return index_key, delta_key


def rdm_compare(term1, term2):
    return 1 if term1.same_term(term2) else 0


def merge_terms(keep, drop, flo):
    keep.fac += drop.fac * flo
    drop.fac = 0.0


def group_terms(terms, key_func=term_signature):
    groups = defaultdict(list)
    for pos, term in enumerate(terms):
        if term.fac != 0:
            groups[key_func(term)].append(pos)
    return list(groups.values())


def _merge_group(terms, group, compare_func, merge_func, stats):
    kept = []
    for pos in group:
        term = terms[pos]
        for keep in kept:
            if stats is not None:
                stats.pairs += 1
            flo = compare_func(keep, term)
            if flo:
                merge_func(keep, term, flo)
                if stats is not None:
                    stats.merged += 1
                break
        else:
            kept.append(term)


def reduce_terms(terms, compare_func, merge_func, key_func=term_signature):
    """Merge equivalent terms in place; a merged-away term is left with fac 0."""
    stats = _merge_stats
    start = time.perf_counter()
    groups = group_terms(terms, key_func)
    for group in groups:
        _merge_group(terms, group, compare_func, merge_func, stats)
    if stats is not None:
        stats.record(groups, time.perf_counter() - start)


class MergeStats:
    def __init__(self):
        self.clear()

    def clear(self):
        self.reduce_calls = 0
        self.pairs = 0
        self.merged = 0
        self.groups = 0
        self.terms = 0
        self.largest_group = 0
        self.elapsed = 0.0

    def record(self, groups, elapsed):
        self.reduce_calls += 1
        self.groups += len(groups)
        self.terms += sum(len(g) for g in groups)
        self.largest_group = max([self.largest_group] + [len(g) for g in groups])
        self.elapsed += elapsed


_merge_stats = None


def enable_merge_stats():
    global _merge_stats
    if _merge_stats is None:
        _merge_stats = MergeStats()
    return _merge_stats


def get_merge_stats():
    return _merge_stats


def reset_merge_stats():
    if _merge_stats is not None:
        _merge_stats.clear()
