# Driver-style workflow: parse an operator string, reduce it to RDMs, merge
# duplicates, then emit one Gamma task per string.
import os
from collections import OrderedDict

from rdmgen.library import active, compare_utils
from rdmgen.library.index import parse_ops
from rdmgen.pkg.output import OutStream

CACHE_ENABLED = os.getenv("RDMGEN_CACHE", "1") != "0"
try:
    CACHE_SIZE = int(os.getenv("RDMGEN_CACHE_SIZE", "128"))
except ValueError:
    CACHE_SIZE = 128
QUIET = os.getenv("RDMGEN_QUIET") == "1"
USE_BLAS = os.getenv("RDMGEN_USE_BLAS") == "1"
MERGE_STATS = os.getenv("RDMGEN_MERGE_STATS") == "1"
_REDUCTION_CACHE = OrderedDict()


def _maybe_print(*args, **kwargs):
    if not QUIET:
        print(*args, **kwargs)


def _cache_get(key):
    if not CACHE_ENABLED:
        return None
    cached = _REDUCTION_CACHE.get(key)
    if cached is None:
        return None
    _REDUCTION_CACHE.move_to_end(key)
    index, rdms = cached
    return index, [rdm.copy() for rdm in rdms]


def _cache_set(key, index, rdms):
    if not CACHE_ENABLED:
        return
    _REDUCTION_CACHE[key] = (index, [rdm.copy() for rdm in rdms])
    _REDUCTION_CACHE.move_to_end(key)
    if len(_REDUCTION_CACHE) > CACHE_SIZE:
        _REDUCTION_CACHE.popitem(last=False)


def reduce_ops(ops_text, fac=1.0):
    """Return (operator string, terminal RDM terms) for ``ops_text``."""
    key = (" ".join(ops_text.split()), fac, active.SPIN_SUMMED)
    cached = _cache_get(key)
    if cached is not None:
        return cached
    index = parse_ops(ops_text)
    act = active.Active(index, fac=fac)
    rdms = act.reduce()
    _cache_set(key, index, rdms)
    return index, rdms


def _pick(index, labels):
    by_name = {i.str_gen(): i for i in index}
    out = []
    for label in labels.split() if isinstance(labels, str) else labels:
        if label not in by_name:
            raise ValueError(f"Index '{label}' does not appear in the operator string.")
        out.append(by_name[label])
    return out


def generate_gamma(label, ops_text, index=None, merged=None, mlab="f1", fac=1.0, use_blas=None, task_no=0, quiet=None):
    if quiet is None:
        quiet = QUIET
    if use_blas is None:
        use_blas = USE_BLAS
    ops, rdms = reduce_ops(ops_text, fac)

    merged = _pick(ops, merged) if merged else []
    if index is None:
        target = []
        for i in ops:
            if i not in merged and i not in target:
                target.append(i)
    else:
        target = _pick(ops, index)
    unbound = [i.str_gen() for i in ops if i not in target and i not in merged]
    if unbound:
        raise ValueError(f"{label}: indices {' '.join(unbound)} are neither target nor merged indices.")

    act = active.Active(ops)
    act.rdm = rdms
    if not quiet:
        _maybe_print(f"{label} = <{' '.join(str(i) for i in ops)}>")
        for rdm in rdms:
            _maybe_print(rdm.dump("  "))

    in_tensors = act.in_tensors(mlab if merged else "")
    args = ", ".join(i.str_gen() for i in target)

    out = OutStream()
    out.append("header", f"// {label}: <{' '.join(str(i) for i in ops)}>, inputs ({', '.join(in_tensors)})\n")

    task = f"void Task{task_no}::Task_local::compute() {{\n"
    for n, i in enumerate(target):
        task += f"  const Index {i.str_gen()} = b({n});\n"
    task += f"  // tensor label: {label}\n"
    task += f"  std::unique_ptr<double[]> odata(new double[out()->get_size({args})]);\n"
    task += f"  std::fill_n(odata.get(), out()->get_size({args}), 0.0);\n"
    for rdm in rdms:
        # terms the BLAS path cannot take fall back to explicit loops
        blas = use_blas and rdm.blas_problem(target, merged) is None
        task += rdm.generate("  ", "i", target, merged, mlab, in_tensors, blas)
    task += f"  out()->add_block(odata{', ' + args if args else ''});\n"
    task += "}\n\n"
    out.append("task", task)

    tensors = ", ".join([label] + in_tensors)
    out.append("subtask", f"  auto task{task_no} = std::make_shared<Task{task_no}>(std::vector<std::shared_ptr<Tensor>>{{{tensors}}}, range_);\n")
    out.append("footer", f"// end of {label}\n")
    return out


def driver(gammas, quiet=None, use_blas=None):
    """Generate every Gamma in ``gammas`` (dicts as returned by gen_rdm.parse_spec) in order."""
    if MERGE_STATS:
        stats = compare_utils.enable_merge_stats()
        compare_utils.reset_merge_stats()
    out = OutStream()
    for task_no, gamma in enumerate(gammas):
        out.merge(
            generate_gamma(
                gamma["label"],
                gamma["ops"],
                index=gamma.get("index"),
                merged=gamma.get("merged"),
                mlab=gamma.get("mlab", "f1"),
                fac=gamma.get("fac", 1.0),
                use_blas=use_blas,
                task_no=task_no,
                quiet=quiet,
            )
        )
    if not (QUIET if quiet is None else quiet):
        _maybe_print(f"generated {len(gammas)} gamma tasks")
        if MERGE_STATS:
            _maybe_print(f"merged {stats.merged} of {stats.terms} terms in {stats.groups} groups ({stats.elapsed:.3f}s)")
    return out
