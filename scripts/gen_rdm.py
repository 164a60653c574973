from __future__ import annotations

# Generate Gamma RDM task code from a Python spec file.

from pathlib import Path
import runpy
import sys


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from rdmgen.main_tools import driv  # noqa: E402


def load_spec(spec_path):
    return runpy.run_path(str(spec_path))


def _labels(value, what):
    if value is None:
        return None
    if isinstance(value, str):
        return value.split()
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{what} must be a string or a list.")
    return [str(item) for item in value]


def parse_spec(spec):
    if "GAMMAS" not in spec:
        raise ValueError("Spec file must define GAMMAS.")
    raw = spec["GAMMAS"]
    if not isinstance(raw, (list, tuple)):
        raise ValueError("GAMMAS must be a list or tuple.")

    output = spec.get("OUTPUT")
    if output is not None:
        output = str(output)

    gammas = []
    labels = set()
    for item in raw:
        if isinstance(item, (list, tuple)):
            if len(item) != 2:
                raise ValueError("Gamma tuples must be (label, ops).")
            item = {"label": item[0], "ops": item[1]}
        if not isinstance(item, dict):
            raise ValueError("Each gamma must be a dict or tuple.")
        if "label" not in item or "ops" not in item:
            raise ValueError("Each gamma must define label and ops.")
        label = str(item["label"])
        if not label.isidentifier():
            raise ValueError(f"Invalid gamma label '{label}'.")
        if label in labels:
            raise ValueError(f"Gamma '{label}' is defined twice.")
        labels.add(label)
        ops = item["ops"]
        if not isinstance(ops, str):
            ops = " ".join(str(op) for op in ops)
        gammas.append(
            {
                "label": label,
                "ops": ops,
                "index": _labels(item.get("index"), "index"),
                "merged": _labels(item.get("merged"), "merged"),
                "mlab": str(item.get("mlab", "f1")),
                "fac": float(item.get("fac", 1.0)),
            }
        )
    return gammas, output


def emit(gammas, output_path, quiet=False, use_blas=None):
    out = driv.driver(gammas, quiet=quiet, use_blas=use_blas)
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(out.str())
    return out


def _take_flag(args, name):
    found = name in args
    while name in args:
        args.remove(name)
    return found


def _take_value(args, name):
    if name not in args:
        return None
    pos = args.index(name)
    if pos + 1 >= len(args):
        raise ValueError(f"{name} requires a path.")
    value = args[pos + 1]
    del args[pos:pos + 2]
    return value


def main():
    args = sys.argv[1:]
    if not args:
        print("Usage: python scripts/gen_rdm.py --spec path/to/spec.py [--out FILE] [--blas] [--quiet]")
        print("   or: python scripts/gen_rdm.py x0+ x1 x2+ x3")
        sys.exit(1)
    quiet = _take_flag(args, "--quiet")
    use_blas = True if _take_flag(args, "--blas") else None
    spec_path = _take_value(args, "--spec")
    out_path = _take_value(args, "--out")

    if spec_path is None:
        gammas = [{"label": "Gamma0", "ops": " ".join(args)}]
        output = out_path or ROOT / "generated_code" / "gamma.cc"
    elif args:
        raise ValueError("--spec takes no operator arguments.")
    else:
        gammas, output = parse_spec(load_spec(spec_path))
        output = out_path or output or ROOT / "generated_code" / f"{Path(spec_path).stem}.cc"

    output = Path(output)
    if not output.is_absolute():
        output = ROOT / output
    emit(gammas, output, quiet=quiet, use_blas=use_blas)
    print(f"Wrote {output}")


if __name__ == "__main__":
    main()
