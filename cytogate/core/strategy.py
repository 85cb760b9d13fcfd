import json
from pathlib import Path

import yaml
from jsonschema import Draft202012Validator

from cytogate.core.ellipsoid import EllipsoidGate
from cytogate.core.gates import BooleanGate, Operation, RectangularGate
from cytogate.core.hierarchy import GateTree
from cytogate.core.polygon import PolygonGate


class StrategyConfigError(Exception):
    """Raised when a gating strategy file is invalid."""
    pass


SCHEMA_PATH = Path(__file__).resolve().parent.parent / "config" / "schema.json"


def _load_schema():
    """
    Loads the JSON schema from cytogate/config/schema.json.
    """
    if not SCHEMA_PATH.exists():
        raise StrategyConfigError(f"Schema file not found: {SCHEMA_PATH}")
    return json.loads(SCHEMA_PATH.read_text())


def _pretty_schema_error(error):
    """
    Turns raw jsonschema errors into human-readable diagnostics.
    """
    path = " -> ".join(str(x) for x in error.absolute_path) or "<root>"
    return (
        f"Schema validation error at '{path}':\n"
        f"   {error.message}\n"
        f"   Validator: {error.validator}\n"
        f"   Problematic value: {error.instance}"
    )


def _validate_schema(data, schema):
    """
    Performs JSON Schema validation using the Draft 2020-12 validator.
    Collects every error into one exception.
    """
    validator = Draft202012Validator(schema)

    errors = sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.absolute_path)))
    if errors:
        msg = "\n\n".join(_pretty_schema_error(err) for err in errors)
        raise StrategyConfigError(f"Strategy does not match schema:\n\n{msg}")


# ----------------------------------------------------------------------
# Semantic checks
# ----------------------------------------------------------------------

def _references(gate_def):
    """Names referenced by a boolean gate, with their complement flags."""
    refs = []
    for ref in gate_def.get("gates", []):
        if isinstance(ref, dict):
            refs.append((ref["gate"], bool(ref.get("complement", False))))
        else:
            refs.append((ref, False))
    return refs


def _validate_parents(data):
    """
    Ensures that every 'parent' reference names a gate in the strategy.
    """
    gates = data["gates"]

    for name, gate_def in gates.items():
        parent = gate_def.get("parent")
        if parent is None:
            continue
        if parent == name:
            raise StrategyConfigError(f"Gate '{name}' cannot be its own parent.")
        if parent not in gates:
            raise StrategyConfigError(
                f"Gate '{name}' specifies parent '{parent}', "
                f"but no such parent exists in 'gates'."
            )


def _validate_cycles(data):
    """
    Ensures the parent links form a tree.
    """
    gates = data["gates"]

    for name in gates:
        seen = [name]
        parent = gates[name].get("parent")
        while parent is not None:
            if parent in seen:
                chain = " -> ".join(seen + [parent])
                raise StrategyConfigError(f"Parent cycle detected: {chain}")
            seen.append(parent)
            parent = gates[parent].get("parent")


def _validate_boolean_refs(data):
    """
    Ensures boolean gates reference existing gates, with the right arity,
    and without reference cycles.
    """
    gates = data["gates"]

    for name, gate_def in gates.items():
        if gate_def["type"] != "boolean":
            continue
        refs = [r for r, _ in _references(gate_def)]
        for ref in refs:
            if ref == name:
                raise StrategyConfigError(f"Boolean gate '{name}' references itself.")
            if ref not in gates:
                raise StrategyConfigError(
                    f"Boolean gate '{name}' references '{ref}', "
                    f"but no such gate exists in 'gates'."
                )

        op = gate_def["operation"]
        if op == "not" and len(refs) != 1:
            raise StrategyConfigError(
                f"Boolean gate '{name}': 'not' takes exactly one gate, got {len(refs)}."
            )
        if op != "not" and len(refs) < 2:
            raise StrategyConfigError(
                f"Boolean gate '{name}': '{op}' needs at least two gates, got {len(refs)}."
            )

    def visit(name, trail):
        if name in trail:
            chain = " -> ".join(trail + [name])
            raise StrategyConfigError(f"Boolean reference cycle detected: {chain}")
        gate_def = gates[name]
        if gate_def["type"] == "boolean":
            for ref, _ in _references(gate_def):
                visit(ref, trail + [name])

    for name in gates:
        visit(name, [])


def _validate_shapes(data):
    """
    Ensures numeric parameters agree with the declared dimensions.
    """
    for name, g in data["gates"].items():
        gtype = g["type"]

        if gtype == "rectangle":
            if len(g["ranges"]) != len(g["dimensions"]):
                raise StrategyConfigError(
                    f"Rectangle gate '{name}' has {len(g['dimensions'])} dimensions "
                    f"but {len(g['ranges'])} ranges."
                )
            for dim, (lo, hi) in zip(g["dimensions"], g["ranges"]):
                if lo is not None and hi is not None and lo > hi:
                    raise StrategyConfigError(
                        f"Rectangle gate '{name}': range for '{dim}' has min {lo} > max {hi}."
                    )

        elif gtype == "ellipsoid":
            d = len(g["dimensions"])
            if len(g["means"]) != d:
                raise StrategyConfigError(
                    f"Ellipsoid gate '{name}' needs {d} means, got {len(g['means'])}."
                )
            if len(g["covariances"]) != d * d:
                raise StrategyConfigError(
                    f"Ellipsoid gate '{name}' needs {d * d} covariances "
                    f"({d}x{d}, row-major), got {len(g['covariances'])}."
                )


def validate_strategy(data):
    """
    Validates an already-parsed strategy dict (schema + semantic checks).
    """
    if not isinstance(data, dict):
        raise StrategyConfigError("Strategy must be a mapping with a 'gates' section.")

    _validate_schema(data, _load_schema())
    _validate_parents(data)
    _validate_cycles(data)
    _validate_boolean_refs(data)
    _validate_shapes(data)
    return data


def load_strategy(config_path):
    """
    Loads and fully validates a gating strategy YAML file.

    Performs:
      - YAML parsing
      - JSON schema validation
      - parent consistency and cycle checks
      - boolean reference checks
      - parameter shape checks

    Returns:
        dict: validated strategy data
    """
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise StrategyConfigError(f"Strategy file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise StrategyConfigError(f"Failed to parse YAML file:\n{e}")

    return validate_strategy(data)


# ----------------------------------------------------------------------
# Building gates
# ----------------------------------------------------------------------

def _build_gate(name, gates, built):
    if name in built:
        return built[name]

    g = gates[name]
    gtype = g["type"]

    if gtype == "rectangle":
        gate = RectangularGate(g["dimensions"], [tuple(r) for r in g["ranges"]], name=name)

    elif gtype == "polygon":
        gate = PolygonGate(g["dimensions"], [tuple(v) for v in g["vertices"]], name=name)

    elif gtype == "ellipsoid":
        gate = EllipsoidGate(
            g["dimensions"],
            g["means"],
            g["covariances"],
            g["distance_squared"],
            name=name,
        )

    elif gtype == "boolean":
        operands = []
        for ref, complement in _references(g):
            operand = _build_gate(ref, gates, built)
            if complement:
                operand = BooleanGate(Operation.NOT, [operand], name=f"not {ref}")
            operands.append(operand)
        gate = BooleanGate(Operation(g["operation"]), operands, name=name)

    else:
        raise StrategyConfigError(f"Unknown gate type: {gtype}")

    built[name] = gate
    return gate


def build_gate_tree(data):
    """
    Turns a validated strategy dict into a GateTree.

    Gates are added parents-first; siblings keep their order in the file.
    """
    gates = data["gates"]
    built = {}
    tree = GateTree()

    def add(name):
        if name in tree:
            return
        parent = gates[name].get("parent")
        if parent is not None:
            add(parent)
        tree.add(name, _build_gate(name, gates, built), parent=parent)

    for name in gates:
        add(name)

    return tree
