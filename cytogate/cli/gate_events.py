#gate_events.py
import re
from pathlib import Path

import pandas as pd

from cytogate.core.sample import load_sample
from cytogate.core.strategy import StrategyConfigError, build_gate_tree, load_strategy
from cytogate.utils.logging import log_error, log_info


def safe_filename(s: str) -> str:
    """
    Make string filesystem-safe:
    - Replace spaces with _
    - Replace unsafe characters (*, /, \\, :, ?, etc.) with _
    """
    s = s.strip()
    s = s.replace(" ", "_")
    # Keep only: letters, numbers, underscore, dash, dot
    s = re.sub(r"[^A-Za-z0-9._-]", "_", s)
    # Collapse multiple underscores
    s = re.sub(r"_+", "_", s)
    return s


def summarize_populations(tree, populations, sample):
    """
    One row per gated population: counts and percentages of parent and total.
    """
    rows = []
    for i in tree.walk():
        name = tree.name(i)
        pop = populations.get(name)
        if pop is None:
            continue

        parent_idx = tree.parent(i)
        parent_name = tree.name(parent_idx) if parent_idx is not None else ""
        parent_count = populations[parent_name].count if parent_name else sample.count

        rows.append({
            "population": name,
            "parent": parent_name,
            "gate_type": tree.gate(i).gate_type,
            "count": pop.count,
            "percent_of_parent": 100.0 * pop.count / parent_count if parent_count else 0.0,
            "percent_of_total": 100.0 * pop.count / sample.count if sample.count else 0.0,
        })

    return pd.DataFrame(
        rows,
        columns=["population", "parent", "gate_type", "count",
                 "percent_of_parent", "percent_of_total"],
    )


def cmd_gate_events(events_file, strategy_file, outdir, export_events=False):
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    try:
        strategy = load_strategy(strategy_file)
        tree = build_gate_tree(strategy)
        sample = load_sample(events_file)
    except (StrategyConfigError, FileNotFoundError, ValueError) as e:
        log_error(str(e))
        return 1

    populations = tree.apply(sample)

    summary = summarize_populations(tree, populations, sample)
    dest = outdir / "populations.csv"
    summary.to_csv(dest, index=False)
    log_info(f"Wrote {len(summary)} populations -> {dest}")

    if export_events:
        df = sample.to_dataframe()
        for name, pop in populations.items():
            dest = outdir / f"gated_{safe_filename(name)}.csv"
            df[pop.to_bool_array()].to_csv(dest, index=False)
            log_info(f"Wrote {pop.count} events -> {dest}")

    print(f"Gating complete. Output at: {outdir}")
    return 0
