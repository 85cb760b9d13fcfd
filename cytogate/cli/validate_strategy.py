#validate_strategy.py
from cytogate.core.strategy import StrategyConfigError, build_gate_tree, load_strategy
from cytogate.utils.logging import log_error


def cmd_validate_strategy(strategy_file):
    try:
        data = load_strategy(strategy_file)
        tree = build_gate_tree(data)
    except (StrategyConfigError, ValueError) as e:
        log_error(str(e))
        return 1

    print(f"Strategy OK: {len(tree)} gates")
    print(tree.format())
    return 0
