"""Compute technical factors from the prepared market data.

stdin:  run config; ``inputs.data_preparation.data_file`` locates the data
stdout: {"success": true, "stats": {...}, "factors_file": "<workspace>/factors.pkl"}

Factors (selectable with ``factors: [...]``):
    ret_1d          Ref($close, 1) / $close - 1
    ma_ratio_5      Mean($close, 5) / $close - 1
    typical_price   ($high + $low + $close) / 3
    std_20          Std($close, 20)
    corr_cv_10      Corr($close, $volume, 10)
"""

import json
import sys
from pathlib import Path


def _input_file(config, step_type, key, default_name):
    upstream = (config.get("inputs") or {}).get(step_type) or {}
    if upstream.get(key):
        return Path(upstream[key])
    return Path(config["workspace_dir"]) / default_name


def _factor_table(data):
    by_inst = data.groupby(level=0, group_keys=False)
    close = data["$close"]
    return {
        "ret_1d": by_inst["$close"].shift(1) / close - 1,
        "ma_ratio_5": by_inst["$close"].transform(lambda s: s.rolling(5).mean()) / close - 1,
        "typical_price": (data["$high"] + data["$low"] + close) / 3,
        "std_20": by_inst["$close"].transform(lambda s: s.rolling(20).std()),
        "corr_cv_10": by_inst[["$close", "$volume"]].apply(
            lambda g: g["$close"].rolling(10).corr(g["$volume"])
        ),
    }


def generate_factors(config):
    import pandas as pd

    data_file = _input_file(config, "data_preparation", "data_file", "prepared_data.pkl")
    if not data_file.exists():
        raise ValueError(f"prepared data not found: {data_file}")
    data = pd.read_pickle(data_file)

    table = _factor_table(data)
    selected = config.get("factors") or list(table)
    unknown = [name for name in selected if name not in table]
    if unknown:
        raise ValueError(f"unknown factors: {', '.join(unknown)}")

    factor_data = pd.DataFrame({name: table[name] for name in selected})

    factors_file = Path(config["workspace_dir"]) / "factors.pkl"
    factor_data.to_pickle(factors_file)

    cells = factor_data.shape[0] * factor_data.shape[1]
    return {
        "success": True,
        "stats": {
            "factors_count": len(selected),
            "factor_names": selected,
            "factor_data_shape": list(factor_data.shape),
            "missing_ratio": float(factor_data.isnull().sum().sum() / cells) if cells else 0.0,
        },
        "factors_file": str(factors_file),
    }


def _jsonable(value):
    if hasattr(value, "item"):
        return value.item()
    return str(value)


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = generate_factors(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=_jsonable))


if __name__ == "__main__":
    main()
