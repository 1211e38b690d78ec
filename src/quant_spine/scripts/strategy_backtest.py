"""Top-k long-only backtest on the model's predictions.

stdin:  run config (top_k, rebalance_freq)
stdout: {"success": true, "metrics": {...}, "results_file": "<workspace>/backtest_results.pkl"}

Each rebalance date holds the ``top_k`` instruments with the highest
predicted return, equally weighted; the benchmark is the equal-weighted
universe.  ``rebalance_freq`` is daily, weekly or monthly.
"""

import json
import sys
from pathlib import Path

TRADING_DAYS = 252
_REBALANCE_RULES = {"daily": None, "weekly": "W", "monthly": "ME"}


def _input_file(config, step_type, key, default_name):
    upstream = (config.get("inputs") or {}).get(step_type) or {}
    if upstream.get(key):
        return Path(upstream[key])
    return Path(config["workspace_dir"]) / default_name


def run_backtest(config):
    import numpy as np
    import pandas as pd

    pred_file = _input_file(config, "model_training", "predictions_file", "predictions.pkl")
    if not pred_file.exists():
        raise ValueError(f"predictions not found: {pred_file}")
    predictions = pd.read_pickle(pred_file)

    top_k = int(config.get("top_k", 50))
    rebalance_freq = config.get("rebalance_freq", "monthly")
    if rebalance_freq not in _REBALANCE_RULES:
        raise ValueError(f"unsupported rebalance_freq: {rebalance_freq}")

    # rows: dates, columns: instruments
    signals = predictions["predicted"].unstack(level=0)
    returns = predictions["actual"].unstack(level=0)

    rule = _REBALANCE_RULES[rebalance_freq]
    rebalance_dates = (
        signals.index if rule is None else signals.groupby(pd.Grouper(freq=rule)).head(1).index
    )

    weights = pd.DataFrame(np.nan, index=signals.index, columns=signals.columns)
    k = min(top_k, signals.shape[1])
    for date in rebalance_dates:
        chosen = signals.loc[date].nlargest(k).index
        weights.loc[date] = 0.0
        weights.loc[date, chosen] = 1.0 / k
    weights = weights.ffill().fillna(0.0)

    portfolio_returns = (weights.shift(1) * returns).sum(axis=1)
    benchmark_returns = returns.mean(axis=1)
    portfolio_cumulative = (1 + portfolio_returns).cumprod()
    benchmark_cumulative = (1 + benchmark_returns).cumprod()

    total_return = portfolio_cumulative.iloc[-1] - 1
    benchmark_total_return = benchmark_cumulative.iloc[-1] - 1
    annual_return = (1 + total_return) ** (TRADING_DAYS / len(portfolio_returns)) - 1
    volatility = portfolio_returns.std() * np.sqrt(TRADING_DAYS)
    running_max = portfolio_cumulative.cummax()
    max_drawdown = ((running_max - portfolio_cumulative) / running_max).max()

    results_file = Path(config["workspace_dir"]) / "backtest_results.pkl"
    pd.DataFrame(
        {
            "portfolio_returns": portfolio_returns,
            "benchmark_returns": benchmark_returns,
            "portfolio_cumulative": portfolio_cumulative,
            "benchmark_cumulative": benchmark_cumulative,
        }
    ).to_pickle(results_file)

    return {
        "success": True,
        "metrics": {
            "total_return": float(total_return),
            "benchmark_total_return": float(benchmark_total_return),
            "annual_return": float(annual_return),
            "volatility": float(volatility),
            "sharpe_ratio": float(annual_return / volatility) if volatility > 0 else 0.0,
            "max_drawdown": float(max_drawdown),
            "excess_return": float(total_return - benchmark_total_return),
            "rebalance_count": len(rebalance_dates),
        },
        "results_file": str(results_file),
    }


def _jsonable(value):
    if hasattr(value, "item"):
        return value.item()
    return str(value)


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = run_backtest(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=_jsonable))


if __name__ == "__main__":
    main()
