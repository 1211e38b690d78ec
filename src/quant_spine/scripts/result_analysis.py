"""Risk/return analysis of a backtest, or effectiveness analysis of factors.

stdin:  run config; uses ``inputs.strategy_backtest`` when present,
        otherwise ``inputs.factor_generation`` (factor-research runs)
stdout: {"success": true, "mode": "backtest"|"factor", "metrics": {...},
         "chart_file": ..., "analysis_file": ...}
"""

import json
import sys
from pathlib import Path

TRADING_DAYS = 252
DRAWDOWN_THRESHOLD = -0.01


def _input_file(config, step_type, key, default_name):
    upstream = (config.get("inputs") or {}).get(step_type) or {}
    if upstream.get(key):
        return Path(upstream[key])
    return Path(config["workspace_dir"]) / default_name


def _drawdown_durations(drawdowns):
    durations = []
    start = None
    for date, value in drawdowns.items():
        if value < DRAWDOWN_THRESHOLD and start is None:
            start = date
        elif value >= DRAWDOWN_THRESHOLD and start is not None:
            durations.append((date - start).days)
            start = None
    return durations


def analyze_backtest(config, workspace, plt):
    import numpy as np
    import pandas as pd

    results_file = _input_file(config, "strategy_backtest", "results_file", "backtest_results.pkl")
    results = pd.read_pickle(results_file)
    portfolio = results["portfolio_returns"]
    excess = portfolio - results["benchmark_returns"]

    excess_std = excess.std()
    sharpe = excess.mean() / excess_std * np.sqrt(TRADING_DAYS) if excess_std > 0 else 0.0
    tracking_error = excess_std * np.sqrt(TRADING_DAYS)
    information_ratio = excess.mean() * TRADING_DAYS / tracking_error if tracking_error > 0 else 0.0

    cumulative = results["portfolio_cumulative"]
    drawdowns = (cumulative - cumulative.expanding().max()) / cumulative.expanding().max()
    durations = _drawdown_durations(drawdowns)

    monthly = portfolio.resample("ME").apply(lambda x: (1 + x).prod() - 1)

    fig, axes = plt.subplots(2, 2, figsize=(12, 8))
    axes[0, 0].plot(results.index, results["portfolio_cumulative"], label="Portfolio")
    axes[0, 0].plot(results.index, results["benchmark_cumulative"], label="Benchmark")
    axes[0, 0].set_title("Cumulative Returns")
    axes[0, 0].legend()
    axes[0, 1].fill_between(drawdowns.index, drawdowns, 0, color="red", alpha=0.3)
    axes[0, 1].set_title("Drawdowns")
    axes[1, 0].hist(monthly.dropna(), bins=20, alpha=0.7)
    axes[1, 0].set_title("Monthly Returns Distribution")
    rolling_sharpe = excess.rolling(60).mean() / excess.rolling(60).std() * np.sqrt(TRADING_DAYS)
    axes[1, 1].plot(rolling_sharpe.index, rolling_sharpe)
    axes[1, 1].set_title("Rolling Sharpe Ratio (60 days)")
    fig.tight_layout()
    chart_file = workspace / "analysis_charts.png"
    fig.savefig(chart_file)
    plt.close(fig)

    return {
        "sharpe_ratio": float(sharpe),
        "information_ratio": float(information_ratio),
        "max_drawdown": float(drawdowns.min()),
        "tracking_error": float(tracking_error),
        "monthly_volatility": float(monthly.std()),
        "win_rate": float((monthly > 0).mean()),
        "avg_drawdown_duration": float(np.mean(durations)) if durations else 0.0,
        "max_drawdown_duration": max(durations) if durations else 0,
    }, chart_file


def analyze_factors(config, workspace, plt):
    import pandas as pd

    factors_file = _input_file(config, "factor_generation", "factors_file", "factors.pkl")
    factors = pd.read_pickle(factors_file)
    prices = pd.read_pickle(workspace / "prepared_data.pkl")

    close = prices["$close"]
    forward = (close.groupby(level=0).shift(-1) / close - 1).rename("forward_return")
    joined = pd.concat([factors, forward], axis=1).dropna()
    by_date = joined.groupby(level=1)

    summary = {}
    ic_series = {}
    for name in factors.columns:
        ic = by_date.apply(lambda g, col=name: g[col].corr(g["forward_return"], method="spearman"))
        ic = ic.dropna()
        ic_series[name] = ic
        ic_std = ic.std()
        summary[name] = {
            "ic_mean": float(ic.mean()) if len(ic) else 0.0,
            "ic_std": float(ic_std) if len(ic) > 1 else 0.0,
            "ic_ir": float(ic.mean() / ic_std) if len(ic) > 1 and ic_std > 0 else 0.0,
            "positive_ic_ratio": float((ic > 0).mean()) if len(ic) else 0.0,
        }

    fig, ax = plt.subplots(figsize=(12, 6))
    for name, ic in ic_series.items():
        ax.plot(ic.index, ic.cumsum(), label=name)
    ax.set_title("Cumulative Rank IC")
    ax.legend()
    fig.tight_layout()
    chart_file = workspace / "factor_ic.png"
    fig.savefig(chart_file)
    plt.close(fig)

    best = max(summary, key=lambda n: abs(summary[n]["ic_mean"])) if summary else None
    return {"factors": summary, "best_factor": best}, chart_file


def analyze_results(config):
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    workspace = Path(config["workspace_dir"])
    inputs = config.get("inputs") or {}
    backtest_file = _input_file(config, "strategy_backtest", "results_file", "backtest_results.pkl")

    if "strategy_backtest" in inputs or backtest_file.exists():
        mode = "backtest"
        summary, chart_file = analyze_backtest(config, workspace, plt)
    else:
        mode = "factor"
        summary, chart_file = analyze_factors(config, workspace, plt)

    analysis_file = workspace / "analysis_summary.json"
    analysis_file.write_text(json.dumps(summary, indent=2, default=str), encoding="utf-8")

    return {
        "success": True,
        "mode": mode,
        "metrics": summary,
        "chart_file": str(chart_file),
        "analysis_file": str(analysis_file),
    }


def _jsonable(value):
    if hasattr(value, "item"):
        return value.item()
    return str(value)


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = analyze_results(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=_jsonable))


if __name__ == "__main__":
    main()
