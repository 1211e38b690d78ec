"""Render an HTML report of the run from the analysis summary.

stdin:  run config; ``step_outputs`` supplies whatever earlier steps produced
stdout: {"success": true, "report_file": "<workspace>/workflow_report.html"}

Uses only the standard library so it runs in any interpreter.
"""

import html
import json
import sys
from datetime import datetime
from pathlib import Path

STYLE = """
body { font-family: Arial, sans-serif; margin: 20px; }
.header { background-color: #f8f9fa; padding: 20px; border-radius: 5px; }
.section { margin: 20px 0; padding: 15px; border: 1px solid #ddd; border-radius: 5px; }
.metric { display: inline-block; margin: 10px; padding: 10px; background: #e9ecef; border-radius: 3px; }
.metric-value { font-weight: bold; font-size: 1.2em; color: #007bff; }
table { width: 100%; border-collapse: collapse; margin: 10px 0; }
th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
th { background-color: #f8f9fa; }
"""

RISK_ROWS = [
    ("tracking_error", "Tracking error", "Volatility relative to the benchmark", ".4f"),
    ("monthly_volatility", "Monthly volatility", "Std. dev. of monthly returns", ".4f"),
    ("avg_drawdown_duration", "Avg drawdown duration (days)", "Mean length of drawdowns", ".1f"),
    ("max_drawdown_duration", "Max drawdown duration (days)", "Longest drawdown", "d"),
]


def _fmt(value, spec):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "N/A" if value is None else html.escape(str(value))
    try:
        return format(value, spec)
    except ValueError:
        return html.escape(str(value))


def _metric(label, value):
    return (
        f'<div class="metric"><div>{html.escape(label)}</div>'
        f'<div class="metric-value">{value}</div></div>'
    )


def _load_analysis(config, workspace):
    for output in (config.get("step_outputs") or {}).values():
        if output.get("analysis_file") and Path(output["analysis_file"]).exists():
            return json.loads(Path(output["analysis_file"]).read_text(encoding="utf-8"))
    fallback = workspace / "analysis_summary.json"
    if fallback.exists():
        return json.loads(fallback.read_text(encoding="utf-8"))
    return {}


def render_report(config, analysis):
    outputs = config.get("step_outputs") or {}
    instruments = config.get("instruments") or []

    overview = "".join(
        [
            _metric("Data range", f"{config.get('start_time', 'N/A')} - {config.get('end_time', 'N/A')}"),
            _metric("Instruments", str(len(instruments)) if instruments else "N/A"),
            _metric("Model", html.escape(str(config.get("model_type", "N/A")))),
        ]
    )
    performance = "".join(
        [
            _metric("Sharpe ratio", _fmt(analysis.get("sharpe_ratio"), ".4f")),
            _metric("Information ratio", _fmt(analysis.get("information_ratio"), ".4f")),
            _metric("Max drawdown", _fmt(analysis.get("max_drawdown"), ".2%")),
            _metric("Monthly win rate", _fmt(analysis.get("win_rate"), ".2%")),
        ]
    )
    risk_rows = "".join(
        f"<tr><td>{label}</td><td>{_fmt(analysis.get(key), spec)}</td><td>{note}</td></tr>"
        for key, label, note, spec in RISK_ROWS
    )
    factor_rows = "".join(
        f"<tr><td>{html.escape(name)}</td><td>{_fmt(stats.get('ic_mean'), '.4f')}</td>"
        f"<td>{_fmt(stats.get('ic_ir'), '.4f')}</td></tr>"
        for name, stats in (analysis.get("factors") or {}).items()
    )
    steps = "".join(f"<li>{html.escape(name)}</li>" for name in outputs)

    factor_section = (
        f'<div class="section"><h2>Factor effectiveness</h2><table>'
        f"<tr><th>Factor</th><th>IC mean</th><th>IC IR</th></tr>{factor_rows}</table></div>"
        if factor_rows
        else ""
    )

    return f"""<!DOCTYPE html>
<html>
<head>
    <title>Quant workflow report</title>
    <meta charset="utf-8">
    <style>{STYLE}</style>
</head>
<body>
    <div class="header">
        <h1>Quant workflow report</h1>
        <p>Generated: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}</p>
        <p>Workflow: {html.escape(str(config.get("workflow_name", "unnamed")))}</p>
        <p>Run: {html.escape(str(config.get("run_id", "")))}</p>
    </div>
    <div class="section"><h2>Overview</h2>{overview}</div>
    <div class="section"><h2>Strategy performance</h2>{performance}</div>
    <div class="section"><h2>Risk</h2><table>
        <tr><th>Metric</th><th>Value</th><th>Description</th></tr>{risk_rows}
    </table></div>
    {factor_section}
    <div class="section"><h2>Completed steps</h2><ol>{steps}</ol></div>
    <div class="section"><h2>Disclaimer</h2>
        <p>For research purposes only. Past performance does not guarantee future results.</p>
    </div>
</body>
</html>
"""


def generate_report(config):
    workspace = Path(config["workspace_dir"])
    analysis = _load_analysis(config, workspace)
    report_file = workspace / "workflow_report.html"
    report_file.write_text(render_report(config, analysis), encoding="utf-8")
    return {"success": True, "report_file": str(report_file)}


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = generate_report(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=str))


if __name__ == "__main__":
    main()
