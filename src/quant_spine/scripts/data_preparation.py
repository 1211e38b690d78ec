"""Load market data through qlib and store it in the run workspace.

stdin:  run config (instruments, start_time, end_time, fields, provider_uri, region)
stdout: {"success": true, "stats": {...}, "data_file": "<workspace>/prepared_data.pkl"}
"""

import json
import sys
from pathlib import Path

DEFAULT_FIELDS = ["$close", "$volume", "$high", "$low", "$open"]


def prepare_data(config):
    import qlib
    from qlib.data import D

    qlib.init(
        provider_uri=config.get("provider_uri", "~/.qlib/qlib_data/us_data"),
        region=config.get("region", "us"),
    )

    instruments = config.get("instruments") or ["AAPL", "MSFT", "GOOGL"]
    start_time = config.get("start_time", "2020-01-01")
    end_time = config.get("end_time", "2023-12-31")
    fields = config.get("fields") or DEFAULT_FIELDS

    data = D.features(instruments, fields, start_time=start_time, end_time=end_time)
    if data.empty:
        raise ValueError("no data returned for the requested instruments")

    data_file = Path(config["workspace_dir"]) / "prepared_data.pkl"
    data.to_pickle(data_file)

    cells = data.shape[0] * data.shape[1]
    return {
        "success": True,
        "stats": {
            "instruments_count": len(instruments),
            "date_range": f"{start_time} to {end_time}",
            "data_shape": list(data.shape),
            "missing_ratio": float(data.isnull().sum().sum() / cells) if cells else 0.0,
        },
        "data_file": str(data_file),
    }


def _jsonable(value):
    if hasattr(value, "item"):
        return value.item()
    return str(value)


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = prepare_data(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=_jsonable))


if __name__ == "__main__":
    main()
