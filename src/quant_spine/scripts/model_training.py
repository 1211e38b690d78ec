"""Train a return-prediction model on the generated factors.

stdin:  run config (model_type, split_date, n_estimators, learning_rate)
stdout: {"success": true, "metrics": {...}, "model_file": ..., "predictions_file": ...}

The label is the next-period close-to-close return per instrument.
``model_type`` is ``lightgbm`` (default) or ``linear``.
"""

import json
import sys
from pathlib import Path


def _input_file(config, step_type, key, default_name):
    upstream = (config.get("inputs") or {}).get(step_type) or {}
    if upstream.get(key):
        return Path(upstream[key])
    return Path(config["workspace_dir"]) / default_name


def _build_model(config):
    model_type = config.get("model_type", "lightgbm")
    if model_type == "lightgbm":
        import lightgbm as lgb

        return lgb.LGBMRegressor(
            n_estimators=config.get("n_estimators", 100),
            learning_rate=config.get("learning_rate", 0.1),
            random_state=config.get("random_state", 42),
            verbose=-1,
        )
    if model_type == "linear":
        from sklearn.linear_model import LinearRegression

        return LinearRegression()
    raise ValueError(f"unsupported model_type: {model_type}")


def train_model(config):
    import joblib
    import pandas as pd
    from sklearn.metrics import mean_squared_error, r2_score

    factors_file = _input_file(config, "factor_generation", "factors_file", "factors.pkl")
    data_file = _input_file(config, "data_preparation", "data_file", "prepared_data.pkl")
    for path in (factors_file, data_file):
        if not path.exists():
            raise ValueError(f"input file not found: {path}")

    factor_data = pd.read_pickle(factors_file)
    price_data = pd.read_pickle(data_file)

    close = price_data["$close"]
    labels = close.groupby(level=0).shift(-1) / close - 1
    dataset = pd.concat([factor_data, labels.rename("label")], axis=1).dropna()

    split_date = pd.Timestamp(config.get("split_date", "2022-01-01"))
    dates = dataset.index.get_level_values(1)
    train_set = dataset[dates < split_date]
    test_set = dataset[dates >= split_date]
    if train_set.empty or test_set.empty:
        raise ValueError(f"split_date {split_date.date()} leaves an empty train or test set")

    feature_cols = [c for c in dataset.columns if c != "label"]
    x_train, y_train = train_set[feature_cols], train_set["label"]
    x_test, y_test = test_set[feature_cols], test_set["label"]

    model = _build_model(config)
    model.fit(x_train, y_train)
    train_pred = model.predict(x_train)
    test_pred = model.predict(x_test)

    workspace = Path(config["workspace_dir"])
    model_file = workspace / "trained_model.pkl"
    joblib.dump(model, model_file)

    predictions_file = workspace / "predictions.pkl"
    pd.DataFrame({"actual": y_test, "predicted": test_pred}, index=y_test.index).to_pickle(
        predictions_file
    )

    return {
        "success": True,
        "metrics": {
            "train_mse": float(mean_squared_error(y_train, train_pred)),
            "test_mse": float(mean_squared_error(y_test, test_pred)),
            "train_r2": float(r2_score(y_train, train_pred)),
            "test_r2": float(r2_score(y_test, test_pred)),
            "train_samples": len(x_train),
            "test_samples": len(x_test),
            "features_count": len(feature_cols),
        },
        "model_file": str(model_file),
        "predictions_file": str(predictions_file),
    }


def _jsonable(value):
    if hasattr(value, "item"):
        return value.item()
    return str(value)


def main():
    raw = sys.stdin.read()
    config = json.loads(raw) if raw.strip() else {}
    try:
        result = train_model(config)
    except Exception as e:
        result = {"success": False, "error": f"{type(e).__name__}: {e}"}
    print(json.dumps(result, default=_jsonable))


if __name__ == "__main__":
    main()
