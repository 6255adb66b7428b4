import os
import copy
import json
import yaml
import joblib
import pandas as pd
from runners import run_evaluation


def test_run_creates_required_artifacts(base_regression_config, regression_df, write_yaml, write_csv):
    data_path = write_csv(regression_df)
    cfg_path = write_yaml(base_regression_config, "reg.yaml")
    run_dir = run_evaluation.run_evaluation(cfg_path, dataset_path=data_path)

    assert os.path.isdir(run_dir)
    for name in ["config.yaml", "metrics.csv", "estimates.json", "data_profile.json", "model.joblib"]:
        assert os.path.isfile(os.path.join(run_dir, name)), f"Missing artifact: {name}"
    assert not os.path.exists(os.path.join(run_dir, "predictions.csv"))

    with open(os.path.join(run_dir, "estimates.json"), "r") as f:
        estimates = json.load(f)

    # Required fields
    for key in ["experiment_name", "seed", "model_type", "outcome_column", "policy", "n_resamples", "estimates"]:
        assert key in estimates, f"Missing key in estimates.json: {key}"
    assert estimates["policy"] == "vfold"
    assert estimates["n_resamples"] == 10

    # Saved config must contain the same outcome
    with open(os.path.join(run_dir, "config.yaml"), "r") as f:
        saved_cfg = yaml.safe_load(f)
    assert saved_cfg["data"]["outcome_column"] == base_regression_config["data"]["outcome_column"]


def test_estimates_include_resample_level_scores(base_regression_config, regression_df, write_yaml, write_csv):
    """Each metric keeps its per-resample values next to the aggregate."""
    data_path = write_csv(regression_df)
    cfg_path = write_yaml(base_regression_config, "all_test.yaml")
    run_dir = run_evaluation.run_evaluation(cfg_path, dataset_path=data_path)

    with open(os.path.join(run_dir, "estimates.json"), "r") as f:
        estimates = json.load(f)

    for metric in ["rmse", "rsq", "mae"]:
        entry = estimates["estimates"][metric]
        assert entry["status"] == "ok"
        assert len(entry["all"]) == entry["n"] == 10
        assert abs(sum(entry["all"]) / 10 - entry["mean"]) < 1e-12


def test_metric_table_has_one_row_per_split_and_metric(base_regression_config, regression_df, write_yaml, write_csv):
    data_path = write_csv(regression_df)
    run_dir = run_evaluation.run_evaluation(write_yaml(base_regression_config), dataset_path=data_path)

    table = pd.read_csv(os.path.join(run_dir, "metrics.csv"))
    assert list(table.columns) == ["split_id", "metric", "value", "error_kind", "error", "apparent"]
    assert len(table) == 10 * 3
    assert table["split_id"].nunique() == 10
    assert table["error_kind"].isna().all()


def test_data_profile_contains_required_info(base_classification_config, two_class_df, write_yaml, write_csv):
    """data_profile.json fingerprints the dataset that was evaluated."""
    data_path = write_csv(two_class_df)
    cfg_path = write_yaml(base_classification_config, "profile_test.yaml")
    run_dir = run_evaluation.run_evaluation(cfg_path, dataset_path=data_path)

    with open(os.path.join(run_dir, "data_profile.json"), "r") as f:
        profile = json.load(f)

    required_keys = [
        "dataset_path",
        "dataset_hash",
        "total_rows",
        "total_columns",
        "predictor_count",
        "predictors",
        "outcome_column",
        "mode",
        "outcome_stats",
        "timestamp"
    ]
    for key in required_keys:
        assert key in profile, f"Missing key in data_profile.json: {key}"

    assert profile["predictor_count"] == len(profile["predictors"])
    assert profile["mode"] == "classification"
    assert profile["outcome_stats"]["value_counts"] == {"no": 30, "yes": 30}


def test_saved_predictions_and_final_model(base_classification_config, two_class_df, write_yaml, write_csv):
    cfg = copy.deepcopy(base_classification_config)
    cfg["metrics"]["save_pred"] = True
    data_path = write_csv(two_class_df)
    run_dir = run_evaluation.run_evaluation(write_yaml(cfg), dataset_path=data_path)

    preds = pd.read_csv(os.path.join(run_dir, "predictions.csv"))
    assert len(preds) == len(two_class_df)
    assert sorted(preds["row"].tolist()) == list(range(len(two_class_df)))

    model = joblib.load(os.path.join(run_dir, "model.joblib"))
    assert model.levels_ == ["no", "yes"]
    assert len(model.predict(two_class_df)) == len(two_class_df)


def test_bootstrap_run_reports_apparent_separately(base_regression_config, regression_df, write_yaml, write_csv):
    cfg = copy.deepcopy(base_regression_config)
    cfg["resampling"] = {"policy": "bootstrap", "times": 5, "apparent": True}
    data_path = write_csv(regression_df)
    run_dir = run_evaluation.run_evaluation(write_yaml(cfg), dataset_path=data_path)

    with open(os.path.join(run_dir, "estimates.json"), "r") as f:
        estimates = json.load(f)

    assert estimates["n_resamples"] == 5
    assert estimates["estimates"]["rmse"]["n"] == 5
    assert set(estimates["apparent"]) == {"rmse", "rsq", "mae"}


def test_output_dir_override(base_regression_config, regression_df, write_yaml, write_csv, tmp_path):
    out = tmp_path / "elsewhere"
    run_dir = run_evaluation.run_evaluation(
        write_yaml(base_regression_config), dataset_path=write_csv(regression_df), output_dir=str(out)
    )
    assert os.path.dirname(run_dir) == str(out)
    assert os.path.basename(run_dir).startswith("pytest_regression_")


def test_run_without_mode_uses_inferred_classification(base_classification_config, two_class_df,
                                                       write_yaml, write_csv):
    cfg = copy.deepcopy(base_classification_config)
    del cfg["data"]["mode"]
    cfg["model"] = {"type": "rand_forest", "params": {"rand_forest": {"n_estimators": 20}}}
    run_dir = run_evaluation.run_evaluation(write_yaml(cfg), dataset_path=write_csv(two_class_df))

    with open(os.path.join(run_dir, "estimates.json"), "r") as f:
        estimates = json.load(f)

    accuracy = estimates["estimates"]["accuracy"]
    assert accuracy["status"] == "ok"
    assert accuracy["n"] == 5
    assert accuracy["n_excluded"] == 0
