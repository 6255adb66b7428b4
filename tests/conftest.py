import pytest
import numpy as np
import pandas as pd

from resampling.data import Dataset


@pytest.fixture(scope="session")
def seed():
    return 42


@pytest.fixture
def two_class_df(seed):
    """
    Small deterministic two-class dataframe.
    Includes:
      - Class (outcome, 'yes'/'no', driven by x1)
      - x1, x2 numeric predictors
      - group (string predictor, exercised by the one-hot encoder)
      - row_id (position of the row, handy for failure injection)
    """
    rng = np.random.default_rng(seed)
    n = 60
    x1 = rng.normal(size=n)
    df = pd.DataFrame({
        "row_id": np.arange(n),
        "x1": x1,
        "x2": rng.normal(size=n),
        "group": rng.choice(["a", "b", "c"], size=n),
    })
    # exactly 30 / 30 so every stratum is large enough for v <= 30
    order = np.argsort(x1 + rng.normal(scale=0.5, size=n))
    labels = np.empty(n, dtype=object)
    labels[order[:30]] = "no"
    labels[order[30:]] = "yes"
    df["Class"] = labels
    return df


@pytest.fixture
def regression_df(seed):
    rng = np.random.default_rng(seed)
    n = 60
    df = pd.DataFrame({
        "row_id": np.arange(n),
        "x1": rng.normal(size=n),
        "x2": rng.normal(size=n),
    })
    df["y"] = 3.0 * df["x1"] - 2.0 * df["x2"] + rng.normal(scale=0.5, size=n)
    return df


@pytest.fixture
def two_class_data(two_class_df):
    return Dataset(two_class_df, "Class")


@pytest.fixture
def regression_data(regression_df):
    return Dataset(regression_df, "y")


@pytest.fixture
def balanced_ten():
    """10 rows, binary outcome split 5 / 5."""
    return Dataset(pd.DataFrame({
        "x": np.arange(10, dtype=float),
        "Class": ["a", "b"] * 5,
    }), "Class")


class MeanModel:
    """Predicts the analysis-set mean; no third-party fitting involved."""

    def fit(self, data, outcome):
        self.mean_ = float(data[outcome].mean())
        return self

    def predict(self, data):
        return pd.DataFrame({"pred": np.full(len(data), self.mean_)})


@pytest.fixture
def mean_model():
    return MeanModel


@pytest.fixture
def base_regression_config(tmp_path, seed):
    """
    Minimal config for a v-fold linear regression on y.
    """
    cfg = {
        "experiment": {
            "name": "pytest_regression",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "outcome_column": "y",
            "mode": "regression"
        },
        "resampling": {
            "policy": "vfold",
            "v": 5,
            "repeats": 2
        },
        "model": {
            "type": "linear_reg",
        },
        "metrics": {
            "names": ["rmse", "rsq", "mae"]
        },
        "execution": {
            "n_jobs": 1
        }
    }
    return cfg


@pytest.fixture
def base_classification_config(tmp_path, seed):
    cfg = {
        "experiment": {
            "name": "pytest_classification",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "outcome_column": "Class",
            "mode": "classification"
        },
        "resampling": {
            "policy": "vfold",
            "v": 5,
            "strata": "Class"
        },
        "model": {
            "type": "logistic_reg",
            "params": {
                "logistic_reg": {
                    "max_iter": 500
                }
            }
        },
        "metrics": {
            "names": ["accuracy", "roc_auc", "precision", "recall"],
            "event_level": "first"
        },
        "execution": {
            "n_jobs": 1
        }
    }
    return cfg


@pytest.fixture
def write_yaml(tmp_path):
    import yaml
    def _write(cfg, name="temp.yaml"):
        p = tmp_path / name
        with open(p, "w") as f:
            yaml.safe_dump(cfg, f, default_flow_style=False)
        return str(p)
    return _write


@pytest.fixture
def write_csv(tmp_path):
    def _write(df, name="data.csv"):
        p = tmp_path / name
        df.to_csv(p, index=False)
        return str(p)
    return _write
