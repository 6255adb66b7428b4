import pytest
import copy
from resampling.config_schema import validate_config, ConfigValidationError
from resampling.errors import InvalidParameter
from resampling.io import config_hash, load_config


def test_valid_configs_pass(base_regression_config, base_classification_config):
    assert validate_config(base_regression_config) is True
    assert validate_config(base_classification_config) is True


def test_config_validates_required_keys():
    incomplete_config = {
        "experiment": {"name": "test"}
        # Missing seed, data, resampling, model
    }
    with pytest.raises(ConfigValidationError, match="Missing required"):
        validate_config(incomplete_config)


def test_config_rejects_invalid_policy(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["resampling"] = {"policy": "jackknife"}
    with pytest.raises(ConfigValidationError, match="Invalid resampling.policy"):
        validate_config(cfg)


def test_config_rejects_keys_of_another_policy(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["resampling"]["times"] = 25  # bootstrap/mc key on a vfold policy
    with pytest.raises(ConfigValidationError, match="not valid for policy"):
        validate_config(cfg)


@pytest.mark.parametrize("resampling, match", [
    ({"policy": "vfold", "v": 1}, "resampling.v must be >= 2"),
    ({"policy": "vfold", "v": "ten"}, "resampling.v must be an integer"),
    ({"policy": "vfold", "repeats": 0}, "resampling.repeats must be >= 1"),
    ({"policy": "bootstrap", "times": 0}, "resampling.times must be >= 1"),
    ({"policy": "bootstrap", "apparent": "yes"}, "apparent must be true or false"),
    ({"policy": "mc", "prop": 1.0}, "resampling.prop must be in"),
    ({"policy": "validation", "prop": 0}, "resampling.prop must be in"),
    ({"policy": "vfold", "breaks": 1}, "resampling.breaks must be >= 2"),
])
def test_config_rejects_bad_resampling_parameters(base_regression_config, resampling, match):
    cfg = copy.deepcopy(base_regression_config)
    cfg["resampling"] = resampling
    with pytest.raises(ConfigValidationError, match=match):
        validate_config(cfg)


def test_config_rejects_invalid_model_type(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["model"]["type"] = "invalid_model"
    with pytest.raises(ConfigValidationError, match="Invalid model type"):
        validate_config(cfg)


def test_config_rejects_model_of_wrong_mode(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["model"]["type"] = "logistic_reg"
    with pytest.raises(ConfigValidationError, match="Invalid model type"):
        validate_config(cfg)


def test_config_rejects_invalid_mode(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["data"]["mode"] = "survival"
    with pytest.raises(ConfigValidationError, match="Invalid data.mode"):
        validate_config(cfg)


def test_config_rejects_non_integer_seed(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["experiment"]["seed"] = "42"
    with pytest.raises(ConfigValidationError, match="seed must be an integer"):
        validate_config(cfg)


def test_config_rejects_bad_metrics(base_classification_config):
    cfg = copy.deepcopy(base_classification_config)
    cfg["metrics"]["names"] = ["accuracy", "brier"]
    cfg["metrics"]["event_level"] = "last"
    cfg["metrics"]["average"] = "geometric"
    with pytest.raises(ConfigValidationError) as excinfo:
        validate_config(cfg)

    message = str(excinfo.value)
    assert "Unknown metrics ['brier']" in message
    assert "Invalid metrics.event_level" in message
    assert "Invalid metrics.average" in message


def test_config_rejects_bad_execution(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["execution"] = {"n_jobs": 0, "backend": "dask"}
    with pytest.raises(ConfigValidationError) as excinfo:
        validate_config(cfg)
    assert "n_jobs" in str(excinfo.value)
    assert "backend" in str(excinfo.value)


def test_config_error_is_invalid_parameter(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["resampling"]["v"] = 1
    with pytest.raises(InvalidParameter):
        validate_config(cfg)


def test_config_hash_deterministic(base_regression_config):
    h1 = config_hash(base_regression_config)
    h2 = config_hash(base_regression_config)
    assert h1 == h2

    # Same content but different key insertion order should still match
    cfg2 = {
        "metrics": base_regression_config["metrics"],
        "execution": base_regression_config["execution"],
        "data": base_regression_config["data"],
        "experiment": base_regression_config["experiment"],
        "model": base_regression_config["model"],
        "resampling": base_regression_config["resampling"],
    }
    assert config_hash(cfg2) == h1


def test_load_config_roundtrip(base_regression_config, write_yaml):
    path = write_yaml(base_regression_config)
    assert load_config(path) == base_regression_config


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_shipped_configs_are_valid():
    import glob
    import os

    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    paths = sorted(glob.glob(os.path.join(root, "configs", "*.yaml")))
    assert paths
    for path in paths:
        validate_config(load_config(path))


def test_config_invalid_mode_is_collected_with_other_errors(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["data"]["mode"] = "survival"
    cfg["resampling"]["v"] = 1
    with pytest.raises(ConfigValidationError) as excinfo:
        validate_config(cfg)

    message = str(excinfo.value)
    assert "Invalid data.mode 'survival'" in message
    assert "resampling.v must be >= 2" in message


@pytest.mark.parametrize("names, average", [
    (["precision", "roc_auc"], "hand_till"),
    (["f_meas"], "hand_till"),
])
def test_config_rejects_average_not_accepted_by_metric(base_classification_config, names, average):
    cfg = copy.deepcopy(base_classification_config)
    cfg["metrics"]["names"] = names
    cfg["metrics"]["average"] = average
    with pytest.raises(ConfigValidationError, match="is not valid for metric"):
        validate_config(cfg)


def test_config_accepts_hand_till_for_roc_auc_only(base_classification_config):
    cfg = copy.deepcopy(base_classification_config)
    cfg["metrics"]["names"] = ["accuracy", "roc_auc"]
    cfg["metrics"]["average"] = "hand_till"
    assert validate_config(cfg) is True
