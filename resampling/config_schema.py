# Config schema validation
# Validates config structure, types and resampling parameters before any split runs

from .errors import InvalidParameter
from .metrics import ALLOWED_ROC_AVERAGES, EVENT_LEVELS, METRICS, allowed_averages
from .models import SUPPORTED_MODELS
from .splitters import POLICY_PARAMS

REQUIRED_KEYS = {
    'experiment': ['name', 'seed'],
    'data': ['outcome_column'],
    'resampling': ['policy'],
    'model': ['type'],
}

ALLOWED_MODES = ['regression', 'classification']

ALLOWED_BACKENDS = ['loky', 'threading', 'multiprocessing', 'sequential']


class ConfigValidationError(InvalidParameter):
    """Raised when config validation fails."""
    pass


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config):
    """
    Validate experiment configuration.

    Args:
        config: dict - Configuration dictionary

    Raises:
        ConfigValidationError listing every problem found
    """
    errors = []

    # Check required top-level keys
    for section, required_keys in REQUIRED_KEYS.items():
        if section not in config or not isinstance(config[section], dict):
            errors.append(f"Missing required section: '{section}'")
            continue
        for key in required_keys:
            if key not in config[section]:
                errors.append(f"Missing required key: '{section}.{key}'")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    if not _is_int(config['experiment'].get('seed')):
        errors.append("experiment.seed must be an integer")

    mode = config['data'].get('mode')
    if mode is not None and mode not in ALLOWED_MODES:
        errors.append(f"Invalid data.mode '{mode}'. Allowed: {ALLOWED_MODES}")

    errors.extend(_resampling_errors(config['resampling']))

    model_type = config['model'].get('type')
    if mode is None:
        allowed_models = sorted(set(sum(SUPPORTED_MODELS.values(), [])))
    else:
        # empty for an invalid mode, which is reported above
        allowed_models = SUPPORTED_MODELS.get(mode, [])
    if allowed_models and model_type not in allowed_models:
        errors.append(f"Invalid model type '{model_type}'. Allowed: {allowed_models}")

    errors.extend(_metrics_errors(config.get('metrics', {})))

    execution = config.get('execution', {})
    n_jobs = execution.get('n_jobs', 1)
    if not _is_int(n_jobs) or n_jobs == 0:
        errors.append("execution.n_jobs must be a non-zero integer (-1 = all cores)")
    backend = execution.get('backend', 'loky')
    if backend not in ALLOWED_BACKENDS:
        errors.append(f"Invalid execution.backend '{backend}'. Allowed: {ALLOWED_BACKENDS}")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    return True


def _resampling_errors(rs_config):
    """Cheap, deterministic checks on splitter parameters."""
    errors = []
    policy = rs_config.get('policy')
    if policy not in POLICY_PARAMS:
        return [f"Invalid resampling.policy '{policy}'. Allowed: {list(POLICY_PARAMS)}"]

    unexpected = sorted(set(rs_config) - set(POLICY_PARAMS[policy]) - {'policy'})
    if unexpected:
        errors.append(f"resampling keys {unexpected} are not valid for policy '{policy}'")

    for key, minimum in (('v', 2), ('repeats', 1), ('times', 1), ('breaks', 2)):
        if key in rs_config:
            value = rs_config[key]
            if not _is_int(value):
                errors.append(f"resampling.{key} must be an integer")
            elif value < minimum:
                errors.append(f"resampling.{key} must be >= {minimum}")

    if 'prop' in rs_config:
        prop = rs_config['prop']
        if isinstance(prop, bool) or not isinstance(prop, (int, float)) or not 0 < prop < 1:
            errors.append(f"resampling.prop must be in (0, 1), got {prop!r}")

    if 'apparent' in rs_config and not isinstance(rs_config['apparent'], bool):
        errors.append("resampling.apparent must be true or false")

    return errors


def _metrics_errors(metrics_config):
    errors = []
    names = metrics_config.get('names')
    if names is not None:
        unknown = [n for n in names if n not in METRICS]
        if unknown:
            errors.append(f"Unknown metrics {unknown}. Allowed: {list(METRICS)}")

    event_level = metrics_config.get('event_level', 'first')
    if event_level not in EVENT_LEVELS:
        errors.append(f"Invalid metrics.event_level '{event_level}'. Allowed: {EVENT_LEVELS}")

    average = metrics_config.get('average')
    if average is not None and average not in ALLOWED_ROC_AVERAGES:
        errors.append(f"Invalid metrics.average '{average}'. Allowed: {ALLOWED_ROC_AVERAGES}")
    elif average is not None:
        for name in names or []:
            allowed = allowed_averages(name) if name in METRICS else None
            if allowed is not None and average not in allowed:
                errors.append(f"metrics.average '{average}' is not valid for metric '{name}'. Allowed: {allowed}")

    return errors
