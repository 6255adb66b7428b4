# I/O utilities for evaluation runs
# Config loading, result saving, run directory management

import os
import json
import hashlib
from datetime import datetime

import joblib
import numpy as np
import yaml


def load_config(config_path):
    """Load YAML configuration file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Config file is empty or invalid: {config_path}")

    return config


def config_hash(config):
    """Generate deterministic hash of config for run naming."""
    config_str = json.dumps(config, sort_keys=True)
    return hashlib.md5(config_str.encode()).hexdigest()[:8]


def dataset_hash(df):
    """Generate hash of dataset content for fingerprinting."""
    # Hash based on shape and sample of data
    content = f"{df.shape}_{df.columns.tolist()}_{df.head(10).to_json()}_{df.tail(10).to_json()}"
    return hashlib.md5(content.encode()).hexdigest()[:12]


def create_run_dir(config, output_dir=None):
    """Create unique run directory for evaluation outputs."""
    output_dir = output_dir or config['experiment'].get('output_dir', 'runs')
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    cfg_hash = config_hash(config)
    run_name = f"{config['experiment']['name']}_{timestamp}_{cfg_hash}"
    run_dir = os.path.join(output_dir, run_name)
    os.makedirs(run_dir, exist_ok=True)
    return run_dir


def _json_value(value):
    if value is None:
        return None
    if isinstance(value, (np.floating, float)):
        return None if np.isnan(value) else float(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


def save_results(run_dir, config, result):
    """
    Save all evaluation artifacts to run directory.

    Writes config.yaml, metrics.csv (one row per split and metric),
    estimates.json (aggregates plus resample sizes) and, when predictions
    were kept, predictions.csv.
    """
    with open(os.path.join(run_dir, 'config.yaml'), 'w') as f:
        yaml.dump(config, f, default_flow_style=False)

    result.metrics.to_csv(os.path.join(run_dir, 'metrics.csv'), index=False)

    estimates_json = {
        'experiment_name': config['experiment']['name'],
        'seed': config['experiment']['seed'],
        'model_type': config['model']['type'],
        'outcome_column': config['data']['outcome_column'],
        'policy': result.resamples.policy,
        'n_resamples': len(result.resamples.primary()),
        'estimates': {},
        'apparent': {},
    }

    for est in result.aggregates:
        estimates_json['estimates'][est.metric] = {
            'mean': _json_value(est.mean),
            'std_err': _json_value(est.std_err),
            'n': est.n,
            'n_excluded': est.n_excluded,
            'status': est.status,
            'all': [float(v) for v in result.values(est.metric)],
        }

    for rec in result.records:
        if rec.apparent:
            estimates_json['apparent'][rec.metric] = _json_value(rec.value)

    with open(os.path.join(run_dir, 'estimates.json'), 'w') as f:
        json.dump(estimates_json, f, indent=2)

    if result.predictions is not None:
        result.predictions.to_csv(os.path.join(run_dir, 'predictions.csv'), index=False)

    print(f"Results saved to: {run_dir}")
    return run_dir


def save_model(run_dir, model, filename='model.joblib'):
    """Persist a fitted model with joblib; returns the path."""
    path = os.path.join(run_dir, filename)
    joblib.dump(model, path)
    print(f"Model saved to: {path}")
    return path


def save_data_profile(run_dir, dataset, dataset_path):
    """Save dataset fingerprint/profile for reproducibility tracking."""
    df = dataset.frame
    y = df[dataset.outcome]
    profile = {
        'dataset_path': str(dataset_path) if dataset_path else 'in_memory',
        'dataset_hash': dataset_hash(df),
        'total_rows': len(df),
        'total_columns': len(df.columns),
        'predictor_count': len(dataset.predictors),
        'predictors': dataset.predictors,
        'outcome_column': dataset.outcome,
        'mode': dataset.mode,
        'schema': dataset.schema,
        'outcome_stats': {
            'unique_values': int(y.nunique()),
            'value_counts': {str(k): int(v) for k, v in y.value_counts().items()} if dataset.mode == 'classification' else None,
            'mean': float(y.mean()) if dataset.mode == 'regression' else None,
            'std': float(y.std()) if dataset.mode == 'regression' else None,
        },
        'missing_values': int(df[dataset.predictors].isnull().sum().sum()),
        'timestamp': datetime.now().isoformat()
    }

    with open(os.path.join(run_dir, 'data_profile.json'), 'w') as f:
        json.dump(profile, f, indent=2)

    return profile
