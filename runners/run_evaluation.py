# Resampling evaluation runner
# Estimates out-of-sample model performance from a YAML config

import argparse
import random
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from resampling.config_schema import validate_config, ConfigValidationError
from resampling.io import load_config, save_results, save_model, create_run_dir, save_data_profile
from resampling.data import load_dataset, validate_data_integrity
from resampling.splitters import make_resamples, resamples_from_config
from resampling.models import model_factory
from resampling.metrics import metric_set, DEFAULT_METRICS
from resampling.engine import ExecutionContext, evaluate
from resampling.summary import compare_strategies

# Strategies compared by --compare-strategies: label -> (policy, params)
COMPARISON_STRATEGIES = {
    '10-fold CV': ('vfold', {'v': 10}),
    '10-fold CV x5': ('vfold', {'v': 10, 'repeats': 5}),
    'Bootstrap (25)': ('bootstrap', {'times': 25}),
    'Monte-Carlo CV (25)': ('mc', {'prop': 0.75, 'times': 25}),
}


def set_seeds(seed):
    """Set all random seeds for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)


def _metrics_from_config(config, mode):
    metrics_cfg = config.get('metrics', {})
    names = metrics_cfg.get('names') or DEFAULT_METRICS[mode]
    return metric_set(
        names,
        event_level=metrics_cfg.get('event_level', 'first'),
        average=metrics_cfg.get('average'),
        beta=metrics_cfg.get('beta', 1.0),
    )


def _context_from_config(config):
    execution = config.get('execution', {})
    return ExecutionContext(n_jobs=execution.get('n_jobs', 1), backend=execution.get('backend', 'loky'))


def print_estimates(result, title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    for est in result.aggregates:
        if est.mean is None:
            print(f"{est.metric:12s} {est.status} ({est.n_excluded} failed)")
            continue
        se = f"{est.std_err:.4f}" if est.std_err is not None else "n/a"
        line = f"{est.metric:12s} {est.mean:.4f} ± {se}  (n={est.n}"
        if est.n_excluded:
            line += f", {est.n_excluded} failed"
        print(line + ")")
    if not result.apparent.empty:
        print("Apparent (not averaged):")
        for _, row in result.apparent.iterrows():
            print(f"  {row['metric']:10s} {row['value']:.4f}")


def run_evaluation(config_path, dataset_path=None, output_dir=None):
    """
    Run one resampling evaluation.

    Args:
        config_path: Path to YAML config file
        dataset_path: Optional path to dataset CSV (overrides config)
        output_dir: Optional output directory (overrides config)

    Returns:
        run_dir: Path to evaluation output directory
    """
    config = load_config(config_path)

    if output_dir:
        config['experiment']['output_dir'] = output_dir

    try:
        validate_config(config)
    except ConfigValidationError as e:
        print(f"\nCONFIG ERROR:\n{e}")
        raise

    seed = config['experiment']['seed']
    set_seeds(seed)

    print("=" * 60)
    print("RESAMPLING EVALUATION")
    print("=" * 60)
    print(f"Experiment: {config['experiment']['name']}")
    print(f"Outcome: {config['data']['outcome_column']}")
    print(f"Policy: {config['resampling']['policy']}")
    print(f"Seed: {seed}")
    print("=" * 60)

    dataset, actual_path = load_dataset(config, dataset_path)
    validate_data_integrity(dataset)

    print(f"\nDataset: {dataset.n_rows} rows, {len(dataset.predictors)} predictors ({dataset.mode})")
    if dataset.mode == 'classification':
        print(f"Class distribution: {dataset.column(dataset.outcome).value_counts().to_dict()}")

    # Configuration errors surface here, before any model is fit
    resamples = resamples_from_config(dataset, config)
    factory = model_factory(config, mode=dataset.mode)
    metrics = _metrics_from_config(config, dataset.mode)
    print(f"Model: {config['model']['type']}")

    result = evaluate(dataset, resamples, factory, metrics,
                      context=_context_from_config(config),
                      save_pred=config.get('metrics', {}).get('save_pred', False))
    print_estimates(result, f"RESULTS ({resamples.policy}, {len(resamples.primary())} resamples)")

    run_dir = create_run_dir(config)
    save_data_profile(run_dir, dataset, actual_path)
    save_results(run_dir, config, result)

    # Final model on the full dataset
    final_model = factory()
    final_model.fit(dataset.frame, dataset.outcome)
    save_model(run_dir, final_model)

    print("\n" + "=" * 60)
    print("Evaluation complete!")
    print("=" * 60)

    return run_dir


def run_strategy_comparison(config_path, dataset_path=None, metric=None, level=0.95):
    """
    Evaluate the configured model under several resampling strategies and
    compare the widths of their confidence intervals for one metric.
    """
    config = load_config(config_path)
    validate_config(config)
    seed = config['experiment']['seed']
    set_seeds(seed)

    dataset, _ = load_dataset(config, dataset_path)
    validate_data_integrity(dataset)

    factory = model_factory(config, mode=dataset.mode)
    metrics = _metrics_from_config(config, dataset.mode)
    metric = metric or next(iter(metrics))
    strata = config['resampling'].get('strata')
    context = _context_from_config(config)

    results = {}
    for label, (policy, params) in COMPARISON_STRATEGIES.items():
        params = dict(params, seed=seed)
        if strata is not None:
            params['strata'] = strata
        resamples = make_resamples(dataset, policy, **params)
        results[label] = evaluate(dataset, resamples, factory, metrics, context=context)

    table = compare_strategies(results, metric, level=level)

    print("\n" + "=" * 70)
    print(f"STRATEGY COMPARISON ({metric}, {int(level * 100)}% CI)")
    print("=" * 70)
    for _, row in table.iterrows():
        print(f"{row['strategy']:22s} | n={int(row['n']):3d} | mean={row['mean']:.4f} | "
              f"SE={row['std_err']:.4f} | CI width={row['ci_width']:.4f}")

    return table


def main():
    parser = argparse.ArgumentParser(
        description='Estimate model performance with resampling (v-fold, bootstrap, Monte-Carlo CV)'
    )
    parser.add_argument('--config', '-c', type=str, default='configs/vfold_classification.yaml',
                       help='Path to config YAML file')
    parser.add_argument('--dataset', '-d', type=str, default=None,
                       help='Path to dataset CSV (overrides config)')
    parser.add_argument('--output-dir', '-o', type=str, default=None,
                       help='Output directory (overrides config)')
    parser.add_argument('--compare-strategies', action='store_true',
                       help='Compare CI widths across resampling strategies instead of a single run')
    parser.add_argument('--metric', type=str, default=None,
                       help='Metric used by --compare-strategies (default: first configured metric)')
    args = parser.parse_args()

    if args.compare_strategies:
        run_strategy_comparison(args.config, args.dataset, metric=args.metric)
    else:
        run_evaluation(args.config, args.dataset, args.output_dir)


if __name__ == "__main__":
    main()
