# Resampling evaluation package
# Splitters, a fit/predict/score engine and aggregation for out-of-sample model estimates

from .errors import (
    InvalidParameter, FitFailure, SchemaMismatch, UndefinedMetric, ResampleFailureWarning
)
from .config_schema import validate_config, ConfigValidationError
from .io import load_config, save_results, save_model, create_run_dir, save_data_profile
from .data import Dataset, load_dataset, validate_data_integrity
from .splitters import (
    Split, ResampleCollection, vfold_cv, bootstraps, mc_cv, validation_split,
    initial_split, training, testing, make_resamples, resamples_from_config
)
from .models import TrainableModel, SklearnModel, build_model, model_factory, SUPPORTED_MODELS
from .metrics import Metric, metric_set, default_metrics, allowed_averages, METRICS
from .engine import ExecutionContext, EvaluationResult, evaluate, last_fit
from .summary import (
    MetricRecord, AggregatedEstimate, summarize_records, estimate_632,
    compare_strategies, compare_models
)

__all__ = [
    'InvalidParameter',
    'FitFailure',
    'SchemaMismatch',
    'UndefinedMetric',
    'ResampleFailureWarning',
    'validate_config',
    'ConfigValidationError',
    'load_config',
    'save_results',
    'save_model',
    'create_run_dir',
    'save_data_profile',
    'Dataset',
    'load_dataset',
    'validate_data_integrity',
    'Split',
    'ResampleCollection',
    'vfold_cv',
    'bootstraps',
    'mc_cv',
    'validation_split',
    'initial_split',
    'training',
    'testing',
    'make_resamples',
    'resamples_from_config',
    'TrainableModel',
    'SklearnModel',
    'build_model',
    'model_factory',
    'SUPPORTED_MODELS',
    'Metric',
    'metric_set',
    'default_metrics',
    'allowed_averages',
    'METRICS',
    'ExecutionContext',
    'EvaluationResult',
    'evaluate',
    'last_fit',
    'MetricRecord',
    'AggregatedEstimate',
    'summarize_records',
    'estimate_632',
    'compare_strategies',
    'compare_models',
]
