# Resampling engine
# Runs fit -> predict -> score for every split and aggregates the results.

import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import pandas as pd
from joblib import Parallel, delayed

from .errors import InvalidParameter, ResampleFailureWarning
from .splitters import ResampleCollection, make_resamples
from .summary import (
    AggregatedEstimate, MetricRecord, estimates_frame, records_frame, summarize_records
)

FIT_FAILURE = 'FitFailure'
UNDEFINED_METRIC = 'UndefinedMetric'


@dataclass(frozen=True)
class ExecutionContext:
    """
    How split work units are executed.

    Work units share no state, so any joblib backend can run them. Every
    worker holds its own analysis subset next to the shared source data:
    budget roughly (n_jobs + 1) x dataset size of memory.
    """

    n_jobs: int = 1
    backend: str = 'loky'
    verbose: int = 0

    def parallel(self):
        return Parallel(n_jobs=self.n_jobs, backend=self.backend, verbose=self.verbose)


@dataclass
class EvaluationResult:
    resamples: ResampleCollection
    records: List[MetricRecord]
    aggregates: List[AggregatedEstimate]
    predictions: Optional[pd.DataFrame] = field(default=None, repr=False)

    @property
    def metrics(self) -> pd.DataFrame:
        """Metric table: one row per split and metric, apparent split included."""
        return records_frame(self.records)

    @property
    def estimates(self) -> pd.DataFrame:
        return estimates_frame(self.aggregates)

    @property
    def apparent(self) -> pd.DataFrame:
        return records_frame([r for r in self.records if r.apparent])

    def estimate(self, metric) -> AggregatedEstimate:
        for est in self.aggregates:
            if est.metric == metric:
                return est
        raise KeyError(f"No estimate for metric '{metric}'. Available: {[e.metric for e in self.aggregates]}")

    def values(self, metric) -> List[float]:
        """Successful per-split values of one metric, apparent split excluded."""
        return [r.value for r in self.records if r.metric == metric and r.ok and not r.apparent]


def _failed(split, metrics, kind, exc):
    message = f"{type(exc).__name__}: {exc}" if exc is not None else kind
    return [
        MetricRecord(split.split_id, name, None, error_kind=kind, error=message, apparent=split.apparent)
        for name in metrics
    ]


def _fit_split(dataset, split, model_factory, metrics, save_pred):
    """
    One work unit: fit a fresh model on the analysis set, score the assessment set.

    Exceptions never escape; they become error-marked records.
    """
    if split.n_assessment == 0:
        return _failed(split, metrics, UNDEFINED_METRIC, ValueError("empty assessment set")), None

    assessment = dataset.assessment(split)
    try:
        model = model_factory()
        model.fit(dataset.analysis(split), dataset.outcome)
        predictions = model.predict(assessment).reset_index(drop=True)
        if len(predictions) != len(assessment):
            raise ValueError(f"model returned {len(predictions)} predictions for {len(assessment)} rows")
    except Exception as e:
        return _failed(split, metrics, FIT_FAILURE, e), None

    truth = assessment[dataset.outcome]
    records = []
    for name, metric in metrics.items():
        try:
            value = float(metric(truth, predictions))
        except Exception as e:
            records.append(MetricRecord(
                split.split_id, name, None, error_kind=UNDEFINED_METRIC,
                error=f"{type(e).__name__}: {e}", apparent=split.apparent
            ))
            continue
        records.append(MetricRecord(split.split_id, name, value, apparent=split.apparent))

    saved = None
    if save_pred:
        saved = predictions.copy()
        saved.insert(0, dataset.outcome, truth.to_numpy())
        saved.insert(0, 'row', split.assessment)
        saved.insert(0, 'split_id', split.split_id)
    return records, saved


def _warn_failures(aggregates):
    for est in aggregates:
        if est.n_excluded:
            warnings.warn(
                f"{est.metric}: {est.n_excluded} of {est.n + est.n_excluded} resamples failed and were "
                f"excluded from the estimate",
                ResampleFailureWarning,
                stacklevel=3,
            )


def evaluate(dataset, resamples, model_factory: Callable, metrics: Dict[str, Callable],
             context: Optional[ExecutionContext] = None, save_pred: bool = False) -> EvaluationResult:
    """
    Evaluate a model over every split of a resample collection.

    Args:
        dataset: Dataset to resample
        resamples: ResampleCollection, or a mapping {'policy': ..., **params}
            that is resolved with make_resamples before any work starts
        model_factory: Zero-argument callable returning an untrained model;
            called once per split
        metrics: Mapping of metric name to callable(truth, predictions)
        context: ExecutionContext (defaults to sequential execution)
        save_pred: Keep assessment-set predictions for every split

    Returns:
        EvaluationResult with the metric table and aggregated estimates.
        Splits that fail to fit or score are recorded, not raised.
    """
    if isinstance(resamples, Mapping):
        params = dict(resamples)
        if 'policy' not in params:
            raise InvalidParameter("Resampling mapping needs a 'policy' key")
        resamples = make_resamples(dataset, params.pop('policy'), **params)

    if resamples.n_rows != dataset.n_rows:
        raise InvalidParameter(
            f"Resamples were built for {resamples.n_rows} rows but dataset has {dataset.n_rows}"
        )
    if not metrics:
        raise InvalidParameter("At least one metric is required")
    if not callable(model_factory):
        raise InvalidParameter("model_factory must be callable")
    if dataset.mode == 'classification' and len(dataset.levels) != 2:
        binary = [name for name, m in metrics.items() if getattr(m, 'options', {}).get('average') == 'binary']
        if binary:
            raise InvalidParameter(
                f"average='binary' needs a two-level outcome but '{dataset.outcome}' has "
                f"{len(dataset.levels)} levels (metrics: {binary})"
            )

    context = context or ExecutionContext()
    print(f"Evaluating {len(resamples.primary())} {resamples.policy} resamples (n_jobs={context.n_jobs})...")

    outputs = context.parallel()(
        delayed(_fit_split)(dataset, split, model_factory, metrics, save_pred)
        for split in resamples
    )

    records = [rec for split_records, _ in outputs for rec in split_records]
    aggregates = summarize_records(records)
    _warn_failures(aggregates)

    predictions = None
    if save_pred:
        saved = [p for _, p in outputs if p is not None]
        if saved:
            predictions = pd.concat(saved, ignore_index=True)

    return EvaluationResult(resamples=resamples, records=records, aggregates=aggregates, predictions=predictions)


def last_fit(dataset, split, model_factory, metrics, context=None):
    """Fit on the training part of an initial split and score the test part."""
    collection = ResampleCollection(policy='train/test', splits=(split,), n_rows=dataset.n_rows)
    return evaluate(dataset, collection, model_factory, metrics, context=context, save_pred=True)
