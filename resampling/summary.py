# Aggregation of per-resample metric values
# Compares stability and interval widths between resampling strategies and models.
#
# Standard errors are the naive stdev / sqrt(n). Replicates from repeated
# V-fold or Monte-Carlo CV share rows and are not independent, so their
# standard errors are optimistic; they are still reported this way.

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

NO_VALID_REPLICATES = 'no valid replicates'


@dataclass(frozen=True)
class MetricRecord:
    """One metric value for one split; ``error_kind`` is set when it failed."""

    split_id: str
    metric: str
    value: Optional[float]
    error_kind: Optional[str] = None
    error: Optional[str] = None
    apparent: bool = False

    @property
    def ok(self):
        return self.error_kind is None


@dataclass(frozen=True)
class AggregatedEstimate:
    metric: str
    mean: Optional[float]
    std_err: Optional[float]
    n: int
    n_excluded: int = 0

    @property
    def status(self):
        return 'ok' if self.n > 0 else NO_VALID_REPLICATES


def summarize_records(records: Iterable[MetricRecord]) -> List[AggregatedEstimate]:
    """
    Mean and standard error per metric.

    Apparent-split records are left out entirely; failed records are left out
    of the mean and counted in ``n_excluded``. ``std_err`` is None below two
    replicates and ``mean`` is None when no replicate survived.
    """
    values: Dict[str, List[float]] = {}
    excluded: Dict[str, int] = {}

    for rec in records:
        if rec.apparent:
            continue
        values.setdefault(rec.metric, [])
        excluded.setdefault(rec.metric, 0)
        if rec.ok:
            values[rec.metric].append(rec.value)
        else:
            excluded[rec.metric] += 1

    estimates = []
    for metric, vals in values.items():
        n = len(vals)
        if n == 0:
            estimates.append(AggregatedEstimate(metric, None, None, 0, excluded[metric]))
            continue
        arr = np.asarray(vals, dtype=float)
        std_err = float(np.std(arr, ddof=1) / np.sqrt(n)) if n > 1 else None
        estimates.append(AggregatedEstimate(metric, float(np.mean(arr)), std_err, n, excluded[metric]))

    return estimates


def records_frame(records: Iterable[MetricRecord]) -> pd.DataFrame:
    columns = ['split_id', 'metric', 'value', 'error_kind', 'error', 'apparent']
    rows = [{c: getattr(r, c) for c in columns} for r in records]
    return pd.DataFrame(rows, columns=columns)


def estimates_frame(estimates: Iterable[AggregatedEstimate]) -> pd.DataFrame:
    columns = ['metric', 'mean', 'std_err', 'n', 'n_excluded', 'status']
    rows = [{c: getattr(e, c) for c in columns} for e in estimates]
    return pd.DataFrame(rows, columns=columns)


def estimate_632(result, metric):
    """
    Bootstrap .632 estimate: 0.368 * apparent + 0.632 * mean out-of-bag value.

    Needs a result evaluated on ``bootstraps(..., apparent=True)``.
    """
    apparent = [r for r in result.records if r.apparent and r.metric == metric and r.ok]
    if not apparent:
        raise ValueError(f"No apparent value for '{metric}'; resample with bootstraps(apparent=True)")

    oob = result.estimate(metric)
    if oob.mean is None:
        raise ValueError(f"'{metric}' has {NO_VALID_REPLICATES}")

    return 0.368 * apparent[0].value + 0.632 * oob.mean


def compare_strategies(results: Dict[str, object], metric: str, level: float = 0.95) -> pd.DataFrame:
    """
    Compare interval widths of one metric across resampling strategies.

    Args:
        results: Dict mapping strategy label to EvaluationResult
        metric: Metric name present in every result
        level: Confidence level of the t interval

    Returns:
        DataFrame with one row per strategy: n, mean, std_err, ci_lower,
        ci_upper and ci_width (NaN where fewer than two replicates survived)
    """
    if not 0 < level < 1:
        raise ValueError(f"level must be in (0, 1), got {level}")

    rows = []
    for label, result in results.items():
        est = result.estimate(metric)
        row = {
            'strategy': label,
            'n': est.n,
            'mean': np.nan if est.mean is None else est.mean,
            'std_err': np.nan if est.std_err is None else est.std_err,
            'ci_lower': np.nan,
            'ci_upper': np.nan,
            'ci_width': np.nan,
        }
        if est.std_err is not None:
            t_crit = stats.t.ppf(1 - (1 - level) / 2, df=est.n - 1)
            half = t_crit * est.std_err
            row['ci_lower'] = est.mean - half
            row['ci_upper'] = est.mean + half
            row['ci_width'] = 2 * half
        rows.append(row)

    return pd.DataFrame(rows)


def compare_models(results: Dict[str, object], metric: str) -> pd.DataFrame:
    """
    Paired comparison of models evaluated on the same resamples.

    Values are matched on split id; each pair of models gets the mean
    difference and a paired t-test over the shared splits.
    """
    per_model = {}
    for name, result in results.items():
        frame = result.metrics
        frame = frame[(frame['metric'] == metric) & frame['error_kind'].isna() & ~frame['apparent'].astype(bool)]
        per_model[name] = frame.set_index('split_id')['value'].astype(float)

    names = list(per_model)
    rows = []
    for i in range(len(names)):
        for j in range(i + 1, len(names)):
            a, b = per_model[names[i]], per_model[names[j]]
            shared = a.index.intersection(b.index)
            row = {
                'model_a': names[i],
                'model_b': names[j],
                'n': len(shared),
                'mean_diff': float((a[shared] - b[shared]).mean()) if len(shared) else np.nan,
                't_stat': np.nan,
                'p_value': np.nan,
            }
            if len(shared) >= 2:
                t_stat, p_value = stats.ttest_rel(a[shared], b[shared])
                row['t_stat'] = float(t_stat)
                row['p_value'] = float(p_value)
            rows.append(row)

    return pd.DataFrame(rows, columns=['model_a', 'model_b', 'n', 'mean_diff', 't_stat', 'p_value'])
