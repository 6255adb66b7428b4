# Performance metrics
# Regression: rmse, mae, rsq, rsq_trad
# Classification: accuracy, precision, recall, f_meas, mcc, roc_auc
#
# Metric functions take (truth, estimate) and return a float. A Metric wraps
# one of them together with its options and knows which prediction column(s)
# to read, so the engine can call every metric the same way:
# metric(truth, predictions_frame).

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy.stats import pearsonr
from sklearn.metrics import (
    accuracy_score, f1_score, fbeta_score, matthews_corrcoef,
    mean_absolute_error, mean_squared_error, precision_score, r2_score,
    recall_score, roc_auc_score
)
from sklearn.preprocessing import label_binarize

from .errors import InvalidParameter, UndefinedMetric

EVENT_LEVELS = ['first', 'second']
ALLOWED_AVERAGES = ['binary', 'macro', 'macro_weighted', 'micro']
ALLOWED_ROC_AVERAGES = ALLOWED_AVERAGES + ['hand_till']

# average names -> scikit-learn average argument
_SK_AVERAGE = {'macro': 'macro', 'macro_weighted': 'weighted', 'micro': 'micro'}


def _levels(truth, estimate=None):
    """Outcome levels in factor order (categorical) or sorted order."""
    if isinstance(truth.dtype, pd.CategoricalDtype):
        return list(truth.cat.categories)
    values = set(pd.Series(truth).dropna().unique().tolist())
    if estimate is not None:
        values |= set(pd.Series(estimate).dropna().unique().tolist())
    return sorted(values)


def _event(levels, event_level):
    if event_level not in EVENT_LEVELS:
        raise ValueError(f"Invalid event_level '{event_level}'. Allowed: {EVENT_LEVELS}")
    if len(levels) < 2:
        raise UndefinedMetric(f"Need two outcome levels to pick an event, got {levels}")
    return levels[0] if event_level == 'first' else levels[1]


def _resolve_average(levels, average, allowed=ALLOWED_AVERAGES):
    if average is None:
        return 'binary' if len(levels) == 2 else 'macro'
    if average not in allowed:
        raise ValueError(f"Invalid average '{average}'. Allowed: {allowed}")
    if average == 'binary' and len(levels) != 2:
        raise ValueError(f"average='binary' needs exactly two levels, got {len(levels)}")
    return average


def _check_lengths(truth, estimate):
    if len(truth) != len(estimate):
        raise ValueError(f"truth and estimate differ in length ({len(truth)} vs {len(estimate)})")
    if len(truth) == 0:
        raise UndefinedMetric("Empty assessment set")


def _as_labels(values):
    return np.asarray(pd.Series(values).astype(object))


def _finite(name, value):
    value = float(value)
    if np.isnan(value):
        raise UndefinedMetric(f"{name} is undefined for this assessment set")
    return value


# --- regression -----------------------------------------------------------

def rmse(truth, estimate):
    _check_lengths(truth, estimate)
    return float(np.sqrt(mean_squared_error(np.asarray(truth, dtype=float), np.asarray(estimate, dtype=float))))


def mae(truth, estimate):
    _check_lengths(truth, estimate)
    return float(mean_absolute_error(np.asarray(truth, dtype=float), np.asarray(estimate, dtype=float)))


def rsq(truth, estimate):
    """Squared Pearson correlation between truth and estimate."""
    _check_lengths(truth, estimate)
    y = np.asarray(truth, dtype=float)
    y_hat = np.asarray(estimate, dtype=float)
    if len(y) < 2 or np.std(y) == 0 or np.std(y_hat) == 0:
        raise UndefinedMetric("rsq is undefined for constant truth or estimate")
    return float(pearsonr(y, y_hat)[0] ** 2)


def rsq_trad(truth, estimate):
    """Traditional R squared, 1 - SSE / SST."""
    _check_lengths(truth, estimate)
    y = np.asarray(truth, dtype=float)
    if len(y) < 2 or np.std(y) == 0:
        raise UndefinedMetric("rsq_trad is undefined for constant truth")
    return float(r2_score(y, np.asarray(estimate, dtype=float)))


# --- classification (hard labels) ---------------------------------------------

def accuracy(truth, estimate):
    _check_lengths(truth, estimate)
    return float(accuracy_score(_as_labels(truth), _as_labels(estimate)))


def mcc(truth, estimate):
    """Matthews correlation coefficient (native multiclass form, no averaging)."""
    _check_lengths(truth, estimate)
    return float(matthews_corrcoef(_as_labels(truth), _as_labels(estimate)))


def _averaged(name, sk_fn, truth, estimate, event_level, average, **kwargs):
    _check_lengths(truth, estimate)
    levels = _levels(truth, estimate)
    average = _resolve_average(levels, average)

    if average == 'binary':
        event = _event(levels, event_level)
        y_true = _as_labels(truth) == event
        y_pred = _as_labels(estimate) == event
        value = sk_fn(y_true, y_pred, pos_label=True, average='binary', zero_division=np.nan, **kwargs)
    else:
        value = sk_fn(
            _as_labels(truth), _as_labels(estimate),
            labels=levels, average=_SK_AVERAGE[average], zero_division=np.nan, **kwargs
        )
    return _finite(name, value)


def precision(truth, estimate, event_level='first', average=None):
    """
    Precision.

    For two levels ``event_level`` selects the positive class ('first' is the
    default and matches the first factor level). With more levels, or an
    explicit ``average``, one-vs-rest scores are combined by 'macro',
    'macro_weighted' (class support weights) or 'micro' (pooled counts).
    Raises UndefinedMetric when no events were predicted.
    """
    return _averaged('precision', precision_score, truth, estimate, event_level, average)


def recall(truth, estimate, event_level='first', average=None):
    """Recall; see ``precision`` for event_level and averaging."""
    return _averaged('recall', recall_score, truth, estimate, event_level, average)


def f_meas(truth, estimate, event_level='first', average=None, beta=1.0):
    """F-measure with weight ``beta`` on recall; see ``precision``."""
    if beta == 1.0:
        return _averaged('f_meas', f1_score, truth, estimate, event_level, average)
    return _averaged('f_meas', fbeta_score, truth, estimate, event_level, average, beta=beta)


# --- classification (probabilities) ------------------------------------------

def roc_auc(truth, estimate, event_level='first', average=None):
    """
    Area under the ROC curve from class probabilities.

    ``estimate`` is a frame with one ``pred_<level>`` column per outcome
    level. Binary problems use the probability of the event level. For
    multiclass the default is the Hand-Till (one-vs-one) estimator;
    'macro', 'macro_weighted' and 'micro' use one-vs-rest.
    """
    _check_lengths(truth, estimate)
    levels = _levels(truth)
    if len(levels) == 2:
        # both one-vs-rest curves of a two-level outcome have the same area
        average = 'binary'
    elif average is None:
        average = 'hand_till'
    average = _resolve_average(levels, average, allowed=ALLOWED_ROC_AVERAGES)

    y_true = _as_labels(truth)
    if len(np.unique(y_true)) < 2:
        raise UndefinedMetric(f"roc_auc needs at least two observed classes, got {np.unique(y_true).tolist()}")

    try:
        if average == 'binary':
            event = _event(levels, event_level)
            return float(roc_auc_score(y_true == event, estimate[f'pred_{event}']))

        # scikit-learn wants the class labels in sorted order
        ordered = sorted(levels)
        probs = estimate[[f'pred_{level}' for level in ordered]].to_numpy(dtype=float)
        if average == 'hand_till':
            return float(roc_auc_score(y_true, probs, multi_class='ovo', labels=ordered))
        if average == 'micro':
            return float(roc_auc_score(label_binarize(y_true, classes=ordered), probs, average='micro'))
        return float(roc_auc_score(y_true, probs, multi_class='ovr', labels=ordered, average=_SK_AVERAGE[average]))
    except ValueError as e:
        raise UndefinedMetric(f"roc_auc: {e}") from e


@dataclass(frozen=True)
class Metric:
    """A metric function bound to its options and prediction column(s)."""

    name: str
    fn: Callable
    kind: str
    direction: str = 'maximize'
    options: Dict = field(default_factory=dict)

    def __call__(self, truth, predictions):
        truth = pd.Series(truth).reset_index(drop=True)
        if self.kind == 'numeric':
            estimate = predictions['pred']
        elif self.kind == 'class':
            estimate = predictions['pred_class']
        else:
            prob_cols = [c for c in predictions.columns if c.startswith('pred_') and c != 'pred_class']
            if not prob_cols:
                raise UndefinedMetric(f"{self.name} needs class probabilities but the model produced none")
            estimate = predictions[prob_cols]
        return self.fn(truth, estimate.reset_index(drop=True), **self.options)


# name -> (function, kind, direction, accepted options)
METRICS = {
    'rmse': (rmse, 'numeric', 'minimize', ()),
    'mae': (mae, 'numeric', 'minimize', ()),
    'rsq': (rsq, 'numeric', 'maximize', ()),
    'rsq_trad': (rsq_trad, 'numeric', 'maximize', ()),
    'accuracy': (accuracy, 'class', 'maximize', ()),
    'mcc': (mcc, 'class', 'maximize', ()),
    'precision': (precision, 'class', 'maximize', ('event_level', 'average')),
    'recall': (recall, 'class', 'maximize', ('event_level', 'average')),
    'f_meas': (f_meas, 'class', 'maximize', ('event_level', 'average', 'beta')),
    'roc_auc': (roc_auc, 'prob', 'maximize', ('event_level', 'average')),
}

DEFAULT_METRICS = {
    'regression': ['rmse', 'rsq', 'mae'],
    'classification': ['accuracy', 'roc_auc'],
}


def allowed_averages(name):
    """Averaging options a registered metric accepts; None if it takes no ``average``."""
    if 'average' not in METRICS[name][3]:
        return None
    return ALLOWED_ROC_AVERAGES if name == 'roc_auc' else ALLOWED_AVERAGES


def metric_set(names: List[str], event_level: str = 'first', average: Optional[str] = None,
               beta: float = 1.0) -> Dict[str, Metric]:
    """
    Build the explicit name -> Metric mapping consumed by the engine.

    ``event_level`` defaults to 'first' (the first factor level is the event)
    and is applied to every metric that accepts it. ``average`` is checked
    against every metric that accepts one; metrics without averaging ignore it.
    """
    if event_level not in EVENT_LEVELS:
        raise InvalidParameter(f"Invalid event_level '{event_level}'. Allowed: {EVENT_LEVELS}")

    unknown = [n for n in names if n not in METRICS]
    if unknown:
        raise InvalidParameter(f"Unknown metric(s): {unknown}. Supported: {list(METRICS)}")

    if average is not None:
        for name in names:
            allowed = allowed_averages(name)
            if allowed is not None and average not in allowed:
                raise InvalidParameter(f"average='{average}' is not valid for metric '{name}'. Allowed: {allowed}")

    given = {'event_level': event_level, 'average': average, 'beta': beta}
    metrics = {}
    for name in names:
        fn, kind, direction, accepted = METRICS[name]
        options = {k: given[k] for k in accepted}
        metrics[name] = Metric(name=name, fn=fn, kind=kind, direction=direction, options=options)
    return metrics


def default_metrics(mode, event_level='first'):
    return metric_set(DEFAULT_METRICS[mode], event_level=event_level)
