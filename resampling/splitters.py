# Resampling policies
# V-fold (optionally repeated), bootstrap, Monte-Carlo CV and single validation splits.
# Every policy is a pure function of (dataset, parameters, seed) and returns
# positional index arrays into the dataset; no data is copied here.

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidParameter

APPARENT_ID = 'Apparent'

POLICY_PARAMS = {
    'vfold': ('v', 'repeats', 'strata', 'breaks', 'seed'),
    'bootstrap': ('times', 'strata', 'breaks', 'apparent', 'seed'),
    'mc': ('prop', 'times', 'strata', 'breaks', 'seed'),
    'validation': ('prop', 'strata', 'breaks', 'seed'),
}


@dataclass(frozen=True, eq=False)
class Split:
    """
    One analysis/assessment pair.

    ``analysis`` may contain repeated positions (bootstrap); ``assessment`` is
    always a sorted set of positions. Both arrays are read-only.
    """

    split_id: str
    analysis: np.ndarray
    assessment: np.ndarray
    apparent: bool = False

    def __post_init__(self):
        for arr in (self.analysis, self.assessment):
            arr.setflags(write=False)

    @property
    def n_analysis(self):
        return len(self.analysis)

    @property
    def n_assessment(self):
        return len(self.assessment)

    def __repr__(self):
        return f"<Split {self.split_id}: {self.n_analysis}/{self.n_assessment}>"


@dataclass(frozen=True, eq=False)
class ResampleCollection:
    """Ordered, read-only sequence of splits produced by one splitter call."""

    policy: str
    splits: Tuple[Split, ...]
    n_rows: int
    params: Dict = field(default_factory=dict)

    def __len__(self):
        return len(self.splits)

    def __iter__(self):
        return iter(self.splits)

    def __getitem__(self, item):
        return self.splits[item]

    @property
    def ids(self) -> List[str]:
        return [s.split_id for s in self.splits]

    def primary(self) -> List[Split]:
        """Splits that count towards performance estimates (no apparent split)."""
        return [s for s in self.splits if not s.apparent]

    def apparent_split(self) -> Optional[Split]:
        return next((s for s in self.splits if s.apparent), None)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'split_id': self.ids,
            'n_analysis': [s.n_analysis for s in self.splits],
            'n_assessment': [s.n_assessment for s in self.splits],
            'apparent': [s.apparent for s in self.splits],
        })


def _check_int(name, value, minimum):
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidParameter(f"{name} must be >= {minimum}, got {value}")


def _check_prop(prop):
    if isinstance(prop, bool) or not isinstance(prop, (int, float, np.floating)):
        raise InvalidParameter(f"prop must be a number in (0, 1), got {prop!r}")
    if not 0 < prop < 1:
        raise InvalidParameter(f"prop must be in (0, 1), got {prop}")


def _padded_ids(prefix, n):
    width = len(str(n))
    return [f"{prefix}{str(i).zfill(width)}" for i in range(1, n + 1)]


def _analysis_size(prop, n):
    # round half up, not banker's rounding
    return int(np.floor(prop * n + 0.5))


def _strata_groups(dataset, strata, breaks=4):
    """
    Row positions grouped by stratum.

    Numeric strata with more than ``breaks`` distinct values are binned into
    ``breaks`` quantile groups first. Without strata the whole dataset is a
    single group.
    """
    n = dataset.n_rows
    if strata is None:
        return [np.arange(n)]
    if strata not in dataset.columns:
        raise InvalidParameter(f"Strata column '{strata}' not found in dataset. Available: {dataset.columns}")

    _check_int('breaks', breaks, 2)
    col = dataset.column(strata)
    is_numeric = pd.api.types.is_numeric_dtype(col) and col.dtype != bool
    if is_numeric and col.nunique() > breaks:
        col = pd.qcut(col, q=breaks, labels=False, duplicates='drop')

    codes, _ = pd.factorize(col, sort=True, use_na_sentinel=False)
    return [np.flatnonzero(codes == c) for c in np.unique(codes)]


def _validate_split(split, n_rows):
    """
    Validate split integrity.

    Assertions:
    - All positions are inside the dataset
    - Analysis and assessment sets are disjoint (except the apparent split)
    """
    for name, idx in (('analysis', split.analysis), ('assessment', split.assessment)):
        if len(idx) and (idx.min() < 0 or idx.max() >= n_rows):
            raise ValueError(f"Split {split.split_id}: {name} indices out of range for {n_rows} rows")

    if not split.apparent:
        overlap = np.intersect1d(split.analysis, split.assessment)
        if len(overlap):
            raise ValueError(f"LEAK in {split.split_id}: {len(overlap)} rows in both analysis and assessment")


def _collection(policy, splits, n_rows, params):
    for split in splits:
        _validate_split(split, n_rows)
    return ResampleCollection(policy=policy, splits=tuple(splits), n_rows=n_rows, params=dict(params))


def _assign_folds(groups, n_rows, v, rng):
    """
    Fold number for every row.

    Each stratum is shuffled and dealt round-robin over the folds; the deal
    position carries over between strata so fold sizes differ by at most one
    row both per stratum and overall.
    """
    fold_of = np.empty(n_rows, dtype=int)
    offset = 0
    for group in groups:
        shuffled = rng.permutation(group)
        fold_of[shuffled] = (offset + np.arange(len(shuffled))) % v
        offset = (offset + len(shuffled)) % v
    return fold_of


def vfold_cv(dataset, v=10, repeats=1, strata=None, breaks=4, seed=None):
    """
    V-fold cross-validation, optionally stratified and repeated.

    Returns ``v * repeats`` splits named ``Fold{i}`` (one repeat) or
    ``Repeat{r}_Fold{i}``. Each repeat is an independent shuffle drawn from
    the same generator, so repeats differ while the whole collection is
    reproducible from ``seed``.
    """
    _check_int('v', v, 2)
    _check_int('repeats', repeats, 1)
    n = dataset.n_rows
    if v > n:
        raise InvalidParameter(f"v={v} is larger than the number of rows ({n})")

    groups = _strata_groups(dataset, strata, breaks)
    if strata is not None:
        small = [len(g) for g in groups if len(g) < v]
        if small:
            raise InvalidParameter(
                f"Strata column '{strata}' has {len(small)} stratum/strata with fewer rows than v={v} "
                f"(sizes: {small}); cannot place every stratum in every fold"
            )

    rng = np.random.default_rng(seed)
    fold_ids = _padded_ids('Fold', v)
    repeat_ids = _padded_ids('Repeat', repeats)

    splits = []
    for r in range(repeats):
        fold_of = _assign_folds(groups, n, v, rng)
        for i in range(v):
            split_id = fold_ids[i] if repeats == 1 else f"{repeat_ids[r]}_{fold_ids[i]}"
            splits.append(Split(
                split_id=split_id,
                analysis=np.flatnonzero(fold_of != i),
                assessment=np.flatnonzero(fold_of == i),
            ))

    params = {'v': v, 'repeats': repeats, 'strata': strata, 'seed': seed}
    return _collection('vfold', splits, n, params)


def bootstraps(dataset, times=25, strata=None, breaks=4, apparent=False, seed=None):
    """
    Bootstrap resamples with out-of-bag assessment sets.

    Each analysis set has exactly N positions drawn with replacement (within
    each stratum when ``strata`` is given); the assessment set is every row
    not drawn. With ``apparent=True`` an extra ``Apparent`` split (analysis =
    assessment = all rows) is appended; it is never averaged into estimates.
    """
    _check_int('times', times, 1)
    n = dataset.n_rows
    groups = _strata_groups(dataset, strata, breaks)
    rng = np.random.default_rng(seed)
    all_rows = np.arange(n)

    splits = []
    for split_id in _padded_ids('Bootstrap', times):
        drawn = np.concatenate([rng.choice(g, size=len(g), replace=True) for g in groups])
        splits.append(Split(
            split_id=split_id,
            analysis=drawn,
            assessment=np.setdiff1d(all_rows, drawn),
        ))

    if apparent:
        splits.append(Split(split_id=APPARENT_ID, analysis=all_rows.copy(), assessment=all_rows.copy(), apparent=True))

    params = {'times': times, 'strata': strata, 'apparent': apparent, 'seed': seed}
    return _collection('bootstrap', splits, n, params)


def _holdout_draws(dataset, prop, times, strata, breaks, seed):
    """Draw ``times`` analysis sets of round(prop * n) rows without replacement."""
    _check_prop(prop)
    _check_int('times', times, 1)
    n = dataset.n_rows
    groups = _strata_groups(dataset, strata, breaks)
    sizes = [_analysis_size(prop, len(g)) for g in groups]
    if sum(sizes) == 0 or sum(sizes) == n:
        raise InvalidParameter(f"prop={prop} leaves an empty analysis or assessment set for {n} rows")

    rng = np.random.default_rng(seed)
    all_rows = np.arange(n)
    draws = []
    for _ in range(times):
        analysis = np.sort(np.concatenate([
            rng.choice(g, size=size, replace=False) for g, size in zip(groups, sizes)
        ]))
        draws.append((analysis, np.setdiff1d(all_rows, analysis)))
    return draws


def mc_cv(dataset, prop=0.75, times=25, strata=None, breaks=4, seed=None):
    """
    Monte-Carlo cross-validation.

    Every iteration independently samples ``round(prop * N)`` rows for
    analysis; assessment sets of different iterations may overlap.
    """
    draws = _holdout_draws(dataset, prop, times, strata, breaks, seed)
    splits = [
        Split(split_id=split_id, analysis=analysis, assessment=assessment)
        for split_id, (analysis, assessment) in zip(_padded_ids('Resample', times), draws)
    ]
    params = {'prop': prop, 'times': times, 'strata': strata, 'seed': seed}
    return _collection('mc', splits, dataset.n_rows, params)


def validation_split(dataset, prop=0.75, strata=None, breaks=4, seed=None):
    """A single analysis/assessment split, i.e. Monte-Carlo CV with one iteration."""
    (analysis, assessment), = _holdout_draws(dataset, prop, 1, strata, breaks, seed)
    split = Split(split_id='validation', analysis=analysis, assessment=assessment)
    params = {'prop': prop, 'strata': strata, 'seed': seed}
    return _collection('validation', [split], dataset.n_rows, params)


def initial_split(dataset, prop=0.75, strata=None, breaks=4, seed=None):
    """Train/test split; use ``training`` and ``testing`` to materialise it."""
    (analysis, assessment), = _holdout_draws(dataset, prop, 1, strata, breaks, seed)
    split = Split(split_id='train/test', analysis=analysis, assessment=assessment)
    _validate_split(split, dataset.n_rows)
    return split


def training(dataset, split):
    return dataset.analysis(split)


def testing(dataset, split):
    return dataset.assessment(split)


SPLITTERS = {
    'vfold': vfold_cv,
    'bootstrap': bootstraps,
    'mc': mc_cv,
    'validation': validation_split,
}


def make_resamples(dataset, policy, **params):
    """Build a ResampleCollection for a named policy."""
    if policy not in SPLITTERS:
        raise InvalidParameter(f"Unknown resampling policy '{policy}'. Allowed: {list(SPLITTERS)}")

    unexpected = sorted(set(params) - set(POLICY_PARAMS[policy]))
    if unexpected:
        raise InvalidParameter(f"Parameters {unexpected} are not valid for policy '{policy}'")

    return SPLITTERS[policy](dataset, **params)


def resamples_from_config(dataset, config):
    """Build resamples from the ``resampling`` section of an experiment config."""
    rs_config = dict(config['resampling'])
    policy = rs_config.pop('policy')
    params = {k: v for k, v in rs_config.items() if k in POLICY_PARAMS.get(policy, ())}
    params.setdefault('seed', config['experiment']['seed'])
    return make_resamples(dataset, policy, **params)
