# Dataset container and loading utilities

import numpy as np
import pandas as pd

ALLOWED_MODES = ['classification', 'regression']


def _infer_mode(series):
    """Guess the modeling mode from the outcome dtype."""
    if isinstance(series.dtype, pd.CategoricalDtype) or series.dtype == bool:
        return 'classification'
    if pd.api.types.is_numeric_dtype(series):
        return 'regression'
    return 'classification'


class Dataset:
    """
    Immutable tabular data with one designated outcome column.

    The wrapped frame is copied on construction and never handed out
    directly; every accessor returns a new object. Rows are addressed by
    position (0..N-1), which is what splits store.

    In classification mode the outcome is held as a pandas Categorical so the
    factor levels (and therefore the meaning of ``event_level``) are fixed for
    the whole dataset, even when an assessment set is missing a class.
    """

    def __init__(self, frame, outcome, mode=None):
        if not isinstance(frame, pd.DataFrame):
            frame = pd.DataFrame(frame)
        if outcome not in frame.columns:
            raise ValueError(f"Outcome column '{outcome}' not found in dataset. Available: {list(frame.columns)}")
        if len(frame) == 0:
            raise ValueError("Dataset is empty")

        mode = mode or _infer_mode(frame[outcome])
        if mode not in ALLOWED_MODES:
            raise ValueError(f"Invalid mode '{mode}'. Allowed: {ALLOWED_MODES}")

        data = frame.reset_index(drop=True).copy()
        if mode == 'classification' and not isinstance(data[outcome].dtype, pd.CategoricalDtype):
            levels = sorted(data[outcome].dropna().unique().tolist())
            data[outcome] = pd.Categorical(data[outcome], categories=levels)

        self._data = data
        self._outcome = outcome
        self._mode = mode

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return f"Dataset(n_rows={self.n_rows}, outcome='{self._outcome}', mode='{self._mode}')"

    @property
    def outcome(self):
        return self._outcome

    @property
    def mode(self):
        return self._mode

    @property
    def n_rows(self):
        return len(self._data)

    @property
    def columns(self):
        return list(self._data.columns)

    @property
    def predictors(self):
        return [c for c in self._data.columns if c != self._outcome]

    @property
    def schema(self):
        return {c: str(t) for c, t in self._data.dtypes.items()}

    @property
    def levels(self):
        """Factor levels of the outcome, in order; None for regression."""
        if self._mode != 'classification':
            return None
        return list(self._data[self._outcome].cat.categories)

    @property
    def frame(self):
        return self._data.copy()

    def column(self, name):
        if name not in self._data.columns:
            raise KeyError(name)
        return self._data[name].copy()

    def subset(self, indices):
        """Rows at the given positions (repeats allowed), as a fresh frame."""
        indices = np.asarray(indices, dtype=int)
        return self._data.iloc[indices].reset_index(drop=True)

    def analysis(self, split):
        return self.subset(split.analysis)

    def assessment(self, split):
        return self.subset(split.assessment)


def load_dataset(config, dataset_path=None):
    """Load a delimited file into a Dataset using the config's data section."""
    data_cfg = config['data']
    path = dataset_path or data_cfg.get('dataset_path')
    if path is None:
        raise ValueError("No dataset path given (set data.dataset_path or pass --dataset)")

    print(f"Loading dataset: {path}")
    df = pd.read_csv(path, sep=data_cfg.get('delimiter', ','))

    dataset = Dataset(df, data_cfg['outcome_column'], mode=data_cfg.get('mode'))
    return dataset, path


def validate_data_integrity(dataset):
    """
    Validate a Dataset before resampling.

    Checks:
    - No missing outcome values
    - No infinite values in numeric predictors
    - Classification outcomes have at least two observed levels
    """
    errors = []
    frame = dataset.frame
    y = frame[dataset.outcome]

    if y.isnull().any():
        errors.append(f"NaN values found in outcome ({dataset.outcome}): {int(y.isnull().sum())} missing")

    numeric_cols = frame[dataset.predictors].select_dtypes(include=[np.number]).columns
    for col in numeric_cols:
        values = frame[col].dropna().to_numpy(dtype=float)
        if not np.isfinite(values).all():
            errors.append(f"Infinite values found in predictor: {col}")

    if dataset.mode == 'classification':
        observed = y.dropna().nunique()
        if observed < 2:
            errors.append(f"Classification outcome '{dataset.outcome}' has {observed} observed level(s); need at least 2")

    if errors:
        raise ValueError("Data integrity check failed:\n  - " + "\n  - ".join(errors))

    return True
