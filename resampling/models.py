# Model building utilities
# Every model exposes the same narrow interface: fit(data, outcome) and predict(data).
# The resampling engine only ever talks to that interface.

from functools import partial
from typing import Protocol

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import Lasso, LinearRegression, LogisticRegression, Ridge
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from .errors import FitFailure, SchemaMismatch


SUPPORTED_MODELS = {
    'regression': ['linear_reg', 'ridge', 'lasso', 'rand_forest', 'decision_tree'],
    'classification': ['logistic_reg', 'rand_forest', 'decision_tree'],
}

# Models that support random_state parameter
MODELS_WITH_RANDOM_STATE = ['logistic_reg', 'rand_forest', 'decision_tree']

_ESTIMATORS = {
    ('regression', 'linear_reg'): LinearRegression,
    ('regression', 'ridge'): Ridge,
    ('regression', 'lasso'): Lasso,
    ('regression', 'rand_forest'): RandomForestRegressor,
    ('regression', 'decision_tree'): DecisionTreeRegressor,
    ('classification', 'logistic_reg'): LogisticRegression,
    ('classification', 'rand_forest'): RandomForestClassifier,
    ('classification', 'decision_tree'): DecisionTreeClassifier,
}


class TrainableModel(Protocol):
    """Anything that can be fit on an analysis set and predict an assessment set."""

    def fit(self, data: pd.DataFrame, outcome: str) -> "TrainableModel":
        ...

    def predict(self, data: pd.DataFrame) -> pd.DataFrame:
        ...


def _is_numeric(series):
    return pd.api.types.is_numeric_dtype(series) and series.dtype != bool


class SklearnModel:
    """
    Adapter turning a scikit-learn estimator into a TrainableModel.

    Non-numeric predictors are one-hot encoded inside the pipeline so encoding
    is learned from the analysis set only. Predictions come back as a frame:
    ``pred`` for regression, ``pred_class`` plus one ``pred_<level>``
    probability column per outcome level for classification.
    """

    def __init__(self, estimator, mode='regression'):
        if mode not in SUPPORTED_MODELS:
            raise ValueError(f"Invalid mode '{mode}'. Allowed: {list(SUPPORTED_MODELS)}")
        self.estimator = estimator
        self.mode = mode
        self.pipeline_ = None
        self.outcome_ = None
        self.feature_columns_ = None
        self.levels_ = None

    def __repr__(self):
        state = 'fitted' if self.pipeline_ is not None else 'untrained'
        return f"SklearnModel({self.estimator!r}, mode='{self.mode}', {state})"

    def _build_pipeline(self, X):
        categorical = [c for c in X.columns if not _is_numeric(X[c])]
        preprocess = ColumnTransformer(
            [('onehot', OneHotEncoder(handle_unknown='ignore', sparse_output=False), categorical)],
            remainder='passthrough',
        )
        return Pipeline([('preprocess', preprocess), ('model', clone(self.estimator))])

    def fit(self, data, outcome):
        if outcome not in data.columns:
            raise FitFailure(f"Outcome column '{outcome}' missing from analysis set")

        X = data.drop(columns=[outcome])
        y = data[outcome]
        if y.isnull().any():
            raise FitFailure(f"Outcome '{outcome}' has missing values in the analysis set")

        if self.mode == 'classification':
            if isinstance(y.dtype, pd.CategoricalDtype):
                levels = list(y.cat.categories)
            else:
                levels = sorted(y.unique().tolist())
            if y.nunique() < 2:
                raise FitFailure(f"Analysis set has a single outcome level ({y.iloc[0]!r})")
            y = np.asarray(y.astype(object))
        else:
            levels = None
            y = y.to_numpy(dtype=float)

        pipeline = self._build_pipeline(X)
        pipeline.fit(X, y)

        self.pipeline_ = pipeline
        self.outcome_ = outcome
        self.feature_columns_ = list(X.columns)
        self.levels_ = levels
        return self

    def predict(self, data):
        if self.pipeline_ is None:
            raise FitFailure("Model has not been fit")

        X = data.drop(columns=[self.outcome_], errors='ignore')
        missing = [c for c in self.feature_columns_ if c not in X.columns]
        extra = [c for c in X.columns if c not in self.feature_columns_]
        if missing or extra:
            raise SchemaMismatch(f"Prediction columns do not match fit columns (missing: {missing}, unexpected: {extra})")
        X = X[self.feature_columns_]

        if self.mode == 'regression':
            return pd.DataFrame({'pred': self.pipeline_.predict(X)})

        out = {'pred_class': pd.Categorical(self.pipeline_.predict(X), categories=self.levels_)}
        if hasattr(self.pipeline_, 'predict_proba'):
            proba = self.pipeline_.predict_proba(X)
            classes = list(self.pipeline_.classes_)
            for level in self.levels_:
                out[f'pred_{level}'] = proba[:, classes.index(level)] if level in classes else np.zeros(len(X))
        return pd.DataFrame(out)


def build_model(config, mode=None):
    """
    Build and return an untrained model based on config.

    ``mode`` (usually the Dataset's inferred mode) wins over ``data.mode``;
    with neither, only logistic_reg is treated as classification.

    Note: linear_reg, ridge and lasso are deterministic solvers and don't use random_state.
    Tree-based models and logistic regression get the experiment seed.
    """
    model_type = config['model']['type']
    params = dict(config['model'].get('params', {}).get(model_type, {}) or {})
    seed = config['experiment']['seed']
    mode = mode or config['data'].get('mode')
    if mode is None:
        mode = 'classification' if model_type == 'logistic_reg' else 'regression'

    if model_type not in SUPPORTED_MODELS.get(mode, []):
        raise ValueError(
            f"Unknown model type '{model_type}' for mode '{mode}'. "
            f"Supported: {SUPPORTED_MODELS}"
        )

    if model_type in MODELS_WITH_RANDOM_STATE:
        params.setdefault('random_state', seed)

    return SklearnModel(_ESTIMATORS[(mode, model_type)](**params), mode=mode)


def model_factory(config, mode=None):
    """Zero-argument callable producing a fresh untrained model per call."""
    return partial(build_model, config, mode=mode)
