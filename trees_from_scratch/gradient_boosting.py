"""
Gradient Boosting - From Scratch Implementation
================================================

Gradient Boosting은 손실의 그래디언트를 순차적으로 학습하는 앙상블 방법입니다.
각 라운드의 트리는 GradientTreeRegressor (Newton 분할 이득)이며,
리프 출력에는 이미 learning_rate가 곱해져 있습니다.

수학적 배경:
-----------
업데이트 규칙:
    F_m(x) = F_{m-1}(x) + h_m(x)
    h_m 리프 가중치: w* = -G/(H+λ) * η

분류 (이진 로지스틱 손실, y ∈ {-1, 1}):
    L(y, F) = log(1 + exp(-2yF))
    g = -2y / (1 + exp(2yF))
    h = |g| (2 - |g|)
    F_0 = 0.5 * log((1 + ȳ) / (1 - ȳ))
    P(y=1|x) = 1 / (1 + exp(-F(x)))

    다중 클래스 (K > 2): 클래스마다 one-vs-rest 이진 시리즈를 학습하고
    K개의 점수를 softmax로 확률로 변환

회귀 (제곱 손실):
    L(y, F) = (1/2) * (y - F)²
    g = F - y,  h = 1
    F_0 = mean(y)
    다중 출력이면 출력마다 별도의 시리즈를 학습

알고리즘:
--------
1. 초기화: F_0
2. for m = 1 to M:
   a. subsample 비율만큼 비복원 추출
   b. 추출된 샘플에서 g, h 계산
   c. (g, h)에 대해 트리 h_m 학습
   d. 모든 학습 샘플에 대해 F_m(x) = F_{m-1}(x) + h_m(x)
3. 최종 점수: F_M(x)

Author: Trees From Scratch Project
"""

import logging
import numbers
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .base import (
    BaseEstimator,
    accuracy_of,
    draw_seeds,
    entropy_seed,
    parallel_map,
    r2_of,
    rng_from_state,
    rng_state,
)
from .exceptions import ValidationError
from .gradient_tree import GradientTreeRegressor
from .validation import (
    check_and_coerce_labels,
    check_and_coerce_samples,
    check_and_coerce_targets,
    check_max_features,
    check_n_features,
    check_params_non_negative,
    check_params_nonzero,
    check_params_positive,
    check_params_type,
    check_same_sample_count,
)

logger = logging.getLogger(__name__)


class BaseGradientBoosting(BaseEstimator):
    """
    Gradient Boosting 공통 기반

    Parameters
    ----------
    n_estimators : int, default=100
        부스팅 라운드 수 (시리즈당 트리 개수)

    learning_rate : float, default=0.1
        각 트리의 기여도를 조절하는 축소 계수 (shrinkage)
        작은 값일수록 더 많은 트리가 필요하지만 일반화 성능이 좋아질 수 있음

    reg_lambda : float, default=0.0
        리프 가중치 L2 정규화 계수

    subsample : float, default=1.0
        각 트리 학습에 사용할 샘플의 비율 (Stochastic GB)
        1.0 미만이면 확률적 그래디언트 부스팅이 됨

    max_depth, max_leaf_nodes, min_samples_leaf, max_features
        각 트리의 성장 제한

    random_seed : int, default=None
        랜덤 시드

    n_jobs : int, default=None
        시리즈(클래스/출력) 단위 병렬 처리 수 (0은 허용하지 않음)

    verbose : int, default=0
        학습 과정 출력 수준 (0: 없음, 1: 진행률)

    Attributes
    ----------
    loss_curve_ : ndarray of shape (n_estimators,)
        각 라운드 후의 학습 손실 (시리즈 평균)

    feature_importances_ : ndarray of shape (n_features,)
        모든 트리의 중요도 합을 정규화한 값
    """

    _param_names = (
        'n_estimators', 'learning_rate', 'reg_lambda', 'subsample', 'max_depth', 'max_leaf_nodes',
        'min_samples_leaf', 'max_features', 'random_seed', 'n_jobs', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 100,
        learning_rate: float = 0.1,
        reg_lambda: float = 0.0,
        subsample: float = 1.0,
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.learning_rate = learning_rate
        self.reg_lambda = reg_lambda
        self.subsample = subsample
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_seed = entropy_seed() if random_seed is None else random_seed
        self.n_jobs = n_jobs
        self.verbose = verbose
        self._validate_params()

        # 학습 후 설정되는 속성들
        self._series: List[List[GradientTreeRegressor]] = []
        self._base_predictions: Optional[np.ndarray] = None
        self.loss_curve_: Optional[np.ndarray] = None
        self._feature_importances: Optional[np.ndarray] = None
        self.n_features_: int = 0
        self.rng_: Optional[np.random.Generator] = None

    def _validate_params(self) -> None:
        check_params_type(numbers.Integral, n_estimators=self.n_estimators,
                          min_samples_leaf=self.min_samples_leaf,
                          verbose=self.verbose)
        check_params_type(numbers.Integral, allow_none=True, max_depth=self.max_depth,
                          max_leaf_nodes=self.max_leaf_nodes, n_jobs=self.n_jobs)
        check_params_type(numbers.Real, learning_rate=self.learning_rate,
                          reg_lambda=self.reg_lambda, subsample=self.subsample)
        check_params_type(numbers.Integral, random_seed=self.random_seed)
        check_params_nonzero(n_jobs=self.n_jobs)
        check_params_positive(n_estimators=self.n_estimators, learning_rate=self.learning_rate,
                              subsample=self.subsample, max_depth=self.max_depth,
                              max_leaf_nodes=self.max_leaf_nodes,
                              min_samples_leaf=self.min_samples_leaf)
        check_params_non_negative(reg_lambda=self.reg_lambda)
        if self.subsample > 1:
            raise ValidationError(f"subsample은 (0, 1] 범위여야 합니다: {self.subsample}")
        check_max_features(self.max_features)

    def _gradient(self, y: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _hessian(self, y: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _loss(self, y: np.ndarray, y_pred: np.ndarray) -> float:
        raise NotImplementedError

    def _make_tree(self, seed: int) -> GradientTreeRegressor:
        return GradientTreeRegressor(
            reg_lambda=self.reg_lambda,
            shrinkage_rate=self.learning_rate,
            max_depth=self.max_depth,
            max_leaf_nodes=self.max_leaf_nodes,
            min_samples_leaf=self.min_samples_leaf,
            max_features=self.max_features,
            random_seed=int(seed)
        )

    def _partial_fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        init_prediction: float,
        seed: int,
        label: str
    ) -> Tuple[List[GradientTreeRegressor], np.ndarray]:
        """
        하나의 시리즈(이진 분류, 클래스 하나, 출력 하나)를 부스팅

        Returns
        -------
        trees : list of GradientTreeRegressor
        losses : ndarray of shape (n_estimators,)
            각 라운드 후의 학습 손실
        """
        rng = np.random.default_rng(int(seed))
        n_samples = X.shape[0]
        n_sub_samples = min(n_samples, max(int(n_samples * self.subsample), 1))
        report_every = max(1, self.n_estimators // 10)

        y_pred = np.full(n_samples, init_prediction, dtype=np.float64)
        trees = []
        losses = np.zeros(self.n_estimators)

        for m in range(self.n_estimators):
            # 1. 서브샘플링 (비복원)
            ids = rng.choice(n_samples, n_sub_samples, replace=False)

            # 2. 그래디언트/헤시안
            g = self._gradient(y[ids], y_pred[ids])
            h = self._hessian(y[ids], y_pred[ids])

            # 3. 트리 학습
            tree = self._make_tree(draw_seeds(rng, None))
            tree.fit(X[ids], y[ids], g, h)
            trees.append(tree)

            # 4. 모든 학습 샘플의 예측 업데이트
            y_pred = y_pred + tree.predict(X)
            losses[m] = self._loss(y, y_pred)

            if self.verbose > 0 and (m + 1) % report_every == 0:
                logger.info("[%s] 라운드 %d/%d, 학습 손실: %.4f", label, m + 1, self.n_estimators, losses[m])

        return trees, losses

    def _fit_series(
        self,
        X: np.ndarray,
        targets: Sequence[np.ndarray],
        base_predictions: np.ndarray,
        labels: Sequence[str]
    ) -> None:
        """시리즈별 시드를 먼저 뽑은 뒤 시리즈들을 (병렬로) 부스팅"""
        self.n_features_ = X.shape[1]
        self.rng_ = np.random.default_rng(int(self.random_seed))
        seeds = draw_seeds(self.rng_, len(targets))

        if self.verbose > 0:
            logger.info("%s 학습 시작: %d개 시리즈 x %d 라운드",
                        type(self).__name__, len(targets), self.n_estimators)

        results = parallel_map(
            lambda job: self._partial_fit(X, *job),
            zip(targets, base_predictions, seeds, labels),
            n_jobs=self.n_jobs
        )

        self._series = [trees for trees, _ in results]
        self._base_predictions = np.asarray(base_predictions, dtype=np.float64)
        self.loss_curve_ = np.mean([losses for _, losses in results], axis=0)

        importances = np.sum([tree.feature_importances_ for trees in self._series for tree in trees], axis=0)
        total = importances.sum()
        self._feature_importances = importances / total if total > 0 else importances

    def _is_fitted(self) -> bool:
        return len(self._series) > 0

    def _check_samples(self, X: Any) -> np.ndarray:
        self._check_is_fitted()
        X = check_and_coerce_samples(X)
        check_n_features(X, self.n_features_)
        return X

    @property
    def feature_importances_(self) -> np.ndarray:
        self._check_is_fitted()
        return self._feature_importances

    def _tree_predictions(self, X: np.ndarray) -> np.ndarray:
        """shape (n_estimators, n_samples, n_series)의 트리별 출력"""
        per_series = parallel_map(
            lambda trees: np.array([tree.predict(X) for tree in trees]),
            self._series,
            n_jobs=self.n_jobs
        )
        return np.stack(per_series, axis=2)

    def _raw_scores(self, X: np.ndarray) -> np.ndarray:
        """shape (n_samples, n_series)의 누적 점수"""
        return self._tree_predictions(X).sum(axis=0) + self._base_predictions

    def _staged_raw_scores(self, X: np.ndarray) -> np.ndarray:
        """shape (n_estimators, n_samples, n_series)의 라운드별 누적 점수"""
        return np.cumsum(self._tree_predictions(X), axis=0) + self._base_predictions

    def _apply_series(self, X: np.ndarray) -> np.ndarray:
        """shape (n_samples, n_estimators, n_series)의 리프 번호"""
        return np.stack([
            np.column_stack([tree.apply(X) for tree in trees])
            for trees in self._series
        ], axis=2)

    def _get_state(self) -> Dict[str, Any]:
        return {
            'series': [[tree.snapshot() for tree in trees] for trees in self._series],
            'base_predictions': self._base_predictions.tolist(),
            'loss_curve': self.loss_curve_.tolist(),
            'feature_importances': self.feature_importances_.tolist(),
            'n_features': self.n_features_,
            'rng': rng_state(self.rng_),
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        self._series = [
            [GradientTreeRegressor(random_seed=snapshot['params']['random_seed']).restore(snapshot)
             for snapshot in trees]
            for trees in state['series']
        ]
        self._base_predictions = np.asarray(state['base_predictions'], dtype=np.float64)
        self.loss_curve_ = np.asarray(state['loss_curve'])
        self._feature_importances = np.asarray(state['feature_importances'])
        self.n_features_ = state['n_features']
        self.rng_ = rng_from_state(state['rng'])


class GradientBoostingClassifier(BaseGradientBoosting):
    """
    Gradient Boosting 분류 모델 (From Scratch)

    Attributes
    ----------
    classes_ : ndarray of shape (n_classes,)
        정렬된 고유 레이블

    estimators_ : list of GradientTreeRegressor, or list of list
        이진 분류면 트리 리스트, 다중 클래스면 클래스별 트리 리스트의 리스트

    base_predictions_ : float or ndarray of shape (n_classes,)
        초기 점수 F_0

    loss_curve_ : ndarray of shape (n_estimators,)
        각 라운드 후의 학습 binomial deviance (클래스 평균)

    Examples
    --------
    >>> from trees_from_scratch import GradientBoostingClassifier
    >>> import numpy as np
    >>> X = np.random.randn(100, 3)
    >>> y = (X[:, 0] > 0).astype(int)
    >>> gb = GradientBoostingClassifier(n_estimators=20, max_depth=2, random_seed=0).fit(X, y)
    >>> proba = gb.predict_proba(X[:5])
    """

    def __init__(
        self,
        n_estimators: int = 100,
        learning_rate: float = 0.1,
        reg_lambda: float = 0.0,
        subsample: float = 1.0,
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        super().__init__(
            n_estimators=n_estimators,
            learning_rate=learning_rate,
            reg_lambda=reg_lambda,
            subsample=subsample,
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed,
            n_jobs=n_jobs,
            verbose=verbose
        )
        self.classes_: Optional[np.ndarray] = None

    def _gradient(self, y, y_pred):
        # y ∈ {-1, 1}
        return -2.0 * y / (1.0 + np.exp(2.0 * y * y_pred))

    def _hessian(self, y, y_pred):
        abs_response = np.abs(self._gradient(y, y_pred))
        return abs_response * (2.0 - abs_response)

    def _loss(self, y, y_pred):
        """binomial deviance: mean(log(1 + exp(-2yF)))"""
        return float(np.mean(np.logaddexp(0.0, -2.0 * y * y_pred)))

    @staticmethod
    def _base_prediction(bin_y: np.ndarray) -> float:
        y_mean = bin_y.mean()
        return 0.5 * np.log((1.0 + y_mean) / (1.0 - y_mean))

    def fit(self, X: Any, y: Any) -> 'GradientBoostingClassifier':
        """
        Gradient Boosting 모델 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,)
            정수 레이블 (2개 이상의 클래스)

        Returns
        -------
        self : GradientBoostingClassifier
            학습된 모델
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_labels(y)
        check_same_sample_count(X, y)

        self.classes_ = np.unique(y)
        if len(self.classes_) < 2:
            raise ValidationError(
                f"GradientBoostingClassifier는 2개 이상의 클래스가 필요합니다: {self.classes_.tolist()}"
            )

        if len(self.classes_) == 2:
            # 작은 레이블이 -1
            targets = [2.0 * (y != self.classes_[0]) - 1.0]
            labels = ['binary']
        else:
            targets = [2.0 * (y == label) - 1.0 for label in self.classes_]
            labels = [f"class {label}" for label in self.classes_]

        base_predictions = np.array([self._base_prediction(bin_y) for bin_y in targets])
        self._fit_series(X, targets, base_predictions, labels)

        return self

    @property
    def _is_binary(self) -> bool:
        return len(self._series) == 1

    @property
    def estimators_(self) -> List:
        self._check_is_fitted()
        return self._series[0] if self._is_binary else self._series

    @property
    def base_predictions_(self):
        self._check_is_fitted()
        return float(self._base_predictions[0]) if self._is_binary else self._base_predictions

    def decision_function(self, X: Any) -> np.ndarray:
        """
        누적 점수 F(x)

        Returns
        -------
        scores : ndarray of shape (n_samples,) or (n_samples, n_classes)
            이진 분류면 1차원 (큰 레이블 쪽 점수)
        """
        X = self._check_samples(X)
        scores = self._raw_scores(X)
        return scores[:, 0] if self._is_binary else scores

    def staged_decision_function(self, X: Any) -> np.ndarray:
        """
        각 부스팅 라운드별 점수 반환 (시각화용)

        Returns
        -------
        scores : ndarray of shape (n_estimators, n_samples[, n_classes])
        """
        X = self._check_samples(X)
        scores = self._staged_raw_scores(X)
        return scores[:, :, 0] if self._is_binary else scores

    def _proba_from_scores(self, scores: np.ndarray) -> np.ndarray:
        if scores.ndim == 1:
            positive = 1.0 / (1.0 + np.exp(-scores))
            return np.column_stack([1.0 - positive, positive])

        # softmax
        exp_scores = np.exp(scores - scores.max(axis=1, keepdims=True))
        return exp_scores / exp_scores.sum(axis=1, keepdims=True)

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        클래스별 확률

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
        """
        return self._proba_from_scores(self.decision_function(X))

    def predict(self, X: Any) -> np.ndarray:
        """확률이 가장 큰 클래스"""
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]

    def staged_predict(self, X: Any) -> np.ndarray:
        """
        각 부스팅 라운드별 예측 레이블

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples)
        """
        return np.array([
            self.classes_[np.argmax(self._proba_from_scores(scores), axis=1)]
            for scores in self.staged_decision_function(X)
        ])

    def apply(self, X: Any) -> np.ndarray:
        """
        트리별 리프 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples, n_estimators) or (n_samples, n_estimators, n_classes)
        """
        X = self._check_samples(X)
        leaf_ids = self._apply_series(X)
        return leaf_ids[:, :, 0] if self._is_binary else leaf_ids

    def score(self, X: Any, y: Any) -> float:
        """평균 정확도"""
        return accuracy_of(self, X, y)

    def _get_state(self):
        state = super()._get_state()
        state['classes'] = self.classes_.tolist()
        return state

    def _set_state(self, state):
        super()._set_state(state)
        self.classes_ = np.asarray(state['classes'], dtype=np.int64)


class GradientBoostingRegressor(BaseGradientBoosting):
    """
    Gradient Boosting 회귀 모델 (From Scratch)

    Parameters
    ----------
    max_depth : int, default=3
        각 트리의 최대 깊이
        Gradient Boosting에서는 보통 얕은 트리(stump 또는 depth 3-5)를 사용

    나머지는 BaseGradientBoosting 참고

    Attributes
    ----------
    estimators_ : list of GradientTreeRegressor, or list of list
        단일 출력이면 트리 리스트, 다중 출력이면 출력별 트리 리스트의 리스트

    init_prediction_ : float or ndarray of shape (n_outputs,)
        초기 예측값 (타겟의 평균)

    loss_curve_ : ndarray of shape (n_estimators,)
        각 라운드 후의 학습 MSE

    Examples
    --------
    >>> from trees_from_scratch import GradientBoostingRegressor
    >>> import numpy as np
    >>> X = np.random.randn(100, 5)
    >>> y = X[:, 0] * 2 + X[:, 1] + np.random.randn(100) * 0.1
    >>> gb = GradientBoostingRegressor(n_estimators=50, learning_rate=0.1, random_seed=0)
    >>> gb.fit(X, y)
    >>> predictions = gb.predict(X[:5])
    """

    def __init__(
        self,
        n_estimators: int = 100,
        learning_rate: float = 0.1,
        reg_lambda: float = 0.0,
        subsample: float = 1.0,
        max_depth: Optional[int] = 3,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        super().__init__(
            n_estimators=n_estimators,
            learning_rate=learning_rate,
            reg_lambda=reg_lambda,
            subsample=subsample,
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed,
            n_jobs=n_jobs,
            verbose=verbose
        )
        self._single_output = True

    def _gradient(self, y, y_pred):
        """L = (1/2)(y - F)² 의 1차 미분: F - y"""
        return y_pred - y

    def _hessian(self, y, y_pred):
        return np.ones_like(y)

    def _loss(self, y, y_pred):
        return float(np.mean((y - y_pred) ** 2))

    def fit(self, X: Any, y: Any) -> 'GradientBoostingRegressor':
        """
        Gradient Boosting 모델 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,) or (n_samples, n_outputs)
            타겟 값

        Returns
        -------
        self : GradientBoostingRegressor
            학습된 모델
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_targets(y)
        check_same_sample_count(X, y)

        self._single_output = y.ndim == 1
        y = y.reshape(len(y), -1)

        # 초기화: F_0(x) = mean(y)
        targets = [y[:, k] for k in range(y.shape[1])]
        base_predictions = y.mean(axis=0)
        labels = [f"output {k}" for k in range(y.shape[1])]

        self._fit_series(X, targets, base_predictions, labels)

        return self

    @property
    def estimators_(self) -> List:
        self._check_is_fitted()
        return self._series[0] if self._single_output else self._series

    @property
    def init_prediction_(self):
        self._check_is_fitted()
        return float(self._base_predictions[0]) if self._single_output else self._base_predictions

    def predict(self, X: Any) -> np.ndarray:
        """
        예측 수행

        F_M(x) = F_0(x) + Σ h_m(x)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,) or (n_samples, n_outputs)
        """
        X = self._check_samples(X)
        y_pred = self._raw_scores(X)
        return y_pred[:, 0] if self._single_output else y_pred

    def staged_predict(self, X: Any) -> np.ndarray:
        """
        각 부스팅 라운드별 예측 반환 (시각화용)

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples[, n_outputs])
            각 라운드 후의 예측값들
        """
        X = self._check_samples(X)
        y_pred = self._staged_raw_scores(X)
        return y_pred[:, :, 0] if self._single_output else y_pred

    def apply(self, X: Any) -> np.ndarray:
        """
        트리별 리프 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples, n_estimators) or (n_samples, n_estimators, n_outputs)
        """
        X = self._check_samples(X)
        leaf_ids = self._apply_series(X)
        return leaf_ids[:, :, 0] if self._single_output else leaf_ids

    def score(self, X: Any, y: Any) -> float:
        """결정계수 R²"""
        return r2_of(self, X, y)

    def _get_state(self):
        state = super()._get_state()
        state['single_output'] = self._single_output
        return state

    def _set_state(self, state):
        super()._set_state(state)
        self._single_output = state['single_output']
