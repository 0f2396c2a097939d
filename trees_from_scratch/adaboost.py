"""
AdaBoost - From Scratch Implementation
======================================

AdaBoostClassifier: SAMME.R 알고리즘 (Zhu et al. 2009)
AdaBoostRegressor:  AdaBoost.R2 알고리즘 (Drucker 1997)

두 모델 모두 샘플 가중치에 비례한 복원 추출(누적 확률 역변환)로 학습 세트를
만들고 그 위에 결정 트리를 학습한다.

수학적 배경 (SAMME.R):
---------------------
K: 클래스 수, y_code[i, k] = 1 (정답 클래스) 또는 -1/(K-1) (그 외)

1. 초기화: w_i = 1/n
2. for m = 1 to M:
   a. w에 비례하여 n개 샘플 복원 추출, 트리 h_m 학습
   b. p = h_m.predict_proba(X) (전체 학습 세트, 1e-15로 하한 클리핑)
   c. 가중 오차 err = Σ w_i·[argmax p_i ≠ y_i] / Σ w_i
   d. err == 0 이면 h_m을 저장하고 종료
   e. w_i *= exp(-((K-1)/K) * Σ_k y_code[i,k] * log p[i,k])
      w = clip(w, 1e-15), w = w / Σw

결정 함수:
    f_k(x) = (1/M) Σ_m (K-1) * (log p_m,k(x) - (1/K) Σ_j log p_m,j(x))

확률:
    P(k|x) = exp(f_k(x) / (K-1)) / Σ_j exp(f_j(x) / (K-1))

Author: Trees From Scratch Project
"""

import logging
import numbers
from typing import Any, Dict, List, Optional

import numpy as np

from .base import (
    BaseEstimator,
    accuracy_of,
    draw_seeds,
    entropy_seed,
    r2_of,
    rng_from_state,
    rng_state,
)
from .criterion import CLASSIFICATION_CRITERIA, REGRESSION_CRITERIA
from .decision_tree import DecisionTreeClassifier, DecisionTreeRegressor
from .exceptions import NumericalDegeneracyError, ValidationError
from .validation import (
    check_and_coerce_labels,
    check_and_coerce_samples,
    check_and_coerce_targets,
    check_max_features,
    check_n_features,
    check_params_choice,
    check_params_positive,
    check_params_type,
    check_same_sample_count,
)

logger = logging.getLogger(__name__)

# log(0) 방지용 하한
PROBA_FLOOR = 1e-15
WEIGHT_FLOOR = 1e-15

REGRESSION_LOSSES = ('linear', 'square', 'exponential')


def choice_ids(weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """
    가중치에 비례한 복원 추출 (누적 확률 역변환)

    Parameters
    ----------
    weights : ndarray of shape (n_samples,)
        합이 1인 샘플 가중치
    rng : np.random.Generator
        추출용 RNG

    Returns
    -------
    ids : ndarray of shape (n_samples,)
    """
    n_samples = len(weights)
    ids = np.searchsorted(np.cumsum(weights), rng.random(n_samples), side='right')
    return np.minimum(ids, n_samples - 1)


class BaseAdaBoost(BaseEstimator):
    """AdaBoost 공통 기반 (하이퍼파라미터, 트리 생성, 스냅샷)"""

    _tree_class: type = DecisionTreeClassifier
    _criteria: Dict[str, type] = CLASSIFICATION_CRITERIA

    def _validate_tree_params(self) -> None:
        check_params_type(numbers.Integral, n_estimators=self.n_estimators,
                          min_samples_leaf=self.min_samples_leaf,
                          verbose=self.verbose)
        check_params_type(numbers.Integral, allow_none=True, max_depth=self.max_depth,
                          max_leaf_nodes=self.max_leaf_nodes)
        check_params_type(numbers.Integral, random_seed=self.random_seed)
        check_params_positive(n_estimators=self.n_estimators, max_depth=self.max_depth,
                              max_leaf_nodes=self.max_leaf_nodes,
                              min_samples_leaf=self.min_samples_leaf)
        check_params_choice('criterion', self.criterion, self._criteria)
        check_max_features(self.max_features)

    def _make_tree(self, seed: int):
        return self._tree_class(
            criterion=self.criterion,
            max_depth=self.max_depth,
            max_leaf_nodes=self.max_leaf_nodes,
            min_samples_leaf=self.min_samples_leaf,
            max_features=self.max_features,
            random_seed=int(seed)
        )

    def _log_stop(self, message: str, *args: Any) -> None:
        """조기 종료는 정상 종료 상태 (verbose일 때만 INFO)"""
        level = logging.INFO if self.verbose > 0 else logging.DEBUG
        logger.log(level, message, *args)

    def _is_fitted(self) -> bool:
        return len(self.estimators_) > 0

    def _check_samples(self, X: Any) -> np.ndarray:
        self._check_is_fitted()
        X = check_and_coerce_samples(X)
        check_n_features(X, self.n_features_)
        return X

    @property
    def feature_importances_(self) -> np.ndarray:
        self._check_is_fitted()
        return self._feature_importances

    def _accumulate_importances(self) -> np.ndarray:
        importances = np.sum([tree.feature_importances_ for tree in self.estimators_], axis=0)
        total = importances.sum()
        if total > 0:
            importances = importances / total
        return importances

    def _get_state(self) -> Dict[str, Any]:
        return {
            'estimators': [tree.snapshot() for tree in self.estimators_],
            'estimator_errors': self.estimator_errors_.tolist(),
            'feature_importances': self.feature_importances_.tolist(),
            'n_features': self.n_features_,
            'rng': rng_state(self.rng_),
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        self.estimators_ = [
            self._tree_class(random_seed=snapshot['params']['random_seed']).restore(snapshot)
            for snapshot in state['estimators']
        ]
        self.estimator_errors_ = np.asarray(state['estimator_errors'])
        self._feature_importances = np.asarray(state['feature_importances'])
        self.n_features_ = state['n_features']
        self.rng_ = rng_from_state(state['rng'])


class AdaBoostClassifier(BaseAdaBoost):
    """
    AdaBoost 분류 모델 (SAMME.R, From Scratch)

    Parameters
    ----------
    n_estimators : int, default=50
        최대 부스팅 라운드 수

    criterion : {'gini', 'entropy'}, default='gini'
        기본 학습기(트리)의 불순도 기준

    max_depth : int, default=None
        기본 학습기의 최대 깊이

    max_leaf_nodes : int, default=None
        기본 학습기의 최대 리프 수

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수

    random_seed : int, default=None
        랜덤 시드 (샘플 추출, 트리 시드)

    verbose : int, default=0
        출력 수준 (0: 없음, 1: 진행률과 조기 종료 사유)

    Attributes
    ----------
    estimators_ : list of DecisionTreeClassifier
        저장된 트리들 (조기 종료 시 n_estimators보다 적을 수 있음)

    classes_ : ndarray of shape (n_classes,)
        정렬된 고유 레이블

    estimator_errors_ : ndarray of shape (n_stored,)
        각 트리의 가중 분류 오차

    feature_importances_ : ndarray of shape (n_features,)
        트리별 중요도의 합을 정규화한 값

    Examples
    --------
    >>> from trees_from_scratch import AdaBoostClassifier
    >>> import numpy as np
    >>> X = np.random.randn(100, 2)
    >>> y = (X[:, 0] > 0).astype(int)
    >>> ada = AdaBoostClassifier(n_estimators=10, max_depth=1, random_seed=0).fit(X, y)
    >>> ada.predict(X[:5])
    """

    _tree_class = DecisionTreeClassifier
    _criteria = CLASSIFICATION_CRITERIA
    _param_names = (
        'n_estimators', 'criterion', 'max_depth', 'max_leaf_nodes', 'min_samples_leaf',
        'max_features', 'random_seed', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 50,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.criterion = criterion
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_seed = entropy_seed() if random_seed is None else random_seed
        self.verbose = verbose
        self._validate_params()

        # 학습 후 설정되는 속성들
        self.estimators_: List[DecisionTreeClassifier] = []
        self.classes_: Optional[np.ndarray] = None
        self.estimator_errors_: Optional[np.ndarray] = None
        self._feature_importances: Optional[np.ndarray] = None
        self.n_features_: int = 0
        self.rng_: Optional[np.random.Generator] = None

    def _validate_params(self) -> None:
        self._validate_tree_params()

    def fit(self, X: Any, y: Any) -> 'AdaBoostClassifier':
        """
        SAMME.R 부스팅 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,)
            정수 레이블 (2개 이상의 클래스)

        Returns
        -------
        self : AdaBoostClassifier
            학습된 모델

        Raises
        ------
        ValidationError
            클래스가 하나뿐인 경우
        NumericalDegeneracyError
            첫 라운드의 추출 세트부터 일부 클래스가 빠져 트리를 하나도 저장하지 못한 경우
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_labels(y)
        check_same_sample_count(X, y)

        n_samples, n_features = X.shape
        self.classes_, y_encoded = np.unique(y, return_inverse=True)
        y_encoded = y_encoded.ravel()
        n_classes = len(self.classes_)
        if n_classes < 2:
            raise ValidationError(
                f"AdaBoostClassifier는 2개 이상의 클래스가 필요합니다: {self.classes_.tolist()}"
            )

        self.n_features_ = n_features
        self.rng_ = np.random.default_rng(int(self.random_seed))

        # 정답 클래스 1, 나머지 -1/(K-1)
        y_codes = np.full((n_samples, n_classes), -1.0 / (n_classes - 1))
        y_codes[np.arange(n_samples), y_encoded] = 1.0

        # 1. 초기화: 균등 가중치
        sample_weights = np.full(n_samples, 1.0 / n_samples)

        self.estimators_ = []
        estimator_errors = []

        for m in range(self.n_estimators):
            # 2a. 가중치 비례 샘플링
            ids = choice_ids(sample_weights, self.rng_)
            if len(np.unique(y_encoded[ids])) != n_classes:
                self._log_stop("라운드 %d: 추출된 세트에 없는 클래스가 있어 학습 중단", m + 1)
                break

            tree = self._make_tree(draw_seeds(self.rng_, None))
            tree.fit(X[ids], y[ids])

            # 2b. 전체 학습 세트에 대한 확률
            proba = np.clip(tree.predict_proba(X), PROBA_FLOOR, None)

            # 2c. 가중 오차
            incorrect = np.argmax(proba, axis=1) != y_encoded
            error = np.sum(sample_weights * incorrect) / np.sum(sample_weights)

            self.estimators_.append(tree)
            estimator_errors.append(error)

            if self.verbose > 0 and (m + 1) % max(1, self.n_estimators // 10) == 0:
                logger.info("라운드 %d/%d, 가중 오차: %.4f", m + 1, self.n_estimators, error)

            # 2d. 완벽한 분류
            if error == 0:
                self._log_stop("라운드 %d: 가중 오차 0으로 학습 종료", m + 1)
                break

            # 2e. 가중치 업데이트
            exponent = -((n_classes - 1) / n_classes) * np.sum(y_codes * np.log(proba), axis=1)
            sample_weights = np.clip(sample_weights * np.exp(exponent), WEIGHT_FLOOR, None)
            total_weight = np.sum(sample_weights)
            if total_weight == 0:
                self._log_stop("라운드 %d: 샘플 가중치 합이 0이 되어 학습 중단", m + 1)
                break
            sample_weights = sample_weights / total_weight

        if len(self.estimators_) == 0:
            raise NumericalDegeneracyError(
                "저장된 트리가 없습니다: 첫 라운드의 추출 세트에 모든 클래스가 포함되지 않았습니다"
            )

        self.estimator_errors_ = np.array(estimator_errors)
        self._feature_importances = self._accumulate_importances()

        return self

    def decision_function(self, X: Any) -> np.ndarray:
        """
        클래스별 신뢰도 점수

        Returns
        -------
        scores : ndarray of shape (n_samples, n_classes)
            저장된 트리들의 SAMME.R 점수 평균
        """
        X = self._check_samples(X)
        n_classes = len(self.classes_)

        scores = np.zeros((X.shape[0], n_classes))
        for tree in self.estimators_:
            log_proba = np.log(np.clip(tree.predict_proba(X), PROBA_FLOOR, None))
            scores += (n_classes - 1) * (log_proba - log_proba.mean(axis=1, keepdims=True))

        return scores / len(self.estimators_)

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        클래스별 확률

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
        """
        scores = self.decision_function(X)
        proba = np.exp(scores / (len(self.classes_) - 1))
        return proba / proba.sum(axis=1, keepdims=True)

    def predict(self, X: Any) -> np.ndarray:
        """결정 함수가 가장 큰 클래스"""
        return self.classes_[np.argmax(self.decision_function(X), axis=1)]

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


class AdaBoostRegressor(BaseAdaBoost):
    """
    AdaBoost.R2 회귀 모델 (From Scratch)

    알고리즘 (AdaBoost.R2):
    ----------------------
    1. 초기화: w_i = 1/n (균등 가중치)

    2. for m = 1 to M:
       a. w에 비례하여 복원 추출, 학습기 h_m 학습
       b. 각 샘플의 손실 계산:
          L_i = |y_i - h_m(x_i)| / D
          여기서 D = max_i |y_i - h_m(x_i)| (정규화 상수)
       c. 평균 손실 계산:
          L_avg = Σ w_i * L_i
       d. 학습기 가중치 계산:
          β_m = (L_avg / (1 - L_avg)) ^ learning_rate
       e. 샘플 가중치 업데이트:
          w_i = w_i * β_m^(1 - L_i),  w = w / Σw

    3. 최종 예측 (가중 중앙값):
       - 각 학습기의 예측을 log(1/β_m)로 가중
       - 가중 중앙값 반환

    Parameters
    ----------
    n_estimators : int, default=50
        부스팅 라운드 수

    learning_rate : float, default=1.0
        학습률 (β를 조절). 작은 값은 더 보수적인 부스팅

    loss : {'linear', 'square', 'exponential'}, default='linear'
        손실 함수 종류
        - 'linear': L_i = |e_i| / D
        - 'square': L_i = (e_i / D)²
        - 'exponential': L_i = 1 - exp(-|e_i| / D)

    criterion : {'mse', 'mae'}, default='mse'
        기본 학습기의 불순도 기준

    max_depth : int, default=3
        기본 학습기(트리)의 최대 깊이

    max_leaf_nodes, min_samples_leaf, max_features, random_seed, verbose
        AdaBoostClassifier 참고

    Attributes
    ----------
    estimators_ : list of DecisionTreeRegressor
        학습된 트리들

    estimator_weights_ : ndarray
        각 학습기의 가중치 log(1/β_m)

    estimator_errors_ : ndarray
        각 학습기의 가중 평균 손실

    feature_importances_ : ndarray
        피처 중요도 (학습기 가중치로 가중 평균)
    """

    _tree_class = DecisionTreeRegressor
    _criteria = REGRESSION_CRITERIA
    _param_names = (
        'n_estimators', 'learning_rate', 'loss', 'criterion', 'max_depth', 'max_leaf_nodes',
        'min_samples_leaf', 'max_features', 'random_seed', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 50,
        learning_rate: float = 1.0,
        loss: str = 'linear',
        criterion: str = 'mse',
        max_depth: Optional[int] = 3,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.learning_rate = learning_rate
        self.loss = loss
        self.criterion = criterion
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_seed = entropy_seed() if random_seed is None else random_seed
        self.verbose = verbose
        self._validate_params()

        # 학습 후 설정되는 속성들
        self.estimators_: List[DecisionTreeRegressor] = []
        self.estimator_weights_: Optional[np.ndarray] = None
        self.estimator_errors_: Optional[np.ndarray] = None
        self._feature_importances: Optional[np.ndarray] = None
        self.n_features_: int = 0
        self.rng_: Optional[np.random.Generator] = None

    def _validate_params(self) -> None:
        check_params_type(numbers.Real, learning_rate=self.learning_rate)
        check_params_positive(learning_rate=self.learning_rate)
        check_params_choice('loss', self.loss, REGRESSION_LOSSES)
        self._validate_tree_params()

    def _calculate_loss(self, y_true: np.ndarray, y_pred: np.ndarray) -> np.ndarray:
        """
        각 샘플의 정규화된 손실 (0 ~ 1)
        """
        errors = np.abs(y_true - y_pred)

        # 정규화 상수 (최대 오차)
        D = np.max(errors)
        if D == 0:
            return np.zeros_like(errors)

        normalized_errors = errors / D

        if self.loss == 'linear':
            return normalized_errors
        if self.loss == 'square':
            return normalized_errors ** 2
        return 1 - np.exp(-normalized_errors)

    def fit(self, X: Any, y: Any) -> 'AdaBoostRegressor':
        """
        AdaBoost.R2 모델 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,)
            타겟 값

        Returns
        -------
        self : AdaBoostRegressor
            학습된 모델
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_targets(y)
        if y.ndim != 1:
            raise ValidationError(
                f"AdaBoostRegressor는 1차원 타겟만 지원합니다 (입력 차원: {y.ndim})"
            )
        check_same_sample_count(X, y)

        n_samples, n_features = X.shape
        self.n_features_ = n_features
        self.rng_ = np.random.default_rng(int(self.random_seed))

        # 1. 초기화: 균등 가중치
        sample_weights = np.full(n_samples, 1.0 / n_samples)

        self.estimators_ = []
        estimator_weights = []
        estimator_errors = []

        for m in range(self.n_estimators):
            # 2a. 가중치 비례 샘플링 후 학습
            ids = choice_ids(sample_weights, self.rng_)
            tree = self._make_tree(draw_seeds(self.rng_, None))
            tree.fit(X[ids], y[ids])

            y_pred = tree.predict(X)

            # 2b, 2c. 손실
            sample_losses = self._calculate_loss(y, y_pred)
            avg_loss = np.sum(sample_weights * sample_losses)

            # 완벽한 예측
            if avg_loss == 0:
                self.estimators_.append(tree)
                estimator_weights.append(1.0)
                estimator_errors.append(avg_loss)
                self._log_stop("라운드 %d: 손실 0으로 학습 종료", m + 1)
                break

            # 손실이 0.5 이상이면 학습 중단 (성능이 랜덤보다 나쁨)
            if avg_loss >= 0.5:
                if m == 0:
                    # 첫 번째 학습기도 실패하면 하나는 추가
                    self.estimators_.append(tree)
                    estimator_weights.append(1.0)
                    estimator_errors.append(avg_loss)
                self._log_stop("라운드 %d: 평균 손실 %.4f >= 0.5로 학습 중단", m + 1, avg_loss)
                break

            # 2d. 학습기 가중치(beta)
            beta = (avg_loss / (1 - avg_loss)) ** self.learning_rate

            # 2e. 잘 예측된 샘플(낮은 손실)은 가중치 감소
            sample_weights = sample_weights * (beta ** (1 - sample_losses))
            sample_weights = sample_weights / np.sum(sample_weights)

            self.estimators_.append(tree)
            estimator_weights.append(np.log(1 / beta))
            estimator_errors.append(avg_loss)

            if self.verbose > 0 and (m + 1) % max(1, self.n_estimators // 10) == 0:
                logger.info("라운드 %d/%d, 평균 손실: %.4f", m + 1, self.n_estimators, avg_loss)

        self.estimator_weights_ = np.array(estimator_weights)
        self.estimator_errors_ = np.array(estimator_errors)

        # 피처 중요도 (학습기 가중치로 가중 평균)
        weighted_importances = np.zeros(n_features)
        for tree, weight in zip(self.estimators_, self.estimator_weights_):
            weighted_importances += weight * tree.feature_importances_
        total = weighted_importances.sum()
        self._feature_importances = weighted_importances / total if total > 0 else weighted_importances

        return self

    @staticmethod
    def _weighted_median(predictions: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """
        열(샘플)별 가중 중앙값

        Parameters
        ----------
        predictions : ndarray of shape (n_estimators, n_samples)
            학습기별 예측값
        weights : ndarray of shape (n_estimators,)
            학습기 가중치

        Returns
        -------
        medians : ndarray of shape (n_samples,)
            누적 가중치가 처음으로 전체의 절반 이상이 되는 위치의 값
        """
        order = np.argsort(predictions, axis=0, kind='mergesort')
        sorted_predictions = np.take_along_axis(predictions, order, axis=0)
        cumulative_weights = np.cumsum(weights[order], axis=0)

        median_idx = np.argmax(cumulative_weights >= cumulative_weights[-1] / 2, axis=0)
        return sorted_predictions[median_idx, np.arange(predictions.shape[1])]

    def predict(self, X: Any) -> np.ndarray:
        """
        예측 수행 (가중 중앙값)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
        """
        X = self._check_samples(X)
        predictions = np.array([tree.predict(X) for tree in self.estimators_])
        return self._weighted_median(predictions, self.estimator_weights_)

    def staged_predict(self, X: Any) -> np.ndarray:
        """
        각 부스팅 라운드별 예측 반환 (시각화용)

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples)
            각 라운드까지의 가중 중앙값 예측
        """
        X = self._check_samples(X)
        predictions = np.array([tree.predict(X) for tree in self.estimators_])

        return np.array([
            self._weighted_median(predictions[:m + 1], self.estimator_weights_[:m + 1])
            for m in range(len(self.estimators_))
        ])

    def score(self, X: Any, y: Any) -> float:
        """결정계수 R²"""
        return r2_of(self, X, y)

    def _get_state(self):
        state = super()._get_state()
        state['estimator_weights'] = self.estimator_weights_.tolist()
        return state

    def _set_state(self, state):
        super()._set_state(state)
        self.estimator_weights_ = np.asarray(state['estimator_weights'])
