"""
Random Forest / Extra Trees - From Scratch Implementation
==========================================================

배깅(Bootstrap Aggregating) + 랜덤 피처 선택을 결합한 앙상블 방법

수학적 배경:
-----------
1. 배깅 (Bootstrap Aggregating):
   - 원본 데이터에서 복원 추출로 n개의 부트스트랩 샘플 생성
   - 각 샘플로 독립적인 트리 학습
   - 분산 감소: Var(평균) = Var(개별) / n (독립인 경우)

2. 랜덤 피처 선택:
   - 각 분할에서 sqrt(n_features)개 피처만 고려
   - 트리 간 상관관계 감소 → 앙상블 효과 증대

3. Extra Trees (Extremely Randomized Trees):
   - 리샘플링 없이 전체 데이터 사용
   - 임계값을 최적화하지 않고 피처마다 하나를 무작위 추출

4. 최종 예측:
   분류: 트리 예측의 다수결 (동률이면 트리 순서상 먼저 나온 클래스)
   회귀: ŷ = (1/M) * Σ h_m(x)

하나의 배깅 엔진(BaggingEngine)이 분할 방식 × 리샘플링 방식 조합으로
네 개의 공개 클래스를 구성한다.

Author: Trees From Scratch Project
"""

import logging
import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

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
from .criterion import CLASSIFICATION_CRITERIA, REGRESSION_CRITERIA
from .decision_tree import BaseDecisionTree, tree_class_for
from .splitter import SplitStrategy
from .validation import (
    check_and_coerce_labels,
    check_and_coerce_samples,
    check_and_coerce_targets,
    check_max_features,
    check_n_features,
    check_params_choice,
    check_params_nonzero,
    check_params_positive,
    check_params_type,
    check_same_sample_count,
)

logger = logging.getLogger(__name__)


class ResamplingStrategy(Enum):
    """트리별 학습 데이터 구성 방식"""
    BOOTSTRAP = 'bootstrap'
    NONE = 'none'


@dataclass(frozen=True)
class BaggingEngine:
    """분할 방식과 리샘플링 방식의 조합"""
    split_strategy: SplitStrategy
    resampling: ResamplingStrategy

    def sample_indices(self, n_samples: int, seed: int) -> np.ndarray:
        """트리 하나의 학습 샘플 인덱스"""
        if self.resampling is ResamplingStrategy.BOOTSTRAP:
            return np.random.default_rng(seed).integers(0, n_samples, size=n_samples)
        return np.arange(n_samples)


RANDOM_FOREST = BaggingEngine(SplitStrategy.STANDARD, ResamplingStrategy.BOOTSTRAP)
EXTRA_TREES = BaggingEngine(SplitStrategy.EXTREMELY_RANDOMIZED, ResamplingStrategy.NONE)


def plurality_vote(votes: np.ndarray, n_classes: int) -> np.ndarray:
    """
    샘플별 다수결

    Parameters
    ----------
    votes : ndarray of shape (n_samples, n_estimators)
        트리별 예측 클래스 인덱스
    n_classes : int
        클래스 수

    Returns
    -------
    winners : ndarray of shape (n_samples,)
        최다 득표 클래스 인덱스. 동률이면 트리 순서상 먼저 등장한 클래스.
    """
    n_samples, n_estimators = votes.shape
    rows = np.arange(n_samples)

    counts = np.zeros((n_samples, n_classes), dtype=np.intp)
    first_seen = np.full((n_samples, n_classes), n_estimators, dtype=np.intp)
    for t in range(n_estimators - 1, -1, -1):
        first_seen[rows, votes[:, t]] = t
    np.add.at(counts, (rows[:, None], votes), 1)

    is_winner = counts == counts.max(axis=1, keepdims=True)
    return np.argmin(np.where(is_winner, first_seen, n_estimators + 1), axis=1)


class BaseBaggingEnsemble(BaseEstimator):
    """
    배깅 앙상블 공통 기반

    Parameters
    ----------
    n_estimators : int, default=10
        트리 개수

    criterion : str
        트리 불순도 기준 (분류: 'gini'/'entropy', 회귀: 'mse'/'mae')

    max_depth : int, default=None
        각 트리의 최대 깊이. None이면 완전히 확장

    max_leaf_nodes : int, default=None
        각 트리의 최대 리프 수

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수

    max_features : str or int or float, default='sqrt'
        각 분할에서 고려할 피처 수 ([1, n_features]로 보정).
        None도 'sqrt'로 취급하며, 모든 피처를 쓰려면 1.0을 지정

    random_seed : int, default=None
        앙상블 시드. 트리별 시드는 학습 시작 전에 모두 이 시드에서 유도된다.

    n_jobs : int, default=None
        트리 단위 병렬 처리 수 (None 또는 1: 순차, -1: 모든 코어).
        0은 허용하지 않는다. 결과는 순차 실행과 동일하다.

    verbose : int, default=0
        출력 수준 (0: 없음, 1: 진행률)

    Attributes
    ----------
    estimators_ : list of BaseDecisionTree
        학습된 트리들

    n_features_ : int
        학습에 사용된 피처 수

    rng_ : np.random.Generator
        트리 시드를 뽑는 데 사용한 앙상블 RNG
    """

    _task = 'classification'
    _engine = RANDOM_FOREST
    _criteria: Dict[str, type] = CLASSIFICATION_CRITERIA
    _param_names = (
        'n_estimators', 'criterion', 'max_depth', 'max_leaf_nodes', 'min_samples_leaf',
        'max_features', 'random_seed', 'n_jobs', 'verbose'
    )

    def __init__(
        self,
        n_estimators: int = 10,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = 'sqrt',
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        self.n_estimators = n_estimators
        self.criterion = criterion
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_seed = entropy_seed() if random_seed is None else random_seed
        self.n_jobs = n_jobs
        self.verbose = verbose
        self._validate_params()

        # 학습 후 설정되는 속성들
        self.estimators_: List[BaseDecisionTree] = []
        self.n_features_: int = 0
        self.rng_: Optional[np.random.Generator] = None

    def _validate_params(self) -> None:
        check_params_type(numbers.Integral, n_estimators=self.n_estimators,
                          min_samples_leaf=self.min_samples_leaf,
                          verbose=self.verbose)
        check_params_type(numbers.Integral, allow_none=True, max_depth=self.max_depth,
                          max_leaf_nodes=self.max_leaf_nodes, n_jobs=self.n_jobs)
        check_params_type(numbers.Integral, random_seed=self.random_seed)
        check_params_nonzero(n_jobs=self.n_jobs)
        check_params_positive(n_estimators=self.n_estimators, max_depth=self.max_depth,
                              max_leaf_nodes=self.max_leaf_nodes,
                              min_samples_leaf=self.min_samples_leaf)
        check_params_choice('criterion', self.criterion, self._criteria)
        check_max_features(self.max_features)

    def _make_tree(self, seed: int) -> BaseDecisionTree:
        tree_class = tree_class_for(self._task, self._engine.split_strategy)
        return tree_class(
            criterion=self.criterion,
            max_depth=self.max_depth,
            max_leaf_nodes=self.max_leaf_nodes,
            min_samples_leaf=self.min_samples_leaf,
            max_features='sqrt' if self.max_features is None else self.max_features,
            random_seed=int(seed)
        )

    def _fit_trees(self, X: np.ndarray, y: np.ndarray) -> None:
        """트리별 시드를 먼저 모두 뽑은 뒤 트리들을 학습"""
        n_samples, n_features = X.shape
        self.n_features_ = n_features
        self.rng_ = np.random.default_rng(int(self.random_seed))

        # (트리 시드, 리샘플링 시드)
        seeds = draw_seeds(self.rng_, (self.n_estimators, 2))

        if self.verbose > 0:
            logger.info("%s 학습 시작: %d개 트리", type(self).__name__, self.n_estimators)

        report_every = max(1, self.n_estimators // 10)

        def fit_one(job):
            m, (tree_seed, sample_seed) = job
            indices = self._engine.sample_indices(n_samples, int(sample_seed))
            tree = self._make_tree(tree_seed).fit(X[indices], y[indices])

            if self.verbose > 0 and (m + 1) % report_every == 0:
                logger.info("트리 %d/%d 완료", m + 1, self.n_estimators)
            return tree

        self.estimators_ = parallel_map(fit_one, enumerate(seeds), n_jobs=self.n_jobs)

    def _is_fitted(self) -> bool:
        return len(self.estimators_) > 0

    def _check_samples(self, X: Any) -> np.ndarray:
        self._check_is_fitted()
        X = check_and_coerce_samples(X)
        check_n_features(X, self.n_features_)
        return X

    def _map_trees(self, method: str, X: np.ndarray) -> List[np.ndarray]:
        """모든 트리에 같은 메서드를 적용 (트리 순서 유지)"""
        return parallel_map(lambda tree: getattr(tree, method)(X), self.estimators_, n_jobs=self.n_jobs)

    def apply(self, X: Any) -> np.ndarray:
        """
        트리별 리프 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples, n_estimators)
        """
        X = self._check_samples(X)
        return np.column_stack(self._map_trees('apply', X))

    @property
    def feature_importances_(self) -> np.ndarray:
        """트리별 중요도의 합을 다시 정규화한 값"""
        self._check_is_fitted()
        importances = np.sum([tree.feature_importances_ for tree in self.estimators_], axis=0)
        total = importances.sum()
        if total > 0:
            importances = importances / total
        return importances

    def _get_state(self) -> Dict[str, Any]:
        return {
            'estimators': [tree.snapshot() for tree in self.estimators_],
            'n_features': self.n_features_,
            'rng': rng_state(self.rng_),
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        self.estimators_ = [
            self._make_tree(tree_snapshot['params']['random_seed']).restore(tree_snapshot)
            for tree_snapshot in state['estimators']
        ]
        self.n_features_ = state['n_features']
        self.rng_ = rng_from_state(state['rng'])


class BaseForestClassifier(BaseBaggingEnsemble):
    """
    분류 포레스트 공통 기반

    Attributes
    ----------
    classes_ : ndarray of shape (n_classes,)
        정렬된 고유 레이블
    """

    _task = 'classification'
    _criteria = CLASSIFICATION_CRITERIA

    def __init__(
        self,
        n_estimators: int = 10,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = 'sqrt',
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        super().__init__(
            n_estimators=n_estimators,
            criterion=criterion,
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed,
            n_jobs=n_jobs,
            verbose=verbose
        )
        self.classes_: Optional[np.ndarray] = None

    def fit(self, X: Any, y: Any) -> 'BaseForestClassifier':
        """
        포레스트 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,)
            정수 레이블

        Returns
        -------
        self
            학습된 모델
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_labels(y)
        check_same_sample_count(X, y)

        self.classes_ = np.unique(y)
        self._fit_trees(X, y)

        return self

    def _aligned_proba(self, tree: BaseDecisionTree, X: np.ndarray) -> np.ndarray:
        """부트스트랩에서 빠진 클래스 열을 0으로 채워 앙상블 classes_ 순서에 맞춤"""
        proba = np.zeros((X.shape[0], len(self.classes_)))
        proba[:, np.searchsorted(self.classes_, tree.classes_)] = tree.predict_proba(X)
        return proba

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        트리별 클래스 확률의 평균

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
            각 행의 합은 1
        """
        X = self._check_samples(X)
        probas = parallel_map(lambda tree: self._aligned_proba(tree, X), self.estimators_,
                              n_jobs=self.n_jobs)
        return np.mean(probas, axis=0)

    def predict(self, X: Any) -> np.ndarray:
        """트리 예측의 다수결"""
        X = self._check_samples(X)
        votes = np.column_stack([
            np.searchsorted(self.classes_, prediction)
            for prediction in self._map_trees('predict', X)
        ])
        return self.classes_[plurality_vote(votes, len(self.classes_))]

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


class BaseForestRegressor(BaseBaggingEnsemble):
    """회귀 포레스트 공통 기반"""

    _task = 'regression'
    _criteria = REGRESSION_CRITERIA

    def __init__(
        self,
        n_estimators: int = 10,
        criterion: str = 'mse',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = 'sqrt',
        random_seed: Optional[int] = None,
        n_jobs: Optional[int] = None,
        verbose: int = 0
    ):
        super().__init__(
            n_estimators=n_estimators,
            criterion=criterion,
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed,
            n_jobs=n_jobs,
            verbose=verbose
        )

    def fit(self, X: Any, y: Any) -> 'BaseForestRegressor':
        """
        포레스트 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,) or (n_samples, n_outputs)
            타겟 값

        Returns
        -------
        self
            학습된 모델
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_targets(y)
        check_same_sample_count(X, y)

        self._fit_trees(X, y)

        return self

    def predict(self, X: Any) -> np.ndarray:
        """
        예측 수행 (모든 트리 예측의 평균)

        Returns
        -------
        y_pred : ndarray of shape (n_samples,) or (n_samples, n_outputs)
        """
        X = self._check_samples(X)
        return np.mean(self._map_trees('predict', X), axis=0)

    def staged_predict(self, X: Any) -> np.ndarray:
        """
        각 트리 추가 후의 예측 반환 (수렴 분석용)

        Returns
        -------
        predictions : ndarray of shape (n_estimators, n_samples[, n_outputs])
            각 단계에서의 누적 평균 예측값
        """
        X = self._check_samples(X)
        predictions = np.asarray(self._map_trees('predict', X))
        counts = np.arange(1, len(self.estimators_) + 1).reshape((-1,) + (1,) * (predictions.ndim - 1))
        return np.cumsum(predictions, axis=0) / counts

    def score(self, X: Any, y: Any) -> float:
        """결정계수 R²"""
        return r2_of(self, X, y)


class RandomForestClassifier(BaseForestClassifier):
    """
    Random Forest 분류 모델 (From Scratch)

    트리마다 부트스트랩 샘플을 뽑고 표준 분할 탐색으로 학습한다.

    Examples
    --------
    >>> from trees_from_scratch import RandomForestClassifier
    >>> import numpy as np
    >>> X = np.random.randn(100, 4)
    >>> y = (X[:, 0] + X[:, 1] > 0).astype(int)
    >>> rf = RandomForestClassifier(n_estimators=10, random_seed=1).fit(X, y)
    >>> proba = rf.predict_proba(X[:5])
    """

    _engine = RANDOM_FOREST


class ExtraTreesClassifier(BaseForestClassifier):
    """Extra Trees 분류 모델 (전체 데이터 + 극단적 무작위 분할)"""

    _engine = EXTRA_TREES


class RandomForestRegressor(BaseForestRegressor):
    """
    Random Forest 회귀 모델 (From Scratch)

    Examples
    --------
    >>> from trees_from_scratch import RandomForestRegressor
    >>> import numpy as np
    >>> X = np.random.randn(100, 5)
    >>> y = X[:, 0] * 2 + X[:, 1] + np.random.randn(100) * 0.1
    >>> rf = RandomForestRegressor(n_estimators=50, random_seed=0).fit(X, y)
    >>> predictions = rf.predict(X[:5])
    """

    _engine = RANDOM_FOREST


class ExtraTreesRegressor(BaseForestRegressor):
    """Extra Trees 회귀 모델"""

    _engine = EXTRA_TREES
