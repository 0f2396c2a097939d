"""
Decision Tree / Extra Tree - From Scratch Implementation
=========================================================

CART (Classification and Regression Trees) 알고리즘 기반 결정 트리.
분할 탐색 방식(표준 / 극단적 무작위)과 작업 종류(분류 / 회귀)의 조합으로
네 개의 추정기를 제공한다.

- DecisionTreeClassifier  : 표준 탐색 + 분류
- ExtraTreeClassifier     : 극단적 무작위 탐색 + 분류
- DecisionTreeRegressor   : 표준 탐색 + 회귀
- ExtraTreeRegressor      : 극단적 무작위 탐색 + 회귀

수학적 배경:
-----------
분할 전 불순도 I_parent, 분할 후 가중 불순도:
    I_split = (n_left/n) * I_left + (n_right/n) * I_right

정보 이득:
    Gain = I_parent - I_split

예측:
    분류: leaf_proba = 리프에 도달한 학습 샘플의 클래스 빈도
          prediction = classes_[argmax(leaf_proba)]
    회귀: prediction = mean(y_samples in leaf)

Author: Trees From Scratch Project
"""

import numbers
from typing import Any, Dict, Optional

import numpy as np

from .base import BaseEstimator, accuracy_of, entropy_seed, r2_of, rng_from_state, rng_state
from .criterion import CLASSIFICATION_CRITERIA, REGRESSION_CRITERIA, Criterion
from .node import Node, Tree
from .splitter import SplitStrategy
from .tree_builder import TreeConfig, build_tree
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
    resolve_max_features,
)


class BaseDecisionTree(BaseEstimator):
    """
    결정 트리 공통 기반

    Parameters
    ----------
    max_depth : int, default=None
        트리의 최대 깊이. None이면 제한 없음.

    max_leaf_nodes : int, default=None
        최대 리프 수. 지정하면 최선 우선(best-first) 방식으로 성장.

    min_samples_leaf : int, default=1
        리프 노드에 있어야 하는 최소 샘플 수.

    max_features : int or float or str, default=None
        각 분할에서 고려할 피처 수.
        - None: 모든 피처 사용
        - int: 해당 수의 피처 사용
        - float: 비율로 피처 수 결정
        - 'sqrt': sqrt(n_features)
        - 'log2': log2(n_features)

    random_seed : int, default=None
        랜덤 시드 (피처 순서, 무작위 임계값). None이면 생성 시점에 OS
        엔트로피에서 한 번 얻는다.

    Attributes
    ----------
    tree_ : Tree
        학습된 노드 배열

    n_features_ : int
        학습에 사용된 피처 수

    rng_ : np.random.Generator
        학습에 사용된 트리 전용 RNG
    """

    _split_strategy = SplitStrategy.STANDARD
    _param_names = ('max_depth', 'max_leaf_nodes', 'min_samples_leaf', 'max_features', 'random_seed')

    def __init__(
        self,
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None
    ):
        self.max_depth = max_depth
        self.max_leaf_nodes = max_leaf_nodes
        self.min_samples_leaf = min_samples_leaf
        self.max_features = max_features
        self.random_seed = entropy_seed() if random_seed is None else random_seed
        self._validate_params()

        # 학습 후 설정되는 속성들
        self.tree_: Optional[Tree] = None
        self.n_features_: int = 0
        self.rng_: Optional[np.random.Generator] = None

    def _validate_params(self) -> None:
        check_params_type(numbers.Integral, allow_none=True, max_depth=self.max_depth,
                          max_leaf_nodes=self.max_leaf_nodes)
        check_params_type(numbers.Integral, min_samples_leaf=self.min_samples_leaf)
        check_params_type(numbers.Integral, random_seed=self.random_seed)
        check_params_positive(max_depth=self.max_depth, max_leaf_nodes=self.max_leaf_nodes,
                              min_samples_leaf=self.min_samples_leaf)
        check_max_features(self.max_features)

    def _grow(self, X: np.ndarray, criterion: Criterion) -> None:
        """criterion이 가진 타겟으로 트리를 구축"""
        config = TreeConfig(
            max_depth=self.max_depth,
            max_leaf_nodes=self.max_leaf_nodes,
            min_samples_leaf=self.min_samples_leaf,
            max_features=resolve_max_features(self.max_features, X.shape[1]),
            random_seed=int(self.random_seed)
        )
        self.tree_, self.rng_ = build_tree(X, criterion, self._split_strategy, config)
        self.n_features_ = X.shape[1]

    def _is_fitted(self) -> bool:
        return self.tree_ is not None

    def _check_samples(self, X: Any) -> np.ndarray:
        self._check_is_fitted()
        X = check_and_coerce_samples(X)
        check_n_features(X, self.n_features_)
        return X

    def apply(self, X: Any) -> np.ndarray:
        """
        각 샘플이 도달한 리프 번호

        Returns
        -------
        leaf_ids : ndarray of shape (n_samples,)
            0..n_leaves-1 범위의 리프 번호
        """
        X = self._check_samples(X)
        return self.tree_.apply(X)

    @property
    def feature_importances_(self) -> np.ndarray:
        """피처 중요도 (불순도 감소 기반, 합이 1로 정규화됨)"""
        self._check_is_fitted()
        return self.tree_.feature_importances

    @property
    def leaf_values_(self) -> np.ndarray:
        """리프 번호별 출력 벡터, shape (n_leaves, n_outputs)"""
        self._check_is_fitted()
        return self.tree_.leaf_values

    def get_depth(self) -> int:
        """트리의 최대 깊이 반환"""
        self._check_is_fitted()
        return self.tree_.max_depth

    def get_n_leaves(self) -> int:
        """리프 노드 수 반환"""
        self._check_is_fitted()
        return self.tree_.n_leaves

    def export_tree_structure(self) -> Dict:
        """
        트리 구조를 중첩 딕셔너리로 내보내기 (시각화용)
        """
        self._check_is_fitted()
        tree = self.tree_

        def _node_to_dict(node: Node) -> Dict:
            result = {
                'node_id': node.node_id,
                'n_samples': node.n_samples,
                'impurity': node.impurity,
                'depth': node.depth,
                'is_leaf': node.is_leaf
            }

            if node.is_leaf:
                result['leaf_id'] = node.leaf_id
                result['value'] = node.value.tolist()
            else:
                result['feature_idx'] = node.feature_index
                result['threshold'] = node.threshold
                result['left'] = _node_to_dict(tree.left_child(node))
                result['right'] = _node_to_dict(tree.right_child(node))

            return result

        return _node_to_dict(tree.root)

    def _get_state(self) -> Dict[str, Any]:
        return {
            'tree': self.tree_.to_dict(),
            'n_features': self.n_features_,
            'rng': rng_state(self.rng_),
        }

    def _set_state(self, state: Dict[str, Any]) -> None:
        self.tree_ = Tree.from_dict(state['tree'])
        self.n_features_ = state['n_features']
        self.rng_ = rng_from_state(state['rng'])


class BaseTreeClassifier(BaseDecisionTree):
    """
    분류 트리 공통 기반

    Parameters
    ----------
    criterion : {'gini', 'entropy'}, default='gini'
        불순도 기준

    Attributes
    ----------
    classes_ : ndarray of shape (n_classes,)
        정렬된 고유 레이블 (predict_proba 열 순서)
    """

    _param_names = ('criterion',) + BaseDecisionTree._param_names

    def __init__(
        self,
        criterion: str = 'gini',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None
    ):
        self.criterion = criterion
        super().__init__(
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed
        )
        self.classes_: Optional[np.ndarray] = None

    def _validate_params(self) -> None:
        check_params_choice('criterion', self.criterion, CLASSIFICATION_CRITERIA)
        super()._validate_params()

    def fit(self, X: Any, y: Any) -> 'BaseTreeClassifier':
        """
        분류 트리 학습

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

        self.classes_, y_encoded = np.unique(y, return_inverse=True)
        criterion = CLASSIFICATION_CRITERIA[self.criterion](y_encoded.ravel(), len(self.classes_))
        self._grow(X, criterion)

        return self

    def predict_proba(self, X: Any) -> np.ndarray:
        """
        클래스별 확률 (리프의 클래스 빈도)

        Returns
        -------
        proba : ndarray of shape (n_samples, n_classes)
        """
        return self.leaf_values_[self.apply(X)]

    def predict(self, X: Any) -> np.ndarray:
        """가장 빈도가 높은 클래스 (동률이면 작은 레이블)"""
        return self.classes_[np.argmax(self.predict_proba(X), axis=1)]

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


class BaseTreeRegressor(BaseDecisionTree):
    """
    회귀 트리 공통 기반

    Parameters
    ----------
    criterion : {'mse', 'mae'}, default='mse'
        불순도 기준. 다중 출력이면 출력별 값을 합산.

    Attributes
    ----------
    n_outputs_ : int
        타겟 차원 수
    """

    _param_names = ('criterion',) + BaseDecisionTree._param_names

    def __init__(
        self,
        criterion: str = 'mse',
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None
    ):
        self.criterion = criterion
        super().__init__(
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed
        )
        self.n_outputs_: int = 0
        self._single_output = True

    def _validate_params(self) -> None:
        check_params_choice('criterion', self.criterion, REGRESSION_CRITERIA)
        super()._validate_params()

    def fit(self, X: Any, y: Any) -> 'BaseTreeRegressor':
        """
        회귀 트리 학습

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

        self._single_output = y.ndim == 1
        y = y.reshape(len(y), -1)
        self.n_outputs_ = y.shape[1]

        self._grow(X, REGRESSION_CRITERIA[self.criterion](y))

        return self

    def predict(self, X: Any) -> np.ndarray:
        """
        리프 평균으로 예측

        Returns
        -------
        y_pred : ndarray of shape (n_samples,) or (n_samples, n_outputs)
            학습 타겟이 1차원이었으면 1차원
        """
        y_pred = self.leaf_values_[self.apply(X)]
        if self._single_output:
            return y_pred[:, 0]
        return y_pred

    def score(self, X: Any, y: Any) -> float:
        """결정계수 R²"""
        return r2_of(self, X, y)

    def _get_state(self):
        state = super()._get_state()
        state['n_outputs'] = self.n_outputs_
        state['single_output'] = self._single_output
        return state

    def _set_state(self, state):
        super()._set_state(state)
        self.n_outputs_ = state['n_outputs']
        self._single_output = state['single_output']


class DecisionTreeClassifier(BaseTreeClassifier):
    """
    CART 기반 결정 트리 분류 모델 (From Scratch)

    모든 중간점을 임계값 후보로 평가한다.

    Examples
    --------
    >>> from trees_from_scratch import DecisionTreeClassifier
    >>> import numpy as np
    >>> X = np.array([[0.0], [1.0], [2.0], [3.0]])
    >>> y = np.array([0, 0, 1, 1])
    >>> tree = DecisionTreeClassifier(random_seed=0).fit(X, y)
    >>> tree.predict(np.array([[0.5], [2.5]]))
    array([0, 1])
    """

    _split_strategy = SplitStrategy.STANDARD


class ExtraTreeClassifier(BaseTreeClassifier):
    """극단적 무작위 분류 트리 (피처마다 임계값 하나를 무작위로 추출)"""

    _split_strategy = SplitStrategy.EXTREMELY_RANDOMIZED


class DecisionTreeRegressor(BaseTreeRegressor):
    """
    CART 기반 결정 트리 회귀 모델 (From Scratch)

    Examples
    --------
    >>> from trees_from_scratch import DecisionTreeRegressor
    >>> import numpy as np
    >>> X = np.array([[0.0], [1.0], [2.0], [3.0]])
    >>> y = np.array([0.0, 0.0, 10.0, 10.0])
    >>> tree = DecisionTreeRegressor(max_depth=1, random_seed=0).fit(X, y)
    >>> tree.predict(np.array([[0.2], [2.8]]))
    array([ 0., 10.])
    """

    _split_strategy = SplitStrategy.STANDARD


class ExtraTreeRegressor(BaseTreeRegressor):
    """극단적 무작위 회귀 트리"""

    _split_strategy = SplitStrategy.EXTREMELY_RANDOMIZED


TREE_CLASSES = {
    ('classification', SplitStrategy.STANDARD): DecisionTreeClassifier,
    ('classification', SplitStrategy.EXTREMELY_RANDOMIZED): ExtraTreeClassifier,
    ('regression', SplitStrategy.STANDARD): DecisionTreeRegressor,
    ('regression', SplitStrategy.EXTREMELY_RANDOMIZED): ExtraTreeRegressor,
}


def tree_class_for(task: str, strategy: SplitStrategy) -> type:
    """작업 종류와 분할 방식에 맞는 트리 클래스"""
    return TREE_CLASSES[(task, strategy)]
