"""
분할점 탐색 (Splitter)
======================

- BestSplitter: 정렬된 고유값 사이의 모든 중간점을 임계값 후보로 평가
- RandomSplitter: 피처별로 노드 내 [최소, 최대) 구간에서 임계값 하나를 무작위 추출
  (Extremely Randomized Trees)

두 스플리터 모두 노드마다 피처 순서를 무작위로 섞은 뒤 앞의 max_features개만
평가한다. 이득이 같으면 먼저 평가된 후보를 유지한다.
분할 규칙: x[:, feature] < threshold 이면 왼쪽.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from .criterion import Criterion


class SplitStrategy(Enum):
    """분할 탐색 방식"""
    STANDARD = 'standard'
    EXTREMELY_RANDOMIZED = 'extremely_randomized'


@dataclass
class SplitRecord:
    """분할 후보 기록"""
    feature: int
    threshold: float
    gain: float


class Splitter:
    """
    스플리터 기본 클래스

    Parameters
    ----------
    criterion : Criterion
        불순도/이득 계산 객체
    max_features : int
        노드마다 평가할 피처 수 (이미 [1, n_features]로 보정된 값)
    min_samples_leaf : int
        분할 후 양쪽 자식이 가져야 하는 최소 샘플 수
    rng : np.random.Generator
        피처 순서/임계값 추출용 RNG (트리 하나가 독점)
    """

    def __init__(
        self,
        criterion: Criterion,
        max_features: int,
        min_samples_leaf: int,
        rng: np.random.Generator
    ):
        self.criterion = criterion
        self.max_features = max_features
        self.min_samples_leaf = min_samples_leaf
        self.rng = rng

    def node_split(
        self,
        X: np.ndarray,
        indices: np.ndarray,
        parent_impurity: float
    ) -> Optional[SplitRecord]:
        """노드의 최적 분할 탐색. 불순도를 줄이는 분할이 없으면 None"""
        features = self.rng.permutation(X.shape[1])[:self.max_features]

        best: Optional[SplitRecord] = None
        for feature in features:
            record = self._evaluate_feature(X, indices, int(feature), parent_impurity)
            if record is not None and (best is None or record.gain > best.gain):
                best = record

        if best is None or best.gain <= self.criterion.min_gain(parent_impurity):
            return None
        return best

    def _evaluate_feature(
        self,
        X: np.ndarray,
        indices: np.ndarray,
        feature: int,
        parent_impurity: float
    ) -> Optional[SplitRecord]:
        raise NotImplementedError


class BestSplitter(Splitter):
    """모든 중간점을 평가하는 표준 분할 탐색"""

    def _evaluate_feature(self, X, indices, feature, parent_impurity):
        values = X[indices, feature]
        order = np.argsort(values, kind='mergesort')
        sorted_values = values[order]
        n_samples = len(indices)

        # 왼쪽 자식 크기 후보: min_samples_leaf 조건을 만족하는 범위
        n_left = np.arange(self.min_samples_leaf, n_samples - self.min_samples_leaf + 1)
        if n_left.size == 0:
            return None

        # 같은 값 사이에서는 나눌 수 없음
        n_left = n_left[sorted_values[n_left - 1] < sorted_values[n_left]]
        if n_left.size == 0:
            return None

        gains = self.criterion.split_gains(indices[order], n_left, parent_impurity)
        best = int(np.argmax(gains))

        lower = sorted_values[n_left[best] - 1]
        upper = sorted_values[n_left[best]]
        threshold = (lower + upper) / 2.0
        if threshold <= lower:
            threshold = upper

        return SplitRecord(feature=feature, threshold=float(threshold), gain=float(gains[best]))


class RandomSplitter(Splitter):
    """피처마다 무작위 임계값 하나만 평가하는 분할 탐색"""

    def _evaluate_feature(self, X, indices, feature, parent_impurity):
        values = X[indices, feature]
        lower, upper = values.min(), values.max()
        if not lower < upper:
            return None

        threshold = self.rng.uniform(lower, upper)
        left_mask = values < threshold
        n_left = int(np.count_nonzero(left_mask))
        if n_left < self.min_samples_leaf or len(indices) - n_left < self.min_samples_leaf:
            return None

        gain = self.criterion.split_gain(indices[left_mask], indices[~left_mask], parent_impurity)
        return SplitRecord(feature=feature, threshold=float(threshold), gain=float(gain))


SPLITTERS = {
    SplitStrategy.STANDARD: BestSplitter,
    SplitStrategy.EXTREMELY_RANDOMIZED: RandomSplitter,
}


def make_splitter(
    strategy: SplitStrategy,
    criterion: Criterion,
    max_features: int,
    min_samples_leaf: int,
    rng: np.random.Generator
) -> Splitter:
    return SPLITTERS[strategy](criterion, max_features, min_samples_leaf, rng)
