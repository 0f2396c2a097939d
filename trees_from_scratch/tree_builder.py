"""
트리 빌더
=========

재귀적 이진 분할로 노드 배열을 구축한다. 분류/회귀/그래디언트 트리가 모두
같은 빌더를 사용하며, 차이는 Criterion과 Splitter에만 있다.

- DepthFirstTreeBuilder: max_leaf_nodes가 없을 때. 스택으로 깊이 우선 성장
  (왼쪽 자식을 먼저 확정)
- BestFirstTreeBuilder: max_leaf_nodes가 있을 때. 가중 이득(gain * n_samples)이
  가장 큰 노드부터 확장하고, 리프 수 한도에 도달하면 남은 후보를 리프로 확정

리프 확정 조건:
1. depth == max_depth
2. n_samples < 2 * min_samples_leaf
3. 순수 노드 (불순도 기준일 때만)
4. 불순도를 줄이는 유효한 분할이 없음

피처 중요도:
    importance[feature] += gain * n_samples  (분할마다 누적)
    트리 완성 후 합이 1이 되도록 한 번 정규화

Author: Trees From Scratch Project
"""

import heapq
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .criterion import Criterion
from .node import Node, Tree
from .splitter import SplitRecord, SplitStrategy, Splitter, make_splitter


@dataclass
class TreeConfig:
    """트리 성장 설정"""
    max_depth: Optional[int] = None
    max_leaf_nodes: Optional[int] = None
    min_samples_leaf: int = 1
    max_features: Optional[int] = None     # 보정된 피처 수 (None이면 전체)
    random_seed: Optional[int] = None


@dataclass
class _Candidate:
    """성장 대기 중인 노드"""
    node_id: int
    indices: np.ndarray
    depth: int
    impurity: float
    split: Optional[SplitRecord] = None


class TreeBuilder:
    """트리 빌더 기본 클래스 (한 번의 build 호출 동안만 상태를 가짐)"""

    def __init__(self, splitter: Splitter, criterion: Criterion, config: TreeConfig):
        self.splitter = splitter
        self.criterion = criterion
        self.config = config

        self._nodes: List[Optional[Node]] = []
        self._n_leaves = 0
        self._importances: Optional[np.ndarray] = None

    def build(self, X: np.ndarray) -> Tree:
        raise NotImplementedError

    def _reset(self, n_features: int) -> None:
        self._nodes = []
        self._n_leaves = 0
        self._importances = np.zeros(n_features)

    def _new_candidate(self, indices: np.ndarray, depth: int) -> _Candidate:
        node_id = len(self._nodes)
        self._nodes.append(None)
        return _Candidate(
            node_id=node_id,
            indices=indices,
            depth=depth,
            impurity=self.criterion.node_impurity(indices)
        )

    def _is_terminal(self, candidate: _Candidate) -> bool:
        max_depth = self.config.max_depth
        return (
            (max_depth is not None and candidate.depth >= max_depth) or
            len(candidate.indices) < 2 * self.config.min_samples_leaf or
            (self.criterion.stops_on_purity and self.criterion.is_pure(candidate.indices))
        )

    def _find_split(self, X: np.ndarray, candidate: _Candidate) -> Optional[SplitRecord]:
        if self._is_terminal(candidate):
            return None
        return self.splitter.node_split(X, candidate.indices, candidate.impurity)

    def _add_leaf(self, candidate: _Candidate) -> None:
        self._nodes[candidate.node_id] = Node(
            node_id=candidate.node_id,
            depth=candidate.depth,
            n_samples=len(candidate.indices),
            impurity=candidate.impurity,
            is_leaf=True,
            leaf_id=self._n_leaves,
            value=self.criterion.node_value(candidate.indices)
        )
        self._n_leaves += 1

    def _add_split(
        self,
        X: np.ndarray,
        candidate: _Candidate,
        split: SplitRecord
    ) -> Tuple[_Candidate, _Candidate]:
        indices = candidate.indices
        left_mask = X[indices, split.feature] < split.threshold

        left = self._new_candidate(indices[left_mask], candidate.depth + 1)
        right = self._new_candidate(indices[~left_mask], candidate.depth + 1)

        self._nodes[candidate.node_id] = Node(
            node_id=candidate.node_id,
            depth=candidate.depth,
            n_samples=len(indices),
            impurity=candidate.impurity,
            is_leaf=False,
            feature_index=split.feature,
            threshold=split.threshold,
            left=left.node_id,
            right=right.node_id
        )
        self._importances[split.feature] += split.gain * len(indices)

        return left, right

    def _finish(self, n_features: int) -> Tree:
        importances = self._importances
        total = importances.sum()
        if total > 0:
            importances = importances / total

        return Tree(nodes=list(self._nodes), n_features=n_features, feature_importances=importances)


class DepthFirstTreeBuilder(TreeBuilder):
    """깊이 우선 성장 (리프 수 제한 없음)"""

    def build(self, X):
        n_samples, n_features = X.shape
        self._reset(n_features)

        stack = [self._new_candidate(np.arange(n_samples), depth=0)]
        while stack:
            candidate = stack.pop()
            split = self._find_split(X, candidate)

            if split is None:
                self._add_leaf(candidate)
                continue

            left, right = self._add_split(X, candidate, split)
            stack.append(right)
            stack.append(left)

        return self._finish(n_features)


class BestFirstTreeBuilder(TreeBuilder):
    """최선 우선 성장 (max_leaf_nodes 제한)"""

    def build(self, X):
        n_samples, n_features = X.shape
        self._reset(n_features)
        max_leaf_nodes = self.config.max_leaf_nodes

        heap: List[Tuple[float, int, _Candidate]] = []

        def push(candidate: _Candidate) -> None:
            candidate.split = self._find_split(X, candidate)
            if candidate.split is None:
                self._add_leaf(candidate)
            else:
                weighted_gain = candidate.split.gain * len(candidate.indices)
                heapq.heappush(heap, (-weighted_gain, candidate.node_id, candidate))

        push(self._new_candidate(np.arange(n_samples), depth=0))
        n_leaves = 1

        while heap and n_leaves < max_leaf_nodes:
            _, _, candidate = heapq.heappop(heap)
            left, right = self._add_split(X, candidate, candidate.split)
            n_leaves += 1
            push(left)
            push(right)

        # 리프 수 한도에 도달: 남은 후보는 리프로 확정
        while heap:
            _, _, candidate = heapq.heappop(heap)
            self._add_leaf(candidate)

        return self._finish(n_features)


def make_tree_builder(
    splitter: Splitter,
    criterion: Criterion,
    config: TreeConfig
) -> TreeBuilder:
    if config.max_leaf_nodes is None:
        return DepthFirstTreeBuilder(splitter, criterion, config)
    return BestFirstTreeBuilder(splitter, criterion, config)


def build_tree(
    X: np.ndarray,
    criterion: Criterion,
    strategy: SplitStrategy,
    config: TreeConfig
) -> Tuple[Tree, np.random.Generator]:
    """
    트리 하나를 학습

    Parameters
    ----------
    X : ndarray of shape (n_samples, n_features)
        학습 데이터 (타겟은 criterion이 소유)
    criterion : Criterion
        분할 기준
    strategy : SplitStrategy
        분할 탐색 방식
    config : TreeConfig
        성장 설정

    Returns
    -------
    tree : Tree
        학습된 트리
    rng : np.random.Generator
        학습에 사용된 트리 전용 RNG (스냅샷용)
    """
    rng = np.random.default_rng(config.random_seed)
    max_features = config.max_features or X.shape[1]

    splitter = make_splitter(strategy, criterion, max_features, config.min_samples_leaf, rng)
    tree = make_tree_builder(splitter, criterion, config).build(X)

    return tree, rng
