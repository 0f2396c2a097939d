"""
트리 노드와 노드 배열(arena)
============================

트리는 정수 id로 인덱싱되는 노드 리스트로 표현한다.
자식은 포인터 대신 노드 id로 참조하며, 리프의 자식은 TREE_LEAF(-1)이다.
루트는 항상 id 0.

리프에는 0..n_leaves-1의 연속된 leaf_id가 리프가 확정된 순서대로 부여된다.
apply()는 각 샘플이 도달한 리프의 leaf_id를 반환한다.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

TREE_LEAF = -1


@dataclass(frozen=True, eq=False)
class Node:
    """결정 트리의 노드 (학습 후 변경 불가)"""

    node_id: int
    depth: int
    n_samples: int
    impurity: float
    is_leaf: bool

    # 분할 정보 (내부 노드용)
    feature_index: int = TREE_LEAF
    threshold: float = float('nan')
    left: int = TREE_LEAF                 # 값 < threshold
    right: int = TREE_LEAF                # 값 >= threshold

    # 리프 노드 정보
    leaf_id: int = TREE_LEAF
    value: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.is_leaf:
            if self.left != TREE_LEAF or self.right != TREE_LEAF:
                raise ValueError(f"리프 노드 {self.node_id}에 자식이 있습니다")
            if self.leaf_id < 0 or self.value is None:
                raise ValueError(f"리프 노드 {self.node_id}에 leaf_id/value가 없습니다")
        else:
            if self.left < 0 or self.right < 0:
                raise ValueError(f"내부 노드 {self.node_id}의 자식이 없습니다")
            if self.feature_index < 0 or np.isnan(self.threshold):
                raise ValueError(f"내부 노드 {self.node_id}의 분할 정보가 없습니다")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'node_id': self.node_id,
            'depth': self.depth,
            'n_samples': self.n_samples,
            'impurity': self.impurity,
            'is_leaf': self.is_leaf,
            'feature_index': self.feature_index,
            'threshold': self.threshold,
            'left': self.left,
            'right': self.right,
            'leaf_id': self.leaf_id,
            'value': None if self.value is None else self.value.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Node':
        data = dict(data)
        if data['value'] is not None:
            data['value'] = np.asarray(data['value'], dtype=np.float64)
        return cls(**data)


class Tree:
    """
    학습된 트리 구조

    Attributes
    ----------
    nodes : list of Node
        node_id 순서의 노드 배열 (nodes[0]이 루트)
    n_features : int
        학습 데이터의 피처 수
    feature_importances : ndarray of shape (n_features,)
        정규화된 불순도 감소 기반 피처 중요도 (리프가 하나뿐이면 모두 0)
    """

    def __init__(
        self,
        nodes: List[Node],
        n_features: int,
        feature_importances: np.ndarray
    ):
        self.nodes = nodes
        self.n_features = n_features
        self.feature_importances = feature_importances

        leaves = sorted((node for node in nodes if node.is_leaf), key=lambda n: n.leaf_id)
        self.leaf_values = np.vstack([leaf.value for leaf in leaves])

        # apply()용 평탄화 배열
        self._feature = np.array([n.feature_index for n in nodes], dtype=np.intp)
        self._threshold = np.array([n.threshold for n in nodes], dtype=np.float64)
        self._left = np.array([n.left for n in nodes], dtype=np.intp)
        self._right = np.array([n.right for n in nodes], dtype=np.intp)
        self._leaf_id = np.array([n.leaf_id for n in nodes], dtype=np.intp)
        self._is_leaf = np.array([n.is_leaf for n in nodes], dtype=bool)

    @property
    def root(self) -> Node:
        return self.nodes[0]

    @property
    def n_nodes(self) -> int:
        return len(self.nodes)

    @property
    def n_leaves(self) -> int:
        return self.leaf_values.shape[0]

    @property
    def max_depth(self) -> int:
        return max(node.depth for node in self.nodes)

    def left_child(self, node: Node) -> Optional[Node]:
        return None if node.is_leaf else self.nodes[node.left]

    def right_child(self, node: Node) -> Optional[Node]:
        return None if node.is_leaf else self.nodes[node.right]

    def apply(self, X: np.ndarray) -> np.ndarray:
        """각 샘플이 도달한 리프의 leaf_id"""
        node_ids = np.zeros(X.shape[0], dtype=np.intp)
        rows = np.arange(X.shape[0])

        while True:
            active = ~self._is_leaf[node_ids]
            if not np.any(active):
                break
            current = node_ids[active]
            go_left = X[rows[active], self._feature[current]] < self._threshold[current]
            node_ids[active] = np.where(go_left, self._left[current], self._right[current])

        return self._leaf_id[node_ids]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.to_dict() for node in self.nodes],
            'n_features': self.n_features,
            'feature_importances': self.feature_importances.tolist(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Tree':
        return cls(
            nodes=[Node.from_dict(d) for d in data['nodes']],
            n_features=data['n_features'],
            feature_importances=np.asarray(data['feature_importances'], dtype=np.float64),
        )

    def __repr__(self) -> str:
        return f"Tree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves}, max_depth={self.max_depth})"
