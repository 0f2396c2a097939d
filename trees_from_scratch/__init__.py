"""
Trees From Scratch - 트리 앙상블과 부스팅 직접 구현
===================================================

결정 트리 유도, 배깅 포레스트, 부스팅을 공통 트리 성장 코어 위에
NumPy로 직접 구현합니다. scikit-learn 스타일의 추정기 API를 따릅니다.

구현된 알고리즘:
- DecisionTreeClassifier / DecisionTreeRegressor: CART 기반 결정 트리
- ExtraTreeClassifier / ExtraTreeRegressor: 극단적 무작위 분할 트리
- GradientTreeRegressor: 그래디언트/헤시안 기반 Newton 트리
- RandomForestClassifier / RandomForestRegressor: 배깅 기반 앙상블
- ExtraTreesClassifier / ExtraTreesRegressor: 극단적 무작위 트리 앙상블
- AdaBoostClassifier (SAMME.R) / AdaBoostRegressor (R2): 가중치 기반 부스팅
- GradientBoostingClassifier / GradientBoostingRegressor: 그래디언트 부스팅

Author: Trees From Scratch Project
"""

from .exceptions import (
    NotFittedError,
    NumericalDegeneracyError,
    TreesFromScratchError,
    ValidationError,
)
from .decision_tree import (
    DecisionTreeClassifier,
    DecisionTreeRegressor,
    ExtraTreeClassifier,
    ExtraTreeRegressor,
)
from .gradient_tree import GradientTreeRegressor
from .random_forest import (
    ExtraTreesClassifier,
    ExtraTreesRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from .adaboost import AdaBoostClassifier, AdaBoostRegressor
from .gradient_boosting import GradientBoostingClassifier, GradientBoostingRegressor
from .visualizer import MLVisualizer

__all__ = [
    'DecisionTreeClassifier',
    'DecisionTreeRegressor',
    'ExtraTreeClassifier',
    'ExtraTreeRegressor',
    'GradientTreeRegressor',
    'RandomForestClassifier',
    'RandomForestRegressor',
    'ExtraTreesClassifier',
    'ExtraTreesRegressor',
    'AdaBoostClassifier',
    'AdaBoostRegressor',
    'GradientBoostingClassifier',
    'GradientBoostingRegressor',
    'MLVisualizer',
    'TreesFromScratchError',
    'ValidationError',
    'NotFittedError',
    'NumericalDegeneracyError',
]

__version__ = '1.0.0'
