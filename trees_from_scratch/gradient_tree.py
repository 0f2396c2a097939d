"""
Gradient Tree Regressor - Newton 부스팅용 회귀 트리
====================================================

타겟 대신 샘플별 그래디언트 g와 헤시안 h를 받아 트리를 학습한다.
XGBoost와 같은 2차 근사 목적 함수를 사용한다.

수학적 배경:
-----------
노드 통계:
    G = Σ g_i,  H = Σ h_i

분할 이득:
    Gain = G_L²/(H_L+λ) + G_R²/(H_R+λ) - G²/(H+λ)
    (분모가 0이면 해당 항은 0)

최적 리프 가중치:
    w* = -G / (H+λ) * shrinkage_rate

Author: Trees From Scratch Project
"""

import numbers
from typing import Any, Optional

import numpy as np

from .criterion import NewtonCriterion
from .decision_tree import BaseDecisionTree
from .splitter import SplitStrategy
from .validation import (
    check_and_coerce_samples,
    check_and_coerce_targets,
    check_params_non_negative,
    check_params_positive,
    check_params_type,
    check_same_sample_count,
)


class GradientTreeRegressor(BaseDecisionTree):
    """
    그래디언트/헤시안 기반 회귀 트리

    Parameters
    ----------
    reg_lambda : float, default=0.0
        리프 가중치 L2 정규화 계수 (λ)

    shrinkage_rate : float, default=1.0
        리프 출력에 곱하는 축소 계수 (부스팅의 learning_rate)

    max_depth, max_leaf_nodes, min_samples_leaf, max_features, random_seed
        BaseDecisionTree 참고

    Notes
    -----
    불순도 기준 트리와 달리 '순수 노드'에서 성장을 멈추지 않는다.
    """

    _split_strategy = SplitStrategy.STANDARD
    _param_names = ('reg_lambda', 'shrinkage_rate') + BaseDecisionTree._param_names

    def __init__(
        self,
        reg_lambda: float = 0.0,
        shrinkage_rate: float = 1.0,
        max_depth: Optional[int] = None,
        max_leaf_nodes: Optional[int] = None,
        min_samples_leaf: int = 1,
        max_features: Optional[Any] = None,
        random_seed: Optional[int] = None
    ):
        self.reg_lambda = reg_lambda
        self.shrinkage_rate = shrinkage_rate
        super().__init__(
            max_depth=max_depth,
            max_leaf_nodes=max_leaf_nodes,
            min_samples_leaf=min_samples_leaf,
            max_features=max_features,
            random_seed=random_seed
        )

    def _validate_params(self) -> None:
        check_params_type(numbers.Real, reg_lambda=self.reg_lambda,
                          shrinkage_rate=self.shrinkage_rate)
        check_params_non_negative(reg_lambda=self.reg_lambda)
        check_params_positive(shrinkage_rate=self.shrinkage_rate)
        super()._validate_params()

    def fit(
        self,
        X: Any,
        y: Any,
        gradient: Any,
        hessian: Any
    ) -> 'GradientTreeRegressor':
        """
        그래디언트 트리 학습

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            학습 데이터
        y : array-like of shape (n_samples,)
            원래 타겟 (샘플 수 검증에만 사용)
        gradient : array-like of shape (n_samples,)
            손실의 1차 미분
        hessian : array-like of shape (n_samples,)
            손실의 2차 미분

        Returns
        -------
        self : GradientTreeRegressor
            학습된 모델

        Raises
        ------
        NumericalDegeneracyError
            리프의 H+λ가 0인데 G가 0이 아닌 경우
        """
        X = check_and_coerce_samples(X)
        y = check_and_coerce_targets(y)
        gradient = check_and_coerce_targets(gradient).ravel()
        hessian = check_and_coerce_targets(hessian).ravel()
        check_same_sample_count(X, y)
        check_same_sample_count(X, gradient)
        check_same_sample_count(X, hessian)

        criterion = NewtonCriterion(
            gradient=gradient,
            hessian=hessian,
            reg_lambda=float(self.reg_lambda),
            shrinkage_rate=float(self.shrinkage_rate)
        )
        self._grow(X, criterion)

        return self

    def predict(self, X: Any) -> np.ndarray:
        """
        리프 가중치로 예측

        Returns
        -------
        y_pred : ndarray of shape (n_samples,)
        """
        return self.leaf_values_[self.apply(X), 0]
