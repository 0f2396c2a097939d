"""
분할 기준 (Criterion)
=====================

노드 불순도와 분할 이득을 계산한다. Criterion 객체는 학습 타겟을 소유하며,
트리 빌더와 스플리터는 샘플 인덱스만 주고받는다.

수학적 배경:
-----------
분류:
    Gini     = 1 - Σ p_c²
    Entropy  = -Σ p_c log p_c        (0 log 0 = 0)

회귀 (출력 차원별 값을 합산):
    MSE = (1/n) Σ (y_i - ȳ)²         (= 분산)
    MAE = (1/n) Σ |y_i - ȳ|          (노드 평균으로부터의 평균 절대 편차)

정보 이득:
    Gain = I_parent - (n_left/n * I_left + n_right/n * I_right)

그래디언트 트리 (Newton 부스팅):
    Gain = G_L²/(H_L+λ) + G_R²/(H_R+λ) - G²/(H+λ)
    w*   = -G / (H+λ) * shrinkage_rate

Author: Trees From Scratch Project
"""

from typing import Dict, Type

import numpy as np

from .exceptions import NumericalDegeneracyError

# 부동소수점 오차로 생기는 의미 없는 이득을 무시하기 위한 상대 허용 오차
GAIN_RTOL = 1e-10


class Criterion:
    """분할 기준의 기본 클래스"""

    # True면 불순도 0인 노드를 더 이상 분할하지 않음
    stops_on_purity = True

    def node_impurity(self, indices: np.ndarray) -> float:
        raise NotImplementedError

    def node_value(self, indices: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def is_pure(self, indices: np.ndarray) -> bool:
        raise NotImplementedError

    def children_impurity(self, indices: np.ndarray) -> float:
        return self.node_impurity(indices)

    def split_gains(
        self,
        sorted_indices: np.ndarray,
        n_left: np.ndarray,
        parent_impurity: float
    ) -> np.ndarray:
        """
        정렬된 샘플을 앞의 n_left개 / 나머지로 나눴을 때의 이득

        기본 구현은 후보마다 불순도를 다시 계산한다.
        누적합으로 벡터화할 수 있는 기준은 이 메서드를 재정의한다.
        """
        return np.array([
            self.split_gain(sorted_indices[:k], sorted_indices[k:], parent_impurity)
            for k in n_left
        ])

    def split_gain(
        self,
        left_indices: np.ndarray,
        right_indices: np.ndarray,
        parent_impurity: float
    ) -> float:
        n_left = len(left_indices)
        n_right = len(right_indices)
        n = n_left + n_right
        child = (
            n_left * self.children_impurity(left_indices) +
            n_right * self.children_impurity(right_indices)
        ) / n
        return parent_impurity - child

    def min_gain(self, parent_impurity: float) -> float:
        """분할로 인정할 최소 이득"""
        return GAIN_RTOL * abs(parent_impurity)


class ClassificationCriterion(Criterion):
    """
    분류 기준의 공통 부분

    Parameters
    ----------
    y : ndarray of shape (n_samples,)
        0..n_classes-1로 인코딩된 클래스 인덱스
    n_classes : int
        클래스 수
    """

    def __init__(self, y: np.ndarray, n_classes: int):
        self.y = y
        self.n_classes = n_classes

    def _impurity_from_proba(self, proba: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def _counts(self, indices: np.ndarray) -> np.ndarray:
        return np.bincount(self.y[indices], minlength=self.n_classes).astype(np.float64)

    def node_impurity(self, indices: np.ndarray) -> float:
        counts = self._counts(indices)
        return float(self._impurity_from_proba(counts / counts.sum()))

    def node_value(self, indices: np.ndarray) -> np.ndarray:
        """리프의 클래스 빈도 (정규화)"""
        counts = self._counts(indices)
        return counts / counts.sum()

    def is_pure(self, indices: np.ndarray) -> bool:
        return np.count_nonzero(self._counts(indices)) <= 1

    def split_gains(self, sorted_indices, n_left, parent_impurity):
        n = len(sorted_indices)
        one_hot = (self.y[sorted_indices][:, None] == np.arange(self.n_classes)).astype(np.float64)
        cumulative = np.cumsum(one_hot, axis=0)

        left_counts = cumulative[n_left - 1]
        right_counts = cumulative[-1] - left_counts
        n_right = n - n_left

        left_impurity = self._impurity_from_proba(left_counts / n_left[:, None])
        right_impurity = self._impurity_from_proba(right_counts / n_right[:, None])

        return parent_impurity - (n_left * left_impurity + n_right * right_impurity) / n


class Gini(ClassificationCriterion):
    """Gini = 1 - Σ p_c²"""

    def _impurity_from_proba(self, proba):
        return 1.0 - np.sum(proba ** 2, axis=-1)


class Entropy(ClassificationCriterion):
    """Entropy = -Σ p_c log p_c"""

    def _impurity_from_proba(self, proba):
        log_proba = np.log(proba, out=np.zeros_like(proba), where=proba > 0)
        return -np.sum(proba * log_proba, axis=-1)


class RegressionCriterion(Criterion):
    """
    회귀 기준의 공통 부분

    Parameters
    ----------
    y : ndarray of shape (n_samples, n_outputs)
        타겟 값 (단일 출력도 2차원으로 전달)
    """

    def __init__(self, y: np.ndarray):
        self.y = y

    def node_value(self, indices: np.ndarray) -> np.ndarray:
        """리프의 평균 타겟 벡터"""
        return self.y[indices].mean(axis=0)

    def is_pure(self, indices: np.ndarray) -> bool:
        return bool(np.all(np.ptp(self.y[indices], axis=0) == 0))


class MSE(RegressionCriterion):
    """출력별 분산의 합"""

    def node_impurity(self, indices):
        return float(np.var(self.y[indices], axis=0).sum())

    def split_gains(self, sorted_indices, n_left, parent_impurity):
        n = len(sorted_indices)
        y = self.y[sorted_indices]
        # 노드 평균을 빼서 누적합의 소거 오차를 줄임
        y = y - y.mean(axis=0)

        cum_sum = np.cumsum(y, axis=0)
        cum_sq = np.cumsum(y ** 2, axis=0)
        n_right = n - n_left

        left_sum = cum_sum[n_left - 1]
        left_sq = cum_sq[n_left - 1]
        right_sum = cum_sum[-1] - left_sum
        right_sq = cum_sq[-1] - left_sq

        # n * Var = Σy² - (Σy)²/n
        left_sse = np.clip(left_sq - left_sum ** 2 / n_left[:, None], 0.0, None).sum(axis=1)
        right_sse = np.clip(right_sq - right_sum ** 2 / n_right[:, None], 0.0, None).sum(axis=1)

        return parent_impurity - (left_sse + right_sse) / n


class MAE(RegressionCriterion):
    """노드 평균으로부터의 평균 절대 편차 (출력별 합)"""

    def node_impurity(self, indices):
        y = self.y[indices]
        return float(np.abs(y - y.mean(axis=0)).mean(axis=0).sum())


class NewtonCriterion(Criterion):
    """
    그래디언트/헤시안 기반 분할 기준 (그래디언트 부스팅용)

    노드의 '불순도'로 Newton 목적 함수 값 -G²/(H+λ)를 사용한다.
    이 값은 순도 판정에 쓰지 않는다.

    Parameters
    ----------
    gradient, hessian : ndarray of shape (n_samples,)
        샘플별 1차/2차 미분
    reg_lambda : float
        리프 가중치에 대한 L2 정규화 계수 λ
    shrinkage_rate : float
        리프 출력에 곱하는 축소 계수
    """

    stops_on_purity = False

    def __init__(
        self,
        gradient: np.ndarray,
        hessian: np.ndarray,
        reg_lambda: float,
        shrinkage_rate: float
    ):
        self.gradient = gradient
        self.hessian = hessian
        self.reg_lambda = reg_lambda
        self.shrinkage_rate = shrinkage_rate

    def _score(self, G, H):
        """G²/(H+λ), 분모가 0이면 0"""
        G = np.asarray(G, dtype=np.float64)
        denominator = np.asarray(H, dtype=np.float64) + self.reg_lambda
        return np.divide(
            G ** 2, denominator,
            out=np.zeros(np.broadcast(G, denominator).shape),
            where=denominator > 0
        )

    def node_impurity(self, indices):
        G = self.gradient[indices].sum()
        H = self.hessian[indices].sum()
        return float(-self._score(G, H))

    def node_value(self, indices):
        """w* = -G/(H+λ) * shrinkage_rate"""
        G = self.gradient[indices].sum()
        denominator = self.hessian[indices].sum() + self.reg_lambda
        if denominator <= 0:
            if G == 0:
                return np.zeros(1)
            raise NumericalDegeneracyError(
                f"리프 가중치를 계산할 수 없습니다: H + λ = {denominator}, G = {G}"
            )
        return np.array([-G / denominator * self.shrinkage_rate])

    def is_pure(self, indices):
        return False

    def split_gain(self, left_indices, right_indices, parent_impurity):
        G_left = self.gradient[left_indices].sum()
        H_left = self.hessian[left_indices].sum()
        G_right = self.gradient[right_indices].sum()
        H_right = self.hessian[right_indices].sum()
        return float(self._score(G_left, H_left) + self._score(G_right, H_right) + parent_impurity)

    def split_gains(self, sorted_indices, n_left, parent_impurity):
        cum_G = np.cumsum(self.gradient[sorted_indices])
        cum_H = np.cumsum(self.hessian[sorted_indices])

        G_left = cum_G[n_left - 1]
        H_left = cum_H[n_left - 1]
        G_right = cum_G[-1] - G_left
        H_right = cum_H[-1] - H_left

        # parent_impurity = -G²/(H+λ)
        return self._score(G_left, H_left) + self._score(G_right, H_right) + parent_impurity


CLASSIFICATION_CRITERIA: Dict[str, Type[ClassificationCriterion]] = {
    'gini': Gini,
    'entropy': Entropy,
}

REGRESSION_CRITERIA: Dict[str, Type[RegressionCriterion]] = {
    'mse': MSE,
    'mae': MAE,
}
