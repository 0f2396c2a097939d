"""
테스트 공용 데이터셋
====================

Author: Trees From Scratch Project
"""

import numpy as np
import pytest
from sklearn.datasets import make_blobs


@pytest.fixture
def two_clusters():
    """서로 멀리 떨어진 두 클러스터 (완전 분리 가능)"""
    X, y = make_blobs(n_samples=100, centers=[(-5.0, -5.0), (5.0, 5.0)],
                      cluster_std=1.0, random_state=0)
    return X, y


@pytest.fixture
def three_clusters():
    """세 클러스터, 레이블은 일부러 연속되지 않게 (3, 7, 10)"""
    X, y = make_blobs(n_samples=150, centers=[(-5.0, -5.0), (5.0, 5.0), (5.0, -5.0)],
                      cluster_std=1.0, random_state=1)
    return X, np.array([3, 7, 10])[y]


@pytest.fixture
def regression_data():
    """선형 관계 + 작은 잡음"""
    rng = np.random.default_rng(42)
    X = rng.normal(size=(200, 5))
    y = X[:, 0] * 2 + X[:, 1] + rng.normal(size=200) * 0.1
    return X, y


@pytest.fixture
def noisy_labels():
    """겹치는 두 클래스 (한 번에 완벽히 분류되지 않음)"""
    rng = np.random.default_rng(7)
    X = rng.normal(size=(120, 3))
    y = (X[:, 0] + 0.8 * rng.normal(size=120) > 0).astype(int)
    return X, y
