"""
Random Forest / Extra Trees 테스트
==================================

테스트 항목:
1. 확률/다수결 예측의 불변식
2. 시드 재현성과 병렬 실행 일관성
3. 부트스트랩에서 빠진 클래스 처리
4. 스냅샷/복원

Author: Trees From Scratch Project
"""

import numpy as np
import pytest

from trees_from_scratch import (
    ExtraTreeClassifier,
    ExtraTreesClassifier,
    ExtraTreesRegressor,
    RandomForestClassifier,
    RandomForestRegressor,
)
from trees_from_scratch.decision_tree import DecisionTreeClassifier
from trees_from_scratch.random_forest import plurality_vote


def test_plurality_vote_majority_and_ties():
    votes = np.array([
        [2, 1, 1],      # 과반: 1
        [1, 0, 0],      # 과반: 0
        [1, 0, 2],      # 전부 동률: 먼저 나온 1
    ])
    np.testing.assert_array_equal(plurality_vote(votes, 3), [1, 0, 1])

    tie = np.array([[1, 0, 0, 1]])
    assert plurality_vote(tie, 2)[0] == 1


@pytest.mark.parametrize('forest_class', [RandomForestClassifier, ExtraTreesClassifier])
def test_predict_proba_rows_sum_to_one(three_clusters, forest_class):
    X, y = three_clusters
    forest = forest_class(n_estimators=8, random_seed=0).fit(X, y)

    proba = forest.predict_proba(X)
    assert proba.shape == (len(X), 3)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)
    assert forest.score(X, y) >= 0.95


def test_separable_data_scores_one(two_clusters):
    X, y = two_clusters
    forest = RandomForestClassifier(n_estimators=10, random_seed=3).fit(X, y)
    assert forest.score(X, y) == 1.0


def test_same_seed_is_deterministic(noisy_labels):
    X, y = noisy_labels
    first = RandomForestClassifier(n_estimators=10, random_seed=1).fit(X, y)
    second = RandomForestClassifier(n_estimators=10, random_seed=1).fit(X, y)

    np.testing.assert_array_equal(first.predict_proba(X), second.predict_proba(X))
    np.testing.assert_array_equal(first.apply(X), second.apply(X))
    np.testing.assert_array_equal(first.predict(X), first.predict(X))


def test_parallel_matches_sequential(noisy_labels):
    X, y = noisy_labels
    sequential = RandomForestClassifier(n_estimators=6, random_seed=4).fit(X, y)
    parallel = RandomForestClassifier(n_estimators=6, random_seed=4, n_jobs=2).fit(X, y)

    np.testing.assert_array_equal(sequential.apply(X), parallel.apply(X))
    np.testing.assert_array_equal(sequential.predict_proba(X), parallel.predict_proba(X))


def test_trees_get_distinct_seeds(noisy_labels):
    X, y = noisy_labels
    forest = RandomForestClassifier(n_estimators=10, random_seed=2).fit(X, y)
    seeds = [tree.random_seed for tree in forest.estimators_]
    assert len(set(seeds)) == len(seeds)


def test_apply_shape_and_leaf_ranges(noisy_labels):
    X, y = noisy_labels
    forest = ExtraTreesClassifier(n_estimators=5, max_leaf_nodes=6, random_seed=0).fit(X, y)

    leaf_ids = forest.apply(X)
    assert leaf_ids.shape == (len(X), 5)
    for column, tree in zip(leaf_ids.T, forest.estimators_):
        assert column.min() >= 0
        assert column.max() < tree.get_n_leaves() <= 6


def test_extra_trees_use_full_data_and_random_splits(noisy_labels):
    X, y = noisy_labels
    forest = ExtraTreesClassifier(n_estimators=4, random_seed=0).fit(X, y)

    for tree in forest.estimators_:
        assert isinstance(tree, ExtraTreeClassifier)
        assert tree.tree_.root.n_samples == len(X)
    assert all(isinstance(tree, DecisionTreeClassifier)
               for tree in RandomForestClassifier(n_estimators=2, random_seed=0).fit(X, y).estimators_)


def test_missing_bootstrap_class_aligned():
    """한 샘플뿐인 클래스가 부트스트랩에서 빠져도 열 순서가 유지됨"""
    rng = np.random.default_rng(0)
    X = rng.normal(size=(31, 2))
    y = np.array([0] * 15 + [1] * 15 + [2])

    forest = RandomForestClassifier(n_estimators=30, random_seed=5).fit(X, y)
    assert any(len(tree.classes_) < 3 for tree in forest.estimators_)

    proba = forest.predict_proba(X)
    assert proba.shape == (31, 3)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)
    assert set(forest.predict(X)) <= {0, 1, 2}


def test_feature_importances_normalized(regression_data):
    X, y = regression_data
    forest = RandomForestRegressor(n_estimators=10, random_seed=0).fit(X, y)

    importances = forest.feature_importances_
    assert np.all(importances >= 0)
    assert importances.sum() == pytest.approx(1.0)
    assert np.argmax(importances) == 0


@pytest.mark.parametrize('forest_class', [RandomForestRegressor, ExtraTreesRegressor])
def test_regressor_averages_trees(regression_data, forest_class):
    X, y = regression_data
    forest = forest_class(n_estimators=10, max_features=1.0, random_seed=0).fit(X, y)

    tree_mean = np.mean([tree.predict(X) for tree in forest.estimators_], axis=0)
    np.testing.assert_allclose(forest.predict(X), tree_mean)
    assert forest.score(X, y) > 0.8


def test_staged_predict_converges_to_predict(regression_data):
    X, y = regression_data
    forest = RandomForestRegressor(n_estimators=6, random_seed=0).fit(X, y)

    staged = forest.staged_predict(X)
    assert staged.shape == (6, len(X))
    np.testing.assert_allclose(staged[0], forest.estimators_[0].predict(X))
    np.testing.assert_allclose(staged[-1], forest.predict(X))


def test_multi_output_regressor():
    rng = np.random.default_rng(3)
    X = rng.normal(size=(60, 4))
    Y = np.column_stack([X[:, 0], -X[:, 1]])

    forest = ExtraTreesRegressor(n_estimators=5, random_seed=0).fit(X, Y)
    assert forest.predict(X).shape == (60, 2)
    assert forest.staged_predict(X).shape == (5, 60, 2)


def test_verbose_logs_progress(noisy_labels, caplog):
    X, y = noisy_labels
    with caplog.at_level('INFO', logger='trees_from_scratch.random_forest'):
        RandomForestClassifier(n_estimators=4, random_seed=0, verbose=1).fit(X, y)
    assert any('4/4' in record.getMessage() for record in caplog.records)


@pytest.mark.parametrize('forest_class', [RandomForestRegressor, ExtraTreesRegressor])
def test_unset_max_features_uses_sqrt(regression_data, forest_class):
    """max_features=None은 기본값과 같은 'sqrt'로 처리"""
    X, y = regression_data
    unset = forest_class(n_estimators=3, max_features=None, random_seed=2).fit(X, y)
    default = forest_class(n_estimators=3, random_seed=2).fit(X, y)

    assert all(tree.max_features == 'sqrt' for tree in unset.estimators_)
    np.testing.assert_array_equal(unset.predict(X), default.predict(X))


@pytest.mark.parametrize('forest_class, X_y', [
    (RandomForestClassifier, 'three_clusters'),
    (ExtraTreesClassifier, 'three_clusters'),
    (RandomForestRegressor, 'regression_data'),
    (ExtraTreesRegressor, 'regression_data'),
])
def test_snapshot_restore(request, forest_class, X_y):
    X, y = request.getfixturevalue(X_y)
    forest = forest_class(n_estimators=5, random_seed=8).fit(X, y)

    restored = forest_class().restore(forest.snapshot())

    assert restored.get_params() == forest.get_params()
    np.testing.assert_array_equal(restored.predict(X), forest.predict(X))
    np.testing.assert_array_equal(restored.apply(X), forest.apply(X))
    np.testing.assert_allclose(restored.feature_importances_, forest.feature_importances_)
    if hasattr(forest, 'predict_proba'):
        np.testing.assert_array_equal(restored.classes_, forest.classes_)
        np.testing.assert_allclose(restored.predict_proba(X), forest.predict_proba(X))
