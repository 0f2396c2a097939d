"""
Decision Tree / Extra Tree 테스트
=================================

테스트 항목:
1. 분할 임계값과 리프 값의 정확성
2. 성장 제한 (max_depth, max_leaf_nodes, min_samples_leaf)
3. apply()의 리프 번호와 피처 중요도 불변식
4. 스냅샷/복원

Author: Trees From Scratch Project
"""

import numpy as np
import pytest

from trees_from_scratch import (
    DecisionTreeClassifier,
    DecisionTreeRegressor,
    ExtraTreeClassifier,
    ExtraTreeRegressor,
    ValidationError,
)
from trees_from_scratch.node import Node


def _leaves(tree):
    return [node for node in tree.tree_.nodes if node.is_leaf]


def test_stump_threshold_and_leaf_values():
    """x=[0,1,2,3], y=[0,0,10,10] → 임계값 1.5, 리프 0과 10"""
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0.0, 0.0, 10.0, 10.0])

    tree = DecisionTreeRegressor(max_depth=1, random_seed=0).fit(X, y)

    root = tree.tree_.root
    assert not root.is_leaf
    assert root.feature_index == 0
    assert root.threshold == pytest.approx(1.5)
    assert tree.get_n_leaves() == 2
    assert tree.get_depth() == 1
    np.testing.assert_allclose(tree.predict(X), y)
    np.testing.assert_allclose(np.sort(tree.leaf_values_[:, 0]), [0.0, 10.0])


def test_constant_target_gives_single_leaf():
    """모든 타겟이 같으면 루트가 곧 리프"""
    X = np.array([[1.0], [2.0], [3.0], [4.0], [5.0]])
    y = np.full(5, 5.0)

    tree = DecisionTreeRegressor(max_depth=10).fit(X, y)

    assert tree.get_depth() == 0
    assert tree.get_n_leaves() == 1
    np.testing.assert_allclose(tree.predict(X), 5.0)
    np.testing.assert_array_equal(tree.feature_importances_, np.zeros(1))


def test_separable_data_scores_one(two_clusters):
    X, y = two_clusters
    for tree_class in (DecisionTreeClassifier, ExtraTreeClassifier):
        tree = tree_class(random_seed=1).fit(X, y)
        assert tree.score(X, y) == 1.0


def test_entropy_criterion(three_clusters):
    X, y = three_clusters
    tree = DecisionTreeClassifier(criterion='entropy', random_seed=2).fit(X, y)
    assert tree.score(X, y) == 1.0


def test_classes_keep_original_labels(three_clusters):
    X, y = three_clusters
    tree = DecisionTreeClassifier(max_depth=3, random_seed=0).fit(X, y)

    np.testing.assert_array_equal(tree.classes_, [3, 7, 10])
    assert set(tree.predict(X)) <= {3, 7, 10}

    proba = tree.predict_proba(X)
    assert proba.shape == (len(X), 3)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)


@pytest.mark.parametrize('tree_class, params', [
    (DecisionTreeClassifier, {}),
    (DecisionTreeClassifier, {'max_leaf_nodes': 4}),
    (ExtraTreeClassifier, {'max_features': 'sqrt'}),
    (ExtraTreeClassifier, {'max_leaf_nodes': 3}),
])
def test_apply_returns_dense_leaf_ids(noisy_labels, tree_class, params):
    """apply()의 값은 정확히 0..n_leaves-1"""
    X, y = noisy_labels
    tree = tree_class(random_seed=3, **params).fit(X, y)

    leaf_ids = tree.apply(X)
    assert leaf_ids.shape == (len(X),)
    assert sorted(set(leaf_ids.tolist())) == list(range(tree.get_n_leaves()))
    assert sorted(leaf.leaf_id for leaf in _leaves(tree)) == list(range(tree.get_n_leaves()))


@pytest.mark.parametrize('tree_class', [DecisionTreeRegressor, ExtraTreeRegressor])
def test_feature_importances_normalized(regression_data, tree_class):
    X, y = regression_data
    tree = tree_class(max_depth=5, random_seed=4).fit(X, y)

    importances = tree.feature_importances_
    assert importances.shape == (X.shape[1],)
    assert np.all(importances >= 0)
    assert importances.sum() == pytest.approx(1.0)


def test_informative_feature_dominates(regression_data):
    X, y = regression_data
    tree = DecisionTreeRegressor(max_depth=4, random_seed=0).fit(X, y)
    assert np.argmax(tree.feature_importances_) == 0


def test_max_leaf_nodes_two_gives_two_leaves(regression_data):
    X, y = regression_data
    tree = DecisionTreeRegressor(max_leaf_nodes=2, random_seed=0).fit(X, y)
    assert tree.get_n_leaves() == 2
    assert len(np.unique(tree.apply(X))) == 2


def test_max_leaf_nodes_reached_exactly(regression_data):
    """분할 여지가 충분하면 정확히 max_leaf_nodes개 리프"""
    X, y = regression_data
    tree = DecisionTreeRegressor(max_leaf_nodes=7, random_seed=0).fit(X, y)
    assert tree.get_n_leaves() == 7


def test_best_first_prefers_largest_weighted_gain():
    """리프 2개면 이득이 가장 큰 분할 하나만 수행"""
    X = np.array([[0.0], [1.0], [2.0], [3.0], [4.0], [5.0]])
    y = np.array([0.0, 0.0, 0.0, 100.0, 100.0, 101.0])

    tree = DecisionTreeRegressor(max_leaf_nodes=2, random_seed=0).fit(X, y)
    assert tree.tree_.root.threshold == pytest.approx(2.5)


def test_max_depth_respected(regression_data):
    X, y = regression_data
    for depth in (1, 2, 4):
        tree = DecisionTreeRegressor(max_depth=depth, random_seed=0).fit(X, y)
        assert tree.get_depth() <= depth


def test_min_samples_leaf_respected(regression_data):
    X, y = regression_data
    for tree_class in (DecisionTreeRegressor, ExtraTreeRegressor):
        tree = tree_class(min_samples_leaf=7, random_seed=0).fit(X, y)
        assert all(leaf.n_samples >= 7 for leaf in _leaves(tree))


def test_extra_tree_thresholds_inside_node_range(regression_data):
    X, y = regression_data
    tree = ExtraTreeRegressor(max_depth=6, random_seed=5).fit(X, y)

    for node in tree.tree_.nodes:
        if node.is_leaf:
            continue
        column = X[:, node.feature_index]
        assert column.min() < node.threshold <= column.max()


def test_multi_output_regression():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(80, 3))
    Y = np.column_stack([X[:, 0] > 0, X[:, 1] * 3.0]).astype(float)

    tree = DecisionTreeRegressor(random_seed=0).fit(X, Y)

    assert tree.n_outputs_ == 2
    assert tree.predict(X).shape == (80, 2)
    np.testing.assert_allclose(tree.predict(X), Y)


def test_mae_criterion(regression_data):
    X, y = regression_data
    tree = DecisionTreeRegressor(criterion='mae', max_depth=4, random_seed=0).fit(X, y)

    assert tree.predict(X).shape == y.shape
    assert tree.score(X, y) > 0.5


def test_same_seed_same_tree(noisy_labels):
    X, y = noisy_labels
    first = ExtraTreeClassifier(random_seed=11).fit(X, y)
    second = ExtraTreeClassifier(random_seed=11).fit(X, y)

    assert first.export_tree_structure() == second.export_tree_structure()
    np.testing.assert_array_equal(first.predict(X), first.predict(X))


def test_export_tree_structure_keys():
    X = np.array([[0.0], [1.0], [2.0], [3.0]])
    y = np.array([0, 0, 1, 1])
    structure = DecisionTreeClassifier(random_seed=0).fit(X, y).export_tree_structure()

    assert structure['node_id'] == 0
    assert not structure['is_leaf']
    assert structure['feature_idx'] == 0
    assert structure['threshold'] == pytest.approx(1.5)
    assert structure['left']['is_leaf']
    assert structure['left']['value'] == [1.0, 0.0]
    assert structure['right']['value'] == [0.0, 1.0]


def test_wrong_feature_count_rejected(two_clusters):
    X, y = two_clusters
    tree = DecisionTreeClassifier(random_seed=0).fit(X, y)
    with pytest.raises(ValidationError):
        tree.predict(np.zeros((3, 5)))


@pytest.mark.parametrize('tree_class, X_y', [
    (DecisionTreeClassifier, 'three_clusters'),
    (ExtraTreeClassifier, 'three_clusters'),
    (DecisionTreeRegressor, 'regression_data'),
    (ExtraTreeRegressor, 'regression_data'),
])
def test_snapshot_restore_reproduces_predictions(request, tree_class, X_y):
    X, y = request.getfixturevalue(X_y)
    tree = tree_class(max_depth=4, random_seed=9).fit(X, y)
    snapshot = tree.snapshot()

    restored = tree_class().restore(snapshot)

    assert restored.get_params() == tree.get_params()
    np.testing.assert_array_equal(restored.predict(X), tree.predict(X))
    np.testing.assert_array_equal(restored.apply(X), tree.apply(X))
    np.testing.assert_allclose(restored.feature_importances_, tree.feature_importances_)
    if hasattr(tree, 'predict_proba'):
        np.testing.assert_allclose(restored.predict_proba(X), tree.predict_proba(X))


def test_snapshot_is_independent_of_model(regression_data):
    X, y = regression_data
    tree = DecisionTreeRegressor(max_depth=3, random_seed=0).fit(X, y)
    before = tree.predict(X)

    snapshot = tree.snapshot()
    snapshot['state']['tree']['nodes'][0]['threshold'] = 1e9

    np.testing.assert_array_equal(tree.predict(X), before)


def test_restore_into_other_class_rejected(regression_data):
    X, y = regression_data
    snapshot = DecisionTreeRegressor(max_depth=2, random_seed=0).fit(X, y).snapshot()
    with pytest.raises(ValidationError):
        ExtraTreeRegressor().restore(snapshot)


def test_leaf_node_with_children_rejected():
    with pytest.raises(ValueError):
        Node(node_id=0, depth=0, n_samples=1, impurity=0.0, is_leaf=True,
             left=1, right=2, leaf_id=0, value=np.zeros(1))
