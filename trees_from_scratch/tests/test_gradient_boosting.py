"""
Gradient Boosting 테스트
========================

테스트 항목:
1. 잔차 학습 (학습 손실 감소, 초기 예측값)
2. 이진/다중 클래스 점수와 확률의 형태
3. 단계별 예측과 최종 예측의 일관성
4. 시리즈 병렬 학습, 스냅샷/복원

Author: Trees From Scratch Project
"""

import numpy as np
import pytest

from trees_from_scratch import (
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    GradientTreeRegressor,
    ValidationError,
)


def test_regressor_residual_learning(regression_data):
    """학습 MSE가 감소하고 잔차 평균이 0 근처"""
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=50, learning_rate=0.1, random_seed=42).fit(X, y)

    curve = gb.loss_curve_
    assert curve.shape == (50,)
    assert curve[-1] < curve[0]
    assert np.all(np.diff(curve) <= 1e-12)
    assert abs(np.mean(y - gb.predict(X))) < 0.1
    assert gb.score(X, y) > 0.9


def test_regressor_init_prediction_is_mean(regression_data):
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=3, random_seed=0).fit(X, y)

    assert gb.init_prediction_ == pytest.approx(y.mean())
    assert len(gb.estimators_) == 3
    assert all(isinstance(tree, GradientTreeRegressor) for tree in gb.estimators_)


def test_single_full_step_interpolates_training_data():
    """learning_rate=1, 깊이 제한 없음이면 한 라운드로 학습 타겟을 그대로 재현"""
    rng = np.random.default_rng(0)
    X = rng.normal(size=(30, 2))
    y = rng.normal(size=30)

    gb = GradientBoostingRegressor(n_estimators=1, learning_rate=1.0, max_depth=None,
                                   random_seed=0).fit(X, y)

    np.testing.assert_allclose(gb.predict(X), y, atol=1e-8)


def test_regressor_staged_predict(regression_data):
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=10, random_seed=0).fit(X, y)

    staged = gb.staged_predict(X)
    assert staged.shape == (10, len(X))
    np.testing.assert_allclose(staged[0], gb.init_prediction_ + gb.estimators_[0].predict(X))
    np.testing.assert_allclose(staged[-1], gb.predict(X))


def test_regressor_multi_output():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(80, 3))
    Y = np.column_stack([X[:, 0] * 2, X[:, 1] - X[:, 2]])

    gb = GradientBoostingRegressor(n_estimators=20, learning_rate=0.3, random_seed=0).fit(X, Y)

    assert gb.predict(X).shape == (80, 2)
    assert gb.staged_predict(X).shape == (20, 80, 2)
    assert gb.apply(X).shape == (80, 20, 2)
    assert len(gb.estimators_) == 2
    np.testing.assert_allclose(gb.init_prediction_, Y.mean(axis=0))


def test_regressor_apply_leaf_ids(regression_data):
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=4, max_leaf_nodes=5, max_depth=None,
                                   random_seed=0).fit(X, y)

    leaf_ids = gb.apply(X)
    assert leaf_ids.shape == (len(X), 4)
    for column, tree in zip(leaf_ids.T, gb.estimators_):
        assert sorted(set(column.tolist())) == list(range(tree.get_n_leaves()))


def test_binary_classifier(two_clusters):
    X, y = two_clusters
    gb = GradientBoostingClassifier(n_estimators=10, max_depth=2, random_seed=0).fit(X, y)

    scores = gb.decision_function(X)
    assert scores.shape == (len(X),)

    proba = gb.predict_proba(X)
    assert proba.shape == (len(X), 2)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)
    np.testing.assert_allclose(proba[:, 1], 1.0 / (1.0 + np.exp(-scores)))

    assert gb.score(X, y) == 1.0
    assert len(gb.estimators_) == 10
    assert gb.apply(X).shape == (len(X), 10)


def test_binary_base_prediction():
    """F_0 = 0.5 * log((1 + ȳ) / (1 - ȳ)), 작은 레이블이 -1"""
    rng = np.random.default_rng(2)
    X = rng.normal(size=(40, 2))
    y = np.array([4] * 30 + [9] * 10)

    gb = GradientBoostingClassifier(n_estimators=2, random_seed=0).fit(X, y)

    # ȳ = (10 - 30) / 40 = -0.5
    assert gb.base_predictions_ == pytest.approx(0.5 * np.log(0.5 / 1.5))


def test_multiclass_classifier(three_clusters):
    X, y = three_clusters
    gb = GradientBoostingClassifier(n_estimators=10, max_depth=2, random_seed=0).fit(X, y)

    assert len(gb.estimators_) == 3
    assert all(len(trees) == 10 for trees in gb.estimators_)
    assert gb.base_predictions_.shape == (3,)

    scores = gb.decision_function(X)
    assert scores.shape == (len(X), 3)

    proba = gb.predict_proba(X)
    np.testing.assert_allclose(proba.sum(axis=1), 1.0)
    np.testing.assert_array_equal(gb.predict(X), gb.classes_[np.argmax(scores, axis=1)])
    assert gb.apply(X).shape == (len(X), 10, 3)
    assert gb.score(X, y) >= 0.95


def test_classifier_loss_curve_decreases(noisy_labels):
    X, y = noisy_labels
    gb = GradientBoostingClassifier(n_estimators=20, max_depth=2, random_seed=0).fit(X, y)

    assert gb.loss_curve_.shape == (20,)
    assert gb.loss_curve_[-1] < gb.loss_curve_[0]


def test_staged_decision_function_matches_final(three_clusters):
    X, y = three_clusters
    gb = GradientBoostingClassifier(n_estimators=6, max_depth=2, random_seed=1).fit(X, y)

    staged = gb.staged_decision_function(X)
    assert staged.shape == (6, len(X), 3)
    np.testing.assert_allclose(staged[-1], gb.decision_function(X))

    staged_labels = gb.staged_predict(X)
    assert staged_labels.shape == (6, len(X))
    np.testing.assert_array_equal(staged_labels[-1], gb.predict(X))


def test_parallel_series_match_sequential(three_clusters):
    X, y = three_clusters
    sequential = GradientBoostingClassifier(n_estimators=5, max_depth=2, subsample=0.7,
                                            random_seed=3).fit(X, y)
    parallel = GradientBoostingClassifier(n_estimators=5, max_depth=2, subsample=0.7,
                                          random_seed=3, n_jobs=2).fit(X, y)

    np.testing.assert_array_equal(sequential.decision_function(X), parallel.decision_function(X))
    np.testing.assert_array_equal(sequential.loss_curve_, parallel.loss_curve_)


def test_subsample_is_seeded(regression_data):
    X, y = regression_data
    first = GradientBoostingRegressor(n_estimators=10, subsample=0.5, random_seed=7).fit(X, y)
    second = GradientBoostingRegressor(n_estimators=10, subsample=0.5, random_seed=7).fit(X, y)
    other = GradientBoostingRegressor(n_estimators=10, subsample=0.5, random_seed=8).fit(X, y)

    np.testing.assert_array_equal(first.predict(X), second.predict(X))
    assert not np.array_equal(first.predict(X), other.predict(X))
    assert first.estimators_[0].tree_.root.n_samples == len(X) // 2


def test_feature_importances_normalized(regression_data):
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=20, random_seed=0).fit(X, y)

    importances = gb.feature_importances_
    assert np.all(importances >= 0)
    assert importances.sum() == pytest.approx(1.0)
    assert np.argmax(importances) == 0


def test_reg_lambda_shrinks_predictions(regression_data):
    X, y = regression_data
    plain = GradientBoostingRegressor(n_estimators=1, learning_rate=1.0, random_seed=0).fit(X, y)
    shrunk = GradientBoostingRegressor(n_estimators=1, learning_rate=1.0, reg_lambda=100.0,
                                       random_seed=0).fit(X, y)

    plain_step = np.abs(plain.predict(X) - plain.init_prediction_)
    shrunk_step = np.abs(shrunk.predict(X) - shrunk.init_prediction_)
    assert shrunk_step.mean() < plain_step.mean()


def test_single_class_rejected():
    X = np.zeros((6, 2))
    with pytest.raises(ValidationError):
        GradientBoostingClassifier().fit(X, np.ones(6, dtype=int))


@pytest.mark.parametrize('model_class, X_y', [
    (GradientBoostingClassifier, 'two_clusters'),
    (GradientBoostingClassifier, 'three_clusters'),
    (GradientBoostingRegressor, 'regression_data'),
])
def test_snapshot_restore(request, model_class, X_y):
    X, y = request.getfixturevalue(X_y)
    model = model_class(n_estimators=5, max_depth=2, random_seed=6).fit(X, y)

    restored = model_class().restore(model.snapshot())

    np.testing.assert_array_equal(restored.predict(X), model.predict(X))
    np.testing.assert_allclose(restored.loss_curve_, model.loss_curve_)
    np.testing.assert_allclose(restored.feature_importances_, model.feature_importances_)
    assert restored.get_params() == model.get_params()
