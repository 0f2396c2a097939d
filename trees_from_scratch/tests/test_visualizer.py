"""
ML Visualizer 테스트
====================

Author: Trees From Scratch Project
"""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt
import pytest

from trees_from_scratch import (
    AdaBoostClassifier,
    AdaBoostRegressor,
    DecisionTreeClassifier,
    GradientBoostingClassifier,
    GradientBoostingRegressor,
    MLVisualizer,
    RandomForestClassifier,
    RandomForestRegressor,
    ValidationError,
)


@pytest.fixture
def visualizer():
    yield MLVisualizer(figsize=(6, 4), dpi=50)
    plt.close('all')


def test_plot_decision_tree(visualizer, three_clusters):
    X, y = three_clusters
    tree = DecisionTreeClassifier(max_depth=3, random_seed=0).fit(X, y)

    fig = visualizer.plot_decision_tree(tree, feature_names=['x0', 'x1'], max_depth=2)

    assert isinstance(fig, plt.Figure)
    texts = [text.get_text() for text in fig.axes[0].texts]
    assert any(text.startswith('x') and '<' in text for text in texts)


def test_plot_boosting_curve(visualizer, regression_data, noisy_labels):
    X, y = regression_data
    gb = GradientBoostingRegressor(n_estimators=5, random_seed=0).fit(X, y)
    ada = AdaBoostRegressor(n_estimators=5, random_seed=0).fit(X, y)
    ada_clf = AdaBoostClassifier(n_estimators=5, max_depth=1, random_seed=0).fit(*noisy_labels)

    for model in (gb, ada, ada_clf):
        fig = visualizer.plot_boosting_curve(model)
        assert len(fig.axes) == 2


def test_plot_boosting_curve_rejects_bagging(visualizer, regression_data):
    X, y = regression_data
    forest = RandomForestRegressor(n_estimators=2, random_seed=0).fit(X, y)
    with pytest.raises(ValidationError):
        visualizer.plot_boosting_curve(forest)


def test_plot_feature_importance(visualizer, regression_data):
    X, y = regression_data
    models = {
        'GB': GradientBoostingRegressor(n_estimators=5, random_seed=0).fit(X, y),
        'RF': RandomForestRegressor(n_estimators=3, random_seed=0).fit(X, y),
    }

    fig = visualizer.plot_feature_importance(models, top_k=3)
    assert len(fig.axes) == 2

    single = visualizer.plot_feature_importance({'RF': models['RF']})
    assert len(single.axes) == 1


def test_plot_ensemble_convergence(visualizer, regression_data, three_clusters):
    X, y = regression_data
    forest = RandomForestRegressor(n_estimators=4, random_seed=0).fit(X, y)
    fig = visualizer.plot_ensemble_convergence(forest, X, y)
    assert fig.axes[1].get_ylabel() == 'MSE'

    Xc, yc = three_clusters
    gb = GradientBoostingClassifier(n_estimators=4, max_depth=2, random_seed=0).fit(Xc, yc)
    fig = visualizer.plot_ensemble_convergence(gb, Xc, yc, sample_indices=[0, 1])
    assert fig.axes[1].get_ylabel() == 'Accuracy'


def test_plot_ensemble_convergence_requires_staged_output(visualizer, two_clusters):
    X, y = two_clusters
    forest = RandomForestClassifier(n_estimators=2, random_seed=0).fit(X, y)
    with pytest.raises(ValidationError):
        visualizer.plot_ensemble_convergence(forest, X, y)


def test_save_figure(visualizer, tmp_path, two_clusters):
    X, y = two_clusters
    tree = DecisionTreeClassifier(random_seed=0).fit(X, y)
    fig = visualizer.plot_decision_tree(tree)

    path = tmp_path / 'tree.png'
    visualizer.save_figure(fig, str(path))
    assert path.exists()
