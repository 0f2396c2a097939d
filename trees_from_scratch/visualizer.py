"""
ML Visualizer - 트리 앙상블 시각화 도구
========================================

각 알고리즘의 학습 과정과 내부 동작을 시각화합니다.

주요 기능:
- 결정 트리 구조 시각화
- 부스팅 학습 곡선
- 앙상블 예측 수렴 과정
- 피처 중요도 비교

Author: Trees From Scratch Project
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np

from .exceptions import ValidationError

logger = logging.getLogger(__name__)


class MLVisualizer:
    """
    머신러닝 알고리즘 시각화 클래스

    Parameters
    ----------
    figsize : tuple, default=(12, 8)
        기본 Figure 크기

    style : str, default=None
        Matplotlib 스타일

    dpi : int, default=100
        Figure DPI
    """

    def __init__(
        self,
        figsize: Tuple[int, int] = (12, 8),
        style: Optional[str] = None,
        dpi: int = 100
    ):
        self.figsize = figsize
        self.style = style
        self.dpi = dpi

        # 스타일 설정
        if self.style:
            try:
                plt.style.use(self.style)
            except OSError:
                logger.warning("Matplotlib 스타일을 찾을 수 없어 기본값을 사용합니다: %s", self.style)

        # 색상 팔레트
        self.colors = {
            'primary': '#2E86AB',
            'secondary': '#A23B72',
            'accent': '#F18F01',
            'neutral': '#3B3B3B',
            'train': '#2E86AB',
        }

    def plot_decision_tree(
        self,
        tree,
        feature_names: Optional[List[str]] = None,
        max_depth: int = 4,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Decision Tree Structure"
    ) -> plt.Figure:
        """
        결정 트리 구조 시각화

        Parameters
        ----------
        tree : BaseDecisionTree
            학습된 트리 (export_tree_structure를 제공)
        feature_names : list, optional
            피처 이름 리스트
        max_depth : int
            표시할 최대 깊이
        figsize : tuple, optional
            Figure 크기
        title : str
            그래프 제목

        Returns
        -------
        fig : matplotlib.Figure
        """
        tree_dict = tree.export_tree_structure()

        fig, ax = plt.subplots(figsize=figsize or (14, 10), dpi=self.dpi)

        positions: Dict[int, Tuple[float, float]] = {}
        self._calculate_tree_positions(tree_dict, max_depth, positions)
        self._draw_tree_nodes(ax, tree_dict, positions, feature_names, max_depth)

        ax.set_xlim(-0.1, 1.1)
        ax.set_ylim(-0.1, 1.1)
        ax.axis('off')
        ax.set_title(title, fontsize=14, fontweight='bold', pad=20)

        plt.tight_layout()
        return fig

    def _calculate_tree_positions(
        self,
        node: Dict,
        max_depth: int,
        positions: Dict[int, Tuple[float, float]],
        x: float = 0.5,
        y: float = 0.95,
        x_offset: float = 0.25,
        depth: int = 0
    ) -> None:
        """트리 노드 위치 계산 (node_id -> (x, y))"""
        positions[node['node_id']] = (x, y)

        if depth >= max_depth or node['is_leaf']:
            return

        y_child = y - 0.15
        self._calculate_tree_positions(node['left'], max_depth, positions,
                                       x - x_offset, y_child, x_offset / 2, depth + 1)
        self._calculate_tree_positions(node['right'], max_depth, positions,
                                       x + x_offset, y_child, x_offset / 2, depth + 1)

    @staticmethod
    def _leaf_text(node: Dict) -> str:
        value = node['value']
        if len(value) == 1:
            return f"값: {value[0]:.2f}\n샘플: {node['n_samples']}"
        # 분류 리프: 최빈 클래스와 그 비율
        best = int(np.argmax(value))
        return f"클래스 {best} ({value[best]:.2f})\n샘플: {node['n_samples']}"

    def _draw_tree_nodes(
        self,
        ax: plt.Axes,
        node: Dict,
        positions: Dict[int, Tuple[float, float]],
        feature_names: Optional[List[str]],
        max_depth: int,
        depth: int = 0
    ) -> None:
        """트리 노드와 엣지 그리기"""
        if node['node_id'] not in positions:
            return

        x, y = positions[node['node_id']]

        # 노드 색상 (깊이에 따라)
        if node['is_leaf']:
            color = plt.cm.Greens(0.6)
            text = self._leaf_text(node)
        else:
            color = plt.cm.Blues(0.3 + 0.5 * (1 - depth / max(max_depth, 1)))
            feat_idx = node['feature_idx']
            feat_name = feature_names[feat_idx] if feature_names else f"X{feat_idx}"
            text = f"{feat_name}\n< {node['threshold']:.2f}\n샘플: {node['n_samples']}"

        bbox = dict(boxstyle='round,pad=0.3', facecolor=color, edgecolor='gray', alpha=0.9)
        ax.text(x, y, text, ha='center', va='center', fontsize=8, bbox=bbox)

        if node['is_leaf']:
            return

        # 자식 노드 연결 (왼쪽: 조건 참)
        for child, label, label_color, shift in (
            (node['left'], 'T', 'green', -0.02),
            (node['right'], 'F', 'red', 0.02),
        ):
            if child['node_id'] not in positions:
                continue
            x_child, y_child = positions[child['node_id']]
            ax.plot([x, x_child], [y - 0.03, y_child + 0.03], 'k-', linewidth=1, alpha=0.7)
            ax.text((x + x_child) / 2 + shift, (y + y_child) / 2, label, fontsize=7, color=label_color)
            self._draw_tree_nodes(ax, child, positions, feature_names, max_depth, depth + 1)

    def plot_boosting_curve(
        self,
        model,
        title: str = "Boosting Learning Curve",
        figsize: Optional[Tuple[int, int]] = None
    ) -> plt.Figure:
        """
        부스팅 모델의 학습 곡선 시각화

        Parameters
        ----------
        model : GradientBoostingClassifier, GradientBoostingRegressor, AdaBoostClassifier, AdaBoostRegressor
            학습된 부스팅 모델
        title : str
            그래프 제목
        figsize : tuple, optional
            Figure 크기

        Returns
        -------
        fig : matplotlib.Figure
        """
        fig, axes = plt.subplots(1, 2, figsize=figsize or (14, 5), dpi=self.dpi)
        ax1, ax2 = axes

        if getattr(model, 'loss_curve_', None) is not None:
            # Gradient Boosting
            losses = np.asarray(model.loss_curve_)
            iterations = np.arange(1, len(losses) + 1)

            ax1.plot(iterations, losses, label='Train Loss', color=self.colors['train'], linewidth=2)
            ax1.set_ylabel('Loss', fontsize=11)

            improvements = -np.diff(np.concatenate([[losses[0]], losses]))
            ax2.bar(iterations, improvements, color=self.colors['secondary'], alpha=0.7)
            ax2.set_ylabel('Loss Decrease', fontsize=11)
            ax2.set_title('Per-round Improvement', fontsize=12, fontweight='bold')

        elif getattr(model, 'estimator_errors_', None) is not None:
            # AdaBoost
            errors = np.asarray(model.estimator_errors_)
            iterations = np.arange(1, len(errors) + 1)

            ax1.plot(iterations, errors, label='Estimator Error', color=self.colors['primary'],
                     linewidth=2, marker='o')
            ax1.set_ylabel('Weighted Error', fontsize=11)

            weights = getattr(model, 'estimator_weights_', None)
            if weights is not None:
                ax2.bar(iterations, weights, color=self.colors['secondary'], alpha=0.7)
                ax2.set_ylabel('Estimator Weight', fontsize=11)
                ax2.set_title('Estimator Weights (log(1/β))', fontsize=12, fontweight='bold')
            else:
                ax2.axis('off')

        else:
            plt.close(fig)
            raise ValidationError("학습 곡선 정보가 없는 모델입니다 (loss_curve_ 또는 estimator_errors_ 필요)")

        ax1.set_xlabel('Iteration', fontsize=11)
        ax1.set_title('Learning Curve', fontsize=12, fontweight='bold')
        ax1.legend(loc='upper right')
        ax1.grid(True, alpha=0.3)
        ax2.set_xlabel('Iteration', fontsize=11)
        ax2.grid(True, alpha=0.3)

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def plot_feature_importance(
        self,
        models: Dict[str, Any],
        feature_names: Optional[List[str]] = None,
        top_k: int = 15,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Feature Importance Comparison"
    ) -> plt.Figure:
        """
        여러 모델의 피처 중요도 비교

        Parameters
        ----------
        models : dict
            {모델명: 학습된 모델} 딕셔너리
        feature_names : list, optional
            피처 이름 리스트
        top_k : int
            표시할 상위 피처 수
        figsize : tuple, optional
            Figure 크기
        title : str
            그래프 제목

        Returns
        -------
        fig : matplotlib.Figure
        """
        n_models = len(models)
        fig, axes = plt.subplots(1, n_models, figsize=figsize or (5 * n_models, 8), dpi=self.dpi,
                                 squeeze=False)

        colors = plt.cm.Set2(np.linspace(0, 1, n_models))

        for idx, (name, model) in enumerate(models.items()):
            ax = axes[0, idx]
            importances = np.asarray(model.feature_importances_)

            if feature_names is None:
                names = [f'Feature {i}' for i in range(len(importances))]
            else:
                names = feature_names

            # 상위 k개 선택
            indices = np.argsort(importances)[::-1][:top_k]

            ax.barh(range(len(indices)), importances[indices], color=colors[idx], alpha=0.8)
            ax.set_yticks(range(len(indices)))
            ax.set_yticklabels([names[i] for i in indices])
            ax.invert_yaxis()
            ax.set_xlabel('Importance', fontsize=10)
            ax.set_title(name, fontsize=11, fontweight='bold')
            ax.grid(True, alpha=0.3, axis='x')

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def plot_ensemble_convergence(
        self,
        model,
        X: np.ndarray,
        y: np.ndarray,
        sample_indices: Optional[List[int]] = None,
        figsize: Optional[Tuple[int, int]] = None,
        title: str = "Ensemble Prediction Convergence"
    ) -> plt.Figure:
        """
        앙상블 예측의 수렴 과정 시각화

        회귀 모델은 staged_predict로 예측값과 MSE를, 분류 모델은
        staged_decision_function으로 정답 클래스 점수와 정확도를 그린다.

        Parameters
        ----------
        model : 앙상블 모델
            staged_predict 또는 staged_decision_function을 제공하는 학습된 모델
        X : ndarray
            입력 데이터
        y : ndarray
            실제 타겟값 (1차원)
        sample_indices : list, optional
            시각화할 샘플 인덱스
        figsize : tuple, optional
            Figure 크기
        title : str
            그래프 제목

        Returns
        -------
        fig : matplotlib.Figure
        """
        y = np.asarray(y)

        if hasattr(model, 'staged_decision_function'):
            staged_scores = model.staged_decision_function(X)
            if staged_scores.ndim == 3:
                # 정답 클래스 점수
                class_idx = np.searchsorted(model.classes_, y)
                trajectories = staged_scores[:, np.arange(len(y)), class_idx]
            else:
                trajectories = staged_scores
            targets = None
            curve = np.array([np.mean(labels == y) for labels in model.staged_predict(X)])
            curve_label = 'Accuracy'
        elif hasattr(model, 'staged_predict'):
            trajectories = model.staged_predict(X)
            if trajectories.ndim != 2:
                raise ValidationError("단일 출력 모델만 수렴 과정을 그릴 수 있습니다")
            targets = y
            curve = np.mean((trajectories - y) ** 2, axis=1)
            curve_label = 'MSE'
        else:
            raise ValidationError("모델에 staged_predict 메서드가 없습니다.")

        n_stages = trajectories.shape[0]
        stages = np.arange(1, n_stages + 1)

        if sample_indices is None:
            # 마지막 단계 값이 다양한 5개 샘플 선택
            final = trajectories[-1] if targets is None else np.abs(trajectories[-1] - targets)
            sample_indices = [
                int(np.argmin(np.abs(final - np.percentile(final, p))))
                for p in (0, 25, 50, 75, 100)
            ]

        fig, axes = plt.subplots(2, 1, figsize=figsize or (12, 8), dpi=self.dpi)

        # 1. 개별 샘플의 예측 수렴
        ax1 = axes[0]
        colors = plt.cm.viridis(np.linspace(0, 1, len(sample_indices)))

        for idx, sample_idx in enumerate(sample_indices):
            ax1.plot(stages, trajectories[:, sample_idx], color=colors[idx], alpha=0.7,
                     label=f'Sample {sample_idx}')
            if targets is not None:
                ax1.axhline(y=targets[sample_idx], color=colors[idx], linestyle='--', alpha=0.5)

        ax1.set_xlabel('Number of Estimators', fontsize=11)
        ax1.set_ylabel('Prediction' if targets is not None else 'Score', fontsize=11)
        ax1.set_title('Individual Sample Predictions', fontsize=12, fontweight='bold')
        ax1.legend(loc='upper right', fontsize=9)
        ax1.grid(True, alpha=0.3)

        # 2. 전체 지표 수렴
        ax2 = axes[1]
        ax2.plot(stages, curve, color=self.colors['primary'], linewidth=2)
        ax2.fill_between(stages, curve, alpha=0.2, color=self.colors['primary'])

        ax2.set_xlabel('Number of Estimators', fontsize=11)
        ax2.set_ylabel(curve_label, fontsize=11)
        ax2.set_title(f'Overall {curve_label} Convergence', fontsize=12, fontweight='bold')
        ax2.grid(True, alpha=0.3)

        fig.suptitle(title, fontsize=14, fontweight='bold', y=1.02)
        plt.tight_layout()
        return fig

    def save_figure(
        self,
        fig: plt.Figure,
        filepath: str,
        dpi: Optional[int] = None
    ) -> None:
        """Figure 저장"""
        fig.savefig(filepath, dpi=dpi or self.dpi, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        logger.info("Figure saved: %s", filepath)
