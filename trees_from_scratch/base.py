"""
추정기 공통 기반
================

모든 추정기가 공유하는 기능:
- 하이퍼파라미터 조회/변경 (get_params / set_params)
- 명시적 랜덤 시드 (전역 RNG를 사용하지 않음)
- 스냅샷/복원 (snapshot / restore)
- 점수 계산 (정확도, R²)
- 트리/클래스 단위 병렬 처리 (joblib)

Author: Trees From Scratch Project
"""

import copy
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, TypeVar

import numpy as np
from joblib import Parallel, delayed
from sklearn.metrics import accuracy_score, r2_score

from .exceptions import NotFittedError, ValidationError
from .validation import (
    check_and_coerce_labels,
    check_and_coerce_samples,
    check_and_coerce_targets,
    check_same_sample_count,
)

T = TypeVar('T')
R = TypeVar('R')

# 트리/앙상블 시드 상한 (np.random.default_rng에 그대로 전달 가능한 범위)
SEED_MAX = 2 ** 31 - 1


class Predict(Protocol):
    def predict(self, X: Any) -> np.ndarray: ...


def entropy_seed() -> int:
    """OS 엔트로피에서 시드 하나를 얻음 (객체 생성 시 한 번만 호출)"""
    return int(np.random.SeedSequence().entropy % SEED_MAX)


def draw_seeds(rng: np.random.Generator, size: Any) -> np.ndarray:
    """상위 RNG에서 하위 추정기용 시드를 미리 뽑아둠 (병렬 분배 전에 호출)"""
    return rng.integers(0, SEED_MAX, size=size)


def parallel_map(
    func: Callable[[T], R],
    items: Iterable[T],
    n_jobs: Optional[int] = None
) -> List[R]:
    """
    독립적인 작업들을 순서대로 실행하거나 joblib 스레드 풀로 분배

    결과 순서는 항상 입력 순서와 같다. 작업 중 하나가 예외를 던지면
    joblib이 남은 작업을 중단하고 그 예외를 다시 발생시킨다.
    """
    items = list(items)
    if n_jobs is None or n_jobs == 1 or len(items) <= 1:
        return [func(item) for item in items]

    return Parallel(n_jobs=n_jobs, prefer='threads')(
        delayed(func)(item) for item in items
    )


def accuracy_of(estimator: Predict, X: Any, y: Any) -> float:
    """평균 정확도"""
    X = check_and_coerce_samples(X)
    y = check_and_coerce_labels(y)
    check_same_sample_count(X, y)
    return float(accuracy_score(y, estimator.predict(X)))


def r2_of(estimator: Predict, X: Any, y: Any) -> float:
    """결정계수 R² (다중 출력은 출력별 평균)"""
    X = check_and_coerce_samples(X)
    y = check_and_coerce_targets(y)
    check_same_sample_count(X, y)
    return float(r2_score(y, estimator.predict(X)))


def rng_state(rng: Optional[np.random.Generator]) -> Optional[Dict]:
    """Generator 객체 대신 비트 생성기의 수치 상태만 저장"""
    if rng is None:
        return None
    return copy.deepcopy(rng.bit_generator.state)


def rng_from_state(state: Optional[Dict]) -> Optional[np.random.Generator]:
    if state is None:
        return None
    bit_generator = getattr(np.random, state['bit_generator'])()
    bit_generator.state = state
    return np.random.Generator(bit_generator)


class BaseEstimator:
    """
    모든 추정기의 기반 클래스

    하위 클래스는 `_param_names`에 하이퍼파라미터 이름을 나열하고,
    `_validate_params`, `_is_fitted`, `_get_state`, `_set_state`를 구현한다.
    """

    _param_names: Tuple[str, ...] = ()

    def get_params(self) -> Dict[str, Any]:
        """하이퍼파라미터 딕셔너리 반환"""
        return {name: getattr(self, name) for name in self._param_names}

    def set_params(self, **params: Any) -> 'BaseEstimator':
        """
        하이퍼파라미터 변경 (변경 후 다시 검증)

        생성자와 같은 규칙을 따르므로 random_seed=None이면 새 엔트로피 시드를 뽑는다.
        """
        for name, value in params.items():
            if name not in self._param_names:
                raise ValidationError(
                    f"{type(self).__name__}에 없는 파라미터입니다: {name}"
                )
            if name == 'random_seed' and value is None:
                value = entropy_seed()
            setattr(self, name, value)
        self._validate_params()
        return self

    def _validate_params(self) -> None:
        pass

    def _is_fitted(self) -> bool:
        raise NotImplementedError

    def _check_is_fitted(self) -> None:
        if not self._is_fitted():
            raise NotFittedError(
                f"{type(self).__name__} 모델이 학습되지 않았습니다. fit()을 먼저 호출하세요."
            )

    def _get_state(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _set_state(self, state: Dict[str, Any]) -> None:
        raise NotImplementedError

    def snapshot(self) -> Dict[str, Any]:
        """
        학습된 상태의 스냅샷 생성

        Returns
        -------
        snapshot : dict
            클래스 이름, 하이퍼파라미터, 학습 상태(트리 구조, 가중치 등),
            RNG 상태를 담은 딕셔너리. 원본 객체와 메모리를 공유하지 않는다.
        """
        self._check_is_fitted()
        return {
            'estimator': type(self).__name__,
            'params': copy.deepcopy(self.get_params()),
            'state': copy.deepcopy(self._get_state()),
        }

    def restore(self, snapshot: Dict[str, Any]) -> 'BaseEstimator':
        """스냅샷으로부터 상태 복원 (재학습 없이 동일한 예측 재현)"""
        name = snapshot.get('estimator')
        if name != type(self).__name__:
            raise ValidationError(
                f"{name} 스냅샷을 {type(self).__name__}에 복원할 수 없습니다"
            )
        self.set_params(**copy.deepcopy(snapshot['params']))
        self._set_state(copy.deepcopy(snapshot['state']))
        return self

    def __repr__(self) -> str:
        params = ', '.join(f"{k}={v!r}" for k, v in self.get_params().items())
        return f"{type(self).__name__}({params})"
