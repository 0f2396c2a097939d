"""
입력 검증 유틸리티
==================

모든 추정기가 공통으로 사용하는 배열/파라미터 검증 함수.
검증에 실패하면 즉시 ValidationError를 발생시키며, 내부에서 복구하지 않는다.
"""

import numbers
from typing import Any, Iterable, Optional, Tuple, Union

import numpy as np

from .exceptions import ValidationError


def check_and_coerce_samples(X: Any) -> np.ndarray:
    """
    샘플 행렬을 2차원 float64 배열로 변환

    Raises
    ------
    ValidationError
        2차원이 아니거나, 비어 있거나, NaN/inf를 포함하는 경우
    """
    try:
        X = np.asarray(X, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"샘플 행렬을 실수 배열로 변환할 수 없습니다: {e}") from e

    if X.ndim != 2:
        raise ValidationError(
            f"샘플 행렬은 2차원 배열이어야 합니다 (입력 차원: {X.ndim})"
        )
    if X.shape[0] == 0 or X.shape[1] == 0:
        raise ValidationError(f"비어 있는 샘플 행렬입니다: shape={X.shape}")
    if not np.all(np.isfinite(X)):
        raise ValidationError("샘플 행렬에 NaN 또는 inf 값이 포함되어 있습니다")

    return X


def check_and_coerce_labels(y: Any) -> np.ndarray:
    """
    레이블 벡터를 1차원 정수 배열로 변환

    정수로 표현할 수 없는 실수 레이블은 거부한다.
    """
    y = np.asarray(y)

    if y.ndim != 1:
        raise ValidationError(
            f"레이블 벡터는 1차원 배열이어야 합니다 (입력 차원: {y.ndim})"
        )
    if y.shape[0] == 0:
        raise ValidationError("비어 있는 레이블 벡터입니다")

    if np.issubdtype(y.dtype, np.integer):
        return y.astype(np.int64)

    try:
        y_float = y.astype(np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"레이블을 정수로 변환할 수 없습니다: {e}") from e

    if not np.all(np.isfinite(y_float)) or np.any(y_float != np.round(y_float)):
        raise ValidationError("레이블은 정수 값이어야 합니다")

    return y_float.astype(np.int64)


def check_and_coerce_targets(y: Any) -> np.ndarray:
    """타겟 값을 1차원 또는 2차원 float64 배열로 변환"""
    try:
        y = np.asarray(y, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"타겟 값을 실수 배열로 변환할 수 없습니다: {e}") from e

    if y.ndim not in (1, 2):
        raise ValidationError(
            f"타겟 값은 1차원 또는 2차원 배열이어야 합니다 (입력 차원: {y.ndim})"
        )
    if y.shape[0] == 0:
        raise ValidationError("비어 있는 타겟 배열입니다")
    if not np.all(np.isfinite(y)):
        raise ValidationError("타겟 값에 NaN 또는 inf 값이 포함되어 있습니다")

    return y


def check_same_sample_count(X: np.ndarray, y: np.ndarray) -> None:
    """X와 y의 샘플 수가 같은지 확인"""
    if X.shape[0] != y.shape[0]:
        raise ValidationError(
            f"X와 y의 샘플 수가 일치하지 않습니다: {X.shape[0]} vs {y.shape[0]}"
        )


def check_n_features(X: np.ndarray, n_features: int) -> None:
    """예측 입력의 피처 수가 학습 시와 같은지 확인"""
    if X.shape[1] != n_features:
        raise ValidationError(
            f"피처 수가 학습 데이터와 다릅니다: {X.shape[1]} vs {n_features}"
        )


def check_params_type(
    types: Union[type, Tuple[type, ...]],
    allow_none: bool = False,
    **params: Any
) -> None:
    """파라미터 타입 검사 (bool은 숫자로 취급하지 않음)"""
    for name, value in params.items():
        if value is None and allow_none:
            continue
        if isinstance(value, bool) or not isinstance(value, types):
            raise ValidationError(
                f"{name}의 타입이 올바르지 않습니다: {type(value).__name__}"
            )


def check_params_positive(**params: Any) -> None:
    """양수 파라미터 검사 (None은 '제한 없음'으로 간주하여 통과)"""
    for name, value in params.items():
        if value is None:
            continue
        if value <= 0:
            raise ValidationError(f"{name}는 양수여야 합니다: {value}")


def check_params_non_negative(**params: Any) -> None:
    """0 이상 파라미터 검사"""
    for name, value in params.items():
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{name}는 0 이상이어야 합니다: {value}")


def check_params_nonzero(**params: Any) -> None:
    """0이 아닌지 검사 (n_jobs처럼 음수는 의미가 있는 파라미터용)"""
    for name, value in params.items():
        if value is None:
            continue
        if value == 0:
            raise ValidationError(f"{name}는 0일 수 없습니다")


def check_params_choice(name: str, value: Any, choices: Iterable[str]) -> None:
    """허용된 문자열 값인지 검사"""
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(
            f"지원하지 않는 {name}입니다: {value!r} (가능한 값: {', '.join(choices)})"
        )


def check_max_features(max_features: Any) -> None:
    """max_features 파라미터 형식 검사"""
    if max_features is None:
        return
    if isinstance(max_features, str):
        check_params_choice('max_features', max_features, ('sqrt', 'log2'))
        return
    if isinstance(max_features, bool) or not isinstance(max_features, numbers.Real):
        raise ValidationError(
            f"max_features의 타입이 올바르지 않습니다: {type(max_features).__name__}"
        )
    if max_features <= 0:
        raise ValidationError(f"max_features는 양수여야 합니다: {max_features}")
    if isinstance(max_features, float) and max_features > 1.0:
        raise ValidationError(
            f"실수형 max_features는 (0, 1] 범위의 비율이어야 합니다: {max_features}"
        )


def resolve_max_features(max_features: Optional[Any], n_features: int) -> int:
    """
    각 분할에서 고려할 피처 수 결정

    - None: 모든 피처
    - int: 해당 수 ([1, n_features]로 보정)
    - float: 비율
    - 'sqrt': sqrt(n_features)
    - 'log2': log2(n_features)
    """
    if max_features is None:
        n = n_features
    elif isinstance(max_features, str):
        if max_features == 'sqrt':
            n = int(np.sqrt(n_features))
        else:
            n = int(np.log2(n_features))
    elif isinstance(max_features, float):
        n = int(max_features * n_features)
    else:
        n = int(max_features)

    return min(max(1, n), n_features)
