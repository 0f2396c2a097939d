"""
예외 계층
=========

패키지 전체에서 사용하는 예외 클래스 모음.

- ValidationError: 입력 배열/하이퍼파라미터의 형태, 타입, 값 범위 오류
- NotFittedError: fit() 이전에 predict/apply 등을 호출한 경우
- NumericalDegeneracyError: 가중치가 모두 0이 되는 등 수치적으로 계산을 이어갈 수 없는 경우
"""


class TreesFromScratchError(Exception):
    """패키지 예외의 기본 클래스"""


class ValidationError(TreesFromScratchError, ValueError):
    """입력 데이터 또는 파라미터 검증 실패"""


class NotFittedError(TreesFromScratchError, AttributeError):
    """학습되지 않은 모델을 사용하려 한 경우"""


class NumericalDegeneracyError(TreesFromScratchError, ArithmeticError):
    """수치적으로 퇴화된 상태 (0으로 나누기, 가중치 소멸 등)"""
