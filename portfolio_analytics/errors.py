"""
분석 코어 예외 정의

값 수준의 성능 저하(None, note)로 처리할 수 없는 불변식 위반만 예외로 올립니다.
"""


class DataIntegrityError(ValueError):
    """거래 로그 재생 결과가 음수 주식 수가 되는 등 원천 데이터가 모순될 때 발생합니다."""

    def __init__(self, message: str, symbol: str = None):
        super().__init__(message)
        self.symbol = symbol


class MalformedSeriesError(ValueError):
    """가격 시계열이 날짜 오름차순이 아니거나 유효하지 않은 종가를 포함할 때 발생합니다."""
