"""
Portfolio Analytics

포지션/거래 기록과 가격 시계열로부터 기간 수익률, 리스크 지표, 벤치마크 비교,
리밸런싱 목표, 백테스트, 절세 계획, 스마트 알림을 계산하는 순수 계산 라이브러리입니다.
"""

__version__ = "0.1.0"
