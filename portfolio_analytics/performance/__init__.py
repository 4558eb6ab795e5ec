"""
기간 성과, 벤치마크, 기여도, 상관관계 계산 모듈
"""
