"""
가격 시계열, 환율, 입력 번들 수집 모듈
"""
