"""
리스크 지표, 포트폴리오 분석, 백테스트 시뮬레이션 모듈
"""
