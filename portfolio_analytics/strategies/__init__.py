"""
리밸런싱 프리셋과 최적화 추천 모듈
"""
