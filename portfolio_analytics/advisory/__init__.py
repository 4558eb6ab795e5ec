"""
절세 계획, 스마트 알림, 시나리오 분석 모듈
"""
