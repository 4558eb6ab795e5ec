"""
Portfolio Analytics 설정 관리 모듈

Pydantic BaseSettings를 사용하여 환경변수와 설정을 중앙 관리합니다.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """애플리케이션 설정 클래스"""

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 실행 환경
    environment: str = Field(
        default="development",
        description="실행 환경 (development, production)"
    )

    # 통화 설정
    base_currency: str = Field(
        default="KRW",
        description="집계 기준 통화 (USD, KRW)"
    )

    fallback_usd_krw_rate: float = Field(
        default=1428.91,
        description="실시간 환율 조회 실패 시 사용하는 USD/KRW 환율"
    )

    # 캐시 설정
    price_cache_ttl_minutes: int = Field(
        default=30,
        description="가격 시계열 캐시 만료 시간 (분)"
    )

    fx_cache_ttl_minutes: int = Field(
        default=10,
        description="환율 캐시 만료 시간 (분)"
    )

    # 병렬 처리 설정
    n_jobs: int = Field(
        default=4,
        description="가격 조회 병렬 작업 수"
    )

    fetch_buffer_days: int = Field(
        default=2,
        description="가격 조회 종료일 버퍼 (일)"
    )

    # 리스크 지표 설정
    risk_free_rate: float = Field(
        default=0.0,
        description="샤프 비율 계산용 무위험 수익률 (기간 수익률 단위)"
    )

    trading_days: int = Field(
        default=252,
        description="연율화 거래일 수 (변동성, 백테스트)"
    )

    calendar_days: int = Field(
        default=365,
        description="연율화 달력일 수 (기간 성과)"
    )

    # 백테스트 설정
    backtest_min_snapshots: int = Field(
        default=10,
        description="백테스트에 필요한 최소 스냅샷 수"
    )

    backtest_period_days: int = Field(
        default=365,
        description="기본 백테스트 기간 (일)"
    )

    # 리밸런싱 설정
    rebalance_epsilon: float = Field(
        default=0.05,
        description="매수/매도 판단 최소 비중 차이 (%p)"
    )

    rebalance_tolerance: float = Field(
        default=2.0,
        description="리밸런싱 제안 허용 오차 (%p)"
    )

    # 절세 설정
    tax_target_harvest_amount: float = Field(
        default=500000.0,
        description="기본 손실 실현 목표 금액"
    )

    tax_estimated_rate: float = Field(
        default=22.0,
        description="기본 추정 세율 (%)"
    )

    tax_rate_cap: float = Field(
        default=60.0,
        description="세율 상한 (%)"
    )

    # 알림 임계값
    alert_drop_threshold: float = Field(default=-5.0, description="급락 알림 수익률 (%)")
    alert_surge_threshold: float = Field(default=5.0, description="급등 알림 수익률 (%)")
    alert_volatility_threshold: float = Field(default=25.0, description="변동성 경고 기준 (%)")
    alert_concentration_threshold: float = Field(default=25.0, description="집중 위험 비중 기준 (%)")

    # 로깅 설정
    log_level: str = Field(
        default="INFO",
        description="로그 레벨"
    )

    log_file: Optional[Path] = Field(
        default=None,
        description="로그 파일 경로 (None이면 stderr만 사용)"
    )

    @property
    def strict_integrity(self) -> bool:
        """데이터 무결성 오류를 예외로 올릴지 여부 (production 외 환경)"""
        return self.environment.lower() != "production"


# 전역 설정 인스턴스
settings = Settings()


def get_settings() -> Settings:
    """설정 인스턴스를 반환합니다."""
    return settings


def setup_logging(config: Optional[Settings] = None) -> None:
    """loguru 싱크를 설정에 맞게 구성합니다.

    Args:
        config: 설정 인스턴스 (None이면 전역 설정)
    """
    config = config or settings

    logger.remove()
    logger.add(sys.stderr, level=config.log_level.upper())

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.log_file,
            level=config.log_level.upper(),
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )
