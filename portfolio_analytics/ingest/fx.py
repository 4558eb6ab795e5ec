"""
통화 변환 모듈

USD/KRW 금액 변환과 TTL 캐시 기반 현물 환율 조회를 제공합니다.
환율(rate)은 항상 USD 1단위당 KRW 금액입니다.
"""

import math
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from loguru import logger

from ..config import settings
from ..models import SpotRate


SUPPORTED_CURRENCIES = ("USD", "KRW")


def assert_currency(value: Optional[str], fallback: str = "USD") -> str:
    """지원 통화가 아니면 fallback을 반환합니다."""
    if value in SUPPORTED_CURRENCIES:
        return value
    return fallback


def position_currency(currency: Optional[str], market: Optional[str]) -> str:
    """포지션의 통화를 결정합니다 (누락 시 시장 기준)."""
    return assert_currency(currency, "KRW" if market == "KR" else "USD")


def convert_with_rate(amount: float, from_currency: str, to_currency: str, rate: Optional[float]) -> float:
    """환율로 금액을 변환합니다.

    환율이 없거나 유효하지 않으면 원래 금액을 그대로 반환합니다 (변환 없이 통과).

    Args:
        amount: 금액
        from_currency: 원래 통화
        to_currency: 대상 통화
        rate: USD/KRW 환율

    Returns:
        변환된 금액
    """
    if amount is None or not math.isfinite(amount):
        return 0.0

    if from_currency == to_currency:
        return amount

    if rate is None or not math.isfinite(rate) or rate <= 0:
        return amount

    if from_currency == "USD" and to_currency == "KRW":
        return amount * rate

    if from_currency == "KRW" and to_currency == "USD":
        return amount / rate

    return amount


def convert_to_base(amount: float, currency: str, base_currency: str, rate: Optional[float]) -> float:
    """금액을 기준 통화로 변환합니다."""
    return convert_with_rate(amount, assert_currency(currency), assert_currency(base_currency), rate)


class SpotRateProvider:
    """TTL 캐시를 가진 환율 조회기

    fetcher는 (base, quote) -> float 형태이며 실패 시 예외를 던지거나 None을 반환합니다.
    실패하면 마지막 캐시 값, 그것도 없으면 설정의 폴백 환율을 사용합니다.
    """

    def __init__(
        self,
        fetcher: Optional[Callable[[str, str], Optional[float]]] = None,
        ttl_seconds: Optional[float] = None,
        fallback_rate: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.fx_cache_ttl_minutes * 60
        self.fallback_rate = fallback_rate if fallback_rate is not None else settings.fallback_usd_krw_rate
        self.clock = clock
        self._cache: Dict[Tuple[str, str], Tuple[float, float]] = {}
        self._lock = threading.Lock()

    def get_spot_rate(self, base: str = "USD", quote: str = "KRW", force_refresh: bool = False) -> SpotRate:
        """현물 환율을 조회합니다."""
        key = (base, quote)
        now = self.clock()

        with self._lock:
            cached = self._cache.get(key)

        if not force_refresh and cached and now - cached[1] < self.ttl_seconds:
            return SpotRate(base=base, quote=quote, rate=cached[0], source="cache")

        if self.fetcher is not None:
            try:
                rate = self.fetcher(base, quote)
            except Exception as e:
                logger.warning(f"⚠️ 실시간 환율 조회 실패, 폴백 사용: {base}/{quote} ({e})")
                rate = None

            if rate is not None and math.isfinite(rate) and rate > 0:
                with self._lock:
                    self._cache[key] = (rate, now)
                return SpotRate(base=base, quote=quote, rate=rate, source="live")

        fallback = cached[0] if cached else self.fallback_rate
        if not cached:
            with self._lock:
                self._cache[key] = (fallback, now)

        logger.warning(f"⚠️ 폴백 환율 사용: {base}/{quote} = {fallback}")
        return SpotRate(base=base, quote=quote, rate=fallback, source="fallback")

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
