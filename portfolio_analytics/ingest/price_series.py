"""
가격 시계열 저장소 모듈

종목별 일별 종가 시계열을 TTL 캐시에 보관하고, 특정 날짜 이전(포함) 가격과
최근 가격 조회를 제공합니다. 실제 데이터 전송은 주입된 fetcher가 담당합니다.
"""

import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from ..config import settings
from ..errors import MalformedSeriesError
from ..models import PricePoint, PriceSeries


# fetcher(candidate_symbol, start_date) -> 종가 포인트 목록 (없으면 None 또는 빈 목록)
PriceFetcher = Callable[[str, date], Optional[Sequence[PricePoint]]]


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


def symbol_candidates(symbol: str, market: Optional[str] = None) -> List[str]:
    """조회에 사용할 심볼 후보 목록을 만듭니다.

    한국 시장 심볼은 거래소 접미사가 없으면 코스피(.KS), 코스닥(.KQ) 순으로 시도합니다.
    지수 심볼(^KS11 등)은 그대로 사용합니다.
    """
    normalized = normalize_symbol(symbol)

    if "." in normalized or normalized.startswith("^"):
        return [normalized]

    if market == "KR":
        return [f"{normalized}.KS", f"{normalized}.KQ"]

    return [normalized]


def _clean_points(points: Iterable[PricePoint]) -> List[PricePoint]:
    return [p for p in points if p.close is not None and math.isfinite(p.close) and p.close > 0]


def merge_series(existing: Sequence[PricePoint], incoming: Sequence[PricePoint]) -> Tuple[PricePoint, ...]:
    """두 시계열을 날짜 기준으로 합칩니다 (같은 날짜는 incoming 값 우선).

    Returns:
        날짜 오름차순, 중복 없는 포인트 튜플
    """
    merged: Dict[date, float] = {}
    for point in _clean_points(existing):
        merged[point.date] = point.close
    for point in _clean_points(incoming):
        merged[point.date] = point.close

    return tuple(PricePoint(date=d, close=merged[d]) for d in sorted(merged))


def validate_series(series: PriceSeries) -> None:
    """시계열 불변식(날짜 엄격 오름차순, 양의 유한 종가)을 검증합니다."""
    previous = None
    for point in series.points:
        if not math.isfinite(point.close) or point.close <= 0:
            raise MalformedSeriesError(f"{series.symbol}: 유효하지 않은 종가 {point.close} ({point.date})")
        if previous is not None and point.date <= previous:
            raise MalformedSeriesError(f"{series.symbol}: 날짜가 오름차순이 아닙니다 ({previous} -> {point.date})")
        previous = point.date


def price_on_or_before(series: Optional[PriceSeries], target: date) -> Optional[PricePoint]:
    """target 이전(포함) 가장 최근 포인트를 반환합니다. 없으면 None."""
    if not series:
        return None

    for point in reversed(series.points):
        if point.date <= target and math.isfinite(point.close):
            return point
    return None


def first_on_or_after(series: Optional[PriceSeries], target: date) -> Optional[PricePoint]:
    """target 이후(포함) 첫 포인트를 반환합니다."""
    if not series:
        return None

    for point in series.points:
        if point.date >= target:
            return point
    return None


def most_recent(series: Optional[PriceSeries]) -> Optional[PricePoint]:
    """가장 최근 포인트를 반환합니다."""
    if not series or not series.points:
        return None

    last = series.points[-1]
    return last if math.isfinite(last.close) else None


class PriceSeriesStore:
    """(symbol, market) 단위 TTL 캐시를 가진 가격 시계열 저장소

    호출하는 컨텍스트가 소유하며, 시계는 테스트를 위해 주입할 수 있습니다.
    키별 read-modify-write만 잠그고 키 사이의 조정은 하지 않습니다.
    """

    def __init__(
        self,
        fetcher: Optional[PriceFetcher] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.price_cache_ttl_minutes * 60
        self.clock = clock
        self._cache: Dict[str, Tuple[PriceSeries, float]] = {}
        self._key_locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def cache_key(symbol: str, market: Optional[str]) -> str:
        return f"{normalize_symbol(symbol)}:{market or 'GLOBAL'}"

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def put(self, symbol: str, market: Optional[str], points: Sequence[PricePoint]) -> PriceSeries:
        """포인트를 캐시에 병합합니다 (이미 조회된 데이터를 주입할 때 사용)."""
        key = self.cache_key(symbol, market)
        with self._lock_for(key):
            cached = self._cache.get(key)
            existing = cached[0].points if cached else ()
            series = PriceSeries(
                symbol=normalize_symbol(symbol),
                points=merge_series(existing, points),
                source="live",
            )
            self._cache[key] = (series, self.clock())
            return series

    def get_cached(self, symbol: str, market: Optional[str] = None) -> Optional[PriceSeries]:
        cached = self._cache.get(self.cache_key(symbol, market))
        return cached[0] if cached else None

    def get_series(self, symbol: str, market: Optional[str], start_date: date) -> Optional[PriceSeries]:
        """start_date 이후를 포함하는 시계열을 반환합니다.

        캐시가 유효하고 start_date를 덮으면 캐시를 반환합니다. 그렇지 않으면 후보 심볼을
        순서대로 조회하여 처음으로 비어 있지 않은 결과를 캐시와 병합합니다.
        모든 조회가 실패하면 (만료되었더라도) 캐시, 없으면 None을 반환합니다.

        Args:
            symbol: 종목 코드
            market: 시장 (US, KR, GLOBAL)
            start_date: 필요한 시작 날짜

        Returns:
            가격 시계열 또는 None
        """
        key = self.cache_key(symbol, market)

        with self._lock_for(key):
            cached = self._cache.get(key)
            now = self.clock()

            if cached:
                series, stored_at = cached
                fresh = now - stored_at < self.ttl_seconds
                if fresh and series.start is not None and series.start <= start_date:
                    return series.model_copy(update={"source": "cache"})

            if self.fetcher is not None:
                for candidate in symbol_candidates(symbol, market):
                    try:
                        fetched = self.fetcher(candidate, start_date)
                    except Exception as e:
                        logger.warning(f"⚠️ {candidate} 가격 조회 실패: {e}")
                        continue

                    points = _clean_points(fetched or [])
                    if not points:
                        continue

                    existing = cached[0].points if cached else ()
                    series = PriceSeries(
                        symbol=normalize_symbol(symbol),
                        points=merge_series(existing, points),
                        source="live",
                    )
                    self._cache[key] = (series, now)
                    logger.debug(f"{candidate} 시계열 갱신: {len(series)} 포인트")
                    return series

            if cached:
                logger.warning(f"⚠️ {symbol}: 새 데이터가 없어 캐시된 시계열 사용")
                return cached[0].model_copy(update={"source": "cache"})

            logger.warning(f"⚠️ {symbol}: 가격 시계열을 찾을 수 없습니다")
            return None

    def fetch_many(
        self,
        requests: Iterable[Tuple[str, Optional[str]]],
        start_date: date,
        max_workers: Optional[int] = None,
    ) -> Dict[str, Optional[PriceSeries]]:
        """고유 심볼별로 병렬 조회한 뒤 모두 기다려 결과를 반환합니다.

        Args:
            requests: (symbol, market) 목록
            start_date: 필요한 시작 날짜
            max_workers: 스레드 수 (None이면 설정의 n_jobs)

        Returns:
            {symbol: 시계열 또는 None}
        """
        unique: Dict[str, Optional[str]] = {}
        for symbol, market in requests:
            unique.setdefault(symbol, market)

        if not unique:
            return {}

        workers = max(1, min(max_workers or settings.n_jobs, len(unique)))
        logger.info(f"📥 가격 시계열 병렬 조회: {len(unique)} 종목, {workers} 작업")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                symbol: executor.submit(self.get_series, symbol, market, start_date)
                for symbol, market in unique.items()
            }
            return {symbol: future.result() for symbol, future in futures.items()}

    def clear(self) -> None:
        with self._guard:
            self._cache.clear()
            self._key_locks.clear()
