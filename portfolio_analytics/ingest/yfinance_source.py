"""
Yahoo Finance 데이터 소스 모듈

yfinance 라이브러리로 일별 종가 시계열과 USD/KRW 환율을 조회합니다.
PriceSeriesStore / SpotRateProvider의 기본 fetcher로 사용됩니다.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional
import warnings

import pandas as pd
import yfinance as yf
from loguru import logger

from ..config import settings
from ..models import PricePoint


warnings.filterwarnings("ignore", category=UserWarning, module="yfinance")


def history_to_points(data: pd.DataFrame) -> List[PricePoint]:
    """yfinance history 데이터프레임을 종가 포인트 목록으로 변환합니다.

    Args:
        data: yfinance history 결과 (인덱스: 날짜, 'Close' 컬럼)

    Returns:
        날짜 오름차순 종가 포인트 목록
    """
    if data is None or data.empty:
        return []

    # 컬럼명 정리
    data = data.rename(columns=lambda col: str(col).replace(' ', '_').lower())
    if 'close' not in data.columns:
        return []

    closes = data['close'].dropna()
    closes = closes[closes > 0]

    points = []
    for timestamp, close in closes.items():
        points.append(PricePoint(date=pd.Timestamp(timestamp).date(), close=float(close)))

    return sorted(points, key=lambda p: p.date)


def fetch_daily_closes(symbol: str, start_date: date, end_date: Optional[date] = None) -> List[PricePoint]:
    """단일 종목 일별 종가를 조회합니다.

    Args:
        symbol: 종목 코드 (예: 'AAPL', '005930.KS')
        start_date: 시작 날짜
        end_date: 종료 날짜 (None이면 오늘 + 버퍼)

    Returns:
        종가 포인트 목록 (데이터가 없으면 빈 목록)
    """
    end_date = end_date or (datetime.now().date() + timedelta(days=settings.fetch_buffer_days))

    logger.debug(f"📥 {symbol} 종가 조회: {start_date} ~ {end_date}")

    stock = yf.Ticker(symbol)
    data = stock.history(
        start=start_date.isoformat(),
        end=end_date.isoformat(),
        interval="1d",
        auto_adjust=True,  # 배당, 분할 조정
        prepost=False
    )

    points = history_to_points(data)
    if not points:
        logger.warning(f"⚠️ {symbol}: 데이터가 없습니다")

    return points


def fetch_spot_rate(base: str = "USD", quote: str = "KRW") -> Optional[float]:
    """Yahoo Finance 환율 심볼(예: 'KRW=X')로 현물 환율을 조회합니다."""
    if base == quote:
        return 1.0

    ticker = f"{quote}=X" if base == "USD" else f"{base}{quote}=X"
    data = yf.Ticker(ticker).history(period="5d", interval="1d")
    points = history_to_points(data)

    if not points:
        return None

    return points[-1].close
