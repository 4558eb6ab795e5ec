"""
보유 주식 수 재구성 모듈

거래 로그를 시간순으로 재생하여 특정 날짜 기준 보유 주식 수를 계산합니다.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List

from loguru import logger

from ..errors import DataIntegrityError
from ..models import Transaction


def sort_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """거래를 날짜순으로 정렬합니다 (같은 날짜는 입력 순서 유지)."""
    return sorted(transactions, key=lambda tx: tx.date)


def group_by_symbol(transactions: Iterable[Transaction]) -> Dict[str, List[Transaction]]:
    """종목별로 날짜순 거래 목록을 만듭니다."""
    grouped: Dict[str, List[Transaction]] = defaultdict(list)
    for tx in sort_transactions(transactions):
        grouped[tx.symbol].append(tx)
    return dict(grouped)


def shares_as_of(transactions: Iterable[Transaction], target: date) -> float:
    """target 날짜(포함)까지의 거래를 재생한 보유 주식 수

    매수는 더하고 매도는 빼며 배당은 무시합니다. 0으로 절삭하지 않으므로
    음수는 상위 데이터 불일치를 뜻합니다.

    Args:
        transactions: 단일 종목 거래 목록
        target: 기준 날짜

    Returns:
        보유 주식 수 (음수 가능)
    """
    shares = 0.0
    for tx in sort_transactions(transactions):
        if tx.date > target:
            break
        if tx.type == "buy":
            shares += tx.shares
        elif tx.type == "sell":
            shares -= tx.shares
    return shares


def check_non_negative(symbol: str, shares: float, target: date, strict: bool) -> bool:
    """재구성된 주식 수가 음수인지 검사합니다.

    Args:
        symbol: 종목 코드
        shares: 재구성된 주식 수
        target: 기준 날짜
        strict: True면 예외, False면 에러 로그 후 False 반환

    Returns:
        음수가 아니면 True
    """
    if shares >= 0:
        return True

    message = f"{symbol}: {target} 기준 보유 주식 수가 음수입니다 ({shares})"
    if strict:
        raise DataIntegrityError(message, symbol=symbol)

    logger.error(f"❌ {message}")
    return False
