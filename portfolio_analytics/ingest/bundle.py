"""
포트폴리오 번들 로더

CLI에서 사용하는 YAML/JSON 입력 파일(포지션, 거래, 가격, 환율, 스냅샷)을 읽습니다.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field

from ..models import AdvisorInsight, DailySnapshot, Position, PricePoint, Transaction


class PortfolioBundle(BaseModel):
    """이미 조회된 입력 데이터 묶음"""

    base_currency: str = "KRW"
    as_of: Optional[str] = None
    fx_rate: Optional[float] = None
    positions: List[Position] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)
    prices: Dict[str, List[PricePoint]] = Field(default_factory=dict)
    snapshots: List[DailySnapshot] = Field(default_factory=list)
    advisor_insight: Optional[AdvisorInsight] = None


def load_bundle(path: Union[str, Path]) -> PortfolioBundle:
    """YAML 또는 JSON 번들 파일을 로드합니다.

    Args:
        path: 파일 경로 (.yaml, .yml, .json)

    Returns:
        검증된 포트폴리오 번들
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"입력 파일을 찾을 수 없습니다: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                raw = json.load(f)
            else:
                raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"❌ YAML 파싱 오류: {e}")
        raise

    bundle = PortfolioBundle.model_validate(raw or {})
    logger.success(
        f"✅ 번들 로드 완료: 포지션 {len(bundle.positions)}개, 거래 {len(bundle.transactions)}건, "
        f"시계열 {len(bundle.prices)}개"
    )
    return bundle


BUNDLE_TEMPLATE = """# 포트폴리오 분석 입력 번들

base_currency: KRW
as_of: "2024-12-31"
fx_rate: 1400.0

positions:
  - symbol: AAPL
    market: US
    currency: USD
    shares: 10
    average_price: 150
    current_price: 190
    sector: information-technology
  - symbol: "005930"
    market: KR
    currency: KRW
    shares: 20
    average_price: 70000
    current_price: 56000
    sector: information-technology

transactions:
  - {symbol: AAPL, type: buy, date: "2024-01-02", shares: 10, price: 150}
  - {symbol: "005930", type: buy, date: "2024-02-01", shares: 20, price: 70000}

prices:
  AAPL:
    - {date: "2024-01-02", close: 150}
    - {date: "2024-12-31", close: 190}
  "005930":
    - {date: "2024-02-01", close: 70000}
    - {date: "2024-12-31", close: 56000}

snapshots: []
"""
