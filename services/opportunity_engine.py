"""
Opportunity Engine

Pure computation of ranked cross-exchange opportunities from a cache
snapshot. No I/O, no mutation, deterministic for a given snapshot and query.

For every instrument and every ordered pair of distinct exchanges holding a
ticker for it:

    buy_price  = buy.ask            sell_price = sell.bid
    spread_absolute = sell_price - buy_price
    spread_percent  = spread_absolute / buy_price * 100
    net_percent     = spread_percent - (buy_fee + sell_fee) * 100
                      (None when neither leg has fee data; a missing fee counts as 0)
    liquidity_floor = min(buy.quote_volume, sell.quote_volume), 0 if either unknown
    score           = (net_percent or spread_percent) * log10(1 + (liquidity_floor or 1))

Filters:
    - min_spread_percent unset: keep spread_percent > 0
    - min_spread_percent set:   keep spread_percent >= min_spread_percent
    - min_quote_volume > 0:     drop liquidity_floor < min_quote_volume

Ranking: score desc, spread_percent desc, then instrument, buy exchange and
sell exchange ascending. The ranked list is truncated to the query limit.
"""

import math
from typing import Dict, List, Mapping, Optional, Tuple

from core.schemas import NormalizedTicker, Opportunity, OpportunityQuery, OpportunityResult

SnapshotKey = Tuple[str, str]


def net_percent(spread_percent: float, buy_fee: Optional[float], sell_fee: Optional[float]) -> Optional[float]:
    """Spread after both taker fees, or None when neither fee is known."""
    if buy_fee is None and sell_fee is None:
        return None
    return spread_percent - ((buy_fee or 0.0) + (sell_fee or 0.0)) * 100


def liquidity_floor(buy: NormalizedTicker, sell: NormalizedTicker) -> float:
    if buy.quote_volume is None or sell.quote_volume is None:
        return 0.0
    return min(buy.quote_volume, sell.quote_volume)


def score(spread_percent: float, net: Optional[float], floor: float) -> float:
    """Margin (net when known) damped by the order of magnitude of liquidity."""
    margin = net if net is not None else spread_percent
    return margin * math.log10(1 + (floor or 1))


def build_opportunity(instrument: str, buy: NormalizedTicker, sell: NormalizedTicker) -> Opportunity:
    """Compute every metric for buying on `buy` and selling on `sell`."""
    buy_price = buy.ask
    sell_price = sell.bid
    spread_absolute = sell_price - buy_price
    spread_percent = spread_absolute / buy_price * 100
    net = net_percent(spread_percent, buy.taker_fee_rate, sell.taker_fee_rate)
    floor = liquidity_floor(buy, sell)

    return Opportunity(
        instrument=instrument,
        buy_exchange=buy.exchange,
        sell_exchange=sell.exchange,
        buy_price=buy_price,
        sell_price=sell_price,
        spread_absolute=spread_absolute,
        spread_percent=spread_percent,
        net_percent=net,
        liquidity_floor=floor,
        score=score(spread_percent, net, floor),
        buy_quote_volume=buy.quote_volume,
        sell_quote_volume=sell.quote_volume,
        buy_taker_fee_rate=buy.taker_fee_rate,
        sell_taker_fee_rate=sell.taker_fee_rate,
        buy_change_percent=buy.change_percent,
        sell_change_percent=sell.change_percent,
        buy_observed_at_epoch_millis=buy.observed_at_epoch_millis,
        sell_observed_at_epoch_millis=sell.observed_at_epoch_millis
    )


def _passes_filters(opportunity: Opportunity, query: OpportunityQuery) -> bool:
    if query.min_spread_percent is None:
        if opportunity.spread_percent <= 0:
            return False
    elif opportunity.spread_percent < query.min_spread_percent:
        return False

    if query.min_quote_volume > 0 and opportunity.liquidity_floor < query.min_quote_volume:
        return False

    return True


def _rank_key(opportunity: Opportunity):
    return (
        -opportunity.score,
        -opportunity.spread_percent,
        opportunity.instrument,
        opportunity.buy_exchange,
        opportunity.sell_exchange,
    )


def find_opportunities(
    snapshot: Mapping[SnapshotKey, NormalizedTicker],
    query: OpportunityQuery,
    generated_at_epoch_millis: int
) -> OpportunityResult:
    """
    Rank all qualifying opportunities in a snapshot.

    Args:
        snapshot: (exchange, instrument) -> ticker, as taken from the cache
        query: Instruments, exchanges, filters and limit
        generated_at_epoch_millis: Timestamp to put on the result

    Returns:
        OpportunityResult with at most query.limit opportunities and the
        count before truncation
    """
    exchanges = list(dict.fromkeys(query.exchanges))
    instruments = list(dict.fromkeys(query.instruments))

    if len(exchanges) < 2:
        return OpportunityResult(generated_at_epoch_millis=generated_at_epoch_millis, total_before_limit=0)

    candidates: List[Opportunity] = []
    for instrument in instruments:
        quotes: Dict[str, NormalizedTicker] = {
            exchange: snapshot[(exchange, instrument)]
            for exchange in exchanges
            if (exchange, instrument) in snapshot
        }
        if len(quotes) < 2:
            continue

        for buy_exchange, buy in quotes.items():
            for sell_exchange, sell in quotes.items():
                if buy_exchange == sell_exchange:
                    continue
                opportunity = build_opportunity(instrument, buy, sell)
                if _passes_filters(opportunity, query):
                    candidates.append(opportunity)

    candidates.sort(key=_rank_key)

    return OpportunityResult(
        generated_at_epoch_millis=generated_at_epoch_millis,
        total_before_limit=len(candidates),
        opportunities=candidates[:query.limit]
    )
