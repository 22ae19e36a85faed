"""
Bankroll ledger — purely functional bet settlement and simulation.

Every operation takes a ``BankrollState`` snapshot and returns a new one;
nothing is mutated, so independent simulations can share a starting state.
Serialising writes to one logical ledger is the caller's job.

Public API:
  initialize_bankroll(amount)                     → BankrollState
  settle_bet(state, stake, odds, won)             → BankrollState
  simulate_bet(recommendation, stake, state, rng) → BankrollState
  drawdown_pct(state)                             → float
"""

import logging
import random
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

from betedge.models import BetRecommendation

logger = logging.getLogger(__name__)

#: Suggested ceiling for a single stake, as a fraction of current bankroll.
MAX_STAKE_FRACTION = 0.05

STREAK_NONE = "none"
STREAK_WIN = "win"
STREAK_LOSS = "loss"


@dataclass(frozen=True)
class BankrollState:
    """Immutable snapshot of a betting bankroll."""

    starting_bankroll: float
    current_bankroll: float
    peak_bankroll: float
    lowest_bankroll: float

    total_bets: int = 0
    won_bets: int = 0
    lost_bets: int = 0

    total_staked: float = 0.0
    total_returns: float = 0.0
    net_profit: float = 0.0
    roi: float = 0.0               # percent of total staked
    win_rate: float = 0.0          # percent
    average_odds: float = 0.0

    current_streak: int = 0
    streak_type: str = STREAK_NONE
    longest_win_streak: int = 0
    longest_loss_streak: int = 0

    max_drawdown: float = 0.0      # percent below peak
    suggested_max_stake: float = 0.0
    risk_tolerance: str = "Moderate"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def initialize_bankroll(amount: float) -> BankrollState:
    """Fresh ledger with every counter zeroed.

    Raises:
        ValueError: If ``amount`` is not positive.
    """
    if amount <= 0:
        raise ValueError(f"Starting bankroll must be positive, got {amount}")

    return BankrollState(
        starting_bankroll=amount,
        current_bankroll=amount,
        peak_bankroll=amount,
        lowest_bankroll=amount,
        suggested_max_stake=amount * MAX_STAKE_FRACTION,
    )


def drawdown_pct(state: BankrollState) -> float:
    """Current distance below peak bankroll, in percent."""
    if state.peak_bankroll <= 0:
        return 0.0
    return (state.peak_bankroll - state.current_bankroll) / state.peak_bankroll * 100.0


def _risk_tolerance(current: float, starting: float) -> str:
    if current > starting * 1.5:
        return "Aggressive"
    if current > starting * 0.8:
        return "Moderate"
    return "Conservative"


def settle_bet(state: BankrollState, stake: float, odds: float, won: bool) -> BankrollState:
    """
    Apply one settled bet to the ledger.

    A win pays ``stake × odds`` (profit ``stake × (odds − 1)``); a loss
    forfeits the stake.  Streaks continue when the result repeats and reset
    to 1 when it flips.

    Raises:
        ValueError: If ``stake`` is negative.
    """
    if stake < 0:
        raise ValueError(f"Stake must be non-negative, got {stake}")

    payout = stake * odds if won else 0.0
    bankroll = state.current_bankroll + payout - stake

    total_bets = state.total_bets + 1
    won_bets = state.won_bets + (1 if won else 0)
    total_staked = state.total_staked + stake
    total_returns = state.total_returns + payout
    net_profit = total_returns - total_staked

    result = STREAK_WIN if won else STREAK_LOSS
    streak = state.current_streak + 1 if state.streak_type == result else 1

    peak = max(state.peak_bankroll, bankroll)
    drawdown = (peak - bankroll) / peak * 100.0 if peak > 0 else 0.0

    return replace(
        state,
        current_bankroll=bankroll,
        peak_bankroll=peak,
        lowest_bankroll=min(state.lowest_bankroll, bankroll),
        total_bets=total_bets,
        won_bets=won_bets,
        lost_bets=state.lost_bets + (0 if won else 1),
        total_staked=total_staked,
        total_returns=total_returns,
        net_profit=net_profit,
        roi=net_profit / total_staked * 100.0 if total_staked > 0 else 0.0,
        win_rate=won_bets / total_bets * 100.0,
        average_odds=(state.average_odds * state.total_bets + odds) / total_bets,
        current_streak=streak,
        streak_type=result,
        longest_win_streak=(
            max(state.longest_win_streak, streak) if won else state.longest_win_streak
        ),
        longest_loss_streak=(
            state.longest_loss_streak if won else max(state.longest_loss_streak, streak)
        ),
        max_drawdown=max(state.max_drawdown, drawdown),
        suggested_max_stake=bankroll * MAX_STAKE_FRACTION,
        risk_tolerance=_risk_tolerance(bankroll, state.starting_bankroll),
    )


def simulate_bet(
    recommendation: BetRecommendation,
    stake: float,
    state: BankrollState,
    rng: Optional[random.Random] = None,
) -> BankrollState:
    """
    Draw a win/loss from the recommendation's win probability and settle it.

    ``rng`` is any ``random.Random``; pass a seeded one for reproducible
    runs.  The draw is ``rng.random() < win_probability``, so probabilities
    of exactly 1.0 and 0.0 are deterministic whatever the source.
    """
    source = rng if rng is not None else random.SystemRandom()
    won = source.random() < recommendation.win_probability

    new_state = settle_bet(state, stake, recommendation.market_odds, won)
    logger.debug(
        "Simulated %s @ %.2f stake %.2f: %s (bankroll %.2f → %.2f)",
        recommendation.outcome,
        recommendation.market_odds,
        stake,
        "won" if won else "lost",
        state.current_bankroll,
        new_state.current_bankroll,
    )
    return new_state
