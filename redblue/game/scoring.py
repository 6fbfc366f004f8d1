from typing import Dict, Optional, Tuple

from redblue.models.game_session import Choice

TOTAL_ROUNDS = 10
DOUBLED_ROUNDS = frozenset({9, 10})
FORFEIT_PENALTY = -6

_PAYOFFS: Dict[Tuple[Choice, Choice], Tuple[int, int]] = {
    (Choice.RED, Choice.RED): (3, 3),
    (Choice.RED, Choice.BLUE): (-6, 6),
    (Choice.BLUE, Choice.RED): (6, -6),
    (Choice.BLUE, Choice.BLUE): (-3, -3),
}


def _multiplier(round_number: int) -> int:
    if not isinstance(round_number, int) or not 1 <= round_number <= TOTAL_ROUNDS:
        raise ValueError(f"Round number must be between 1 and {TOTAL_ROUNDS}")
    return 2 if round_number in DOUBLED_ROUNDS else 1


def _as_choice(value) -> Choice:
    try:
        return Choice(value)
    except ValueError:
        raise ValueError(f"Invalid choice {value!r}, expected RED or BLUE")


def score(round_number: int, choice1, choice2) -> Tuple[int, int]:
    """Score deltas `(player1, player2)` for a round in which both players chose"""
    multiplier = _multiplier(round_number)
    delta1, delta2 = _PAYOFFS[(_as_choice(choice1), _as_choice(choice2))]
    return delta1 * multiplier, delta2 * multiplier


def score_timeout(
    round_number: int, choice1: Optional[Choice], choice2: Optional[Choice]
) -> Tuple[int, int]:
    """
    Score deltas for a round that hit its deadline.

    A missing choice forfeits the round; a player who did choose gets 0.
    When both choices are present this is the regular table.
    """
    if choice1 is not None and choice2 is not None:
        return score(round_number, choice1, choice2)

    multiplier = _multiplier(round_number)
    if choice1 is not None:
        _as_choice(choice1)
    if choice2 is not None:
        _as_choice(choice2)

    delta1 = 0 if choice1 is not None else FORFEIT_PENALTY * multiplier
    delta2 = 0 if choice2 is not None else FORFEIT_PENALTY * multiplier
    return delta1, delta2
