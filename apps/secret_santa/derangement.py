"""
Name-drawing algorithm.

Builds a derangement (a permutation with no fixed point) of the accepted
participants by construction instead of by rejection sampling:

1. Shuffle the participants with Fisher-Yates (``Random.shuffle``), using
   ``random.SystemRandom`` unless a generator is injected.
2. Chain the shuffled order into a single cycle: ``p[i]`` gives to
   ``p[i + 1 mod n]``. Any n-cycle with n >= 2 has no fixed point.
3. With a ``forbidden(giver, receiver)`` predicate, repair each shuffle by
   swapping receivers between two givers until no forbidden pair is left,
   and reshuffle up to ``max_attempts`` times before giving up.

This module has no database access; ``services.assignment_generator``
persists its output.
"""

import random
from typing import Callable, Dict, Hashable, List, Optional, Sequence

from .exceptions import InsufficientParticipantsError, UnsatisfiableConstraintsError

MIN_PARTICIPANTS = 3
DEFAULT_MAX_ATTEMPTS = 100

Forbidden = Callable[[Hashable, Hashable], bool]

_secure_random = random.SystemRandom()


def cycle_from_order(order: Sequence[Hashable]) -> Dict[Hashable, Hashable]:
    """Map each element to its successor, wrapping the last to the first."""
    n = len(order)
    return {order[i]: order[(i + 1) % n] for i in range(n)}


def is_derangement(mapping: Dict[Hashable, Hashable], participants: Sequence[Hashable]) -> bool:
    """True if ``mapping`` is a bijection on ``participants`` with no fixed point."""
    people = set(participants)
    return (
        set(mapping) == people
        and set(mapping.values()) == people
        and len(mapping) == len(people)
        and all(giver != receiver for giver, receiver in mapping.items())
    )


def _violations(mapping: Dict[Hashable, Hashable], forbidden: Forbidden) -> List[Hashable]:
    return [giver for giver, receiver in mapping.items() if forbidden(giver, receiver)]


def _swap_fixes(mapping, giver, other, forbidden) -> bool:
    # After the swap: giver -> mapping[other], other -> mapping[giver]
    new_for_giver = mapping[other]
    new_for_other = mapping[giver]
    return (
        new_for_giver != giver
        and new_for_other != other
        and not forbidden(giver, new_for_giver)
        and not forbidden(other, new_for_other)
    )


def _repair(mapping: Dict[Hashable, Hashable], forbidden: Forbidden, rng: random.Random) -> bool:
    """
    Swap receivers until no forbidden pair remains.

    Every swap clears the violating giver and keeps the partner valid, so the
    number of violations strictly drops and the loop ends within n swaps.
    Swapping may split the cycle into smaller cycles; each of them still has
    length >= 2 because fixed points are rejected.
    """
    givers = list(mapping)
    for _ in range(len(givers) + 1):
        bad = _violations(mapping, forbidden)
        if not bad:
            return True

        giver = bad[0]
        partners = [
            other for other in givers
            if other != giver and _swap_fixes(mapping, giver, other, forbidden)
        ]
        if not partners:
            return False

        other = rng.choice(partners)
        mapping[giver], mapping[other] = mapping[other], mapping[giver]

    return not _violations(mapping, forbidden)


def build_derangement(
    participants: Sequence[Hashable],
    *,
    rng: Optional[random.Random] = None,
    forbidden: Optional[Forbidden] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Dict[Hashable, Hashable]:
    """
    Draw a giver -> receiver mapping for ``participants``.

    Args:
        participants: Distinct participant ids (at least 3)
        rng: Random generator; tests inject a seeded ``random.Random``
        forbidden: Optional predicate returning True for pairs that must not occur
        max_attempts: Number of reshuffles tried when ``forbidden`` is given

    Returns:
        Dict mapping every participant to the participant they give to

    Raises:
        InsufficientParticipantsError: Fewer than 3 participants
        UnsatisfiableConstraintsError: No valid mapping found under ``forbidden``
        ValueError: Duplicate participant ids
    """
    people = list(participants)
    if len(set(people)) != len(people):
        raise ValueError("Participant ids must be unique")

    if len(people) < MIN_PARTICIPANTS:
        raise InsufficientParticipantsError(
            f"Need at least {MIN_PARTICIPANTS} accepted participants to draw names"
        )

    rng = rng or _secure_random

    if forbidden is None:
        rng.shuffle(people)
        return cycle_from_order(people)

    for giver in people:
        if all(forbidden(giver, receiver) for receiver in people if receiver != giver):
            raise UnsatisfiableConstraintsError(
                "Could not find a valid pairing: one participant has no allowed receiver. "
                "Relax the exclusion rules and try again."
            )

    for _ in range(max_attempts):
        order = people[:]
        rng.shuffle(order)
        mapping = cycle_from_order(order)
        if _repair(mapping, forbidden, rng):
            return mapping

    raise UnsatisfiableConstraintsError(
        "Could not find a valid pairing under the given restrictions. "
        "Try again or relax the exclusion rules."
    )
