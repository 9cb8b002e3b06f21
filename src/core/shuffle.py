"""Member shuffling for /go and the random source behind it."""

from __future__ import annotations

import random
import re
from collections.abc import Iterable

# Platform ids made only of digits belong to bots.
BOT_ID_RE = re.compile(r"^\d+$")


def new_random(secure: bool, seed: int | None = None) -> random.Random:
    """Return an OS-entropy generator when `secure`, a seeded PRNG otherwise."""
    if secure:
        return random.SystemRandom()
    return random.Random(seed)


def shuffle_members(
    members: Iterable[str],
    skipped: set[str],
    rnd: random.Random,
) -> list[str]:
    """Drop bots and skipped users, then return the rest in random order."""
    names = [
        member for member in members
        if member not in skipped and not BOT_ID_RE.match(member)
    ]
    rnd.shuffle(names)
    return names
