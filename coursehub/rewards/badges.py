from typing import Iterable, List

# Certificate count -> badge, in ascending order
BADGE_MILESTONES = (
    (1, "First Certificate"),
    (5, "Knowledge Seeker"),
    (10, "Learning Champion"),
)


def badges_for_count(certificate_count: int) -> List[str]:
    """Every badge a user with this many certificates should hold"""
    return [name for threshold, name in BADGE_MILESTONES if certificate_count >= threshold]


def new_badges(certificate_count: int, held: Iterable[str]) -> List[str]:
    held = set(held)
    return [name for name in badges_for_count(certificate_count) if name not in held]
