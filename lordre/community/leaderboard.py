"""Leaderboard — active members ranked by grade points plus badges."""

from __future__ import annotations

from lordre.domain.schema import BADGE_POINTS, LeaderboardEntry, MemberStatus, Profile
from lordre.store.gateway import StoreGateway


def score(profile: Profile, badge_count: int) -> int:
    return profile.grade.points + badge_count * BADGE_POINTS


class Leaderboard:
    def __init__(self, gateway: StoreGateway) -> None:
        self.gateway = gateway

    def ranking(self, limit: int | None = None) -> list[LeaderboardEntry]:
        """
        Active members by descending score.

        Ties keep the earliest member first. A non-positive limit returns
        everyone.
        """
        profiles = self.gateway.list_profiles(status=MemberStatus.ACTIVE)
        badges = self.gateway.badge_counts()

        scored = sorted(
            profiles,
            key=lambda p: (-score(p, badges.get(p.id, 0)), p.joined_at is None, p.joined_at),
        )
        if limit is not None and limit > 0:
            scored = scored[:limit]

        return [
            LeaderboardEntry(
                rank=position,
                user_id=profile.id,
                pseudonym=profile.pseudonym,
                grade=profile.grade,
                badge_count=badges.get(profile.id, 0),
                score=score(profile, badges.get(profile.id, 0)),
                joined_at=profile.joined_at,
            )
            for position, profile in enumerate(scored, start=1)
        ]
