from agora.governance.records import VoteKind


def test_top_three_by_votes_ties_by_registration(community):
    members = community.add_users(5)
    m1, m2, m3, m4, m5 = members
    community.ledger.cast(m1.id, m5.id, VoteKind.ADMIN)
    community.ledger.cast(m2.id, m5.id, VoteKind.ADMIN)
    community.ledger.cast(m3.id, m4.id, VoteKind.ADMIN)

    standings = community.leaderboard.standings()
    assert [(u.id, v) for u, v in standings] == [(m5.id, 2), (m4.id, 1), (m1.id, 0), (m2.id, 0), (m3.id, 0)]
    assert [u.id for u in community.leaderboard.current_admins()] == [m5.id, m4.id, m1.id]
    assert community.leaderboard.is_admin(m1.id)
    assert not community.leaderboard.is_admin(m2.id)


def test_first_observation_only_seeds(community):
    community.add_users(4)
    assert community.leaderboard.refresh() is False
    assert community.notifier.calls == []


def test_change_notifies_once_per_cooldown(community):
    m1, m2, m3, m4 = community.add_users(4)
    leaderboard = community.leaderboard
    leaderboard.prime()

    community.ledger.cast(m1.id, m4.id, VoteKind.ADMIN)
    assert leaderboard.refresh() is True
    assert community.notifier.of("admin_leaders_changed") == [
        ("admin_leaders_changed", (m1.id, m2.id, m4.id)),
    ]

    # Unchanged composition sends nothing
    assert leaderboard.refresh() is False

    # Flap back and forth inside the cooldown
    community.ledger.cast(m1.id, m4.id, VoteKind.ADMIN)
    assert leaderboard.refresh() is True
    community.ledger.cast(m1.id, m4.id, VoteKind.ADMIN)
    assert leaderboard.refresh() is False
    assert len(community.notifier.of("admin_leaders_changed")) == 2

    community.clock.advance(minutes=5)
    community.ledger.cast(m1.id, m4.id, VoteKind.ADMIN)
    assert leaderboard.refresh() is True


def test_prime_does_not_overwrite_unless_forced(community):
    m1, m2, m3, m4 = community.add_users(4)
    leaderboard = community.leaderboard
    leaderboard.prime()
    community.ledger.cast(m1.id, m4.id, VoteKind.ADMIN)
    leaderboard.prime()
    assert leaderboard.refresh() is True

    community.ledger.cast(m2.id, m3.id, VoteKind.ADMIN)
    leaderboard.prime(force=True)
    assert leaderboard.refresh() is False
