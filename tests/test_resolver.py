import pytest

from agora.governance.errors import NotFound
from agora.governance.records import Choice, ReferendumStatus, VoteKind
from agora.governance.resolver import majority_outcome


def ballot(community, voters, referendum, choice):
    for voter in voters:
        community.ledger.cast(voter.id, referendum.id, VoteKind.REFERENDUM, choice)


@pytest.mark.parametrize("yes, no, expected", [
    (0, 0, None),
    (1, 0, ReferendumStatus.PASSED),
    (0, 1, ReferendumStatus.FAILED),
    (1, 1, None),
    (2, 1, ReferendumStatus.PASSED),
    (1, 2, ReferendumStatus.FAILED),
    (3, 2, None),
    (4, 2, ReferendumStatus.PASSED),
    (6, 3, ReferendumStatus.PASSED),
    (5, 3, None),
])
def test_majority_outcome(yes, no, expected):
    assert majority_outcome(yes, no) is expected


def test_two_to_one_passes_and_notifies_once(community):
    members = community.add_users(3)
    referendum = community.add_referendum()
    ballot(community, members[:2], referendum, "yes")
    ballot(community, members[2:], referendum, "no")

    assert community.resolver.resolve(referendum.id) is ReferendumStatus.PASSED
    stored = community.referenda.get(referendum.id)
    assert stored.status is ReferendumStatus.PASSED
    assert stored.ended_at == community.clock()
    assert (stored.yes_votes, stored.no_votes) == (2, 1)
    assert community.notifier.of("referendum_passed") == [("referendum_passed", referendum.id, 2, 1)]
    assert "referendum_passed" in community.audit.types()

    # Re-evaluating a closed referendum is a no-op
    assert community.resolver.resolve(referendum.id) is ReferendumStatus.PASSED
    assert len(community.notifier.of("referendum_passed")) == 1


def test_one_to_two_fails_without_notification(community):
    members = community.add_users(3)
    referendum = community.add_referendum()
    ballot(community, members[:1], referendum, "yes")
    ballot(community, members[1:], referendum, "no")

    assert community.resolver.resolve(referendum.id) is ReferendumStatus.FAILED
    assert community.referenda.get(referendum.id).ended_at is not None
    assert community.notifier.calls == []


def test_split_vote_stays_active_with_counts_synced(community):
    members = community.add_users(2)
    referendum = community.add_referendum()
    ballot(community, members[:1], referendum, "yes")
    ballot(community, members[1:], referendum, "no")

    assert community.resolver.resolve(referendum.id) is ReferendumStatus.ACTIVE
    stored = community.referenda.get(referendum.id)
    assert stored.is_active
    assert stored.ended_at is None
    assert (stored.yes_votes, stored.no_votes) == (1, 1)


def test_zero_turnout_never_resolves(community):
    referendum = community.add_referendum()
    assert community.resolver.resolve(referendum.id) is ReferendumStatus.ACTIVE
    community.clock.advance(days=3)
    report = community.resolver.sweep_active()
    assert report.passed == report.failed == report.purged == []
    assert community.referenda.get(referendum.id).is_active


def test_missing_referendum(community):
    with pytest.raises(NotFound):
        community.resolver.resolve(12)


def test_lost_transition_race_reports_winner_and_stays_quiet(community):
    """Another worker closed it between our read and our write."""
    members = community.add_users(3)
    referendum = community.add_referendum()
    ballot(community, members, referendum, "yes")

    stale = community.referenda.get(referendum.id)
    community.referenda.transition(referendum.id, ReferendumStatus.PASSED, community.clock())

    assert community.resolver._evaluate(stale) is ReferendumStatus.PASSED
    assert community.notifier.calls == []
    assert len(community.referenda.transitions) == 1


def test_consecutive_sweeps_announce_a_pass_once(community):
    members = community.add_users(3)
    referendum = community.add_referendum()
    for voter in members:
        community.votes.insert(voter.id, referendum.id, VoteKind.REFERENDUM, Choice.YES)
    community.clock.advance(days=1)

    first = community.resolver.sweep_active()
    second = community.resolver.sweep_active()

    assert first.passed == [referendum.id]
    assert second.passed == []
    assert community.notifier.of("referendum_passed") == [("referendum_passed", referendum.id, 3, 0)]


def test_vote_resolution_then_sweep_announce_once(community):
    members = community.add_users(3)
    referendum = community.add_referendum()
    ballot(community, members, referendum, "yes")
    assert community.resolver.resolve(referendum.id) is ReferendumStatus.PASSED

    community.clock.advance(days=2)
    community.resolver.sweep_active()
    assert len(community.notifier.of("referendum_passed")) == 1


def test_sweep_waits_for_minimum_age(community):
    members = community.add_users(3)
    referendum = community.add_referendum()
    for voter in members:
        community.votes.insert(voter.id, referendum.id, VoteKind.REFERENDUM, Choice.YES)

    community.clock.advance(hours=23)
    assert community.resolver.sweep_active().passed == []
    assert community.referenda.get(referendum.id).is_active

    community.clock.advance(hours=1)
    report = community.resolver.sweep_active()
    assert report.passed == [referendum.id]
    assert community.referenda.get(referendum.id).status is ReferendumStatus.PASSED


def test_sweep_purges_unresolved_after_two_weeks(community):
    members = community.add_users(2)
    stuck = community.add_referendum(title="Stuck")
    ballot(community, members[:1], stuck, "yes")
    ballot(community, members[1:], stuck, "no")

    community.clock.advance(days=13)
    assert community.resolver.sweep_active().purged == []

    community.clock.advance(days=1)
    report = community.resolver.sweep_active()
    assert report.purged == [stuck.id]
    assert community.referenda.get(stuck.id) is None
    assert community.votes.list_for(stuck.id, VoteKind.REFERENDUM) == []
    assert "referendum_purged" in community.audit.types()


def test_sweep_never_purges_resolved_referenda(community):
    members = community.add_users(3)
    done = community.add_referendum()
    ballot(community, members, done, "no")
    community.clock.advance(days=30)

    community.resolver.sweep_active()
    assert community.referenda.get(done.id).status is ReferendumStatus.FAILED


def test_sweep_isolates_failures(community):
    members = community.add_users(3)
    broken = community.add_referendum(title="Broken")
    healthy = community.add_referendum(title="Healthy")
    for voter in members:
        community.ledger.cast(voter.id, healthy.id, VoteKind.REFERENDUM, "yes")
    community.clock.advance(days=2)

    original = community.tally_engine.tally

    def flaky(target_id, kind):
        if target_id == broken.id:
            raise RuntimeError("store hiccup")
        return original(target_id, kind)

    community.tally_engine.tally = flaky
    report = community.resolver.sweep_active()
    assert report.errors == 1
    assert community.referenda.get(broken.id).is_active
    assert report.passed == [healthy.id]
    assert community.referenda.get(healthy.id).status is ReferendumStatus.PASSED


def promoted(community, members, title="Skate park"):
    suggestion = community.add_suggestion(members[0], title=title)
    community.votes.insert(members[1].id, suggestion.id, VoteKind.SUGGESTION, Choice.SUPPORT)
    return suggestion, community.promotion.maybe_promote(suggestion.id)


def test_purge_retires_source_suggestion(community):
    members = community.add_users(3)
    suggestion, referendum = promoted(community, members)
    ballot(community, members[:1], referendum, "yes")
    ballot(community, members[1:2], referendum, "no")
    community.clock.advance(weeks=2)

    assert community.resolver.sweep_active().purged == [referendum.id]
    assert community.suggestions.get(suggestion.id) is None
    assert community.votes.list_for(suggestion.id, VoteKind.SUGGESTION) == []
    assert community.promotion.sweep() == ([], 0)


def test_purge_retires_unlinked_source_by_title(community):
    members = community.add_users(2)
    suggestion = community.add_suggestion(members[0], title="Old row")
    community.votes.insert(members[1].id, suggestion.id, VoteKind.SUGGESTION, Choice.SUPPORT)
    referendum = community.add_referendum(title="Old row")
    community.clock.advance(weeks=2)

    assert community.resolver.sweep_active().purged == [referendum.id]
    assert community.suggestions.get(suggestion.id) is None
    assert community.votes.list_for(suggestion.id, VoteKind.SUGGESTION) == []


def test_purge_leaves_unrelated_suggestions(community):
    members = community.add_users(2)
    other = community.add_suggestion(members[0], title="Unrelated")
    referendum = community.add_referendum(title="Standalone")
    community.clock.advance(weeks=2)

    community.resolver.sweep_active()
    assert community.referenda.get(referendum.id) is None
    assert community.suggestions.get(other.id) is not None
