import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey
from wecarry.core.events.event_models import RequestStatusChanged
from wecarry.domains.requests.lifecycle import TRANSITIONS, find_transition
from wecarry.domains.requests.models import PROVIDER_STATUSES, Request, RequestHistory, RequestStatus
from wecarry.domains.threads.models import Thread
from wecarry.extensions import db

pytestmark = pytest.mark.integration


@pytest.fixture()
def events(core):
    seen = []
    core.bus.subscribe(RequestStatusChanged.kind, seen.append)
    return seen


@pytest.fixture()
def people(make_user):
    return make_user("Alice"), make_user("Bob"), make_user("Carol")


def _queued(core):
    return [(job.args["template_key"], job.args["recipient_id"]) for job in core.worker.pending_jobs()]


def _history_count(request_id):
    return db.session.execute(
        select(func.count(RequestHistory.id)).where(RequestHistory.request_id == request_id)
    ).scalar_one()


def _assert_provider_invariant(request):
    db.session.refresh(request)
    has_provider = request.provider_id is not None
    assert has_provider == (RequestStatus(request.status) in PROVIDER_STATUSES)


class TestTransitionTable:
    def test_every_edge_is_reachable_by_lookup(self):
        for (source, target), edge in TRANSITIONS.items():
            assert find_transition(source.value, target.value) is edge

    def test_unknown_edges(self):
        assert find_transition("open", "delivered") is None
        assert find_transition("completed", "open") is None
        assert find_transition("open", "withdrawn") is None


class TestHappyPath:
    """Creator posts, a provider commits, and the request runs to completion."""

    def test_full_lifecycle(self, core, events, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        core.lifecycle.transition(request.id, "committed", bob.id)
        assert request.status == "committed"
        assert request.provider_id == bob.id
        assert _queued(core) == [("request-from-open-to-committed", alice.id)]
        thread = db.session.execute(select(Thread).where(Thread.request_id == request.id)).scalar_one()
        assert sorted(thread.participant_ids) == sorted([alice.id, bob.id])
        core.worker.drain()

        core.lifecycle.transition(request.id, RequestStatus.ACCEPTED, alice.id)
        assert request.status == "accepted"
        assert _queued(core) == [("request-from-committed-to-accepted", bob.id)]
        core.worker.drain()

        core.lifecycle.transition(request.id, "delivered", bob.id)
        assert _queued(core) == [("request-delivered", alice.id)]
        core.worker.drain()

        core.lifecycle.transition(request.id, "completed", alice.id)
        assert request.status == "completed"
        assert request.provider_id == bob.id
        assert _queued(core) == [("request-completed", bob.id)]
        core.worker.drain()

        assert [e.new_status for e in events] == ["committed", "accepted", "delivered", "completed"]
        assert _history_count(request.id) == 4
        templates = [m.template for m in core.email.sent]
        assert templates == [
            "request-from-open-to-committed",
            "request-from-committed-to-accepted",
            "request-delivered",
            "request-completed",
        ]
        assert core.email.sent[0].to_address == alice.email
        assert "Bob" in core.email.sent[0].subject

    def test_received_then_completed(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice, status=RequestStatus.ACCEPTED, provider=bob)

        core.lifecycle.transition(request.id, "received", alice.id)
        core.lifecycle.transition(request.id, "completed", alice.id)

        assert request.status == "completed"
        assert _queued(core) == [
            ("request-from-accepted-to-received", bob.id),
            ("request-completed", bob.id),
        ]


class TestIdempotence:
    def test_duplicate_commit_emits_once(self, core, events, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        first = core.lifecycle.transition(request.id, "committed", bob.id)
        second = core.lifecycle.transition(request.id, "committed", bob.id)

        assert first.status == second.status == "committed"
        assert second.provider_id == bob.id
        assert len(events) == 1
        assert len(core.worker.pending_jobs()) == 1
        assert _history_count(request.id) == 1
        assert db.session.execute(select(func.count(Thread.id))).scalar_one() == 1

    def test_creator_repeating_current_status_is_a_no_op(self, core, events, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        core.lifecycle.transition(request.id, "open", alice.id)

        assert request.status == "open"
        assert events == []

    def test_same_status_by_outsider_is_invalid(self, core, people, make_request):
        alice, bob, carol = people
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "committed", carol.id)

        assert info.value.key is ErrorKey.INVALID_TRANSITION
        assert info.value.category is ErrorCategory.USER


class TestRejections:
    def test_unauthorized_accept_is_forbidden(self, core, events, people, make_request):
        alice, bob, carol = people
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "accepted", carol.id)

        assert info.value.category is ErrorCategory.FORBIDDEN
        assert not info.value.retryable
        db.session.refresh(request)
        assert request.status == "committed"
        assert request.provider_id == bob.id
        assert events == []
        assert core.worker.pending_jobs() == []

    def test_failed_commit_leaves_request_unchanged(self, core, events, people, make_request, monkeypatch):
        alice, bob, _ = people
        request = make_request(alice)

        def failing_commit(session):
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(type(db.session()), "commit", failing_commit)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "committed", bob.id)

        assert info.value.public() == (ErrorKey.GENERIC_INTERNAL_SERVER_ERROR, ErrorCategory.INTERNAL)
        assert info.value.retryable
        monkeypatch.undo()
        db.session.refresh(request)
        assert request.status == "open"
        assert request.provider_id is None
        assert _history_count(request.id) == 0
        assert db.session.execute(select(func.count(Thread.id))).scalar_one() == 0
        assert events == []
        assert core.worker.pending_jobs() == []

    def test_creator_cannot_commit_to_own_request(self, core, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "committed", alice.id)

        assert info.value.category is ErrorCategory.FORBIDDEN

    def test_edge_not_in_table(self, core, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "delivered", alice.id)

        assert info.value.key is ErrorKey.INVALID_TRANSITION
        assert info.value.category is ErrorCategory.USER
        assert not info.value.retryable

    def test_unknown_status_value(self, core, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "withdrawn", alice.id)

        assert info.value.key is ErrorKey.INVALID_REQUEST_INPUT

    def test_unknown_request(self, core, people):
        alice, _, _ = people

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(9999, "committed", alice.id)

        assert info.value.category is ErrorCategory.NOT_FOUND
        assert info.value.key is ErrorKey.NO_ROWS

    def test_cancelled_before_commit_rolls_back(self, core, events, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.lifecycle.transition(request.id, "committed", bob.id, is_cancelled=lambda: True)

        assert info.value.category is ErrorCategory.INTERNAL
        assert info.value.key is ErrorKey.TRANSACTION_CANCELLED
        db.session.refresh(request)
        assert request.status == "open"
        assert request.provider_id is None
        assert events == []
        assert db.session.execute(select(func.count(Thread.id))).scalar_one() == 0
        assert _history_count(request.id) == 0

    def test_forbidden_calls_never_change_state(self, core, events, people, make_request):
        alice, bob, carol = people
        request = make_request(alice, status=RequestStatus.ACCEPTED, provider=bob)
        attempts = [
            ("received", carol.id),
            ("delivered", carol.id),
            ("delivered", alice.id),
            ("open", bob.id),
            ("open", carol.id),
            ("received", bob.id),
        ]

        for status, actor in attempts:
            with pytest.raises(AppError) as info:
                core.lifecycle.transition(request.id, status, actor)
            assert info.value.category is ErrorCategory.FORBIDDEN

        db.session.refresh(request)
        assert request.status == "accepted"
        assert request.provider_id == bob.id
        assert events == []
        assert _history_count(request.id) == 0


class TestOfferWithdrawal:
    def test_provider_withdraws_offer(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)

        core.lifecycle.transition(request.id, "open", bob.id)

        assert request.status == "open"
        assert request.provider_id is None
        assert _queued(core) == [("request-offer-withdrawn", alice.id)]

    def test_creator_rejects_offer(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)

        core.lifecycle.transition(request.id, "open", alice.id)

        assert request.provider_id is None
        assert _queued(core) == [("request-offer-rejected", bob.id)]

    def test_creator_reopens_accepted_request(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice, status=RequestStatus.ACCEPTED, provider=bob)

        core.lifecycle.transition(request.id, "open", alice.id)

        assert request.provider_id is None
        assert _queued(core) == [("request-from-accepted-to-open", bob.id)]


class TestRemoval:
    def test_remove_committed_request_notifies_former_provider(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)

        core.lifecycle.transition(request.id, "removed", alice.id)

        assert request.status == "removed"
        assert request.provider_id is None
        assert _queued(core) == [("request-removed", bob.id)]

    def test_remove_open_request_notifies_nobody(self, core, events, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        core.lifecycle.transition(request.id, "removed", alice.id)

        assert request.status == "removed"
        assert len(events) == 1
        assert core.worker.pending_jobs() == []


class TestInvariants:
    def test_provider_matches_status_through_a_long_sequence(self, core, people, make_request):
        alice, bob, carol = people
        request = make_request(alice)
        steps = [
            ("committed", bob.id),
            ("open", bob.id),
            ("committed", carol.id),
            ("open", alice.id),
            ("committed", bob.id),
            ("accepted", alice.id),
            ("open", alice.id),
            ("committed", carol.id),
            ("accepted", alice.id),
            ("delivered", carol.id),
            ("completed", alice.id),
        ]

        for status, actor in steps:
            core.lifecycle.transition(request.id, status, actor)
            _assert_provider_invariant(request)

        assert request.status == "completed"
        assert request.provider_id == carol.id
        history = db.session.execute(
            select(RequestHistory).where(RequestHistory.request_id == request.id).order_by(RequestHistory.id)
        ).scalars().all()
        assert [(h.old_status, h.new_status) for h in history][:2] == [("open", "committed"), ("committed", "open")]
        assert history[0].new_provider_id == bob.id
        assert history[1].old_provider_id == bob.id
        assert history[1].new_provider_id is None
        assert db.session.get(Request, request.id).status == "completed"
