from datetime import timedelta

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.dialects import postgresql

from wecarry.core.errors import AppError, ErrorCategory, ErrorKey
from wecarry.core.events.event_models import ThreadMessageAdded
from wecarry.domains.threads.models import Thread, ThreadParticipant
from wecarry.extensions import db

pytestmark = pytest.mark.integration


@pytest.fixture()
def people(make_user):
    return make_user("Alice"), make_user("Bob"), make_user("Carol")


@pytest.fixture()
def messages_added(core):
    seen = []
    core.bus.subscribe(ThreadMessageAdded.kind, seen.append)
    return seen


class TestEnsureThread:
    def test_creates_thread_with_creator_and_user(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        thread = core.threads.ensure_thread(request, bob.id)
        db.session.commit()

        assert thread.request_id == request.id
        assert sorted(thread.participant_ids) == sorted([alice.id, bob.id])
        assert all(p.last_viewed_at is None for p in thread.participants)

    def test_returns_existing_thread(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        first = core.threads.ensure_thread(request, bob.id)
        second = core.threads.ensure_thread(request, bob.id)

        assert first.id == second.id

    def test_separate_threads_per_user(self, core, people, make_request):
        alice, bob, carol = people
        request = make_request(alice)

        assert core.threads.ensure_thread(request, bob.id).id != core.threads.ensure_thread(request, carol.id).id

    def test_creator_alone_cannot_open_thread(self, core, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.threads.ensure_thread(request, alice.id)

        assert info.value.key is ErrorKey.THREAD_NEEDS_OTHER_USER
        assert info.value.category is ErrorCategory.USER


class TestMessages:
    def test_fan_out_to_every_other_participant(self, core, people, make_request, messages_added):
        alice, bob, carol = people
        request = make_request(alice)
        thread = core.threads.ensure_thread(request, bob.id)
        thread.participants.append(ThreadParticipant(user_id=carol.id))
        db.session.commit()

        message = core.threads.append_message(thread.id, alice.id, "Can you bring it Friday?")

        jobs = core.worker.pending_jobs()
        assert [job.name for job in jobs] == ["new_message", "new_message"]
        assert sorted(job.args["recipient_id"] for job in jobs) == sorted([bob.id, carol.id])
        assert all(job.args["message_id"] == message.id for job in jobs)
        assert thread.participant_for(alice.id).last_viewed_at == message.sent_at
        assert len(messages_added) == 1
        assert messages_added[0].sender_id == alice.id
        assert messages_added[0].request_id == request.id

    def test_non_participant_cannot_send(self, core, people, make_request, messages_added):
        alice, bob, carol = people
        request = make_request(alice)
        thread = core.threads.ensure_thread(request, bob.id)
        db.session.commit()

        with pytest.raises(AppError) as info:
            core.threads.append_message(thread.id, carol.id, "hi")

        assert info.value.category is ErrorCategory.FORBIDDEN
        assert info.value.key is ErrorKey.NOT_THREAD_PARTICIPANT
        assert thread.messages == []
        assert messages_added == []

    def test_empty_message_is_rejected(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        thread = core.threads.ensure_thread(request, bob.id)
        db.session.commit()

        with pytest.raises(AppError) as info:
            core.threads.append_message(thread.id, bob.id, "   ")

        assert info.value.key is ErrorKey.INVALID_REQUEST_INPUT

    def test_send_message_opens_thread_for_new_user(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)

        message = core.threads.send_message(request.id, bob.id, "I can carry this")

        threads = core.threads.threads_for_user(alice.id)
        assert [t.id for t in threads] == [message.thread_id]
        assert [t.id for t in core.threads.threads_for_user(bob.id)] == [message.thread_id]
        assert message.sent_by_id == bob.id

    def test_creator_must_name_the_thread(self, core, people, make_request):
        alice, _, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.threads.send_message(request.id, alice.id, "anyone?")

        assert info.value.key is ErrorKey.THREAD_NEEDS_OTHER_USER

    def test_creator_replies_in_existing_thread(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        first = core.threads.send_message(request.id, bob.id, "I can carry this")

        reply = core.threads.send_message(request.id, alice.id, "Great", thread_id=first.thread_id)

        assert reply.thread_id == first.thread_id

    def test_thread_must_belong_to_request(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        other = make_request(alice, title="Coffee")
        message = core.threads.send_message(request.id, bob.id, "hello")

        with pytest.raises(AppError) as info:
            core.threads.send_message(other.id, bob.id, "wrong", thread_id=message.thread_id)

        assert info.value.key is ErrorKey.INVALID_REQUEST_INPUT

    def test_unknown_request(self, core, people):
        _, bob, _ = people

        with pytest.raises(AppError) as info:
            core.threads.send_message(12345, bob.id, "hello")

        assert info.value.category is ErrorCategory.NOT_FOUND
        assert info.value.key is ErrorKey.NO_ROWS

    def test_empty_first_message_leaves_no_thread(self, core, people, make_request, messages_added):
        alice, bob, _ = people
        request = make_request(alice)

        with pytest.raises(AppError) as info:
            core.threads.send_message(request.id, bob.id, "  \n ")

        assert info.value.key is ErrorKey.INVALID_REQUEST_INPUT
        assert db.session.execute(select(func.count(Thread.id))).scalar_one() == 0
        assert messages_added == []

    def test_first_message_locks_the_request_row(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        statements = []

        def record(state):
            if state.is_select and not (state.is_relationship_load or state.is_column_load):
                statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

        session = db.session()
        event.listen(session, "do_orm_execute", record)
        try:
            first = core.threads.send_message(request.id, bob.id, "I can carry this")
            second = core.threads.send_message(request.id, bob.id, "Leaving Tuesday")
        finally:
            event.remove(session, "do_orm_execute", record)

        locked = [s for s in statements if "FROM request" in s and "FOR UPDATE" in s]
        assert len(locked) == 2
        assert second.thread_id == first.thread_id
        assert db.session.execute(select(func.count(Thread.id))).scalar_one() == 1


class TestViewing:
    def test_unread_count_tracks_last_viewed(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        first = core.threads.send_message(request.id, bob.id, "one")
        thread_id = first.thread_id

        # Alice has never viewed the thread.
        assert core.threads.unread_count(thread_id, alice.id) == 1
        assert core.threads.unread_count(thread_id, bob.id) == 0

        core.threads.mark_viewed(thread_id, alice.id, at=first.sent_at)
        assert core.threads.unread_count(thread_id, alice.id) == 0

        core.threads.send_message(request.id, bob.id, "two", thread_id=thread_id)
        assert core.threads.unread_count(thread_id, alice.id) == 1

    def test_last_viewed_never_decreases(self, core, people, make_request):
        alice, bob, _ = people
        request = make_request(alice)
        message = core.threads.send_message(request.id, bob.id, "hello")
        later = message.sent_at + timedelta(minutes=5)

        core.threads.mark_viewed(message.thread_id, alice.id, at=later)
        participant = core.threads.mark_viewed(message.thread_id, alice.id, at=message.sent_at)

        assert participant.last_viewed_at == later

    def test_non_participant_cannot_mark_or_count(self, core, people, make_request):
        alice, bob, carol = people
        request = make_request(alice)
        message = core.threads.send_message(request.id, bob.id, "hello")

        with pytest.raises(AppError) as info:
            core.threads.mark_viewed(message.thread_id, carol.id)
        assert info.value.category is ErrorCategory.FORBIDDEN

        with pytest.raises(AppError) as info:
            core.threads.unread_count(message.thread_id, carol.id)
        assert info.value.category is ErrorCategory.FORBIDDEN

    def test_unknown_thread(self, core, people):
        alice, _, _ = people

        with pytest.raises(AppError) as info:
            core.threads.mark_viewed(999, alice.id)

        assert info.value.category is ErrorCategory.NOT_FOUND
