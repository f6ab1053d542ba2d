import logging

import pytest
from sqlalchemy import select

from wecarry.core.errors import ConfigError
from wecarry.core.events.event_models import RequestStatusChanged, UserCreated
from wecarry.domains.notifications.dispatcher import NotificationDispatcher
from wecarry.domains.notifications.jobs import NEW_MESSAGE, truncate
from wecarry.domains.notifications.templates import TEMPLATES, TemplateCatalog
from wecarry.domains.requests import services as request_services
from wecarry.domains.requests.models import RequestStatus
from wecarry.domains.threads.models import ThreadParticipant
from wecarry.extensions import db
from wecarry.platform.worker.worker import STATUS_FAILED, STATUS_SUCCEEDED

pytestmark = pytest.mark.integration


def _participant(thread_id, user_id):
    return db.session.execute(
        select(ThreadParticipant).where(
            ThreadParticipant.thread_id == thread_id, ThreadParticipant.user_id == user_id
        )
    ).scalar_one()


class TestDispatcherConstruction:
    def test_missing_template_is_a_config_error(self, core):
        partial = {"en": {k: v for k, v in TEMPLATES["en"].items() if k != "request-delivered"}}

        with pytest.raises(ConfigError) as info:
            NotificationDispatcher(core.worker, TemplateCatalog(partial), {})

        assert "request-delivered" in str(info.value)

    def test_full_catalog_is_accepted(self, core):
        NotificationDispatcher(core.worker, TemplateCatalog(), {"UI_URL": "https://example.org"})


class TestChannels:
    def test_both_sends_email_and_text(self, core, make_user, make_request):
        alice = make_user("Alice", contact_preference="both", phone_number="+15550100")
        bob = make_user("Bob")
        request = make_request(alice)

        core.lifecycle.transition(request.id, "committed", bob.id)

        channels = sorted(job.args["channel"] for job in core.worker.pending_jobs())
        assert channels == ["email", "mobile"]
        core.worker.drain()
        assert core.email.number_sent == 1
        assert core.mobile.number_sent == 1
        assert core.mobile.sent[0].to_address == "+15550100"

    def test_text_only_uses_mobile(self, core, make_user, make_request):
        alice = make_user("Alice", contact_preference="text", phone_number="+15550100")
        bob = make_user("Bob")
        request = make_request(alice)

        core.lifecycle.transition(request.id, "committed", bob.id)
        core.worker.drain()

        assert core.email.number_sent == 0
        assert core.mobile.number_sent == 1


class TestDeduplication:
    def test_same_transaction_notifies_once(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)
        event = RequestStatusChanged(
            request_id=request.id,
            old_status="open",
            new_status="committed",
            actor_id=bob.id,
            provider_id=bob.id,
            transaction_id="tx-1",
        )

        first = core.dispatcher.handle(event)
        second = core.dispatcher.handle(event)

        assert len(first) == 1
        assert second == []

    def test_new_transaction_notifies_again(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice, status=RequestStatus.COMMITTED, provider=bob)
        fields = dict(request_id=request.id, old_status="open", new_status="committed", actor_id=bob.id, provider_id=bob.id)

        core.dispatcher.handle(RequestStatusChanged(transaction_id="tx-1", **fields))
        again = core.dispatcher.handle(RequestStatusChanged(transaction_id="tx-2", **fields))

        assert len(again) == 1


class TestAudience:
    def test_new_request_goes_to_opted_in_users_except_creator(self, core, make_user):
        alice = make_user("Alice", notify_on_new_requests=True)
        bob = make_user("Bob", notify_on_new_requests=True)
        make_user("Carol")

        request = request_services.create_request(
            core.bus,
            alice.id,
            {"title": "Vanilla extract", "destination": {"description": "Lima, Peru", "country": "pe"}},
        )

        queued = [(job.args["template_key"], job.args["recipient_id"]) for job in core.worker.pending_jobs()]
        assert queued == [("new-request", bob.id)]
        assert request.destination.country == "PE"

    def test_new_user_gets_welcome(self, core, make_user):
        dave = make_user("Dave")

        jobs = core.dispatcher.handle(UserCreated(user_id=dave.id))
        core.worker.drain()

        assert [job.args["template_key"] for job in jobs] == ["new-user-welcome"]
        assert core.email.sent[0].subject == "Welcome to WeCarry"
        assert "Dave" in core.email.sent[0].body

    def test_recipient_language_is_used(self, core, make_user, make_request):
        alice = make_user("Alice", language="fr")
        bob = make_user("Bob")
        request = make_request(alice)

        core.lifecycle.transition(request.id, "committed", bob.id)
        core.worker.drain()

        assert "propose" in core.email.sent[0].subject

    def test_title_is_truncated_in_substitutions(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice, title="A very long request title")

        core.lifecycle.transition(request.id, "committed", bob.id)

        data = core.worker.pending_jobs()[0].args["data"]
        assert data["requestTitle"] == "A very long r..."
        assert data["requestURL"].endswith(f"/requests/{request.uuid}")
        assert truncate("short") == "short"


class TestNewMessageJob:
    def test_missing_message_fails_permanently_after_one_attempt(self, core, make_user, caplog):
        bob = make_user("Bob")

        with caplog.at_level(logging.ERROR, logger="wecarry.platform.worker.worker"):
            job = core.worker.enqueue(NEW_MESSAGE, {"message_id": 4040, "recipient_id": bob.id, "channel": "email"})
            core.worker.drain()

        assert job.status == STATUS_FAILED
        assert job.attempts == 1
        assert "failed permanently" in caplog.text
        assert core.email.number_sent == 0

    def test_sends_and_records_notification_time(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice)
        message = core.threads.send_message(request.id, bob.id, "I land on Tuesday")

        jobs = core.worker.pending_jobs()
        core.worker.drain()

        assert [job.status for job in jobs] == [STATUS_SUCCEEDED]
        sent = core.email.sent_to(alice.email)
        assert len(sent) == 1
        assert sent[0].template == "new-message"
        assert "I land on Tuesday" in sent[0].body
        assert "Bob" in sent[0].subject
        participant = _participant(message.thread_id, alice.id)
        assert participant.last_emailed_at is not None
        assert participant.last_texted_at is None

    def test_skips_recipient_who_already_viewed(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice)
        message = core.threads.send_message(request.id, bob.id, "hello")
        core.threads.mark_viewed(message.thread_id, alice.id)

        core.worker.drain()

        assert core.email.number_sent == 0

    def test_one_notification_covers_earlier_unsent_messages(self, core, make_user, make_request):
        alice, bob = make_user("Alice"), make_user("Bob")
        request = make_request(alice)
        first = core.threads.send_message(request.id, bob.id, "one")
        core.threads.send_message(request.id, bob.id, "two", thread_id=first.thread_id)

        assert len(core.worker.pending_jobs()) == 2
        core.worker.drain()

        assert core.email.number_sent == 1

    def test_each_channel_is_its_own_job(self, core, make_user, make_request):
        alice = make_user("Alice", contact_preference="both", phone_number="+15550100")
        bob = make_user("Bob")
        request = make_request(alice)
        message = core.threads.send_message(request.id, bob.id, "I land on Tuesday")

        jobs = core.worker.pending_jobs()
        assert sorted(job.args["channel"] for job in jobs) == ["email", "mobile"]
        core.worker.drain()

        assert [job.status for job in jobs] == [STATUS_SUCCEEDED, STATUS_SUCCEEDED]
        assert core.email.number_sent == 1
        assert core.mobile.number_sent == 1
        participant = _participant(message.thread_id, alice.id)
        assert participant.last_emailed_at is not None
        assert participant.last_texted_at is not None
