import pytest
import requests

from wecarry.core.errors import ConfigError
from wecarry.domains.notifications import templates as tpl
from wecarry.domains.notifications.dispatcher import required_templates
from wecarry.domains.notifications.senders import (
    DummyEmailService,
    Message,
    SendError,
    SendGridEmailService,
    build_email_service,
    build_mobile_service,
)
from wecarry.domains.notifications.templates import MessageTemplate, TemplateCatalog

pytestmark = pytest.mark.unit


class TestTemplateCatalog:
    def test_english_table_covers_every_notification(self):
        assert TemplateCatalog().missing(required_templates()) == []

    def test_missing_placeholders_render_empty(self):
        catalog = TemplateCatalog({"en": {"hello": MessageTemplate("Hi {{ name }}", "{{ greeting }}!")}})

        rendered = catalog.render("hello", {"name": "Bob"})

        assert rendered.subject == "Hi Bob"
        assert rendered.body == "!"

    def test_values_are_not_escaped(self):
        rendered = TemplateCatalog().render(
            tpl.REQUEST_REMOVED, {"appName": "WeCarry", "requestTitle": "Salt & <pepper>"}
        )

        assert rendered.subject == "WeCarry: \"Salt & <pepper>\" was removed"

    def test_locale_falls_back_to_english(self):
        catalog = TemplateCatalog()

        assert catalog.get(tpl.REQUEST_REMOVED, "fr") == catalog.get(tpl.REQUEST_REMOVED, "en")
        assert catalog.get(tpl.NEW_USER_WELCOME, "xx") == catalog.get(tpl.NEW_USER_WELCOME)

    def test_region_is_ignored(self):
        rendered = TemplateCatalog().render(tpl.NEW_USER_WELCOME, {"appName": "WeCarry"}, "fr-CA")

        assert rendered.subject == "Bienvenue sur WeCarry"

    def test_has(self):
        catalog = TemplateCatalog()

        assert catalog.has(tpl.NEW_MESSAGE)
        assert not catalog.has("no-such-template")


class FakeResponse:
    def __init__(self, status_code, text=""):
        self.status_code = status_code
        self.text = text


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _message():
    return Message(
        subject="Hello",
        body="Body",
        to_name="Bob",
        to_address="bob@example.com",
        from_name="WeCarry",
        from_address="no_reply@example.com",
        template=tpl.NEW_USER_WELCOME,
    )


class TestSenders:
    def test_dummy_records_messages(self):
        service = DummyEmailService()

        service.send(_message())

        assert service.number_sent == 1
        assert service.sent_to("bob@example.com")[0].subject == "Hello"
        service.reset()
        assert service.number_sent == 0

    def test_sendgrid_posts_payload(self):
        session = FakeSession(FakeResponse(202))
        service = SendGridEmailService("sg-key", session=session)

        service.send(_message())

        url, kwargs = session.calls[0]
        assert url.endswith("/v3/mail/send")
        assert kwargs["headers"]["Authorization"] == "Bearer sg-key"
        assert kwargs["json"]["personalizations"][0]["to"][0]["email"] == "bob@example.com"
        assert kwargs["json"]["content"][0]["value"] == "Body"

    def test_sendgrid_rejection_raises(self):
        service = SendGridEmailService("sg-key", session=FakeSession(FakeResponse(401, "unauthorized")))

        with pytest.raises(SendError):
            service.send(_message())

    def test_sendgrid_network_error_raises(self):
        session = FakeSession(error=requests.ConnectionError("refused"))
        service = SendGridEmailService("sg-key", session=session)

        with pytest.raises(SendError):
            service.send(_message())

    def test_sendgrid_requires_key(self):
        with pytest.raises(ConfigError):
            build_email_service({"EMAIL_SERVICE": "sendgrid", "SENDGRID_API_KEY": ""})

    def test_unknown_services(self):
        with pytest.raises(ConfigError):
            build_email_service({"EMAIL_SERVICE": "carrier-pigeon"})
        with pytest.raises(ConfigError):
            build_mobile_service({"MOBILE_SERVICE": "sms-gateway"})
