"""Builds the application's long-lived collaborators once at start-up."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, field
from typing import Dict

from flask import Flask, current_app, has_app_context

from wecarry.core.auth.providers import Provider, build_providers
from wecarry.core.events.event_bus import EventBus
from wecarry.core.users.listeners import UserCreatedLogger
from wecarry.domains.notifications.dispatcher import NotificationDispatcher
from wecarry.domains.notifications.jobs import NotificationJobs
from wecarry.domains.notifications.senders import (
    EmailService,
    MobileService,
    build_email_service,
    build_mobile_service,
)
from wecarry.domains.notifications.templates import TemplateCatalog
from wecarry.domains.requests.lifecycle import RequestLifecycle
from wecarry.domains.threads.services import ThreadService
from wecarry.platform.worker import Worker, WorkerConfig

logger = logging.getLogger(__name__)

EXTENSION_KEY = "wecarry_core"


@dataclass
class Core:
    bus: EventBus
    worker: Worker
    templates: TemplateCatalog
    email: EmailService
    mobile: MobileService
    dispatcher: NotificationDispatcher
    jobs: NotificationJobs
    threads: ThreadService
    lifecycle: RequestLifecycle
    providers: Dict[str, Provider] = field(default_factory=dict)


def build_core(app: Flask) -> Core:
    config = app.config

    def job_context():
        # drain() called from inside a request or test already has a context.
        if has_app_context():
            return contextlib.nullcontext()
        return app.app_context()

    bus = EventBus()
    worker = Worker(WorkerConfig.from_env(config), context_factory=job_context)
    templates = TemplateCatalog()
    email = build_email_service(config)
    mobile = build_mobile_service(config)

    jobs = NotificationJobs(email, mobile, templates, config)
    jobs.register(worker)
    dispatcher = NotificationDispatcher(worker, templates, config)
    threads = ThreadService(bus)
    lifecycle = RequestLifecycle(bus, threads)

    bus.register(UserCreatedLogger())
    bus.register(dispatcher)

    core = Core(
        bus=bus,
        worker=worker,
        templates=templates,
        email=email,
        mobile=mobile,
        dispatcher=dispatcher,
        jobs=jobs,
        threads=threads,
        lifecycle=lifecycle,
        providers=build_providers(config),
    )
    app.extensions[EXTENSION_KEY] = core
    logger.debug("Core built (email=%s, mobile=%s)", type(email).__name__, type(mobile).__name__)
    return core


def get_core() -> Core:
    return current_app.extensions[EXTENSION_KEY]
