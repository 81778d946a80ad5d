"""
Main entry point for the Buddy companion.

This module wires the event system, the backend and the platform adapters to
the services, and runs an interactive console that walks through onboarding
and the dashboard chat. It handles signal management, logging setup, and
system lifecycle.
"""

import argparse
import asyncio
import getpass
import logging
import signal
import sys
from typing import Any, Dict, Optional

import structlog
from dotenv import load_dotenv

from buddy.care import CareService
from buddy.clients.base import Backend
from buddy.clients.http import HttpBackend
from buddy.clients.inmemory import InMemoryBackend
from buddy.conversation.responses import ResponseEngine
from buddy.conversation.session import DashboardConversationSession
from buddy.core import (
    ApplicationConfig, EventBus, EventRegistry, EventTracer, ServiceRegistry, get_config
)
from buddy.core.errors import BuddyError, SessionExpired
from buddy.core.events import EventType
from buddy.events.conversation import ConversationTurnEvent
from buddy.events.system import ApplicationStartupCompletedEvent
from buddy.models import AvatarDraft, Cohort, ProfileDraft, Speaker, Stage
from buddy.onboarding.avatar import CHARACTER_EMOJIS, FAVORITE_COLORS, PERSONALITIES, SUGGESTED_NAMES
from buddy.onboarding.machine import OnboardingSessionMachine
from buddy.platform import create_synthesizer, create_voice_platform
from buddy.voice.avatar_sync import TalkingAvatarSync
from buddy.voice.capture import VoiceCaptureController
from buddy.voice.speech import LinearDurationEstimator, SpeechOutputController


def setup_logging(level: str = "INFO"):
    """Configure structured logging for the application."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Logs go to stderr so they do not interleave with the chat on stdout
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level, logging.INFO),
        stream=sys.stderr,
    )


class BuddyApplication:
    """
    Main application class for the Buddy companion.

    Owns the event system, the backend, the platform adapters and the
    long-lived services. A DashboardConversationSession is created each time
    the session reaches the dashboard.
    """

    def __init__(self,
                 config: Optional[ApplicationConfig] = None,
                 backend: Optional[Backend] = None,
                 offline: bool = False):
        self.logger = structlog.get_logger(app="buddy")
        self.config = config or get_config()

        self.event_registry = EventRegistry()
        self.service_registry = ServiceRegistry()

        if self.config.event.tracing_enabled:
            self.event_tracer = EventTracer(max_events=self.config.event.max_trace_events)
        else:
            self.event_tracer = None

        self.event_bus = EventBus(self.event_registry, self.event_tracer)
        self.event_registry.register_event(
            EventType.APPLICATION_STARTUP_COMPLETED,
            ApplicationStartupCompletedEvent,
            "All services started and the session machine is ready"
        )

        if backend is None:
            backend = InMemoryBackend() if offline else HttpBackend(self.config.api)
        self.backend = backend
        self.voice_platform = create_voice_platform(self.config.capture)
        self.synthesizer = create_synthesizer(self.config.speech)
        self.engine = ResponseEngine()

        self.services: Dict[str, Any] = {}
        self.conversation: Optional[DashboardConversationSession] = None
        self._running = True

    @property
    def machine(self) -> OnboardingSessionMachine:
        return self.services["session"]

    @property
    def care(self) -> CareService:
        return self.services["care"]

    async def initialize(self):
        """Start all services and restore a previous session if the provider still has one."""
        self.logger.info("Initializing Buddy companion")

        try:
            self.services["session"] = await self._init_service(
                OnboardingSessionMachine, backend=self.backend)
            self.services["capture"] = await self._init_service(
                VoiceCaptureController, platform=self.voice_platform)
            self.services["speech"] = await self._init_service(
                SpeechOutputController,
                synthesizer=self.synthesizer,
                estimator=LinearDurationEstimator(
                    ms_per_char=self.config.speech.ms_per_char,
                    base_ms=self.config.speech.base_ms,
                ))
            self.services["avatar"] = await self._init_service(TalkingAvatarSync)
            self.services["care"] = await self._init_service(CareService, machine=self.machine)

            await self.event_bus.publish(
                ApplicationStartupCompletedEvent(producer_name="buddy"),
                "buddy"
            )

            await self.machine.resume()
            self.logger.info("Buddy companion initialization complete", stage=self.machine.stage.value)

        except Exception as e:
            self.logger.error("Failed to initialize application", error=str(e), exc_info=True)
            raise

    async def _init_service(self, service_class, **kwargs):
        service_name = service_class.__name__
        self.logger.info(f"Initializing service: {service_name}")

        service = service_class(
            event_bus=self.event_bus,
            service_registry=self.service_registry,
            config=self.config,
            **kwargs
        )

        try:
            await service.start()
            return service
        except Exception as e:
            self.logger.error(f"Failed to start service: {service_name}",
                              error=str(e), exc_info=True)
            raise

    async def open_conversation(self) -> DashboardConversationSession:
        """Start a fresh conversation for the dashboard the session is on."""
        await self.close_conversation()
        session = self.machine.session
        if session.stage is not Stage.DASHBOARD:
            raise BuddyError(f"No dashboard in stage {session.stage.value}")

        self.conversation = DashboardConversationSession(
            event_bus=self.event_bus,
            service_registry=self.service_registry,
            profile=session.profile,
            avatar=session.avatar,
            engine=self.engine,
            speech=self.services["speech"],
            avatar_sync=self.services["avatar"],
            capture=self.services["capture"],
            config=self.config.conversation,
        )
        await self.conversation.start()
        return self.conversation

    async def close_conversation(self) -> None:
        if self.conversation is not None:
            await self.conversation.close()
            self.conversation = None

    async def shutdown(self):
        """Shut down all services and clean up resources."""
        if not self._running:
            return

        self._running = False
        self.logger.info("Shutting down Buddy companion")

        await self.close_conversation()
        for name, service in reversed(list(self.services.items())):
            try:
                self.logger.info(f"Stopping service: {name}")
                await service.stop()
            except Exception as e:
                self.logger.error(f"Error stopping service {name}: {e}")

        await self.synthesizer.shutdown()
        await self.voice_platform.shutdown()
        await self.backend.aclose()
        self.logger.info("Buddy companion shutdown complete")


class ConsoleDriver:
    """Text front end that walks the session machine through each stage."""

    def __init__(self, app: BuddyApplication):
        self.app = app
        # Voice replies arrive outside the prompt loop
        app.event_bus.subscribe(EventType.CONVERSATION_TURN, self.on_turn, "ConsoleDriver")

    async def on_turn(self, event: ConversationTurnEvent) -> None:
        conversation = self.app.conversation
        if conversation is None or event.speaker != Speaker.COMPANION.value:
            return
        avatar = conversation.avatar
        print(f"{avatar.emoji} {avatar.name}: {event.text}")

    @staticmethod
    async def ask(prompt: str, secret: bool = False) -> str:
        reader = getpass.getpass if secret else input
        return (await asyncio.to_thread(reader, prompt)).strip()

    @staticmethod
    async def choose(prompt: str, options) -> str:
        options = list(options)
        for number, option in enumerate(options, start=1):
            print(f"  {number}. {option}")
        while True:
            answer = await ConsoleDriver.ask(f"{prompt}: ")
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return options[int(answer) - 1]
            if answer in options:
                return answer
            print("Please pick one of the options.")

    async def run(self) -> None:
        handlers = {
            Stage.LANDING: self.landing,
            Stage.LOGIN: self.login,
            Stage.AGE_SELECT: self.age_select,
            Stage.REGISTERING: self.register,
            Stage.CREATING_AVATAR: self.create_avatar,
            Stage.ERROR: self.error,
            Stage.DASHBOARD: self.dashboard,
        }
        while self.app._running:
            handler = handlers.get(self.app.machine.stage)
            if handler is None:
                await asyncio.sleep(0.1)
                continue
            try:
                if await handler() is False:
                    return
            except BuddyError as e:
                print(f"! {e.message}")

    async def landing(self):
        print("\nWelcome to YOUR BUDDY - your AI companion for every stage of life")
        await self.ask("Press Enter to start ")
        await self.app.machine.activate_logo()

    async def login(self):
        choice = await self.choose("Login or register", ["login", "register", "back", "quit"])
        if choice == "quit":
            return False
        if choice == "back":
            await self.app.machine.back()
        elif choice == "register":
            await self.app.machine.choose_register()
        else:
            email = await self.ask("Email: ")
            password = await self.ask("Password: ", secret=True)
            await self.app.machine.login(email, password)

    async def age_select(self):
        groups = [cohort.age_group for cohort in Cohort]
        choice = await self.choose("Age group", groups + ["back"])
        if choice == "back":
            await self.app.machine.back()
        else:
            await self.app.machine.choose_cohort(choice)

    async def register(self):
        cohort = self.app.machine.session.selected_cohort
        draft = ProfileDraft(
            name=await self.ask("Name: "),
            email=await self.ask("Email: "),
            password=await self.ask("Password: ", secret=True),
        )
        if cohort is Cohort.SENIOR:
            draft.parent_or_family_email = await self.ask("Family member email (son/daughter): ")
        elif cohort.requires_guardian:
            draft.parent_or_family_email = await self.ask("Parent account email: ")
        draft.preferred_language = await self.ask("Preferred language [English]: ") or "English"
        draft.link_device = (await self.ask("Connect a smartwatch? [y/N]: ")).lower().startswith("y")
        await self.app.machine.register(draft)

    async def create_avatar(self):
        print("\nCreating your buddy")
        draft = AvatarDraft(
            favorite_color=await self.choose("Favorite color", FAVORITE_COLORS),
            character=await self.choose("Character", CHARACTER_EMOJIS),
            personality=await self.choose("Personality", PERSONALITIES),
        )
        print(f"Suggested names: {', '.join(SUGGESTED_NAMES)}")
        draft.name = await self.ask("Name your buddy: ")
        await self.app.machine.complete_avatar(draft)

    async def error(self):
        print(f"! {self.app.machine.session.last_error}")
        choice = await self.choose("What now", ["retry", "logout"])
        if choice == "retry":
            await self.app.machine.retry_load()
        else:
            await self.app.machine.logout()

    async def dashboard(self):
        print()
        conversation = await self.app.open_conversation()
        print("Commands: /voice, /sos, /logout, /quit")

        while self.app.machine.stage is Stage.DASHBOARD:
            line = await self.ask("> ")
            if line == "/quit":
                return False
            if line == "/logout":
                await self.app.close_conversation()
                await self.app.machine.logout()
                return
            if line == "/sos":
                try:
                    await self.app.care.raise_sos()
                    print("SOS Alert Sent! Emergency contact has been notified.")
                except SessionExpired:
                    break
                continue
            if line == "/voice":
                if not await conversation.listen():
                    capture = self.app.services["capture"]
                    print(f"! {capture.reason or 'Voice input is busy.'}")
                else:
                    print("Listening...")
                continue

            await conversation.send(line)

        await self.app.close_conversation()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="buddy", description="Your Buddy companion console")
    parser.add_argument("--offline", action="store_true",
                        help="use the in-memory backend instead of the hosted one")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser.parse_args(argv)


async def main(argv=None):
    """Application entry point."""
    load_dotenv()
    args = parse_args(argv)
    config = get_config()
    setup_logging("DEBUG" if args.debug or config.debug else config.log_level.value)

    app = BuddyApplication(config=config, offline=args.offline)
    console = asyncio.current_task()

    def handle_signal(sig):
        app.logger.info(f"Received signal {sig.name}, shutting down")
        console.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await app.initialize()
        await ConsoleDriver(app).run()
    except (asyncio.CancelledError, EOFError):
        app.logger.info("Console closed")
    finally:
        await app.shutdown()


def run():
    try:
        asyncio.run(main())
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
