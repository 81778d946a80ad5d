"""
End-to-end tests of the application wiring with the in-memory backend.
"""

import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(__file__))

from fakes import FakeVoicePlatform, settle

from buddy.core.config import ApplicationConfig, ConversationConfig
from buddy.core.events import EventType
from buddy.main import BuddyApplication, ConsoleDriver, parse_args
from buddy.models import AvatarDraft, Cohort, ProfileDraft, Speaker, Stage
from buddy.platform import NullSynthesizer


def offline_config():
    with patch.dict(os.environ, {}, clear=True):
        return ApplicationConfig(
            _env_file=None,
            conversation=ConversationConfig(_env_file=None, thinking_delay=0),
        )


class TestApplication(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.app = BuddyApplication(config=offline_config(), offline=True)
        self.app.voice_platform = FakeVoicePlatform()
        await self.app.initialize()

    async def asyncTearDown(self):
        await self.app.shutdown()

    async def register_teen(self):
        machine = self.app.machine
        await machine.activate_logo()
        await machine.choose_register()
        await machine.choose_cohort("13-17")
        await machine.register(ProfileDraft(
            name="Kai", email="kai@example.com", password="secret1",
            parent_or_family_email="parent@example.com",
        ))
        return await machine.complete_avatar(AvatarDraft(
            favorite_color="Purple", character="Magic Unicorn", personality="Adventurous", name="Nova",
        ))

    async def test_starts_on_landing_with_null_speech(self):
        self.assertEqual(self.app.machine.stage, Stage.LANDING)
        self.assertIsInstance(self.app.synthesizer, NullSynthesizer)
        self.assertEqual(
            self.app.service_registry.get_service_state("OnboardingSessionMachine"), "running")
        startup = self.app.event_tracer.get_events_by_type(EventType.APPLICATION_STARTUP_COMPLETED)
        self.assertEqual(len(startup), 1)

    async def test_registration_to_conversation(self):
        self.assertEqual(await self.register_teen(), Stage.DASHBOARD)

        conversation = await self.app.open_conversation()
        reply = await conversation.send("tell me a joke")

        self.assertEqual(conversation.cohort, Cohort.TEENS)
        self.assertTrue(conversation.turns[0].text.startswith("Hey Kai!"))
        self.assertEqual(reply.speaker, Speaker.COMPANION)
        self.assertTrue(self.app.services["avatar"].is_talking)

    async def test_logout_closes_conversation(self):
        await self.register_teen()
        conversation = await self.app.open_conversation()

        await self.app.close_conversation()
        await self.app.machine.logout()

        self.assertFalse(conversation.running)
        self.assertIsNone(self.app.conversation)
        self.assertEqual(self.app.machine.stage, Stage.LANDING)

    async def test_console_prints_companion_turns(self):
        ConsoleDriver(self.app)
        await self.register_teen()

        with patch("builtins.print") as printed:
            conversation = await self.app.open_conversation()
            await conversation.send("hello")
            await settle()

        lines = [call.args[0] for call in printed.call_args_list]
        self.assertEqual(len(lines), 2)
        self.assertTrue(all(line.startswith("🦄 Nova: ") for line in lines))

    async def test_shutdown_is_idempotent(self):
        await self.app.shutdown()
        await self.app.shutdown()
        self.assertEqual(
            self.app.service_registry.get_service_state("VoiceCaptureController"), "stopped")


class TestArguments(unittest.TestCase):

    def test_flags(self):
        args = parse_args(["--offline", "--debug"])
        self.assertTrue(args.offline)
        self.assertTrue(args.debug)
        self.assertFalse(parse_args([]).offline)


if __name__ == "__main__":
    unittest.main()
