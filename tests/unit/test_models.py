"""
Unit tests for the domain models, translations and configuration.
"""

import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from pydantic import ValidationError as PydanticValidationError

from buddy.core.config import ApiConfig, ApplicationConfig, CaptureConfig, ConversationConfig, SpeechConfig
from buddy.i18n import resolve_locale, translate
from buddy.models import PROFILE_WIRE_FIELDS, AuthToken, Cohort, Profile, Session


class TestCohort(unittest.TestCase):

    def test_parse_accepts_names_and_age_groups(self):
        self.assertIs(Cohort.parse("kids"), Cohort.KIDS)
        self.assertIs(Cohort.parse("13-17"), Cohort.TEENS)
        self.assertIs(Cohort.parse("18-20"), Cohort.YOUNG_ADULT)
        self.assertIs(Cohort.parse("21-40"), Cohort.ADULT)
        self.assertIs(Cohort.parse("senior"), Cohort.SENIOR)
        with self.assertRaises(ValueError):
            Cohort.parse("toddlers")

    def test_age_group_ids(self):
        self.assertEqual([c.age_group for c in Cohort], ["6-12", "13-17", "18-20", "21-40", "senior"])


class TestProfile(unittest.TestCase):

    def test_reads_backend_names(self):
        profile = Profile.model_validate({
            "id": "u1", "name": "Ravi", "email": "ravi@example.com",
            "ageGroup": "21-40", "language": "", "habits": "Yoga",
        })
        self.assertIs(profile.age_cohort, Cohort.ADULT)
        self.assertEqual(profile.preferred_language, "English")
        self.assertEqual(profile.freeform_habits_notes, "Yoga")

    def test_wire_form(self):
        profile = Profile(id="u1", name="Mia", email="mia@example.com", age_cohort=Cohort.KIDS,
                          parent_or_family_email="mum@example.com")
        wire = profile.to_wire()
        self.assertEqual(wire["ageGroup"], "6-12")
        self.assertEqual(wire["parentEmail"], "mum@example.com")
        self.assertNotIn("createdAt", wire)
        self.assertEqual(Profile.model_validate(wire), profile)

    def test_wire_field_map(self):
        self.assertEqual(PROFILE_WIRE_FIELDS["age_cohort"], "ageGroup")
        self.assertEqual(PROFILE_WIRE_FIELDS["preferred_language"], "language")
        self.assertEqual(PROFILE_WIRE_FIELDS["name"], "name")


class TestSession(unittest.TestCase):

    def test_cohort_prefers_profile(self):
        session = Session(selected_cohort=Cohort.TEENS)
        self.assertIs(session.cohort, Cohort.TEENS)
        session.profile = Profile(id="u1", name="A", email="a@example.com", age_cohort="senior")
        self.assertIs(session.cohort, Cohort.SENIOR)

    def test_token_expiry(self):
        token = AuthToken(token="t", user_id="u1", expires_at=100.0)
        self.assertFalse(token.is_expired(now=99.0))
        self.assertTrue(token.is_expired(now=100.0))


class TestTranslations(unittest.TestCase):

    def test_falls_back_to_english_then_key(self):
        self.assertEqual(translate("Telugu", "typeMessage"), "Express yourself freely...")
        self.assertEqual(translate("Klingon", "chatTitle"), "Emotional Support Chat")
        self.assertEqual(translate("English", "noSuchKey"), "noSuchKey")

    def test_params_replaced(self):
        text = translate(None, "buddyGreeting", {"name": "Asha"})
        self.assertTrue(text.startswith("Hello Asha, "))
        self.assertNotIn("{name}", text)

    def test_locales(self):
        self.assertEqual(resolve_locale("Telugu"), "te-IN")
        self.assertEqual(resolve_locale("Portuguese"), "pt-PT")
        self.assertEqual(resolve_locale(None), "en-US")
        self.assertEqual(resolve_locale("Esperanto"), "en-US")


class TestConfig(unittest.TestCase):

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = ApplicationConfig(_env_file=None)
        self.assertEqual(config.conversation.thinking_delay, 1.0)
        self.assertEqual(config.speech.ms_per_char, 60)
        self.assertEqual(config.speech.base_ms, 1000)

    def test_environment_overrides(self):
        env = {"BUDDY_CONVERSATION_THINKING_DELAY": "0.25", "BUDDY_API_BASE_URL": "https://api.example.com/"}
        with patch.dict(os.environ, env, clear=True):
            self.assertEqual(ConversationConfig(_env_file=None).thinking_delay, 0.25)
            self.assertEqual(ApiConfig(_env_file=None).base_url, "https://api.example.com")

    def test_validation(self):
        with self.assertRaises(PydanticValidationError):
            ApiConfig(_env_file=None, base_url="ftp://example.com")
        with self.assertRaises(PydanticValidationError):
            ConversationConfig(_env_file=None, thinking_delay=-1)
        with self.assertRaises(PydanticValidationError):
            SpeechConfig(_env_file=None, ms_per_char=-5)
        with self.assertRaises(PydanticValidationError):
            CaptureConfig(_env_file=None, silence_threshold=1.5)


if __name__ == "__main__":
    unittest.main()
