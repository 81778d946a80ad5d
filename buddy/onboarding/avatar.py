"""
Avatar wizard choices and the character to emoji lookup.

The emoji is computed once when the wizard completes and stored with the
avatar; it is never recomputed from the character afterwards.
"""

from typing import Dict

from buddy.core.errors import ValidationError
from buddy.models import Avatar, AvatarDraft

FAVORITE_COLORS = ("Red", "Blue", "Green", "Purple", "Pink", "Yellow")

CHARACTER_EMOJIS: Dict[str, str] = {
    "Friendly Robot": "🤖",
    "Happy Bear": "🐻",
    "Cute Cat": "🐱",
    "Wise Owl": "🦉",
    "Playful Dog": "🐶",
    "Magic Unicorn": "🦄",
}

DEFAULT_EMOJI = "🤖"

PERSONALITIES = ("Cheerful", "Wise", "Adventurous", "Caring")

SUGGESTED_NAMES = (
    "Buddy", "Sparkle", "Sunny", "Luna", "Max", "Sage", "Joy", "Star", "Nova", "Echo",
)

# Wizard steps in the order they are asked
WIZARD_STEPS = ("favorite_color", "character", "personality", "name")


def emoji_for(character: str) -> str:
    return CHARACTER_EMOJIS.get(character, DEFAULT_EMOJI)


def build_avatar(draft: AvatarDraft) -> Avatar:
    """
    Turn a completed wizard draft into an Avatar.

    Raises:
        ValidationError: If any of the four steps was left blank
    """
    values = {step: (getattr(draft, step) or "").strip() for step in WIZARD_STEPS}
    for step in WIZARD_STEPS:
        if not values[step]:
            raise ValidationError(f"Avatar {step.replace('_', ' ')} is required", field=step)

    return Avatar(
        favorite_color=values["favorite_color"],
        character=values["character"],
        personality=values["personality"],
        name=values["name"],
        emoji=emoji_for(values["character"]),
    )
