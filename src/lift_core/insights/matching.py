"""Conversion event matching for Meta action types.

The Graph API reports the same logical event under both a generic name
(`purchase`) and a pixel-prefixed name (`offsite_conversion.fb_pixel_purchase`).

Matching rules (in order):
1. Exact match (case-insensitive)
2. Action type contains the target event (case-insensitive)
3. Known pixel-event alias table
"""
from typing import Mapping, Optional


DEFAULT_PIXEL_ALIASES: dict[str, tuple[str, ...]] = {
    "purchase": ("offsite_conversion.fb_pixel_purchase",),
    "lead": ("offsite_conversion.fb_pixel_lead",),
    "complete_registration": ("offsite_conversion.fb_pixel_complete_registration",),
    "add_to_cart": ("offsite_conversion.fb_pixel_add_to_cart",),
    "initiate_checkout": ("offsite_conversion.fb_pixel_initiate_checkout",),
    "view_content": ("offsite_conversion.fb_pixel_view_content",),
}

VALUE_CHANNEL_PREFIXES = (
    ("website", "offsite_conversion"),
    ("in_app", "app_custom_event"),
    ("offline", "offline_conversion"),
)


class ConversionMatcher:
    """Decide whether a reported action type counts toward a target event."""

    def __init__(self, aliases: Optional[Mapping[str, tuple[str, ...]]] = None) -> None:
        source = DEFAULT_PIXEL_ALIASES if aliases is None else aliases
        self._aliases = {
            event.lower(): frozenset(value.lower() for value in values)
            for event, values in source.items()
        }

    def match_rule(self, action_type: Optional[str], target_event: Optional[str]) -> str:
        """Return which rule matched: EXACT, SUBSTRING, ALIAS or NONE."""
        if not action_type or not target_event:
            return "NONE"

        action_lower = action_type.lower()
        target_lower = target_event.lower()

        if action_lower == target_lower:
            return "EXACT"

        if target_lower in action_lower:
            return "SUBSTRING"

        if action_lower in self._aliases.get(target_lower, ()):
            return "ALIAS"

        return "NONE"

    def matches(self, action_type: Optional[str], target_event: Optional[str]) -> bool:
        return self.match_rule(action_type, target_event) != "NONE"


def value_channel(action_type: Optional[str]) -> Optional[str]:
    """Classify an action type into website / in_app / offline, if recognised."""
    if not action_type:
        return None
    lowered = action_type.lower()
    for channel, prefix in VALUE_CHANNEL_PREFIXES:
        if prefix in lowered:
            return channel
    return None


_default_matcher = ConversionMatcher()


def matches(action_type: Optional[str], target_event: Optional[str]) -> bool:
    """Match using the default pixel alias table."""
    return _default_matcher.matches(action_type, target_event)
