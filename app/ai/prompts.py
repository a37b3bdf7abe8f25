"""Prompt templates for the concept planner."""

from __future__ import annotations

from pydantic import BaseModel

from app.ai.pipeline.contracts import ConceptDescriptor, ScreenPlan, StructurePlan


class CanvasEditPrompt(BaseModel):
  canvas_edit_prompt: str


class MediaPrompt(BaseModel):
  prompt: str


CONCEPT_TEMPLATE = """You are a product designer inventing a mobile app for an app store listing.

App idea from the user:
{{DESCRIPTION}}

Category hint: {{CATEGORY_HINT}}
UI style hint: {{UI_STYLE}}

Return JSON with:
- app_name: short, memorable, at most 30 characters
- app_subtitle: one line, at most 30 characters
- app_description: two or three sentences for the store listing
- app_category: a single app store category
- style_guide: colors, typography, spacing and component style shared by every screen
- app_icon_prompt: an image prompt for a square app icon with no text, centered glyph, flat background
- cover_image_prompt: an image prompt for a wide landscape store banner in the same style, with no text
"""

STRUCTURE_TEMPLATE = """Plan the screens of the app "{{APP_NAME}}" ({{APP_CATEGORY}}).

Description: {{APP_DESCRIPTION}}
Style guide: {{STYLE_GUIDE}}

Return JSON with exactly {{SCREEN_COUNT}} entries in "screens", ordered as a user would meet them.
The first screen is the main home screen and is used as the visual reference for the others.
Each screen has screen_name, purpose and key_elements.
Also return common_layout_elements (status bar, navigation, headers shared by all screens) and
tabs (has_tabs, tab_names) when the app uses a tab bar.
"""

SCREEN_TEMPLATE = """Write an image-edit prompt that paints one app screen onto a blank phone canvas.

App: {{APP_NAME}}
Style guide: {{STYLE_GUIDE}}
Shared layout: {{COMMON_LAYOUT}}
Tabs: {{TABS}}

Screen: {{SCREEN_NAME}}
Purpose: {{SCREEN_PURPOSE}}
Key elements: {{KEY_ELEMENTS}}

{{REFERENCE_NOTE}}
Return JSON with canvas_edit_prompt only. Keep realistic sample content and no lorem ipsum.
"""

COVER_IMAGE_TEMPLATE = """Write an image prompt for a wide promotional banner (2:1) for the app "{{APP_NAME}}".

Description: {{APP_DESCRIPTION}}
Style guide: {{STYLE_GUIDE}}
{{FEEDBACK}}
The banner shows the app's mood and brand colors; no device frames and no text.
Return JSON with prompt only.
"""

COVER_VIDEO_TEMPLATE = """Write a short motion prompt that animates the cover image of the app "{{APP_NAME}}".

Description: {{APP_DESCRIPTION}}
Style guide: {{STYLE_GUIDE}}

Describe slow camera movement and subtle ambient motion only; keep the composition intact.
Return JSON with prompt only.
"""

IMPROVE_TEMPLATE = """Improve this rough app idea so it can drive app generation.

Draft: {{DRAFT}}
UI style hint: {{UI_STYLE}}

Return JSON with improved_description (3-5 sentences), improved_style (one paragraph visual style)
and inferred_category (a single app store category).
"""


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with request values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def _or_dash(value: str | None) -> str:
  return value.strip() if value and value.strip() else "-"


def _format_tabs(plan: StructurePlan) -> str:
  if not plan.tabs.has_tabs or not plan.tabs.tab_names:
    return "none"
  return ", ".join(plan.tabs.tab_names)


def render_concept_prompt(description: str, *, category_hint: str | None, ui_style: str | None) -> str:
  return _replace_placeholders(CONCEPT_TEMPLATE, {"DESCRIPTION": description.strip(), "CATEGORY_HINT": _or_dash(category_hint), "UI_STYLE": _or_dash(ui_style)})


def render_structure_prompt(concept: ConceptDescriptor, screen_count: int) -> str:
  values = {
    "APP_NAME": concept.app_name,
    "APP_CATEGORY": _or_dash(concept.app_category),
    "APP_DESCRIPTION": _or_dash(concept.app_description),
    "STYLE_GUIDE": _or_dash(concept.style_guide),
    "SCREEN_COUNT": str(screen_count),
  }
  return _replace_placeholders(STRUCTURE_TEMPLATE, values)


def render_screen_prompt_request(concept: ConceptDescriptor, plan: StructurePlan, screen: ScreenPlan, *, has_reference: bool) -> str:
  # The first image passed to the edit model is the reference screen when one exists.
  if has_reference:
    reference_note = "The first input image is an already generated screen of this app; match its style exactly. The second image is the blank canvas."
  else:
    reference_note = "The input image is the blank device canvas; this screen defines the visual style for the rest of the app."
  values = {
    "APP_NAME": concept.app_name,
    "STYLE_GUIDE": _or_dash(concept.style_guide),
    "COMMON_LAYOUT": _or_dash(plan.common_layout_elements),
    "TABS": _format_tabs(plan),
    "SCREEN_NAME": screen.screen_name,
    "SCREEN_PURPOSE": _or_dash(screen.purpose),
    "KEY_ELEMENTS": ", ".join(screen.key_elements) or "-",
    "REFERENCE_NOTE": reference_note,
  }
  return _replace_placeholders(SCREEN_TEMPLATE, values)


def render_cover_image_prompt_request(concept: ConceptDescriptor, *, user_feedback: str | None) -> str:
  feedback = f"Apply this feedback from the user: {user_feedback.strip()}" if user_feedback and user_feedback.strip() else ""
  values = {"APP_NAME": concept.app_name, "APP_DESCRIPTION": _or_dash(concept.full_description), "STYLE_GUIDE": _or_dash(concept.style_guide), "FEEDBACK": feedback}
  return _replace_placeholders(COVER_IMAGE_TEMPLATE, values)


def render_cover_video_prompt_request(concept: ConceptDescriptor) -> str:
  values = {"APP_NAME": concept.app_name, "APP_DESCRIPTION": _or_dash(concept.full_description), "STYLE_GUIDE": _or_dash(concept.style_guide)}
  return _replace_placeholders(COVER_VIDEO_TEMPLATE, values)


def render_improve_description_prompt(draft: str, ui_style_hint: str | None) -> str:
  return _replace_placeholders(IMPROVE_TEMPLATE, {"DRAFT": draft.strip(), "UI_STYLE": _or_dash(ui_style_hint)})
