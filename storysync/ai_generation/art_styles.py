"""
Catalogue of supported illustration styles and their setting-specific phrasing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

ArtStyleId = Literal[
    "studio_ghibli",
    "disney_pixar_3d",
    "watercolor_illustration",
    "chibi_kawaii",
    "dreamworks_animation",
    "classic_fairytale",
]

DEFAULT_ART_STYLE: ArtStyleId = "disney_pixar_3d"


@dataclass(frozen=True)
class ArtStyle:
    """
    Rendering directives for a single illustration style.

    Attributes
    ----------
    base_prompt:
        Opening style statement placed in the art-style directive of every prompt.
    lighting / color / atmosphere / character:
        Short descriptors appended after the base prompt.
    negative_prompt:
        Forwarded to renderers that accept a negative prompt.
    render_style:
        ``"vivid"`` or ``"natural"`` hint for renderers exposing such a switch.
    """

    id: str
    name: str
    base_prompt: str
    lighting: str
    color: str
    atmosphere: str
    character: str
    negative_prompt: str
    render_style: Literal["vivid", "natural"] = "vivid"

    @property
    def label(self) -> str:
        return self.id.replace("_", " ")

    @property
    def overrides_identity(self) -> bool:
        # Styles whose stock character design tends to replace the child's features.
        return self.id in {"chibi_kawaii", "disney_pixar_3d"}

    def directive(self) -> str:
        return f"{self.base_prompt}, {self.lighting}, {self.color}, {self.atmosphere}"

    def render_params(self) -> dict[str, Any]:
        return {
            "art_style": self.id,
            "negative_prompt": self.negative_prompt,
            "style": self.render_style,
        }


ART_STYLES: dict[str, ArtStyle] = {
    "studio_ghibli": ArtStyle(
        id="studio_ghibli",
        name="Studio Ghibli",
        base_prompt="Studio Ghibli anime film still, hand-painted watercolor",
        lighting="soft golden hour light with gentle glow",
        color="muted earthy tones with soft pastels",
        atmosphere="dreamlike and nostalgic, filled with wonder",
        character="expressive eyes, flowing hair, gentle features",
        negative_prompt="NOT cartoon, NOT clipart, NOT simple, NOT CGI",
        render_style="vivid",
    ),
    "disney_pixar_3d": ArtStyle(
        id="disney_pixar_3d",
        name="Disney/Pixar 3D",
        base_prompt="Disney Pixar 3D animation movie still, high quality CGI render",
        lighting="cinematic lighting with rim lights and soft ambient occlusion",
        color="vibrant saturated colors with complementary color schemes",
        atmosphere="joyful, energetic and emotionally engaging",
        character="appealing design, expressive faces",
        negative_prompt="NOT 2D, NOT flat, NOT low quality",
        render_style="vivid",
    ),
    "watercolor_illustration": ArtStyle(
        id="watercolor_illustration",
        name="Watercolor Illustration",
        base_prompt="Traditional watercolor children's book illustration",
        lighting="soft diffused natural light with gentle shadows",
        color="soft pastels with transparent washes",
        atmosphere="gentle, dreamy and timeless",
        character="soft edges, loose brushwork, charming simplicity",
        negative_prompt="NOT digital, NOT harsh lines, NOT oversaturated",
        render_style="natural",
    ),
    "chibi_kawaii": ArtStyle(
        id="chibi_kawaii",
        name="Chibi/Kawaii",
        base_prompt="Kawaii chibi art style, cute children's illustration, big sparkly eyes",
        lighting="bright cheerful lighting with sparkle highlights",
        color="pastel rainbow palette with pink and mint accents",
        atmosphere="cute, happy and playful",
        character="big eyes, small body, blushing cheeks",
        negative_prompt="NOT realistic, NOT scary, NOT detailed anatomy",
        render_style="vivid",
    ),
    "dreamworks_animation": ArtStyle(
        id="dreamworks_animation",
        name="DreamWorks Animation",
        base_prompt="DreamWorks Animation style 3D movie still",
        lighting="dramatic cinematic lighting with a strong key light",
        color="rich color grading with dramatic contrasts",
        atmosphere="epic, adventurous and emotionally powerful",
        character="expressive faces, dynamic poses",
        negative_prompt="NOT flat, NOT amateur, NOT low budget",
        render_style="vivid",
    ),
    "classic_fairytale": ArtStyle(
        id="classic_fairytale",
        name="Classic Fairytale",
        base_prompt="Classic fairytale storybook illustration with ornate details",
        lighting="warm golden light with soft chiaroscuro",
        color="muted vintage palette with jewel accents",
        atmosphere="mysterious, timeless and enchanting",
        character="elegant proportions, expressive linework",
        negative_prompt="NOT modern, NOT minimalist, NOT cartoon",
        render_style="natural",
    ),
}

# Style-flavoured rewording of a location that keeps the location itself.
STYLE_SETTING_ADAPTATIONS: dict[str, dict[str, str]] = {
    "studio_ghibli": {
        "underwater": "underwater ocean scene in Ghibli style, flowing water, bioluminescent coral",
        "ocean": "vast ocean with rolling waves, seabirds and distant islands",
        "forest": "enchanted forest with ancient trees and dappled light",
        "home": "cozy lived-in home interior with warm lighting",
        "sky": "expansive sky with dramatic clouds",
        "city": "bustling town with traditional architecture",
    },
    "disney_pixar_3d": {
        "underwater": "vibrant underwater world, crystal clear water, colorful coral reef, schools of fish",
        "ocean": "stylized ocean waves, sparkling water, volumetric lighting",
        "forest": "lush 3D animated forest with rays of light through the trees",
        "home": "warm home interior with soft lighting and familiar objects",
        "sky": "bright blue sky with fluffy clouds",
        "city": "clean, colorful cityscape",
    },
    "watercolor_illustration": {
        "underwater": "dreamy underwater scene in soft blues and greens, fish in loose brushstrokes",
        "ocean": "ocean painted with flowing watercolor washes",
        "forest": "watercolor forest with bleeding greens and soft edges",
        "home": "cozy home in warm earth tones and gentle washes",
        "sky": "watercolor sky with gradient washes",
        "city": "watercolor town with light architectural sketching",
    },
    "chibi_kawaii": {
        "underwater": "cute underwater world, big-eyed fish, heart-shaped bubbles, pastel coral",
        "ocean": "adorable ocean scene with smiling waves and cute sea creatures",
        "forest": "kawaii forest with happy trees and cute animals",
        "home": "cute room with plushies and pastel decorations",
        "sky": "cute sky with smiling clouds and rainbow gradients",
        "city": "kawaii town with cute buildings",
    },
    "dreamworks_animation": {
        "underwater": "dramatic underwater scene with dynamic lighting and epic scale",
        "ocean": "cinematic ocean with dramatic waves",
        "forest": "epic forest with atmospheric fog",
        "home": "stylized home interior with bold designs",
        "sky": "dramatic sky with epic cloudscapes",
        "city": "stylized city with bold architecture",
    },
    "classic_fairytale": {
        "underwater": "fairytale underwater kingdom, light filtering through the water",
        "ocean": "storybook ocean with decorative wave patterns",
        "forest": "enchanted fairytale forest with twisted trees and hidden pathways",
        "home": "storybook cottage with a warm glow from the windows",
        "sky": "fairytale sky with decorative clouds and stars",
        "city": "old town with cobblestones and timber houses",
    },
}


def get_art_style(style_id: str) -> ArtStyle:
    try:
        return ART_STYLES[style_id]
    except KeyError as exc:
        available = ", ".join(sorted(ART_STYLES))
        raise ValueError(f"Unknown art style {style_id!r}. Available styles: {available}.") from exc


def setting_adaptation(style_id: str, location: str, setting: str = "") -> str | None:
    """
    Return the style's wording for ``location`` (falling back to ``setting``), if any.
    """
    adaptations = STYLE_SETTING_ADAPTATIONS.get(style_id, {})
    return adaptations.get(location) or adaptations.get(setting)
