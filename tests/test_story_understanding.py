from __future__ import annotations

from storysync.story_understanding import (
    UNSPECIFIED_SETTING,
    Character,
    CharacterRegistry,
    Interaction,
    PronounResolver,
    SceneAnalysis,
    SceneAnalyzer,
    SceneElements,
    SceneExtractor,
    StoryPage,
    describe_elements,
    extract_interactions,
    normalize_pages,
)
from storysync.story_understanding.characters import gender_from_description, infer_gender, reciprocal_relation
from storysync.story_understanding.scene_extractor import extract_key_objects, extract_mood

EMMA_PAGES = (
    "Emma, a girl with brown pigtails, dove into the ocean to explore.",
    "As she plunged into the waters, she was greeted by a friendly sea turtle named Tito.",
)


def _pages(*texts: str) -> list[StoryPage]:
    return normalize_pages([{"page_number": index, "text": text} for index, text in enumerate(texts, start=1)])


def _analyze_story(*texts: str) -> tuple[CharacterRegistry, list[SceneAnalysis]]:
    pages = _pages(*texts)
    registry = CharacterRegistry()
    registry.build(pages)
    analyzer = SceneAnalyzer(registry)

    analyses: list[SceneAnalysis] = []
    previous = None
    for page in pages:
        analysis = analyzer.analyze(page, previous)
        analyses.append(analysis)
        previous = analysis.scene
    return registry, analyses


def test_registry_records_reciprocal_relationships() -> None:
    registry = CharacterRegistry()
    registry.build(_pages("Ira found her younger brother, Jake. Jake was hiding behind the tree."))

    ira = registry.get("Ira")
    jake = registry.get("Jake")
    assert ira is not None and jake is not None
    assert ira.gender == "female"
    assert jake.gender == "male"
    assert ira.relationships == {"Jake": "younger brother"}
    assert jake.relationships == {"Ira": "older sister"}
    assert ira.role == "older sister"
    assert jake.role == "younger brother"
    assert {"he", "the brother", "the younger brother"} <= jake.aliases


def test_relation_term_decides_gender_of_found_character() -> None:
    registry = CharacterRegistry()
    registry.build(_pages("Lily found her brother, Max, and she hugged him."))

    max_ = registry.get("Max")
    lily = registry.get("Lily")
    assert max_ is not None and lily is not None
    assert max_.gender == "male"
    assert max_.role == "brother"
    assert lily.gender == "female"
    assert lily.role == "sister"


def test_registry_build_is_idempotent() -> None:
    pages = _pages("Ira found her younger brother, Jake.", "Jake smiled at Ira.")
    registry = CharacterRegistry()
    registry.build(pages)
    first = registry.as_dict()

    registry.build(pages)

    assert registry.as_dict() == first
    assert registry.names == ["Ira", "Jake"]


def test_registry_reads_introductions_and_namings() -> None:
    registry = CharacterRegistry()
    registry.build(
        _pages(
            "Max, a 7-year-old boy with curly hair, ran outside.",
            "In the garden they met a wise old owl named Hoot.",
        )
    )

    max_ = registry.get("Max")
    hoot = registry.get("Hoot")
    assert max_ is not None and hoot is not None
    assert max_.gender == "male"
    assert max_.age == "7"
    assert max_.role == "boy"
    assert "curly hair" in max_.appearance
    assert hoot.role == "wise old owl"
    assert "the owl" in hoot.aliases


def test_registry_merge_keeps_first_gender_and_role() -> None:
    registry = CharacterRegistry()
    registry.register(Character(name="Emma", gender="female", role="explorer"))
    merged = registry.register(Character(name="Emma", gender="male", role="swimmer", age="6"))

    assert merged.gender == "female"
    assert merged.role == "explorer"
    assert merged.age == "6"
    assert len(registry) == 1


def test_reciprocal_relation_flips_qualifiers_and_gender() -> None:
    assert reciprocal_relation("younger brother", "female") == "older sister"
    assert reciprocal_relation("mother", "male") == "son"
    assert reciprocal_relation("best friend", "other") == "best friend"
    assert reciprocal_relation("spaceship", "male") is None


def test_infer_gender_prefers_pronoun_then_hint_then_name_ending() -> None:
    assert infer_gender("Sam, he waved.", "Sam") == "male"
    assert infer_gender("Sam smiled and she waved.", "Sam") == "other"
    assert infer_gender("Sam smiled.", "Sam", hint="a little girl") == "female"
    assert infer_gender("Lucy played.", "Lucy") == "female"


def test_gender_from_description_reads_only_the_leading_descriptor() -> None:
    assert gender_from_description("Emma, a girl with brown pigtails", "Emma") == "female"
    assert gender_from_description("Leo is a 7 year old boy", "Leo") == "male"
    assert gender_from_description("Emma, with brown pigtails and her brother's red jacket", "Emma") == "other"
    assert gender_from_description("Emma, a 6 year old child with a warm, friendly smile", "Emma") == "other"


def test_pronoun_resolves_to_character_from_previous_page() -> None:
    registry, analyses = _analyze_story("Emma walked along the beach.", "She found a shell.")

    assert registry.get("Emma") is not None
    assert analyses[1].scene.resolved_text == "Emma found a shell."
    assert analyses[1].unresolved_pronouns == []


def test_pronoun_prefers_character_named_at_start_of_page() -> None:
    registry = CharacterRegistry()
    registry.register(Character(name="Emma", gender="female"))
    registry.register(Character(name="Mia", gender="female"))

    resolution = PronounResolver().resolve("Mia smiled. She waved.", None, registry)

    assert resolution.text == "Mia smiled. Mia waved."
    assert resolution.antecedents == {"female": "Mia"}


def test_pronoun_distinguishes_possessive_and_object_her() -> None:
    registry = CharacterRegistry()
    registry.register(Character(name="Emma", gender="female"))
    registry.register(Character(name="Tom", gender="male"))

    resolution = PronounResolver().resolve("Emma lost her shell and Tom helped her.", None, registry)

    assert resolution.text == "Emma lost Emma's shell and Tom helped Emma."


def test_pronoun_without_antecedent_is_left_and_reported() -> None:
    registry = CharacterRegistry()
    registry.register(Character(name="Emma", gender="female"))

    resolution = PronounResolver().resolve("He laughed loudly.", None, registry)

    assert resolution.text == "He laughed loudly."
    assert resolution.unresolved == ["he"]


def test_end_to_end_scenes_follow_the_dive() -> None:
    _, analyses = _analyze_story(*EMMA_PAGES)
    first, second = (analysis.scene for analysis in analyses)

    assert first.elements.setting == "water"
    assert first.elements.specific_location == "ocean"
    assert first.elements.characters == ["Emma"]
    assert first.elements.action == "explore"

    assert second.elements.setting == "water"
    assert second.elements.specific_location == "underwater"
    assert second.elements.characters == ["Emma", "Tito"]
    assert second.elements.action == "plunged"
    assert second.is_multi_character
    assert second.moved
    assert second.previous_setting == "ocean"


def test_extractor_reports_sentinel_when_no_location_is_known() -> None:
    elements = SceneExtractor().extract("Mia smiled.")

    assert elements.setting == UNSPECIFIED_SETTING
    assert elements.specific_location is None
    assert elements.characters == ["Mia"]


def test_extractor_carries_previous_setting_forward() -> None:
    previous = SceneElements(setting="water", specific_location="beach", characters=["Mia"])

    elements = SceneExtractor().extract("Mia smiled.", previous)

    assert elements.setting == "water"
    assert elements.location == "beach"


def test_extractor_without_registry_uses_name_patterns() -> None:
    elements = SceneExtractor().extract("Mia met Leo, the baker, in the town at night.")

    assert elements.characters == ["Mia", "Leo"]
    assert elements.setting == "city"
    assert elements.time_of_day == "night"


def test_extractor_reads_time_weather_and_objects() -> None:
    elements = SceneExtractor().extract("Mia walked through the rainy forest at night with a lantern.")

    assert elements.setting == "forest"
    assert elements.action == "walked"
    assert elements.time_of_day == "night"
    assert elements.weather == "rainy"
    assert elements.key_objects == ["lantern"]


def test_key_objects_skip_words_covered_by_described_objects() -> None:
    assert extract_key_objects("Emma found a golden key and a map.") == ["golden key", "map"]


def test_mood_labels() -> None:
    assert extract_mood("Emma felt lonely.") == "sad"
    assert extract_mood("Emma was brave.") == "brave"
    assert extract_mood("Emma sat down.") == "peaceful"


def test_describe_elements_summarizes_scene() -> None:
    elements = SceneElements(
        setting="water",
        specific_location="underwater",
        action="swim",
        characters=["Emma", "Tito"],
        mood="happy",
        key_objects=["shell"],
    )

    assert describe_elements(elements) == "Emma and Tito swim in the underwater with shell; mood: happy."


def test_extract_interactions() -> None:
    assert extract_interactions("Ira bent down and hugged Jake.") == [
        Interaction(actor="Ira", verb="bent down", target="Jake")
    ]
    assert extract_interactions("Max told Lily a story.") == [
        Interaction(actor="Max", verb="told", target="Lily")
    ]
    assert extract_interactions("Leo found Mia's hat.") == []
