"""
Shared word lists for the rule-based story understanding modules.
"""

from __future__ import annotations

import re
from typing import Literal

Gender = Literal["male", "female", "other"]

NAME_TOKEN = re.compile(r"\b[A-Z][a-z]+\b")
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

# Capitalized words that open sentences but never name a character.
NON_NAME_WORDS = frozenset(
    {
        "A", "About", "After", "Again", "All", "Along", "Also", "Always", "An", "And",
        "Around", "As", "At", "Because", "Before", "But", "By", "Each", "Even", "Every",
        "Everyone", "Everything", "Finally", "For", "From", "Good", "Hello", "Her", "Here",
        "He", "His", "How", "I", "If", "In", "Inside", "Into", "It", "Its", "Just", "Later",
        "Let", "Little", "Look", "Maybe", "Meanwhile", "My", "Never", "No", "Not", "Nothing",
        "Now", "Of", "Oh", "On", "Once", "One", "Or", "Our", "Out", "Outside", "Over",
        "Perhaps", "She", "So", "Some", "Someone", "Something", "Soon", "Still", "Suddenly",
        "That", "The", "Their", "Then", "There", "These", "They", "This", "Those", "Through",
        "To", "Today", "Together", "Tomorrow", "Under", "Until", "Upon", "We", "Well",
        "What", "When", "Where", "While", "Who", "Why", "With", "Yes", "Yesterday", "You",
        "Your",
    }
)

SUBJECT_PRONOUNS: dict[str, Gender] = {"he": "male", "she": "female"}
OBJECT_PRONOUNS: dict[str, Gender] = {"him": "male", "her": "female"}
POSSESSIVE_PRONOUNS: dict[str, Gender] = {"his": "male", "her": "female", "hers": "female"}

MALE_TERMS = frozenset(
    {
        "boy", "brother", "dad", "father", "grandfather", "grandpa", "grandson", "king",
        "man", "nephew", "prince", "son", "uncle",
    }
)
FEMALE_TERMS = frozenset(
    {
        "aunt", "daughter", "girl", "granddaughter", "grandma", "grandmother", "mom",
        "mother", "niece", "princess", "queen", "sister", "woman",
    }
)

# Last-resort name-ending heuristic; unreliable for many names.
FEMALE_NAME_ENDINGS = ("ie", "a", "e", "y")
MALE_NAME_ENDINGS = ("o", "n", "k", "r")

COMMON_VERBS = frozenset(
    {
        "asked", "ate", "bent", "came", "climbed", "cried", "danced", "did", "dove", "felt",
        "flew", "found", "gave", "giggled", "go", "goes", "got", "grabbed", "had", "has",
        "heard", "held", "helped", "hugged", "is", "jumped", "knew", "laughed", "looked",
        "loved", "made", "met", "noticed", "opened", "picked", "played", "plunged", "ran",
        "reached", "replied", "said", "sat", "saw", "shouted", "smiled", "spotted", "stood",
        "swam", "took", "told", "walked", "wanted", "was", "went", "whispered", "woke",
        "wondered",
    }
)

ARTICLES = ("a", "an", "the")


def is_name_token(token: str) -> bool:
    """
    Whether a capitalized token could plausibly be a character name.
    """
    if not token or not token[0].isupper():
        return False
    if token in NON_NAME_WORDS:
        return False
    # Sentence-opening adverbs ("Suddenly", "Quickly").
    if token.endswith("ly") and len(token) > 4:
        return False
    return True


def is_verb_like(word: str) -> bool:
    lowered = word.lower()
    return lowered in COMMON_VERBS or (lowered.endswith("ed") and len(lowered) > 3)


def split_sentences(text: str) -> list[str]:
    return [part.strip() for part in SENTENCE_SPLIT.split(text.strip()) if part.strip()]


def gender_from_terms(text: str) -> Gender:
    """
    Infer gender from gendered nouns such as "brother" or "girl" inside a phrase.
    """
    words = re.findall(r"[a-z]+", text.lower())
    for word in words:
        if word in MALE_TERMS:
            return "male"
        if word in FEMALE_TERMS:
            return "female"
    return "other"


def gender_from_name_ending(name: str) -> Gender:
    lowered = name.lower()
    if lowered.endswith(FEMALE_NAME_ENDINGS):
        return "female"
    if lowered.endswith(MALE_NAME_ENDINGS):
        return "male"
    return "other"


ANIMAL_WORDS = frozenset(
    {
        "ant", "bear", "bee", "bird", "bunny", "butterfly", "cat", "crab", "deer", "dog",
        "dolphin", "dragon", "duck", "elephant", "fish", "fox", "frog", "giraffe", "horse",
        "lion", "monkey", "octopus", "owl", "penguin", "puppy", "rabbit", "seal", "shark",
        "squirrel", "tiger", "turtle", "unicorn", "whale", "wolf",
    }
)
