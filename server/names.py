"""
Fun default player names ("Brave Bear", "Cosmic Comet", ...).

Used when someone creates or joins a game without typing a name.
"""

import random
from typing import Iterable, Optional

ADJECTIVES = (
    "Brave", "Clever", "Swift", "Mighty", "Happy",
    "Jolly", "Speedy", "Bouncy", "Sparkly", "Cosmic",
    "Super", "Mega", "Ultra", "Turbo", "Wonder",
    "Magic", "Stellar", "Epic", "Blazing", "Dazzling",
    "Brilliant", "Curious", "Wise", "Quick", "Sharp",
    "Bright", "Keen", "Smart", "Witty", "Zippy",
    "Silly", "Giggly", "Friendly", "Playful", "Cheerful",
    "Sunny", "Bubbly", "Snappy", "Jazzy", "Groovy",
    "Golden", "Crystal", "Rainbow", "Starry", "Lunar",
    "Solar", "Misty", "Frosty", "Thunder", "Storm",
)

NOUNS = (
    "Panda", "Tiger", "Dragon", "Phoenix", "Unicorn",
    "Koala", "Penguin", "Dolphin", "Eagle", "Wolf",
    "Fox", "Bear", "Lion", "Owl", "Falcon",
    "Otter", "Bunny", "Kitten", "Puppy", "Hedgehog",
    "Wizard", "Knight", "Ninja", "Pirate", "Ranger",
    "Hero", "Champion", "Legend", "Guardian", "Explorer",
    "Star", "Comet", "Rocket", "Galaxy", "Nebula",
    "Asteroid", "Planet", "Meteor", "Orbit", "Nova",
    "Storm", "Blaze", "Thunder", "Lightning", "Tornado",
    "Wave", "Frost", "Crystal", "Spark", "Flash",
)

ALLITERATIVE_PAIRS = (
    ("Brave", "Bear"), ("Clever", "Cat"), ("Dazzling", "Dragon"),
    ("Friendly", "Fox"), ("Giggly", "Gecko"), ("Happy", "Hedgehog"),
    ("Jolly", "Jaguar"), ("Keen", "Koala"), ("Lucky", "Lion"),
    ("Mighty", "Monkey"), ("Noble", "Ninja"), ("Playful", "Panda"),
    ("Quick", "Quokka"), ("Rapid", "Rabbit"), ("Speedy", "Squirrel"),
    ("Turbo", "Tiger"), ("Wonder", "Wolf"), ("Zippy", "Zebra"),
    ("Cosmic", "Comet"), ("Stellar", "Star"), ("Super", "Seal"),
    ("Magic", "Meerkat"), ("Bouncy", "Bunny"), ("Sparkly", "Starfish"),
    ("Golden", "Griffin"),
)

ALLITERATION_CHANCE = 0.7
MAX_UNIQUE_ATTEMPTS = 50


def generate_name(rng: Optional[random.Random] = None) -> str:
    """Random adjective + noun."""
    rng = rng or random
    return f"{rng.choice(ADJECTIVES)} {rng.choice(NOUNS)}"


def generate_fun_name(rng: Optional[random.Random] = None) -> str:
    """Mostly alliterative names, with a random pairing the rest of the time."""
    rng = rng or random
    if rng.random() < ALLITERATION_CHANCE:
        adjective, noun = rng.choice(ALLITERATIVE_PAIRS)
        return f"{adjective} {noun}"
    return generate_name(rng)


def generate_unique_name(existing: Iterable[str], rng: Optional[random.Random] = None) -> str:
    """
    A fun name nobody in ``existing`` already has (case-insensitive).

    Falls back to a numbered name once random picks keep colliding.
    """
    taken = {name.lower() for name in existing}
    for _ in range(MAX_UNIQUE_ATTEMPTS):
        name = generate_fun_name(rng)
        if name.lower() not in taken:
            return name

    base = generate_name(rng)
    counter = 1
    while f"{base} {counter}".lower() in taken:
        counter += 1
    return f"{base} {counter}"
