"""
Tests for generated player names.

Run with: pytest test_names.py -v
"""

import random

from names import ADJECTIVES, ALLITERATIVE_PAIRS, NOUNS, generate_fun_name, generate_name, generate_unique_name


class TestGeneratedNames:

    def test_adjective_noun(self):
        adjective, noun = generate_name(random.Random(1)).split(" ")
        assert adjective in ADJECTIVES
        assert noun in NOUNS

    def test_fun_name_shape(self):
        rng = random.Random(2)
        pairs = {f"{a} {n}" for a, n in ALLITERATIVE_PAIRS}
        for _ in range(50):
            name = generate_fun_name(rng)
            adjective, noun = name.split(" ")
            assert name in pairs or (adjective in ADJECTIVES and noun in NOUNS)

    def test_seeded(self):
        assert generate_fun_name(random.Random(7)) == generate_fun_name(random.Random(7))


class TestUniqueNames:

    def test_avoids_taken_names(self):
        rng = random.Random(3)
        taken = [f"{a} {n}" for a, n in ALLITERATIVE_PAIRS]
        for _ in range(20):
            assert generate_unique_name(taken, rng) not in taken

    def test_case_insensitive(self):
        taken = [f"{a} {n}".upper() for a, n in ALLITERATIVE_PAIRS]
        taken += [f"{a} {n}".lower() for a in ADJECTIVES for n in NOUNS]
        name = generate_unique_name(taken, random.Random(4))
        assert name.lower() not in {t.lower() for t in taken}

    def test_numbered_when_everything_is_taken(self):
        taken = [f"{a} {n}" for a, n in ALLITERATIVE_PAIRS]
        taken += [f"{a} {n}" for a in ADJECTIVES for n in NOUNS]
        name = generate_unique_name(taken, random.Random(5))
        assert name.rsplit(" ", 1)[1] == "1"
