from assistant_core.extraction.element_parser import ElementParser


def test_counts_keyword_occurrences():
    parser = ElementParser({"wall": ["mur"], "door": ["porte"]})
    plan = parser.parse("mur mur porte")
    assert plan.elements == {"wall": 2, "door": 1}
    assert plan.raw_text == "mur mur porte"


def test_default_vocabulary_reports_every_element():
    plan = ElementParser().parse("Plan RDC : 4 murs porteurs, 2 portes, une fenêtre")
    assert plan.elements["wall"] == 1
    assert plan.elements["door"] == 1
    assert plan.elements["window"] == 1
    assert plan.elements["column"] == 0
    assert set(plan.elements) == {"wall", "column", "door", "window", "staircase", "slab", "beam"}


def test_case_and_accents_are_ignored():
    plan = ElementParser({"window": ["fenêtre", "fenêtres"]}).parse("FENETRE, Fenêtres et fenêtre")
    assert plan.elements["window"] == 3


def test_only_whole_words_match():
    plan = ElementParser({"wall": ["mur"]}).parse("peinture murale, muret, mur")
    assert plan.elements["wall"] == 1


def test_synonyms_count_for_the_same_element():
    plan = ElementParser({"wall": ["mur", "cloison", "cloisons"]}).parse("mur cloison cloisons")
    assert plan.elements["wall"] == 3


def test_parse_is_idempotent():
    parser = ElementParser()
    text = "poteau poteaux escalier dalle poutre linteau"
    first = parser.parse(text)
    second = parser.parse(text)
    assert first == second
    assert first.elements["column"] == 2
    assert first.elements["beam"] == 2


def test_empty_text_gives_zero_counts():
    plan = ElementParser({"wall": ["mur"]}).parse("")
    assert plan.elements == {"wall": 0}
    assert plan.non_zero() == []
    assert plan.summary() == ""
