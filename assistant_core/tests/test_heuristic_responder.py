from assistant_core.domain.models import ExtractedPlan, Tier
from assistant_core.responders.heuristic_responder import HeuristicResponder


def _history(text):
    return [{"role": "user", "content": text}]


def test_structural_questions_come_first():
    result = HeuristicResponder(max_questions=3).advise(_history("Je construis une maison"), None, "generic", {})
    assert result.tier == Tier.HEURISTIC
    assert result.follow_up_questions == [
        "Quelle est la surface totale à construire (en m²) ?",
        "Combien de niveaux prévois-tu (RDC, R+1…) ?",
        "Combien d'ouvriers seront mobilisés sur le chantier ?",
    ]
    assert result.estimation == {}
    assert "Je n'ai pas encore assez de données chiffrées" in result.reply


def test_known_fields_are_not_asked_again():
    result = HeuristicResponder(max_questions=3).advise([], None, "generic", {"surface": 100, "nb_ouvriers": 4})
    assert result.follow_up_questions == [
        "Combien de niveaux prévois-tu (RDC, R+1…) ?",
        "Sur combien de jours le chantier doit-il se dérouler ?",
        "Quelle surface faut-il carreler (en m²) ?",
    ]
    assert result.estimation == {"gros_oeuvre": 8500000.0, "total": 8500000.0}
    assert "- Gros oeuvre : 8 500 000 FCFA" in result.reply
    assert "Total estimé : 8 500 000 FCFA" in result.reply


def test_plan_counts_feed_the_estimation():
    plan = ExtractedPlan(raw_text="...", elements={"wall": 0, "door": 2, "window": 1})
    result = HeuristicResponder().advise([], plan, "generic", {})
    assert result.estimation["menuiseries"] == 210000.0
    assert "Éléments détectés sur le plan : 2 porte(s), 1 fenêtre(s)." in result.reply


def test_explicit_values_override_plan_counts():
    plan = ExtractedPlan(raw_text="", elements={"door": 2, "window": 1})
    result = HeuristicResponder().advise([], plan, "generic", {"door": 5})
    assert result.estimation["menuiseries"] == 435000.0


def test_plan_without_elements_is_reported():
    plan = ExtractedPlan(raw_text="texte illisible", elements={"wall": 0})
    result = HeuristicResponder().advise([], plan, "generic", {})
    assert "Aucun élément structurel" in result.reply


def test_building_profile():
    result = HeuristicResponder(max_questions=3).advise([], None, "batiment", {"surface": 100})
    assert result.reply.startswith("Analyse de ton projet de bâtiment")
    assert result.follow_up_questions == [
        "Combien de niveaux comporte le bâtiment ?",
        "Combien de poteaux sont prévus sur le plan ?",
        "Combien d'escaliers faut-il réaliser ?",
    ]
    assert result.estimation["gros_oeuvre"] == 9500000.0


def test_unknown_project_type_uses_default_profile():
    result = HeuristicResponder().advise([], None, "navire", {})
    assert result.reply.startswith("Voici une première analyse de ton projet de construction.")


def test_request_is_echoed_and_output_is_deterministic():
    responder = HeuristicResponder()
    history = _history("Je construis une villa à Douala")
    first = responder.advise(history, None, "generic", {"surface": 80})
    second = responder.advise(history, None, "generic", {"surface": 80})
    assert first == second
    assert "Ta demande : « Je construis une villa à Douala »" in first.reply


def test_no_questions_adds_disclaimer():
    result = HeuristicResponder(max_questions=0).advise([], None, "generic", {})
    assert result.follow_up_questions == []
    assert "bureau d'études" in result.reply
