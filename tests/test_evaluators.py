import asyncio

from watchrouter.routing.conditions import Condition
from watchrouter.routing.evaluators import (
    CertificationEvaluator,
    GenreEvaluator,
    LanguageEvaluator,
    UserEvaluator,
    YearEvaluator,
)
from watchrouter.routing.types import ContentItem, RadarrMetadata, RoutingContext, SonarrMetadata


def _movie(**metadata) -> ContentItem:
    return ContentItem(
        title="The Matrix",
        type="movie",
        guids=["tmdb:603"],
        genres=["Action", "Science Fiction"],
        metadata=RadarrMetadata(**metadata) if metadata else None,
    )


def _ctx(content_type="movie", user_id=1, user_name="alice") -> RoutingContext:
    return RoutingContext(user_id=user_id, content_type=content_type, item_key="k", user_name=user_name)


def test_genre_rule_produces_decision(db) -> None:
    db.create_router_rule("scifi", "genre", {"genre": "science fiction"}, "radarr", 3, order=10)
    db.create_router_rule("anime", "genre", {"genre": "Anime"}, "radarr", 4)
    evaluator = GenreEvaluator(db)

    decisions = asyncio.run(evaluator.evaluate(_movie(), _ctx()))

    assert len(decisions) == 1
    assert decisions[0].instance_id == 3
    assert decisions[0].priority == GenreEvaluator.priority
    assert decisions[0].order == 10


def test_no_match_returns_none_not_empty(db) -> None:
    db.create_router_rule("anime", "genre", {"genre": "Anime"}, "radarr", 4)
    assert asyncio.run(GenreEvaluator(db).evaluate(_movie(), _ctx())) is None


def test_rules_for_other_target_type_ignored(db) -> None:
    db.create_router_rule("scifi shows", "genre", {"genre": "Science Fiction"}, "sonarr", 3)
    assert asyncio.run(GenreEvaluator(db).evaluate(_movie(), _ctx())) is None


def test_disabled_rules_ignored(db) -> None:
    db.create_router_rule("scifi", "genre", {"genre": "Science Fiction"}, "radarr", 3, enabled=False)
    assert asyncio.run(GenreEvaluator(db).evaluate(_movie(), _ctx())) is None


def test_can_evaluate_requires_data(db) -> None:
    item = _movie()
    assert asyncio.run(GenreEvaluator(db).can_evaluate(item, _ctx()))
    assert not asyncio.run(CertificationEvaluator(db).can_evaluate(item, _ctx()))
    assert not asyncio.run(YearEvaluator(db).can_evaluate(item, _ctx()))
    assert not asyncio.run(UserEvaluator(db).can_evaluate(item, _ctx(user_id=None, user_name=None)))


def test_can_evaluate_rejects_mismatched_context(db) -> None:
    assert not asyncio.run(GenreEvaluator(db).can_evaluate(_movie(), _ctx(content_type="show")))


def test_certification_case_insensitive(db) -> None:
    evaluator = CertificationEvaluator(db)
    item = _movie(certification="pg-13")
    assert evaluator.evaluate_condition(Condition(field="certification", operator="equals", value="PG-13"), item, _ctx())
    assert evaluator.evaluate_condition(Condition(field="certification", operator="in", value=["R", "pg-13"]), item, _ctx())
    assert not evaluator.evaluate_condition(Condition(field="certification", operator="notEquals", value="Pg-13"), item, _ctx())


def test_year_operators(db) -> None:
    evaluator = YearEvaluator(db)
    item = _movie(year=1999)
    assert evaluator.evaluate_condition(Condition(field="year", operator="between", value={"min": 1990, "max": 1999}), item, _ctx())
    assert not evaluator.evaluate_condition(Condition(field="year", operator="between", value={"min": 2000}), item, _ctx())
    assert evaluator.evaluate_condition(Condition(field="year", operator="greaterThan", value="1998"), item, _ctx())
    assert evaluator.evaluate_condition(Condition(field="year", operator="notIn", value=[2000, 2001]), item, _ctx())
    assert not evaluator.evaluate_condition(Condition(field="year", operator="equals", value="soon"), item, _ctx())


def test_language_matching(db) -> None:
    evaluator = LanguageEvaluator(db)
    show = ContentItem(title="Attack on Titan", type="show", guids=["tvdb:267440"],
                       metadata=SonarrMetadata(original_language="Japanese"))
    ctx = _ctx(content_type="show")
    assert evaluator.evaluate_condition(Condition(field="language", operator="equals", value="japanese"), show, ctx)
    assert evaluator.evaluate_condition(Condition(field="language", operator="regex", value="^Jap"), show, ctx)


def test_user_matches_id_or_name(db) -> None:
    evaluator = UserEvaluator(db)
    item = _movie()
    assert evaluator.evaluate_condition(Condition(field="user", operator="equals", value=1), item, _ctx())
    assert evaluator.evaluate_condition(Condition(field="user", operator="in", value=["Bob", "ALICE"]), item, _ctx())
    assert evaluator.evaluate_condition(Condition(field="user", operator="notIn", value=["bob"]), item, _ctx())


def test_unsafe_regex_rule_does_not_match(db) -> None:
    db.create_router_rule(
        "evil", "genre",
        {"condition": {"field": "genre", "operator": "regex", "value": "(a+)+$"}},
        "radarr", 3,
    )
    item = _movie()
    item.genres = ["a" * 5000 + "!"]
    assert asyncio.run(GenreEvaluator(db).evaluate(item, _ctx())) is None


def test_negated_rule(db) -> None:
    db.create_router_rule(
        "not anime", "genre",
        {"condition": {"field": "genre", "operator": "contains", "value": "Anime", "negate": True}},
        "radarr", 5,
    )
    decisions = asyncio.run(GenreEvaluator(db).evaluate(_movie(), _ctx()))
    assert [d.instance_id for d in decisions] == [5]


def test_malformed_rule_skipped(db) -> None:
    rule = db.create_router_rule("ok", "genre", {"genre": "Action"}, "radarr", 3)
    rule.criteria = {"nonsense": True}
    db.db.commit()
    db.create_router_rule("ok too", "genre", {"genre": "Action"}, "radarr", 4)

    decisions = asyncio.run(GenreEvaluator(db).evaluate(_movie(), _ctx()))
    assert [d.instance_id for d in decisions] == [4]
