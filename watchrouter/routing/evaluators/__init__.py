from watchrouter.routing.evaluators.base import RoutingEvaluator
from watchrouter.routing.evaluators.certification import CertificationEvaluator
from watchrouter.routing.evaluators.conditional import ConditionalEvaluator
from watchrouter.routing.evaluators.genre import GenreEvaluator
from watchrouter.routing.evaluators.language import LanguageEvaluator
from watchrouter.routing.evaluators.user import UserEvaluator
from watchrouter.routing.evaluators.year import YearEvaluator


def build_default_evaluators(db, router):
    return [
        ConditionalEvaluator(db, router),
        GenreEvaluator(db),
        UserEvaluator(db),
        YearEvaluator(db),
        LanguageEvaluator(db),
        CertificationEvaluator(db),
    ]


__all__ = [
    "RoutingEvaluator",
    "CertificationEvaluator",
    "ConditionalEvaluator",
    "GenreEvaluator",
    "LanguageEvaluator",
    "UserEvaluator",
    "YearEvaluator",
    "build_default_evaluators",
]
