from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

from sqlalchemy.engine import Engine

from pfcollect.analytics.pipeline import run_price_change_pipeline
from pfcollect.analytics.variants import CARD, GRADED, SEALED
from pfcollect.collectors import (
    card_prices,
    cards,
    currency_rates,
    discord_cleanup,
    movers,
    portfolio_values,
    price_map,
    prices,
    sealed_images,
    sealed_prices,
    sets,
    sprites,
)
from pfcollect.jobs.base import METHOD_MANUAL, JobResult


@dataclass(frozen=True)
class JobSpec:
    name: str
    func: Callable[..., JobResult]
    # CLI options the job accepts (meta, image, setid)
    options: tuple[str, ...] = ()

    def __call__(self, engine: Engine, method: str = METHOD_MANUAL, **options: Any) -> JobResult:
        kwargs = {k: v for k, v in options.items() if k in self.options and v is not None}
        return self.func(engine, method=method, **kwargs)


_SPECS = (
    JobSpec("collectSets", sets.run, ("meta", "image")),
    JobSpec("collectCards", cards.run, ("meta", "image", "setid")),
    JobSpec("collectPrice", prices.run, ("setid",)),
    JobSpec("initPriceMap", price_map.run, ("setid",)),
    JobSpec("collectCardPrices", card_prices.run, ("setid",)),
    JobSpec("collectSealedPrices", sealed_prices.run, ("setid",)),
    JobSpec("collectSealedImages", sealed_images.run, ("setid",)),
    JobSpec("collectSprites", sprites.run),
    JobSpec("collectCurrencyRates", currency_rates.run),
    JobSpec("collectAllPortfolioValues", portfolio_values.run),
    JobSpec("collectAnalysis", movers.run),
    JobSpec("collectPriceChanges", partial(run_price_change_pipeline, variant=CARD)),
    JobSpec("collectGradedAnalysis", partial(run_price_change_pipeline, variant=GRADED)),
    JobSpec("collectSealedAnalysis", partial(run_price_change_pipeline, variant=SEALED)),
    JobSpec("discordCleanup", discord_cleanup.run),
)

JOBS: dict[str, JobSpec] = {spec.name: spec for spec in _SPECS}


def get_job(name: str) -> JobSpec | None:
    return JOBS.get(name)
