from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path

from experiences.core.clock import Clock
from experiences.core.config import ExperiencesConfig, load_config, load_yaml
from experiences.core.logging import get_logger
from experiences.features.decisions.types import Decision
from experiences.features.page_events.types import PageEnvironment
from experiences.features.runtime.service import ExperienceRuntime
from experiences.features.targeting.factory import ExperienceFactory


@dataclass(frozen=True)
class EvaluateRequest:
    experiences_path: str
    url: str
    config_path: str | None = None
    # "first" -> evaluate(), "all" -> evaluate_all(), "explain" -> explain(explain_id)
    mode: str = "first"
    explain_id: str | None = None
    user_agent: str = ""


def load_experiences(path: str | Path) -> dict:
    data = load_yaml(path)
    # either {experiences: {...}} or the mapping itself
    nested = data.get("experiences")
    return nested if isinstance(nested, dict) else data


def run_evaluate(req: EvaluateRequest) -> list[Decision]:
    cfg = load_config(req.config_path) if req.config_path else ExperiencesConfig()
    logger = get_logger("experiences", cfg.logging.level)

    experiences = ExperienceFactory().build(load_experiences(req.experiences_path))
    runtime = ExperienceRuntime(
        cfg,
        clock=Clock.simulated(start_ms=int(time.time() * 1000)),
        environment=PageEnvironment(url=req.url, user_agent=req.user_agent),
    )

    runtime.init()
    try:
        for exp in experiences:
            runtime.register(exp.id, exp)

        logger.info(
            "evaluating",
            extra={"feature": "cli", "event": req.mode, "reason": f"experiences={len(experiences)}"},
        )

        if req.mode == "all":
            return runtime.evaluate_all({"url": req.url})
        if req.mode == "explain":
            if req.explain_id is None:
                raise ValueError("explain mode requires an experience id")
            decision = runtime.explain(req.explain_id, {"url": req.url})
            return [] if decision is None else [decision]
        return [runtime.evaluate({"url": req.url})]
    finally:
        runtime.destroy()
