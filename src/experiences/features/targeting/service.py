from __future__ import annotations

import re
import time
from typing import Any

from experiences.features.context.types import Context
from experiences.features.decisions.types import EvaluationResult, TraceStep

from .types import DisplayTrigger, Experience, UrlRule


def _elapsed_ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000.0


def _compile(pattern: str | re.Pattern[str]) -> re.Pattern[str] | None:
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except (re.error, TypeError):
        return None


def evaluate_url_rule(rule: UrlRule, url: str = "") -> bool:
    """
    Pure. equals (exact, case-sensitive) > contains (substring) > matches
    (regex search). Empty rule matches everything; a malformed pattern
    matches nothing.
    """
    url = url or ""
    if rule.equals is not None:
        return url == rule.equals
    if rule.contains is not None:
        return rule.contains in url
    if rule.matches is not None:
        compiled = _compile(rule.matches)
        if compiled is None:
            return False
        return compiled.search(url) is not None
    return True


def evaluate_display_trigger(trigger: DisplayTrigger, context: Context) -> tuple[bool, str]:
    signal = context.trigger(trigger.name)
    if signal is None or not signal.triggered:
        return False, f"Waiting for trigger: {trigger.name}"

    if trigger.threshold is not None:
        current = signal.get("threshold")
        try:
            at = None if current is None else float(current)
        except (TypeError, ValueError):
            at = None
        # exact match, not >=
        if at is None or at != float(trigger.threshold):
            return (
                False,
                f"Trigger {trigger.name} at threshold {current}, waiting for {trigger.threshold}",
            )
        return True, f"Trigger {trigger.name} fired at threshold {trigger.threshold}"

    return True, f"Trigger {trigger.name} fired"


def evaluate_experience(experience: Experience, context: Context) -> EvaluationResult:
    """
    Pure match of one experience's targeting against a context.

    Every configured sub-rule is evaluated and traced even after an earlier
    one failed; the result is the AND of all of them.
    """
    reasons: list[str] = []
    trace: list[TraceStep] = []
    matched = True
    targeting = experience.targeting

    if targeting.url is not None:
        t0 = time.perf_counter()
        url_match = evaluate_url_rule(targeting.url, context.url)
        invalid = targeting.url.matches is not None and _compile(targeting.url.matches) is None
        trace.append(
            TraceStep(
                step="evaluate-url-rule",
                timestamp=context.timestamp,
                duration=_elapsed_ms(t0),
                input={"rule": targeting.url.as_dict(), "url": context.url},
                output=url_match,
                passed=url_match,
            )
        )
        if url_match:
            reasons.append("URL matches targeting rule")
        else:
            if invalid and targeting.url.equals is None and targeting.url.contains is None:
                reasons.append(f"Invalid URL pattern: {targeting.url.as_dict()['matches']!r}")
            reasons.append("URL does not match targeting rule")
            matched = False

    if targeting.custom is not None:
        t0 = time.perf_counter()
        error: str | None = None
        try:
            custom_match = bool(targeting.custom(context))
        except Exception as e:  # noqa: BLE001
            custom_match = False
            error = f"{type(e).__name__}: {e}"
        output: Any = custom_match if error is None else {"error": error}
        trace.append(
            TraceStep(
                step="evaluate-custom-rule",
                timestamp=context.timestamp,
                duration=_elapsed_ms(t0),
                input={"predicate": getattr(targeting.custom, "__name__", "custom")},
                output=output,
                passed=custom_match,
            )
        )
        if error is not None:
            reasons.append(f"Custom targeting rule raised {error}")
            matched = False
        elif custom_match:
            reasons.append("Custom targeting rule passed")
        else:
            reasons.append("Custom targeting rule failed")
            matched = False

    if targeting.trigger is not None:
        t0 = time.perf_counter()
        trigger_match, reason = evaluate_display_trigger(targeting.trigger, context)
        signal = context.trigger(targeting.trigger.name)
        trace.append(
            TraceStep(
                step="evaluate-display-trigger",
                timestamp=context.timestamp,
                duration=_elapsed_ms(t0),
                input=targeting.trigger.as_dict(),
                output=None if signal is None else signal.as_dict(),
                passed=trigger_match,
            )
        )
        reasons.append(reason)
        if not trigger_match:
            matched = False

    return EvaluationResult(matched=matched, reasons=tuple(reasons), trace=tuple(trace))
