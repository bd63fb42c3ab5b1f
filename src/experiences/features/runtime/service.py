from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from experiences.core.clock import Clock
from experiences.core.config import ExperiencesConfig, parse_config
from experiences.core.logging import get_logger
from experiences.features.audit.service import DecisionAuditLog
from experiences.features.context.service import build_context
from experiences.features.context.types import Context, PartialContext
from experiences.features.decisions.service import DecisionRecorder
from experiences.features.decisions.types import Decision, TraceStep
from experiences.features.events import schema as ev
from experiences.features.events.service import EventEmitter
from experiences.features.frequency.service import FrequencyLedger
from experiences.features.page_events.service import PageEventSource
from experiences.features.page_events.types import PageEnvironment
from experiences.features.persistence.duckdb_adapter import DuckDBAdapter
from experiences.features.persistence.service import StorageBackends
from experiences.features.targeting.factory import ExperienceFactory
from experiences.features.targeting.service import evaluate_experience
from experiences.features.targeting.types import Experience
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import TriggerSignal, TriggerSource

from .debug import DebugObserver
from .sources import build_sources, parse_frequency_settings
from .types import Lifecycle, RuntimeState

Handler = Callable[[Any], None]


class ExperienceRuntime:
    """
    Orchestrates context building, rule evaluation and frequency gating.

    uninitialized -> initialized -> destroyed (-> initialized again via init()).

    Ownership:
    - the experience registry (insertion ordered, last write wins)
    - the cumulative trigger map, copied by value into every Context
    - the trigger bus; each published signal is merged and then drives one
      full evaluate_all() pass before publish() returns
    """

    def __init__(
        self,
        config: ExperiencesConfig | Mapping[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        page: PageEventSource | None = None,
        environment: PageEnvironment | None = None,
        storage: StorageBackends | None = None,
    ) -> None:
        if isinstance(config, Mapping):
            config = parse_config(dict(config))
        self.config = config or ExperiencesConfig()
        self.clock = clock or Clock.realtime()
        self.page = page or PageEventSource()
        self.environment = environment or PageEnvironment()

        self._logger = get_logger(__name__, self.config.logging.level)
        self._factory = ExperienceFactory()
        self._lifecycle = Lifecycle.UNINITIALIZED

        self.events = EventEmitter()
        self.bus = TriggerBus()
        self.recorder = DecisionRecorder(
            history_limit=self.config.runtime.history_limit, events=self.events
        )

        self._injected_storage = storage
        self._adapter: DuckDBAdapter | None = None
        self._ledger: FrequencyLedger | None = None
        self._audit: DecisionAuditLog | None = None
        self._debug: DebugObserver | None = None

        self._experiences: dict[str, Experience] = {}
        self._triggers: dict[str, TriggerSignal] = {}
        self._sources: list[TriggerSource] = []
        self._unsubscribe_bus: Callable[[], None] | None = None
        self._depth = 0

        self._wire_impressions()

    # ----------------------------
    # Lifecycle
    # ----------------------------
    @property
    def initialized(self) -> bool:
        return self._lifecycle is Lifecycle.INITIALIZED

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    @property
    def ledger(self) -> FrequencyLedger:
        if self._ledger is None:
            settings = parse_frequency_settings(self.config.section("frequency"))
            self._ledger = FrequencyLedger(
                storage=self._open_storage(),
                now_ms=self.clock.now_ms,
                namespace=settings.namespace,
                enabled=settings.enabled,
                events=self.events,
            )
            for exp in self._experiences.values():
                if exp.frequency is not None:
                    self._ledger.register_experience(exp.id, exp.frequency.per)
        return self._ledger

    @property
    def sources(self) -> list[TriggerSource]:
        return list(self._sources)

    def source(self, name: str) -> TriggerSource | None:
        self.clock.run_pending()
        for src in self._sources:
            if src.name == name:
                return src
        return None

    def init(self) -> None:
        if self._lifecycle is Lifecycle.INITIALIZED:
            self._logger.warning("already initialized", extra={"feature": "runtime"})
            return

        if self.bus.closed:
            self.bus = TriggerBus()

        ledger = self.ledger
        if self._adapter is not None and self.config.storage.audit_decisions:
            self._audit = DecisionAuditLog(
                adapter=self._adapter,
                every_n_decisions=self.config.storage.flush.every_n_decisions,
                or_every_seconds=self.config.storage.flush.or_every_seconds,
            )
            self._audit.open()
            self._audit.start_periodic_flush(self.clock.env)
            self.events.on(ev.DECISION_RECORDED, self._audit.on_decision_recorded)

        if self.config.runtime.debug:
            self._debug = DebugObserver(self.events)
            self._debug.attach()

        self._unsubscribe_bus = self.bus.subscribe_all(self._on_signal)
        self._sources = build_sources(
            config=self.config,
            bus=self.bus,
            clock=self.clock,
            page=self.page,
            environment=self.environment,
            storage=ledger.storage,
        )
        self._lifecycle = Lifecycle.INITIALIZED

        for src in self._sources:
            src.start()

        self._logger.info(
            "runtime ready",
            extra={
                "feature": "runtime",
                "event": ev.READY,
                "reason": f"sources={len(self._sources)}",
            },
        )
        self.events.emit(ev.READY, {"sources": [s.name for s in self._sources]})

    def destroy(self) -> None:
        # bus first so late source callbacks cannot reach a torn-down runtime
        if self._unsubscribe_bus is not None:
            self._unsubscribe_bus()
            self._unsubscribe_bus = None
        self.bus.close()

        for src in self._sources:
            src.destroy()
        self._sources = []

        self.events.emit(ev.DESTROYED, None)

        if self._audit is not None:
            self._audit.close()
            self._audit = None
        if self._debug is not None:
            self._debug.detach()
            self._debug = None

        self.events.clear()
        self._experiences.clear()
        self._triggers.clear()
        self.recorder.clear()
        self._close_storage()

        self._lifecycle = Lifecycle.DESTROYED
        self._wire_impressions()

    # ----------------------------
    # Registry
    # ----------------------------
    def register(
        self, experience_id: str, definition: Mapping[str, Any] | Experience
    ) -> Experience:
        experience = self._factory.parse(experience_id, definition)
        self._experiences[experience_id] = experience

        if experience.frequency is not None:
            self.ledger.register_experience(experience_id, experience.frequency.per)
        elif self._ledger is not None:
            # overwrite without frequency; later impressions fall back to session
            self._ledger.forget_experience(experience_id)

        self._logger.debug(
            "experience registered",
            extra={"feature": "runtime", "experience_id": experience_id, "event": ev.REGISTERED},
        )
        self.events.emit(ev.REGISTERED, {"id": experience_id, "experience": experience})
        return experience

    def get_experience(self, experience_id: str) -> Experience | None:
        return self._experiences.get(experience_id)

    # ----------------------------
    # Evaluation
    # ----------------------------
    def evaluate(self, partial: PartialContext | Mapping[str, Any] | None = None) -> Decision:
        """
        Single best match in registration order. Records and emits exactly
        one Decision; reasons and trace accumulate over every experience
        checked before the match.
        """
        self.clock.run_pending()
        with self._pass():
            started_at = time.perf_counter()
            context = self._context(partial)

            matched: Experience | None = None
            reasons: list[str] = []
            trace: list[TraceStep] = []
            for experience in list(self._experiences.values()):
                show, exp_reasons, exp_trace = self._check(experience, context)
                reasons.extend(exp_reasons)
                trace.extend(exp_trace)
                if show:
                    matched = experience
                    break

            if not self._experiences:
                reasons.append("No experiences registered")

            decision = self.recorder.record(
                DecisionRecorder.assemble(
                    show=matched is not None,
                    experience_id=None if matched is None else matched.id,
                    reasons=reasons,
                    trace=trace,
                    context=context,
                    evaluated_at=self.clock.now_ms(),
                    started_at=started_at,
                    experiences_evaluated=len(self._experiences),
                )
            )
            self.events.emit(ev.EVALUATED, {"decision": decision, "experience": matched})
            return decision

    def evaluate_all(
        self, partial: PartialContext | Mapping[str, Any] | None = None
    ) -> list[Decision]:
        """
        Every experience, by priority descending (ties keep registration
        order), yields one Decision. Matched ones are emitted one by one.
        """
        self.clock.run_pending()
        with self._pass():
            context = self._context(partial)
            ordered = sorted(self._experiences.values(), key=lambda e: -e.priority)

            decisions: list[tuple[Decision, Experience]] = []
            for experience in ordered:
                started_at = time.perf_counter()
                show, reasons, trace = self._check(experience, context)
                decision = self.recorder.record(
                    DecisionRecorder.assemble(
                        show=show,
                        experience_id=experience.id,
                        reasons=reasons,
                        trace=trace,
                        context=context,
                        evaluated_at=self.clock.now_ms(),
                        started_at=started_at,
                        experiences_evaluated=1,
                    )
                )
                decisions.append((decision, experience))

            for decision, experience in decisions:
                if decision.show:
                    self.events.emit(ev.EVALUATED, {"decision": decision, "experience": experience})

            return [d for d, _ in decisions]

    def explain(
        self, experience_id: str, partial: PartialContext | Mapping[str, Any] | None = None
    ) -> Decision | None:
        """
        Evaluates one experience against the current context. Nothing is
        recorded, emitted or counted.
        """
        self.clock.run_pending()
        experience = self._experiences.get(experience_id)
        if experience is None:
            return None

        started_at = time.perf_counter()
        context = self._context(partial)
        show, reasons, trace = self._check(experience, context)
        return DecisionRecorder.assemble(
            show=show,
            experience_id=experience_id,
            reasons=reasons,
            trace=trace,
            context=context,
            evaluated_at=self.clock.now_ms(),
            started_at=started_at,
            experiences_evaluated=1,
        )

    # ----------------------------
    # Inspection / observers
    # ----------------------------
    def get_state(self) -> RuntimeState:
        self.clock.run_pending()
        return RuntimeState(
            initialized=self.initialized,
            experiences=dict(self._experiences),
            decisions=self.recorder.history(),
            config=self.config,
            triggers={name: sig.as_dict() for name, sig in self._triggers.items()},
        )

    def get_triggers(self) -> dict[str, TriggerSignal]:
        self.clock.run_pending()
        return dict(self._triggers)

    def on(self, event_name: str, handler: Handler) -> Callable[[], None]:
        return self.events.on(event_name, handler)

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _context(self, partial: PartialContext | Mapping[str, Any] | None) -> Context:
        return build_context(
            partial,
            now_ms=self.clock.now_ms(),
            default_url=self.environment.url,
            triggers=self._triggers,
        )

    def _check(
        self, experience: Experience, context: Context
    ) -> tuple[bool, list[str], list[TraceStep]]:
        result = evaluate_experience(experience, context)
        reasons = list(result.reasons)
        trace = list(result.trace)
        show = result.matched

        freq = experience.frequency
        if show and freq is not None:
            t0 = time.perf_counter()
            capped = self.ledger.has_reached_cap(experience.id, freq.max, freq.per)
            count = self.ledger.get_impression_count(experience.id, freq.per)
            trace.append(
                TraceStep(
                    step="check-frequency-cap",
                    timestamp=context.timestamp,
                    duration=(time.perf_counter() - t0) * 1000.0,
                    input=freq.as_dict(),
                    output=capped,
                    passed=not capped,
                )
            )
            if capped:
                reasons.append(f"Frequency cap reached ({count}/{freq.max} this {freq.per})")
                show = False
            else:
                reasons.append(f"Frequency cap not reached ({count}/{freq.max} this {freq.per})")

        return show, reasons, trace

    @contextmanager
    def _pass(self) -> Iterator[None]:
        self._depth += 1
        if self._depth > 1:
            # observers calling back into evaluation; not blocked
            self._logger.warning(
                "re-entrant evaluation",
                extra={"feature": "runtime", "reason": f"depth={self._depth}"},
            )
        try:
            yield
        finally:
            self._depth -= 1

    def _on_signal(self, name: str, payload: Mapping[str, Any]) -> None:
        previous = self._triggers.get(name) or TriggerSignal(name=name)
        signal = previous.merged(payload)
        self._triggers[name] = signal

        self._logger.debug(
            "trigger merged", extra={"feature": "runtime", "trigger": name, "event": "trigger"}
        )
        self.events.emit(ev.trigger_event(name), signal.as_dict())
        self.evaluate_all()

    def _on_evaluated(self, payload: Mapping[str, Any]) -> None:
        decision: Decision = payload["decision"]
        if decision.show and decision.experience_id is not None:
            self.ledger.record_impression(decision.experience_id)

    def _wire_impressions(self) -> None:
        # downstream reaction to show=True decisions; evaluation itself stays pure
        self.events.on(ev.EVALUATED, self._on_evaluated)

    def _open_storage(self) -> StorageBackends:
        if self._injected_storage is not None:
            return self._injected_storage

        path = self.config.storage.duckdb_path
        if path is None:
            return StorageBackends.in_memory(self.clock.now_ms)

        self._adapter = DuckDBAdapter(path=path, clean_slate=self.config.storage.clean_slate)
        self._adapter.open()
        return StorageBackends.with_duckdb(self._adapter, self.clock.now_ms)

    def _close_storage(self) -> None:
        self._ledger = None
        if self._adapter is not None:
            self._adapter.close()
            self._adapter = None
