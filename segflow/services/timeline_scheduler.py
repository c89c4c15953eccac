"""
Timeline Scheduler: due dates for every step of a segment from one anchor.

Pure functions only; nothing here touches the database or the clock except
through the ``today`` argument.

Algorithm:
    - The single ``production`` step sits on the anchor date.
    - ``pre`` steps walk BACKWARD from the anchor in reverse template order.
      A strict pin puts the step on the pinned date and moves the cursor
      there; otherwise the step ends ``duration`` days before the cursor.
    - ``post`` steps, then ``publish`` steps, walk FORWARD in template order.
      A strict pin puts the step on the pinned date and the cursor on its
      last day; otherwise the step starts the day after the cursor.
    - Warnings (lead-time shortfall, dates in the past, pins on the wrong
      side of production, unknown override keys) never block scheduling.

Usage:
    result = schedule(date(2024, 6, 15), template, overrides={"edit": StepOverride(duration_days=4)})
    result.due_dates["edit"], result.warnings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from segflow.core.exceptions import InvalidTemplateError
from segflow.models.vocabulary import VALID_PHASES, Phase, normalize_role_key
from segflow.utils.helpers import parse_date_input


@dataclass(frozen=True)
class StepTemplate:
    key: str
    name: str
    phase: str
    duration_days: int = 1
    gate_roles: tuple[str, ...] = ()

    @property
    def is_gate(self) -> bool:
        return bool(self.gate_roles)


@dataclass(frozen=True)
class StepOverride:
    duration_days: int | None = None
    anchor_date: date | None = None


@dataclass
class ScheduleResult:
    due_dates: dict[str, date] = field(default_factory=dict)
    durations: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def start_date(self) -> date | None:
        return min(self.due_dates.values()) if self.due_dates else None

    @property
    def end_date(self) -> date | None:
        if not self.due_dates:
            return None
        return max(d + timedelta(days=self.durations.get(k, 1) - 1) for k, d in self.due_dates.items())

    def to_dict(self) -> dict:
        return {
            "due_dates": {k: d.isoformat() for k, d in self.due_dates.items()},
            "durations": dict(self.durations),
            "warnings": list(self.warnings),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }


def clamp_duration(value) -> int:
    """Coerce an override duration to whole days, minimum 1."""
    try:
        days = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, days)


def _validate_template(template: list[StepTemplate]) -> StepTemplate:
    """Check the template shape and return its production step."""
    seen: set[str] = set()
    production = []
    for step in template:
        if not step.key:
            raise InvalidTemplateError("Every template step needs a key")
        if step.key in seen:
            raise InvalidTemplateError(f"Duplicate step key '{step.key}'", details={"key": step.key})
        seen.add(step.key)
        if step.phase not in VALID_PHASES:
            raise InvalidTemplateError(
                f"Unknown phase '{step.phase}' for step '{step.key}'",
                details={"key": step.key, "phase": step.phase},
            )
        if not isinstance(step.duration_days, int) or step.duration_days < 1:
            raise InvalidTemplateError(
                f"Step '{step.key}' must last at least 1 day",
                details={"key": step.key, "duration_days": step.duration_days},
            )
        if step.phase == Phase.PRODUCTION.value:
            production.append(step)
    if len(production) != 1:
        raise InvalidTemplateError(
            f"Template must contain exactly one production step, found {len(production)}",
            details={"production_steps": [s.key for s in production]},
        )
    return production[0]


def schedule(
    anchor_date: date,
    template: list[StepTemplate],
    overrides: dict[str, StepOverride] | None = None,
    today: date | None = None,
) -> ScheduleResult:
    """Compute due dates and feasibility warnings for ``template``.

    Raises:
        InvalidTemplateError: zero or several production steps, duplicate
            keys, unknown phases or non-positive default durations.
    """
    overrides = overrides or {}
    today = today or date.today()
    production = _validate_template(template)
    result = ScheduleResult()

    known = {s.key for s in template}
    for key in overrides:
        if key not in known:
            result.warnings.append(f"Override for unknown step '{key}' was ignored")

    def _duration(step: StepTemplate) -> int:
        if step.phase == Phase.PRODUCTION.value:
            return 1
        ov = overrides.get(step.key)
        if ov is not None and ov.duration_days is not None:
            return clamp_duration(ov.duration_days)
        return step.duration_days

    def _pin(step: StepTemplate) -> date | None:
        ov = overrides.get(step.key)
        return ov.anchor_date if ov is not None else None

    for step in template:
        result.durations[step.key] = _duration(step)

    due: dict[str, date] = {production.key: anchor_date}

    # Pre-production: backward from the anchor
    cursor = anchor_date
    pre_steps = [s for s in template if s.phase == Phase.PRE.value]
    for step in reversed(pre_steps):
        pin = _pin(step)
        if pin is not None:
            if pin > anchor_date:
                result.warnings.append(f"{step.name} is pinned after production ({pin.isoformat()})")
            due[step.key] = pin
            cursor = pin
        else:
            due[step.key] = cursor - timedelta(days=result.durations[step.key])
            cursor = due[step.key]

    # Post-production then publish: forward from the anchor
    cursor = anchor_date
    forward = [s for s in template if s.phase == Phase.POST.value]
    forward += [s for s in template if s.phase == Phase.PUBLISH.value]
    for step in forward:
        dur = result.durations[step.key]
        pin = _pin(step)
        if pin is not None:
            if pin <= anchor_date:
                result.warnings.append(f"{step.name} is pinned on or before production ({pin.isoformat()})")
            elif pin <= cursor:
                result.warnings.append(f"{step.name} is pinned inside the previous step ({pin.isoformat()})")
            due[step.key] = pin
            cursor = pin + timedelta(days=dur - 1)
        else:
            due[step.key] = cursor + timedelta(days=1)
            cursor = due[step.key] + timedelta(days=dur - 1)

    needed = sum(result.durations[s.key] for s in pre_steps)
    available = (anchor_date - today).days
    if available < needed:
        result.warnings.append(
            f"Not enough time: need {needed} days, but only {max(available, 0)} left before production "
            f"(short by {needed - max(available, 0)} days)."
        )

    for step in template:
        result.due_dates[step.key] = due[step.key]
        if due[step.key] < today:
            result.warnings.append(f"{step.name} is before today")

    return result


def template_from_dicts(items: list[dict]) -> list[StepTemplate]:
    """Build StepTemplate entries from JSON-style dicts.

    Accepts ``duration_days`` or ``duration`` and ``gate_roles`` or ``roles``.
    """
    if not isinstance(items, list) or not items:
        raise InvalidTemplateError("Step template must be a non-empty list")
    template = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise InvalidTemplateError(f"Template entry {idx} must be an object")
        key = str(raw.get("key") or "").strip()
        name = str(raw.get("name") or key).strip()
        phase = str(raw.get("phase") or "").strip().lower()
        duration = raw.get("duration_days", raw.get("duration", 1))
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise InvalidTemplateError(
                f"Step '{key}' duration must be a whole number of days",
                details={"key": key, "duration_days": duration},
            )
        roles = []
        for role in raw.get("gate_roles", raw.get("roles")) or []:
            normalized = normalize_role_key(role)
            if normalized is None:
                raise InvalidTemplateError(
                    f"Unknown gate role '{role}' on step '{key}'",
                    details={"key": key, "role_key": role},
                )
            if normalized not in roles:
                roles.append(normalized)
        template.append(StepTemplate(key=key, name=name, phase=phase, duration_days=duration, gate_roles=tuple(roles)))
    return template


def overrides_from_dict(raw: dict | None) -> dict[str, StepOverride]:
    """Parse ``{step_key: {"duration_days": n, "anchor_date": "YYYY-MM-DD"}}``.

    Raises ValueError on a non-object mapping or entry, or an unparseable pin.
    """
    if raw is not None and not isinstance(raw, dict):
        raise ValueError("overrides must be an object keyed by step")
    result = {}
    for key, value in (raw or {}).items():
        if value is None:
            value = {}
        if not isinstance(value, dict):
            raise ValueError(f"Override for step '{key}' must be an object")
        duration = value.get("duration_days", value.get("duration"))
        pin = parse_date_input(value.get("anchor_date") or value.get("pin"))
        result[str(key)] = StepOverride(
            duration_days=clamp_duration(duration) if duration is not None else None,
            anchor_date=pin,
        )
    return result
