"""Interactive shrink session loop.

One pass walks through a fixed sequence of states:

    COLLECT_INPUT -> QUERY_CONSTRAINTS -> VALIDATE -> CONFIRM -> EXECUTE
        -> REPORT -> ASK_RESTART

No valid targets, an infeasible request, or a declined confirmation jump
straight to REPORT without touching any target. ASK_RESTART starts a new
pass with a fresh Session; nothing carries over between passes.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

import click

from volshrink.config_manager import VolshrinkConfig
from volshrink.constraint_collector import CollectionResult, ConstraintCollector, NoValidTargetsError
from volshrink.display import ReportRenderer
from volshrink.errors import InputInvalidError
from volshrink.input_parsing import (
    ensure_unique_targets,
    format_size,
    parse_drive_letter,
    parse_key_path,
    parse_size,
    parse_target_count,
    parse_target_name,
    parse_user,
)
from volshrink.models import Target
from volshrink.remote_exec import Credentials
from volshrink.rollout_executor import RolloutExecutor, RolloutReport
from volshrink.shrink_validator import ShrinkRequest, ShrinkValidator, ValidationResult

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    COLLECT_INPUT = "collect_input"
    QUERY_CONSTRAINTS = "query_constraints"
    VALIDATE = "validate"
    CONFIRM = "confirm"
    EXECUTE = "execute"
    REPORT = "report"
    ASK_RESTART = "ask_restart"
    DONE = "done"


class SessionOutcome(str, Enum):
    """How a pass ended."""

    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    NO_VALID_TARGETS = "no_valid_targets"
    VALIDATION_FAILED = "validation_failed"
    CANCELLED = "cancelled"

    @property
    def needs_attention(self) -> bool:
        """True when the caller should investigate (non-zero exit)."""
        return self in (
            SessionOutcome.PARTIAL_FAILURE,
            SessionOutcome.NO_VALID_TARGETS,
            SessionOutcome.VALIDATION_FAILED,
        )


@dataclass(frozen=True)
class Session:
    """Working state of one pass. Each phase produces a new value."""

    targets: tuple[Target, ...]
    drive: str
    credentials: Credentials
    collection: CollectionResult | None = None
    request: ShrinkRequest | None = None
    validation: ValidationResult | None = None
    report: RolloutReport | None = None
    outcome: SessionOutcome | None = None

    @property
    def target_names(self) -> list[str]:
        return [t.name for t in self.targets]

    def evolve(self, **changes: Any) -> "Session":
        return replace(self, **changes)


@dataclass(frozen=True)
class SessionPresets:
    """Values supplied on the command line for the first pass only."""

    targets: tuple[str, ...] = ()
    drive: str | None = None
    user: str | None = None
    key_path: Path | None = None
    delta: int | None = None
    assume_yes: bool = False


class Prompter:
    """Line-oriented prompts that re-ask until a field parses."""

    def __init__(
        self,
        prompt: Callable[..., Any] = click.prompt,
        confirm: Callable[..., bool] = click.confirm,
        echo: Callable[..., None] = click.echo,
    ):
        self._prompt = prompt
        self._confirm = confirm
        self.echo = echo

    def ask(self, label: str, parser: Callable[[str], Any], default: str | None = None) -> Any:
        """Prompt for a field until parser accepts it."""
        while True:
            text = self._prompt(label, default=default, show_default=bool(default), type=str)
            try:
                return parser(text)
            except InputInvalidError as e:
                self.echo(f"Error: {e}", err=True)

    def confirm(self, question: str, default: bool = False) -> bool:
        return bool(self._confirm(question, default=default))


class SessionLoop:
    """Drive collect -> validate -> confirm -> execute -> report passes."""

    def __init__(
        self,
        collector: ConstraintCollector,
        validator: ShrinkValidator,
        rollout: RolloutExecutor,
        config: VolshrinkConfig | None = None,
        renderer: ReportRenderer | None = None,
        prompter: Prompter | None = None,
        presets: SessionPresets | None = None,
        allow_restart: bool = True,
        on_executed: Callable[[Session], None] | None = None,
    ):
        """Initialize session loop.

        Args:
            collector: Constraint collector
            validator: Shrink validator
            rollout: Rollout executor
            config: Configuration supplying prompt defaults
            renderer: Report renderer
            prompter: Prompter used for every interaction
            presets: Command-line values used for the first pass
            allow_restart: Offer to start over after each pass
            on_executed: Called after a pass reached EXECUTE
        """
        self.collector = collector
        self.validator = validator
        self.rollout = rollout
        self.config = config or VolshrinkConfig()
        self.renderer = renderer or ReportRenderer()
        self.prompter = prompter or Prompter()
        self.presets = presets or SessionPresets()
        self.allow_restart = allow_restart
        self.on_executed = on_executed

    def run(self) -> list[Session]:
        """Run passes until the user declines to restart.

        Returns:
            The finished Session of every pass, in order
        """
        history: list[Session] = []
        presets = self.presets
        session: Session | None = None
        state = SessionState.COLLECT_INPUT

        while state is not SessionState.DONE:
            logger.debug(f"Session state: {state.value}")

            if state is SessionState.COLLECT_INPUT:
                session = self.collect_input(presets)
                state = SessionState.QUERY_CONSTRAINTS
            elif state is SessionState.QUERY_CONSTRAINTS:
                session, state = self.query_constraints(session)
            elif state is SessionState.VALIDATE:
                session, state = self.validate(session, presets.delta)
            elif state is SessionState.CONFIRM:
                session, state = self.confirm(session, presets.assume_yes)
            elif state is SessionState.EXECUTE:
                session, state = self.execute(session)
            elif state is SessionState.REPORT:
                self.report(session)
                history.append(session)
                state = SessionState.ASK_RESTART
            elif state is SessionState.ASK_RESTART:
                # Presets apply to the first pass only
                presets = SessionPresets()
                session = None
                if self.allow_restart and self.prompter.confirm(
                    "Start over with new input?", default=False
                ):
                    state = SessionState.COLLECT_INPUT
                else:
                    state = SessionState.DONE

        return history

    def collect_input(self, presets: SessionPresets) -> Session:
        """Gather targets, drive letter and credentials."""
        names = list(presets.targets) or self._prompt_targets()

        drive = presets.drive or self.prompter.ask(
            "Drive letter to shrink", parse_drive_letter, default=self.config.last_drive
        )

        targets = tuple(Target(name=name) for name in names)
        if all(t.is_local for t in targets):
            credentials = Credentials(user=presets.user or self.config.default_user)
        else:
            user = presets.user or self.prompter.ask(
                "Remote user", parse_user, default=self.config.default_user
            )
            if presets.key_path is not None:
                key_path = presets.key_path
            elif self.config.key_path is not None:
                key_path = self.config.key_path
            else:
                key_path = self.prompter.ask(
                    "SSH private key (blank for ssh default)",
                    parse_key_path,
                    default="",
                )
            credentials = Credentials(
                user=user,
                key_path=key_path,
                port=self.config.ssh_port,
                strict_host_key_checking=self.config.strict_host_key_checking,
            )

        return Session(targets=targets, drive=drive, credentials=credentials)

    def _prompt_targets(self) -> list[str]:
        last = self.config.last_targets or []
        count = self.prompter.ask(
            "Number of target hosts", parse_target_count, default=str(len(last)) if last else None
        )

        names: list[str] = []
        while len(names) < count:
            index = len(names)
            default = last[index] if index < len(last) else None
            name = self.prompter.ask(f"Target host {index + 1}", parse_target_name, default=default)
            try:
                ensure_unique_targets(names + [name])
            except InputInvalidError as e:
                self.prompter.echo(f"Error: {e}", err=True)
                continue
            names.append(name)
        return names

    def query_constraints(self, session: Session) -> tuple[Session, SessionState]:
        self.prompter.echo(
            f"Querying drive {session.drive}: on {len(session.targets)} target(s)..."
        )
        try:
            collection = self.collector.collect(
                list(session.targets),
                session.drive,
                session.credentials,
                progress_callback=self.prompter.echo,
            )
        except NoValidTargetsError as e:
            session = session.evolve(
                targets=tuple(o.target for o in e.result.outcomes),
                collection=e.result,
                outcome=SessionOutcome.NO_VALID_TARGETS,
            )
            return session, SessionState.REPORT

        session = session.evolve(
            targets=tuple(o.target for o in collection.outcomes), collection=collection
        )
        self.renderer.show_constraints(collection)
        return session, SessionState.VALIDATE

    def validate(self, session: Session, preset_delta: int | None) -> tuple[Session, SessionState]:
        if preset_delta is not None:
            delta = preset_delta
        else:
            delta = self.prompter.ask(
                "Amount to shrink (e.g. 15000MB, 15GB; plain numbers are MB)", parse_size
            )

        request = ShrinkRequest(delta=delta)
        validation = self.validator.validate(
            session.collection.constraints,
            request,
            aggregate_floor=session.collection.aggregate_floor,
        )
        session = session.evolve(request=request, validation=validation)
        self.renderer.show_validation(validation)

        if not validation.feasible:
            return session.evolve(outcome=SessionOutcome.VALIDATION_FAILED), SessionState.REPORT
        return session, SessionState.CONFIRM

    def confirm(self, session: Session, assume_yes: bool) -> tuple[Session, SessionState]:
        count = len(session.validation.plans)
        question = (
            f"Shrink drive {session.drive}: by {format_size(session.request.delta)} "
            f"on {count} target(s)? This cannot be undone"
        )
        if assume_yes:
            self.prompter.echo(f"{question}: yes (--yes)")
            return session, SessionState.EXECUTE
        if self.prompter.confirm(question, default=False):
            return session, SessionState.EXECUTE
        return session.evolve(outcome=SessionOutcome.CANCELLED), SessionState.REPORT

    def execute(self, session: Session) -> tuple[Session, SessionState]:
        report = self.rollout.execute(
            session.validation,
            session.drive,
            session.credentials,
            progress_callback=self.prompter.echo,
        )
        if report.all_succeeded and not session.collection.errors:
            outcome = SessionOutcome.COMPLETED
        else:
            outcome = SessionOutcome.PARTIAL_FAILURE
        session = session.evolve(report=report, outcome=outcome)
        if self.on_executed:
            self.on_executed(session)
        return session, SessionState.REPORT

    def report(self, session: Session) -> None:
        outcome = session.outcome
        echo = self.prompter.echo

        if outcome is SessionOutcome.NO_VALID_TARGETS:
            self.renderer.show_collection_errors(session.collection)
            echo("No target returned partition constraints. Nothing was changed.", err=True)
        elif outcome is SessionOutcome.VALIDATION_FAILED:
            rejected = ", ".join(session.validation.rejected_targets)
            echo(f"Shrink rejected for: {rejected}. No target was modified.", err=True)
        elif outcome is SessionOutcome.CANCELLED:
            echo("Cancelled. No target was modified.")
        else:
            self.renderer.show_rollout(session.report)
            if session.collection.errors:
                skipped = ", ".join(o.target.name for o in session.collection.errors)
                echo(f"Not attempted (constraint query failed): {skipped}", err=True)
            if session.report.failed:
                failed = ", ".join(r.target for r in session.report.get_failures())
                echo(f"Resize failed on: {failed}. Targets already resized were not rolled back.", err=True)


__all__ = [
    "Prompter",
    "Session",
    "SessionLoop",
    "SessionOutcome",
    "SessionPresets",
    "SessionState",
]
