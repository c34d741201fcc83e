"""Unit tests for the interactive session loop.

Each test drives SessionLoop with a ScriptedPrompter; an unexpected
prompt or confirmation fails the test immediately.
"""

import pytest
from fakes import MB, FakePartitionClient, ScriptedPrompter

from volshrink.config_manager import VolshrinkConfig
from volshrink.constraint_collector import ConstraintCollector
from volshrink.models import ResourceConstraint, TargetState
from volshrink.remote_exec import TargetUnreachableError
from volshrink.rollout_executor import RolloutExecutor
from volshrink.session import SessionLoop, SessionOutcome, SessionPresets
from volshrink.shrink_validator import ShrinkValidator

H1_H2_INPUT = ["2", "H1", "H2", "D", "admin", ""]


def make_loop(client, prompter, renderer, **kwargs):
    return SessionLoop(
        collector=ConstraintCollector(client, max_workers=1),
        validator=ShrinkValidator(),
        rollout=RolloutExecutor(client),
        renderer=renderer,
        prompter=prompter,
        **kwargs,
    )


class TestSinglePass:
    """One pass through the state machine, then decline restart."""

    def test_feasible_shrink_resizes_every_target(self, fake_client, renderer, console_output):
        prompter = ScriptedPrompter(
            answers=H1_H2_INPUT + ["15000MB"], confirmations=[True, False]
        )

        history = make_loop(fake_client, prompter, renderer).run()

        assert len(history) == 1
        session = history[0]
        assert session.outcome is SessionOutcome.COMPLETED
        assert session.validation.aggregate_floor == 60000 * MB
        assert fake_client.resize_calls == [
            ("H1", "D", 85000 * MB),
            ("H2", "D", 65000 * MB),
        ]
        assert session.credentials.user == "admin"
        assert session.credentials.key_path is None
        assert "Rollout Results" in console_output.getvalue()
        assert prompter.questions[1] == "Start over with new input?"

    def test_infeasible_shrink_touches_no_target(self, fake_client, renderer):
        prompter = ScriptedPrompter(answers=H1_H2_INPUT + ["25000MB"], confirmations=[False])

        history = make_loop(fake_client, prompter, renderer).run()

        assert history[0].outcome is SessionOutcome.VALIDATION_FAILED
        assert history[0].validation.rejected_targets == ["H2"]
        assert fake_client.resize_calls == []
        # Only the restart question was asked; no proceed gate
        assert prompter.questions == ["Start over with new input?"]
        assert any("No target was modified" in e for e in prompter.errors)

    def test_no_valid_targets_aborts_before_amount_prompt(self, renderer):
        client = FakePartitionClient(
            query_errors={
                "H1": TargetUnreachableError("H1", "Connection timed out"),
                "H2": TargetUnreachableError("H2", "Connection refused"),
            }
        )
        prompter = ScriptedPrompter(answers=H1_H2_INPUT, confirmations=[False])

        history = make_loop(client, prompter, renderer).run()

        session = history[0]
        assert session.outcome is SessionOutcome.NO_VALID_TARGETS
        assert session.request is None
        assert all(t.state is TargetState.UNREACHABLE for t in session.targets)
        assert client.resize_calls == []
        assert not any("Amount to shrink" in p for p in prompter.prompts)

    def test_declined_confirmation_issues_no_mutation(self, fake_client, renderer):
        prompter = ScriptedPrompter(
            answers=H1_H2_INPUT + ["15000MB"], confirmations=[False, False]
        )

        history = make_loop(fake_client, prompter, renderer).run()

        assert history[0].outcome is SessionOutcome.CANCELLED
        assert history[0].outcome.needs_attention is False
        assert fake_client.resize_calls == []
        assert prompter.questions[0].startswith("Shrink drive D: by ")
        assert prompter.questions[1] == "Start over with new input?"

    def test_rollout_failure_is_partial(self, h1_h2_constraints, renderer):
        from volshrink.partition_ops import MutationFailedError

        client = FakePartitionClient(
            constraints=h1_h2_constraints,
            resize_errors={"H1": MutationFailedError("H1", "Size Not Supported")},
        )
        prompter = ScriptedPrompter(
            answers=H1_H2_INPUT + ["15000MB"], confirmations=[True, False]
        )

        history = make_loop(client, prompter, renderer).run()

        assert history[0].outcome is SessionOutcome.PARTIAL_FAILURE
        assert [host for host, _, _ in client.resize_calls] == ["H1", "H2"]
        assert any("Resize failed on: H1" in e for e in prompter.errors)

    def test_collection_errors_make_completed_pass_partial(self, h1_h2_constraints, renderer):
        client = FakePartitionClient(
            constraints=h1_h2_constraints,
            query_errors={"H3": TargetUnreachableError("H3", "Connection refused")},
        )
        prompter = ScriptedPrompter(
            answers=["3", "H1", "H2", "H3", "D", "admin", "", "15000MB"],
            confirmations=[True, False],
        )

        history = make_loop(client, prompter, renderer).run()

        assert history[0].outcome is SessionOutcome.PARTIAL_FAILURE
        assert [host for host, _, _ in client.resize_calls] == ["H1", "H2"]
        assert any("Not attempted" in e and "H3" in e for e in prompter.errors)


class TestInputHandling:
    def test_invalid_fields_are_reprompted(self, fake_client, renderer):
        prompter = ScriptedPrompter(
            answers=["zero", "2", "H1", "bad name", "H2", "DE", "D", "admin", "", "lots", "15000"],
            confirmations=[False, False],
        )

        make_loop(fake_client, prompter, renderer).run()

        assert len(prompter.errors) >= 4
        assert any("Invalid target count" in e for e in prompter.errors)
        assert any("Invalid drive letter" in e for e in prompter.errors)
        assert any("Invalid size" in e for e in prompter.errors)

    def test_oversized_amount_is_reprompted(self, fake_client, renderer):
        prompter = ScriptedPrompter(
            answers=H1_H2_INPUT + ["1" + "0" * 400, "15000"], confirmations=[False, False]
        )

        history = make_loop(fake_client, prompter, renderer).run()

        assert history[0].request.delta == 15000 * MB
        assert any("too large" in e for e in prompter.errors)

    def test_configured_key_skips_key_prompt(self, fake_client, renderer, tmp_path):
        key = tmp_path / "id_ed25519"
        key.write_text("key")
        config = VolshrinkConfig(ssh_key_path=str(key), strict_host_key_checking=True)
        presets = SessionPresets(
            targets=("H1", "H2"), drive="D", user="admin", delta=15000 * MB, assume_yes=True
        )
        prompter = ScriptedPrompter(confirmations=[False])

        history = make_loop(fake_client, prompter, renderer, config=config, presets=presets).run()

        assert prompter.prompts == []
        assert history[0].credentials.key_path == key
        assert history[0].credentials.strict_host_key_checking is True
        assert history[0].outcome is SessionOutcome.COMPLETED

    def test_duplicate_target_is_reprompted(self, fake_client, renderer):
        prompter = ScriptedPrompter(
            answers=["2", "H1", "h1", "H2", "D", "admin", "", "15000"],
            confirmations=[False, False],
        )

        history = make_loop(fake_client, prompter, renderer).run()

        assert history[0].target_names == ["H1", "H2"]
        assert any("Duplicate target" in e for e in prompter.errors)

    def test_local_targets_skip_credential_prompts(self, renderer):
        client = FakePartitionClient(
            constraints={
                "localhost": ResourceConstraint(current_size=100 * MB, minimum_size=10 * MB)
            }
        )
        prompter = ScriptedPrompter(answers=["1", "localhost", "C", "50MB"], confirmations=[True, False])

        history = make_loop(client, prompter, renderer).run()

        assert history[0].outcome is SessionOutcome.COMPLETED
        assert client.resize_calls == [("localhost", "C", 50 * MB)]
        assert not any("Remote user" in p for p in prompter.prompts)

    def test_config_supplies_prompt_defaults(self, fake_client, renderer):
        config = VolshrinkConfig(default_user="ops", last_targets=["H1", "H2"], last_drive="D")
        prompter = ScriptedPrompter(
            answers=["", "", "", "", "", "", "15000"], confirmations=[False, False]
        )

        history = make_loop(fake_client, prompter, renderer, config=config).run()

        session = history[0]
        assert session.target_names == ["H1", "H2"]
        assert session.drive == "D"
        assert session.credentials.user == "ops"


class TestPresetsAndRestart:
    def test_presets_skip_prompts_and_yes_skips_confirmation(self, fake_client, renderer):
        presets = SessionPresets(
            targets=("H1", "H2"), drive="D", user="admin", delta=15000 * MB, assume_yes=True
        )
        prompter = ScriptedPrompter(answers=[""], confirmations=[False])

        history = make_loop(fake_client, prompter, renderer, presets=presets).run()

        assert history[0].outcome is SessionOutcome.COMPLETED
        assert prompter.prompts == ["SSH private key (blank for ssh default)"]
        assert prompter.questions == ["Start over with new input?"]

    def test_restart_builds_fresh_session(self, fake_client, renderer):
        presets = SessionPresets(targets=("H1", "H2"), drive="D", user="admin", delta=25000 * MB)
        prompter = ScriptedPrompter(
            answers=["", "1", "H1", "D", "admin", "", "1000MB"],
            confirmations=[True, True, False],
        )

        history = make_loop(fake_client, prompter, renderer, presets=presets).run()

        first, second = history
        assert first.outcome is SessionOutcome.VALIDATION_FAILED
        assert second.outcome is SessionOutcome.COMPLETED
        assert second.target_names == ["H1"]
        assert second.collection is not first.collection
        assert list(second.collection.constraints) == ["H1"]
        # The preset delta applied to the first pass only
        assert second.request.delta == 1000 * MB
        assert fake_client.resize_calls == [("H1", "D", 99000 * MB)]

    def test_no_restart_ends_after_one_pass(self, fake_client, renderer):
        presets = SessionPresets(
            targets=("H1", "H2"), drive="D", user="admin", delta=15000 * MB, assume_yes=True
        )
        prompter = ScriptedPrompter(answers=[""])

        history = make_loop(
            fake_client, prompter, renderer, presets=presets, allow_restart=False
        ).run()

        assert len(history) == 1
        assert prompter.questions == []

    def test_on_executed_only_after_execution(self, fake_client, renderer):
        executed = []
        presets = SessionPresets(targets=("H1", "H2"), drive="D", user="admin", delta=15000 * MB)
        prompter = ScriptedPrompter(answers=[""], confirmations=[False])

        make_loop(
            fake_client,
            prompter,
            renderer,
            presets=presets,
            allow_restart=False,
            on_executed=executed.append,
        ).run()

        assert executed == []


@pytest.mark.parametrize(
    "outcome,needs_attention",
    [
        (SessionOutcome.COMPLETED, False),
        (SessionOutcome.CANCELLED, False),
        (SessionOutcome.PARTIAL_FAILURE, True),
        (SessionOutcome.NO_VALID_TARGETS, True),
        (SessionOutcome.VALIDATION_FAILED, True),
    ],
)
def test_needs_attention(outcome, needs_attention):
    assert outcome.needs_attention is needs_attention
