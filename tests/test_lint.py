"""
Tests for the lint rules.

Plans are built in memory with PlanBuilder; git answers come from
FakeRepository.
"""

import pytest
import requests

from flowpilot.config import FlowPilotConfig
from flowpilot.git_ops import BaseBranchNotFoundError
from flowpilot.lint import (
    LINT_RULES,
    check_branch_per_phase,
    check_hard_boundaries,
    check_merge_boundary,
    check_pull_request_boundary,
    check_reference_urls,
    check_state_changes,
    check_state_order,
    check_template_changes,
    extract_phase_number_from_branch,
    is_plan_state_path,
    is_template_unchanged,
    run_lint,
)
from flowpilot.templates import read_bundled_template
from flowpilot.urls import UrlChecker

from tests.conftest import FakeRepository, FakeSession


STATE_REL = ".flowpilot/plans/feature/meta/state.md"


@pytest.fixture
def context_for(manager, repo, offline_config):
    def build(plan="feature", repository=None, config=None, url_checker=None):
        return manager.build_context(
            plan,
            repo=repository or repo,
            config=config or offline_config,
            url_checker=url_checker,
        )
    return build


def snapshot_base(manager, repo, plan="feature"):
    """Record the current state.md as the merge-base content."""
    repo.base_files[STATE_REL.replace("feature", plan)] = manager.fs.read_text(manager.state_file_path(plan))


class TestRuleRegistry:
    """Tests for rule registration and aggregation."""

    def test_rule_order(self):
        """Test rules are registered in evaluation order."""
        assert [name for name, _ in LINT_RULES] == [
            "state-changes",
            "state-order",
            "hard-boundaries",
            "merge-boundary",
            "template-changes",
            "branch-per-phase",
            "pr-boundary",
            "reference-urls",
        ]

    def test_run_lint_aggregates_in_order(self, builder, context_for):
        """Test run_lint concatenates errors rule by rule."""
        builder.create()
        context = context_for()
        rules = [
            ("first", lambda ctx: ["a"]),
            ("empty", lambda ctx: []),
            ("second", lambda ctx: ["b", "c"]),
        ]
        assert run_lint(context, rules) == ["a", "b", "c"]
        assert context.lint_errors == ["a", "b", "c"]

    def test_clean_plan_passes_every_rule(self, manager, builder, repo, context_for):
        """Test a well-formed plan passes all rules."""
        builder.create(through="phase-n-details", completed_phases=1)
        snapshot_base(manager, repo)
        repo.branch = "phase-2"
        assert run_lint(context_for()) == []


class TestStateChanges:
    """Tests for the single-checklist-per-change rule."""

    def test_two_state_files_changed(self, builder, context_for):
        """Test two changed plan checklists are rejected."""
        builder.create()
        repo = FakeRepository(changed=[
            ".flowpilot/plans/a/meta/state.md",
            ".flowpilot/plans/b/meta/state.md",
        ])
        errors = check_state_changes(context_for(repository=repo))
        assert len(errors) == 1
        assert "More than one state.md" in errors[0]

    def test_one_state_file_changed(self, builder, context_for):
        """Test one checklist plus other documents is fine."""
        builder.create()
        repo = FakeRepository(changed=[STATE_REL, ".flowpilot/plans/feature/meta/goal.md"])
        assert check_state_changes(context_for(repository=repo)) == []

    def test_other_state_files_ignored(self, builder, context_for):
        """Test state.md files outside plans are ignored."""
        builder.create()
        repo = FakeRepository(changed=[STATE_REL, "docs/state.md", "meta/state.md"])
        assert check_state_changes(context_for(repository=repo)) == []

    def test_state_path_matching(self):
        """Test is_plan_state_path."""
        assert is_plan_state_path(".flowpilot/plans/x/meta/state.md")
        assert is_plan_state_path("sub/.flowpilot/plans/x/meta/state.md")
        assert not is_plan_state_path(".flowpilot/plans/x/meta/goal.md")
        assert not is_plan_state_path("plans/x/meta/state.md")


class TestStateOrder:
    """Tests for in-order progression."""

    def test_in_order(self, builder, context_for):
        """Test a prefix of checked items passes."""
        builder.create(through="system-analysis")
        assert check_state_order(context_for()) == []

    def test_gap_reports_first_out_of_order_item(self, builder, context_for):
        """Test a gap in the checklist is reported."""
        builder.create(through="system-analysis")
        builder.set_checked("feature", "references", False)
        errors = check_state_order(context_for())
        assert errors == [
            "State [system-analysis] is checked but previous items are not checked. "
            "Items must be checked in order."
        ]

    def test_every_later_checked_item_reported(self, builder, context_for):
        """Test every item after the gap is reported."""
        builder.create(through="key-decisions")
        builder.set_checked("feature", "references", False)
        errors = check_state_order(context_for())
        assert len(errors) == 2
        assert "[system-analysis]" in errors[0]
        assert "[key-decisions]" in errors[1]

    def test_phase_items_not_ordered(self, builder, context_for):
        """Test phase rows are exempt from ordering."""
        builder.create(through="phase-n-details", phases=["A", "B"])
        builder.set_checked("feature", "phase_2")
        assert check_state_order(context_for()) == []


class TestHardBoundaries:
    """Tests for stage pairs that need separate branches."""

    def test_key_decisions_and_phase_analysis_on_one_branch(self, builder, context_for):
        """Test key decisions and phase analysis on one branch."""
        builder.create(through="phase-analysis")
        errors = check_hard_boundaries(context_for())
        assert errors == [
            "Cannot check [phase-analysis] in the same branch as [key-decisions]. "
            "A new branch is required."
        ]

    def test_pair_split_across_branches_allowed_despite_both_flags_set(self, manager, builder, repo, context_for):
        """Both flags set is fine when [key-decisions] was already checked at the merge-base.

        Only flags newly checked on this branch count; otherwise every plan
        past phase analysis would fail this rule forever.
        """
        builder.create(through="key-decisions")
        snapshot_base(manager, repo)
        builder.write_meta("feature", "phase-analysis.md", "### phase_1: A\n")
        builder.set_checked("feature", "phase-analysis")
        assert check_hard_boundaries(context_for()) == []

    def test_phase_analysis_and_details_on_one_branch(self, manager, builder, repo, context_for):
        """Test phase analysis and phase details on one branch."""
        builder.create(through="key-decisions")
        snapshot_base(manager, repo)
        builder.create("other", through="phase-n-details")
        state = manager.fs.read_text(manager.state_file_path("other"))
        manager.fs.write_text(manager.state_file_path("feature"), state)

        errors = check_hard_boundaries(context_for())
        assert errors == [
            "Cannot check [phase-n-details] in the same branch as [phase-analysis]. "
            "A new branch is required."
        ]

    def test_both_pairs_without_base_history(self, builder, context_for):
        """Test every set flag counts when the base has no checklist."""
        builder.create(through="phase-n-details")
        assert len(check_hard_boundaries(context_for())) == 2

    def test_single_stage_is_fine(self, builder, context_for):
        """Test one side of a pair alone passes."""
        builder.create(through="key-decisions")
        assert check_hard_boundaries(context_for()) == []


class TestMergeBoundary:
    """Tests for the modified-line quota on state.md."""

    def test_single_flip_allowed(self, builder, context_for):
        """Test one flip stays within the quota."""
        builder.create()
        assert check_merge_boundary(context_for(repository=FakeRepository(committed_modifications=2))) == []

    def test_two_flips_blocked(self, builder, context_for):
        """Test two flips exceed the quota."""
        builder.create()
        errors = check_merge_boundary(context_for(repository=FakeRepository(committed_modifications=4)))
        assert len(errors) == 1
        assert "pull request merge boundary" in errors[0]

    def test_committed_and_staged_are_summed(self, builder, context_for):
        """Test committed and staged counts add up."""
        builder.create()
        repo = FakeRepository(committed_modifications=2, staged_modifications=2)
        assert len(check_merge_boundary(context_for(repository=repo))) == 1

    def test_unresolvable_base_is_fatal(self, builder, context_for):
        """Test a missing merge-base raises."""
        builder.create()
        repo = FakeRepository(merge_bases={}, remotes=())
        with pytest.raises(BaseBranchNotFoundError):
            check_merge_boundary(context_for(repository=repo))

    def test_configured_base_branches(self, builder, context_for):
        """Test base branches come from config."""
        builder.create()
        repo = FakeRepository(merge_bases={"develop": "dev-sha"}, committed_modifications=0)
        config = FlowPilotConfig(base_branches=["develop"], check_reference_urls=False)
        context = context_for(repository=repo, config=config)
        assert check_merge_boundary(context) == []
        assert context.merge_base() == "dev-sha"


class TestTemplateChanges:
    """Tests for stage documents left as templates."""

    def test_goal_unchanged_after_new(self, manager, context_for):
        """Test the template goal.md is flagged."""
        manager.initialize_plan("feature")
        errors = check_template_changes(context_for())
        assert errors == [
            "goal.md has not been modified from the template. "
            "Update it with your feature requirements."
        ]

    def test_goal_edited(self, builder, context_for):
        """Test an edited goal.md passes."""
        builder.create()
        assert check_template_changes(context_for()) == []

    def test_goal_missing(self, manager, builder, context_for):
        """Test a missing goal.md is flagged."""
        builder.create()
        del manager.fs.files[manager.fs._norm(manager.meta_directory("feature") + "/goal.md")]
        assert check_template_changes(context_for()) == [
            "goal.md does not exist but [state] is checked in state.md"
        ]

    def test_checked_stage_without_document(self, manager, builder, context_for):
        """Test a checked stage whose document is missing."""
        builder.create(through="references")
        del manager.fs.files[manager.fs._norm(manager.meta_directory("feature") + "/references.md")]
        assert check_template_changes(context_for()) == [
            "references.md does not exist but [references] is checked in state.md"
        ]

    def test_untouched_stage_template(self, builder, context_for):
        """Test a stage document identical to its template."""
        builder.create(through="system-analysis")
        builder.write_meta("feature", "system-analysis.md", read_bundled_template("system-analysis.md"))
        assert check_template_changes(context_for()) == [
            "system-analysis.md has not been modified from the template"
        ]

    def test_placeholder_left_behind(self, builder, context_for):
        """Test a leftover placeholder phrase is flagged."""
        builder.create(through="key-decisions")
        builder.write_meta("feature", "key-decisions.md", "# Key Decisions\n\nUse CSV.\n\n- update me\n")
        assert check_template_changes(context_for()) == [
            "key-decisions.md has not been modified from the template"
        ]

    def test_unchecked_stage_not_inspected(self, builder, context_for):
        """Test documents of unchecked stages are skipped."""
        builder.create(through="references")
        builder.write_meta("feature", "system-analysis.md", read_bundled_template("system-analysis.md"))
        assert check_template_changes(context_for()) == []

    def test_missing_phase_details(self, manager, builder, context_for):
        """Test a missing phase details file."""
        builder.create(through="phase-n-details", phases=["A", "B"])
        del manager.fs.files[manager.fs._norm(manager.phase_details_path("feature", 2))]
        assert check_template_changes(context_for()) == ["phase-2-details.md does not exist"]

    def test_phase_details_left_as_generated(self, manager, builder, context_for):
        """Test phase details identical to the generated template."""
        builder.create(through="phase-n-details", phases=["A"])
        generated = read_bundled_template("phase-n-details.md").replace("phase_n", "phase_1")
        manager.fs.write_text(manager.phase_details_path("feature", 1), generated)
        assert check_template_changes(context_for()) == [
            "phase-1-details.md has not been modified from the template"
        ]


class TestIsTemplateUnchanged:
    """Tests for the normalized template comparison."""

    TEMPLATE = "# Title\n\nSome text\n"

    def test_identical(self):
        """Test identical content."""
        assert is_template_unchanged(self.TEMPLATE, self.TEMPLATE)

    def test_whitespace_and_line_endings_ignored(self):
        """Test trailing whitespace and CRLF are normalized away."""
        assert is_template_unchanged("# Title  \r\n\r\nSome text\t\r\n\r\n", self.TEMPLATE)

    def test_edited(self):
        """Test edited content."""
        assert not is_template_unchanged("# Title\n\nReal content\n", self.TEMPLATE)

    def test_placeholder_phrases(self):
        """Test placeholder phrases count as unchanged."""
        assert is_template_unchanged("Completely new\nReplace me\n", self.TEMPLATE)
        assert is_template_unchanged("Completely new\n- update me\n", self.TEMPLATE)


class TestBranchPerPhase:
    """Tests for one branch per implementation phase."""

    @pytest.mark.parametrize("branch, expected", [
        ("phase-2", 2),
        ("phase-2-api", 2),
        ("phase-12", 12),
        ("phase-x", None),
        ("feature/phase-2", None),
        ("main", None),
        ("", None),
    ])
    def test_extract_phase_number(self, branch, expected):
        """Test phase numbers parsed from branch names."""
        assert extract_phase_number_from_branch(branch) == expected

    def test_previous_phase_branch_blocked(self, builder, repo, context_for):
        """Test advancing from the previous phase's branch."""
        builder.create(through="phase-n-details", phases=["A", "B", "C"], completed_phases=1)
        repo.branch = "phase-1"
        errors = check_branch_per_phase(context_for())
        assert len(errors) == 1
        assert "Cannot advance to phase 2 while on branch 'phase-1'" in errors[0]

    @pytest.mark.parametrize("branch", ["phase-2", "phase-2-api", "phase-3", "feature/csv", "main"])
    def test_allowed_branches(self, builder, repo, context_for, branch):
        """Test branches that may advance to phase 2."""
        builder.create(through="phase-n-details", phases=["A", "B", "C"], completed_phases=1)
        repo.branch = branch
        assert check_branch_per_phase(context_for()) == []

    def test_not_applied_before_phase_details(self, builder, repo, context_for):
        """Test the rule is idle before phase details."""
        builder.create(through="phase-analysis")
        repo.branch = "phase-0"
        assert check_branch_per_phase(context_for()) == []

    def test_not_applied_when_finished(self, builder, repo, context_for):
        """Test the rule is idle once every phase is done."""
        builder.create(through="phase-n-details", phases=["A"], completed_phases=1)
        repo.branch = "phase-0"
        assert check_branch_per_phase(context_for()) == []


class TestPullRequestBoundary:
    """Tests for completed PR boundary phases."""

    def test_completed_boundary_blocks_next_phase(self, builder, context_for):
        """Test a completed boundary phase blocks the next one."""
        builder.create(through="phase-n-details", phases=["A", "B", "C"], completed_phases=1, pr_boundaries=(1,))
        errors = check_pull_request_boundary(context_for())
        assert len(errors) == 1
        assert "Cannot advance to phase 2 (B) in the same pull request" in errors[0]
        assert "Phase 1 (A) is a PR boundary" in errors[0]

    def test_boundary_not_yet_completed(self, builder, context_for):
        """Test an incomplete boundary phase does not block."""
        builder.create(through="phase-n-details", phases=["A", "B"], completed_phases=0, pr_boundaries=(1,))
        assert check_pull_request_boundary(context_for()) == []

    def test_boundary_on_current_phase(self, builder, context_for):
        """Test a boundary on the phase being worked on."""
        builder.create(through="phase-n-details", phases=["A", "B", "C"], completed_phases=1, pr_boundaries=(2,))
        assert check_pull_request_boundary(context_for()) == []

    def test_latest_boundary_reported(self, builder, context_for):
        """Test the most recent boundary is reported."""
        builder.create(
            through="phase-n-details", phases=["A", "B", "C"], completed_phases=2, pr_boundaries=(1, 2),
        )
        errors = check_pull_request_boundary(context_for())
        assert "Phase 2 (B) is a PR boundary" in errors[0]


REFERENCES = """# References

- [Good](https://example.com/good)
- [Gone](https://example.com/gone)
- [Down](https://down.example.com/)
"""


class TestReferenceUrls:
    """Tests for dead links in references.md."""

    @pytest.fixture
    def session(self):
        return FakeSession({
            "https://example.com/good": 200,
            "https://example.com/gone": 404,
            "https://down.example.com/": requests.ConnectionError("connection refused"),
        })

    def test_reports_404_and_failures(self, builder, context_for, session):
        """Test 404s and request failures are reported in order."""
        builder.create(through="references")
        builder.write_meta("feature", "references.md", REFERENCES)
        config = FlowPilotConfig(check_reference_urls=True)
        errors = check_reference_urls(context_for(config=config, url_checker=UrlChecker(session=session)))
        assert errors == [
            "URL returns 404 Not Found: https://example.com/gone",
            "Failed to validate URL https://down.example.com/: connection refused",
        ]

    def test_disabled_by_config(self, builder, context_for, session):
        """Test check_reference_urls=False skips the network."""
        builder.create(through="references")
        builder.write_meta("feature", "references.md", REFERENCES)
        assert check_reference_urls(context_for(url_checker=UrlChecker(session=session))) == []
        assert session.requested == []

    def test_not_checked_before_references_stage(self, builder, context_for, session):
        """Test links are not checked before [references]."""
        builder.create()
        builder.write_meta("feature", "references.md", REFERENCES)
        config = FlowPilotConfig(check_reference_urls=True)
        assert check_reference_urls(context_for(config=config, url_checker=UrlChecker(session=session))) == []
        assert session.requested == []
