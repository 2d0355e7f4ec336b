"""
Lint rules for FlowPilot plans.

Every rule is a plain function taking a PlanContext and returning a list
of human-readable violations. Rules only observe; they never change the
plan. run_lint() runs them in registration order and concatenates the
results. Any violation blocks `flowpilot next`.

Rules:
- state-changes: only one plan checklist touched per change set
- state-order: stages checked strictly in document order
- hard-boundaries: stage pairs that need separate branches
- merge-boundary: at most one checkbox flip since the merge-base
- template-changes: stage documents edited away from their templates
- branch-per-phase: one branch per implementation phase
- pr-boundary: completed PR boundary phases block later phases
- reference-urls: links in references.md resolve
"""

import logging
import re
from typing import Callable, List, Optional, Tuple

from flowpilot.config import MAX_STATE_MODIFICATIONS
from flowpilot.models import PlanState
from flowpilot.plan import PlanContext
from flowpilot.state_parser import parse_checklist
from flowpilot.urls import extract_markdown_urls


logger = logging.getLogger(__name__)

LintRule = Callable[[PlanContext], List[str]]

# Registration order is execution order
LINT_RULES: List[Tuple[str, LintRule]] = []

PLACEHOLDER_PHRASES = ("Replace me", "update me")

BRANCH_PHASE_RE = re.compile(r"^phase-(\d+)(?:-|$)")


def lint_rule(name: str):
    """Register a function as a lint rule.

    Example:
        @lint_rule("my-rule")
        def check_something(context):
            return []
    """
    def decorator(func: LintRule) -> LintRule:
        LINT_RULES.append((name, func))
        return func
    return decorator


def run_lint(context: PlanContext, rules: Optional[List[Tuple[str, LintRule]]] = None) -> List[str]:
    """Run every rule and aggregate violations.

    Raises:
        GitError: If the merge-base cannot be resolved (environment problem)
    """
    errors: List[str] = []
    for name, rule in (rules if rules is not None else LINT_RULES):
        found = rule(context)
        logger.debug(f"Rule {name}: {len(found)} violation(s)")
        errors.extend(found)
    context.lint_errors = errors
    return errors


# ============================================================================
# Helpers
# ============================================================================

def normalize_document(text: str) -> str:
    """Unify line endings and drop trailing whitespace."""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip()


def is_template_unchanged(content: str, template: str) -> bool:
    """True if a document still matches its template or keeps a placeholder."""
    normalized = normalize_document(content)
    if normalized == normalize_document(template):
        return True
    return any(phrase in normalized for phrase in PLACEHOLDER_PHRASES)


def is_plan_state_path(path: str) -> bool:
    """Matches .flowpilot/plans/<plan>/meta/state.md at any depth."""
    parts = path.replace("\\", "/").split("/")
    return (
        len(parts) >= 5
        and parts[-1] == "state.md"
        and parts[-2] == "meta"
        and parts[-4] == "plans"
        and parts[-5] == ".flowpilot"
    )


def extract_phase_number_from_branch(branch_name: str) -> Optional[int]:
    """phase-2 and phase-2-login both give 2; anything else gives None."""
    match = BRANCH_PHASE_RE.match(branch_name or "")
    return int(match.group(1)) if match else None


# ============================================================================
# Rules
# ============================================================================

@lint_rule("state-changes")
def check_state_changes(context: PlanContext) -> List[str]:
    if context.repo is None:
        return []

    touched = [p for p in context.repo.changed_files() if is_plan_state_path(p)]
    if len(touched) > 1:
        return [
            f"More than one state.md has changed ({', '.join(touched)}). "
            "Advance one plan at a time and commit each step separately."
        ]
    return []


@lint_rule("state-order")
def check_state_order(context: PlanContext) -> List[str]:
    if not context.fs.exists(context.state_file_path):
        return [f"state.md not found for plan '{context.plan_name}'"]

    errors = []
    found_unchecked = False
    for item in parse_checklist(context.fs.read_text(context.state_file_path)):
        if item.is_phase:
            continue
        if not item.is_checked:
            found_unchecked = True
        elif found_unchecked:
            errors.append(
                f"State [{item.identifier}] is checked but previous items are not checked. "
                "Items must be checked in order."
            )
    return errors


@lint_rule("hard-boundaries")
def check_hard_boundaries(context: PlanContext) -> List[str]:
    """Stage pairs that may never be checked on the same branch.

    A flag already set at the merge-base was checked on an earlier,
    merged branch and does not count.
    """
    state = context.state
    base: Optional[PlanState] = context.base_state() if context.repo is not None else None

    def set_on_branch(flag: str) -> bool:
        return getattr(state, flag) and not (base is not None and getattr(base, flag))

    errors = []
    if set_on_branch("has_key_decisions") and set_on_branch("has_phase_analysis"):
        errors.append(
            "Cannot check [phase-analysis] in the same branch as [key-decisions]. "
            "A new branch is required."
        )
    if set_on_branch("has_phase_analysis") and set_on_branch("has_phase_details"):
        errors.append(
            "Cannot check [phase-n-details] in the same branch as [phase-analysis]. "
            "A new branch is required."
        )
    return errors


@lint_rule("merge-boundary")
def check_merge_boundary(context: PlanContext) -> List[str]:
    """At most one checkbox flip in state.md since the branch left its base."""
    if context.repo is None:
        return []

    state_path = context.state_file_relpath()
    merge_base = context.merge_base()
    head = context.repo.head_sha()

    committed = context.repo.count_modified_lines(state_path, merge_base, head)
    staged = context.repo.count_staged_modified_lines(state_path)
    total = committed + staged
    logger.debug(f"state.md modifications: committed={committed} staged={staged}")

    if total > MAX_STATE_MODIFICATIONS:
        return [
            "Unable to proceed to the next phase. You have reached a pull request merge boundary. "
            "You must stop work and allow the pull request to be reviewed and merged. "
            "If your current phase has any #Verification conditions, make sure they are all "
            "passing before stopping work."
        ]
    return []


# (flag, document, checklist identifier)
STAGE_DOCUMENTS = [
    ("has_references", "references.md", "references"),
    ("has_system_analysis", "system-analysis.md", "system-analysis"),
    ("has_key_decisions", "key-decisions.md", "key-decisions"),
    ("has_phase_analysis", "phase-analysis.md", "phase-analysis"),
]


@lint_rule("template-changes")
def check_template_changes(context: PlanContext) -> List[str]:
    state = context.state
    errors = []

    if state.is_initialized:
        goal_path = context.meta_path("goal.md")
        if not context.fs.exists(goal_path):
            errors.append("goal.md does not exist but [state] is checked in state.md")
        elif is_template_unchanged(context.fs.read_text(goal_path), context.templates.read_template("goal.md")):
            errors.append(
                "goal.md has not been modified from the template. "
                "Update it with your feature requirements."
            )

    for flag, document, identifier in STAGE_DOCUMENTS:
        if not getattr(state, flag):
            continue
        path = context.meta_path(document)
        if not context.fs.exists(path):
            errors.append(f"{document} does not exist but [{identifier}] is checked in state.md")
        elif is_template_unchanged(context.fs.read_text(path), context.templates.read_template(document)):
            errors.append(f"{document} has not been modified from the template")

    if state.has_phase_details:
        template = context.templates.read_template("phase-n-details.md")
        for phase in state.phases:
            path = context.phase_details_path(phase.phase_number)
            name = f"phase-{phase.phase_number}-details.md"
            if not context.fs.exists(path):
                errors.append(f"{name} does not exist")
                continue
            # Compare against the template as it was written for this phase
            phase_template = template.replace("phase_n", f"phase_{phase.phase_number}")
            if is_template_unchanged(context.fs.read_text(path), phase_template):
                errors.append(f"{name} has not been modified from the template")

    return errors


@lint_rule("branch-per-phase")
def check_branch_per_phase(context: PlanContext) -> List[str]:
    if not context.state.has_phase_details:
        return []

    next_phase = context.state.next_incomplete_phase()
    if next_phase is None:
        return []

    branch_phase = extract_phase_number_from_branch(context.current_branch)
    if branch_phase is None or branch_phase >= next_phase.phase_number:
        return []

    return [
        f"Cannot advance to phase {next_phase.phase_number} while on branch '{context.current_branch}'. "
        "You must finish the current phase work, ensure all verification conditions are met, "
        "and allow the PR to be reviewed and merged before moving to the next phase. "
        f"Create a new branch for phase {next_phase.phase_number} before running 'flowpilot next' again."
    ]


@lint_rule("pr-boundary")
def check_pull_request_boundary(context: PlanContext) -> List[str]:
    if not context.state.has_phase_details:
        return []

    next_phase = context.state.next_incomplete_phase()
    if next_phase is None:
        return []

    boundaries = [
        p for p in context.state.phases
        if p.is_complete and p.is_pull_request_boundary and p.phase_number < next_phase.phase_number
    ]
    if not boundaries:
        return []

    last = max(boundaries, key=lambda p: p.phase_number)
    return [
        f"Cannot advance to phase {next_phase.phase_number} ({next_phase.phase_name}) in the same pull request. "
        f"Phase {last.phase_number} ({last.phase_name}) is a PR boundary. "
        "You must finish the current phase work, ensure all verification conditions are met, "
        "and allow the PR to be reviewed and merged before moving to the next phase. "
        "After the PR is merged, create a new issue/PR and run 'flowpilot next' to continue."
    ]


@lint_rule("reference-urls")
def check_reference_urls(context: PlanContext) -> List[str]:
    if not context.state.has_references or not context.config.check_reference_urls:
        return []
    if context.url_checker is None:
        return []

    path = context.meta_path("references.md")
    if not context.fs.exists(path):
        return []

    errors = []
    for result in context.url_checker.check_all(extract_markdown_urls(context.fs.read_text(path))):
        if result.error is not None:
            errors.append(f"Failed to validate URL {result.url}: {result.error}")
        elif result.is_not_found:
            errors.append(f"URL returns 404 Not Found: {result.url}")
    return errors
