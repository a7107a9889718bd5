from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .config import SessionMemConfig
from .ingest.events import input_command, input_path, is_noise, normalize_tool_name
from .ingest.types import InvocationContext, ToolEvent
from .observation_kinds import assign_importance
from .utils import clean_output, display_path, estimate_tokens, truncate

CR_RULE_RE = re.compile(r"CR-(\d+)")
VR_TYPE_RE = re.compile(r"VR-([A-Z_]+)")
PLAN_ITEM_RE = re.compile(r"P(\d+)-(\d+)")
PLAN_PROGRESS_RE = re.compile(r"(P\d+-\d+)\s*[:\-]?\s*(COMPLETE|PASS|DONE)", re.IGNORECASE)
COMMIT_MESSAGE_RE = re.compile(r"-m\s+[\"'](.+?)[\"']")
COMMIT_HEREDOC_RE = re.compile(r"<<['\"]?EOF['\"]?\s*\n?([\s\S]*?)EOF")

EVIDENCE_CHARS = 500
DECISION_DETAIL_CHARS = 1000
DECISION_TITLE_CHARS = 200
COMMIT_TITLE_CHARS = 150


@dataclass
class ObservationCandidate:
    kind: str
    title: str
    detail: str | None = None
    files_involved: list[str] = field(default_factory=list)
    plan_item: str | None = None
    cr_rule: str | None = None
    vr_type: str | None = None
    evidence: str | None = None
    outcome: str | None = None
    importance: int = 3
    original_tokens: int = 0


def extract_references(text: str) -> dict[str, str]:
    refs: dict[str, str] = {}
    cr = CR_RULE_RE.search(text)
    if cr:
        refs["cr_rule"] = f"CR-{cr.group(1)}"
    vr = VR_TYPE_RE.search(text)
    if vr:
        refs["vr_type"] = f"VR-{vr.group(1)}"
    plan = PLAN_ITEM_RE.search(text)
    if plan:
        refs["plan_item"] = f"P{plan.group(1)}-{plan.group(2)}"
    return refs


def extract_commit_message(command: str) -> str:
    heredoc = COMMIT_HEREDOC_RE.search(command)
    if heredoc:
        lines = heredoc.group(1).strip().split("\n")
        return lines[0]
    match = COMMIT_MESSAGE_RE.search(command)
    if match:
        return match.group(1)
    return "Unknown commit"


def detect_plan_progress(text: str) -> dict[str, str]:
    """Map every plan item reported as done in ``text`` to ``complete``."""
    return {match.group(1): "complete" for match in PLAN_PROGRESS_RE.finditer(text or "")}


def contains_decision(text: str, phrases: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(phrase.lower() in lowered for phrase in phrases if phrase)


def _outcome(passed: bool) -> str:
    return "PASS" if passed else "FAIL"


def _matches_any(command: str, needles: Sequence[str]) -> bool:
    return any(needle in command for needle in needles if needle)


def _is_knowledge_read(path: str, config: SessionMemConfig) -> bool:
    plans_dir = config.plans_dir.strip("/")
    if plans_dir and plans_dir in path:
        return True
    return any(source in path for source in config.knowledge_source_files if source)


def _classify_file_change(
    tool: str, event: ToolEvent, output: str, config: SessionMemConfig
) -> ObservationCandidate:
    path = input_path(event.tool_input) or "unknown"
    verb = "Created/wrote" if tool == "write" else "Edited"
    refs = extract_references(output + path)
    return ObservationCandidate(
        kind="file_change",
        title=f"{verb}: {display_path(path, config.project_root)}",
        files_involved=[path],
        plan_item=refs.get("plan_item"),
        cr_rule=refs.get("cr_rule"),
        vr_type=refs.get("vr_type"),
        importance=assign_importance("file_change"),
        original_tokens=estimate_tokens(output),
    )


def _classify_read(
    event: ToolEvent, output: str, config: SessionMemConfig
) -> ObservationCandidate | None:
    path = input_path(event.tool_input) or "unknown"
    if not _is_knowledge_read(path, config):
        return None
    return ObservationCandidate(
        kind="discovery",
        title=f"Read: {display_path(path, config.project_root)}",
        files_involved=[path],
        importance=assign_importance("discovery"),
        original_tokens=estimate_tokens(output),
    )


def _verification(
    kind: str, title: str, vr_type: str | None, command: str, output: str, passed: bool
) -> ObservationCandidate:
    outcome = _outcome(passed)
    return ObservationCandidate(
        kind=kind,
        title=title,
        detail=clean_output(command) if kind == "vr_check" else truncate(output, EVIDENCE_CHARS),
        vr_type=vr_type,
        evidence=truncate(output, EVIDENCE_CHARS),
        outcome=outcome,
        importance=assign_importance(kind, outcome),
        original_tokens=estimate_tokens(output),
    )


def _classify_bash(
    event: ToolEvent, output: str, config: SessionMemConfig
) -> ObservationCandidate | None:
    command = input_command(event.tool_input)
    if "git commit" in command:
        message = extract_commit_message(command)
        kind = "bugfix" if "fix" in message.lower() else "feature"
        return ObservationCandidate(
            kind=kind,
            title=f"Commit: {truncate(message, COMMIT_TITLE_CHARS)}",
            detail=clean_output(command),
            importance=assign_importance(kind),
            original_tokens=estimate_tokens(output),
        )
    if _matches_any(command, config.scanner_commands):
        passed = "FAIL" not in output and "BLOCKED" not in output
        return _verification(
            "pattern_compliance",
            f"Pattern Scanner: {_outcome(passed)}",
            None,
            command,
            output,
            passed,
        )
    if _matches_any(command, config.test_commands):
        passed = not event.is_error and "FAIL" not in output
        return _verification(
            "vr_check", f"Tests: {_outcome(passed)}", "VR-TEST", command, output, passed
        )
    if _matches_any(command, config.build_commands):
        vr_type = "VR-TYPE" if _matches_any(command, config.typecheck_markers) else "VR-BUILD"
        passed = not event.is_error and "error" not in output
        return _verification(
            "vr_check", f"{vr_type}: {_outcome(passed)}", vr_type, command, output, passed
        )
    return None


def classify_decision(text: str | None, config: SessionMemConfig) -> ObservationCandidate | None:
    if not text or not contains_decision(text, config.decision_phrases):
        return None
    first_line = text.strip().split("\n")[0]
    refs = extract_references(text)
    return ObservationCandidate(
        kind="decision",
        title=f"Architecture decision: {truncate(first_line, DECISION_TITLE_CHARS)}",
        detail=truncate(clean_output(text), DECISION_DETAIL_CHARS),
        importance=assign_importance("decision"),
        original_tokens=estimate_tokens(text),
        plan_item=refs.get("plan_item"),
        cr_rule=refs.get("cr_rule"),
        vr_type=refs.get("vr_type"),
    )


def classify(
    event: ToolEvent, context: InvocationContext, config: SessionMemConfig
) -> ObservationCandidate | None:
    """Turn one tool call into at most one observation candidate."""
    if is_noise(event, context):
        return None

    decision = classify_decision(event.assistant_text, config)
    if decision is not None:
        return decision

    output = clean_output(event.tool_output)
    tool = normalize_tool_name(event.tool_name)
    if tool in {"write", "edit", "multiedit"}:
        return _classify_file_change(tool, event, output, config)
    if tool == "read":
        return _classify_read(event, output, config)
    if tool == "bash":
        return _classify_bash(event, output, config)
    return None
