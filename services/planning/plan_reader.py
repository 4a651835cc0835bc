"""
Reads plan directories from disk into structured records.

A plan directory is named ``NNNN-some-name`` and holds one plan document
(``*-plan.md`` preferred) plus an ``agents/`` folder of ``NNN-*.agent.md``
files. Every document may start with a YAML frontmatter block.

Problems with a single document never raise: the document (or the field) is
skipped and a warning is recorded on the returned ``ParsedPlan``.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml
from pydantic import ValidationError

from infrastructure.utils.exceptions import DocumentParseError
from schemas.planning import (
    AgentRecord,
    AgentStatus,
    FeatureRecord,
    ParsedPlan,
    PlanRecord,
    PlanSignal,
    ScoringOverride,
)

logger = logging.getLogger(__name__)

PLAN_DIR_PATTERN = re.compile(r"^(\d{4})")
AGENT_FILE_PATTERN = re.compile(r"^(\d+)")
AGENT_FILE_SUFFIX = ".agent.md"
FEATURE_HEADER_PATTERN = re.compile(
    r"^###?\s+Feature\s+#?(\d+)\s*[:.\-]\s*(.+?)\s*$", re.MULTILINE | re.IGNORECASE
)
AGENT_HEADING_PATTERN = re.compile(r"^#\s*Agent\s+#?\d+\s*[:.\-]\s*(.+?)\s*$", re.MULTILINE)
TITLE_HEADING_PATTERN = re.compile(r"^#\s+(.+?)\s*$", re.MULTILINE)
CROSS_PLAN_REF_PATTERN = re.compile(r"^(\d{4})#(\d{1,3})$")
LOCAL_REF_PATTERN = re.compile(r"^\d{1,3}$")
TAG_PATTERN = re.compile(r"^[a-z][\w-]*$")


def plan_number_of(directory: Path) -> Optional[int]:
    match = PLAN_DIR_PATTERN.match(directory.name)
    return int(match.group(1)) if match else None


def find_plan_directories(plans_path: Path, plan_id: Optional[str] = None) -> List[Path]:
    """Plan directories under ``plans_path`` in ascending plan-number order.

    ``plan_id`` may be a plan number (``"3"``, ``"0003"``) or part of a folder
    name.
    """
    plans_path = Path(plans_path)
    if not plans_path.is_dir():
        logger.warning("Plans path does not exist: %s", plans_path)
        return []

    directories = [
        child
        for child in plans_path.iterdir()
        if child.is_dir() and plan_number_of(child) is not None
    ]
    if plan_id is not None:
        wanted = str(plan_id).strip()
        directories = [
            directory
            for directory in directories
            if _matches_plan_id(directory, wanted)
        ]
    return sorted(directories, key=lambda directory: (plan_number_of(directory), directory.name))


def plan_matches(plan_number: Optional[int], folder: str, wanted: str) -> bool:
    """A numeric id matches the plan number; anything else matches the folder name."""
    wanted = wanted.strip()
    if wanted.isdigit():
        return plan_number == int(wanted)
    return folder == wanted or wanted in folder


def _matches_plan_id(directory: Path, wanted: str) -> bool:
    return plan_matches(plan_number_of(directory), directory.name, wanted)


def find_plan_directory(plans_path: Path, plan_id: str) -> Optional[Path]:
    matches = find_plan_directories(plans_path, plan_id)
    return matches[0] if matches else None


def split_frontmatter(content: str) -> Tuple[dict[str, Any], str]:
    """Split a leading ``---`` YAML block from the markdown body."""
    if not content.startswith("---"):
        return {}, content
    lines = content.splitlines(keepends=True)
    for index in range(1, len(lines)):
        if lines[index].strip() == "---":
            raw = "".join(lines[1:index])
            body = "".join(lines[index + 1:])
            try:
                data = yaml.safe_load(raw) if raw.strip() else {}
            except yaml.YAMLError as exc:
                raise DocumentParseError(f"invalid frontmatter: {exc}") from exc
            if data is None:
                data = {}
            if not isinstance(data, dict):
                raise DocumentParseError("frontmatter must be a mapping")
            return data, body
    raise DocumentParseError("frontmatter block is not closed")


def normalize_agent_ref(value: Any) -> Optional[str]:
    """``"1"`` -> ``"001"``; ``"0002#3"`` -> ``"0002#003"``; junk -> ``None``."""
    ref = str(value).strip()
    if ref.startswith("agent:"):
        ref = ref[len("agent:"):]
    cross = CROSS_PLAN_REF_PATTERN.match(ref)
    if cross:
        return f"{cross.group(1)}#{int(cross.group(2)):03d}"
    if LOCAL_REF_PATTERN.match(ref):
        return f"{int(ref):03d}"
    return None


def normalize_tag(value: Any) -> Optional[str]:
    cleaned = str(value).strip().lower().lstrip("#")
    if not cleaned or not TAG_PATTERN.match(cleaned):
        return None
    return cleaned


def parse_scoring_override(raw: Any, source: str) -> Tuple[Optional[ScoringOverride], Optional[str]]:
    """Validate a frontmatter ``scoring`` block.

    Returns the override, or ``None`` plus a warning when the block is
    malformed.
    """
    if raw is None:
        return None, None
    if not isinstance(raw, dict):
        return None, f"Ignoring scoring override in {source}: expected a mapping"
    try:
        return ScoringOverride.model_validate(raw), None
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'scoring'}: {error['msg']}"
            for error in exc.errors()
        )
        return None, f"Ignoring malformed scoring override in {source}: {details}"


def read_document(path: Path) -> str:
    """Read a markdown document as UTF-8, raising ``DocumentParseError`` if it cannot be."""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise DocumentParseError(f"not valid UTF-8 ({exc.reason} at byte {exc.start})") from exc
    except OSError as exc:
        raise DocumentParseError(f"could not be read: {exc.strerror or exc}") from exc


def compute_content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class PlanDocumentReader:
    """Turns a plan directory into a ``ParsedPlan``."""

    def read_plan(self, plan_dir: Path) -> ParsedPlan:
        plan_dir = Path(plan_dir)
        parsed = ParsedPlan(directory=plan_dir)

        if not plan_dir.is_dir():
            parsed.warnings.append(f"Plan path does not exist: {plan_dir}")
            return parsed

        match = PLAN_DIR_PATTERN.match(plan_dir.name)
        if not match:
            parsed.warnings.append(f"Could not infer plan ID from folder: {plan_dir.name}")
            return parsed

        parsed.plan = self._read_plan_document(plan_dir, match.group(1), parsed.warnings)
        parsed.agents = self._read_agents(plan_dir, parsed.warnings)

        for warning in parsed.warnings:
            logger.debug("%s: %s", plan_dir.name, warning)
        return parsed

    def _read_plan_document(self, plan_dir: Path, plan_id: str, warnings: List[str]) -> PlanRecord:
        record = PlanRecord(plan_id=plan_id, folder=plan_dir.name, title=f"Plan {plan_id}")

        path = self._find_plan_markdown(plan_dir)
        if path is None:
            warnings.append(f"Could not locate plan markdown file in {plan_dir}")
            return record
        record.path = path

        try:
            content = read_document(path)
        except DocumentParseError as exc:
            warnings.append(f"Ignoring plan document {path.name}: {exc}")
            return record
        record.content_hash = compute_content_hash(content)
        try:
            frontmatter, body = split_frontmatter(content)
        except DocumentParseError as exc:
            warnings.append(f"Ignoring frontmatter of {path.name}: {exc}")
            frontmatter, body = {}, content

        heading = TITLE_HEADING_PATTERN.search(body)
        title = frontmatter.get("title") or (heading.group(1) if heading else None)
        if title:
            record.title = str(title).strip()

        if frontmatter.get("status") is not None:
            record.status = str(frontmatter["status"]).strip()
        record.priority = self._read_signal(frontmatter, "priority", path, warnings)
        record.severity = self._read_signal(frontmatter, "severity", path, warnings)
        record.tags = self._read_tags(frontmatter.get("tags"))

        seen_features = set()
        for feature in FEATURE_HEADER_PATTERN.finditer(body):
            number = feature.group(1)
            if number in seen_features:
                continue
            seen_features.add(number)
            record.features.append(FeatureRecord(number=number, name=feature.group(2)))

        override, warning = parse_scoring_override(frontmatter.get("scoring"), path.name)
        record.scoring = override
        if warning:
            warnings.append(warning)
        return record

    @staticmethod
    def _find_plan_markdown(plan_dir: Path) -> Optional[Path]:
        candidates = sorted(
            child for child in plan_dir.iterdir()
            if child.is_file() and child.suffix.lower() == ".md"
        )
        for candidate in candidates:
            if candidate.name.lower().endswith("-plan.md"):
                return candidate
        return candidates[0] if candidates else None

    @staticmethod
    def _read_signal(
        frontmatter: dict[str, Any], key: str, path: Path, warnings: List[str]
    ) -> Optional[PlanSignal]:
        value = frontmatter.get(key)
        if value is None:
            return None
        try:
            return PlanSignal(str(value).strip().lower())
        except ValueError:
            warnings.append(f"Ignoring unknown {key} '{value}' in {path.name}")
            return None

    @staticmethod
    def _read_tags(raw: Any) -> List[str]:
        tags: List[str] = []
        for value in _as_list(raw):
            tag = normalize_tag(value)
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    def _read_agents(self, plan_dir: Path, warnings: List[str]) -> List[AgentRecord]:
        agents_dir = plan_dir / "agents"
        if not agents_dir.is_dir():
            warnings.append(f"Agents directory not found at {agents_dir}")
            return []

        agents: List[AgentRecord] = []
        seen_numbers = set()
        for path in sorted(agents_dir.iterdir()):
            if not path.is_file() or not path.name.endswith(AGENT_FILE_SUFFIX):
                continue
            agent = self._read_agent(path, warnings)
            if agent is None:
                continue
            if agent.agent_number in seen_numbers:
                warnings.append(f"Skipping {path.name}: duplicate agent number {agent.agent_number}")
                continue
            seen_numbers.add(agent.agent_number)
            agents.append(agent)
        return agents

    def _read_agent(self, path: Path, warnings: List[str]) -> Optional[AgentRecord]:
        match = AGENT_FILE_PATTERN.match(path.name)
        if not match:
            warnings.append(f"Could not infer agent number from {path.name}")
            return None
        agent_number = f"{int(match.group(1)):03d}"

        try:
            content = read_document(path)
            frontmatter, body = split_frontmatter(content)
        except DocumentParseError as exc:
            warnings.append(f"Skipping {path.name}: {exc}")
            return None

        raw_status = frontmatter.get("status", AgentStatus.GAP.value)
        try:
            status = AgentStatus(str(raw_status).strip().upper())
        except ValueError:
            warnings.append(f"Skipping {path.name}: unknown status '{raw_status}'")
            return None

        heading = AGENT_HEADING_PATTERN.search(body) or TITLE_HEADING_PATTERN.search(body)
        title = frontmatter.get("title") or (heading.group(1) if heading else f"Agent {agent_number}")

        raw_dependencies = _as_list(frontmatter.get("dependencies", frontmatter.get("depends_on")))
        dependencies = self._read_refs(raw_dependencies, path, "dependency", warnings)
        blocks = self._read_refs(_as_list(frontmatter.get("blocks")), path, "blocks entry", warnings)

        files: List[str] = []
        for entry in _as_list(frontmatter.get("files")):
            value = entry.get("path") if isinstance(entry, dict) else entry
            if value is None:
                continue
            value = str(value).strip()
            if value and value not in files:
                files.append(value)

        override, warning = parse_scoring_override(frontmatter.get("scoring"), path.name)
        if warning:
            warnings.append(warning)

        return AgentRecord(
            agent_number=agent_number,
            title=str(title).strip(),
            path=path,
            status=status,
            persona=str(frontmatter.get("persona") or "coder").strip().lower(),
            dependencies=dependencies,
            blocks=blocks,
            files=files,
            tags=self._read_tags(frontmatter.get("tags")),
            scoring=override,
            content_hash=compute_content_hash(content),
        )

    @staticmethod
    def _read_refs(values: list, path: Path, label: str, warnings: List[str]) -> List[str]:
        refs: List[str] = []
        for value in values:
            ref = normalize_agent_ref(value)
            if ref is None:
                warnings.append(f"Ignoring {label} '{value}' in {path.name}")
                continue
            if ref not in refs:
                refs.append(ref)
        return refs
