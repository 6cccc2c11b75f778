"""Encode/decode the consolidated per-session capsules.md file.

Grammar::

    ---                         YAML front matter (session, type: capsules)
    ---
    # Decision Capsules
    **Session:** [[<id>]]
    ## <phase>                  phase section, canonical order, unknown phases last
    ### Decision: <question>    one block per capsule
    - **Label:** value          labeled field lines, optional and order-independent

Field lines are matched by label, not position. A missing ID is regenerated
from (session, phase, question) so hand-edited files stay loadable.
"""

import re
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

import frontmatter
import yaml

from shared_types import CapsuleStatus, CapsuleType, Confirmation, Origin, Significance

from .errors import CapsuleParseError
from .models import DEFAULT_PHASE_ORDER, Capsule, Challenge, generate_id

_PHASE_HEADER = re.compile(r"^##\s+(\S+)\s*$")
_DECISION_HEADER = re.compile(r"^###\s+Decision:\s*(.+?)\s*$", re.IGNORECASE)
_FIELD_LINE = re.compile(r"^[-*]\s*\*\*([A-Za-z]+):\*\*[ \t]*(.*?)\s*$")
_CHALLENGE_SPLIT = re.compile(r"(?<!\\)\|")
_CSV_SPLIT = re.compile(r"(?<!\\),")

# Labels that may repeat inside one block.
_REPEATED = {"challenge"}


def format_timestamp(dt: datetime) -> str:
    """RFC3339 with second precision; UTC renders as 'Z'."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    text = dt.replace(microsecond=0).isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def parse_timestamp(value: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def join_csv(values: Iterable[str]) -> str:
    """Comma-separated list; commas inside a value are escaped as \\,."""
    return ", ".join(_one_line(v).replace(",", "\\,") for v in values)


def split_csv(value: str) -> list[str]:
    parts = (p.replace("\\,", ",").strip() for p in _CSV_SPLIT.split(value))
    return [p for p in parts if p]


def _one_line(value: str) -> str:
    return " ".join(value.splitlines()).strip()


def _escape_pipe(value: str) -> str:
    return _one_line(value).replace("|", "\\|")


def _unescape_pipe(value: str) -> str:
    return value.replace("\\|", "|").strip()


def encode_challenge(ch: Challenge) -> str:
    return " | ".join(
        [
            format_timestamp(ch.timestamp),
            _escape_pipe(ch.resolution),
            _escape_pipe(ch.reason),
            _escape_pipe(ch.learned),
        ]
    )


def decode_challenge(value: str) -> Optional[Challenge]:
    parts = [_unescape_pipe(p) for p in _CHALLENGE_SPLIT.split(value)]
    if len(parts) < 3:
        return None
    ts = parse_timestamp(parts[0])
    if ts is None:
        return None
    return Challenge(
        timestamp=ts,
        resolution=parts[1],
        reason=parts[2],
        learned=parts[3] if len(parts) > 3 else "",
    )


def order_phases(phases: Iterable[str], phase_order: Sequence[str] = DEFAULT_PHASE_ORDER) -> list[str]:
    """Known phases in canonical order, then unknown phases in first-seen order."""
    seen = list(dict.fromkeys(phases))
    known = [p for p in phase_order if p in seen]
    return known + [p for p in seen if p not in phase_order]


def _encode_capsule(c: Capsule) -> list[str]:
    lines = [f"### Decision: {_one_line(c.question)}", f"- **ID:** {c.id}", f"- **Choice:** {_one_line(c.choice)}"]
    if c.alternatives:
        lines.append(f"- **Alternatives:** {join_csv(c.alternatives)}")
    lines.append(f"- **Rationale:** {_one_line(c.rationale)}")
    if c.origin:
        lines.append(f"- **Origin:** {c.origin}")
    if c.status == CapsuleStatus.INVALIDATED:
        lines.append(f"- **Status:** {c.status}")
    if c.type:
        lines.append(f"- **Type:** {c.type}")
    if c.significance:
        lines.append(f"- **Significance:** {c.significance}")
    if c.confirmation:
        lines.append(f"- **Confirmation:** {c.confirmation}")
    if c.pattern_id:
        lines.append(f"- **PatternID:** {c.pattern_id}")
    if c.tags:
        lines.append(f"- **Tags:** {join_csv(c.tags)}")
    if c.timestamp:
        lines.append(f"- **Timestamp:** {format_timestamp(c.timestamp)}")
    if c.created_at:
        lines.append(f"- **CreatedAt:** {format_timestamp(c.created_at)}")
    if c.invalidated_at:
        lines.append(f"- **InvalidatedAt:** {format_timestamp(c.invalidated_at)}")
    if c.repos:
        lines.append(f"- **Repos:** {join_csv(c.repos)}")
    if c.commits:
        lines.append(f"- **Commits:** {join_csv(c.commits)}")
    if c.enabled_by:
        lines.append(f"- **EnabledBy:** {c.enabled_by}")
    if c.enables:
        lines.append(f"- **Enables:** {join_csv(c.enables)}")
    if c.constrains:
        lines.append(f"- **Constrains:** {join_csv(c.constrains)}")
    if c.superseded_by:
        lines.append(f"- **SupersededBy:** {c.superseded_by}")
    if c.supersedes:
        lines.append(f"- **Supersedes:** {join_csv(c.supersedes)}")
    if c.invalidation_reason:
        lines.append(f"- **InvalidationReason:** {_one_line(c.invalidation_reason)}")
    if c.learned:
        lines.append(f"- **Learned:** {_one_line(c.learned)}")
    for ch in c.challenges:
        lines.append(f"- **Challenge:** {encode_challenge(ch)}")
    lines.append("")
    return lines


def encode_session(
    session_id: str,
    capsules: Sequence[Capsule],
    phase_order: Sequence[str] = DEFAULT_PHASE_ORDER,
) -> str:
    """Render all capsules of a session as one markdown document."""
    by_phase: dict[str, list[Capsule]] = {}
    for c in capsules:
        by_phase.setdefault(c.phase, []).append(c)

    body = ["# Decision Capsules", "", f"**Session:** [[{session_id}]]", ""]
    for phase in order_phases(by_phase, phase_order):
        body.append(f"## {phase}")
        body.append("")
        for c in by_phase[phase]:
            body.extend(_encode_capsule(c))

    post = frontmatter.Post("\n".join(body))
    post["session"] = session_id
    post["type"] = "capsules"
    return frontmatter.dumps(post) + "\n"


def _enum_or(enum_cls, value: str, default):
    try:
        return enum_cls(value.lower())
    except ValueError:
        return default


def _build_capsule(session_id: str, phase: str, question: str, fields: dict) -> Capsule:
    def get(label: str) -> str:
        return fields.get(label.lower(), "")

    alternatives = split_csv(get("Alternatives"))

    type_str = get("Type")
    default_type = CapsuleType.DECISION if alternatives else CapsuleType.FINDING
    capsule_type = _enum_or(CapsuleType, type_str, default_type) if type_str else default_type

    status = CapsuleStatus.INVALIDATED if get("Status").lower() == "invalidated" else CapsuleStatus.ACTIVE

    # Origin replaced the legacy Source field
    origin_str = get("Origin") or get("Source")
    origin = _enum_or(Origin, origin_str, Origin.AGENT) if origin_str else Origin.AGENT

    timestamp = parse_timestamp(get("Timestamp")) if get("Timestamp") else None
    created_at = parse_timestamp(get("CreatedAt")) if get("CreatedAt") else None

    challenges = []
    for raw in fields.get("challenge", []):
        ch = decode_challenge(raw)
        if ch is not None:
            challenges.append(ch)

    return Capsule(
        id=get("ID") or generate_id(session_id, phase, question),
        session_id=session_id,
        phase=phase,
        question=question,
        choice=get("Choice"),
        rationale=get("Rationale"),
        alternatives=alternatives,
        tags=split_csv(get("Tags")),
        type=capsule_type,
        status=status,
        significance=_enum_or(Significance, get("Significance"), Significance.IMPLEMENTATION),
        origin=origin,
        confirmation=_enum_or(Confirmation, get("Confirmation"), Confirmation.IMPLICIT),
        pattern_id=get("PatternID"),
        repos=split_csv(get("Repos")),
        commits=split_csv(get("Commits")),
        timestamp=timestamp,
        created_at=created_at or timestamp,
        invalidated_at=parse_timestamp(get("InvalidatedAt")) if get("InvalidatedAt") else None,
        enabled_by=get("EnabledBy") or None,
        enables=split_csv(get("Enables")),
        constrains=split_csv(get("Constrains")),
        supersedes=split_csv(get("Supersedes")),
        superseded_by=get("SupersededBy") or None,
        invalidation_reason=get("InvalidationReason"),
        learned=get("Learned"),
        challenges=challenges,
    )


def decode_session(text: str, source: str = "<string>", default_session: str = "") -> list[Capsule]:
    """Parse a consolidated file into capsules.

    default_session stands in when the front matter has no session, and is
    used for regenerated IDs as well.

    Raises:
        CapsuleParseError: If the front matter is not valid YAML.
    """
    try:
        post = frontmatter.loads(text)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        raise CapsuleParseError(f"Invalid front matter in {source}: {e}") from e

    session = post.get("session")
    session_id = default_session if session is None or session == "" else str(session)

    capsules: list[Capsule] = []
    phase: Optional[str] = None
    question: Optional[str] = None
    fields: dict = {}

    def flush():
        if phase is not None and question is not None:
            capsules.append(_build_capsule(session_id, phase, question, fields))

    for line in post.content.splitlines():
        m = _PHASE_HEADER.match(line)
        if m:
            flush()
            phase, question, fields = m.group(1), None, {}
            continue

        m = _DECISION_HEADER.match(line)
        if m:
            flush()
            question, fields = m.group(1), {}
            continue

        if question is None:
            continue

        m = _FIELD_LINE.match(line.strip())
        if m:
            label, value = m.group(1).lower(), m.group(2)
            if label in _REPEATED:
                fields.setdefault(label, []).append(value)
            else:
                fields.setdefault(label, value)

    flush()
    return capsules
