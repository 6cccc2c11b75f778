"""Render recall results for a terminal or a token-budgeted prompt context."""

from shared_types import CapsuleStatus

from .engine import RecallResult, ScoredCapsule

CHARS_PER_TOKEN = 4

CONTEXT_HEADER = (
    "## Prior CARD Context\n\n"
    "The following decisions were made in prior sessions touching related files:\n\n"
)


def estimate_tokens(text: str) -> int:
    """Rough token count at ~4 characters per token."""
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def status_label(status: CapsuleStatus) -> str:
    return f"[{status}]"


def ledger_path(session_id: str) -> str:
    return f"~/.card/sessions/{session_id}/milestone_ledger.md"


def format_terminal(result: RecallResult, full: bool = False) -> str:
    """Human-readable listing of sessions and capsules."""
    if not result.capsules and not result.sessions:
        return "No prior CARD context found."

    lines = []
    if result.sessions:
        lines.append(f"Found {len(result.sessions)} prior session(s):")
        for s in result.sessions:
            created = s.created_at.strftime("%Y-%m-%d") if s.created_at else "unknown"
            lines.append(f"  - {s.id}: {s.description} [{s.status}] ({created})")
            lines.append(f"    Ledger: {ledger_path(s.id)}")
        lines.append("")

    if result.capsules:
        lines.append(f"Found {len(result.capsules)} prior decision(s):")
        for sc in result.capsules:
            c = sc.capsule
            label = status_label(c.status)
            if not full:
                lines.append(f"  - {label} [{sc.tier.label}] {c.question} -> {c.choice}")
                continue
            lines.append("")
            lines.append(f"  {label} [{sc.tier.label}] {c.question}")
            lines.append(f"    Choice:    {c.choice}")
            if c.alternatives:
                lines.append(f"    Alts:      {', '.join(c.alternatives)}")
            lines.append(f"    Rationale: {c.rationale}")
            if c.tags:
                lines.append(f"    Tags:      {', '.join(c.tags)}")
            if c.superseded_by:
                lines.append(f"    -> Superseded by: {c.superseded_by}")
            lines.append(f"    Ledger: {ledger_path(c.session_id)}")

    return "\n".join(lines) + "\n"


def _context_entry(sc: ScoredCapsule) -> str:
    c = sc.capsule
    label = status_label(c.status)
    if not sc.tier.is_strong:
        return f"- {label} [{c.phase}] {c.question} -> {c.choice}\n"

    parts = [
        f"### {label} Decision: {c.question}",
        f"- **Choice:** {c.choice}",
        f"- **Rationale:** {c.rationale}",
    ]
    if c.tags:
        parts.append(f"- **Tags:** {', '.join(c.tags)}")
    if c.superseded_by:
        parts.append(f"- **Superseded by:** {c.superseded_by}")
    parts.append(f"- **Phase:** {c.phase}, **Session:** {c.session_id}")
    parts.append(f"- Step into memory: `{ledger_path(c.session_id)}`")
    return "\n".join(parts) + "\n\n"


def format_context(result: RecallResult, token_budget: int = 0) -> str:
    """Markdown block for prompt injection.

    Entries are appended whole in rank order; the first entry that would exceed
    token_budget stops the output. A budget of 0 means unlimited.
    """
    if not result.capsules:
        return ""

    out = [CONTEXT_HEADER]
    used = estimate_tokens(CONTEXT_HEADER)
    for sc in result.capsules:
        entry = _context_entry(sc)
        cost = estimate_tokens(entry)
        if token_budget > 0 and used + cost > token_budget:
            break
        out.append(entry)
        used += cost
    return "".join(out)
