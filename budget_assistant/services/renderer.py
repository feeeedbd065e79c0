# =============================================================================
# Report Renderer — Markdown
# =============================================================================
#
# Plain-text rendering of a ReportDocument for the HTTP response's
# `report_text` field. PDF, DOCX and email renderers consume the same
# document downstream; none of them needs to know which gate path produced
# it.
# =============================================================================

from __future__ import annotations

from budget_assistant.agents.assembler import ReportDocument


def render_markdown(report: ReportDocument) -> str:
    lines: list[str] = [f"# {report.title}", ""]

    for section in report.sections:
        lines.append(f"## {section.number}. {section.heading}")
        lines.append("")
        if isinstance(section.body, tuple):
            lines.extend(f"- {entry}" for entry in section.body)
        else:
            lines.append(section.body)
        lines.append("")

    footer = report.footer
    lines.append("---")
    lines.append(
        f"Generated {footer.timestamp_iso} | "
        f"Registration {footer.registration_id} | "
        f"Evidence chunks: {footer.evidence_count}"
    )
    return "\n".join(lines)
