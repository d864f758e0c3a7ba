"""
Markdown verdict report.

Transforms a Verdict (and optionally its stage trail) into a formatted
markdown report. Pure formatting logic - no I/O except final writing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TextIO
import sys

from domain import AnalysisStage, Direction, StageName, Verdict


@dataclass
class ReportData:
    """Everything needed to render one verdict report."""
    verdict: Verdict
    stages: list[AnalysisStage] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)
    title: str = "Market Verdict"


# ============================================================================
# Formatting Helpers
# ============================================================================

def _format_datetime(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M")


def _confidence_bar(confidence: int, width: int = 10) -> str:
    """Create ASCII bar for a 0-100 confidence."""
    filled = int(confidence / 100 * width)
    return f"[{'█' * filled}{'░' * (width - filled)}] {confidence}%"


def _direction_badge(direction: Direction) -> str:
    return {
        Direction.UP: "🟢 UP",
        Direction.DOWN: "🔴 DOWN",
        Direction.NEUTRAL: "🟡 NEUTRAL",
    }[direction]


def _price(value: float) -> str:
    return f"{value:,.4f}" if abs(value) < 10 else f"{value:,.2f}"


# ============================================================================
# Section Generators
# ============================================================================

def generate_header(data: ReportData) -> str:
    v = data.verdict
    lines = [
        f"# {data.title}: {v.pair} ({v.timeframe})",
        "",
        f"*Generated: {_format_datetime(data.generated_at)}*",
        "",
    ]
    if v.degraded:
        lines += ["> **Degraded run:** analysis could not complete.", ""]
    if v.synthetic_data:
        lines += ["> **Note:** part of the candle window was synthesized.", ""]
    lines += ["---", ""]
    return "\n".join(lines)


def generate_summary_section(data: ReportData) -> str:
    v = data.verdict
    lines = [
        "## Verdict",
        "",
        f"**Direction:** {_direction_badge(v.direction)}",
        f"**Confidence:** {_confidence_bar(v.confidence)}",
        f"**Duration:** {v.duration}",
        f"**Quality:** {v.quality_score:.0f}",
        "",
        v.explanation,
        "",
    ]
    return "\n".join(lines)


def generate_targets_section(data: ReportData) -> str:
    targets = data.verdict.trade_targets
    if targets is None:
        return ""
    return "\n".join([
        "## Trade Plan",
        "",
        "| Leg | Low | High |",
        "|-----|-----|------|",
        f"| Entry | {_price(targets.entry.low)} | {_price(targets.entry.high)} |",
        f"| Target | {_price(targets.target.low)} | {_price(targets.target.high)} |",
        f"| Stop | {_price(targets.stop)} | |",
        "",
    ])


def generate_factors_section(data: ReportData) -> str:
    v = data.verdict
    lines = []
    if v.key_factors:
        lines += ["## Key Factors", ""] + [f"- {f}" for f in v.key_factors] + [""]
    if v.risk_factors:
        lines += ["## Risk Factors", ""] + [f"- {f}" for f in v.risk_factors] + [""]
    return "\n".join(lines)


def generate_audit_section(data: ReportData) -> str:
    audit = next((s for s in data.stages if s.stage is StageName.HEDGE_FUND_AUDIT), None)
    if audit is None or not audit.data:
        return ""
    lines = [
        f"## Safety Audit (score {audit.data.get('score', 0)})",
        "",
        "| Check | Status | Value | Note |",
        "|-------|--------|-------|------|",
    ]
    for check in audit.data.get("checks", []):
        lines.append(f"| {check['name']} | {check['status']} | {check['value']} | {check['message']} |")
    lines.append("")
    return "\n".join(lines)


def generate_thinking_section(data: ReportData) -> str:
    thinking = data.verdict.thinking_process
    if not thinking:
        return ""
    return "\n".join(["## Model Reasoning", "", thinking, ""])


def generate_footer(data: ReportData) -> str:
    return "\n".join([
        "---",
        "",
        "*This report is for informational purposes only and does not constitute investment advice.*",
    ])


# ============================================================================
# Main Report Generation
# ============================================================================

SECTIONS = {
    "header": generate_header,
    "summary": generate_summary_section,
    "targets": generate_targets_section,
    "factors": generate_factors_section,
    "audit": generate_audit_section,
    "thinking": generate_thinking_section,
    "footer": generate_footer,
}


def generate_section(section_name: str, data: ReportData) -> str:
    """Generate a specific section of the report."""
    generator = SECTIONS.get(section_name)
    if generator:
        return generator(data)
    return f"<!-- Unknown section: {section_name} -->\n"


def generate_markdown_report(data: ReportData, sections: list[str] | None = None) -> str:
    """
    Generate full markdown report.

    Args:
        data: Verdict and optional stage trail
        sections: Optional list of sections to include (default: all)
    """
    parts = []
    for section in sections or list(SECTIONS):
        content = generate_section(section, data)
        if content:
            parts.append(content)
    return "\n".join(parts)


def write_report(data: ReportData, output: TextIO | None = None) -> str:
    """Generate the report and write it to `output` (default: stdout)."""
    content = generate_markdown_report(data)
    (output or sys.stdout).write(content + "\n")
    return content
