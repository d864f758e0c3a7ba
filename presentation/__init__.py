from .report import (
    ReportData,
    generate_markdown_report,
    generate_section,
    write_report,
)
from .channels import ConsoleChannel, WebSocketChannel
from .server import AnalysisServer

__all__ = [
    # Report generation
    "ReportData",
    "generate_markdown_report",
    "generate_section",
    "write_report",
    # Channels
    "ConsoleChannel",
    "WebSocketChannel",
    # Transport
    "AnalysisServer",
]
