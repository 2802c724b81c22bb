# Travis services - job discovery and log output
from .client import TravisClient, extract_check_name
from .extractor import OutputBlockScanner, ParserState, read_output_block, scan_lines

__all__ = [
    "OutputBlockScanner",
    "ParserState",
    "TravisClient",
    "extract_check_name",
    "read_output_block",
    "scan_lines",
]
