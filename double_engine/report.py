"""Summarize exported invocation ledgers."""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

from double_engine.errors import DoubleEngineError
from double_engine.factory import handle_of

logger = logging.getLogger(__name__)


class ReportError(DoubleEngineError):
    """Error reading an exported ledger."""


@dataclass
class MethodSummary:
    """Call statistics for one method of one mock."""

    mock: str
    method: str
    calls: int = 0
    raised: int = 0
    lenient_defaults: int = 0


@dataclass
class LedgerReport:
    """Summary across every ledger in an export."""

    source: str
    methods: list[MethodSummary] = field(default_factory=list)
    lenient_stand_ins: list[dict] = field(default_factory=list)

    @property
    def total_calls(self) -> int:
        return sum(m.calls for m in self.methods)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "total_calls": self.total_calls,
            "methods": [asdict(m) for m in self.methods],
            "lenient_stand_ins": self.lenient_stand_ins,
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def to_text(self) -> str:
        lines = [f"Ledger report for {self.source}: {self.total_calls} calls"]
        for m in self.methods:
            lines.append(
                f"  {m.mock}.{m.method}: {m.calls} calls, {m.raised} raised, "
                f"{m.lenient_defaults} lenient defaults"
            )
        if self.lenient_stand_ins:
            lines.append("Lenient stand-ins (unstubbed calls answered with defaults):")
            for entry in self.lenient_stand_ins:
                arguments = ", ".join(entry.get("arguments", []))
                lines.append(
                    f"  {entry['mock']} #{entry['sequence']} "
                    f"{entry['method']}({arguments}) -> {entry.get('value')}"
                )
        return "\n".join(lines)


def _ledgers(data) -> list[dict]:
    if isinstance(data, dict) and "invocations" in data:
        return [data]
    if isinstance(data, list) and all(
        isinstance(d, dict) and "invocations" in d for d in data
    ):
        return data
    raise ReportError("Expected a ledger export or a list of ledger exports")


def build_report(
    data, source: str = "<memory>", method: str | None = None
) -> LedgerReport:
    """Build a report from parsed ledger export data.

    Args:
        data: One ledger dict (InvocationLedger.to_dict()) or a list of them
        source: Label for the report header
        method: Only include invocations of this method name

    Returns:
        LedgerReport with per-method statistics and lenient stand-ins
    """
    report = LedgerReport(source=source)
    summaries: dict[tuple[str, str], MethodSummary] = {}

    for ledger in _ledgers(data):
        mock = ledger.get("mock", "mock")
        for entry in ledger["invocations"]:
            name = entry.get("method", "?")
            if method is not None and name != method:
                continue
            summary = summaries.setdefault((mock, name), MethodSummary(mock, name))
            summary.calls += 1
            if entry.get("outcome") == "raised":
                summary.raised += 1
            if entry.get("lenient_default"):
                summary.lenient_defaults += 1
                report.lenient_stand_ins.append({"mock": mock, **entry})

    report.methods = list(summaries.values())
    logger.info(
        f"Built report for {source}: {len(report.methods)} methods, "
        f"{len(report.lenient_stand_ins)} lenient stand-ins"
    )
    return report


def load_report(path: str | Path, method: str | None = None) -> LedgerReport:
    """Read an exported ledger file and summarize it.

    Raises:
        ReportError: If the file cannot be read or has the wrong shape
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise ReportError(f"Cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ReportError(f"Invalid JSON in {path}: {e}") from e
    return build_report(data, source=str(path), method=method)


def dump_ledgers(mocks, path: str | Path) -> Path:
    """Write the ledgers of several mocks to one JSON file for later reporting.

    Args:
        mocks: Proxies or handles whose ledgers are exported
        path: Destination file

    Returns:
        The path written
    """
    path = Path(path)
    data = [handle_of(m).ledger.to_dict() for m in mocks]
    path.write_text(json.dumps(data, indent=2))
    logger.info(f"Wrote {len(data)} ledgers to {path}")
    return path
