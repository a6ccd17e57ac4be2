"""Tests for ledger export and reporting."""

import json

import pytest

from double_engine.factory import create_mock, handle_of, when
from double_engine.report import ReportError, build_report, dump_ledgers, load_report
from sample_collaborators import EmailSender, UserRepository


class TestLedgerReport:
    def given_exercised_mocks(self):
        self.repository = create_mock(UserRepository, strictness="lenient")
        self.sender = create_mock(EmailSender)
        when(self.repository).count().then_return(2)
        when(self.sender).send("a@example.com", "Hi").then_raise(ConnectionError)
        self.repository.count()
        self.repository.count()
        self.repository.find_by_id(1)
        with pytest.raises(ConnectionError):
            self.sender.send("a@example.com", "Hi")

    def when_exported_and_loaded(self, tmp_path, method=None):
        self.path = dump_ledgers([self.repository, self.sender], tmp_path / "l.json")
        self.report = load_report(self.path, method=method)

    def then_summary_for(self, mock, method):
        return next(
            m for m in self.report.methods if m.mock == mock and m.method == method
        )

    def test_counts_calls_per_method(self, tmp_path):
        """Calls, failures and lenient defaults are counted per method."""
        self.given_exercised_mocks()
        self.when_exported_and_loaded(tmp_path)
        assert self.report.total_calls == 4
        assert self.then_summary_for("UserRepository", "count").calls == 2
        assert self.then_summary_for("EmailSender", "send").raised == 1
        find = self.then_summary_for("UserRepository", "find_by_id")
        assert find.lenient_defaults == 1

    def test_lists_lenient_stand_ins(self, tmp_path):
        """Lenient stand-ins are listed with their call."""
        self.given_exercised_mocks()
        self.when_exported_and_loaded(tmp_path)
        text = self.report.to_text()
        assert "Lenient stand-ins" in text
        assert "UserRepository #3 find_by_id(1) -> None" in text

    def test_method_filter(self, tmp_path):
        """A method filter keeps only that method's calls."""
        self.given_exercised_mocks()
        self.when_exported_and_loaded(tmp_path, method="count")
        assert [m.method for m in self.report.methods] == ["count"]
        assert self.report.lenient_stand_ins == []

    def test_json_output(self, tmp_path):
        """Reports serialize to JSON."""
        self.given_exercised_mocks()
        self.when_exported_and_loaded(tmp_path)
        data = json.loads(self.report.to_json())
        assert data["total_calls"] == 4
        assert data["source"] == str(self.path)

    def test_single_ledger_export(self):
        """A single InvocationLedger export is accepted too."""
        repository = create_mock(UserRepository, strictness="lenient")
        repository.count()
        data = json.loads(handle_of(repository).ledger.to_json())
        report = build_report(data)
        assert report.total_calls == 1
        assert report.to_text().startswith("Ledger report for <memory>: 1 calls")

    def test_wrong_shape_is_rejected(self):
        """Data without invocations is not a ledger export."""
        with pytest.raises(ReportError):
            build_report({"mock": "x"})

    def test_unreadable_file_is_rejected(self, tmp_path):
        """Missing or invalid files raise ReportError."""
        with pytest.raises(ReportError):
            load_report(tmp_path / "absent.json")
        broken = tmp_path / "broken.json"
        broken.write_text("[")
        with pytest.raises(ReportError):
            load_report(broken)
