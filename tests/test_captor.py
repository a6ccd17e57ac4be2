"""Tests for argument captors."""

import pytest

from double_engine.captor import ArgumentCaptor, CaptureMatcher
from double_engine.errors import CaptureEmptyError
from double_engine.factory import create_mock, when
from double_engine.matchers import eq
from double_engine.verification import verify
from sample_collaborators import EmailSender, User, UserRepository


class TestArgumentCaptor:
    def given_captor(self):
        self.captor = ArgumentCaptor(name="emails")

    def given_sender_mock(self):
        self.sender = create_mock(EmailSender, strictness="lenient")

    def when_emails_are_sent(self, *recipients):
        for to in recipients:
            self.sender.send(to, "Welcome")

    def then_values_are(self, expected):
        assert self.captor.all_values() == expected

    def test_empty_captor_has_no_last_value(self):
        """last_value() fails before anything was captured."""
        self.given_captor()
        with pytest.raises(CaptureEmptyError):
            self.captor.last_value()
        self.then_values_are([])

    def test_capture_returns_a_matcher(self):
        """capture() yields a matcher that accepts any value."""
        self.given_captor()
        matcher = self.captor.capture()
        assert isinstance(matcher, CaptureMatcher)
        assert matcher.matches(object())
        assert "emails" in matcher.describe()

    def test_verification_captures_every_matched_call(self):
        """Verifying with a captor records each matching invocation in order."""
        self.given_captor()
        self.given_sender_mock()
        self.when_emails_are_sent("a@example.com", "b@example.com")
        verify(self.sender, times=2).send(self.captor.capture(), eq("Welcome"), eq(""))
        self.then_values_are(["a@example.com", "b@example.com"])
        assert self.captor.last_value() == "b@example.com"

    def test_values_are_kept_in_call_order(self):
        """Three matched calls yield their arguments in order."""
        self.given_captor()
        self.given_sender_mock()
        when(self.sender).send(
            self.captor.capture(), eq("Welcome"), eq("")
        ).then_return(True)
        self.when_emails_are_sent("a", "b", "c")
        self.then_values_are(["a", "b", "c"])
        assert self.captor.last_value() == "c"

    def test_failed_sibling_match_records_nothing(self):
        """A captor next to a non-matching argument stays empty."""
        self.given_captor()
        repository = create_mock(UserRepository)
        when(repository).delete(eq(1), eq(True)).then_do_nothing()
        # Checked first, fails on the second argument
        when(repository).delete(self.captor.capture(), eq(False)).then_do_nothing()

        repository.delete(1)

        self.then_values_are([])

    def test_stubbing_captures_on_resolution(self):
        """A captor in a stub records the argument of each answered call."""
        self.given_captor()
        repository = create_mock(UserRepository)
        user = User(user_id=7, email="x@example.com")
        when(repository).save(self.captor.capture()).then_return(user)

        repository.save(user)

        assert self.captor.last_value() is user

    def test_all_values_is_a_copy(self):
        """Mutating the returned list does not change the captor."""
        self.given_captor()
        self.captor.capture().on_match(1)
        values = self.captor.all_values()
        values.append(2)
        self.then_values_are([1])
