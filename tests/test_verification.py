"""Tests for verification queries."""

import pytest

from double_engine.captor import ArgumentCaptor
from double_engine.errors import RegistrationError, VerificationFailure
from double_engine.factory import create_mock, handle_of, mock_function, when
from double_engine.matchers import any_value, eq, instance_of
from double_engine.verification import (
    Multiplicity,
    VerificationQuery,
    at_least,
    at_most,
    exactly,
    never,
    verify,
    verify_query,
    verify_zero_interactions,
)
from sample_collaborators import EmailSender, User, UserRepository, UserService, score


class TestMultiplicity:
    def test_kinds_accept_counts(self):
        """Each multiplicity kind accepts the counts it describes."""
        assert exactly(2).accepts(2) and not exactly(2).accepts(3)
        assert at_least(1).accepts(5) and not at_least(1).accepts(0)
        assert at_most(1).accepts(0) and not at_most(1).accepts(2)
        assert never().accepts(0) and not never().accepts(1)

    def test_descriptions(self):
        """Multiplicities describe themselves in plain words."""
        assert exactly(1).describe() == "exactly 1 time"
        assert at_least(2).describe() == "at least 2 times"
        assert never().describe() == "never"

    def test_negative_counts_are_rejected(self):
        """Negative expected counts fail at declaration."""
        with pytest.raises(RegistrationError):
            exactly(-1)
        with pytest.raises(RegistrationError):
            at_least(-1)


class TestVerify:
    def given_lenient_collaborators(self):
        self.repository = create_mock(UserRepository, strictness="lenient")
        self.sender = create_mock(EmailSender, strictness="lenient")

    def when_saved(self, *user_ids):
        for user_id in user_ids:
            self.repository.save(User(user_id=user_id, email=f"{user_id}@x.org"))

    def then_failure_of(self, check) -> VerificationFailure:
        with pytest.raises(VerificationFailure) as exc_info:
            check()
        return exc_info.value

    def test_exactly_once_by_default(self):
        """verify(mock).m(args) expects exactly one matching call."""
        self.given_lenient_collaborators()
        self.repository.find_by_id(42)
        result = verify(self.repository).find_by_id(42)
        assert [i.arguments for i in result.matched] == [(42,)]

    def test_exact_count(self):
        """Counts other than the expected one fail."""
        self.given_lenient_collaborators()
        self.when_saved(1, 2)
        verify(self.repository, times=2).save(any_value())
        failure = self.then_failure_of(
            lambda: verify(self.repository, times=3).save(any_value())
        )
        assert failure.actual_count == 2

    def test_never_passes_on_empty_ledger(self):
        """A method that was never called satisfies never()."""
        self.given_lenient_collaborators()
        verify(self.repository, times=never()).delete(any_value(), any_value())

    def test_never_fails_after_a_call(self):
        """never() fails once a matching call was recorded."""
        self.given_lenient_collaborators()
        self.repository.delete(5)
        self.then_failure_of(
            lambda: verify(self.repository, times=never()).delete(5)
        )

    def test_at_least_and_at_most(self):
        """Bounded multiplicities check their bound only."""
        self.given_lenient_collaborators()
        self.when_saved(1, 2, 3)
        verify(self.repository, times=at_least(2)).save(any_value())
        verify(self.repository, times=at_most(3)).save(any_value())
        self.then_failure_of(
            lambda: verify(self.repository, times=at_most(2)).save(any_value())
        )

    def test_matchers_select_invocations(self):
        """Only invocations matching the query count."""
        self.given_lenient_collaborators()
        self.repository.find_by_id(1)
        self.repository.find_by_id(2)
        verify(self.repository).find_by_id(eq(2))
        verify(self.repository, times=2).find_by_id(instance_of(int))

    def test_failed_calls_are_still_invocations(self):
        """Calls that raised count towards verification."""
        repository = create_mock(UserRepository)
        when(repository).count().then_raise(ConnectionError)
        with pytest.raises(ConnectionError):
            repository.count()
        verify(repository).count()

    def test_failure_lists_recorded_invocations(self):
        """A failure report names the query and every call of that method."""
        self.given_lenient_collaborators()
        self.repository.find_by_id(1)
        self.repository.find_by_id(2)
        failure = self.then_failure_of(
            lambda: verify(self.repository).find_by_id(3)
        )
        message = str(failure)
        assert "Verification failed on mock 'UserRepository'" in message
        assert "expected: find_by_id(3) exactly 1 time" in message
        assert "actual:   0 matching invocations" in message
        assert "#1 find_by_id(1) -> returned None (lenient default)" in message
        assert "#2 find_by_id(2)" in message
        assert len(failure.invocations) == 2

    def test_failure_report_when_nothing_was_called(self):
        """A report for an uncalled method says so."""
        self.given_lenient_collaborators()
        failure = self.then_failure_of(lambda: verify(self.repository).count())
        assert "(none)" in str(failure)

    def test_failure_is_an_assertion_error(self):
        """Test runners treat a verification failure as a failed assertion."""
        self.given_lenient_collaborators()
        with pytest.raises(AssertionError):
            verify(self.repository).count()

    def test_verification_does_not_mutate_ledger(self):
        """Verifying leaves the recorded invocations untouched."""
        self.given_lenient_collaborators()
        self.when_saved(1)
        before = handle_of(self.repository).ledger.invocations()
        verify(self.repository).save(any_value())
        verify(self.repository).save(any_value())
        assert handle_of(self.repository).ledger.invocations() == before

    def test_captor_records_matched_arguments(self):
        """Captors in a verification see the arguments of matched calls."""
        self.given_lenient_collaborators()
        captor = ArgumentCaptor()
        self.when_saved(7)
        verify(self.repository).save(captor.capture())
        assert captor.last_value().user_id == 7

    def test_unknown_method_is_rejected(self):
        """Queries against members outside the capability set fail."""
        self.given_lenient_collaborators()
        with pytest.raises(RegistrationError):
            verify(self.repository).update(1)

    def test_function_double_verification(self):
        """Function doubles are verified by calling the recorder."""
        double = mock_function(score, strictness="lenient")
        double(3)
        verify(double)(3)
        failure = self.then_failure_of(lambda: verify(double)(4))
        assert "call(4)" in str(failure)

    def test_explicit_query(self):
        """verify_query() accepts a hand-built query."""
        self.given_lenient_collaborators()
        self.repository.count()
        signature = handle_of(self.repository).signature("count")
        query = VerificationQuery(
            signature=signature, matchers=(), multiplicity=Multiplicity("exactly", 1)
        )
        result = verify_query(self.repository, query)
        assert len(result.matched) == 1


class TestOrdering:
    def given_service(self):
        self.repository = create_mock(UserRepository, strictness="lenient")
        self.sender = create_mock(EmailSender, strictness="lenient")
        self.user = User(user_id=1, email="ada@example.com", name="Ada")
        when(self.repository).save(any_value()).then_compute(lambda user: user)
        self.service = UserService(self.repository, self.sender)

    def test_order_within_one_mock(self):
        """A query can require its calls to follow an earlier query's."""
        repository = create_mock(UserRepository, strictness="lenient")
        repository.find_by_id(1)
        repository.delete(1)
        found = verify(repository).find_by_id(1)
        verify(repository, after=found).delete(1)

    def test_order_violation_within_one_mock(self):
        """Calls in the wrong order fail with an ordering report."""
        repository = create_mock(UserRepository, strictness="lenient")
        repository.delete(1)
        repository.find_by_id(1)
        found = verify(repository).find_by_id(1)
        with pytest.raises(VerificationFailure, match="Ordering mismatch"):
            verify(repository, after=found).delete(1)

    def test_order_across_mocks(self):
        """Ordering holds across different mocks."""
        self.given_service()
        self.service.register(self.user)
        saved = verify(self.repository).save(self.user)
        verify(self.sender, after=saved).send(
            "ada@example.com", "Welcome", "Hello Ada"
        )

    def test_order_violation_across_mocks(self):
        """A call on one mock made before the other's is reported."""
        self.given_service()
        self.service.register(self.user)
        sent = verify(self.sender).send(any_value(), any_value(), any_value())
        with pytest.raises(VerificationFailure):
            verify(self.repository, after=sent).save(self.user)

    def test_cross_mock_violation_reports_compared_positions(self):
        """Across mocks the report shows the process-wide positions it compared."""
        self.given_service()
        self.service.register(self.user)
        sent = verify(self.sender).send(any_value(), any_value(), any_value())
        saved_at = handle_of(self.repository).ledger.invocations()[0].global_order
        sent_at = sent.matched[0].global_order
        with pytest.raises(VerificationFailure) as exc_info:
            verify(self.repository, after=sent).save(self.user)
        message = str(exc_info.value)
        assert f"global #{saved_at} ran before" in message
        assert f"ran before send(<any>, <any>, <any>) global #{sent_at}" in message

    def test_same_mock_violation_reports_sequences(self):
        """Within one mock the report shows sequence numbers."""
        repository = create_mock(UserRepository, strictness="lenient")
        repository.delete(1)
        repository.find_by_id(1)
        found = verify(repository).find_by_id(1)
        with pytest.raises(VerificationFailure) as exc_info:
            verify(repository, after=found).delete(1)
        assert "delete(1, True) #1 ran before find_by_id(1) #2" in str(exc_info.value)

    def test_order_is_vacuous_when_predecessor_matched_nothing(self):
        """A never() predecessor imposes no ordering."""
        repository = create_mock(UserRepository, strictness="lenient")
        repository.count()
        nothing = verify(repository, times=never()).find_all()
        verify(repository, after=nothing).count()


class TestZeroInteractions:
    def test_untouched_mock_passes(self):
        """A mock nobody called has zero interactions."""
        verify_zero_interactions(create_mock(EmailSender))

    def test_called_mock_fails(self):
        """Any recorded call fails the check."""
        sender = create_mock(EmailSender, strictness="lenient")
        sender.send("a@example.com", "Hi")
        with pytest.raises(VerificationFailure) as exc_info:
            verify_zero_interactions(sender)
        assert exc_info.value.actual_count == 1
        assert "send('a@example.com', 'Hi', '')" in str(exc_info.value)
