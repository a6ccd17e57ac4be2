"""Test doubles: stubbing, verification, argument capture and scoped overrides."""

from double_engine.captor import ArgumentCaptor, CaptureMatcher
from double_engine.config import (
    EngineConfig,
    ResolutionPolicy,
    Strictness,
    load_config,
)
from double_engine.errors import (
    CaptureEmptyError,
    ConfigError,
    DoubleEngineError,
    NestedOverrideError,
    RegistrationError,
    UnstubbedInvocationError,
    VerificationFailure,
)
from double_engine.factory import (
    MockFactory,
    MockHandle,
    create_mock,
    handle_of,
    mock_function,
    when,
)
from double_engine.interception import StaticOverride, override
from double_engine.ledger import Invocation, InvocationLedger, Outcome
from double_engine.matchers import (
    AnyValue,
    ArgumentMatcher,
    Eq,
    InstanceOf,
    Predicate,
    any_value,
    eq,
    instance_of,
    that,
)
from double_engine.report import dump_ledgers, load_report
from double_engine.signatures import MethodSignature
from double_engine.stubs import StubRegistry, StubRule
from double_engine.verification import (
    Multiplicity,
    VerificationQuery,
    VerificationResult,
    at_least,
    at_most,
    exactly,
    never,
    verify,
    verify_query,
    verify_zero_interactions,
)

__all__ = [
    # Mock creation and stubbing
    "MockFactory",
    "MockHandle",
    "create_mock",
    "mock_function",
    "handle_of",
    "when",
    "MethodSignature",
    "StubRegistry",
    "StubRule",
    # Matchers
    "ArgumentMatcher",
    "AnyValue",
    "Eq",
    "InstanceOf",
    "Predicate",
    "any_value",
    "eq",
    "instance_of",
    "that",
    "ArgumentCaptor",
    "CaptureMatcher",
    # Ledger and verification
    "Invocation",
    "InvocationLedger",
    "Outcome",
    "Multiplicity",
    "VerificationQuery",
    "VerificationResult",
    "at_least",
    "at_most",
    "exactly",
    "never",
    "verify",
    "verify_query",
    "verify_zero_interactions",
    # Static overrides
    "StaticOverride",
    "override",
    # Configuration and reports
    "EngineConfig",
    "ResolutionPolicy",
    "Strictness",
    "load_config",
    "dump_ledgers",
    "load_report",
    # Errors
    "DoubleEngineError",
    "ConfigError",
    "RegistrationError",
    "NestedOverrideError",
    "UnstubbedInvocationError",
    "VerificationFailure",
    "CaptureEmptyError",
]
