"""This module evaluates stage approval fields before a transition may commit."""
from .approval_gate import ApprovalGate
from .default_approval_gate import DefaultApprovalGate
from .noop_approval_gate import NoopApprovalGate
from .entities import ApprovalGateResult, ApprovalValidation, FieldError
from .rules import ApprovalRuleSet, compile_approval_rules, evaluate, validate_approval
