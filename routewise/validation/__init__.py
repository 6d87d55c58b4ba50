"""Validation package.

This package contains the rule-based checks run around execution: required
fields, permission policy, business rules, the lexical input filter and
property-management structural checks. Findings are returned as data so the
orchestrator can decide whether an operation proceeds.
"""
