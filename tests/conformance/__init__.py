"""
Conformance Test Suite

Invariants every engine built on the ledger must keep, checked with
hypothesis where the input space is large:

1. test_pool_conservation.py - pools, payouts and token supply balance exactly
2. test_pool_atomicity.py - all-or-nothing operations, reentrancy, concurrency
"""
